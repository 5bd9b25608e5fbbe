"""
Feed Pipeline
=============

바이트 스트림 → PathMatcher → Transformer → Publisher 연결
- 매칭마다 레코드 변환 후 전송 Future를 배리어에 등록
- 변환 실패는 해당 레코드만 버리고 계속 진행
"""

import logging
from contextlib import aclosing
from dataclasses import dataclass
from typing import AsyncIterable, Awaitable, Callable, Optional

from bods_producer.common.errors import RecordDecodeError
from bods_producer.parser.path_matcher import MatchedNode, PathMatcher
from bods_producer.parser.transformer import VehicleActivityRecord, transform

from .barrier import PublishBarrier

logger = logging.getLogger(__name__)

Transformer = Callable[..., VehicleActivityRecord]
PublishFn = Callable[[VehicleActivityRecord], Awaitable]


@dataclass(frozen=True)
class PipelineResult:
    """파이프라인 실행 결과"""
    match_count: int
    decode_failures: int
    bytes_parsed: int


class FeedPipeline:
    """
    SIRI-VM 문서 하나를 처리하는 파이프라인

    publisher는 publish(record) 코루틴을 가진 객체 (예: KafkaVehicleProducer).
    """

    def __init__(
        self,
        publisher,
        target_path: str,
        transformer: Optional[Transformer] = None,
    ):
        self.publisher = publisher
        self.target_path = target_path
        self.transformer = transformer or transform

    async def run(
        self,
        chunks: AsyncIterable[bytes],
        barrier: PublishBarrier,
    ) -> PipelineResult:
        """
        스트림을 끝까지 처리

        Args:
            chunks: XML 바이트 청크 스트림
            barrier: 이번 반복의 전송 배리어

        Returns:
            PipelineResult

        Raises:
            TransportError: 소스 스트림 실패 (이미 등록된 Future는 배리어에 남음)
            ParseError: 마크업 오류
        """
        matcher = PathMatcher(self.target_path)
        decode_failures = 0

        async with aclosing(matcher.matches(chunks)) as matches:
            async for node in matches:
                if not await self._handle(node, barrier):
                    decode_failures += 1

        logger.info(f"Found {matcher.match_count} VehicleActivities in XML!")

        return PipelineResult(
            match_count=matcher.match_count,
            decode_failures=decode_failures,
            bytes_parsed=matcher.bytes_fed,
        )

    async def _handle(self, node: MatchedNode, barrier: PublishBarrier) -> bool:
        try:
            record = self.transformer(node.markup, source_index=node.index)
        except RecordDecodeError as e:
            logger.warning(f"Dropping VehicleActivity #{node.index}: {e}")
            barrier.add_failure(e)
            return False

        barrier.add(await self.publisher.publish(record))
        return True
