"""
Publish Barrier
===============

한 반복(iteration) 동안 발행된 전송 Future를 모아 두었다가
성공/실패와 관계없이 모두 정리될 때까지 기다리는 배리어
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BarrierOutcome:
    """배리어 대기 결과"""
    settled: int
    succeeded: int
    failed: int

    @property
    def success_rate(self) -> float:
        return self.succeeded / self.settled if self.settled > 0 else 0


class PublishBarrier:
    """반복 단위 전송 Future 모음"""

    def __init__(self):
        self._futures: list[asyncio.Future] = []

    def __len__(self) -> int:
        return len(self._futures)

    @property
    def pending(self) -> int:
        return sum(1 for future in self._futures if not future.done())

    def add(self, future: Awaitable) -> asyncio.Future:
        future = asyncio.ensure_future(future)
        self._futures.append(future)
        return future

    def add_failure(self, exc: BaseException) -> asyncio.Future:
        """이미 실패한 Future 등록 (전송 전에 실패한 레코드용)"""
        future = asyncio.get_running_loop().create_future()
        future.set_exception(exc)
        return self.add(future)

    async def wait(self) -> BarrierOutcome:
        """
        등록된 모든 Future가 끝날 때까지 대기

        개별 실패는 전파하지 않고 집계만 한다.
        """
        if not self._futures:
            return BarrierOutcome(settled=0, succeeded=0, failed=0)

        # 대기 중 추가된 Future도 포함될 때까지 반복
        while True:
            snapshot = list(self._futures)
            results = await asyncio.gather(*snapshot, return_exceptions=True)
            if len(self._futures) == len(snapshot):
                break

        failed = sum(1 for result in results if isinstance(result, BaseException))
        outcome = BarrierOutcome(
            settled=len(results),
            succeeded=len(results) - failed,
            failed=failed,
        )

        if failed:
            logger.warning(f"{failed} of {outcome.settled} publish operations failed")

        return outcome
