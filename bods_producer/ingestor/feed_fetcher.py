"""
BODS Feed Fetcher - httpx Async Streaming Client
================================================

BODS SIRI-VM 피드를 스트리밍으로 가져오는 HTTP 클라이언트
- httpx AsyncClient (HTTP/2 지원)
- 응답 본문을 청크 단위로 전달 (전체 버퍼링 없음)
- Bulk 모드: 압축 아카이브 / Filtered 모드: 운영사 필터 XML 문서
"""

import time
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncIterator, Optional

import httpx

from bods_producer.common.errors import FetchErrorType, TransportError
from bods_producer.common.kafka_config import BodsConfig, get_config

logger = logging.getLogger(__name__)


BULK_ARCHIVE_PATH = "/avl/download/bulk_archive"
DATAFEED_PATH = "/api/v1/datafeed"


class FeedSource(Enum):
    """피드 유형"""
    BULK = "bulk"
    FILTERED = "filtered"


@dataclass
class FetchStats:
    """Fetcher 통계"""
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    total_bytes: int = 0
    total_fetch_time_ms: float = 0.0
    start_time: float = field(default_factory=time.time)

    # 에러 유형별 카운트
    errors_by_type: dict = field(default_factory=dict)

    @property
    def success_rate(self) -> float:
        return self.successful_requests / self.total_requests if self.total_requests > 0 else 0

    @property
    def average_fetch_time_ms(self) -> float:
        return self.total_fetch_time_ms / self.successful_requests if self.successful_requests > 0 else 0

    def record_success(self, fetch_time_ms: float, body_bytes: int):
        self.total_requests += 1
        self.successful_requests += 1
        self.total_fetch_time_ms += fetch_time_ms
        self.total_bytes += body_bytes

    def record_failure(self, error_type: FetchErrorType):
        self.total_requests += 1
        self.failed_requests += 1
        self.errors_by_type[error_type.value] = self.errors_by_type.get(error_type.value, 0) + 1

    def __str__(self) -> str:
        return (
            f"FetchStats("
            f"total={self.total_requests:,}, "
            f"success={self.successful_requests:,}, "
            f"failed={self.failed_requests:,}, "
            f"bytes={self.total_bytes:,}, "
            f"avg_time={self.average_fetch_time_ms:.0f}ms)"
        )


def classify_error(exc: Exception) -> FetchErrorType:
    """httpx 예외를 FetchErrorType으로 분류"""
    if isinstance(exc, httpx.TimeoutException):
        return FetchErrorType.TIMEOUT
    if isinstance(exc, httpx.HTTPStatusError):
        return FetchErrorType.HTTP_ERROR
    if isinstance(exc, httpx.ConnectError):
        message = str(exc)
        if "SSL" in message or "certificate" in message.lower():
            return FetchErrorType.SSL_ERROR
        if "DNS" in message or "getaddrinfo" in message:
            return FetchErrorType.DNS_ERROR
        return FetchErrorType.CONNECTION_ERROR
    if isinstance(exc, (httpx.ReadError, httpx.RemoteProtocolError)):
        return FetchErrorType.READ_ERROR
    return FetchErrorType.UNKNOWN


class FeedFetcher:
    """
    BODS 피드 스트리밍 Fetcher

    특징:
    - 장기 유지되는 httpx AsyncClient 하나를 반복 사용
    - 요청 경로/쿼리는 설정에서 한 번 결정
    - httpx 예외는 TransportError로 변환
    """

    def __init__(
        self,
        config: Optional[BodsConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        use_http2: bool = True,
    ):
        """
        Args:
            config: BODS 설정 (없으면 환경변수 기본값 사용)
            transport: httpx 트랜스포트 (테스트용 MockTransport 등)
            use_http2: HTTP/2 사용 여부
        """
        self.config = config or get_config().bods
        self.source = FeedSource.BULK if self.config.use_bulk_archive else FeedSource.FILTERED

        self._transport = transport
        self._use_http2 = use_http2 and transport is None
        self._client: Optional[httpx.AsyncClient] = None

        self.stats = FetchStats()

        logger.info(
            f"FeedFetcher initialized: host={self.config.host}, "
            f"source={self.source.value}, "
            f"operators={','.join(self.config.operators) or '-'}"
        )

    @property
    def request_path(self) -> str:
        return BULK_ARCHIVE_PATH if self.source is FeedSource.BULK else DATAFEED_PATH

    @property
    def request_params(self) -> dict:
        if self.source is FeedSource.BULK:
            return {"api_key": self.config.api_key} if self.config.api_key else {}
        return {
            "operatorRef": ",".join(self.config.operators),
            "api_key": self.config.api_key,
        }

    async def start(self) -> None:
        """Fetcher 시작"""
        if self._client is not None:
            logger.warning("Fetcher already started")
            return

        self._client = httpx.AsyncClient(
            base_url=self.config.base_url,
            timeout=httpx.Timeout(
                connect=10.0,
                read=self.config.request_timeout,
                write=10.0,
                pool=5.0,
            ),
            follow_redirects=True,
            max_redirects=5,
            http2=self._use_http2,
            transport=self._transport,
        )
        self.stats = FetchStats()
        logger.info("FeedFetcher started")

    async def stop(self) -> None:
        """Fetcher 중지"""
        if self._client:
            await self._client.aclose()
            self._client = None

        logger.info(f"FeedFetcher stopped. {self.stats}")

    async def __aenter__(self) -> "FeedFetcher":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()

    @asynccontextmanager
    async def open_stream(self) -> AsyncIterator[AsyncIterator[bytes]]:
        """
        피드 요청 후 응답 본문 청크 스트림 제공

        Usage:
            async with fetcher.open_stream() as chunks:
                async for chunk in chunks:
                    ...

        Raises:
            TransportError: 연결 실패, 2xx 이외의 응답, 본문 읽기 실패
        """
        if not self._client:
            raise RuntimeError("Fetcher not started. Call start() first.")

        start_time = time.time()
        logger.debug(f"GET {self.request_path}")

        try:
            async with self._client.stream(
                "GET", self.request_path, params=self.request_params
            ) as response:
                try:
                    response.raise_for_status()
                except httpx.HTTPStatusError as e:
                    self.stats.record_failure(FetchErrorType.HTTP_ERROR)
                    raise TransportError(
                        f"BODS responded with HTTP {response.status_code}",
                        error_type=FetchErrorType.HTTP_ERROR,
                        status_code=response.status_code,
                    ) from e

                received = 0

                async def body_chunks() -> AsyncIterator[bytes]:
                    nonlocal received
                    try:
                        async for chunk in response.aiter_bytes(self.config.chunk_size):
                            received += len(chunk)
                            yield chunk
                    except httpx.HTTPError as e:
                        error_type = classify_error(e)
                        self.stats.record_failure(error_type)
                        raise TransportError(
                            f"Failed reading feed body after {received:,} bytes: {e!r}",
                            error_type=error_type,
                        ) from e

                yield body_chunks()

                fetch_time_ms = (time.time() - start_time) * 1000
                self.stats.record_success(fetch_time_ms, received)
                logger.debug(f"Feed body received: {received:,} bytes in {fetch_time_ms:.0f}ms")

        except httpx.HTTPError as e:
            error_type = classify_error(e)
            self.stats.record_failure(error_type)
            raise TransportError(
                f"Failed to fetch {self.request_path}: {e!r}",
                error_type=error_type,
            ) from e
