"""
Iteration Scheduler
===================

fetch → parse → publish 배리어 → 대기(pacing) 사이클을 반복 실행

상태 전이:
    IDLE → FETCHING → PARSING → DRAINING → PACING → IDLE | STOPPED

- 종료 요청은 IDLE 시점(다음 fetch 직전)에서만 확인
- 진행 중인 반복은 항상 끝까지 실행 (배리어 + 대기 포함)
- 반복 시작 간격은 최소 minimum_interval 초
"""

import asyncio
import threading
import time
import logging
from contextlib import aclosing
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Optional

from bods_producer.ingestor.archive import select_entry
from bods_producer.ingestor.feed_fetcher import FeedSource

from .barrier import BarrierOutcome, PublishBarrier
from .feed_pipeline import FeedPipeline, PipelineResult

logger = logging.getLogger(__name__)


class SchedulerState(Enum):
    """스케줄러 상태"""
    IDLE = "idle"
    FETCHING = "fetching"
    PARSING = "parsing"
    DRAINING = "draining"
    PACING = "pacing"
    STOPPED = "stopped"


class StopToken:
    """
    협조적 종료 플래그

    시그널 핸들러(메인 스레드)와 이벤트 루프 어디서든 안전하게 설정 가능.
    """

    def __init__(self):
        self._event = threading.Event()

    @property
    def stop_requested(self) -> bool:
        return self._event.is_set()

    def request_stop(self) -> None:
        self._event.set()


@dataclass
class IterationStats:
    """반복 한 번의 통계"""
    iteration: int
    started_at: float
    finished_at: Optional[float] = None
    match_count: int = 0
    decode_failures: int = 0
    published: int = 0
    publish_failures: int = 0
    waited_seconds: float = 0.0

    @property
    def elapsed(self) -> float:
        end = self.finished_at if self.finished_at is not None else self.started_at
        return end - self.started_at


@dataclass
class SchedulerStats:
    """스케줄러 누적 통계"""
    iterations: int = 0
    total_matches: int = 0
    total_published: int = 0
    total_failures: int = 0
    start_time: float = field(default_factory=time.time)

    def record(self, stats: IterationStats) -> None:
        self.iterations += 1
        self.total_matches += stats.match_count
        self.total_published += stats.published
        self.total_failures += stats.publish_failures

    def __str__(self) -> str:
        return (
            f"SchedulerStats(iterations={self.iterations:,}, "
            f"matches={self.total_matches:,}, "
            f"published={self.total_published:,}, "
            f"failed={self.total_failures:,})"
        )


def format_duration(seconds: float) -> str:
    """1초 미만은 ms, 이상은 s 단위로 표시"""
    if seconds < 1:
        return f"{seconds * 1000:.0f} ms"
    return f"{seconds:.3f} s"


class IterationScheduler:
    """
    메인 루프 실행기

    fetcher는 open_stream() async 컨텍스트 매니저를 제공하는 객체
    (예: FeedFetcher), publisher는 publish(record) 코루틴을 가진 객체.
    """

    def __init__(
        self,
        fetcher,
        publisher,
        stop_token: StopToken,
        target_path: str,
        source: FeedSource = FeedSource.BULK,
        archive_entry: str = "siri.xml",
        minimum_interval: float = 26.0,
        skip_wait_on_stop: bool = False,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable] = asyncio.sleep,
    ):
        """
        Args:
            fetcher: 피드 스트림 제공자
            publisher: 레코드 전송자
            stop_token: 종료 요청 플래그
            target_path: VehicleActivity 매칭 경로
            source: BULK (아카이브) 또는 FILTERED (단일 문서)
            archive_entry: BULK 모드에서 파싱할 엔트리 경로
            minimum_interval: 반복 시작 간 최소 간격 (초)
            skip_wait_on_stop: 반복 중 종료 요청 시 대기 생략
            clock: 단조 시계 (테스트용 주입)
            sleep: 대기 함수 (테스트용 주입)
        """
        self.fetcher = fetcher
        self.publisher = publisher
        self.stop_token = stop_token
        self.source = source
        self.archive_entry = archive_entry
        self.minimum_interval = minimum_interval
        self.skip_wait_on_stop = skip_wait_on_stop

        self.pipeline = FeedPipeline(publisher, target_path)

        self._clock = clock
        self._sleep = sleep
        self._iteration = 0

        self.state = SchedulerState.IDLE
        self.barrier: Optional[PublishBarrier] = None
        self.stats = SchedulerStats()

    def _set_state(self, state: SchedulerState) -> None:
        logger.debug(f"State {self.state.value} -> {state.value}")
        self.state = state

    async def run(self) -> SchedulerStats:
        """
        종료 요청이 들어올 때까지 반복 실행

        Returns:
            누적 통계
        """
        logger.info("Starting...")

        while not self.stop_token.stop_requested:
            await self.run_iteration()

        self._set_state(SchedulerState.STOPPED)
        logger.info(f"Loop ended. {self.stats}")
        return self.stats

    async def run_iteration(self) -> IterationStats:
        """
        반복 한 번 실행

        Raises:
            TransportError, ParseError: 배리어 정리 후 그대로 전파
        """
        self._iteration += 1
        self.barrier = PublishBarrier()
        stats = IterationStats(iteration=self._iteration, started_at=self._clock())

        logger.info(f"Iteration #{stats.iteration} starting...")

        try:
            result = await self._fetch_and_parse(self.barrier)
        except Exception:
            # 이미 발행된 전송은 정리한 뒤 전파
            outcome = await self.barrier.wait()
            logger.error(
                f"Iteration #{stats.iteration} failed after {outcome.settled} "
                f"settled publish operations"
            )
            self._set_state(SchedulerState.IDLE)
            raise

        stats.match_count = result.match_count
        stats.decode_failures = result.decode_failures

        self._set_state(SchedulerState.DRAINING)
        outcome = await self.barrier.wait()
        self._record_outcome(stats, outcome)

        stats.finished_at = self._clock()
        logger.info(f"Iteration #{stats.iteration} took {format_duration(stats.elapsed)}")

        self._set_state(SchedulerState.PACING)
        stats.waited_seconds = await self._pace(stats)

        self.stats.record(stats)
        self._set_state(SchedulerState.IDLE)
        logger.info(f"Iteration #{stats.iteration} completed")
        return stats

    async def _fetch_and_parse(self, barrier: PublishBarrier) -> PipelineResult:
        self._set_state(SchedulerState.FETCHING)

        async with self.fetcher.open_stream() as body:
            self._set_state(SchedulerState.PARSING)

            if self.source is not FeedSource.BULK:
                return await self.pipeline.run(body, barrier)

            async with aclosing(select_entry(body, self.archive_entry)) as chunks:
                return await self.pipeline.run(chunks, barrier)

    def _record_outcome(self, stats: IterationStats, outcome: BarrierOutcome) -> None:
        stats.published = outcome.succeeded
        stats.publish_failures = outcome.failed - stats.decode_failures
        logger.info(f"Exited with {outcome.settled} concluded publish operations")

    async def _pace(self, stats: IterationStats) -> float:
        """최소 간격까지 남은 시간만큼 대기"""
        if self.skip_wait_on_stop and self.stop_token.stop_requested:
            logger.info("Stop requested, skipping wait")
            return 0.0

        remaining = self.minimum_interval - stats.elapsed
        if remaining <= 0:
            return 0.0

        logger.info(f"Waiting {format_duration(remaining)}...")
        await self._sleep(remaining)
        return remaining
