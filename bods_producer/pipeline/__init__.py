"""
Pipeline Module - Streaming extraction and publish loop
=======================================================

Components:
- barrier: 반복 단위 전송 Future 배리어
- feed_pipeline: 스트림 → 매처 → 변환 → 전송
- scheduler: fetch/parse/publish/pacing 반복 실행기
"""

from .barrier import BarrierOutcome, PublishBarrier
from .feed_pipeline import FeedPipeline, PipelineResult
from .scheduler import (
    IterationScheduler,
    IterationStats,
    SchedulerState,
    SchedulerStats,
    StopToken,
)

__all__ = [
    "BarrierOutcome",
    "PublishBarrier",
    "FeedPipeline",
    "PipelineResult",
    "IterationScheduler",
    "IterationStats",
    "SchedulerState",
    "SchedulerStats",
    "StopToken",
]
