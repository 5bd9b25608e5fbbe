"""
Ingestor Module - Feed retrieval and publishing
===============================================

Components:
- feed_fetcher: httpx 기반 BODS 피드 스트리밍 클라이언트
- archive: stream-unzip 기반 Bulk 아카이브 디멀티플렉서
- kafka_producer: aiokafka 기반 VehicleActivity 프로듀서
"""

from .archive import ArchiveEntry, EntryKind, iter_archive_entries, select_entry
from .feed_fetcher import FeedFetcher, FeedSource, FetchStats
from .kafka_producer import KafkaVehicleProducer, ProducerStats

__all__ = [
    "ArchiveEntry",
    "EntryKind",
    "iter_archive_entries",
    "select_entry",
    "FeedFetcher",
    "FeedSource",
    "FetchStats",
    "KafkaVehicleProducer",
    "ProducerStats",
]
