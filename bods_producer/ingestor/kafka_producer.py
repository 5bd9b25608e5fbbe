"""
Kafka Producer for VehicleActivity Records
==========================================

VehicleActivity 레코드를 Kafka로 하나씩 전송하는 비동기 프로듀서
- aiokafka 기반 비동기 전송
- publish()는 배치 버퍼에 적재 후 즉시 Future 반환 (브로커 ACK를 기다리지 않음)
- 값 직렬화: JSON (기본) 또는 msgpack
"""

import asyncio
import json
import time
import logging
from typing import Any, Optional
from dataclasses import dataclass, field

import msgpack
from aiokafka import AIOKafkaProducer
from aiokafka.errors import KafkaError, KafkaConnectionError

from bods_producer.common.errors import PublishError
from bods_producer.common.kafka_config import (
    KafkaConfig,
    ProducerConfig,
    get_config,
)
from bods_producer.parser.transformer import VehicleActivityRecord

logger = logging.getLogger(__name__)


@dataclass
class ProducerStats:
    """프로듀서 통계"""
    messages_sent: int = 0
    messages_failed: int = 0
    bytes_sent: int = 0
    start_time: float = field(default_factory=time.time)

    @property
    def messages_per_second(self) -> float:
        elapsed = time.time() - self.start_time
        return self.messages_sent / elapsed if elapsed > 0 else 0

    @property
    def success_rate(self) -> float:
        total = self.messages_sent + self.messages_failed
        return self.messages_sent / total if total > 0 else 0

    def __str__(self) -> str:
        return (
            f"ProducerStats(sent={self.messages_sent:,}, "
            f"failed={self.messages_failed:,}, "
            f"bytes={self.bytes_sent:,}, "
            f"rate={self.messages_per_second:.1f}/s, "
            f"success={self.success_rate:.1%})"
        )


class KafkaVehicleProducer:
    """
    VehicleActivity 레코드를 Kafka 토픽으로 전송하는 프로듀서

    특징:
    - 비동기 전송 (aiokafka)
    - 레코드당 메시지 1개, 고정 토픽
    - 개별 전송 실패는 해당 Future에만 반영
    """

    def __init__(
        self,
        bootstrap_servers: Optional[str] = None,
        topic: Optional[str] = None,
        kafka_config: Optional[KafkaConfig] = None,
        producer_config: Optional[ProducerConfig] = None,
    ):
        """
        Args:
            bootstrap_servers: Kafka 브로커 주소 (예: "localhost:9092,localhost:9093")
            topic: 전송 대상 토픽
            kafka_config: 연결 설정 (없으면 기본값 사용)
            producer_config: Producer 설정 (없으면 기본값 사용)
        """
        config = get_config()

        self.kafka_config = kafka_config or config.kafka
        self.bootstrap_servers = bootstrap_servers or self.kafka_config.bootstrap_servers
        self.producer_config = producer_config or config.producer
        self.topic = topic or config.topics.vehicles

        self._producer: Optional[AIOKafkaProducer] = None
        self._started = False
        self.stats = ProducerStats()

        logger.info(
            f"KafkaVehicleProducer initialized: {self.bootstrap_servers} -> {self.topic}"
        )

    @property
    def started(self) -> bool:
        return self._started

    async def start(self) -> None:
        """프로듀서 시작 (브로커 연결)"""
        if self._started:
            logger.warning("Producer already started")
            return

        try:
            self._producer = AIOKafkaProducer(
                bootstrap_servers=self.bootstrap_servers,
                client_id=self.kafka_config.client_id,
                # 직렬화 (값은 publish()에서 직접 직렬화)
                key_serializer=lambda k: k.encode('utf-8') if k else None,
                # 배치 설정
                linger_ms=self.producer_config.linger_ms,
                max_batch_size=self.producer_config.batch_size,
                # 압축
                compression_type=self.producer_config.compression_type,
                # 신뢰성
                acks=self._acks(),
                # 타임아웃
                request_timeout_ms=self.producer_config.request_timeout_ms,
            )

            await self._producer.start()
            self._started = True
            self.stats = ProducerStats()

            logger.info("Kafka producer started successfully")

        except KafkaConnectionError as e:
            logger.error(f"Failed to connect to Kafka: {e}")
            await self._discard()
            raise
        except Exception as e:
            logger.error(f"Failed to start producer: {e}")
            await self._discard()
            raise

    async def _discard(self) -> None:
        """시작에 실패한 클라이언트 정리"""
        producer, self._producer = self._producer, None
        if producer is None:
            return
        try:
            await producer.stop()
        except KafkaError as e:
            logger.warning(f"Error closing half-started producer: {e}")

    async def stop(self) -> None:
        """프로듀서 중지"""
        if self._producer and self._started:
            try:
                # 버퍼에 남은 메시지 전송
                await self._producer.flush()
                await self._producer.stop()
                logger.info(f"Kafka producer stopped. {self.stats}")
            except KafkaError as e:
                logger.error(f"Error stopping producer: {e}")
            finally:
                self._started = False

    async def __aenter__(self) -> "KafkaVehicleProducer":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()

    def _acks(self):
        acks = self.producer_config.acks
        return acks if acks == "all" else int(acks)

    def _serialize(self, value: Any) -> bytes:
        """설정된 포맷으로 직렬화"""
        if self.producer_config.value_format == "msgpack":
            return msgpack.packb(value, use_bin_type=True)
        return json.dumps(value, ensure_ascii=False, separators=(",", ":")).encode("utf-8")

    async def publish(self, record: VehicleActivityRecord) -> asyncio.Future:
        """
        레코드 하나를 토픽에 전송 요청

        배치 버퍼에 적재되면 바로 반환한다 (버퍼가 가득 차면 여기서 대기).

        Args:
            record: 전송할 VehicleActivity 레코드

        Returns:
            전송 결과 Future (RecordMetadata 또는 PublishError)
        """
        loop = asyncio.get_running_loop()

        if not self._started or not self._producer:
            raise RuntimeError("Producer not started. Call start() first.")

        value = self._serialize(record.payload)

        try:
            delivery = await self._producer.send(
                self.topic,
                value=value,
                key=record.message_key,
            )
        except KafkaError as e:
            self.stats.messages_failed += 1
            logger.warning(f"Kafka rejected record {record.message_key or '-'}: {e}")
            failed = loop.create_future()
            failed.set_exception(PublishError(str(e), topic=self.topic))
            return failed

        return asyncio.ensure_future(self._confirm(delivery, record, len(value)))

    async def _confirm(
        self,
        delivery: asyncio.Future,
        record: VehicleActivityRecord,
        size: int,
    ):
        """브로커 ACK 대기 및 통계 반영"""
        try:
            metadata = await delivery
        except KafkaError as e:
            self.stats.messages_failed += 1
            logger.warning(
                f"Kafka error sending {record.message_key or '-'} to {self.topic}: {e}"
            )
            raise PublishError(str(e), topic=self.topic) from e

        self.stats.messages_sent += 1
        self.stats.bytes_sent += size

        logger.debug(
            f"Sent to {self.topic}: partition={metadata.partition}, "
            f"offset={metadata.offset}"
        )
        return metadata
