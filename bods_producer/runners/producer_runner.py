#!/usr/bin/env python3
"""
Producer Runner - BODS SIRI-VM → Kafka 실행기
============================================

BODS 피드를 주기적으로 가져와 VehicleActivity를 Kafka로 전송

Usage:
    # 기본 실행 (Bulk 아카이브)
    bods-producer

    # 운영사 필터 (BODS_APIKEY 필요)
    BODS_APIKEY=... bods-producer --operators SCMN,FECS

    # 한 번만 실행
    bods-producer --once

    # Kafka 연결만 테스트
    bods-producer --test-connection

환경변수:
    BODS_HOST                       피드 호스트 (기본: data.bus-data.dft.gov.uk)
    BODS_OPERATORS                  운영사 필터 (쉼표 구분)
    BODS_APIKEY                     API 키
    KAFKA_CLIENTID                  클라이언트 ID (기본: bods-sirivm-producer)
    KAFKA_BROKERS                   브로커 목록 (기본: localhost:9092)
    KAFKA_TOPIC                     토픽 (기본: vehicles-import-sirivm)
    LOGGING                         INFO 로그 활성화
    MINIMUM_SECONDS_BETWEEN_CALLS   반복 간 최소 간격 (기본: 26)
"""

import asyncio
import argparse
import logging
import signal
import sys
from typing import Optional

from aiokafka.errors import KafkaError
from dotenv import load_dotenv

from bods_producer.common.errors import (
    BodsProducerError,
    ConfigurationError,
)
from bods_producer.common.kafka_config import ProducerAppConfig, get_config, reset_config
from bods_producer.common.logging_setup import setup_logging
from bods_producer.ingestor.feed_fetcher import FeedFetcher
from bods_producer.ingestor.kafka_producer import KafkaVehicleProducer
from bods_producer.pipeline.scheduler import IterationScheduler, StopToken

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG_ERROR = 2


class ProducerRunner:
    """BODS 프로듀서 실행기"""

    def __init__(
        self,
        config: ProducerAppConfig,
        stop_token: Optional[StopToken] = None,
    ):
        self.config = config
        self.stop_token = stop_token or StopToken()

        self._fetcher: Optional[FeedFetcher] = None
        self._producer: Optional[KafkaVehicleProducer] = None
        self._previous_handlers: dict = {}

    def install_signal_handlers(self) -> None:
        """SIGINT / SIGTERM → 종료 플래그 (각 시그널 1회)"""
        for signum in (signal.SIGINT, signal.SIGTERM):
            self._previous_handlers[signum] = signal.signal(signum, self._signal_handler)

    def _signal_handler(self, signum, frame):
        """종료 시그널 처리"""
        logger.info(f"Received signal {signum}, terminating at next opportunity...")
        self.stop_token.request_stop()

        # 두 번째 시그널은 원래 핸들러로 처리
        previous = self._previous_handlers.pop(signum, None)
        if previous is not None:
            signal.signal(signum, previous)

    def _build_scheduler(self) -> IterationScheduler:
        bods = self.config.bods
        return IterationScheduler(
            fetcher=self._fetcher,
            publisher=self._producer,
            stop_token=self.stop_token,
            target_path=bods.target_path,
            source=self._fetcher.source,
            archive_entry=bods.archive_entry,
            minimum_interval=self.config.scheduler.minimum_seconds_between_calls,
            skip_wait_on_stop=self.config.scheduler.skip_wait_on_stop,
        )

    async def run(self, once: bool = False) -> None:
        """
        Kafka 연결 → 반복 루프 → 연결 해제

        Args:
            once: 반복 한 번만 실행

        Raises:
            BodsProducerError: 전송/파싱 등 시스템 에러 (리소스 정리 후 전파)
        """
        logger.info("=" * 60)
        logger.info("BODS SIRI-VM producer starting")
        logger.info(f"  Host: {self.config.bods.host}")
        logger.info(f"  Kafka: {self.config.kafka.bootstrap_servers}")
        logger.info(f"  Topic: {self.config.topics.vehicles}")
        logger.info(f"  Interval: {self.config.scheduler.minimum_seconds_between_calls}s")
        logger.info("=" * 60)

        self._producer = KafkaVehicleProducer(
            kafka_config=self.config.kafka,
            producer_config=self.config.producer,
            topic=self.config.topics.vehicles,
        )
        self._fetcher = FeedFetcher(config=self.config.bods)

        try:
            logger.info("Connecting to broker(s)...")
            await self._producer.start()
            logger.info("Connected!")

            await self._fetcher.start()
            scheduler = self._build_scheduler()

            if once:
                await scheduler.run_iteration()
            else:
                await scheduler.run()

        finally:
            # 리소스 정리
            await self._fetcher.stop()
            logger.info("Disconnecting...")
            await self._producer.stop()
            logger.info(f"Producer stats: {self._producer.stats}")

    async def test_connection(self) -> bool:
        """Kafka 연결 테스트"""
        producer = KafkaVehicleProducer(
            kafka_config=self.config.kafka,
            producer_config=self.config.producer,
            topic=self.config.topics.vehicles,
        )
        try:
            await producer.start()
            await producer.stop()
            logger.info("Kafka connection test: SUCCESS")
            return True
        except Exception as e:
            logger.error(f"Kafka connection test: FAILED - {e}")
            return False


def parse_args(argv: Optional[list[str]] = None):
    """명령줄 인자 파싱"""
    parser = argparse.ArgumentParser(
        description='BODS SIRI-VM to Kafka producer',
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    # BODS 설정
    parser.add_argument(
        '--host',
        type=str,
        default=None,
        help='BODS 호스트 (BODS_HOST)',
    )
    parser.add_argument(
        '--operators',
        type=str,
        default=None,
        help='운영사 필터, 쉼표 구분 (BODS_OPERATORS)',
    )

    # Kafka 설정
    parser.add_argument(
        '--kafka-servers',
        type=str,
        default=None,
        help='Kafka 브로커 주소, 쉼표 구분 (KAFKA_BROKERS)',
    )
    parser.add_argument(
        '--topic',
        type=str,
        default=None,
        help='Kafka 토픽 (KAFKA_TOPIC)',
    )

    # 스케줄
    parser.add_argument(
        '--interval',
        type=int,
        default=None,
        help='반복 간 최소 간격 초 (MINIMUM_SECONDS_BETWEEN_CALLS)',
    )

    # 모드
    parser.add_argument(
        '--once',
        action='store_true',
        help='반복 한 번만 실행',
    )
    parser.add_argument(
        '--test-connection',
        action='store_true',
        help='Kafka 연결만 테스트',
    )

    # 로깅
    parser.add_argument(
        '--debug',
        action='store_true',
        help='디버그 로깅 활성화',
    )

    return parser.parse_args(argv)


def build_config(args) -> ProducerAppConfig:
    """환경변수 설정에 명령줄 인자 덮어쓰기 후 검증"""
    config = get_config()

    if args.host:
        config.bods.host = args.host
    if args.operators is not None:
        config.bods.operators = [op.strip() for op in args.operators.split(",") if op.strip()]
    if args.kafka_servers:
        config.kafka.brokers = [b.strip() for b in args.kafka_servers.split(",") if b.strip()]
    if args.topic:
        config.topics.vehicles = args.topic
    if args.interval is not None:
        if args.interval <= 0:
            raise ConfigurationError("--interval must be a positive number of seconds")
        config.scheduler.minimum_seconds_between_calls = args.interval

    return config.validate()


async def main(argv: Optional[list[str]] = None) -> int:
    """메인 함수"""
    load_dotenv()
    reset_config()

    args = parse_args(argv)

    try:
        config = build_config(args)
    except ConfigurationError as e:
        setup_logging(enabled=True, debug=args.debug)
        logger.error(f"Configuration error: {e}")
        return EXIT_CONFIG_ERROR

    setup_logging(enabled=config.scheduler.logging_enabled, debug=args.debug)

    runner = ProducerRunner(config)

    if args.test_connection:
        return EXIT_OK if await runner.test_connection() else EXIT_FAILURE

    runner.install_signal_handlers()

    try:
        await runner.run(once=args.once)
    except (BodsProducerError, KafkaError) as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        return EXIT_FAILURE

    logger.info("Exiting...")
    return EXIT_OK


def cli() -> None:
    """콘솔 스크립트 진입점"""
    sys.exit(asyncio.run(main()))


if __name__ == '__main__':
    cli()
