"""
Producer Configuration
======================

환경변수로 설정 가능한 BODS 피드 / Kafka / 스케줄러 설정들
"""

import os
from dataclasses import dataclass, field
from typing import Optional

from .errors import ConfigurationError


DEFAULT_MINIMUM_SECONDS_BETWEEN_CALLS = 26
VEHICLE_ACTIVITY_PATH = "//Siri/ServiceDelivery/VehicleMonitoringDelivery/VehicleActivity"


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _env_csv(name: str) -> list[str]:
    raw = os.getenv(name, "")
    return [item.strip() for item in raw.split(",") if item.strip()]


def _env_number(name: str, default: str, cast=int):
    raw = os.getenv(name, default)
    try:
        return cast(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from e


def _env_positive_int(name: str, default: int) -> int:
    # 파싱 실패나 0 이하는 기본값으로 대체
    try:
        value = int(os.getenv(name, ""))
    except ValueError:
        return default
    return value if value > 0 else default


@dataclass
class BodsConfig:
    """BODS 피드 요청 설정"""

    host: str = field(
        default_factory=lambda: os.getenv("BODS_HOST", "data.bus-data.dft.gov.uk")
    )
    api_key: Optional[str] = field(
        default_factory=lambda: os.getenv("BODS_APIKEY") or None
    )
    operators: list[str] = field(
        default_factory=lambda: _env_csv("BODS_OPERATORS")
    )

    # Bulk 아카이브 안에서 파싱할 파일
    archive_entry: str = field(
        default_factory=lambda: os.getenv("BODS_ARCHIVE_ENTRY", "siri.xml")
    )

    # HTTP
    request_timeout: float = field(
        default_factory=lambda: _env_number("BODS_TIMEOUT", "60.0", float)
    )
    chunk_size: int = field(
        default_factory=lambda: _env_number("BODS_CHUNK_SIZE", "65536")
    )

    # 매칭 대상 경로
    target_path: str = VEHICLE_ACTIVITY_PATH

    @property
    def use_bulk_archive(self) -> bool:
        return not self.operators

    @property
    def base_url(self) -> str:
        return f"https://{self.host}"


@dataclass
class KafkaConfig:
    """Kafka 연결 설정"""

    client_id: str = field(
        default_factory=lambda: os.getenv("KAFKA_CLIENTID", "bods-sirivm-producer")
    )
    brokers: list[str] = field(
        default_factory=lambda: _env_csv("KAFKA_BROKERS") or ["localhost:9092"]
    )

    @property
    def bootstrap_servers(self) -> str:
        return ",".join(self.brokers)


@dataclass
class TopicConfig:
    """Kafka 토픽 이름 설정"""

    vehicles: str = field(
        default_factory=lambda: os.getenv("KAFKA_TOPIC", "vehicles-import-sirivm")
    )


@dataclass
class ProducerConfig:
    """Kafka Producer 설정"""

    # Batching
    linger_ms: int = field(
        default_factory=lambda: _env_number("KAFKA_PRODUCER_LINGER_MS", "50")
    )
    batch_size: int = field(
        default_factory=lambda: _env_number("KAFKA_PRODUCER_BATCH_SIZE", "65536")
    )

    # Compression (None, gzip, snappy, lz4, zstd)
    compression_type: Optional[str] = field(
        default_factory=lambda: os.getenv("KAFKA_PRODUCER_COMPRESSION", "gzip") or None
    )

    # Reliability
    acks: str = field(
        default_factory=lambda: os.getenv("KAFKA_PRODUCER_ACKS", "1")
    )

    # Timeout
    request_timeout_ms: int = field(
        default_factory=lambda: _env_number("KAFKA_PRODUCER_TIMEOUT_MS", "30000")
    )

    # 메시지 값 직렬화 포맷 (json, msgpack)
    value_format: str = field(
        default_factory=lambda: os.getenv("KAFKA_VALUE_FORMAT", "json").lower()
    )


@dataclass
class SchedulerConfig:
    """반복 실행 스케줄러 설정"""

    minimum_seconds_between_calls: int = field(
        default_factory=lambda: _env_positive_int(
            "MINIMUM_SECONDS_BETWEEN_CALLS", DEFAULT_MINIMUM_SECONDS_BETWEEN_CALLS
        )
    )
    skip_wait_on_stop: bool = field(
        default_factory=lambda: _env_flag("SKIP_WAIT_ON_STOP")
    )
    logging_enabled: bool = field(
        default_factory=lambda: _env_flag("LOGGING")
    )


@dataclass
class ProducerAppConfig:
    """전체 프로듀서 통합 설정"""

    bods: BodsConfig = field(default_factory=BodsConfig)
    kafka: KafkaConfig = field(default_factory=KafkaConfig)
    topics: TopicConfig = field(default_factory=TopicConfig)
    producer: ProducerConfig = field(default_factory=ProducerConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)

    def validate(self) -> "ProducerAppConfig":
        """
        필수 설정 검증

        Raises:
            ConfigurationError: 필수 값이 없거나 조합이 잘못된 경우
        """
        if not self.kafka.client_id:
            raise ConfigurationError("KAFKA_CLIENTID must be defined")
        if not self.kafka.brokers:
            raise ConfigurationError("KAFKA_BROKERS must be defined")
        if not self.topics.vehicles:
            raise ConfigurationError("KAFKA_TOPIC must be defined")
        if not self.bods.host:
            raise ConfigurationError("BODS_HOST must be defined")
        if not self.bods.use_bulk_archive and not self.bods.api_key:
            raise ConfigurationError(
                "To filter by operators, BODS_APIKEY must be provided"
            )
        if self.bods.chunk_size <= 0:
            raise ConfigurationError("BODS_CHUNK_SIZE must be positive")
        if self.producer.acks not in ("all", "-1", "0", "1"):
            raise ConfigurationError(
                f"KAFKA_PRODUCER_ACKS must be one of all, -1, 0, 1, "
                f"got {self.producer.acks!r}"
            )
        if self.bods.request_timeout <= 0:
            raise ConfigurationError("BODS_TIMEOUT must be a positive number of seconds")
        if self.producer.value_format not in ("json", "msgpack"):
            raise ConfigurationError(
                f"KAFKA_VALUE_FORMAT must be 'json' or 'msgpack', "
                f"got {self.producer.value_format!r}"
            )
        return self


# Singleton instance
_config: Optional[ProducerAppConfig] = None


def get_config() -> ProducerAppConfig:
    """설정 인스턴스 반환 (최초 호출 시 환경변수에서 로드)"""
    global _config
    if _config is None:
        _config = ProducerAppConfig()
    return _config


def reset_config() -> None:
    """설정 캐시 초기화 (테스트 / .env 재로딩용)"""
    global _config
    _config = None
