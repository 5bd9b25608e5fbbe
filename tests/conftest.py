import pytest

from bods_producer.common.kafka_config import reset_config

ENV_VARS = [
    "BODS_HOST",
    "BODS_APIKEY",
    "BODS_OPERATORS",
    "BODS_ARCHIVE_ENTRY",
    "BODS_TIMEOUT",
    "BODS_CHUNK_SIZE",
    "KAFKA_CLIENTID",
    "KAFKA_BROKERS",
    "KAFKA_TOPIC",
    "KAFKA_VALUE_FORMAT",
    "KAFKA_PRODUCER_COMPRESSION",
    "KAFKA_PRODUCER_ACKS",
    "KAFKA_PRODUCER_LINGER_MS",
    "LOGGING",
    "MINIMUM_SECONDS_BETWEEN_CALLS",
    "SKIP_WAIT_ON_STOP",
]


@pytest.fixture(autouse=True)
def clean_config(monkeypatch):
    """테스트마다 환경변수/설정 싱글턴 초기화"""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    reset_config()
    yield
    reset_config()
