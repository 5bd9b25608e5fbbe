"""
Error Taxonomy
==============

프로듀서 전체에서 사용하는 예외 계층
- 시스템 에러 (Configuration, Transport, Parse): 최상위까지 전파, 프로세스 종료
- 격리 에러 (Publish, RecordDecode): 해당 레코드에만 영향
"""

from enum import Enum
from typing import Optional


class FetchErrorType(Enum):
    """피드 요청 에러 유형"""
    TIMEOUT = "timeout"
    CONNECTION_ERROR = "connection_error"
    SSL_ERROR = "ssl_error"
    HTTP_ERROR = "http_error"
    DNS_ERROR = "dns_error"
    READ_ERROR = "read_error"
    ARCHIVE_ERROR = "archive_error"
    UNKNOWN = "unknown"


class BodsProducerError(Exception):
    """모든 프로듀서 예외의 기반 클래스"""


class ConfigurationError(BodsProducerError):
    """필수 설정 누락/오류 (시작 시 치명적)"""


class TransportError(BodsProducerError):
    """피드 요청 또는 압축 해제 스트림 실패"""

    def __init__(
        self,
        message: str,
        error_type: FetchErrorType = FetchErrorType.UNKNOWN,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.error_type = error_type
        self.status_code = status_code


class ParseError(BodsProducerError):
    """XML 마크업 파싱 실패 (현재 파이프라인 실행 종료)"""


class PublishError(BodsProducerError):
    """단일 레코드의 Kafka 전송 실패"""

    def __init__(self, message: str, topic: Optional[str] = None):
        super().__init__(message)
        self.topic = topic


class RecordDecodeError(BodsProducerError):
    """매칭된 서브트리를 레코드로 변환하지 못함"""
