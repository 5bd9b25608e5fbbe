"""
Logging Setup
=============

프로세스 시작 시 한 번 호출하는 로깅 설정
"""

import logging

LOG_FORMAT = '%(asctime)s [%(levelname)s] %(name)s: %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def setup_logging(enabled: bool, debug: bool = False) -> int:
    """
    로깅 설정

    Args:
        enabled: LOGGING 플래그 (꺼져 있으면 WARNING 이상만 출력)
        debug: 디버그 로깅 (httpx / aiokafka 포함)

    Returns:
        적용된 로그 레벨
    """
    if debug:
        level = logging.DEBUG
    elif enabled:
        level = logging.INFO
    else:
        level = logging.WARNING

    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt=DATE_FORMAT)
    logging.getLogger().setLevel(level)

    if debug:
        logging.getLogger('httpx').setLevel(logging.DEBUG)
        logging.getLogger('aiokafka').setLevel(logging.DEBUG)
    else:
        # 요청마다 찍히는 httpx INFO 로그는 생략
        logging.getLogger('httpx').setLevel(logging.WARNING)

    return level
