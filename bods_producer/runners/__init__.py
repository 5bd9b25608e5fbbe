"""
Runners - process entry points
==============================

- producer_runner: BODS SIRI-VM → Kafka 프로듀서 실행기
"""
