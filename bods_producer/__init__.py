"""
BODS SIRI-VM Kafka Producer
===========================

Bus Open Data Service(BODS) SIRI-VM 피드를 주기적으로 가져와
VehicleActivity를 하나씩 Kafka 토픽으로 전송하는 스트리밍 프로듀서

Layers:
- common: 설정, 에러, 로깅
- ingestor: 피드 요청, 아카이브 해제, Kafka 전송
- parser: 증분 경로 매칭, 레코드 변환
- pipeline: 전송 배리어, 피드 파이프라인, 반복 스케줄러
"""

__version__ = "1.0.0"
