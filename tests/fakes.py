"""
테스트용 SIRI-VM 샘플 문서 / 아카이브 / 가짜 협력 객체
"""

import asyncio
import io
import time
import zipfile
from contextlib import asynccontextmanager
from typing import Callable, Optional

from bods_producer.common.errors import PublishError

SIRI_NS = "http://www.siri.org.uk/siri"
TARGET_PATH = "//Siri/ServiceDelivery/VehicleMonitoringDelivery/VehicleActivity"


def vehicle_activity(
    vehicle_ref: str = "0123",
    line_ref: str = "42",
    operator_ref: str = "SCMN",
    latitude: float = 53.8008,
    longitude: float = -1.5491,
) -> str:
    return f"""
      <VehicleActivity>
        <RecordedAtTime>2026-10-19T07:59:41+00:00</RecordedAtTime>
        <ItemIdentifier>item-{vehicle_ref}</ItemIdentifier>
        <ValidUntilTime>2026-10-19T08:04:41+00:00</ValidUntilTime>
        <MonitoredVehicleJourney>
          <LineRef>{line_ref}</LineRef>
          <DirectionRef>outbound</DirectionRef>
          <OperatorRef>{operator_ref}</OperatorRef>
          <VehicleLocation>
            <Longitude>{longitude}</Longitude>
            <Latitude>{latitude}</Latitude>
          </VehicleLocation>
          <Bearing>90.0</Bearing>
          <VehicleRef>{vehicle_ref}</VehicleRef>
        </MonitoredVehicleJourney>
      </VehicleActivity>"""


def siri_document(activities: list[str], extra: str = "", namespace: bool = True) -> bytes:
    xmlns = f' xmlns="{SIRI_NS}"' if namespace else ""
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<Siri{xmlns} version="2.0">
  <ServiceDelivery>
    <ResponseTimestamp>2026-10-19T08:00:00+00:00</ResponseTimestamp>
    <ProducerRef>DepartmentForTransport</ProducerRef>
    <VehicleMonitoringDelivery>
      <ResponseTimestamp>2026-10-19T08:00:00+00:00</ResponseTimestamp>
      {''.join(activities)}
    </VehicleMonitoringDelivery>
    {extra}
  </ServiceDelivery>
</Siri>
""".encode("utf-8")


def make_zip(entries: list[tuple[str, bytes]]) -> bytes:
    """(경로, 내용) 리스트로 ZIP 생성 (경로가 '/'로 끝나면 디렉터리)"""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for path, content in entries:
            if path.endswith("/"):
                archive.writestr(zipfile.ZipInfo(path), b"")
            else:
                archive.writestr(path, content, compress_type=zipfile.ZIP_DEFLATED)
    return buffer.getvalue()


async def chunked(data: bytes, size: int = 64):
    for offset in range(0, len(data), size):
        yield data[offset:offset + size]
        await asyncio.sleep(0)


async def collect(async_iterable) -> list:
    return [item async for item in async_iterable]


class FakeClock:
    """수동으로 진행하는 단조 시계 + 대기 기록"""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakePublisher:
    """지연 후 정리되는 Future를 돌려주는 가짜 프로듀서"""

    def __init__(self, delay: float = 0.0, fail_refs: tuple = ()):
        self.delay = delay
        self.fail_refs = set(fail_refs)
        self.records = []
        self.settled_at: list[float] = []

    @property
    def payloads(self) -> list[dict]:
        return [record.payload for record in self.records]

    async def publish(self, record):
        self.records.append(record)
        loop = asyncio.get_running_loop()
        future = loop.create_future()

        def settle():
            self.settled_at.append(time.monotonic())
            if record.vehicle_ref in self.fail_refs:
                future.set_exception(PublishError("broker unavailable", topic="test"))
            else:
                future.set_result(record.source_index)

        loop.call_later(self.delay, settle)
        return future


class FakeFetcher:
    """반복마다 준비된 본문을 청크로 돌려주는 가짜 fetcher"""

    def __init__(
        self,
        bodies: list[bytes],
        chunk_size: int = 64,
        clock: Optional[FakeClock] = None,
        fetch_seconds: float = 0.0,
        on_open: Optional[Callable[[int], None]] = None,
        on_chunk: Optional[Callable[[int, int], None]] = None,
        error: Optional[Exception] = None,
    ):
        self.bodies = bodies
        self.chunk_size = chunk_size
        self.clock = clock
        self.fetch_seconds = fetch_seconds
        self.on_open = on_open
        self.on_chunk = on_chunk
        self.error = error
        self.opened_at: list[float] = []

    @property
    def open_count(self) -> int:
        return len(self.opened_at)

    @asynccontextmanager
    async def open_stream(self):
        index = len(self.opened_at)
        self.opened_at.append(time.monotonic())
        if self.on_open:
            self.on_open(index)
        if self.clock:
            self.clock.advance(self.fetch_seconds)

        body = self.bodies[min(index, len(self.bodies) - 1)]

        async def chunks():
            for number, offset in enumerate(range(0, len(body), self.chunk_size)):
                if self.on_chunk:
                    self.on_chunk(index, number)
                yield body[offset:offset + self.chunk_size]
                await asyncio.sleep(0)
            if self.error is not None:
                raise self.error

        yield chunks()
