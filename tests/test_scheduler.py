"""
IterationScheduler 테스트
=========================

Usage:
    pytest tests/test_scheduler.py -v
"""

import pytest

from bods_producer.common.errors import TransportError
from bods_producer.ingestor.feed_fetcher import FeedSource
from bods_producer.pipeline.scheduler import (
    IterationScheduler,
    SchedulerState,
    StopToken,
    format_duration,
)

from fakes import (
    TARGET_PATH,
    FakeClock,
    FakeFetcher,
    FakePublisher,
    make_zip,
    siri_document,
    vehicle_activity,
)


def build_scheduler(fetcher, publisher, token=None, clock=None, **kwargs):
    options = dict(
        fetcher=fetcher,
        publisher=publisher,
        stop_token=token or StopToken(),
        target_path=TARGET_PATH,
        source=FeedSource.FILTERED,
        minimum_interval=26,
    )
    if clock is not None:
        options.update(clock=clock, sleep=clock.sleep)
    options.update(kwargs)
    return IterationScheduler(**options)


def three_vehicles() -> bytes:
    return siri_document([vehicle_activity(str(n)) for n in range(3)])


class TestStopToken:
    """종료 플래그 테스트"""

    def test_request_stop(self):
        token = StopToken()
        assert not token.stop_requested

        token.request_stop()
        token.request_stop()

        assert token.stop_requested


class TestPacing:
    """반복 간격 테스트"""

    @pytest.mark.asyncio
    async def test_waits_remaining_interval(self):
        clock = FakeClock()
        fetcher = FakeFetcher([three_vehicles()], clock=clock, fetch_seconds=3)
        scheduler = build_scheduler(fetcher, FakePublisher(), clock=clock)

        stats = await scheduler.run_iteration()

        assert stats.elapsed == pytest.approx(3)
        assert clock.sleeps == [pytest.approx(23)]
        assert stats.waited_seconds == pytest.approx(23)
        assert scheduler.state is SchedulerState.IDLE

    @pytest.mark.asyncio
    async def test_no_wait_when_iteration_is_slow(self):
        clock = FakeClock()
        fetcher = FakeFetcher([three_vehicles()], clock=clock, fetch_seconds=30)
        scheduler = build_scheduler(fetcher, FakePublisher(), clock=clock)

        stats = await scheduler.run_iteration()

        assert clock.sleeps == []
        assert stats.waited_seconds == 0

    @pytest.mark.asyncio
    async def test_exact_interval_means_no_wait(self):
        clock = FakeClock()
        fetcher = FakeFetcher([three_vehicles()], clock=clock, fetch_seconds=26)
        scheduler = build_scheduler(fetcher, FakePublisher(), clock=clock)

        await scheduler.run_iteration()

        assert clock.sleeps == []

    def test_format_duration(self):
        assert format_duration(0.25) == "250 ms"
        assert format_duration(2.5) == "2.500 s"


class TestPublishBarrierOrdering:
    """반복 경계 테스트"""

    @pytest.mark.asyncio
    async def test_next_fetch_waits_for_previous_publishes(self):
        token = StopToken()
        publisher = FakePublisher(delay=0.05)

        def on_open(index):
            if index == 1:
                token.request_stop()

        fetcher = FakeFetcher([three_vehicles()], on_open=on_open)
        scheduler = build_scheduler(fetcher, publisher, token=token, minimum_interval=0)

        stats = await scheduler.run()

        assert fetcher.open_count == 2
        assert len(publisher.settled_at) == 6
        assert fetcher.opened_at[1] >= max(publisher.settled_at[:3])
        assert stats.iterations == 2
        assert stats.total_published == 6

    @pytest.mark.asyncio
    async def test_states_during_iteration(self):
        seen = []
        holder = {}

        def on_chunk(index, number):
            seen.append(holder["scheduler"].state)

        clock = FakeClock()
        fetcher = FakeFetcher([three_vehicles()], on_chunk=on_chunk, clock=clock)
        scheduler = build_scheduler(fetcher, FakePublisher(), clock=clock)
        holder["scheduler"] = scheduler

        await scheduler.run_iteration()

        assert set(seen) == {SchedulerState.PARSING}
        assert scheduler.state is SchedulerState.IDLE


class TestStopRequests:
    """종료 요청 테스트"""

    @pytest.mark.asyncio
    async def test_stop_before_start_prevents_fetch(self):
        token = StopToken()
        token.request_stop()
        fetcher = FakeFetcher([three_vehicles()])
        scheduler = build_scheduler(fetcher, FakePublisher(), token=token)

        stats = await scheduler.run()

        assert fetcher.open_count == 0
        assert stats.iterations == 0
        assert scheduler.state is SchedulerState.STOPPED

    @pytest.mark.asyncio
    async def test_stop_during_parsing_completes_iteration(self):
        token = StopToken()
        clock = FakeClock()
        publisher = FakePublisher(delay=0.01)

        def on_chunk(index, number):
            if number == 2:
                token.request_stop()

        fetcher = FakeFetcher([three_vehicles()], clock=clock, fetch_seconds=1, on_chunk=on_chunk)
        scheduler = build_scheduler(fetcher, publisher, token=token, clock=clock)

        stats = await scheduler.run()

        assert fetcher.open_count == 1
        assert len(publisher.settled_at) == 3
        assert clock.sleeps == [pytest.approx(25)]
        assert stats.total_published == 3
        assert scheduler.state is SchedulerState.STOPPED

    @pytest.mark.asyncio
    async def test_skip_wait_on_stop(self):
        token = StopToken()
        clock = FakeClock()

        def on_chunk(index, number):
            token.request_stop()

        fetcher = FakeFetcher([three_vehicles()], clock=clock, fetch_seconds=1, on_chunk=on_chunk)
        scheduler = build_scheduler(
            fetcher, FakePublisher(), token=token, clock=clock, skip_wait_on_stop=True
        )

        await scheduler.run()

        assert fetcher.open_count == 1
        assert clock.sleeps == []


class TestErrors:
    """에러 전파 테스트"""

    @pytest.mark.asyncio
    async def test_transport_error_propagates_after_barrier(self):
        clock = FakeClock()
        publisher = FakePublisher(delay=0.02)
        fetcher = FakeFetcher(
            [three_vehicles()],
            clock=clock,
            error=TransportError("connection reset"),
        )
        scheduler = build_scheduler(fetcher, publisher, clock=clock)

        with pytest.raises(TransportError):
            await scheduler.run()

        assert len(publisher.records) == 3
        assert len(publisher.settled_at) == 3
        assert clock.sleeps == []

    @pytest.mark.asyncio
    async def test_publish_failures_are_counted(self):
        clock = FakeClock()
        fetcher = FakeFetcher([three_vehicles()], clock=clock)
        scheduler = build_scheduler(fetcher, FakePublisher(fail_refs=("1",)), clock=clock)

        stats = await scheduler.run_iteration()

        assert stats.match_count == 3
        assert stats.published == 2
        assert stats.publish_failures == 1


class TestBulkArchive:
    """Bulk 아카이브 end-to-end 테스트"""

    @pytest.mark.asyncio
    async def test_two_entry_archive(self):
        sibling = """
        <VehicleActivityCancellation>
          <RecordedAtTime>2026-10-19T07:58:00+00:00</RecordedAtTime>
        </VehicleActivityCancellation>
        """
        siri = siri_document(
            [vehicle_activity("101", line_ref="7"), sibling, vehicle_activity("202", line_ref="8")]
        )
        archive = make_zip([
            ("manifest.txt", siri_document([vehicle_activity("999")])),
            ("siri.xml", siri),
        ])

        clock = FakeClock()
        publisher = FakePublisher()
        fetcher = FakeFetcher([archive], chunk_size=256, clock=clock)
        scheduler = build_scheduler(
            fetcher, publisher, clock=clock, source=FeedSource.BULK, archive_entry="siri.xml"
        )

        stats = await scheduler.run_iteration()

        assert stats.match_count == 2
        assert stats.published == 2
        assert len(publisher.payloads) == 2

        first, second = publisher.payloads
        assert first["MonitoredVehicleJourney"]["VehicleRef"] == 101
        assert first["MonitoredVehicleJourney"]["LineRef"] == 7
        assert second["MonitoredVehicleJourney"]["VehicleRef"] == 202
        assert second["MonitoredVehicleJourney"]["LineRef"] == 8
