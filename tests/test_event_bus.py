import asyncio
from datetime import timedelta

import pytest

from sleepguard.services.bio_models import CuePlayed, DetectedDistress, Recovered, Trigger
from sleepguard.services.bio_stream import BioStreamClosed, QueueBioStream
from sleepguard.services.event_bus import ProtocolEventBus

from conftest import BASE_TIME, make_sample


async def test_every_subscriber_sees_events_in_order():
    bus = ProtocolEventBus()
    first = bus.subscribe()
    second = bus.subscribe()

    bus.publish(DetectedDistress(at=BASE_TIME, trigger=Trigger.HRV_DROP, severity=0.5))
    bus.publish(CuePlayed(at=BASE_TIME))

    for sub in (first, second):
        assert [e.type for e in sub.drain()] == ["detected_distress", "cue_played"]


async def test_late_subscriber_misses_earlier_events():
    bus = ProtocolEventBus()
    bus.publish(CuePlayed(at=BASE_TIME))

    late = bus.subscribe()

    assert late.drain() == []


async def test_get_times_out():
    bus = ProtocolEventBus()
    sub = bus.subscribe()

    with pytest.raises(asyncio.TimeoutError):
        await sub.get(timeout=0.01)


async def test_closed_subscription_stops_iteration():
    bus = ProtocolEventBus()
    sub = bus.subscribe()
    bus.publish(CuePlayed(at=BASE_TIME))

    sub.close()
    received = [event async for event in sub]

    assert [e.type for e in received] == ["cue_played"]
    assert bus.subscriber_count == 0
    assert await sub.get() is None


async def test_close_all():
    bus = ProtocolEventBus()
    subs = [bus.subscribe() for _ in range(3)]

    bus.close_all()

    assert bus.subscriber_count == 0
    assert all(s.is_closed for s in subs)


def test_event_payloads():
    distress = DetectedDistress(at=BASE_TIME, trigger=Trigger.HR_SPIKE, severity=0.714285)
    recovered = Recovered(at=BASE_TIME, stabilized_for=timedelta(minutes=5))

    assert distress.to_dict() == {
        "type": "detected_distress",
        "at": BASE_TIME.isoformat(),
        "trigger": "hr_spike",
        "severity": 0.7143,
    }
    assert recovered.to_dict()["stabilized_for_seconds"] == 300.0
    assert CuePlayed(at=BASE_TIME).to_dict() == {"type": "cue_played", "at": BASE_TIME.isoformat()}


# Sample channel


async def test_queue_stream_yields_in_arrival_order():
    stream = QueueBioStream()
    stream.push(make_sample(2))
    stream.push(make_sample(1))
    stream.close()

    received = [s async for s in stream.samples()]

    assert [s.at for s in received] == [BASE_TIME + timedelta(seconds=2), BASE_TIME + timedelta(seconds=1)]


async def test_push_after_close_raises():
    stream = QueueBioStream()
    stream.close()

    with pytest.raises(BioStreamClosed):
        stream.push(make_sample(0))


async def test_failed_stream_raises_after_pending_samples():
    stream = QueueBioStream()
    stream.push(make_sample(0))
    stream.fail(ConnectionError("sensor lost"))

    received = []
    with pytest.raises(ConnectionError):
        async for sample in stream.samples():
            received.append(sample)

    assert len(received) == 1
    assert stream.is_closed


async def test_slow_subscriber_drops_oldest_events():
    bus = ProtocolEventBus()
    sub = bus.subscribe(max_pending=3)

    for i in range(5):
        bus.publish(CuePlayed(at=BASE_TIME + timedelta(seconds=i)))

    received = sub.drain()
    assert [e.at for e in received] == [BASE_TIME + timedelta(seconds=i) for i in (2, 3, 4)]
    assert sub.dropped == 2


async def test_full_subscription_still_closes_cleanly():
    bus = ProtocolEventBus()
    sub = bus.subscribe(max_pending=2)
    for i in range(4):
        bus.publish(CuePlayed(at=BASE_TIME + timedelta(seconds=i)))

    sub.close()

    assert len([e async for e in sub]) == 2
