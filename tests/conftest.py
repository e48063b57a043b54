import asyncio
from datetime import datetime, timedelta, timezone
from typing import List

import pytest
import pytest_asyncio

from sleepguard.services.bio_models import AuditEvent, BioSample, SleepStage
from sleepguard.services.bio_stream import QueueBioStream
from sleepguard.services.night_terror_config import NightTerrorConfig
from sleepguard.services.night_terror_protocol import NightTerrorProtocol

BASE_TIME = datetime(2025, 1, 1, 2, 0, 0, tzinfo=timezone.utc)

TEST_CONFIG = NightTerrorConfig(
    sliding_window=timedelta(minutes=5),
    cooldown_period=timedelta(minutes=10),
    recovery_window=timedelta(minutes=2),
    min_samples_for_baseline=3,
)


class FakeClock:
    def __init__(self, start: datetime = BASE_TIME):
        self._now = start

    def now(self) -> datetime:
        return self._now

    def advance(self, **kwargs) -> None:
        self._now += timedelta(**kwargs)


class FakeAudio:
    """Records calls; can be told to fail or hang. A hung cue ends when stop() is called."""

    def __init__(self, delay: float = 0.01, stop_delay: float = 0.0):
        self.call_log: List[str] = []
        self.delay = delay
        self.stop_delay = stop_delay
        self._fail_next = False
        self._hang = False
        self._released = asyncio.Event()

    def simulate_playback_failure(self) -> None:
        self._fail_next = True

    def simulate_hang(self) -> None:
        self._hang = True

    async def play_low_volume_cue(self) -> None:
        self.call_log.append("play_low_volume_cue")
        if self._fail_next:
            self._fail_next = False
            raise RuntimeError("Audio playback failed")
        if self._hang:
            await self._released.wait()
            return
        await asyncio.sleep(self.delay)

    async def stop(self) -> None:
        self.call_log.append("stop")
        self._released.set()
        if self.stop_delay:
            await asyncio.sleep(self.stop_delay)

    @property
    def play_call_count(self) -> int:
        return self.call_log.count("play_low_volume_cue")


def make_sample(
    seconds: float = 0,
    hr: int = 70,
    hrv: float = 50.0,
    motion: float = 0.1,
    stage: SleepStage = SleepStage.NREM,
) -> BioSample:
    return BioSample(
        at=BASE_TIME + timedelta(seconds=seconds),
        heart_rate=hr,
        hrv=hrv,
        motion=motion,
        stage=stage,
    )


def baseline_samples(count: int = 5, **kwargs) -> List[BioSample]:
    """One sample per second starting at t=0."""
    return [make_sample(seconds=i, **kwargs) for i in range(count)]


def audit_of_type(log: List[AuditEvent], type_: str) -> List[AuditEvent]:
    return [e for e in log if e.type.value == type_]


async def feed(protocol: NightTerrorProtocol, samples) -> None:
    for sample in samples:
        await protocol.process_sample(sample)


async def wait_until(predicate, timeout: float = 1.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


@pytest.fixture
def audit_log() -> List[AuditEvent]:
    return []


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def audio() -> FakeAudio:
    return FakeAudio()


@pytest.fixture
def protocol(audit_log, clock) -> NightTerrorProtocol:
    return NightTerrorProtocol(config=TEST_CONFIG, sink=audit_log.append, clock=clock)


@pytest_asyncio.fixture
async def running(protocol, audio):
    """Protocol started on an idle channel; samples are driven via process_sample()."""
    stream = QueueBioStream()
    await protocol.start(stream, audio)
    yield protocol
    await protocol.stop()
    stream.close()
