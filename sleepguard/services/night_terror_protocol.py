"""Night terror detection & intervention protocol: lifecycle and per-sample pipeline.

State diagram:

    [idle] --anomaly--> [distress] --cue--> [suppressed / cooldown]
      ^                                          |
      |                                   normalized samples
      +------ recovered <---- [recovering] <-----+

Each session is an explicit instance: config, audit sink and clock are passed
in, the sample source and audio port are bound at start(). One consumer task
drains the source; every sample (baseline -> detect -> transition -> audio ->
emit) is processed under a lock, so no two samples touch the state at once.
"""

import asyncio
import logging
import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from sleepguard.core.clock import Clock, SystemClock
from .anomaly_detector import AnomalyDetector
from .audit_log import AuditSink, emit_audit, noop_audit_sink
from .baseline import BaselineEstimator
from .bio_models import (
    AuditEvent,
    AuditEventType,
    BioSample,
    CuePlayed,
    DetectedAnomaly,
    DetectedDistress,
    ProtocolEvent,
    Recovered,
)
from .bio_stream import BioStream
from .calming_audio import CalmingAudio
from .episode_state import EpisodeAction, EpisodePhase, EpisodeStateMachine
from .event_bus import EventSubscription, ProtocolEventBus
from .night_terror_config import NightTerrorConfig

logger = logging.getLogger(__name__)


class NightTerrorProtocol:
    def __init__(
        self,
        config: Optional[NightTerrorConfig] = None,
        sink: Optional[AuditSink] = None,
        clock: Optional[Clock] = None,
    ):
        self.config = config or NightTerrorConfig()
        self._sink: AuditSink = sink or noop_audit_sink
        self._clock: Clock = clock or SystemClock()

        self._baseline = BaselineEstimator(
            sliding_window=self.config.sliding_window,
            min_samples=self.config.min_samples_for_baseline,
        )
        self._detector = AnomalyDetector(self.config)
        self._episode = EpisodeStateMachine(
            cooldown_period=self.config.cooldown_period,
            recovery_window=self.config.recovery_window,
        )
        self._bus = ProtocolEventBus()

        self._lock = asyncio.Lock()  # per-sample pipeline
        self._lifecycle = asyncio.Lock()  # start / stop / teardown
        self._consumer: Optional[asyncio.Task] = None
        self._audio: Optional[CalmingAudio] = None
        self._running = False
        self._session_id: Optional[str] = None
        self._started_at: Optional[datetime] = None
        self._last_sample_at: Optional[datetime] = None

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def session_id(self) -> Optional[str]:
        return self._session_id

    # Used by: api/night_terror.py (POST /start), tests
    async def start(self, bio_stream: BioStream, audio: CalmingAudio) -> None:
        """Bind a sample source and audio port. No-op while already running.

        Waits for a teardown in progress, so the new session never shares state
        with the one being stopped.
        """
        async with self._lifecycle:
            if self._running:
                logger.debug(f"Night terror protocol already running (session {self._session_id})")
                return

            self._baseline.reset()
            self._episode.reset()
            self._audio = audio
            self._session_id = uuid.uuid4().hex
            self._started_at = self._clock.now()
            self._running = True

            self._audit(AuditEventType.STARTED, {})
            self._consumer = asyncio.create_task(
                self._consume(bio_stream, self._session_id),
                name=f"night-terror-{self._session_id[:8]}",
            )
            logger.info(f"Night terror monitoring started (session {self._session_id})")

    # Used by: api/night_terror.py (POST /stop), main.py lifespan (shutdown), tests
    async def stop(self) -> None:
        """Release the source and audio port. Safe to call repeatedly or after the source ended.

        Returns only once the session is fully torn down, including a teardown
        the consumer started on its own when the source ended.
        """
        async with self._lifecycle:
            if not self._running:
                return
            await self._teardown(reason="requested")

    # Used by: api/night_terror.py (GET /events/stream), tests
    def events(self) -> EventSubscription:
        """Live protocol events, registered immediately. Call close() when done."""
        return self._bus.subscribe()

    # Used by: tests (wait for the source to end and the session to tear down)
    async def join(self) -> None:
        consumer = self._consumer
        if consumer is not None:
            await asyncio.gather(consumer, return_exceptions=True)

    # Used by: main.py lifespan (shutdown, also ends open event streams)
    async def aclose(self) -> None:
        await self.stop()
        self._bus.close_all()

    # Used by: api/night_terror.py (GET /status)
    def status(self) -> Dict[str, Any]:
        st = self._episode.state
        # cooldown runs on sample time, not wall time
        reference = self._last_sample_at or self._clock.now()
        remaining = self._episode.cooldown_remaining(reference) if st.last_cue_at else None
        return {
            "running": self._running,
            "session_id": self._session_id,
            "started_at": self._started_at.isoformat() if self._started_at else None,
            "phase": st.phase.value,
            "last_cue_at": st.last_cue_at.isoformat() if st.last_cue_at else None,
            "cooldown_remaining_seconds": remaining.total_seconds() if remaining else None,
            "recovery_streak_start": (
                st.recovery_streak_start.isoformat() if st.recovery_streak_start else None
            ),
            "last_sample_at": self._last_sample_at.isoformat() if self._last_sample_at else None,
            "baseline_samples": self._baseline.sample_count,
            "subscribers": self._bus.subscriber_count,
        }

    # Used by: self._consume(), tests (direct, deterministic driving)
    async def process_sample(self, sample: BioSample) -> None:
        if not self._running:
            logger.debug(f"Dropping sample at {sample.at}: protocol not running")
            return
        async with self._lock:
            if not self._running:
                return
            self._last_sample_at = sample.at
            await self._process_locked(sample, self._session_id)

    async def _process_locked(self, sample: BioSample, session_id: Optional[str]) -> None:
        if not sample.is_nrem:
            logger.debug(f"Ignoring {sample.stage.value} sample at {sample.at}")
            return

        # Judge the sample against the window as it was before this sample.
        baseline = self._baseline.current_baseline(at=sample.at)
        anomaly = self._detector.evaluate(sample, baseline)
        self._baseline.accept(sample)

        if baseline is None:
            logger.debug(
                f"Building baseline: {self._baseline.sample_count}/"
                f"{self.config.min_samples_for_baseline} samples"
            )
            return

        if anomaly is None:
            transition = self._episode.on_normalized(sample.at)
            if transition.action == EpisodeAction.RECOVERED:
                stabilized_for = transition.stabilized_for
                self._emit(Recovered(at=sample.at, stabilized_for=stabilized_for))
                self._audit(
                    AuditEventType.RECOVERED,
                    {"stabilized_for_seconds": int(stabilized_for.total_seconds())},
                )
                logger.info(f"Recovered after {stabilized_for} of stable readings")
            return

        transition = self._episode.on_anomaly(anomaly)
        if transition.action == EpisodeAction.SUPPRESSED:
            remaining = self._episode.cooldown_remaining(anomaly.at)
            logger.info(
                f"Ignoring {anomaly.trigger.value} at {anomaly.at} - in cooldown "
                f"({remaining} remaining)"
            )
            return

        await self._intervene(anomaly, session_id)

    async def _intervene(self, anomaly: DetectedAnomaly, session_id: Optional[str]) -> None:
        trigger = anomaly.trigger.value
        severity = round(anomaly.severity, 4)

        self._emit(DetectedDistress(at=anomaly.at, trigger=anomaly.trigger, severity=anomaly.severity))
        self._audit(AuditEventType.DISTRESS_DETECTED, {"trigger": trigger, "severity": severity})
        logger.info(f"Distress detected ({trigger}, severity {severity}) at {anomaly.at}")

        error: Optional[str] = None
        timeout = self.config.cue_timeout.total_seconds()
        try:
            await asyncio.wait_for(self._audio.play_low_volume_cue(), timeout=timeout)
        except asyncio.TimeoutError:
            error = f"cue playback timed out after {timeout:g}s"
        except Exception as e:
            error = str(e) or type(e).__name__

        if not self._running or session_id != self._session_id:
            # stopped while the cue was in flight
            logger.debug("Cue finished after session ended; result discarded")
            return

        if error is not None:
            logger.warning(f"Calming cue failed for {trigger}: {error}")
            self._audit(AuditEventType.CUE_FAILED, {"trigger": trigger, "error": error})
            return

        self._emit(CuePlayed(at=anomaly.at))
        self._audit(AuditEventType.CUE_PLAYED, {"trigger": trigger, "severity": severity})

    async def _consume(self, bio_stream: BioStream, session_id: str) -> None:
        reason = "source_closed"
        try:
            async for sample in bio_stream.samples():
                try:
                    await self.process_sample(sample)
                except Exception as e:
                    logger.error(f"Failed to process sample at {sample.at}: {e}", exc_info=True)
        except Exception as e:
            reason = "source_error"
            logger.error(f"Sample source failed: {e}", exc_info=True)
            self._audit(
                AuditEventType.SOURCE_ERROR,
                {"error": str(e) or type(e).__name__},
                session_id=session_id,
            )

        async with self._lifecycle:
            if self._running and self._session_id == session_id:
                logger.info(f"Sample source ended ({reason}), stopping monitoring")
                await self._teardown(reason=reason)

    # Caller holds self._lifecycle.
    async def _teardown(self, reason: str) -> None:
        # Detach the session before the first await; nothing below may touch
        # state that a later start() owns.
        session_id = self._session_id
        self._running = False
        self._session_id = None
        self._started_at = None
        self._last_sample_at = None
        self._baseline.reset()
        self._episode.reset()
        consumer, self._consumer = self._consumer, None
        audio, self._audio = self._audio, None

        if consumer is not None and consumer is not asyncio.current_task() and not consumer.done():
            consumer.cancel()
            await asyncio.gather(consumer, return_exceptions=True)

        if audio is not None:
            try:
                await asyncio.wait_for(audio.stop(), timeout=self.config.cue_timeout.total_seconds())
            except Exception as e:
                logger.warning(f"Failed to stop calming audio: {e}")

        self._audit(AuditEventType.STOPPED, {"reason": reason}, session_id=session_id)
        logger.info(f"Night terror monitoring stopped ({reason}, session {session_id})")

    def _emit(self, event: ProtocolEvent) -> None:
        self._bus.publish(event)

    def _audit(
        self,
        event_type: AuditEventType,
        meta: Dict[str, Any],
        session_id: Optional[str] = None,
    ) -> None:
        emit_audit(
            self._sink,
            AuditEvent(
                type=event_type,
                at=self._clock.now(),
                meta=meta,
                session_id=session_id or self._session_id,
            ),
        )

    @property
    def phase(self) -> EpisodePhase:
        return self._episode.phase
