"""Episode state machine: distress -> cue -> cooldown -> recovery -> idle.

Timers are lazy: cooldown and recovery are decided by comparing the current
sample timestamp with stored markers, so scripted sample sequences with
synthetic time drive the machine deterministically.

Debounce rules:
- Idle (or any phase once the cooldown has elapsed) + anomaly opens an episode
  and asks for a cue; last_cue_at is set to the anomaly time.
- An anomaly inside the cooldown is not acted upon, but it breaks any
  recovery streak in progress.
- Normalized samples after a cue build an unbroken streak; once the streak
  spans recovery_window the episode closes and the machine is idle again.
- last_cue_at survives recovery, so the cooldown still gates the next cue.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from .bio_models import DetectedAnomaly

logger = logging.getLogger(__name__)


class EpisodePhase(str, Enum):
    IDLE = "idle"
    SUPPRESSED = "suppressed"
    RECOVERING = "recovering"


class EpisodeAction(str, Enum):
    NOOP = "noop"
    DISTRESS = "distress"
    SUPPRESSED = "suppressed"
    STREAK_EXTENDED = "streak_extended"
    RECOVERED = "recovered"


@dataclass
class EpisodeState:
    phase: EpisodePhase = EpisodePhase.IDLE
    last_cue_at: Optional[datetime] = None
    recovery_streak_start: Optional[datetime] = None


@dataclass(frozen=True)
class EpisodeTransition:
    action: EpisodeAction
    phase: EpisodePhase
    stabilized_for: Optional[timedelta] = None


class EpisodeStateMachine:
    def __init__(self, cooldown_period: timedelta, recovery_window: timedelta):
        self.cooldown_period = cooldown_period
        self.recovery_window = recovery_window
        self.state = EpisodeState()

    @property
    def phase(self) -> EpisodePhase:
        return self.state.phase

    # Used by: NightTerrorProtocol (session start/stop)
    def reset(self) -> None:
        self.state = EpisodeState()

    def in_cooldown(self, at: datetime) -> bool:
        last = self.state.last_cue_at
        if last is None:
            return False
        return at - last < self.cooldown_period

    def cooldown_remaining(self, at: datetime) -> Optional[timedelta]:
        if not self.in_cooldown(at):
            return None
        return self.cooldown_period - (at - self.state.last_cue_at)

    # Used by: NightTerrorProtocol._process_locked() (sample fired a rule)
    def on_anomaly(self, anomaly: DetectedAnomaly) -> EpisodeTransition:
        st = self.state

        if self.in_cooldown(anomaly.at):
            if st.recovery_streak_start is not None:
                logger.debug(
                    f"Recovery streak since {st.recovery_streak_start} broken by "
                    f"{anomaly.trigger.value} at {anomaly.at}"
                )
            st.recovery_streak_start = None
            if st.phase == EpisodePhase.RECOVERING:
                st.phase = EpisodePhase.SUPPRESSED
            return EpisodeTransition(EpisodeAction.SUPPRESSED, st.phase)

        st.phase = EpisodePhase.SUPPRESSED
        st.last_cue_at = anomaly.at
        st.recovery_streak_start = None
        return EpisodeTransition(EpisodeAction.DISTRESS, st.phase)

    # Used by: NightTerrorProtocol._process_locked() (sample within baseline tolerance)
    def on_normalized(self, at: datetime) -> EpisodeTransition:
        st = self.state

        if st.phase == EpisodePhase.IDLE:
            return EpisodeTransition(EpisodeAction.NOOP, st.phase)

        if st.recovery_streak_start is None:
            st.recovery_streak_start = at
            st.phase = EpisodePhase.RECOVERING

        stabilized_for = at - st.recovery_streak_start
        if stabilized_for >= self.recovery_window:
            st.phase = EpisodePhase.IDLE
            st.recovery_streak_start = None
            return EpisodeTransition(EpisodeAction.RECOVERED, st.phase, stabilized_for)

        return EpisodeTransition(EpisodeAction.STREAK_EXTENDED, st.phase, stabilized_for)
