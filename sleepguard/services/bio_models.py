"""Value types for the night terror protocol: samples, anomalies, protocol and audit events."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, Optional


class SleepStage(str, Enum):
    WAKE = "wake"
    REM = "rem"
    NREM = "nrem"  # night terrors occur here
    UNKNOWN = "unknown"


class Trigger(str, Enum):
    HR_SPIKE = "hr_spike"
    HRV_DROP = "hrv_drop"
    MOTION_SPIKE = "motion_spike"


class AuditEventType(str, Enum):
    STARTED = "started"
    STOPPED = "stopped"
    DISTRESS_DETECTED = "distress_detected"
    CUE_PLAYED = "cue_played"
    CUE_FAILED = "cue_failed"
    RECOVERED = "recovered"
    SOURCE_ERROR = "source_error"


@dataclass(frozen=True)
class BioSample:
    """One reading from the wearable; stage is classified upstream."""
    at: datetime
    heart_rate: int      # bpm
    hrv: float           # ms
    motion: float        # unitless intensity
    stage: SleepStage

    @property
    def is_nrem(self) -> bool:
        return self.stage == SleepStage.NREM


@dataclass(frozen=True)
class DetectedAnomaly:
    trigger: Trigger
    severity: float  # 0.0-1.0
    at: datetime


@dataclass(frozen=True)
class ProtocolEvent:
    at: datetime

    @property
    def type(self) -> str:
        raise NotImplementedError

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "at": self.at.isoformat()}


@dataclass(frozen=True)
class DetectedDistress(ProtocolEvent):
    trigger: Trigger = Trigger.HR_SPIKE
    severity: float = 0.0

    @property
    def type(self) -> str:
        return "detected_distress"

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["trigger"] = self.trigger.value
        data["severity"] = round(self.severity, 4)
        return data


@dataclass(frozen=True)
class CuePlayed(ProtocolEvent):

    @property
    def type(self) -> str:
        return "cue_played"


@dataclass(frozen=True)
class Recovered(ProtocolEvent):
    stabilized_for: timedelta = timedelta(0)

    @property
    def type(self) -> str:
        return "recovered"

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["stabilized_for_seconds"] = self.stabilized_for.total_seconds()
        return data


@dataclass(frozen=True)
class AuditEvent:
    """Record handed to the audit sink. Never read back by the protocol."""
    type: AuditEventType
    at: datetime
    meta: Dict[str, Any] = field(default_factory=dict)
    session_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "at": self.at.isoformat(),
            "session_id": self.session_id,
            "meta": dict(self.meta),
        }
