"""Pydantic request/response models for the night terror endpoints."""

from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from typing import Optional

from ..core.utils import require_utc_aware
from ..services.bio_models import BioSample, SleepStage


# Wearable sample ingestion

class BioSampleRequest(BaseModel):
    at: datetime
    heart_rate: int = Field(..., ge=0, le=300, description="Beats per minute")
    hrv: float = Field(..., ge=0, description="Heart rate variability (ms)")
    motion: float = Field(..., ge=0, description="Motion intensity, unitless")
    stage: SleepStage = SleepStage.UNKNOWN

    @field_validator("at")
    @classmethod
    def _at_must_be_utc(cls, v: datetime) -> datetime:
        return require_utc_aware(v, field_name="at")

    def to_sample(self) -> BioSample:
        return BioSample(
            at=self.at,
            heart_rate=self.heart_rate,
            hrv=self.hrv,
            motion=self.motion,
            stage=self.stage,
        )


class SampleAcceptedResponse(BaseModel):
    accepted: bool
    stage: SleepStage
    message: str


# Session lifecycle

class StartResponse(BaseModel):
    session_id: Optional[str]
    already_running: bool
    message: str


class StopResponse(BaseModel):
    stopped: bool
    message: str


class ProtocolStatusResponse(BaseModel):
    running: bool
    session_id: Optional[str] = None
    started_at: Optional[datetime] = None
    phase: str
    last_cue_at: Optional[datetime] = None
    cooldown_remaining_seconds: Optional[float] = None
    recovery_streak_start: Optional[datetime] = None
    last_sample_at: Optional[datetime] = None
    baseline_samples: int
    subscribers: int
