"""Night terror protocol configuration: caller-supplied, validated at construction."""

from dataclasses import dataclass
from datetime import timedelta

from sleepguard.core.constants import (
    NIGHT_TERROR_SLIDING_WINDOW_MINUTES,
    NIGHT_TERROR_MIN_SAMPLES_FOR_BASELINE,
    NIGHT_TERROR_COOLDOWN_MINUTES,
    NIGHT_TERROR_RECOVERY_MINUTES,
    HR_Z_SCORE_THRESHOLD,
    HR_FLAT_BASELINE_RATIO,
    HRV_DROP_THRESHOLD,
    MOTION_SPIKE_THRESHOLD,
    AUDIO_CUE_TIMEOUT_SECONDS,
)


@dataclass(frozen=True)
class NightTerrorConfig:
    # Windowing
    sliding_window: timedelta = timedelta(minutes=NIGHT_TERROR_SLIDING_WINDOW_MINUTES)
    cooldown_period: timedelta = timedelta(minutes=NIGHT_TERROR_COOLDOWN_MINUTES)
    recovery_window: timedelta = timedelta(minutes=NIGHT_TERROR_RECOVERY_MINUTES)
    min_samples_for_baseline: int = NIGHT_TERROR_MIN_SAMPLES_FOR_BASELINE

    # Detection thresholds
    hr_z_score_threshold: float = HR_Z_SCORE_THRESHOLD
    hr_flat_baseline_ratio: float = HR_FLAT_BASELINE_RATIO
    hrv_drop_threshold: float = HRV_DROP_THRESHOLD
    motion_spike_threshold: float = MOTION_SPIKE_THRESHOLD

    # Bounded wait on the audio port
    cue_timeout: timedelta = timedelta(seconds=AUDIO_CUE_TIMEOUT_SECONDS)

    def __post_init__(self):
        for name in ("sliding_window", "recovery_window", "cue_timeout"):
            if getattr(self, name) <= timedelta(0):
                raise ValueError(f"{name} must be a positive duration")
        if self.cooldown_period < timedelta(0):
            raise ValueError("cooldown_period must not be negative")
        if self.min_samples_for_baseline < 1:
            raise ValueError("min_samples_for_baseline must be at least 1")
        for name in (
            "hr_z_score_threshold",
            "hrv_drop_threshold",
            "motion_spike_threshold",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")
        if self.hr_flat_baseline_ratio <= 1.0:
            raise ValueError("hr_flat_baseline_ratio must be greater than 1.0")


# Used by: main.py lifespan (service-level defaults come from env via Settings)
def night_terror_config_from_settings(settings) -> NightTerrorConfig:
    return NightTerrorConfig(
        sliding_window=timedelta(minutes=settings.NIGHT_TERROR_SLIDING_WINDOW_MINUTES),
        cooldown_period=timedelta(minutes=settings.NIGHT_TERROR_COOLDOWN_MINUTES),
        recovery_window=timedelta(minutes=settings.NIGHT_TERROR_RECOVERY_MINUTES),
        min_samples_for_baseline=settings.NIGHT_TERROR_MIN_SAMPLES_FOR_BASELINE,
        cue_timeout=timedelta(seconds=settings.AUDIO_TIMEOUT_SECONDS),
    )
