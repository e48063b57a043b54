"""Per-signal distress rules evaluated against the rolling baseline.

Rules are checked in a fixed order and the first one that fires wins:
  - hr_spike:     heart-rate z-score (ratio fallback on a flat baseline)
  - hrv_drop:     fractional HRV drop below the baseline mean
  - motion_spike: absolute motion excess over the baseline mean
Severity is the size of the deviation relative to the baseline, clamped to 0..1:
  - hr_spike:     excess over the baseline mean, as a fraction of that mean
  - hrv_drop:     the fractional drop itself
  - motion_spike: share of the current motion that is excess over baseline
Thresholds decide whether a rule fires; severity keeps grading above them.
"""

import logging
from typing import Optional

from sleepguard.core.constants import FLAT_BASELINE_EPSILON
from .baseline import Baseline
from .bio_models import BioSample, DetectedAnomaly, Trigger
from .night_terror_config import NightTerrorConfig

logger = logging.getLogger(__name__)


def _clamp(x: float, lo: float = 0.0, hi: float = 1.0) -> float:
    return lo if x < lo else hi if x > hi else x


class AnomalyDetector:
    def __init__(self, config: NightTerrorConfig):
        self.config = config

    # Used by: NightTerrorProtocol._process_locked()
    def evaluate(self, sample: BioSample, baseline: Optional[Baseline]) -> Optional[DetectedAnomaly]:
        """Return the first rule that fires for this sample, or None."""
        if baseline is None or not sample.is_nrem:
            return None

        for rule in (self._check_hr_spike, self._check_hrv_drop, self._check_motion_spike):
            anomaly = rule(sample, baseline)
            if anomaly is not None:
                logger.debug(
                    f"{anomaly.trigger.value} at {sample.at} "
                    f"(severity {anomaly.severity:.3f}, baseline n={baseline.sample_count})"
                )
                return anomaly
        return None

    def _check_hr_spike(self, sample: BioSample, baseline: Baseline) -> Optional[DetectedAnomaly]:
        mean = baseline.heart_rate_mean
        std = baseline.heart_rate_std
        if mean <= 0:
            return None

        if std > FLAT_BASELINE_EPSILON:
            fired = (sample.heart_rate - mean) / std >= self.config.hr_z_score_threshold
        else:
            # Flat baseline: z-score undefined
            fired = sample.heart_rate > mean * self.config.hr_flat_baseline_ratio

        if not fired:
            return None
        return DetectedAnomaly(Trigger.HR_SPIKE, _clamp((sample.heart_rate - mean) / mean), sample.at)

    def _check_hrv_drop(self, sample: BioSample, baseline: Baseline) -> Optional[DetectedAnomaly]:
        mean = baseline.hrv_mean
        if mean <= 0:
            return None

        threshold = self.config.hrv_drop_threshold
        drop = (mean - sample.hrv) / mean
        if drop >= threshold:
            return DetectedAnomaly(Trigger.HRV_DROP, _clamp(drop), sample.at)
        return None

    def _check_motion_spike(self, sample: BioSample, baseline: Baseline) -> Optional[DetectedAnomaly]:
        threshold = self.config.motion_spike_threshold
        spike = sample.motion - baseline.motion_mean
        if spike >= threshold:
            return DetectedAnomaly(Trigger.MOTION_SPIKE, _clamp(spike / sample.motion), sample.at)
        return None
