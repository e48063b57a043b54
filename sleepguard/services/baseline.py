"""Rolling physiological baseline over recent NREM samples.

Samples are held in a time-bounded window (by timestamp, not count, since the
wearable reports at irregular intervals). Running sums keep mean/std updates
amortized O(1) per sample.
"""

import logging
import math
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Deque, Optional

from .bio_models import BioSample

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Baseline:
    heart_rate_mean: float
    heart_rate_std: float
    hrv_mean: float
    motion_mean: float
    sample_count: int
    window_start: datetime
    window_end: datetime


class BaselineEstimator:
    """Sliding window of NREM samples; baseline is absent until min_samples are held."""

    def __init__(self, sliding_window: timedelta, min_samples: int):
        self.sliding_window = sliding_window
        self.min_samples = min_samples
        self._window: Deque[BioSample] = deque()
        self._ordered = True
        self._latest_at: Optional[datetime] = None
        self._reset_sums()

    @property
    def sample_count(self) -> int:
        return len(self._window)

    # Used by: NightTerrorProtocol (session start/stop)
    def reset(self) -> None:
        self._window.clear()
        self._ordered = True
        self._latest_at = None
        self._reset_sums()

    # Used by: NightTerrorProtocol._process_locked() (after the sample was evaluated)
    def accept(self, sample: BioSample) -> bool:
        """Absorb an NREM sample into the window. Other stages are ignored."""
        if not sample.is_nrem:
            return False

        if self._latest_at is not None and sample.at < self._latest_at:
            logger.debug(f"Out-of-order sample at {sample.at} (latest {self._latest_at})")
            self._ordered = False
        else:
            self._latest_at = sample.at

        self._window.append(sample)
        self._add(sample)
        self._evict(self._latest_at)
        return True

    # Used by: NightTerrorProtocol._process_locked() (baseline the sample is judged against)
    def current_baseline(self, at: Optional[datetime] = None) -> Optional[Baseline]:
        if at is not None:
            self._evict(at)

        n = len(self._window)
        if n < self.min_samples or n == 0:
            return None

        hr_mean = self._hr_sum / n
        hr_var = max(0.0, self._hr_sq_sum / n - hr_mean * hr_mean)

        return Baseline(
            heart_rate_mean=hr_mean,
            heart_rate_std=math.sqrt(hr_var),
            hrv_mean=self._hrv_sum / n,
            motion_mean=self._motion_sum / n,
            sample_count=n,
            window_start=self._window[0].at,
            window_end=self._window[-1].at,
        )

    def _evict(self, now: datetime) -> None:
        cutoff = now - self.sliding_window

        if not self._ordered:
            kept = sorted((s for s in self._window if s.at >= cutoff), key=lambda s: s.at)
            self._window = deque(kept)
            self._ordered = True
            self._rebuild_sums()
            return

        while self._window and self._window[0].at < cutoff:
            self._remove(self._window.popleft())

    def _reset_sums(self) -> None:
        self._hr_sum = 0.0
        self._hr_sq_sum = 0.0
        self._hrv_sum = 0.0
        self._motion_sum = 0.0

    def _rebuild_sums(self) -> None:
        self._reset_sums()
        for s in self._window:
            self._add(s)

    def _add(self, s: BioSample) -> None:
        self._hr_sum += s.heart_rate
        self._hr_sq_sum += s.heart_rate * s.heart_rate
        self._hrv_sum += s.hrv
        self._motion_sum += s.motion

    def _remove(self, s: BioSample) -> None:
        self._hr_sum -= s.heart_rate
        self._hr_sq_sum -= s.heart_rate * s.heart_rate
        self._hrv_sum -= s.hrv
        self._motion_sum -= s.motion
        if not self._window:
            # drop accumulated float drift once the window is empty
            self._reset_sums()
