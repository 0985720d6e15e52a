"""
Neutral-pose calibration from the first frames of a session
The user is assumed relaxed for the first second or two; the mean of
those frames becomes the reference that later frames are compared to.
"""

from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np


@dataclass(frozen=True)
class CalibrationState:
    """Snapshot of a calibrator after ingesting a sample"""
    ready: bool
    baseline: Optional[float]
    collected: int
    required: int


class BaselineCalibrator:
    """Accumulates a fixed number of scalar samples, then freezes their mean"""

    def __init__(self, sample_count: int = 45):
        if not isinstance(sample_count, int) or sample_count < 1:
            raise ValueError(f"sample_count must be a positive integer, got {sample_count!r}")
        self.sample_count = sample_count
        self.samples: List[float] = []
        self.baseline: Optional[float] = None

    @property
    def ready(self) -> bool:
        return self.baseline is not None

    @property
    def state(self) -> CalibrationState:
        return CalibrationState(
            ready=self.ready,
            baseline=self.baseline,
            collected=len(self.samples),
            required=self.sample_count,
        )

    def ingest(self, sample: float) -> CalibrationState:
        """
        Add a sample while calibrating
        Once the baseline is frozen further samples are ignored
        """
        if not self.ready:
            self.samples.append(float(sample))
            if len(self.samples) >= self.sample_count:
                self.baseline = float(np.mean(self.samples))
        return self.state

    def reset(self):
        """Start a fresh calibration"""
        self.samples.clear()
        self.baseline = None


class OffsetCalibrator:
    """
    Same accumulate-then-freeze pattern for 2D offsets

    Before the neutral offset is frozen, `neutral` is the running mean of
    the offsets seen so far, so the cursor settles while calibration runs.
    """

    def __init__(self, sample_count: int = 30):
        if not isinstance(sample_count, int) or sample_count < 1:
            raise ValueError(f"sample_count must be a positive integer, got {sample_count!r}")
        self.sample_count = sample_count
        self._sum = np.zeros(2)
        self._count = 0

    @property
    def ready(self) -> bool:
        return self._count >= self.sample_count

    @property
    def neutral(self) -> Tuple[float, float]:
        if self._count == 0:
            return 0.0, 0.0
        mean = self._sum / self._count
        return float(mean[0]), float(mean[1])

    def ingest(self, dx: float, dy: float) -> Tuple[float, float]:
        """Add an offset while calibrating and return the current neutral offset"""
        if not self.ready:
            self._sum += (dx, dy)
            self._count += 1
        return self.neutral

    def reset(self):
        self._sum = np.zeros(2)
        self._count = 0
