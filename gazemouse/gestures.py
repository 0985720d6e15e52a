"""
Blink and mouth-open activation gestures
Each gesture compares a live landmark gap to a baseline calibrated from the
first frames of the session, with a debounce between activations.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

from .calibration import BaselineCalibrator
from .landmarks import LandmarkSet


class GestureState(Enum):
    CALIBRATING = "calibrating"
    ACTIVE = "active"


class Policy(Enum):
    """Which side of the threshold counts as the gesture"""
    BELOW = "below"  # eyelids closing: gap shrinks
    ABOVE = "above"  # mouth opening: gap grows


@dataclass(frozen=True)
class Classification:
    """Result of one classify() call"""
    fired: bool
    raw: bool
    state: GestureState
    threshold: Optional[float] = None


def region_gap(landmarks: LandmarkSet, top: Sequence[int], bottom: Sequence[int]) -> Optional[float]:
    """
    Average vertical gap between paired landmarks (eyelids, lips)
    Pairs with a missing landmark are skipped; None if no pair is usable
    """
    gaps = []
    for top_idx, bottom_idx in zip(top, bottom):
        upper = landmarks.get(top_idx)
        lower = landmarks.get(bottom_idx)
        if upper is None or lower is None:
            continue
        gaps.append(abs(upper[1] - lower[1]))

    if not gaps:
        return None
    return sum(gaps) / len(gaps)


def eye_gap(landmarks: LandmarkSet, config) -> Optional[float]:
    """Mean eyelid gap of both eyes, or of whichever eye is measurable"""
    left = region_gap(landmarks, config.left_eyelid_top, config.left_eyelid_bottom)
    right = region_gap(landmarks, config.right_eyelid_top, config.right_eyelid_bottom)
    gaps = [g for g in (left, right) if g is not None]
    if not gaps:
        return None
    return sum(gaps) / len(gaps)


def mouth_gap(landmarks: LandmarkSet, config) -> Optional[float]:
    """Vertical lip gap"""
    return region_gap(landmarks, config.mouth_top, config.mouth_bottom)


class GestureClassifier:
    """
    CALIBRATING -> ACTIVE state machine for one gesture

    While calibrating every signal feeds the baseline. Once active, a
    signal strictly past `baseline * factor` (or strictly above
    `hard_minimum`, for the ABOVE policy) is a raw detection, and it fires
    only if more than `debounce` seconds have passed since the last fire.
    """

    def __init__(self, policy: Policy, factor: float, debounce: float,
                 sample_count: int = 45, hard_minimum: Optional[float] = None):
        if factor <= 0:
            raise ValueError(f"factor must be positive, got {factor}")
        if debounce < 0:
            raise ValueError(f"debounce must not be negative, got {debounce}")
        self.policy = Policy(policy)
        self.factor = factor
        self.debounce = debounce
        self.hard_minimum = hard_minimum
        self.calibrator = BaselineCalibrator(sample_count)
        self.last_fire_time = float('-inf')

    @property
    def state(self) -> GestureState:
        return GestureState.ACTIVE if self.calibrator.ready else GestureState.CALIBRATING

    @property
    def baseline(self) -> Optional[float]:
        return self.calibrator.baseline

    @property
    def threshold(self) -> Optional[float]:
        if self.baseline is None:
            return None
        return self.baseline * self.factor

    def is_past_threshold(self, signal: float) -> bool:
        """Raw detection, without debounce"""
        threshold = self.threshold
        if threshold is None:
            return False
        if self.policy is Policy.BELOW:
            return signal < threshold
        past = signal > threshold
        if self.hard_minimum is not None:
            past = past or signal > self.hard_minimum
        return past

    def classify(self, signal: float, now: float) -> Classification:
        """Feed one frame's signal; `now` is in seconds"""
        if self.state is GestureState.CALIBRATING:
            self.calibrator.ingest(signal)
            return Classification(fired=False, raw=False, state=GestureState.CALIBRATING)

        raw = self.is_past_threshold(signal)
        fired = raw and (now - self.last_fire_time > self.debounce)
        if fired:
            self.last_fire_time = now

        return Classification(fired=fired, raw=raw, state=GestureState.ACTIVE,
                              threshold=self.threshold)

    def reset(self):
        """Recalibrate the baseline; the debounce timer is kept"""
        self.calibrator.reset()

    @classmethod
    def blink(cls, config) -> "GestureClassifier":
        return cls(Policy.BELOW, config.blink_factor,
                   config.blink_debounce_ms / 1000.0,
                   sample_count=config.blink_baseline_samples)

    @classmethod
    def mouth_open(cls, config) -> "GestureClassifier":
        return cls(Policy.ABOVE, config.mouth_factor,
                   config.mouth_debounce_ms / 1000.0,
                   sample_count=config.mouth_baseline_samples,
                   hard_minimum=config.mouth_hard_minimum)
