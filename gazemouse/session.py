"""
Per-tick gaze mouse pipeline

One GazeSession owns every piece of cross-frame state: gesture baselines,
the neutral gaze offset, the smoothed cursor and the external gaze cell.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .config import Config
from .gaze import ExternalGaze, GazeMapper, clamp_to_viewport
from .gestures import Classification, GestureClassifier, eye_gap, mouth_gap
from .landmarks import LandmarkSet
from .smoothing import SmoothingFilter


Point = Tuple[float, float]
Viewport = Tuple[float, float]

SIGNALS = {
    'blink': eye_gap,
    'mouth': mouth_gap,
}


@dataclass
class CursorState:
    """Displayed cursor position and the time of the last activation"""
    x: float
    y: float
    last_activation: Optional[float] = None

    @property
    def position(self) -> Point:
        return self.x, self.y


@dataclass
class TickResult:
    """Everything one tick produced"""
    cursor: Point
    activations: List[str] = field(default_factory=list)
    face_found: bool = False
    source: Optional[str] = None  # "external", "landmarks" or None (held)
    target: Optional[Point] = None
    signals: Dict[str, Optional[float]] = field(default_factory=dict)
    classifications: Dict[str, Classification] = field(default_factory=dict)

    @property
    def activated(self) -> bool:
        return bool(self.activations)


class GazeSession:
    """Baseline calibration, gesture classification, gaze mapping and smoothing"""

    def __init__(self, config: Optional[Config] = None, viewport: Viewport = (640, 480)):
        self.config = (config or Config()).validate()
        self.viewport = viewport

        self.gestures: Dict[str, GestureClassifier] = {}
        if self.config.blink_enabled:
            self.gestures['blink'] = GestureClassifier.blink(self.config)
        if self.config.mouth_enabled:
            self.gestures['mouth'] = GestureClassifier.mouth_open(self.config)

        self.mapper = GazeMapper(self.config)
        self.external = ExternalGaze()

        cx, cy = viewport[0] / 2, viewport[1] / 2
        self.filter = SmoothingFilter(self.config.smoothing_alpha,
                                      self.config.deadzone_px, start=(cx, cy))
        self.cursor = CursorState(cx, cy)

    @property
    def calibrated(self) -> bool:
        return all(g.calibrator.ready for g in self.gestures.values()) and self.mapper.center.ready

    def tick(self, landmarks: Optional[LandmarkSet], now: float,
             viewport: Optional[Viewport] = None, fresh: bool = True) -> TickResult:
        """
        Advance one frame

        `landmarks` is None when no face was found: gestures are not
        classified (their debounce timers are untouched) and the cursor
        holds unless a fresh external gaze point is available.

        `fresh=False` marks landmarks already consumed by an earlier tick
        (inference timed out). They are reported but never classified,
        calibrated on or mapped again.
        """
        if viewport is not None:
            self.viewport = viewport
        viewport = self.viewport

        # Non-blocking read of the secondary source
        external = None
        if self.config.use_external_gaze:
            external = self.external.fresh(now, self.config.stale_window_ms / 1000.0)

        result = TickResult(cursor=self.cursor.position, face_found=landmarks is not None)

        landmark_target = None
        if landmarks is not None and fresh:
            for name, classifier in self.gestures.items():
                signal = SIGNALS[name](landmarks, self.config)
                result.signals[name] = signal
                if signal is None:
                    continue
                classification = classifier.classify(signal, now)
                result.classifications[name] = classification
                if classification.fired:
                    result.activations.append(name)

            landmark_target = self.mapper.map(landmarks, viewport)

        if external is not None:
            result.target = clamp_to_viewport(external[0], external[1], viewport)
            result.source = 'external'
        elif landmark_target is not None:
            result.target = landmark_target
            result.source = 'landmarks'

        if result.target is not None:
            x, y = self.filter.update(result.target)
            # Keep the cursor inside a viewport that may have shrunk
            x, y = clamp_to_viewport(x, y, viewport)
            self.filter.reset((x, y))
            self.cursor.x, self.cursor.y = x, y

        if result.activations:
            self.cursor.last_activation = now

        result.cursor = self.cursor.position
        return result

    def recalibrate(self):
        """Drop gesture baselines and the neutral gaze offset"""
        for classifier in self.gestures.values():
            classifier.reset()
        self.mapper.reset()

    def reset(self, viewport: Optional[Viewport] = None):
        """Session restart: recalibrate and recenter the cursor"""
        if viewport is not None:
            self.viewport = viewport
        self.recalibrate()
        for classifier in self.gestures.values():
            classifier.last_fire_time = float('-inf')
        self.external.clear()
        cx, cy = self.viewport[0] / 2, self.viewport[1] / 2
        self.filter.reset((cx, cy))
        self.cursor = CursorState(cx, cy)
