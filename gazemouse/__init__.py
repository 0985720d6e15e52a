"""Webcam gaze cursor with blink / mouth-open activation"""

from .calibration import BaselineCalibrator, CalibrationState, OffsetCalibrator
from .config import Config, PRESETS
from .gaze import ExternalGaze, GazeFeed, GazeMapper
from .gestures import Classification, GestureClassifier, GestureState, Policy, region_gap
from .landmarks import InferenceSlot, LandmarkSet
from .session import CursorState, GazeSession, TickResult
from .smoothing import SmoothingFilter, smooth

__version__ = "0.1.0"
