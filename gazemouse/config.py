"""
Configuration for the gaze mouse pipeline
Every former script variant is a preset of the same Config dataclass
"""

import json
import math
from dataclasses import dataclass, asdict, field, fields, replace
from typing import Dict, List, Optional


# Face Mesh topology: 468 points, plus 10 iris points with refine_landmarks=True
FACE_MESH_POINTS = 468
FACE_MESH_REFINED_POINTS = 478

INDEX_POINTS = ('nose_tip', 'face_left', 'face_right', 'face_top', 'face_bottom')
INDEX_GROUPS = (
    'left_iris', 'right_iris', 'left_eye_corners', 'right_eye_corners',
    'left_eyelid_top', 'left_eyelid_bottom',
    'right_eyelid_top', 'right_eyelid_bottom',
    'mouth_top', 'mouth_bottom',
)


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value) -> bool:
    return (isinstance(value, (int, float)) and not isinstance(value, bool)
            and math.isfinite(value))


@dataclass
class Config:
    """Configuration for gaze tracking and gesture activation"""


    # BLINK (EYELID GAP BELOW BASELINE)

    blink_enabled: bool = True
    blink_baseline_samples: int = 45
    blink_factor: float = 0.55  # fires when gap < baseline * factor
    blink_debounce_ms: float = 750.0


    # MOUTH OPEN (LIP GAP ABOVE BASELINE)

    mouth_enabled: bool = False
    mouth_baseline_samples: int = 45
    mouth_factor: float = 1.7  # fires when gap > baseline * factor
    mouth_hard_minimum: Optional[float] = None  # pixels, OR'd with the factor test
    mouth_debounce_ms: float = 900.0


    # GAZE MAPPING

    center_samples: int = 30  # frames averaged to define the neutral offset
    h_gain: float = 1.5
    v_gain: float = 1.5
    mirror: bool = True  # mirror horizontally once, inside the mapper
    min_face_width: float = 40.0
    min_face_height: float = 60.0

    # External gaze override
    use_external_gaze: bool = False
    stale_window_ms: float = 400.0

    # Smoothing
    smoothing_alpha: float = 0.2
    deadzone_px: float = 0.0


    # LANDMARK INDICES (MediaPipe Face Mesh)

    nose_tip: int = 1
    face_left: int = 234
    face_right: int = 454
    face_top: int = 10
    face_bottom: int = 152
    left_iris: List[int] = field(default_factory=lambda: [468, 469, 470, 471])
    right_iris: List[int] = field(default_factory=lambda: [473, 474, 475, 476])
    left_eye_corners: List[int] = field(default_factory=lambda: [33, 133])
    right_eye_corners: List[int] = field(default_factory=lambda: [362, 263])
    left_eyelid_top: List[int] = field(default_factory=lambda: [159, 160, 161, 246])
    left_eyelid_bottom: List[int] = field(default_factory=lambda: [145, 144, 153, 154])
    right_eyelid_top: List[int] = field(default_factory=lambda: [386, 385, 384, 398])
    right_eyelid_bottom: List[int] = field(default_factory=lambda: [374, 373, 380, 381])
    mouth_top: List[int] = field(default_factory=lambda: [13])
    mouth_bottom: List[int] = field(default_factory=lambda: [14])

    # Camera settings
    camera_index: int = 0
    cam_width: int = 640
    cam_height: int = 480

    # Landmark inference
    async_inference: bool = False
    inference_timeout_ms: float = 200.0

    # Secondary gaze feed (TCP, JSON lines)
    gaze_feed_host: str = "127.0.0.1"
    gaze_feed_port: Optional[int] = None

    # Activation output
    drive_system_mouse: bool = False
    flash_ms: float = 220.0

    # Visual feedback
    show_landmarks: bool = True
    show_stats: bool = True
    show_debug_values: bool = False

    def landmark_indices(self) -> Dict[str, List[int]]:
        """All landmark index fields, keyed by field name"""
        indices = {name: [getattr(self, name)] for name in INDEX_POINTS}
        indices.update({name: list(getattr(self, name)) for name in INDEX_GROUPS})
        return indices

    def validate(self, topology_size: int = FACE_MESH_REFINED_POINTS) -> "Config":
        """
        Check types, ranges and landmark indices against the model topology
        Raises ValueError on the first problem found
        """
        for name in ('blink_enabled', 'mouth_enabled', 'mirror', 'use_external_gaze',
                     'async_inference', 'drive_system_mouse', 'show_landmarks',
                     'show_stats', 'show_debug_values'):
            if not isinstance(getattr(self, name), bool):
                raise ValueError(f"{name} must be true or false, got {getattr(self, name)!r}")

        for name in ('blink_baseline_samples', 'mouth_baseline_samples', 'center_samples',
                     'cam_width', 'cam_height'):
            value = getattr(self, name)
            if not _is_int(value) or value < 1:
                raise ValueError(f"{name} must be a positive integer, got {value!r}")

        if not _is_int(self.camera_index) or self.camera_index < 0:
            raise ValueError(f"camera_index must be a non-negative integer, got {self.camera_index!r}")
        if self.gaze_feed_port is not None and (
                not _is_int(self.gaze_feed_port) or not 0 < self.gaze_feed_port < 65536):
            raise ValueError(f"gaze_feed_port must be a TCP port, got {self.gaze_feed_port!r}")
        if not isinstance(self.gaze_feed_host, str):
            raise ValueError(f"gaze_feed_host must be a string, got {self.gaze_feed_host!r}")

        for name in ('blink_factor', 'mouth_factor', 'min_face_width', 'min_face_height',
                     'h_gain', 'v_gain'):
            value = getattr(self, name)
            if not _is_number(value) or value <= 0:
                raise ValueError(f"{name} must be a positive number, got {value!r}")

        for name in ('blink_debounce_ms', 'mouth_debounce_ms', 'stale_window_ms',
                     'deadzone_px', 'inference_timeout_ms', 'flash_ms'):
            value = getattr(self, name)
            if not _is_number(value) or value < 0:
                raise ValueError(f"{name} must be a non-negative number, got {value!r}")

        if self.mouth_hard_minimum is not None and (
                not _is_number(self.mouth_hard_minimum) or self.mouth_hard_minimum < 0):
            raise ValueError(
                f"mouth_hard_minimum must be empty or a non-negative number, "
                f"got {self.mouth_hard_minimum!r}")

        if not _is_number(self.smoothing_alpha) or not 0.0 < self.smoothing_alpha <= 1.0:
            raise ValueError(f"smoothing_alpha must be in (0, 1], got {self.smoothing_alpha!r}")

        for name in INDEX_GROUPS:
            if not isinstance(getattr(self, name), list):
                raise ValueError(f"{name} must be a list of landmark indices, got {getattr(self, name)!r}")

        for name, indices in self.landmark_indices().items():
            if not indices:
                raise ValueError(f"{name} must name at least one landmark")
            for idx in indices:
                if not _is_int(idx) or not 0 <= idx < topology_size:
                    raise ValueError(
                        f"{name} contains landmark {idx!r}, outside the "
                        f"{topology_size}-point face mesh")

        if len(self.mouth_top) != len(self.mouth_bottom):
            raise ValueError("mouth_top and mouth_bottom must pair up")
        if len(self.left_eyelid_top) != len(self.left_eyelid_bottom):
            raise ValueError("left_eyelid_top and left_eyelid_bottom must pair up")
        if len(self.right_eyelid_top) != len(self.right_eyelid_bottom):
            raise ValueError("right_eyelid_top and right_eyelid_bottom must pair up")

        return self

    @classmethod
    def from_preset(cls, name: str, **overrides) -> "Config":
        """Build a config from a named preset, then apply overrides"""
        try:
            preset = PRESETS[name]
        except KeyError:
            raise ValueError(
                f"Unknown preset {name!r}, choose from: {', '.join(sorted(PRESETS))}"
            ) from None
        params = {**preset, **overrides}
        # Presets share their index lists, copy them per config
        params = {k: list(v) if isinstance(v, list) else v for k, v in params.items()}
        return replace(cls(), **params)

    def save(self, path: str = "mouse_config.json"):
        """Save configuration to file"""
        with open(path, 'w') as f:
            json.dump(asdict(self), f, indent=2)

    @classmethod
    def load(cls, path: str = "mouse_config.json"):
        """Load configuration from file"""
        try:
            with open(path, 'r') as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError(f"expected a JSON object, got {type(data).__name__}")

            valid_fields = {f.name for f in fields(cls)}
            filtered_data = {k: v for k, v in data.items() if k in valid_fields}

            config = cls(**filtered_data).validate()
            print(f"✓ Loaded config from {path}")
            return config
        except FileNotFoundError:
            print(f"⚠️  Config file not found, using defaults")
            return cls()
        except (OSError, ValueError, TypeError) as e:
            print(f"⚠️  Error loading config: {e}")
            print("   Using default values instead")
            return cls()


PRESETS: Dict[str, dict] = {
    # Landmark gaze, tight blink threshold
    'blink': {},
    # Secondary gaze service drives the cursor, blink clicks
    'blink_external': {
        'blink_baseline_samples': 60,
        'blink_factor': 0.65,
        'blink_debounce_ms': 700.0,
        'use_external_gaze': True,
        'stale_window_ms': 400.0,
        'flash_ms': 250.0,
    },
    # Mouth-open click with the wider lip index set
    'mouth': {
        'blink_enabled': False,
        'mouth_enabled': True,
        'mouth_factor': 1.7,
        'mouth_hard_minimum': 18.0,
        'mouth_debounce_ms': 900.0,
        'mouth_top': [13, 82, 312],
        'mouth_bottom': [14, 87, 317],
        'smoothing_alpha': 0.25,
    },
}
