"""
Gaze to viewport mapping

The landmark estimate is the iris position relative to the nose tip,
normalized by face size so it does not depend on distance to the camera.
A fresher estimate from a secondary gaze service overrides it.
"""

import json
import math
import socket
import threading
import time
from typing import Optional, Tuple

import numpy as np

from .calibration import OffsetCalibrator
from .landmarks import LandmarkSet


Point = Tuple[float, float]
Viewport = Tuple[float, float]

# A client that never sends a newline cannot grow the buffer past this
MAX_LINE_BYTES = 64 * 1024


def clamp_to_viewport(x: float, y: float, viewport: Viewport) -> Point:
    w, h = viewport
    return float(np.clip(x, 0, w)), float(np.clip(y, 0, h))


class GazeMapper:
    """Maps face landmarks to a target point in the viewport"""

    def __init__(self, config):
        self.config = config
        self.center = OffsetCalibrator(config.center_samples)

    def pointer(self, landmarks: LandmarkSet) -> Optional[Point]:
        """
        Midpoint of both iris centers
        Falls back to eye-corner centers when the model gave no iris points
        """
        cfg = self.config
        left = landmarks.mean(cfg.left_iris, fallback=cfg.left_eye_corners)
        right = landmarks.mean(cfg.right_iris, fallback=cfg.right_eye_corners)
        if left is None or right is None:
            return None
        return (left[0] + right[0]) / 2, (left[1] + right[1]) / 2

    def face_scale(self, landmarks: LandmarkSet) -> Tuple[float, float]:
        """Face width and height, clamped so the offset never divides by ~0"""
        cfg = self.config
        width, height = cfg.min_face_width, cfg.min_face_height

        left, right = landmarks.get(cfg.face_left), landmarks.get(cfg.face_right)
        if left is not None and right is not None:
            width = max(cfg.min_face_width, abs(right[0] - left[0]))

        top, bottom = landmarks.get(cfg.face_top), landmarks.get(cfg.face_bottom)
        if top is not None and bottom is not None:
            height = max(cfg.min_face_height, abs(bottom[1] - top[1]))

        return width, height

    def offset(self, landmarks: LandmarkSet) -> Optional[Point]:
        """Normalized pointer offset from the nose tip"""
        anchor = landmarks.get(self.config.nose_tip)
        pointer = self.pointer(landmarks)
        if anchor is None or pointer is None:
            return None

        face_w, face_h = self.face_scale(landmarks)
        return (pointer[0] - anchor[0]) / face_w, (pointer[1] - anchor[1]) / face_h

    def map(self, landmarks: LandmarkSet, viewport: Viewport) -> Optional[Point]:
        """
        Target viewport point for this frame, or None if the anchor or
        pointer landmarks are unavailable

        Both axes are `size/2 + d * size * gain` in image space. Mirroring
        turns the horizontal axis into `w/2 - d * w * gain`. The vertical
        axis keeps the plus sign on purpose: the offset is in image
        coordinates (y grows downward), so looking down moves the cursor
        down. Writing it as `h/2 - d * h * gain` would invert vertical
        control.
        """
        offset = self.offset(landmarks)
        if offset is None:
            return None

        dx, dy = offset
        cx, cy = self.center.ingest(dx, dy)
        dx -= cx
        dy -= cy

        w, h = viewport
        x = w / 2 + dx * w * self.config.h_gain
        y = h / 2 + dy * h * self.config.v_gain

        # The only mirror in the pipeline: frames reach the model unflipped
        if self.config.mirror:
            x = w - x

        return clamp_to_viewport(x, y, viewport)

    def reset(self):
        self.center.reset()


class ExternalGaze:
    """
    Latest point from a secondary gaze service, with its arrival time

    Written from the feed thread, read without blocking at the top of
    each tick. Absence or staleness is the normal case.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._point: Optional[Point] = None
        self._timestamp = float('-inf')

    def push(self, x, y, timestamp: Optional[float] = None) -> bool:
        """Store a point; malformed values are rejected and return False"""
        try:
            x, y = float(x), float(y)
        except (TypeError, ValueError):
            return False
        if not (math.isfinite(x) and math.isfinite(y)):
            return False

        if timestamp is None:
            timestamp = time.monotonic()
        with self._lock:
            self._point = (x, y)
            self._timestamp = timestamp
        return True

    def latest(self) -> Tuple[Optional[Point], float]:
        with self._lock:
            return self._point, self._timestamp

    def fresh(self, now: float, stale_window: float) -> Optional[Point]:
        """The latest point if it arrived less than `stale_window` seconds ago"""
        point, timestamp = self.latest()
        if point is None or now - timestamp >= stale_window:
            return None
        return point

    def clear(self):
        with self._lock:
            self._point = None
            self._timestamp = float('-inf')


class GazeFeed:
    """
    TCP listener for a secondary gaze-regression service

    Each client sends newline-delimited JSON objects with viewport pixel
    coordinates, e.g. {"x": 812.5, "y": 340.0}. Lines that do not parse
    are ignored; the cell simply goes stale.
    """

    def __init__(self, target: ExternalGaze, host: str = "127.0.0.1", port: int = 8766):
        self.target = target
        self.host = host
        self.port = port
        self._sock: Optional[socket.socket] = None
        self._running = False
        self._thread: Optional[threading.Thread] = None
        self.received = 0
        self.rejected = 0
        self._buffer = b""
        self._discarding = False

    def start(self):
        if self._running:
            return
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self._sock.bind((self.host, self.port))
        self._sock.listen(1)
        self._sock.settimeout(0.5)
        self.port = self._sock.getsockname()[1]
        self._running = True
        self._thread = threading.Thread(target=self._accept_loop, daemon=True)
        self._thread.start()
        print(f"✓ Gaze feed listening on tcp://{self.host}:{self.port}")

    def _accept_loop(self):
        while self._running:
            try:
                conn, addr = self._sock.accept()
            except socket.timeout:
                continue
            except OSError:
                break
            print(f"✓ Gaze feed connected: {addr}")
            with conn:
                self._read_lines(conn)

    def _read_lines(self, conn: socket.socket):
        conn.settimeout(0.5)
        self._buffer = b""
        self._discarding = False
        while self._running:
            try:
                chunk = conn.recv(4096)
            except socket.timeout:
                continue
            except OSError:
                return
            if not chunk:
                return
            self.receive(chunk)

    def receive(self, chunk: bytes):
        """Append raw bytes from the connection and handle every complete line"""
        *lines, self._buffer = (self._buffer + chunk).split(b"\n")
        for line in lines:
            if self._discarding:
                # Tail of an overlong line, already counted
                self._discarding = False
                continue
            self.handle_line(line)

        if len(self._buffer) > MAX_LINE_BYTES:
            self.rejected += 1
            self._buffer = b""
            self._discarding = True
        elif self._discarding:
            self._buffer = b""

    def handle_line(self, line: bytes) -> bool:
        """Parse one JSON line and push it into the cell"""
        try:
            message = json.loads(line)
            accepted = self.target.push(message["x"], message["y"])
        except (ValueError, KeyError, TypeError):
            accepted = False

        if accepted:
            self.received += 1
        else:
            self.rejected += 1
        return accepted

    def stop(self):
        self._running = False
        if self._sock is not None:
            self._sock.close()
            self._sock = None
        if self._thread is not None:
            self._thread.join(timeout=1.0)
            self._thread = None
