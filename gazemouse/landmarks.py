"""
Facial landmarks in frame-pixel space, and the MediaPipe Face Mesh source
"""

from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np


Point = Tuple[float, float]


class LandmarkSet:
    """
    Indexed 2D landmark coordinates for one face in one frame

    Backed by an (N, 2) array; a missing landmark is a NaN row, so an
    incomplete model output can be represented and queried safely.
    """

    def __init__(self, points):
        points = np.asarray(points, dtype=float)
        if points.ndim != 2 or points.shape[1] < 2:
            raise ValueError(f"expected an (N, 2) array of points, got shape {points.shape}")
        self.points = points[:, :2]

    @classmethod
    def from_mapping(cls, mapping: Dict[int, Point], size: Optional[int] = None) -> "LandmarkSet":
        """Build a sparse set; indices not in the mapping are missing"""
        if size is None:
            size = max(mapping) + 1 if mapping else 0
        points = np.full((size, 2), np.nan)
        for idx, (x, y) in mapping.items():
            points[idx] = (x, y)
        return cls(points)

    @classmethod
    def from_normalized(cls, landmarks, width: int, height: int) -> "LandmarkSet":
        """Convert MediaPipe normalized landmarks to frame pixels"""
        points = np.array([(lm.x * width, lm.y * height) for lm in landmarks], dtype=float)
        return cls(points.reshape(-1, 2))

    def __len__(self) -> int:
        return len(self.points)

    def has(self, index: int) -> bool:
        return 0 <= index < len(self.points) and not np.isnan(self.points[index]).any()

    def get(self, index: int) -> Optional[Point]:
        """Landmark coordinate, or None if the model did not produce it"""
        if not self.has(index):
            return None
        x, y = self.points[index]
        return float(x), float(y)

    def mean(self, indices: Sequence[int], fallback: Optional[Sequence[int]] = None) -> Optional[Point]:
        """
        Average of a landmark cluster
        Uses the fallback cluster when any primary point is missing,
        and returns None when neither cluster is complete.
        """
        for cluster in (indices, fallback):
            if cluster and all(self.has(i) for i in cluster):
                x, y = self.points[list(cluster)].mean(axis=0)
                return float(x), float(y)
        return None

    def flipped(self, width: float) -> "LandmarkSet":
        """Landmarks of the horizontally mirrored frame"""
        points = self.points.copy()
        points[:, 0] = width - points[:, 0]
        return LandmarkSet(points)


class FaceMeshSource:
    """MediaPipe Face Mesh wrapped as `estimate(frame) -> list[LandmarkSet]`"""

    def __init__(self, refine_landmarks: bool = True,
                 min_detection_confidence: float = 0.5,
                 min_tracking_confidence: float = 0.5):
        # Loaded here so the pipeline can be used without the model runtime
        import cv2
        import mediapipe as mp

        self._cv2 = cv2
        self.mp_face_mesh = mp.solutions.face_mesh
        self.face_mesh = self.mp_face_mesh.FaceMesh(
            max_num_faces=1,
            refine_landmarks=refine_landmarks,
            min_detection_confidence=min_detection_confidence,
            min_tracking_confidence=min_tracking_confidence)

    def estimate(self, frame) -> List[LandmarkSet]:
        """Detect faces in a BGR frame"""
        h, w = frame.shape[:2]
        rgb_frame = self._cv2.cvtColor(frame, self._cv2.COLOR_BGR2RGB)
        results = self.face_mesh.process(rgb_frame)

        if not results.multi_face_landmarks:
            return []
        return [LandmarkSet.from_normalized(face.landmark, w, h)
                for face in results.multi_face_landmarks]

    def close(self):
        self.face_mesh.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


class InferenceSlot:
    """
    Runs a landmark estimator on a worker thread, one request at a time

    New frames are dropped while an inference is still pending. `poll()`
    waits at most `timeout` seconds and returns `(faces, fresh)`. On
    expiry it returns the previous result with `fresh=False`, so the
    caller can show it without acting on the same frame twice.
    """

    def __init__(self, estimate: Callable[[object], List[LandmarkSet]], timeout: float = 0.2):
        self.estimate = estimate
        self.timeout = timeout
        self._executor = ThreadPoolExecutor(max_workers=1)
        self._pending: Optional[Future] = None
        self._last: List[LandmarkSet] = []
        self._unseen = False
        self.dropped = 0
        self.timeouts = 0
        self.errors = 0

    @property
    def busy(self) -> bool:
        return self._pending is not None and not self._pending.done()

    def submit(self, frame) -> bool:
        """Queue a frame; returns False if it was dropped"""
        if self.busy:
            self.dropped += 1
            return False
        if self._pending is not None:
            self._collect(self._pending)
        self._pending = self._executor.submit(self.estimate, frame)
        return True

    def poll(self) -> Tuple[List[LandmarkSet], bool]:
        """Latest faces and whether they are new since the last poll"""
        if self._pending is not None:
            done, _ = wait([self._pending], timeout=self.timeout)
            if done:
                self._collect(self._pending)
                self._pending = None
            else:
                self.timeouts += 1
        fresh, self._unseen = self._unseen, False
        return self._last, fresh

    def _collect(self, future: Future):
        # An estimator failure costs one frame, the previous result stands
        error = future.exception()
        if error is not None:
            self.errors += 1
            print(f"⚠️  Landmark inference failed: {error}. Keeping previous result.")
            return
        self._last = future.result()
        self._unseen = True

    def close(self, grace: float = 1.0):
        """Stop the worker, giving a running inference `grace` seconds to finish"""
        if self._pending is not None:
            wait([self._pending], timeout=grace)
        self._executor.shutdown(wait=False)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


def first_face(faces: Iterable[LandmarkSet]) -> Optional[LandmarkSet]:
    """Only one face drives the cursor; extra faces are ignored"""
    for face in faces:
        return face
    return None
