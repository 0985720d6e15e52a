import threading
import time
from types import SimpleNamespace

import numpy as np
import pytest

from gazemouse.landmarks import InferenceSlot, LandmarkSet, first_face


def test_sparse_landmarks_report_missing_points():
    landmarks = LandmarkSet.from_mapping({0: (1, 2), 3: (4, 5)})

    assert len(landmarks) == 4
    assert landmarks.get(0) == (1.0, 2.0)
    assert landmarks.get(1) is None
    assert landmarks.get(99) is None
    assert not landmarks.has(-1)


def test_from_normalized_scales_to_pixels():
    raw = [SimpleNamespace(x=0.5, y=0.25, z=0.0), SimpleNamespace(x=1.0, y=1.0, z=0.1)]

    landmarks = LandmarkSet.from_normalized(raw, 640, 480)

    assert landmarks.get(0) == (320.0, 120.0)
    assert landmarks.get(1) == (640.0, 480.0)


def test_mean_uses_fallback_cluster():
    landmarks = LandmarkSet.from_mapping({0: (0, 0), 1: (10, 10), 5: (2, 4), 6: (4, 8)})

    assert landmarks.mean([0, 1]) == (5.0, 5.0)
    assert landmarks.mean([0, 2], fallback=[5, 6]) == (3.0, 6.0)
    assert landmarks.mean([0, 2], fallback=[5, 7]) is None


def test_flipped_mirrors_x():
    landmarks = LandmarkSet(np.array([[10.0, 5.0], [600.0, 7.0]]))

    flipped = landmarks.flipped(640)

    assert flipped.get(0) == (630.0, 5.0)
    assert flipped.get(1) == (40.0, 7.0)


def test_rejects_bad_shape():
    with pytest.raises(ValueError):
        LandmarkSet(np.zeros(5))


def test_first_face_ignores_extra_faces():
    a = LandmarkSet.from_mapping({0: (1, 1)})
    b = LandmarkSet.from_mapping({0: (2, 2)})

    assert first_face([a, b]) is a
    assert first_face([]) is None


def test_inference_slot_returns_result():
    face = LandmarkSet.from_mapping({0: (1, 1)})

    with InferenceSlot(lambda frame: [face], timeout=1.0) as slot:
        assert slot.poll() == ([], False)
        assert slot.submit("frame")
        assert slot.poll() == ([face], True)
        assert slot.poll() == ([face], False)


def test_inference_slot_drops_frames_and_marks_timed_out_result_stale():
    release = threading.Event()
    calls = []
    first = LandmarkSet.from_mapping({0: (1, 1)})
    second = LandmarkSet.from_mapping({0: (2, 2)})

    def estimate(frame):
        calls.append(frame)
        if frame == "slow":
            release.wait(5.0)
            return [second]
        return [first]

    with InferenceSlot(estimate, timeout=0.05) as slot:
        slot.submit("fast")
        assert slot.poll() == ([first], True)

        assert slot.submit("slow")
        assert slot.poll() == ([first], False)
        assert slot.timeouts == 1

        assert not slot.submit("dropped")
        assert slot.dropped == 1

        release.set()
        slot.timeout = 5.0
        assert slot.poll() == ([second], True)

    assert calls == ["fast", "slow"]


def test_inference_slot_result_collected_on_submit_is_still_fresh():
    gates = {"a": threading.Event(), "b": threading.Event()}
    faces = {"a": LandmarkSet.from_mapping({0: (1, 1)}),
             "b": LandmarkSet.from_mapping({0: (2, 2)})}

    def estimate(frame):
        gates[frame].wait(5.0)
        return [faces[frame]]

    with InferenceSlot(estimate, timeout=0.05) as slot:
        slot.submit("a")
        assert slot.poll() == ([], False)

        gates["a"].set()
        while slot.busy:
            time.sleep(0.01)
        slot.submit("b")

        # "b" is still running; "a" was collected by submit and not yet seen
        assert slot.poll() == ([faces["a"]], True)
        assert slot.poll() == ([faces["a"]], False)
        gates["b"].set()


def test_inference_slot_survives_estimator_error():
    face = LandmarkSet.from_mapping({0: (1, 1)})
    frames = iter([[face]])

    def estimate(frame):
        if frame == "bad":
            raise RuntimeError("model crashed")
        return next(frames)

    with InferenceSlot(estimate, timeout=1.0) as slot:
        slot.submit("good")
        assert slot.poll() == ([face], True)

        slot.submit("bad")
        assert slot.poll() == ([face], False)
        assert slot.errors == 1


def test_inference_slot_close_waits_for_running_inference():
    started = threading.Event()
    finished = threading.Event()

    def estimate(frame):
        started.set()
        time.sleep(0.1)
        finished.set()
        return []

    slot = InferenceSlot(estimate, timeout=0.01)
    slot.submit("frame")
    started.wait(1.0)
    slot.close(grace=2.0)

    assert finished.is_set()
