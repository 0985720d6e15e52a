import json

import pytest

from gazemouse.config import Config
from gazemouse.gaze import MAX_LINE_BYTES, ExternalGaze, GazeFeed, GazeMapper


VIEWPORT = (800, 600)


def test_looking_dead_center_maps_to_viewport_center(make_face):
    mapper = GazeMapper(Config())
    face = make_face(nose=(100, 100), iris=(100, 100), face_width=200)

    assert mapper.map(face, VIEWPORT) == pytest.approx((400.0, 300.0))


def test_neutral_offset_is_subtracted(make_face):
    mapper = GazeMapper(Config(center_samples=5))
    # User's relaxed pose has the iris 20px right of and 24px below the nose
    neutral = make_face(nose=(100, 100), iris=(120, 124))

    for _ in range(5):
        target = mapper.map(neutral, VIEWPORT)

    assert mapper.center.ready
    assert target == pytest.approx((400.0, 300.0))


def test_mirroring_applied_once(make_face):
    """Iris moving toward image-left means the user looks to their right"""
    looking = make_face(nose=(100, 100), iris=(90, 100), face_width=200)
    center = make_face(nose=(100, 100), iris=(100, 100), face_width=200)

    mirrored = GazeMapper(Config(mirror=True, center_samples=1))
    mirrored.map(center, VIEWPORT)
    x, _ = mirrored.map(looking, VIEWPORT)
    # dx = -0.05 -> 400 - 0.05 * 800 * 1.5 = 340, mirrored to 460
    assert x == pytest.approx(460.0)

    plain = GazeMapper(Config(mirror=False, center_samples=1))
    plain.map(center, VIEWPORT)
    x, _ = plain.map(looking, VIEWPORT)
    assert x == pytest.approx(340.0)


def test_flipped_frame_without_mirror_matches_mirrored_mapping(make_face):
    face = make_face(nose=(300, 200), iris=(280, 215))
    flipped = face.flipped(640)

    mirrored = GazeMapper(Config(mirror=True, center_samples=1))
    plain = GazeMapper(Config(mirror=False, center_samples=1))
    neutral = make_face(nose=(300, 200), iris=(300, 200))
    mirrored.map(neutral, VIEWPORT)
    plain.map(neutral.flipped(640), VIEWPORT)

    assert mirrored.map(face, VIEWPORT) == pytest.approx(plain.map(flipped, VIEWPORT))


def test_vertical_offset_moves_cursor_down(make_face):
    mapper = GazeMapper(Config(center_samples=1))
    mapper.map(make_face(iris=(100, 100)), VIEWPORT)

    _, y = mapper.map(make_face(iris=(100, 112), face_height=240), VIEWPORT)

    # dy = 0.05 -> 300 + 0.05 * 600 * 1.5
    assert y == pytest.approx(345.0)


@pytest.mark.parametrize("iris", [(-5000, -5000), (5000, 5000), (-5000, 5000), (1e9, -1e9)])
def test_output_clamped_to_viewport(make_face, iris):
    mapper = GazeMapper(Config(center_samples=1))
    mapper.map(make_face(), VIEWPORT)

    x, y = mapper.map(make_face(iris=iris, face_width=1, face_height=1), VIEWPORT)

    assert 0 <= x <= VIEWPORT[0]
    assert 0 <= y <= VIEWPORT[1]


def test_face_scale_clamped_to_minimum(make_face):
    mapper = GazeMapper(Config())
    face = make_face(face_width=0, face_height=-10)

    assert mapper.face_scale(face) == (40.0, 60.0)


def test_missing_iris_falls_back_to_eye_corners(make_face):
    mapper = GazeMapper(Config())
    face = make_face(with_iris=False, corners=(110, 95))

    assert len(face) == 468
    assert mapper.pointer(face) == pytest.approx((110.0, 95.0))


def test_missing_anchor_skips_mapping(make_face):
    mapper = GazeMapper(Config())
    face = make_face(drop=[1])

    assert mapper.map(face, VIEWPORT) is None
    assert mapper.center.neutral == (0.0, 0.0)


def test_external_gaze_freshness():
    cell = ExternalGaze()
    assert cell.fresh(now=10.0, stale_window=0.4) is None

    cell.push(120, 340, timestamp=10.0)

    assert cell.fresh(now=10.2, stale_window=0.4) == (120.0, 340.0)
    assert cell.fresh(now=10.4, stale_window=0.4) is None


@pytest.mark.parametrize("x, y", [(None, 3), ("abc", 1), (float('nan'), 1), (1, float('inf'))])
def test_external_gaze_rejects_malformed(x, y):
    cell = ExternalGaze()
    cell.push(5, 5, timestamp=1.0)

    assert not cell.push(x, y, timestamp=2.0)
    assert cell.latest() == ((5.0, 5.0), 1.0)


def test_gaze_feed_parses_json_lines():
    cell = ExternalGaze()
    feed = GazeFeed(cell)

    assert feed.handle_line(json.dumps({"x": 812.5, "y": 340}).encode())
    assert not feed.handle_line(b"not json")
    assert not feed.handle_line(b'{"x": 1}')
    assert not feed.handle_line(b'[1, 2]')

    point, _ = cell.latest()
    assert point == (812.5, 340.0)
    assert feed.received == 1
    assert feed.rejected == 3


def test_gaze_feed_joins_lines_split_across_chunks():
    cell = ExternalGaze()
    feed = GazeFeed(cell)

    feed.receive(b'{"x": 10, ')
    feed.receive(b'"y": 20}\n{"x": 30, "y": 40}\n{"x"')

    assert feed.received == 2
    assert cell.latest()[0] == (30.0, 40.0)


def test_gaze_feed_drops_overlong_line():
    cell = ExternalGaze()
    feed = GazeFeed(cell)

    for _ in range(40):
        feed.receive(b"x" * 4096)
    assert feed.rejected == 1
    assert len(feed._buffer) <= MAX_LINE_BYTES

    feed.receive(b'tail of the long line\n{"x": 5, "y": 6}\n')

    assert feed.rejected == 1
    assert feed.received == 1
    assert cell.latest()[0] == (5.0, 6.0)
