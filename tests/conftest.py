import pytest

from gazemouse.config import FACE_MESH_REFINED_POINTS
from gazemouse.landmarks import LandmarkSet


LEFT_EYELID_TOP = [159, 160, 161, 246]
LEFT_EYELID_BOTTOM = [145, 144, 153, 154]
RIGHT_EYELID_TOP = [386, 385, 384, 398]
RIGHT_EYELID_BOTTOM = [374, 373, 380, 381]
MOUTH_TOP = [13, 82, 312]
MOUTH_BOTTOM = [14, 87, 317]
LEFT_IRIS = [468, 469, 470, 471]
RIGHT_IRIS = [473, 474, 475, 476]


def build_face(nose=(100.0, 100.0), iris=(100.0, 100.0), face_width=200.0,
               face_height=240.0, eye_gap=10.0, mouth_gap=4.0, with_iris=True,
               corners=None, drop=()):
    """A synthetic Face Mesh landmark set with controllable geometry"""
    nx, ny = nose
    points = {
        1: (nx, ny),
        234: (nx - face_width / 2, ny),
        454: (nx + face_width / 2, ny),
        10: (nx, ny - face_height / 2),
        152: (nx, ny + face_height / 2),
    }

    if with_iris:
        for idx in LEFT_IRIS + RIGHT_IRIS:
            points[idx] = iris

    corners = corners if corners is not None else iris
    for idx in (33, 133, 362, 263):
        points[idx] = corners

    for top, bottom in zip(LEFT_EYELID_TOP + RIGHT_EYELID_TOP,
                           LEFT_EYELID_BOTTOM + RIGHT_EYELID_BOTTOM):
        points[top] = (nx, 80.0)
        points[bottom] = (nx, 80.0 + eye_gap)

    for top, bottom in zip(MOUTH_TOP, MOUTH_BOTTOM):
        points[top] = (nx, 150.0)
        points[bottom] = (nx, 150.0 + mouth_gap)

    for idx in drop:
        points.pop(idx, None)

    size = FACE_MESH_REFINED_POINTS if with_iris else 468
    return LandmarkSet.from_mapping(points, size=size)


@pytest.fixture
def make_face():
    return build_face
