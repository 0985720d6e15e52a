from typing import Tuple

import numpy as np


Point = Tuple[float, float]


def smooth(current: Point, target: Point, alpha: float, deadzone: float = 0.0) -> Point:
    """
    One step of exponential smoothing toward `target`
    Higher alpha follows faster but passes more jitter through.
    """
    if not 0.0 < alpha <= 1.0:
        raise ValueError(f"alpha must be in (0, 1], got {alpha}")

    current_arr = np.asarray(current, dtype=float)
    delta = np.asarray(target, dtype=float) - current_arr

    # Hold still on sub-deadzone changes
    if deadzone > 0 and np.hypot(delta[0], delta[1]) < deadzone:
        return float(current_arr[0]), float(current_arr[1])

    x, y = current_arr + delta * alpha
    return float(x), float(y)


class SmoothingFilter:
    """Exponential moving average of the cursor position"""

    def __init__(self, alpha: float = 0.2, deadzone: float = 0.0, start: Point = (0.0, 0.0)):
        if not 0.0 < alpha <= 1.0:
            raise ValueError(f"alpha must be in (0, 1], got {alpha}")
        self.alpha = alpha
        self.deadzone = deadzone
        self.position: Point = (float(start[0]), float(start[1]))

    def update(self, target: Point) -> Point:
        """Move toward target and return the smoothed position"""
        self.position = smooth(self.position, target, self.alpha, self.deadzone)
        return self.position

    def reset(self, position: Point):
        self.position = (float(position[0]), float(position[1]))
