import numbers

import numpy as np
from typing import Iterable, Optional, Sequence, Tuple, Union


def landmarks_to_array(landmarks: Sequence) -> np.ndarray:
    """Convert a sequence of landmarks with .x and .y into an Nx2 NumPy array.

    Missing entries (None, or points without numeric x/y) become NaN rows so
    callers can test availability per joint with `np.isfinite`.

    Args:
        landmarks: sequence of objects with `.x` and `.y` (normalized 0..1), or None

    Returns:
        np.ndarray of shape (N, 2) dtype float with columns (x, y).
    """
    rows = []
    for lm in landmarks:
        x = getattr(lm, 'x', None)
        y = getattr(lm, 'y', None)
        if isinstance(x, numbers.Real) and isinstance(y, numbers.Real):
            rows.append((float(x), float(y)))
        else:
            rows.append((np.nan, np.nan))
    if not rows:
        return np.empty((0, 2), dtype=float)
    return np.array(rows, dtype=float)


def euclidean(a, b):
    """Euclidean distance between points.

    - If `a` and `b` are 1-D points, returns a scalar.
    - If arrays of points, returns distances per-row.
    """
    a = np.asarray(a, dtype=float)
    b = np.asarray(b, dtype=float)
    return np.linalg.norm(a - b, axis=-1)


def clamp(value: float, lo: float, hi: float) -> float:
    return float(min(hi, max(lo, value)))


def points_available(arr: np.ndarray, indices: Iterable[int]) -> bool:
    """True when every requested row exists and holds finite coordinates."""
    idx = list(indices)
    if not idx or max(idx) >= arr.shape[0]:
        return False
    return bool(np.isfinite(arr[idx, :]).all())


class EWMA:
    """Exponential weighted moving average for smoothing scalars or points.

    `value` stays None until the first sample, which is taken as-is.

    Example:
        s = EWMA(alpha=0.25)
        smoothed = s.update(0.42)
    """

    def __init__(self, alpha: float = 0.25, init: Union[None, float, Iterable] = None) -> None:
        alpha = float(alpha)
        if not 0.0 < alpha <= 1.0:
            raise ValueError(f"EWMA alpha must be in (0, 1], got {alpha}")
        self.alpha = alpha
        self.value = None if init is None else np.array(init, dtype=float)

    def update(self, x: Union[float, Iterable]) -> np.ndarray:
        x = np.array(x, dtype=float)
        if self.value is None:
            self.value = x
        else:
            self.value = self.alpha * x + (1 - self.alpha) * self.value
        return self.value

    def scalar(self) -> Optional[float]:
        """Current value as a plain float (None while unset)."""
        if self.value is None:
            return None
        return float(self.value)

    def reset(self) -> None:
        self.value = None


def vector_length(x: float, y: float) -> float:
    return float(np.hypot(x, y))


def step_toward(
    position: Tuple[float, float], target: Tuple[float, float], step: float
) -> Tuple[float, float]:
    """Move `position` along the straight line to `target` by `step` (never past it)."""
    p = np.asarray(position, dtype=float)
    t = np.asarray(target, dtype=float)
    delta = t - p
    dist = float(np.linalg.norm(delta))
    if dist <= 0.0 or step >= dist:
        return (float(t[0]), float(t[1]))
    moved = p + delta * (max(0.0, step) / dist)
    return (float(moved[0]), float(moved[1]))


__all__ = [
    "landmarks_to_array",
    "euclidean",
    "clamp",
    "points_available",
    "EWMA",
    "vector_length",
    "step_toward",
]
