"""Map a text layer's percentage position and transform onto a target surface.

Matrices are 3x3 homogeneous affines acting on column vectors in surface pixel
coordinates (y pointing down). The layer matrix is the product
``translate @ rotate @ scale @ skew``: each operation is applied in the frame
produced by the previous one, like successive calls on a 2D canvas context.
"""

import math

import numpy as np

from textbehind.layers import TextLayer

# Below this the linear part is treated as collapsed to a point or a line.
DEGENERATE_EPS = 1e-9


def anchor_point(x_percent: float, y_percent: float, width: int, height: int) -> tuple[float, float]:
    """Absolute anchor of a percentage position on a ``width`` x ``height`` surface."""
    return (x_percent / 100.0 * width, y_percent / 100.0 * height)


def translation(tx: float, ty: float) -> np.ndarray:
    return np.array([[1.0, 0.0, tx], [0.0, 1.0, ty], [0.0, 0.0, 1.0]])


def rotation(degrees: float) -> np.ndarray:
    """Clockwise rotation on screen (y down) for positive angles."""
    theta = math.radians(degrees)
    c, s = math.cos(theta), math.sin(theta)
    return np.array([[c, -s, 0.0], [s, c, 0.0], [0.0, 0.0, 1.0]])


def scaling(sx: float, sy: float | None = None) -> np.ndarray:
    sy = sx if sy is None else sy
    return np.array([[sx, 0.0, 0.0], [0.0, sy, 0.0], [0.0, 0.0, 1.0]])


def skewing(skew_x_degrees: float, skew_y_degrees: float) -> np.ndarray:
    kx = math.tan(math.radians(skew_x_degrees))
    ky = math.tan(math.radians(skew_y_degrees))
    return np.array([[1.0, kx, 0.0], [ky, 1.0, 0.0], [0.0, 0.0, 1.0]])


def layer_matrix(layer: TextLayer, width: int, height: int) -> np.ndarray:
    """Affine taking the layer's local frame (origin at the anchor) to surface pixels.

    The order is fixed: translate to the anchor, rotate, scale uniformly, skew.
    """
    ax, ay = anchor_point(layer.x, layer.y, width, height)
    return (
        translation(ax, ay)
        @ rotation(layer.rotation)
        @ scaling(layer.scale)
        @ skewing(layer.transform.skew_x, layer.transform.skew_y)
    )


def is_degenerate(matrix: np.ndarray) -> bool:
    """True when the matrix collapses the plane (scale 0, or a flattening skew)."""
    return abs(float(np.linalg.det(matrix[:2, :2]))) < DEGENERATE_EPS


def linear_scale(matrix: np.ndarray) -> float:
    """Geometric mean scale factor of the linear part."""
    return math.sqrt(abs(float(np.linalg.det(matrix[:2, :2]))))


def transform_points(matrix: np.ndarray, points: np.ndarray) -> np.ndarray:
    """Apply ``matrix`` to an ``(N, 2)`` array of points."""
    points = np.asarray(points, dtype=np.float64)
    homogeneous = np.hstack([points, np.ones((len(points), 1))])
    return (homogeneous @ matrix.T)[:, :2]
