"""
Geometry helpers: vector math, pixel rectangles and 2D affine transforms.

Affine matrices are numpy arrays of shape (2, 3) in OpenCV order::

    [[a, b, tx],
     [c, d, ty]]      x' = a*x + b*y + tx,  y' = c*x + d*y + ty

so they can be handed to ``cv2.warpAffine`` directly.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from typing import NamedTuple

import numpy as np
import numpy.typing as npt

from .exceptions import AlignmentError, InvalidInputError

Point = tuple[float, float]

# Determinants below this are treated as singular.
_SINGULAR_EPS = 1e-10


class Size(NamedTuple):
    width: int
    height: int


class Rectangle(NamedTuple):
    """Integer pixel rectangle (x, y, width, height)."""

    x: int
    y: int
    width: int
    height: int

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    def center(self) -> Point:
        return (self.x + self.width / 2.0, self.y + self.height / 2.0)

    def offset(self, dx: int, dy: int) -> Rectangle:
        return Rectangle(self.x + dx, self.y + dy, self.width, self.height)

    def intersect(self, other: Rectangle) -> Rectangle:
        """Overlapping area of both rectangles; (0, 0, 0, 0) if disjoint."""
        x1 = max(self.x, other.x)
        y1 = max(self.y, other.y)
        x2 = min(self.right, other.right)
        y2 = min(self.bottom, other.bottom)
        if x2 <= x1 or y2 <= y1:
            return Rectangle(0, 0, 0, 0)
        return Rectangle(x1, y1, x2 - x1, y2 - y1)

    def contains(self, other: Rectangle) -> bool:
        return (
            self.x <= other.x
            and self.y <= other.y
            and other.right <= self.right
            and other.bottom <= self.bottom
        )


class EyeBoxes(NamedTuple):
    left: Rectangle
    right: Rectangle


# --------------------------------------------------------------------------- #
# Vector math
# --------------------------------------------------------------------------- #


def _as_vectors(
    x: Sequence[float] | npt.NDArray, y: Sequence[float] | npt.NDArray
) -> tuple[npt.NDArray[np.float64], npt.NDArray[np.float64]]:
    a = np.asarray(x, dtype=np.float64).ravel()
    b = np.asarray(y, dtype=np.float64).ravel()
    if a.shape != b.shape:
        raise InvalidInputError(
            f"Vector lengths must match (got {a.size} and {b.size})"
        )
    return a, b


def euclidean_distance(x, y) -> float:
    a, b = _as_vectors(x, y)
    return float(np.sqrt(np.sum((a - b) ** 2)))


def euclidean_similarity(x, y) -> float:
    """Similarity in (0, 1]; 1.0 for identical vectors."""
    return 1.0 / (1.0 + euclidean_distance(x, y))


def cosine_similarity(x, y) -> float:
    a, b = _as_vectors(x, y)
    dot_product = float(np.dot(a, b))
    if dot_product == 0:
        return 0.0
    return dot_product / (math.sqrt(float(np.dot(a, a))) * math.sqrt(float(np.dot(b, b))))


def cosine_distance(x, y) -> float:
    sim = cosine_similarity(x, y)
    return 1.0 if sim == 0 else 1.0 - sim


def dot(x, y) -> float:
    a, b = _as_vectors(x, y)
    return float(np.dot(a, b))


def two_norm(vector) -> float:
    v = np.asarray(vector, dtype=np.float64).ravel()
    return float(np.sqrt(np.dot(v, v)))


def to_unit_length(vector) -> npt.NDArray[np.float32]:
    v = np.asarray(vector, dtype=np.float32).ravel()
    length = two_norm(v)
    if length == 0:
        return v.copy()
    return (v / length).astype(np.float32)


# --------------------------------------------------------------------------- #
# Rectangles
# --------------------------------------------------------------------------- #


def round_box(box: tuple[float, float, float, float]) -> Rectangle:
    """Round a float (x, y, width, height) box to a pixel rectangle."""
    x, y, w, h = box
    return Rectangle(round(x), round(y), round(w), round(h))


def get_minimum_superset_square(rectangle: Rectangle) -> Rectangle:
    """Square sharing the rectangle's center whose edge is its longer side."""
    cx = rectangle.x + rectangle.width // 2
    cy = rectangle.y + rectangle.height // 2
    longer_edge = max(rectangle.width, rectangle.height)
    half = (longer_edge + 1) // 2
    return Rectangle(cx - half, cy - half, longer_edge, longer_edge)


def scale_to_rotation_angle_invariant_crop_area(rectangle: Rectangle) -> Rectangle:
    """Area containing every pixel the rectangle could need when rotated by any angle."""
    r = int(math.sqrt(rectangle.width**2 + rectangle.height**2))
    dx = r - rectangle.width
    dy = r - rectangle.height
    return Rectangle(
        rectangle.x - dx // 2,
        rectangle.y - dy // 2,
        rectangle.width + dx,
        rectangle.height + dy,
    )


def get_scale_factor_to_fit_into(size: Size, into: Size) -> float:
    """Factor that makes ``size`` fit into ``into``; never above 1 (no upscaling)."""
    x_scale = into.width / size.width
    y_scale = into.height / size.height
    return min(x_scale, y_scale, 1.0)


def scale_rectangle(rectangle: Rectangle, factor: float) -> Rectangle:
    return Rectangle(
        round(rectangle.x * factor),
        round(rectangle.y * factor),
        round(rectangle.width * factor),
        round(rectangle.height * factor),
    )


def scale_rectangle_centered(rectangle: Rectangle, factor: float) -> Rectangle:
    w = round(rectangle.width * factor)
    h = round(rectangle.height * factor)
    dw = w - rectangle.width
    dh = h - rectangle.height
    return Rectangle(rectangle.x - int(dw / 2), rectangle.y - int(dh / 2), w, h)


def scale_size(size: Size, factor: float) -> Size:
    return Size(round(size.width * factor), round(size.height * factor))


# --------------------------------------------------------------------------- #
# Faces
# --------------------------------------------------------------------------- #


def get_alignment_angle(left_eye: Point, right_eye: Point) -> float:
    """Angle of the eye line in degrees, positive when the right eye sits lower.

    Rotating the image by this angle (OpenCV convention) levels the eyes.
    """
    dy = right_eye[1] - left_eye[1]
    dx = right_eye[0] - left_eye[0]
    return math.degrees(math.atan2(dy, dx))


def get_eye_boxes_from_center_points(
    left_eye_center: Point, right_eye_center: Point, distance_divisor: float = 3.0
) -> EyeBoxes:
    """Square boxes around both eyes, sized from the distance between them.

    Edge length is ``int(distance / distance_divisor) * 2``; 3.0 leaves some
    room around typical eyes.
    """
    dist = euclidean_distance(left_eye_center, right_eye_center)
    half_edge = dist / distance_divisor
    edge = int(half_edge) * 2
    left = Rectangle(
        round(left_eye_center[0] - half_edge),
        round(left_eye_center[1] - half_edge),
        edge,
        edge,
    )
    right = Rectangle(
        round(right_eye_center[0] - half_edge),
        round(right_eye_center[1] - half_edge),
        edge,
        edge,
    )
    return EyeBoxes(left, right)


# --------------------------------------------------------------------------- #
# Affine transforms
# --------------------------------------------------------------------------- #


def to_homogeneous(matrix: npt.NDArray) -> npt.NDArray[np.float64]:
    m = np.asarray(matrix, dtype=np.float64)
    if m.shape != (2, 3):
        raise InvalidInputError(f"Expected a 2x3 affine matrix, got shape {m.shape}")
    return np.vstack([m, [0.0, 0.0, 1.0]])


def estimate_affinity_matrix(
    pairs: Sequence[tuple[Point, Point]],
) -> npt.NDArray[np.float64]:
    """Least-squares affine transform mapping each pair's first point onto its second.

    Builds the 2n x 6 system ``A @ [a, b, tx, c, d, ty] = B`` and solves it
    with ``numpy.linalg.lstsq``.

    Raises:
        InvalidInputError: With fewer than three pairs.
        AlignmentError: If the source points are collinear, so no unique
            (invertible) transform exists.
    """
    if len(pairs) < 3:
        raise InvalidInputError(
            f"At least 3 point correspondences are required, got {len(pairs)}"
        )

    rows = len(pairs) * 2
    a_mat = np.zeros((rows, 6), dtype=np.float64)
    b_vec = np.zeros(rows, dtype=np.float64)
    for p, (src, dst) in enumerate(pairs):
        row = p * 2
        a_mat[row, 0] = src[0]
        a_mat[row, 1] = src[1]
        a_mat[row, 2] = 1.0
        b_vec[row] = dst[0]
        a_mat[row + 1, 3] = src[0]
        a_mat[row + 1, 4] = src[1]
        a_mat[row + 1, 5] = 1.0
        b_vec[row + 1] = dst[1]

    solution, _, rank, _ = np.linalg.lstsq(a_mat, b_vec, rcond=None)
    if rank < 6:
        # collinear (or coincident) source points
        raise AlignmentError("Could not invert matrix.")
    return solution.reshape(2, 3)


def invert_affine(matrix: npt.NDArray) -> npt.NDArray[np.float64]:
    """Inverse of a 2x3 affine matrix.

    Raises:
        AlignmentError: If the matrix is singular.
    """
    m = np.asarray(matrix, dtype=np.float64)
    det = m[0, 0] * m[1, 1] - m[0, 1] * m[1, 0]
    if not np.isfinite(det) or abs(det) < _SINGULAR_EPS:
        raise AlignmentError("Could not invert matrix.")
    return np.linalg.inv(to_homogeneous(m))[:2]


def compose_affine(*matrices: npt.NDArray) -> npt.NDArray[np.float64]:
    """Compose transforms; the last argument is applied first (like ``A @ B``)."""
    result = np.eye(3)
    for m in matrices:
        result = result @ to_homogeneous(m)
    return result[:2]


def scale_matrix(sx: float, sy: float) -> npt.NDArray[np.float64]:
    return np.array([[sx, 0.0, 0.0], [0.0, sy, 0.0]])


def translation_matrix(tx: float, ty: float) -> npt.NDArray[np.float64]:
    return np.array([[1.0, 0.0, tx], [0.0, 1.0, ty]])


def transform_points(
    matrix: npt.NDArray, points: Sequence[Point] | npt.NDArray
) -> npt.NDArray[np.float64]:
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    m = np.asarray(matrix, dtype=np.float64)
    return pts @ m[:, :2].T + m[:, 2]


def superset_area_of_transform(rectangle: Rectangle, matrix: npt.NDArray) -> Rectangle:
    """Pixel rectangle containing the four transformed corners of ``rectangle``.

    The far edge includes one extra pixel so a bilinear sample at the
    maximum coordinate still has its right/bottom neighbour inside.
    """
    x, y, w, h = rectangle
    corners = [(x, y), (x + w, y), (x, y + h), (x + w, y + h)]
    projected = transform_points(matrix, corners)
    x0 = math.floor(float(projected[:, 0].min()))
    y0 = math.floor(float(projected[:, 1].min()))
    x1 = math.ceil(float(projected[:, 0].max()))
    y1 = math.ceil(float(projected[:, 1].max()))
    return Rectangle(x0, y0, x1 - x0 + 1, y1 - y0 + 1)


def get_h_scale_factor(matrix: npt.NDArray) -> float:
    """Horizontal (x axis) scale factor of the transform: sqrt(a^2 + c^2)."""
    m = np.asarray(matrix, dtype=np.float64)
    return math.hypot(m[0, 0], m[1, 0])


def get_v_scale_factor(matrix: npt.NDArray) -> float:
    """Vertical (y axis) scale factor of the transform: sqrt(b^2 + d^2)."""
    m = np.asarray(matrix, dtype=np.float64)
    return math.hypot(m[0, 1], m[1, 1])
