"""
Five-point face alignment for ArcFace-style recognition models.

A face is aligned by the least-squares affine transform that moves its
detected landmarks onto ``CANONICAL_LANDMARKS_112``, the reference
positions in a 112x112 crop used by insightface.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence

import numpy as np
import numpy.typing as npt

from ..base import NUM_LANDMARKS
from ..exceptions import AlignmentError, InvalidInputError
from ..geometry import (
    Point,
    Rectangle,
    Size,
    compose_affine,
    estimate_affinity_matrix,
    get_h_scale_factor,
    get_v_scale_factor,
    invert_affine,
    scale_matrix,
    superset_area_of_transform,
    translation_matrix,
)
from ..imaging import bounds, image_size, resize, warp_affine

logger = logging.getLogger(__name__)

ARCFACE_EDGE_SIZE = 112

# left eye, right eye, nose, left mouth corner, right mouth corner
CANONICAL_LANDMARKS_112: tuple[Point, ...] = (
    (38.2946, 51.6963),
    (73.5318, 51.5014),
    (56.0252, 71.7366),
    (41.5493, 92.3655),
    (70.7299, 92.2041),
)


def estimate_alignment_matrix(landmarks: Sequence[Point]) -> npt.NDArray[np.float64]:
    """2x3 matrix mapping ``landmarks`` onto the canonical 112x112 positions.

    Raises:
        InvalidInputError: Unless exactly five landmarks are given.
        AlignmentError: If the landmarks are degenerate (e.g. collinear).
    """
    if len(landmarks) != NUM_LANDMARKS:
        raise InvalidInputError(
            f"Expected {NUM_LANDMARKS} landmarks, got {len(landmarks)}"
        )
    pairs = [
        ((float(x), float(y)), target)
        for (x, y), target in zip(landmarks, CANONICAL_LANDMARKS_112)
    ]
    return estimate_affinity_matrix(pairs)


def align_using_facial_landmarks(
    image: npt.NDArray[np.uint8],
    landmarks: Sequence[Point],
    edge_size: int = ARCFACE_EDGE_SIZE,
) -> npt.NDArray[np.uint8]:
    """Cut the face out of ``image`` aligned the way ArcFace was trained.

    Only the part of the image the output needs is transformed: the target
    square is projected back into the source to find the region to crop,
    the scale component of the alignment is applied with a proper resize
    and the remaining rotation/translation with an affine warp.

    Args:
        image: Source RGB image; not modified.
        landmarks: The face's five landmarks in ``image`` coordinates.
        edge_size: Output edge length. Values other than 112 are useful for
            inspecting aligned faces or for custom models.

    Returns:
        An ``edge_size`` x ``edge_size`` RGB image.

    Raises:
        InvalidInputError: Unless exactly five landmarks are given.
        AlignmentError: If the transform is not invertible or the face lies
            outside the image.
    """
    if edge_size <= 0:
        raise InvalidInputError(f"edge_size must be positive, got {edge_size}")

    factor = edge_size / float(ARCFACE_EDGE_SIZE)
    matrix = compose_affine(
        scale_matrix(factor, factor), estimate_alignment_matrix(landmarks)
    )
    inverse = invert_affine(matrix)

    h_scale = get_h_scale_factor(matrix)
    v_scale = get_v_scale_factor(matrix)

    # widen by the resize kernel footprint so border samples stay in the crop
    margin = math.ceil(1.0 / min(h_scale, v_scale))
    needed = superset_area_of_transform(Rectangle(0, 0, edge_size, edge_size), inverse)
    area = bounds(image).intersect(
        Rectangle(
            needed.x - margin,
            needed.y - margin,
            needed.width + 2 * margin,
            needed.height + 2 * margin,
        )
    )
    if area.is_empty:
        raise AlignmentError("The aligned face area lies outside the image.")
    region = image[area.y : area.bottom, area.x : area.right]

    scaled = resize(
        region,
        Size(max(1, round(area.width * h_scale)), max(1, round(area.height * v_scale))),
    )
    scaled_size = image_size(scaled)
    sx = scaled_size.width / area.width
    sy = scaled_size.height / area.height

    # resized crop -> source image -> aligned output; cv2.resize maps pixel
    # centers, so crop pixel c comes from source (c + 0.5) / s - 0.5
    warp = compose_affine(
        matrix,
        translation_matrix(area.x + 0.5 / sx - 0.5, area.y + 0.5 / sy - 0.5),
        scale_matrix(1.0 / sx, 1.0 / sy),
    )
    logger.debug(
        "Aligning face: crop=%s scale=(%.3f, %.3f) edge=%d",
        tuple(area),
        h_scale,
        v_scale,
        edge_size,
    )
    return warp_affine(scaled, warp, Size(edge_size, edge_size))
