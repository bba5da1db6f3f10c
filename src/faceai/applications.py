"""
Ready-made tasks built from a face detector and the other components.
"""

from __future__ import annotations

import logging
from typing import NamedTuple

import numpy as np
import numpy.typing as npt

from .base import EyeStateDetector, FaceDetector, FaceDetectorWithLandmarks, LandmarksCapability
from .exceptions import InferenceError, InvalidInputError
from .geometry import (
    get_alignment_angle,
    get_eye_boxes_from_center_points,
    round_box,
    scale_rectangle_centered,
)
from .imaging import bounds, crop_aligned, gaussian_blur_region

logger = logging.getLogger(__name__)

# Eye crops narrower than this are too small to classify reliably.
MIN_EYE_EDGE_SIZE = 16
EYE_CROP_EDGE_SIZE = 32


class EyeStateCounts(NamedTuple):
    faces: int
    open_eyes: int
    closed_eyes: int


def blur_faces(
    detector: FaceDetector,
    image: npt.NDArray[np.uint8],
    blur_sigma_factor: float = 10.0,
) -> int:
    """Blur every detected face in place and return the number of faces.

    ``sigma = max(max(width, height) / blur_sigma_factor, blur_sigma_factor)``
    """
    faces = detector.detect_faces(image)
    image_bounds = bounds(image)
    for face in faces:
        area = image_bounds.intersect(round_box(face.box))
        sigma = max(max(area.width, area.height) / blur_sigma_factor, blur_sigma_factor)
        gaussian_blur_region(image, area, sigma)
    logger.debug("Blurred %d faces", len(faces))
    return len(faces)


def crop_profile_picture(
    detector: FaceDetector,
    image: npt.NDArray[np.uint8],
    max_edge_size: int | None = 640,
    scale_factor: float = 1.35,
) -> npt.NDArray[np.uint8]:
    """Square, upright crop around the most confident face.

    The face box is enlarged by ``scale_factor`` around its center. If the
    detector provides landmarks the crop is rotated so the eyes are level.

    Raises:
        InvalidInputError: If no face is found.
    """
    faces = detector.detect_faces(image)
    if not faces:
        raise InvalidInputError("No faces could be found in the given image")

    best = max(faces, key=lambda f: f.confidence or 0.0)
    area = scale_rectangle_centered(round_box(best.box), scale_factor)
    area = bounds(image).intersect(area)

    angle = 0.0
    if best.landmarks is not None and isinstance(detector, LandmarksCapability):
        angle = get_alignment_angle(
            detector.get_left_eye_center(best.landmarks),
            detector.get_right_eye_center(best.landmarks),
        )
    return crop_aligned(image, area, angle, max_edge_size)


def count_faces(detector: FaceDetector, image: npt.NDArray[np.uint8]) -> int:
    return len(detector.detect_faces(image))


def count_eye_states(
    detector: FaceDetectorWithLandmarks,
    eye_state_detector: EyeStateDetector,
    image: npt.NDArray[np.uint8],
    eye_distance_divisor: float = 3.0,
) -> EyeStateCounts:
    """Count faces plus open and closed eyes.

    Eye state is only estimated for eye boxes at least 16 pixels wide, so
    ``faces * 2`` can exceed ``open_eyes + closed_eyes``.

    Raises:
        InferenceError: If a detection has no landmarks.
    """
    faces = detector.detect_faces(image)
    open_eyes = 0
    closed_eyes = 0
    for face in faces:
        if face.landmarks is None:
            raise InferenceError(
                "Facial landmarks are required but not given for all faces found."
            )
        left = detector.get_left_eye_center(face.landmarks)
        right = detector.get_right_eye_center(face.landmarks)
        angle = get_alignment_angle(left, right)
        boxes = get_eye_boxes_from_center_points(left, right, eye_distance_divisor)

        if min(boxes.left.width, boxes.right.width) < MIN_EYE_EDGE_SIZE:
            logger.debug("Skipping eyes of face at %s: boxes too small", face.box)
            continue

        for box in boxes:
            eye = crop_aligned(image, box, angle, EYE_CROP_EDGE_SIZE)
            if eye_state_detector.is_open(eye):
                open_eyes += 1
            else:
                closed_eyes += 1

    return EyeStateCounts(len(faces), open_eyes, closed_eyes)
