"""
Result types and capability interfaces.

Detectors, landmark extractors, embedding generators and eye-state
classifiers are described as independent ``Protocol`` capabilities; a
concrete class implements whichever set applies to it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

import numpy as np
import numpy.typing as npt

from .exceptions import InvalidInputError
from .geometry import Point

NUM_LANDMARKS = 5


@dataclass(frozen=True)
class Detection:
    """A detected face.

    Attributes:
        box: (x, y, width, height) in pixel coordinates of the image passed
            to the detector.
        landmarks: Exactly five (x, y) points in the order left eye, right
            eye, nose, left mouth corner, right mouth corner; ``None`` if the
            model does not predict landmarks.
        confidence: Detection score in [0, 1], if known.
    """

    box: tuple[float, float, float, float]
    landmarks: tuple[Point, ...] | None = None
    confidence: float | None = None

    def __post_init__(self) -> None:
        if self.landmarks is not None and len(self.landmarks) != NUM_LANDMARKS:
            raise InvalidInputError(
                f"Expected {NUM_LANDMARKS} landmarks, got {len(self.landmarks)}"
            )

    def as_xyxy(self) -> tuple[float, float, float, float]:
        x, y, w, h = self.box
        return (x, y, x + w, y + h)

    def scaled(self, factor: float) -> Detection:
        """Copy with box and landmarks multiplied by ``factor``."""
        x, y, w, h = self.box
        landmarks = None
        if self.landmarks is not None:
            landmarks = tuple((px * factor, py * factor) for px, py in self.landmarks)
        return Detection(
            box=(x * factor, y * factor, w * factor, h * factor),
            landmarks=landmarks,
            confidence=self.confidence,
        )


@runtime_checkable
class FaceDetector(Protocol):
    """Finds faces (box + confidence) in an RGB uint8 image."""

    def detect_faces(self, image: npt.NDArray[np.uint8]) -> list[Detection]: ...


@runtime_checkable
class LandmarksCapability(Protocol):
    """Extracts the five facial landmarks and exposes eye centers."""

    def detect_landmarks(self, image: npt.NDArray[np.uint8]) -> list[Point]: ...

    def get_left_eye_center(self, landmarks: list[Point] | tuple[Point, ...]) -> Point: ...

    def get_right_eye_center(self, landmarks: list[Point] | tuple[Point, ...]) -> Point: ...


@runtime_checkable
class FaceDetectorWithLandmarks(FaceDetector, LandmarksCapability, Protocol):
    """A detector whose detections carry landmarks."""


@runtime_checkable
class FaceEmbeddingsGenerator(Protocol):
    """Maps an aligned face to a vector; same-person faces map close together."""

    def generate(self, aligned_face: npt.NDArray[np.uint8]) -> npt.NDArray[np.float32]: ...


@runtime_checkable
class EyeStateDetector(Protocol):
    def is_open(self, eye_image: npt.NDArray[np.uint8]) -> bool: ...
