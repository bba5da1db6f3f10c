"""
faceai: face detection, alignment and recognition on ONNX Runtime.

Features:
- SCRFD face detection with five-point landmarks
- ArcFace alignment and embeddings
- Open/closed eye classification
- Face blurring, profile picture cropping and counting helpers
- Batch embedding generation and ROC metrics
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("faceai")
except PackageNotFoundError:
    # package is not installed
    __version__ = "0.0.0"

from .base import (
    Detection,
    EyeStateDetector,
    FaceDetector,
    FaceDetectorWithLandmarks,
    FaceEmbeddingsGenerator,
    LandmarksCapability,
)
from .detection import ScrfdDetector, ScrfdDetectorOptions
from .exceptions import (
    AlignmentError,
    ConfigError,
    FaceAiError,
    InferenceError,
    InvalidInputError,
    ModelLoadingError,
    UnsupportedModelError,
)
from .eyes import OpenClosedEyeClassifier, OpenClosedEyeOptions
from .geometry import Rectangle, Size
from .recognition import (
    ArcFaceEmbeddingsGenerator,
    ArcFaceEmbeddingsGeneratorOptions,
    align_using_facial_landmarks,
)

__all__ = [
    "AlignmentError",
    "ArcFaceEmbeddingsGenerator",
    "ArcFaceEmbeddingsGeneratorOptions",
    "ConfigError",
    "Detection",
    "EyeStateDetector",
    "FaceAiError",
    "FaceDetector",
    "FaceDetectorWithLandmarks",
    "FaceEmbeddingsGenerator",
    "InferenceError",
    "InvalidInputError",
    "LandmarksCapability",
    "ModelLoadingError",
    "OpenClosedEyeClassifier",
    "OpenClosedEyeOptions",
    "Rectangle",
    "ScrfdDetector",
    "ScrfdDetectorOptions",
    "Size",
    "UnsupportedModelError",
    "align_using_facial_landmarks",
]
