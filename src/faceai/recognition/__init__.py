from .alignment import (
    ARCFACE_EDGE_SIZE,
    CANONICAL_LANDMARKS_112,
    align_using_facial_landmarks,
    estimate_alignment_matrix,
)
from .arcface import (
    ArcFaceEmbeddingsGenerator,
    ArcFaceEmbeddingsGeneratorOptions,
    create_image_tensor,
)

__all__ = [
    "ARCFACE_EDGE_SIZE",
    "CANONICAL_LANDMARKS_112",
    "ArcFaceEmbeddingsGenerator",
    "ArcFaceEmbeddingsGeneratorOptions",
    "align_using_facial_landmarks",
    "create_image_tensor",
    "estimate_alignment_matrix",
]
