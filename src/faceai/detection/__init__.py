"""
SCRFD face detection: anchors, per-stride decoding, NMS and the detector.
"""

from .anchors import (
    AnchorCenterCache,
    SlidingExpirationCache,
    default_anchor_cache,
    generate_anchor_centers,
    get_anchor_center,
)
from .decoding import StrideCandidates, decode_stride, decode_stride_candidates
from .nms import nms_xyxy, non_max_suppression
from .scrfd import (
    ModelParameters,
    ScrfdDetector,
    ScrfdDetectorOptions,
    determine_model_parameters,
)

__all__ = [
    "AnchorCenterCache",
    "ModelParameters",
    "ScrfdDetector",
    "ScrfdDetectorOptions",
    "SlidingExpirationCache",
    "StrideCandidates",
    "decode_stride",
    "decode_stride_candidates",
    "default_anchor_cache",
    "determine_model_parameters",
    "generate_anchor_centers",
    "get_anchor_center",
    "nms_xyxy",
    "non_max_suppression",
]
