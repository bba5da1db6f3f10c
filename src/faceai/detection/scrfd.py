"""
SCRFD face detector.

SCRFD models predict, for every stride level of a feature pyramid, one
score, four box distances and (optionally) ten keypoint offsets per anchor.
The number of output tensors identifies the model layout:

=======  =======  ====================  =========  ===================
outputs  levels   strides               keypoints  anchors per cell
=======  =======  ====================  =========  ===================
6        3        8, 16, 32             no         2
9        3        8, 16, 32             yes        2
10       5        8, 16, 32, 64, 128    no         1
15       5        8, 16, 32, 64, 128    yes        1
=======  =======  ====================  =========  ===================

Outputs are ordered scores first, then boxes, then keypoints, each group
ordered by ascending stride.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np
import numpy.typing as npt

from ..backends.runtime import InferenceEngine, OnnxRuntimeEngine
from ..base import Detection
from ..exceptions import InferenceError, ModelLoadingError, UnsupportedModelError
from ..geometry import Point, Size, get_alignment_angle, get_scale_factor_to_fit_into
from ..imaging import ensure_properly_sized, image_size, image_to_tensor
from .anchors import AnchorCenterCache, default_anchor_cache
from .decoding import StrideCandidates, decode_stride_candidates
from .nms import nms_xyxy

logger = logging.getLogger(__name__)

# output count -> (levels, strides, supports keypoints, anchors per cell)
_MODEL_LAYOUTS: dict[int, tuple[int, tuple[int, ...], bool, int]] = {
    6: (3, (8, 16, 32), False, 2),
    9: (3, (8, 16, 32), True, 2),
    10: (5, (8, 16, 32, 64, 128), False, 1),
    15: (5, (8, 16, 32, 64, 128), True, 1),
}

# Dynamic-input models receive images padded to a multiple of this.
_DYNAMIC_INPUT_ALIGNMENT = 32


@dataclass(frozen=True)
class ScrfdDetectorOptions:
    """Behaviour of :class:`ScrfdDetector`.

    Attributes:
        model_path: SCRFD ``.onnx`` file. Ignored when an engine is passed
            to the detector directly.
        auto_resize: Box-pad images to the model input size. When False an
            image of any other size is rejected.
        nms_threshold: IoU above which overlapping detections are dropped.
        confidence_threshold: Minimum (inclusive) detection score.
        maximum_input_size: Upper bound on the tensor size fed to models
            with dynamic input dimensions; None for no bound.
    """

    model_path: str | None = None
    auto_resize: bool = True
    nms_threshold: float = 0.4
    confidence_threshold: float = 0.5
    maximum_input_size: Size | None = Size(640, 640)


@dataclass(frozen=True)
class ModelParameters:
    """Layout of a loaded SCRFD model; derived once per detector."""

    input_size: Size | None
    input_name: str
    fmc: int
    strides: tuple[int, ...]
    supports_kps: bool
    num_anchors: int


def determine_model_parameters(engine: InferenceEngine) -> ModelParameters:
    """Read the model layout from the engine's declared tensors.

    Raises:
        UnsupportedModelError: For batched models and output counts other
            than 6, 9, 10 or 15.
    """
    if not engine.inputs:
        raise UnsupportedModelError("SCRFD model declares no input tensor.")
    model_input = engine.inputs[0]

    input_size = None
    if len(model_input.shape) >= 4:
        height, width = model_input.shape[2], model_input.shape[3]
        if isinstance(height, int) and isinstance(width, int):
            input_size = Size(width, height)

    outputs = engine.outputs
    if outputs and len(outputs[0].shape) == 3:
        raise UnsupportedModelError("Batched SCRFD models are not supported.")

    layout = _MODEL_LAYOUTS.get(len(outputs))
    if layout is None:
        raise UnsupportedModelError(
            f"{len(outputs)} output tensors are not supported for SCRFD models."
        )
    fmc, strides, supports_kps, num_anchors = layout
    return ModelParameters(
        input_size=input_size,
        input_name=model_input.name,
        fmc=fmc,
        strides=strides,
        supports_kps=supports_kps,
        num_anchors=num_anchors,
    )


class ScrfdDetector:
    """Face detector with five-point landmarks for SCRFD ONNX models.

    Safe to share between threads as long as the engine is; the only shared
    mutable state is the anchor cache.

    Args:
        options: Detector behaviour; ``options.model_path`` is required unless
            ``engine`` is given.
        engine: Pre-built inference engine.
        anchor_cache: Anchor center cache; defaults to the process-wide one.
        providers: ONNX Runtime execution providers for the engine built from
            ``options.model_path``.
        device_preference: Provider family to prefer when ``providers`` is
            not given.

    Raises:
        ModelLoadingError: If neither an engine nor a model path is given.
        UnsupportedModelError: If the model layout is not a known SCRFD one.
    """

    def __init__(
        self,
        options: ScrfdDetectorOptions | None = None,
        engine: InferenceEngine | None = None,
        anchor_cache: AnchorCenterCache | None = None,
        providers: list[str] | None = None,
        device_preference: str | None = None,
    ) -> None:
        self.options = options or ScrfdDetectorOptions()
        if engine is None:
            if not self.options.model_path:
                raise ModelLoadingError(
                    "A model path is required in options.model_path."
                )
            engine = OnnxRuntimeEngine(
                self.options.model_path,
                providers=providers,
                device_preference=device_preference,
            )
        self._engine = engine
        self._anchor_cache = anchor_cache or default_anchor_cache
        self.model_parameters = determine_model_parameters(engine)

        logger.info(
            "SCRFD detector ready (input=%s, strides=%s, kps=%s, anchors=%d)",
            "dynamic"
            if self.model_parameters.input_size is None
            else "%dx%d" % self.model_parameters.input_size,
            ",".join(str(s) for s in self.model_parameters.strides),
            self.model_parameters.supports_kps,
            self.model_parameters.num_anchors,
        )

    # ------------------------------------------------------------------ #
    # Landmark accessors
    # ------------------------------------------------------------------ #

    @staticmethod
    def get_left_eye(landmarks: Sequence[Point]) -> Point:
        return landmarks[0]

    @staticmethod
    def get_right_eye(landmarks: Sequence[Point]) -> Point:
        return landmarks[1]

    @staticmethod
    def get_nose(landmarks: Sequence[Point]) -> Point:
        return landmarks[2]

    @staticmethod
    def get_mouth_left(landmarks: Sequence[Point]) -> Point:
        return landmarks[3]

    @staticmethod
    def get_mouth_right(landmarks: Sequence[Point]) -> Point:
        return landmarks[4]

    def get_left_eye_center(self, landmarks: Sequence[Point]) -> Point:
        return self.get_left_eye(landmarks)

    def get_right_eye_center(self, landmarks: Sequence[Point]) -> Point:
        return self.get_right_eye(landmarks)

    def get_face_alignment_angle(self, landmarks: Sequence[Point]) -> float:
        """Eye-line angle in degrees; rotate by it to level the face."""
        return get_alignment_angle(
            self.get_left_eye_center(landmarks), self.get_right_eye_center(landmarks)
        )

    # ------------------------------------------------------------------ #
    # Detection
    # ------------------------------------------------------------------ #

    def target_size(self, size: Size) -> Size:
        """Tensor size used for an image of ``size``."""
        target = self.model_parameters.input_size
        if target is None:
            align = _DYNAMIC_INPUT_ALIGNMENT
            target = Size(
                math.ceil(size.width / align) * align,
                math.ceil(size.height / align) * align,
            )
        max_size = self.options.maximum_input_size
        if max_size is not None and (
            target.width > max_size.width or target.height > max_size.height
        ):
            target = Size(*max_size)
        return target

    def detect_faces(self, image: npt.NDArray[np.uint8]) -> list[Detection]:
        """Detect faces in an RGB uint8 image.

        Returns detections in image pixel coordinates, highest confidence
        first; an empty list when there are no faces.

        Raises:
            InvalidInputError: If the image has the wrong size and
                ``auto_resize`` is disabled.
        """
        original = image_size(image)
        target = self.target_size(original)
        prepared = ensure_properly_sized(image, target, not self.options.auto_resize)
        scale = 1.0 / get_scale_factor_to_fit_into(original, target)

        tensor = image_to_tensor([prepared], mean=(0.5, 0.5, 0.5), stddev=(1.0, 1.0, 1.0))
        return self.detect(tensor, image_size(prepared), scale)

    def detect_landmarks(self, image: npt.NDArray[np.uint8]) -> list[Point]:
        """Landmarks of the most confident face; empty if there is none."""
        faces = self.detect_faces(image)
        if not faces:
            return []
        best = max(faces, key=lambda f: f.confidence or 0.0)
        if best.landmarks is None:
            raise InferenceError("The loaded SCRFD model does not predict landmarks.")
        return list(best.landmarks)

    def detect(
        self,
        tensor: npt.NDArray[np.float32],
        input_size: Size,
        scale: float,
    ) -> list[Detection]:
        """Run the model on a prepared NCHW tensor and decode all strides.

        Args:
            tensor: (1, 3, H, W) float32 input.
            input_size: (width, height) of the tensor.
            scale: Factor mapping tensor coordinates back to the source image.
        """
        params = self.model_parameters
        outputs = self._engine.run(params.input_name, tensor)
        if len(outputs) < params.fmc * (3 if params.supports_kps else 2):
            raise InferenceError(
                f"Expected {params.fmc * (3 if params.supports_kps else 2)} output tensors, "
                f"got {len(outputs)}"
            )

        candidates: list[StrideCandidates] = []
        for idx, stride in enumerate(params.strides):
            kps = outputs[idx + params.fmc * 2] if params.supports_kps else None
            decoded = decode_stride_candidates(
                outputs[idx],
                outputs[idx + params.fmc],
                kps,
                stride,
                input_size,
                params.num_anchors,
                self.options.confidence_threshold,
                self._anchor_cache,
            )
            if decoded is not None:
                candidates.append(decoded)

        if not candidates:
            return []

        scores = np.concatenate([c.scores for c in candidates])
        boxes = np.concatenate([c.boxes for c in candidates])
        landmarks = None
        if params.supports_kps:
            landmarks = np.concatenate([c.landmarks for c in candidates])

        order = np.argsort(-scores, kind="stable")
        keep = order[nms_xyxy(boxes[order], self.options.nms_threshold)]
        logger.debug(
            "SCRFD kept %d/%d candidates after NMS (threshold=%.3f)",
            keep.size,
            scores.size,
            self.options.nms_threshold,
        )

        kept = StrideCandidates(
            scores=scores[keep],
            boxes=boxes[keep] * np.float32(scale),
            landmarks=None if landmarks is None else landmarks[keep] * np.float32(scale),
        )
        return kept.to_detections()
