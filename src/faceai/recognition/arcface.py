"""
ArcFace face embeddings.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np
import numpy.typing as npt

from ..backends.runtime import InferenceEngine, OnnxRuntimeEngine
from ..exceptions import InferenceError, InvalidInputError, ModelLoadingError
from ..geometry import Point, Size, to_unit_length
from ..imaging import ensure_properly_sized, image_size, image_to_tensor, resize_pad
from .alignment import ARCFACE_EDGE_SIZE, align_using_facial_landmarks

logger = logging.getLogger(__name__)

_INPUT_SIZE = Size(ARCFACE_EDGE_SIZE, ARCFACE_EDGE_SIZE)


@dataclass(frozen=True)
class ArcFaceEmbeddingsGeneratorOptions:
    """Behaviour of :class:`ArcFaceEmbeddingsGenerator`.

    Attributes:
        model_path: ArcFace ``.onnx`` file with 1x3x112x112 input.
        auto_resize: Fit-and-pad faces of other sizes to 112x112 instead of
            rejecting them.
    """

    model_path: str | None = None
    auto_resize: bool = True


def create_image_tensor(image: npt.NDArray[np.uint8]) -> npt.NDArray[np.float32]:
    """(1, 3, 112, 112) tensor of the raw 0..255 RGB values."""
    if image_size(image) != _INPUT_SIZE:
        raise InvalidInputError("The given image must be 112x112 pixels.")
    std = 1.0 / 255.0
    return image_to_tensor([image], mean=(0.0, 0.0, 0.0), stddev=(std, std, std))


class ArcFaceEmbeddingsGenerator:
    """Face embeddings with an ArcFace (ResNet) ONNX model.

    Embeddings are unit length, so the dot product of two embeddings is
    their cosine similarity.
    """

    def __init__(
        self,
        options: ArcFaceEmbeddingsGeneratorOptions | None = None,
        engine: InferenceEngine | None = None,
        providers: list[str] | None = None,
        device_preference: str | None = None,
    ) -> None:
        self.options = options or ArcFaceEmbeddingsGeneratorOptions()
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
        if not engine.inputs:
            raise ModelLoadingError("ArcFace model declares no input tensor.")
        self._engine = engine
        self._input_name = engine.inputs[0].name

    @staticmethod
    def align_face_using_landmarks(
        image: npt.NDArray[np.uint8],
        landmarks: Sequence[Point],
        edge_size: int = ARCFACE_EDGE_SIZE,
    ) -> npt.NDArray[np.uint8]:
        return align_using_facial_landmarks(image, landmarks, edge_size)

    def generate(self, aligned_face: npt.NDArray[np.uint8]) -> npt.NDArray[np.float32]:
        """Unit-length embedding of an aligned face.

        Raises:
            InvalidInputError: If the face is not 112x112 and ``auto_resize``
                is disabled.
            InferenceError: If the model fails or returns nothing.
        """
        face = ensure_properly_sized(
            aligned_face, _INPUT_SIZE, not self.options.auto_resize, resizer=resize_pad
        )
        outputs = self._engine.run(self._input_name, create_image_tensor(face))
        if not outputs or outputs[0].size == 0:
            raise InferenceError("ArcFace model returned no embedding.")
        return to_unit_length(outputs[0].ravel())
