"""
Open/closed eye classification with OpenVINO's open-closed-eye-0001 model.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np
import numpy.typing as npt

from .backends.runtime import InferenceEngine, OnnxRuntimeEngine
from .exceptions import InferenceError, InvalidInputError, ModelLoadingError
from .geometry import Size
from .imaging import ensure_properly_sized, image_size, image_to_tensor, resize_pad

logger = logging.getLogger(__name__)

EYE_INPUT_SIZE = Size(32, 32)


@dataclass(frozen=True)
class OpenClosedEyeOptions:
    """Behaviour of :class:`OpenClosedEyeClassifier`.

    Attributes:
        model_path: ``open_closed_eye.onnx`` with 1x3x32x32 BGR input.
        auto_resize: Fit-and-pad eye crops of other sizes to 32x32.
    """

    model_path: str | None = None
    auto_resize: bool = True


def create_image_tensor(image: npt.NDArray[np.uint8]) -> npt.NDArray[np.float32]:
    """(1, 3, 32, 32) BGR tensor normalised as ``value / 255 - 0.5``."""
    if image_size(image) != EYE_INPUT_SIZE:
        raise InvalidInputError("The given image must be 32x32 pixels.")
    return image_to_tensor(
        [image], mean=(0.5, 0.5, 0.5), stddev=(1.0, 1.0, 1.0), convert_to_bgr=True
    )


class OpenClosedEyeClassifier:
    def __init__(
        self,
        options: OpenClosedEyeOptions | None = None,
        engine: InferenceEngine | None = None,
        providers: list[str] | None = None,
        device_preference: str | None = None,
    ) -> None:
        self.options = options or OpenClosedEyeOptions()
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
            raise ModelLoadingError("Eye state model declares no input tensor.")
        self._engine = engine
        self._input_name = engine.inputs[0].name

    def is_open(self, eye_image: npt.NDArray[np.uint8]) -> bool:
        """True if the eye in the (roughly square) crop is open."""
        eye = ensure_properly_sized(
            eye_image, EYE_INPUT_SIZE, not self.options.auto_resize, resizer=resize_pad
        )
        outputs = self._engine.run(self._input_name, create_image_tensor(eye))
        if not outputs or outputs[0].size < 2:
            raise InferenceError("Eye state model must return two class scores.")
        scores = outputs[0].ravel()
        return bool(scores[0] < scores[1])
