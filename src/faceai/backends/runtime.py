"""
Inference engines.

Models are executed through the small ``InferenceEngine`` protocol: the
engine declares its input and output tensors and runs one named input
tensor, returning the outputs in declaration order. ``OnnxRuntimeEngine``
is the production implementation on top of ``onnxruntime``; tests supply
in-memory fakes.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import numpy as np
import numpy.typing as npt

from ..exceptions import InferenceError, ModelLoadingError

# onnxruntime is an external dependency; we import lazily to surface a clear error
try:
    import onnxruntime as ort
except ImportError:  # pragma: no cover
    ort = None

logger = logging.getLogger(__name__)

_PROVIDER_PRIORITY = [
    "CUDAExecutionProvider",
    "CoreMLExecutionProvider",
    "DmlExecutionProvider",
    "OpenVINOExecutionProvider",
    "TensorrtExecutionProvider",
    "CPUExecutionProvider",
]

_DEVICE_PROVIDERS = {
    "cuda": "CUDAExecutionProvider",
    "coreml": "CoreMLExecutionProvider",
    "directml": "DmlExecutionProvider",
    "openvino": "OpenVINOExecutionProvider",
}


@dataclass(frozen=True)
class TensorInfo:
    """Name and declared shape of a model tensor.

    Dynamic dimensions are reported as ``None`` (or the symbolic name the
    model uses for them).
    """

    name: str
    shape: tuple[int | str | None, ...]

    @property
    def rank(self) -> int:
        return len(self.shape)


@runtime_checkable
class InferenceEngine(Protocol):
    @property
    def inputs(self) -> Sequence[TensorInfo]: ...

    @property
    def outputs(self) -> Sequence[TensorInfo]: ...

    def run(
        self, input_name: str, tensor: npt.NDArray[np.float32]
    ) -> list[npt.NDArray[np.float32]]: ...


def default_providers(device_preference: str | None = None) -> list[str]:
    """Available execution providers, best first.

    ``device_preference`` ("cuda", "coreml", "directml", "openvino") moves
    the matching provider to the front when it is available.
    """
    if ort is None:
        return ["CPUExecutionProvider"]
    available = set(ort.get_available_providers())
    selected = [prov for prov in _PROVIDER_PRIORITY if prov in available]

    desired = _DEVICE_PROVIDERS.get((device_preference or "").lower())
    if desired and desired in selected:
        selected.insert(0, selected.pop(selected.index(desired)))

    return selected or ["CPUExecutionProvider"]


def infer_device(providers: Sequence[str]) -> str:
    provs = [p.lower() for p in providers]
    if any("cuda" in p for p in provs):
        return "cuda"
    if any("coreml" in p for p in provs):
        return "coreml"
    if any("dml" in p for p in provs):
        return "directml"
    if any("openvino" in p for p in provs):
        return "openvino"
    return "cpu"


def _dimension(value: Any) -> int | str | None:
    if isinstance(value, int) and value > 0:
        return value
    if isinstance(value, str):
        return value
    return None


class OnnxRuntimeEngine:
    """``InferenceEngine`` backed by an ``onnxruntime.InferenceSession``.

    Args:
        model: Path to an ``.onnx`` file or the serialized model bytes.
        providers: Explicit execution providers; defaults to every available
            provider in priority order.
        device_preference: Provider family to try first when ``providers``
            is not given.
    """

    def __init__(
        self,
        model: str | Path | bytes,
        providers: list[str] | None = None,
        device_preference: str | None = None,
    ) -> None:
        if ort is None:
            raise ImportError(
                "onnxruntime is required for OnnxRuntimeEngine. Install with `pip install onnxruntime`."
            )

        if not isinstance(model, bytes):
            path = Path(model)
            if not path.exists():
                raise ModelLoadingError(f"Model not found: {path}")
            source: str | bytes = str(path)
            label = path.name
        else:
            source = model
            label = f"<{len(model)} bytes>"

        self._providers = providers or default_providers(device_preference)

        start = time.time()
        sess_options = ort.SessionOptions()
        sess_options.graph_optimization_level = ort.GraphOptimizationLevel.ORT_ENABLE_ALL
        try:
            self._session = ort.InferenceSession(
                source, sess_options, providers=self._providers
            )
        except Exception as exc:
            raise ModelLoadingError(f"Failed to load ONNX model {label}: {exc}") from exc

        self._inputs = tuple(
            TensorInfo(node.name, tuple(_dimension(d) for d in node.shape))
            for node in self._session.get_inputs()
        )
        self._outputs = tuple(
            TensorInfo(node.name, tuple(_dimension(d) for d in node.shape))
            for node in self._session.get_outputs()
        )
        self._output_names = [info.name for info in self._outputs]

        logger.info(
            "Loaded %s in %.2fs (providers=%s, inputs=%d, outputs=%d)",
            label,
            time.time() - start,
            ",".join(self._providers),
            len(self._inputs),
            len(self._outputs),
        )

    @property
    def inputs(self) -> tuple[TensorInfo, ...]:
        return self._inputs

    @property
    def outputs(self) -> tuple[TensorInfo, ...]:
        return self._outputs

    @property
    def providers(self) -> list[str]:
        return list(self._providers)

    @property
    def device(self) -> str:
        return infer_device(self._providers)

    def run(
        self, input_name: str, tensor: npt.NDArray[np.float32]
    ) -> list[npt.NDArray[np.float32]]:
        try:
            results = self._session.run(self._output_names, {input_name: tensor})
        except Exception as exc:
            raise InferenceError(f"ONNX inference failed: {exc}") from exc
        return [np.asarray(r, dtype=np.float32) for r in results]
