from .runtime import (
    InferenceEngine,
    OnnxRuntimeEngine,
    TensorInfo,
    default_providers,
    infer_device,
)

__all__ = [
    "InferenceEngine",
    "OnnxRuntimeEngine",
    "TensorInfo",
    "default_providers",
    "infer_device",
]
