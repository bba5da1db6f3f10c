"""
YAML configuration.

A configuration file describes the models and runtime settings used by the
command line tool and by applications that build their components from
one file::

    detector:
      model_path: models/scrfd_2.5g_kps.onnx
      confidence_threshold: 0.5
      nms_threshold: 0.4
      maximum_input_size: {width: 640, height: 640}
    embedder:
      model_path: models/arcfaceresnet100-11-int8.onnx
    eye_state:
      model_path: models/open_closed_eye.onnx
    runtime:
      device: cuda
    anchor_cache_ttl_seconds: 1200

Relative model paths are resolved against the directory of the file.
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .detection.anchors import DEFAULT_SLIDING_EXPIRATION_SECONDS, AnchorCenterCache
from .detection.scrfd import ScrfdDetector, ScrfdDetectorOptions
from .exceptions import ConfigError
from .eyes import OpenClosedEyeClassifier, OpenClosedEyeOptions
from .geometry import Size
from .recognition.arcface import (
    ArcFaceEmbeddingsGenerator,
    ArcFaceEmbeddingsGeneratorOptions,
)


class SizeConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    width: int = Field(gt=0)
    height: int = Field(gt=0)


class DetectorConfig(BaseModel):
    """SCRFD detector settings."""

    model_config = ConfigDict(extra="forbid")

    model_path: str | None = None
    auto_resize: bool = True
    nms_threshold: float = Field(0.4, ge=0.0, le=1.0)
    confidence_threshold: float = Field(0.5, ge=0.0, le=1.0)
    maximum_input_size: SizeConfig | None = Field(
        default_factory=lambda: SizeConfig(width=640, height=640)
    )

    def to_options(self) -> ScrfdDetectorOptions:
        max_size = self.maximum_input_size
        return ScrfdDetectorOptions(
            model_path=self.model_path,
            auto_resize=self.auto_resize,
            nms_threshold=self.nms_threshold,
            confidence_threshold=self.confidence_threshold,
            maximum_input_size=None
            if max_size is None
            else Size(max_size.width, max_size.height),
        )


class EmbedderConfig(BaseModel):
    """ArcFace embeddings generator settings."""

    model_config = ConfigDict(extra="forbid")

    model_path: str | None = None
    auto_resize: bool = True

    def to_options(self) -> ArcFaceEmbeddingsGeneratorOptions:
        return ArcFaceEmbeddingsGeneratorOptions(
            model_path=self.model_path, auto_resize=self.auto_resize
        )


class EyeStateConfig(BaseModel):
    """Open/closed eye classifier settings."""

    model_config = ConfigDict(extra="forbid")

    model_path: str | None = None
    auto_resize: bool = True

    def to_options(self) -> OpenClosedEyeOptions:
        return OpenClosedEyeOptions(
            model_path=self.model_path, auto_resize=self.auto_resize
        )


class RuntimeConfig(BaseModel):
    """ONNX Runtime execution settings shared by all models."""

    model_config = ConfigDict(extra="forbid")

    providers: list[str] | None = None
    device: Literal["cpu", "cuda", "coreml", "directml", "openvino"] | None = None


class FaceAiConfig(BaseModel):
    """Root of a faceai configuration file."""

    model_config = ConfigDict(extra="forbid")

    detector: DetectorConfig = Field(default_factory=DetectorConfig)
    embedder: EmbedderConfig = Field(default_factory=EmbedderConfig)
    eye_state: EyeStateConfig = Field(default_factory=EyeStateConfig)
    runtime: RuntimeConfig = Field(default_factory=RuntimeConfig)
    anchor_cache_ttl_seconds: float = Field(DEFAULT_SLIDING_EXPIRATION_SECONDS, gt=0)

    def create_detector(self) -> ScrfdDetector:
        return ScrfdDetector(
            self.detector.to_options(),
            anchor_cache=AnchorCenterCache(self.anchor_cache_ttl_seconds),
            providers=self.runtime.providers,
            device_preference=self.runtime.device,
        )

    def create_embedder(self) -> ArcFaceEmbeddingsGenerator:
        return ArcFaceEmbeddingsGenerator(
            self.embedder.to_options(),
            providers=self.runtime.providers,
            device_preference=self.runtime.device,
        )

    def create_eye_classifier(self) -> OpenClosedEyeClassifier:
        return OpenClosedEyeClassifier(
            self.eye_state.to_options(),
            providers=self.runtime.providers,
            device_preference=self.runtime.device,
        )


def _format_validation_error(error: ValidationError) -> str:
    messages = []
    for err in error.errors():
        loc = ".".join(str(loc_part) for loc_part in err["loc"]) or "root"
        messages.append(f"{err['msg']} (at: {loc})")
    return "Configuration validation failed:\n" + "\n".join(
        f"  - {msg}" for msg in messages
    )


def parse_config(data: Mapping[str, Any] | None) -> FaceAiConfig:
    """Validate an already parsed configuration mapping.

    Raises:
        ConfigError: If the data does not match the schema.
    """
    if data is None:
        data = {}
    if not isinstance(data, Mapping):
        raise ConfigError("Configuration root must be a mapping")
    try:
        return FaceAiConfig.model_validate(dict(data))
    except ValidationError as e:
        raise ConfigError(_format_validation_error(e)) from e


def _resolve(path: str | None, base_dir: Path) -> str | None:
    if path is None:
        return None
    candidate = Path(path).expanduser()
    if not candidate.is_absolute():
        candidate = base_dir / candidate
    return str(candidate)


def load_config(config_path: str | Path) -> FaceAiConfig:
    """Load and validate a YAML configuration file.

    Raises:
        ConfigError: If the file is missing, is not valid YAML or fails
            validation.
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise ConfigError(f"Configuration file not found: {config_path}")

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML format: {e}") from e

    config = parse_config(data)

    base_dir = config_path.resolve().parent
    return config.model_copy(
        update={
            "detector": config.detector.model_copy(
                update={"model_path": _resolve(config.detector.model_path, base_dir)}
            ),
            "embedder": config.embedder.model_copy(
                update={"model_path": _resolve(config.embedder.model_path, base_dir)}
            ),
            "eye_state": config.eye_state.model_copy(
                update={"model_path": _resolve(config.eye_state.model_path, base_dir)}
            ),
        }
    )
