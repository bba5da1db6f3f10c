"""
Pytest configuration and shared fixtures for faceai tests.

The fake engines here stand in for ONNX Runtime sessions so the full
detection pipeline can run without model files.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np
import pytest

from faceai.backends.runtime import TensorInfo
from faceai.base import Detection
from faceai.detection.anchors import AnchorCenterCache
from faceai.geometry import Size
from faceai.recognition.alignment import CANONICAL_LANDMARKS_112


@dataclass
class PlacedFace:
    """A face planted in fake SCRFD outputs.

    ``distances`` are (left, top, right, bottom) and ``keypoints`` five
    (dx, dy) offsets, both in stride units as the model predicts them.
    """

    stride: int
    col: int
    row: int
    score: float
    distances: tuple[float, float, float, float] = (2.0, 2.0, 2.0, 2.0)
    keypoints: tuple[tuple[float, float], ...] = (
        (-1.0, -1.0),
        (1.0, -1.0),
        (0.0, 0.0),
        (-1.0, 1.0),
        (1.0, 1.0),
    )
    anchor: int = 0


class FakeScrfdEngine:
    """In-memory SCRFD model producing outputs with planted faces."""

    def __init__(
        self,
        input_size: Size | None = Size(640, 640),
        strides: tuple[int, ...] = (8, 16, 32),
        num_anchors: int = 2,
        kps: bool = True,
        faces: list[PlacedFace] | None = None,
        batched: bool = False,
        output_count: int | None = None,
    ) -> None:
        self.strides = strides
        self.num_anchors = num_anchors
        self.kps = kps
        self.faces = faces or []
        self.calls: list[np.ndarray] = []

        if input_size is None:
            in_shape = (1, 3, None, None)
        else:
            in_shape = (1, 3, input_size.height, input_size.width)
        self._inputs = (TensorInfo("input.1", in_shape),)

        groups = [1, 4, 10] if kps else [1, 4]
        shapes = [(None, g) for g in groups for _ in strides]
        if batched:
            shapes = [(1, None, s[1]) for s in shapes]
        if output_count is not None:
            shapes = [(None, 1)] * output_count
        self._outputs = tuple(TensorInfo(f"out{i}", s) for i, s in enumerate(shapes))

    @property
    def inputs(self):
        return self._inputs

    @property
    def outputs(self):
        return self._outputs

    def anchor_index(self, width: int, face: PlacedFace) -> int:
        return (face.row * (width // face.stride) + face.col) * self.num_anchors + face.anchor

    def run(self, input_name, tensor):
        assert input_name == "input.1"
        self.calls.append(tensor)
        height, width = tensor.shape[2], tensor.shape[3]

        scores, boxes, kpss = [], [], []
        for stride in self.strides:
            count = (height // stride) * (width // stride) * self.num_anchors
            s = np.zeros((count, 1), dtype=np.float32)
            b = np.zeros((count, 4), dtype=np.float32)
            k = np.zeros((count, 10), dtype=np.float32)
            for face in self.faces:
                if face.stride != stride:
                    continue
                idx = self.anchor_index(width, face)
                s[idx, 0] = face.score
                b[idx] = face.distances
                k[idx] = np.asarray(face.keypoints, dtype=np.float32).ravel()
            scores.append(s)
            boxes.append(b)
            kpss.append(k)

        return scores + boxes + (kpss if self.kps else [])


class FakeVectorEngine:
    """Single-input model returning a fixed output vector."""

    def __init__(self, output, input_shape=(1, 3, 112, 112)) -> None:
        self.output = np.asarray(output, dtype=np.float32)
        self.calls: list[np.ndarray] = []
        self._inputs = (TensorInfo("data", input_shape),)
        self._outputs = (TensorInfo("output", self.output.shape),)

    @property
    def inputs(self):
        return self._inputs

    @property
    def outputs(self):
        return self._outputs

    def run(self, input_name, tensor):
        self.calls.append(tensor)
        return [self.output.copy()]


@dataclass
class StaticDetector:
    """Detector returning the same detections for every image."""

    detections: list[Detection] = field(default_factory=list)

    def detect_faces(self, image):
        return list(self.detections)

    def detect_landmarks(self, image):
        return list(self.detections[0].landmarks) if self.detections else []

    def get_left_eye_center(self, landmarks):
        return landmarks[0]

    def get_right_eye_center(self, landmarks):
        return landmarks[1]


def similarity_landmarks(scale=2.0, angle_deg=10.0, offset=(100.0, 80.0)):
    """Canonical landmarks moved by a known similarity transform."""
    theta = np.deg2rad(angle_deg)
    rot = np.array([[np.cos(theta), -np.sin(theta)], [np.sin(theta), np.cos(theta)]])
    pts = np.asarray(CANONICAL_LANDMARKS_112) @ rot.T * scale + np.asarray(offset)
    return [tuple(map(float, p)) for p in pts]


@pytest.fixture
def anchor_cache():
    """A private anchor cache so tests never share state."""
    return AnchorCenterCache()


@pytest.fixture
def blank_image():
    return np.full((640, 640, 3), 255, dtype=np.uint8)


@pytest.fixture
def rng():
    return np.random.default_rng(42)
