"""
Per-stride decoding of raw SCRFD outputs into candidate detections.

Box offsets are distances from the anchor center to the left, top, right
and bottom edges; keypoint offsets are (dx, dy) per landmark. Both are
predicted in stride units and multiplied by the stride before use.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np
import numpy.typing as npt

from ..base import NUM_LANDMARKS, Detection
from ..exceptions import InvalidInputError
from ..geometry import Size
from .anchors import AnchorCenterCache, default_anchor_cache

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StrideCandidates:
    """Candidates of one stride level that passed the confidence threshold.

    Attributes:
        scores: (N,) float32 confidences.
        boxes: (N, 4) float32 boxes as (x1, y1, x2, y2).
        landmarks: (N, 5, 2) float32 points, or None.
    """

    scores: npt.NDArray[np.float32]
    boxes: npt.NDArray[np.float32]
    landmarks: npt.NDArray[np.float32] | None

    def __len__(self) -> int:
        return int(self.scores.shape[0])

    def to_detections(self) -> list[Detection]:
        detections: list[Detection] = []
        for idx in range(len(self)):
            x1, y1, x2, y2 = (float(v) for v in self.boxes[idx])
            landmarks = None
            if self.landmarks is not None:
                landmarks = tuple((float(px), float(py)) for px, py in self.landmarks[idx])
            detections.append(
                Detection(
                    box=(x1, y1, x2 - x1, y2 - y1),
                    landmarks=landmarks,
                    confidence=float(self.scores[idx]),
                )
            )
        return detections


def distance_to_bbox(
    centers: npt.NDArray[np.float32], distances: npt.NDArray[np.float32]
) -> npt.NDArray[np.float32]:
    """Decode (left, top, right, bottom) distances to (x1, y1, x2, y2) boxes."""
    x1 = centers[:, 0] - distances[:, 0]
    y1 = centers[:, 1] - distances[:, 1]
    x2 = centers[:, 0] + distances[:, 2]
    y2 = centers[:, 1] + distances[:, 3]
    return np.stack((x1, y1, x2, y2), axis=-1)


def distance_to_keypoints(
    centers: npt.NDArray[np.float32], distances: npt.NDArray[np.float32]
) -> npt.NDArray[np.float32]:
    """Decode per-point (dx, dy) offsets to absolute (N, K, 2) keypoints."""
    if distances.shape[1] % 2 != 0:
        raise InvalidInputError(f"Invalid keypoint offset shape: {distances.shape}")
    offsets = distances.reshape(distances.shape[0], -1, 2)
    return offsets + centers[:, np.newaxis, :]


def decode_stride_candidates(
    scores: npt.ArrayLike,
    box_offsets: npt.ArrayLike,
    keypoint_offsets: npt.ArrayLike | None,
    stride: int,
    input_size: Size | tuple[int, int],
    num_anchors: int,
    confidence_threshold: float,
    anchor_cache: AnchorCenterCache | None = None,
) -> StrideCandidates | None:
    """Decode one stride level; ``None`` when no anchor reaches the threshold.

    Args:
        scores: One score per anchor (any shape that flattens to N).
        box_offsets: 4 floats per anchor.
        keypoint_offsets: 10 floats per anchor, or None for models without
            landmarks.
        stride: Downsampling factor of this level.
        input_size: (width, height) of the tensor fed to the model.
        num_anchors: Anchors per grid cell.
        confidence_threshold: Inclusive lower bound on the score.
        anchor_cache: Where anchor centers are looked up; defaults to the
            process-wide cache.
    """
    flat_scores = np.asarray(scores, dtype=np.float32).ravel()
    count = flat_scores.shape[0]

    boxes = np.asarray(box_offsets, dtype=np.float32).ravel()
    if boxes.shape[0] != count * 4:
        raise InvalidInputError(
            f"Stride {stride}: expected {count * 4} box offsets, got {boxes.shape[0]}"
        )
    boxes = boxes.reshape(count, 4)

    kps = None
    if keypoint_offsets is not None:
        kps = np.asarray(keypoint_offsets, dtype=np.float32).ravel()
        expected = count * NUM_LANDMARKS * 2
        if kps.shape[0] != expected:
            raise InvalidInputError(
                f"Stride {stride}: expected {expected} keypoint offsets, got {kps.shape[0]}"
            )
        kps = kps.reshape(count, NUM_LANDMARKS * 2)

    cache = anchor_cache or default_anchor_cache
    centers = cache.get(input_size, stride, num_anchors)
    if centers.shape[0] != count:
        raise InvalidInputError(
            f"Stride {stride}: {count} scores do not match {centers.shape[0]} anchors "
            f"for input size {tuple(input_size)}"
        )

    pos_inds = np.flatnonzero(flat_scores >= confidence_threshold)
    logger.debug(
        "Stride %d kept %d/%d anchors (threshold=%.3f)",
        stride,
        pos_inds.size,
        count,
        confidence_threshold,
    )
    if pos_inds.size == 0:
        return None

    anchor_centers = centers[pos_inds]
    stride_f = np.float32(stride)
    decoded_boxes = distance_to_bbox(anchor_centers, boxes[pos_inds] * stride_f)

    decoded_kps = None
    if kps is not None:
        decoded_kps = distance_to_keypoints(anchor_centers, kps[pos_inds] * stride_f)

    return StrideCandidates(
        scores=flat_scores[pos_inds].copy(),
        boxes=decoded_boxes.astype(np.float32, copy=False),
        landmarks=None if decoded_kps is None else decoded_kps.astype(np.float32, copy=False),
    )


def decode_stride(
    scores: npt.ArrayLike,
    box_offsets: npt.ArrayLike,
    keypoint_offsets: npt.ArrayLike | None,
    stride: int,
    input_size: Size | tuple[int, int],
    num_anchors: int,
    confidence_threshold: float,
    anchor_cache: AnchorCenterCache | None = None,
) -> list[Detection]:
    """Decode one stride level into detections (empty list if nothing qualifies).

    Boxes and landmarks are in input-tensor pixel space.
    """
    candidates = decode_stride_candidates(
        scores,
        box_offsets,
        keypoint_offsets,
        stride,
        input_size,
        num_anchors,
        confidence_threshold,
        anchor_cache,
    )
    if candidates is None:
        return []
    return candidates.to_detections()
