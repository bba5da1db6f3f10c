"""
Greedy non-maximum suppression.

Candidates must already be sorted by descending confidence; ordering (and
tie-breaking) is the caller's policy. Overlap uses the inclusive-pixel
area convention of the reference SCRFD implementation,
``area = (x2 - x1 + 1) * (y2 - y1 + 1)``, and a candidate is discarded when
its IoU with a kept box is strictly greater than the threshold.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

import numpy as np
import numpy.typing as npt

from ..base import Detection
from ..exceptions import InvalidInputError

logger = logging.getLogger(__name__)


def nms_xyxy(boxes: npt.ArrayLike, iou_threshold: float) -> list[int]:
    """Indices of the boxes to keep, in input order.

    Args:
        boxes: (N, >=4) array whose first four columns are x1, y1, x2, y2,
            sorted by descending confidence. Extra columns (e.g. scores) are
            ignored.
        iou_threshold: Discard a box whose IoU with an already kept box is
            greater than this value.
    """
    dets = np.asarray(boxes, dtype=np.float32)
    if dets.size == 0:
        return []
    if dets.ndim != 2 or dets.shape[1] < 4:
        raise InvalidInputError(f"Expected an (N, 4) box array, got shape {dets.shape}")

    x1 = np.ascontiguousarray(dets[:, 0])
    y1 = np.ascontiguousarray(dets[:, 1])
    x2 = np.ascontiguousarray(dets[:, 2])
    y2 = np.ascontiguousarray(dets[:, 3])
    one = np.float32(1.0)
    zero = np.float32(0.0)
    areas = (x2 - x1 + one) * (y2 - y1 + one)

    count = dets.shape[0]
    discard = np.zeros(count, dtype=bool)
    keep: list[int] = []
    for i in range(count):
        if discard[i]:
            continue
        keep.append(i)
        if i + 1 == count:
            break

        xx1 = np.maximum(x1[i + 1 :], x1[i])
        yy1 = np.maximum(y1[i + 1 :], y1[i])
        xx2 = np.minimum(x2[i + 1 :], x2[i])
        yy2 = np.minimum(y2[i + 1 :], y2[i])

        w = np.maximum(xx2 - xx1 + one, zero)
        h = np.maximum(yy2 - yy1 + one, zero)
        inter = w * h
        ovr = inter / (areas[i] + areas[i + 1 :] - inter)
        discard[i + 1 :] |= ovr > iou_threshold

    return keep


def non_max_suppression(
    detections: Sequence[Detection], iou_threshold: float
) -> list[int]:
    """Indices of the detections to keep; ``detections`` sorted by confidence, highest first."""
    if not detections:
        return []
    boxes = np.array([d.as_xyxy() for d in detections], dtype=np.float32)
    keep = nms_xyxy(boxes, iou_threshold)
    logger.debug("NMS kept %d/%d detections", len(keep), len(detections))
    return keep
