"""
Quality metrics for binary face-matching classifiers.

All functions take ``(confidence, is_match)`` estimations sorted by
descending confidence, e.g. the cosine similarities of labelled face pairs.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence

import numpy as np

from .exceptions import InvalidInputError

Estimation = tuple[float, bool]


def _class_counts(estimations: Sequence[Estimation]) -> tuple[int, int]:
    positives = sum(1 for _, is_match in estimations if is_match)
    negatives = len(estimations) - positives
    if positives == 0 or negatives == 0:
        raise InvalidInputError(
            "Both matching and non-matching estimations are required "
            f"(got {positives} matches, {negatives} non-matches)"
        )
    return positives, negatives


def roc_points(estimations: Sequence[Estimation]) -> Iterator[tuple[float, float, float]]:
    """Yield ``(false positive rate, true positive rate, threshold)`` per estimation.

    Each point is the classifier's performance when everything up to and
    including that estimation is called a match.
    """
    positives, negatives = _class_counts(estimations)
    true_pos = 0
    for idx, (confidence, is_match) in enumerate(estimations, start=1):
        if is_match:
            true_pos += 1
        yield ((idx - true_pos) / negatives, true_pos / positives, float(confidence))


def auc(estimations: Sequence[Estimation]) -> float:
    """Area under the ROC curve; 1.0 is perfect, 0.5 is chance level."""
    points = [(0.0, 0.0)] + [(fpr, tpr) for fpr, tpr, _ in roc_points(estimations)]
    xs = np.array([p[0] for p in points])
    ys = np.array([p[1] for p in points])
    return float(np.sum(np.diff(xs) * (ys[1:] + ys[:-1]) / 2.0))


def find_threshold(estimations: Sequence[Estimation]) -> float:
    """Confidence threshold with the highest accuracy.

    Estimations with a confidence at or above the returned value are
    treated as matches. Returns 0.0 for an empty input.
    """
    positives = sum(1 for _, is_match in estimations if is_match)
    negatives = len(estimations) - positives
    total = positives + negatives

    best_accuracy = 0.0
    pivot = 0.0
    true_pos = 0
    for idx, (confidence, is_match) in enumerate(estimations, start=1):
        if is_match:
            true_pos += 1
        false_pos = idx - true_pos
        true_neg = negatives - false_pos
        accuracy = (true_pos + true_neg) / total
        if accuracy > best_accuracy:
            best_accuracy = accuracy
            pivot = float(confidence)
    return pivot
