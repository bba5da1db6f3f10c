"""
Batch embedding generation for image datasets.

Worker threads load, detect and align images and hand the aligned faces to
a bounded queue; the caller's thread runs the embedder on them. The queue
bound keeps memory flat when preprocessing outpaces the embedder.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from collections.abc import Iterable, Iterator
from concurrent import futures
from dataclasses import dataclass
from pathlib import Path

import numpy as np
import numpy.typing as npt

from .base import FaceDetector, FaceEmbeddingsGenerator
from .exceptions import FaceAiError, InferenceError, InvalidInputError
from .imaging import load_image
from .recognition.alignment import align_using_facial_landmarks

logger = logging.getLogger(__name__)

_PUT_POLL_SECONDS = 0.1


@dataclass(frozen=True)
class EmbeddingResult:
    path: Path
    embedding: npt.NDArray[np.float32]
    elapsed_ms: float


@dataclass(frozen=True)
class _Prepared:
    path: Path
    face: npt.NDArray[np.uint8]
    started: float


@dataclass(frozen=True)
class _Failed:
    error: BaseException


_DONE = object()


def prepare_face(path: Path, detector: FaceDetector) -> npt.NDArray[np.uint8]:
    """Aligned 112x112 crop of the most confident face in the image at ``path``.

    Raises:
        InvalidInputError: If the file cannot be read or shows no face.
        InferenceError: If the detector returns no landmarks.
        AlignmentError: If the landmarks are degenerate.
    """
    image = load_image(path)
    faces = detector.detect_faces(image)
    if not faces:
        raise InvalidInputError(f"No face found in {path}")
    best = max(faces, key=lambda f: f.confidence or 0.0)
    if best.landmarks is None:
        raise InferenceError("No landmarks detected but required for alignment.")
    return align_using_facial_landmarks(image, best.landmarks)


def generate_embeddings(
    paths: Iterable[str | Path],
    detector: FaceDetector,
    embedder: FaceEmbeddingsGenerator,
    workers: int = 4,
    queue_size: int = 10,
) -> Iterator[EmbeddingResult]:
    """Yield one embedding per usable image, in completion order.

    Images that cannot be read, show no face or cannot be aligned are
    logged and skipped. Any other error stops the batch and is re-raised
    in the caller's thread.

    Args:
        paths: Image files to process.
        detector: Shared by all workers; must be thread-safe.
        embedder: Only called from the consuming thread.
        workers: Preprocessing threads.
        queue_size: Maximum aligned faces waiting for the embedder.
    """
    if workers < 1 or queue_size < 1:
        raise InvalidInputError("workers and queue_size must be at least 1")

    pending: queue.Queue[object] = queue.Queue(maxsize=queue_size)
    stop = threading.Event()

    def put(item: object) -> None:
        while not stop.is_set():
            try:
                pending.put(item, timeout=_PUT_POLL_SECONDS)
                return
            except queue.Full:
                continue

    def preprocess(path: Path) -> None:
        if stop.is_set():
            return
        started = time.perf_counter()
        try:
            face = prepare_face(path, detector)
        except FaceAiError as exc:
            logger.warning("Skipping %s: %s", path, exc)
            return
        except Exception as exc:
            put(_Failed(exc))
            return
        put(_Prepared(path, face, started))

    def produce() -> None:
        try:
            with futures.ThreadPoolExecutor(max_workers=workers) as pool:
                for _ in pool.map(preprocess, (Path(p) for p in paths)):
                    pass
        except Exception as exc:
            put(_Failed(exc))
        finally:
            put(_DONE)

    producer = threading.Thread(target=produce, name="faceai-batch-producer", daemon=True)
    producer.start()

    processed = 0
    try:
        while True:
            item = pending.get()
            if item is _DONE:
                break
            if isinstance(item, _Failed):
                raise item.error
            assert isinstance(item, _Prepared)
            embedding = embedder.generate(item.face)
            elapsed_ms = (time.perf_counter() - item.started) * 1000.0
            processed += 1
            logger.debug("%6.0fms : %s", elapsed_ms, item.path)
            yield EmbeddingResult(item.path, embedding, elapsed_ms)
    finally:
        stop.set()
        producer.join()
        logger.info("Generated %d embeddings", processed)
