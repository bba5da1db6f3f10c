"""
Command Line Interface for faceai

Detect faces, align them for recognition, count open and closed eyes and
generate embeddings for whole image folders.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

import colorlog
import numpy as np

from .applications import blur_faces, count_eye_states, crop_profile_picture
from .batch import generate_embeddings
from .config import FaceAiConfig, load_config
from .exceptions import ConfigError, FaceAiError
from .imaging import load_image, save_image
from .recognition.alignment import align_using_facial_landmarks

logger = logging.getLogger(__name__)

_IMAGE_SUFFIXES = {".jpg", ".jpeg", ".png", ".bmp", ".webp", ".tif", ".tiff"}


def setup_logging(log_level: str = "INFO"):
    """
    Configure the root logger for the application.

    This function clears any pre-existing handlers, sets the requested log
    level, and attaches a single colorized stream handler for console output.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = colorlog.StreamHandler()
    formatter = colorlog.ColoredFormatter(
        "%(log_color)s%(levelname)-8s%(cyan)s[%(name)s]%(reset)s %(message)s",
        reset=True,
        log_colors={
            "DEBUG": "cyan",
            "INFO": "green",
            "WARNING": "yellow",
            "ERROR": "red",
            "CRITICAL": "red,bg_white",
        },
    )
    handler.setFormatter(formatter)
    root_logger.addHandler(handler)


def _package_version() -> str:
    try:
        return version("faceai")
    except PackageNotFoundError:
        return "0.0.0"


def _load(args) -> FaceAiConfig:
    config = load_config(args.config) if args.config else FaceAiConfig()
    overrides = {
        "detector": args.detector_model,
        "embedder": args.embedder_model,
        "eye_state": args.eye_model,
    }
    for section, model_path in overrides.items():
        if model_path:
            current = getattr(config, section)
            config = config.model_copy(
                update={section: current.model_copy(update={"model_path": model_path})}
            )
    return config


def _iter_images(inputs: list[str]):
    for item in inputs:
        path = Path(item)
        if path.is_dir():
            yield from sorted(
                p for p in path.rglob("*") if p.suffix.lower() in _IMAGE_SUFFIXES
            )
        else:
            yield path


def cmd_detect(args) -> int:
    """Handle detect command."""
    config = _load(args)
    detector = config.create_detector()
    image = load_image(args.image)
    faces = detector.detect_faces(image)

    for face in faces:
        record = {
            "box": [round(v, 2) for v in face.box],
            "confidence": None if face.confidence is None else round(face.confidence, 4),
            "landmarks": None
            if face.landmarks is None
            else [[round(x, 2), round(y, 2)] for x, y in face.landmarks],
        }
        print(json.dumps(record))
    logger.info("Found %d faces in %s", len(faces), args.image)

    if args.blur:
        blurred = image.copy()
        blur_faces(detector, blurred)
        save_image(args.blur, blurred)
        logger.info("Wrote blurred image to %s", args.blur)
    if args.profile_picture:
        save_image(args.profile_picture, crop_profile_picture(detector, image))
        logger.info("Wrote profile picture to %s", args.profile_picture)
    return 0


def cmd_align(args) -> int:
    """Handle align command."""
    config = _load(args)
    detector = config.create_detector()
    image = load_image(args.image)
    faces = detector.detect_faces(image)
    if not faces:
        logger.error("No faces found in %s", args.image)
        return 1

    output = Path(args.output)
    output.mkdir(parents=True, exist_ok=True)
    written = 0
    for idx, face in enumerate(faces):
        if face.landmarks is None:
            logger.error("The detector model does not predict landmarks")
            return 1
        try:
            aligned = align_using_facial_landmarks(image, face.landmarks, args.edge_size)
        except FaceAiError as e:
            logger.warning("Skipping face %d: %s", idx, e)
            continue
        target = output / f"{Path(args.image).stem}_face{idx}.png"
        save_image(target, aligned)
        written += 1
        print(target)
    logger.info("Aligned %d/%d faces", written, len(faces))
    return 0


def cmd_count_eyes(args) -> int:
    """Handle count-eyes command."""
    config = _load(args)
    detector = config.create_detector()
    classifier = config.create_eye_classifier()
    for path in _iter_images(args.images):
        counts = count_eye_states(detector, classifier, load_image(path))
        print(
            f"{path}: faces={counts.faces} open={counts.open_eyes} "
            f"closed={counts.closed_eyes}"
        )
    return 0


def cmd_embed(args) -> int:
    """Handle embed command."""
    config = _load(args)
    detector = config.create_detector()
    embedder = config.create_embedder()

    paths = []
    embeddings = []
    for result in generate_embeddings(
        _iter_images(args.images),
        detector,
        embedder,
        workers=args.workers,
        queue_size=args.queue_size,
    ):
        print(f"{result.elapsed_ms:6.0f}ms : {result.path}")
        paths.append(str(result.path))
        embeddings.append(result.embedding)

    if args.output:
        np.savez(
            args.output,
            paths=np.array(paths),
            embeddings=np.stack(embeddings) if embeddings else np.empty((0, 0), np.float32),
        )
        logger.info("Wrote %d embeddings to %s", len(embeddings), args.output)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="faceai",
        description="Face detection, alignment and recognition with ONNX models",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Detect faces and write a blurred copy
  faceai --detector-model scrfd_2.5g_kps.onnx detect photo.jpg --blur blurred.jpg

  # Generate embeddings for a folder using a config file
  faceai --config faceai.yaml embed dataset/ --output embeddings.npz
        """,
    )
    parser.add_argument(
        "--config",
        type=str,
        help="Path to YAML configuration file",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {_package_version()}"
    )
    parser.add_argument("--detector-model", help="SCRFD model (overrides config)")
    parser.add_argument("--embedder-model", help="ArcFace model (overrides config)")
    parser.add_argument("--eye-model", help="Open/closed eye model (overrides config)")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    detect_parser = subparsers.add_parser("detect", help="Detect faces in an image")
    detect_parser.add_argument("image", help="Input image")
    detect_parser.add_argument("--blur", metavar="OUTPUT", help="Write a copy with blurred faces")
    detect_parser.add_argument(
        "--profile-picture", metavar="OUTPUT", help="Write an upright crop of the main face"
    )
    detect_parser.set_defaults(func=cmd_detect)

    align_parser = subparsers.add_parser("align", help="Write aligned crops of all faces")
    align_parser.add_argument("image", help="Input image")
    align_parser.add_argument("output", help="Output directory")
    align_parser.add_argument("--edge-size", type=int, default=112, help="Output edge length")
    align_parser.set_defaults(func=cmd_align)

    eyes_parser = subparsers.add_parser("count-eyes", help="Count open and closed eyes")
    eyes_parser.add_argument("images", nargs="+", help="Images or folders")
    eyes_parser.set_defaults(func=cmd_count_eyes)

    embed_parser = subparsers.add_parser("embed", help="Generate face embeddings")
    embed_parser.add_argument("images", nargs="+", help="Images or folders")
    embed_parser.add_argument("--output", help="Write paths and embeddings to this .npz file")
    embed_parser.add_argument("--workers", type=int, default=4, help="Preprocessing threads")
    embed_parser.add_argument(
        "--queue-size", type=int, default=10, help="Aligned faces buffered for the embedder"
    )
    embed_parser.set_defaults(func=cmd_embed)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    setup_logging(args.log_level)

    try:
        return args.func(args)
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        return 1
    except FaceAiError as e:
        logger.error(f"{args.command} failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
