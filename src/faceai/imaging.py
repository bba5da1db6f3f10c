"""
Image buffer operations on RGB uint8 numpy arrays, backed by OpenCV.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from pathlib import Path

import cv2
import numpy as np
import numpy.typing as npt

from .exceptions import InvalidInputError
from .geometry import (
    Rectangle,
    Size,
    get_minimum_superset_square,
    get_scale_factor_to_fit_into,
    scale_rectangle,
    scale_size,
    scale_to_rotation_angle_invariant_crop_area,
)

logger = logging.getLogger(__name__)


def image_size(image: npt.NDArray) -> Size:
    return Size(int(image.shape[1]), int(image.shape[0]))


def bounds(image: npt.NDArray) -> Rectangle:
    width, height = image_size(image)
    return Rectangle(0, 0, width, height)


def load_image(path: str | Path) -> npt.NDArray[np.uint8]:
    """Read an image file into a contiguous RGB uint8 array."""
    decoded = cv2.imread(str(path), cv2.IMREAD_COLOR)
    if decoded is None:
        raise InvalidInputError(f"Failed to decode image: {path}")
    return np.ascontiguousarray(cv2.cvtColor(decoded, cv2.COLOR_BGR2RGB))


def save_image(path: str | Path, image: npt.NDArray[np.uint8]) -> None:
    if not cv2.imwrite(str(path), cv2.cvtColor(image, cv2.COLOR_RGB2BGR)):
        raise InvalidInputError(f"Failed to write image: {path}")


def crop(image: npt.NDArray[np.uint8], rectangle: Rectangle) -> npt.NDArray[np.uint8]:
    """Crop to ``rectangle`` clamped to the image bounds.

    Raises:
        InvalidInputError: If the rectangle does not overlap the image.
    """
    area = bounds(image).intersect(rectangle)
    if area.is_empty:
        raise InvalidInputError(
            f"Crop area {tuple(rectangle)} lies outside the image {tuple(image_size(image))}"
        )
    return image[area.y : area.bottom, area.x : area.right]


def resize(image: npt.NDArray[np.uint8], size: Size) -> npt.NDArray[np.uint8]:
    """Resize to exactly ``size``; area interpolation when shrinking."""
    width, height = max(1, int(size.width)), max(1, int(size.height))
    current = image_size(image)
    if (width, height) == tuple(current):
        return image
    shrinking = width < current.width or height < current.height
    interpolation = cv2.INTER_AREA if shrinking else cv2.INTER_CUBIC
    return cv2.resize(image, (width, height), interpolation=interpolation)


def resize_box_pad(
    image: npt.NDArray[np.uint8], size: Size, pad_value: int = 0
) -> npt.NDArray[np.uint8]:
    """Fit the image into ``size`` without upscaling and pad the remainder.

    The image is anchored at the top-left corner; padding goes right and
    below, so detections only need the inverse scale to map back.
    """
    factor = get_scale_factor_to_fit_into(image_size(image), size)
    working = image
    if factor < 1:
        working = resize(image, scale_size(image_size(image), factor))

    h, w = working.shape[:2]
    h, w = min(h, size.height), min(w, size.width)
    canvas = np.full((size.height, size.width, image.shape[2]), pad_value, dtype=image.dtype)
    canvas[:h, :w] = working[:h, :w]
    return canvas


def resize_pad(
    image: npt.NDArray[np.uint8], size: Size, pad_value: int = 0
) -> npt.NDArray[np.uint8]:
    """Scale (up or down) to fit ``size`` keeping the aspect ratio, centered on padding."""
    current = image_size(image)
    factor = min(size.width / current.width, size.height / current.height)
    fitted = Size(
        min(size.width, max(1, round(current.width * factor))),
        min(size.height, max(1, round(current.height * factor))),
    )
    working = resize(image, fitted)

    canvas = np.full((size.height, size.width, image.shape[2]), pad_value, dtype=image.dtype)
    x0 = (size.width - fitted.width) // 2
    y0 = (size.height - fitted.height) // 2
    canvas[y0 : y0 + fitted.height, x0 : x0 + fitted.width] = working
    return canvas


def ensure_properly_sized(
    image: npt.NDArray[np.uint8],
    size: Size,
    throw_if_resize_required: bool,
    resizer: Callable[[npt.NDArray[np.uint8], Size], npt.NDArray[np.uint8]] = resize_box_pad,
) -> npt.NDArray[np.uint8]:
    """Return ``image`` if it already has ``size``, else a resized copy.

    Args:
        resizer: How to reach ``size``; box-pad (top-left, no upscaling) by
            default, :func:`resize_pad` for centered fit-and-pad.

    Raises:
        InvalidInputError: If a resize is needed but ``throw_if_resize_required`` is set.
    """
    actual = image_size(image)
    if actual == size:
        return image
    if throw_if_resize_required:
        raise InvalidInputError(
            "The given image does not have the required dimensions "
            f"(Required: W={size.width}, H={size.height}; "
            f"Actual: W={actual.width}, H={actual.height})"
        )
    return resizer(image, size)


def warp_affine(
    image: npt.NDArray[np.uint8], matrix: npt.NDArray, size: Size
) -> npt.NDArray[np.uint8]:
    """Apply a 2x3 affine matrix, producing a ``size`` image with black borders."""
    return cv2.warpAffine(
        image,
        np.asarray(matrix, dtype=np.float64),
        (int(size.width), int(size.height)),
        flags=cv2.INTER_LINEAR,
        borderMode=cv2.BORDER_CONSTANT,
        borderValue=(0, 0, 0),
    )


def rotate(
    image: npt.NDArray[np.uint8], angle: float, center: tuple[float, float] | None = None
) -> npt.NDArray[np.uint8]:
    """Rotate by ``angle`` degrees (OpenCV convention) keeping the image size."""
    size = image_size(image)
    if center is None:
        center = (size.width / 2.0, size.height / 2.0)
    matrix = cv2.getRotationMatrix2D(center, angle, 1.0)
    return warp_affine(image, matrix, size)


def crop_aligned(
    image: npt.NDArray[np.uint8],
    face_area: Rectangle,
    angle: float,
    aligned_max_edge_size: int | None = 250,
) -> npt.NDArray[np.uint8]:
    """Cut a square around ``face_area`` and rotate it upright.

    Args:
        image: Source RGB image; not modified.
        face_area: Area of interest, usually a rounded detection box.
        angle: Eye-line angle in degrees as returned by
            :func:`faceai.geometry.get_alignment_angle`.
        aligned_max_edge_size: Shrink so the square's edge is at most this
            many pixels. ``None`` keeps full resolution.

    Returns:
        A square image with the edge length of the face area's longer side
        (after optional shrinking).
    """
    min_super_square = get_minimum_superset_square(face_area)

    # Cropping to an area that survives any rotation first keeps the warp
    # below cheap for large images.
    angle_invariant = scale_to_rotation_angle_invariant_crop_area(min_super_square)
    if bounds(image).contains(angle_invariant):
        image = crop(image, angle_invariant)
        dx, dy = -angle_invariant.x, -angle_invariant.y
        min_super_square = min_super_square.offset(dx, dy)
        face_area = face_area.offset(dx, dy)

    if aligned_max_edge_size is not None:
        longest = max(face_area.width, face_area.height)
        factor = 1.0 / max(1.0, longest / float(aligned_max_edge_size))
        if factor < 1:
            image = resize(image, scale_size(image_size(image), factor))
            min_super_square = scale_rectangle(min_super_square, factor)
            face_area = scale_rectangle(face_area, factor)

    matrix = cv2.getRotationMatrix2D(face_area.center(), angle, 1.0)
    matrix[0, 2] -= min_super_square.x
    matrix[1, 2] -= min_super_square.y

    edge = max(1, min_super_square.height)
    return warp_affine(image, matrix, Size(edge, edge))


def gaussian_blur_region(
    image: npt.NDArray[np.uint8], area: Rectangle, sigma: float
) -> bool:
    """Blur ``area`` of ``image`` in place. Returns False if the area is outside."""
    region = bounds(image).intersect(area)
    if region.is_empty:
        return False
    roi = image[region.y : region.bottom, region.x : region.right]
    image[region.y : region.bottom, region.x : region.right] = cv2.GaussianBlur(
        roi, (0, 0), sigmaX=sigma, sigmaY=sigma
    )
    return True


def image_to_tensor(
    images: Sequence[npt.NDArray[np.uint8]],
    mean: Sequence[float],
    stddev: Sequence[float],
    convert_to_bgr: bool = False,
) -> npt.NDArray[np.float32]:
    """Convert RGB images to an NCHW float32 tensor.

    Each channel becomes ``value / (255 * stddev) - mean / stddev``, i.e.
    ``(value / 255 - mean) / stddev``. With ``convert_to_bgr`` the channel
    planes are written in B, G, R order.
    """
    if not images:
        raise InvalidInputError("At least one image is required")
    first = images[0]
    height, width = first.shape[:2]

    mean_arr = np.asarray(mean, dtype=np.float32)
    std_arr = np.asarray(stddev, dtype=np.float32)
    scale = (1.0 / (255.0 * std_arr)).astype(np.float32)
    offset = (mean_arr / std_arr).astype(np.float32)

    tensor = np.empty((len(images), 3, height, width), dtype=np.float32)
    for idx, img in enumerate(images):
        if img.shape[:2] != (height, width) or img.ndim != 3 or img.shape[2] != 3:
            raise InvalidInputError(
                f"All images must be {width}x{height} RGB, got shape {img.shape}"
            )
        normalized = img.astype(np.float32) * scale - offset
        if convert_to_bgr:
            normalized = normalized[:, :, ::-1]
        tensor[idx] = np.transpose(normalized, (2, 0, 1))
    return tensor
