"""
Letterboxing and normalization of input images.

An image of any size is scaled so that its longer side fills the model frame,
centered on a black canvas, and converted to a planar float32 tensor with
values ``byte / 255 - 0.5``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

import torch
from PIL import Image
from torchvision.transforms import functional as TF

from .errors import InvalidImageError

__all__ = ["PlacementGeometry", "PreprocessResult", "compute_placement", "preprocess_image"]

NORMALIZE_MEAN = (0.5, 0.5, 0.5)
NORMALIZE_STD = (1.0, 1.0, 1.0)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


@dataclass(frozen=True)
class PlacementGeometry:
    target_width: int
    target_height: int
    x_offset: int
    y_offset: int
    aspect_ratio: float


@dataclass
class PreprocessResult:
    tensor: torch.Tensor
    geometry: PlacementGeometry


def compute_placement(width: int, height: int, size: int = 1024) -> PlacementGeometry:
    """Place a ``width x height`` image inside a ``size x size`` frame, keeping its aspect ratio."""
    if width <= 0 or height <= 0:
        raise InvalidImageError(f"Image dimensions must be positive, got {width}x{height}.")

    aspect_ratio = width / height
    if width > height:
        target_width = size
        target_height = max(1, round_half_up(size * height / width))
    elif width < height:
        target_width = max(1, round_half_up(size * width / height))
        target_height = size
    else:
        target_width = target_height = size

    return PlacementGeometry(
        target_width=target_width,
        target_height=target_height,
        x_offset=round_half_up((size - target_width) / 2),
        y_offset=round_half_up((size - target_height) / 2),
        aspect_ratio=aspect_ratio,
    )


def letterbox(image: Image.Image, geometry: PlacementGeometry, size: int) -> Image.Image:
    canvas = Image.new("RGB", (size, size), (0, 0, 0))
    resized = image.convert("RGB").resize(
        (geometry.target_width, geometry.target_height), Image.BILINEAR
    )
    canvas.paste(resized, (geometry.x_offset, geometry.y_offset))
    return canvas


def preprocess_image(image: Image.Image, size: int = 1024) -> PreprocessResult:
    if not isinstance(image, Image.Image):
        raise InvalidImageError(f"Expected a PIL image, got {type(image).__name__}.")
    if image.width == 0 or image.height == 0:
        raise InvalidImageError(
            f"Image has zero size ({image.width}x{image.height}); it may have failed to decode."
        )

    geometry = compute_placement(image.width, image.height, size)
    canvas = letterbox(image, geometry, size)

    tensor = TF.to_tensor(canvas)
    tensor = TF.normalize(tensor, mean=list(NORMALIZE_MEAN), std=list(NORMALIZE_STD))
    return PreprocessResult(tensor=tensor.unsqueeze(0).contiguous(), geometry=geometry)
