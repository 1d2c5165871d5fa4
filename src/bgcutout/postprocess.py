from __future__ import annotations

import logging
from typing import Sequence, Tuple, Union

import numpy as np
import torch
from PIL import Image

from .errors import InvalidImageError, InvalidMaskError
from .preprocess import PlacementGeometry

__all__ = ["postprocess_mask", "compose_cutout"]

logger = logging.getLogger(__name__)

MaskLike = Union[np.ndarray, torch.Tensor]


def _as_scores(mask: MaskLike, expected_size: Sequence[int]) -> torch.Tensor:
    if mask is None:
        raise InvalidMaskError("Invalid output tensor: mask is missing.")

    scores = torch.as_tensor(mask)
    if scores.numel() == 0:
        raise InvalidMaskError("Invalid output tensor: mask is empty.")
    if scores.ndim != 4:
        raise InvalidMaskError(
            f"Expected a 4-D mask tensor [1, 1, H, W], got shape {tuple(scores.shape)}."
        )

    height, width = scores.shape[2], scores.shape[3]
    if (height, width) != tuple(expected_size):
        raise InvalidMaskError(
            f"Mask spatial size {height}x{width} does not match the model "
            f"output size {expected_size[0]}x{expected_size[1]}."
        )
    # Channel 0 of the first batch entry; float64 keeps the rescale exact.
    return scores[0, 0].detach().to("cpu", dtype=torch.float64)


def postprocess_mask(
    mask: MaskLike,
    original_size: Tuple[int, int],
    geometry: PlacementGeometry,
    expected_size: Sequence[int] = (1024, 1024),
) -> Image.Image:
    """
    Map a letterboxed mask back to the original image resolution.

    Parameters
    ----------
    mask: MaskLike
        Raw model scores of shape ``[1, 1, H, W]``.
    original_size: Tuple[int, int]
        ``(width, height)`` of the source image.
    geometry: PlacementGeometry
        Placement returned by preprocessing of the same image.
    expected_size: Sequence[int]
        ``(H, W)`` the model is expected to produce.

    Returns an RGBA image with ``R = G = B = alpha`` and an opaque alpha channel.
    """
    scores = _as_scores(mask, expected_size)
    orig_w, orig_h = original_size
    if orig_w <= 0 or orig_h <= 0:
        raise InvalidImageError(f"Original size must be positive, got {orig_w}x{orig_h}.")

    top, left = geometry.y_offset, geometry.x_offset
    region = scores[top : top + geometry.target_height, left : left + geometry.target_width]
    if region.numel() == 0:
        raise InvalidMaskError("Placement rectangle lies outside the mask.")

    low = region.min().item()
    high = region.max().item()
    scale = 255.0 / (high - low) if high != low else 0.0
    logger.debug("Mask range over placement: min=%s max=%s", low, high)

    xs = torch.floor(torch.arange(orig_w, dtype=torch.float64) * (geometry.target_width / orig_w))
    ys = torch.floor(torch.arange(orig_h, dtype=torch.float64) * (geometry.target_height / orig_h))
    xs = xs.long() + left
    ys = ys.long() + top

    sampled = scores.index_select(0, ys).index_select(1, xs)
    values = torch.floor((sampled - low) * scale + 0.5).clamp(0, 255).to(torch.uint8)

    alpha = values.numpy()
    rgba = np.empty((orig_h, orig_w, 4), dtype=np.uint8)
    rgba[..., 0] = alpha
    rgba[..., 1] = alpha
    rgba[..., 2] = alpha
    rgba[..., 3] = 255
    return Image.fromarray(rgba)


def compose_cutout(image: Image.Image, mask: Image.Image) -> Image.Image:
    if mask.size != image.size:
        raise InvalidMaskError(
            f"Mask size {mask.size} does not match image size {image.size}."
        )
    alpha = mask.getchannel("R") if mask.mode in ("RGB", "RGBA") else mask.convert("L")
    composed = image.convert("RGBA")
    composed.putalpha(alpha)
    return composed
