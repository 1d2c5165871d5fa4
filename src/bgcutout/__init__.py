"""
Background removal with letterboxed ONNX segmentation models.

The accelerated (CUDA) onnxruntime backend is used when available, with a
single fallback to the portable CPU backend.
"""

from .errors import (
    BackendUnavailableError,
    CutoutError,
    InferenceError,
    InvalidImageError,
    InvalidMaskError,
    ModelLoadError,
)
from .pipeline import BackgroundRemover, RemoverConfig
from .postprocess import compose_cutout, postprocess_mask
from .preprocess import PlacementGeometry, compute_placement, preprocess_image
from .runtime import BackendChoice

__all__ = [
    "BackgroundRemover",
    "RemoverConfig",
    "BackendChoice",
    "PlacementGeometry",
    "compute_placement",
    "preprocess_image",
    "postprocess_mask",
    "compose_cutout",
    "CutoutError",
    "BackendUnavailableError",
    "ModelLoadError",
    "InvalidImageError",
    "InvalidMaskError",
    "InferenceError",
]
