from __future__ import annotations

__all__ = [
    "CutoutError",
    "BackendUnavailableError",
    "ModelLoadError",
    "InvalidImageError",
    "InvalidMaskError",
    "InferenceError",
]


class CutoutError(Exception):
    """Base class for every error raised by bgcutout."""


class BackendUnavailableError(CutoutError):
    """The accelerated backend could not be probed or a device could not be created."""


class ModelLoadError(CutoutError):
    """No inference session could be built for the model."""


class InvalidImageError(CutoutError):
    pass


class InvalidMaskError(CutoutError):
    pass


class InferenceError(CutoutError):
    pass
