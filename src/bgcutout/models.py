from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Dict, Optional
from urllib.parse import urlparse

from .errors import ModelLoadError
from .utils.downloads import download_file

__all__ = ["ModelSource", "MODEL_REGISTRY", "resolve_model"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelSource:
    name: str
    url: str
    sha256: Optional[str] = None

    @property
    def filename(self) -> str:
        return f"{self.name}.onnx"


MODEL_REGISTRY: Dict[str, ModelSource] = {
    "rmbg-1.4": ModelSource(
        name="rmbg-1.4",
        url=(
            "https://github.com/danielgatis/rembg/releases/download/v0.0.0/"
            "rmbg-1.4.onnx"
        ),
    ),
}


def _is_url(handle: str) -> bool:
    return urlparse(handle).scheme in ("http", "https")


def resolve_model(handle: str, cache_dir: Path) -> Path:
    """
    Turn a model handle into a local ONNX file.

    ``handle`` may be a registry name, an ``http(s)`` URL or a local path.
    Remote files are cached under ``cache_dir``.
    """
    try:
        if handle in MODEL_REGISTRY:
            source = MODEL_REGISTRY[handle]
            return download_file(source.url, cache_dir / source.filename, source.sha256)

        if _is_url(handle):
            name = PurePosixPath(urlparse(handle).path).name or "model.onnx"
            return download_file(handle, cache_dir / name)
    except Exception as exc:
        raise ModelLoadError(f"Could not fetch model '{handle}': {exc}") from exc

    path = Path(handle).expanduser()
    if not path.is_file():
        raise ModelLoadError(
            f"Model '{handle}' is neither a known model ({list(MODEL_REGISTRY)}), "
            "a URL, nor an existing file."
        )
    return path
