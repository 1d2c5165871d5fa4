from __future__ import annotations

import logging
import threading
import time
from pathlib import Path
from typing import Dict, Iterable, Mapping, Optional

import numpy as np
from PIL import Image

from .config import RemoverConfig
from .errors import InferenceError, InvalidMaskError, ModelLoadError
from .models import resolve_model
from .postprocess import compose_cutout, postprocess_mask
from .preprocess import preprocess_image
from .runtime.probe import ComputeProbe
from .runtime.selector import BackendSelector
from .runtime.session import BackendChoice, EngineSession, SessionFactory

__all__ = ["BackgroundRemover", "RemoverConfig"]

logger = logging.getLogger(__name__)


class BackgroundRemover:
    def __init__(
        self,
        config: Optional[RemoverConfig] = None,
        probe: Optional[ComputeProbe] = None,
        session_factory: Optional[SessionFactory] = None,
    ) -> None:
        self.config = config or RemoverConfig()
        self.selector = BackendSelector(self.config, probe=probe, session_factory=session_factory)
        self.session: Optional[EngineSession] = None
        self.backend: Optional[BackendChoice] = None
        self._lock = threading.Lock()

    def initialize(self, model: Optional[str] = None) -> BackendChoice:
        with self._lock:
            if self.session is not None and self.backend is not None:
                return self.backend
            model_path = resolve_model(model or self.config.model, self.config.cache_dir)
            self.session, self.backend = self.selector.select_and_initialize(model_path)
        return self.backend

    def _run(self, session: EngineSession, tensor: np.ndarray) -> Mapping[str, np.ndarray]:
        try:
            with self._lock:
                return session.run({self.config.input_name: tensor})
        except Exception as exc:
            raise InferenceError(f"Inference failed: {exc}") from exc

    def predict_mask(self, image: Image.Image) -> Image.Image:
        session = self.session
        if session is None:
            raise ModelLoadError("Model not loaded")

        size = self.config.input_size
        prepared = preprocess_image(image, size)
        logger.debug("Input tensor shape: %s", tuple(prepared.tensor.shape))

        outputs = self._run(session, prepared.tensor.detach().to("cpu").numpy().astype(np.float32))
        if self.config.output_name not in outputs:
            raise InvalidMaskError(
                f"Model output '{self.config.output_name}' not found. "
                f"Available outputs: {', '.join(outputs) or '<none>'}"
            )
        mask = outputs[self.config.output_name]
        logger.debug("Output tensor shape: %s", getattr(mask, "shape", None))

        return postprocess_mask(mask, image.size, prepared.geometry, (size, size))

    def remove_background(self, image: Image.Image) -> Image.Image:
        mask = self.predict_mask(image)
        return compose_cutout(image, mask)

    def process_directory(
        self,
        input_dir: Path,
        output_dir: Path,
        overwrite: bool = False,
    ) -> Dict[str, float]:
        input_dir = Path(input_dir)
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        timings: Dict[str, float] = {}

        for image_path in sorted(self._iter_images(input_dir)):
            destination = output_dir / (image_path.stem + ".png")
            if destination.exists() and not overwrite:
                continue
            start = time.perf_counter()
            with Image.open(image_path) as img:
                img.load()
                result = self.remove_background(img)
            result.save(destination)
            timings[str(image_path)] = time.perf_counter() - start
            logger.info("Wrote %s (%.3fs)", destination, timings[str(image_path)])

        return timings

    @staticmethod
    def _iter_images(path: Path) -> Iterable[Path]:
        exts = {".jpg", ".jpeg", ".png", ".bmp", ".tiff", ".webp"}
        for file in path.rglob("*"):
            if file.suffix.lower() in exts:
                yield file
