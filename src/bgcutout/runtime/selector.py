from __future__ import annotations

import enum
import logging
from pathlib import Path
from typing import Optional, Tuple

import torch

from ..config import RemoverConfig
from ..errors import BackendUnavailableError, ModelLoadError
from .probe import ComputeProbe, CudaProbe
from .session import BackendChoice, EngineSession, SessionFactory, create_session

__all__ = ["BackendSelector", "BackendState"]

logger = logging.getLogger(__name__)


class BackendState(str, enum.Enum):
    UNINITIALIZED = "uninitialized"
    PROBING = "probing"
    ACCELERATED_READY = "accelerated_ready"
    PORTABLE_READY = "portable_ready"
    FAILED = "failed"


TERMINAL_STATES = frozenset(
    {BackendState.ACCELERATED_READY, BackendState.PORTABLE_READY, BackendState.FAILED}
)


class BackendSelector:
    """
    Builds one inference session, preferring the accelerated backend.

    The accelerated backend is tried only when the probe reports a usable
    device. Any failure building the accelerated session falls back once to
    the portable backend; if that fails too the selector ends in ``FAILED``
    and raises :class:`ModelLoadError`. Once a terminal state is reached the
    selector never changes it.
    """

    def __init__(
        self,
        config: RemoverConfig,
        probe: Optional[ComputeProbe] = None,
        session_factory: Optional[SessionFactory] = None,
    ) -> None:
        self.config = config
        self.probe = probe if probe is not None else CudaProbe(config.device_id)
        self.session_factory = session_factory if session_factory is not None else create_session
        self.state = BackendState.UNINITIALIZED
        self.choice: Optional[BackendChoice] = None
        self.session: Optional[EngineSession] = None
        self.error: Optional[ModelLoadError] = None

    def probe_accelerator(self) -> torch.device:
        try:
            adapter = self.probe.query_adapter()
        except Exception as exc:
            raise BackendUnavailableError(f"Adapter query failed: {exc}") from exc
        if adapter is None:
            raise BackendUnavailableError("No accelerated compute adapter found.")
        try:
            device = adapter.request_device()
        except Exception as exc:
            raise BackendUnavailableError(f"Device creation failed: {exc}") from exc
        if device is None:
            raise BackendUnavailableError("Adapter returned no device.")
        return device

    def select_and_initialize(self, model_path: Path) -> Tuple[EngineSession, BackendChoice]:
        if self.state in TERMINAL_STATES:
            if self.state is BackendState.FAILED:
                assert self.error is not None
                raise self.error
            assert self.session is not None and self.choice is not None
            return self.session, self.choice

        self.state = BackendState.PROBING

        accelerated = False
        if self.config.allow_accelerated:
            try:
                device = self.probe_accelerator()
                logger.info("Accelerated backend available on %s.", device)
                accelerated = True
            except BackendUnavailableError as exc:
                logger.info("Accelerated backend unavailable: %s", exc)
        else:
            logger.info("Accelerated backend disabled by configuration.")

        if accelerated:
            try:
                session = self.session_factory(model_path, BackendChoice.ACCELERATED, self.config)
                return self._ready(session, BackendChoice.ACCELERATED)
            except Exception as exc:
                logger.warning(
                    "Accelerated session failed to initialize; falling back to portable backend: %s",
                    exc,
                )

        try:
            session = self.session_factory(model_path, BackendChoice.PORTABLE, self.config)
        except Exception as exc:
            self.state = BackendState.FAILED
            self.error = ModelLoadError(f"Failed to load model {model_path}: {exc}")
            raise self.error from exc
        return self._ready(session, BackendChoice.PORTABLE)

    def _ready(
        self, session: EngineSession, choice: BackendChoice
    ) -> Tuple[EngineSession, BackendChoice]:
        self.session = session
        self.choice = choice
        self.state = (
            BackendState.ACCELERATED_READY
            if choice is BackendChoice.ACCELERATED
            else BackendState.PORTABLE_READY
        )
        logger.info("Inference session ready on %s backend.", choice.value)
        return session, choice
