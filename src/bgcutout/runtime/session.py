from __future__ import annotations

import enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Protocol, Sequence, Tuple

import numpy as np
import onnxruntime as ort

from ..config import RemoverConfig

__all__ = [
    "BackendChoice",
    "EngineSession",
    "OrtEngineSession",
    "SessionFactory",
    "build_providers",
    "create_session",
]


class BackendChoice(str, enum.Enum):
    ACCELERATED = "accelerated"
    PORTABLE = "portable"


class EngineSession(Protocol):
    def run(self, inputs: Mapping[str, np.ndarray]) -> Dict[str, np.ndarray]:
        ...


class SessionFactory(Protocol):
    def __call__(
        self, model_path: Path, backend: BackendChoice, config: RemoverConfig
    ) -> EngineSession:
        ...


class OrtEngineSession:
    """
    Thin wrapper returning named outputs from an ``onnxruntime.InferenceSession``.
    """

    def __init__(self, session: ort.InferenceSession) -> None:
        self.session = session
        self.output_names: List[str] = [meta.name for meta in session.get_outputs()]
        self.input_names: List[str] = [meta.name for meta in session.get_inputs()]

    @property
    def providers(self) -> Sequence[str]:
        return self.session.get_providers()

    def run(self, inputs: Mapping[str, np.ndarray]) -> Dict[str, np.ndarray]:
        outputs = self.session.run(self.output_names, dict(inputs))
        return dict(zip(self.output_names, outputs))


def build_providers(
    backend: BackendChoice, device_id: int, *, tensorrt: bool
) -> List[Tuple[str, Dict[str, Any]]]:
    if backend is BackendChoice.PORTABLE:
        return [("CPUExecutionProvider", {})]

    cuda_options = {
        "device_id": device_id,
        "arena_extend_strategy": "kNextPowerOfTwo",
        "cudnn_conv_use_max_workspace": "1",
        "do_copy_in_default_stream": "1",
    }
    providers: List[Tuple[str, Dict[str, Any]]] = [("CUDAExecutionProvider", cuda_options)]

    if tensorrt:
        trt_options = {
            "device_id": device_id,
            "trt_fp16_enable": "True",
            "trt_max_workspace_size": str(1 << 30),
        }
        providers.insert(0, ("TensorrtExecutionProvider", trt_options))

    return providers


def create_session(
    model_path: Path, backend: BackendChoice, config: RemoverConfig
) -> OrtEngineSession:
    providers = build_providers(backend, config.device_id, tensorrt=config.use_tensorrt)
    session = ort.InferenceSession(
        Path(model_path).as_posix(),
        sess_options=config.session_options(),
        providers=[name for name, _ in providers],
        provider_options=[options for _, options in providers],
    )
    # onnxruntime silently drops providers it cannot initialize.
    if backend is BackendChoice.ACCELERATED and "CUDAExecutionProvider" not in session.get_providers():
        raise RuntimeError(
            "onnxruntime did not initialize the CUDAExecutionProvider. "
            "Install `onnxruntime-gpu` and ensure the NVIDIA driver/CUDA stack is available."
        )
    return OrtEngineSession(session)
