from __future__ import annotations

import logging
from typing import Optional, Protocol

import onnxruntime as ort
import torch

logger = logging.getLogger(__name__)

__all__ = ["Adapter", "ComputeProbe", "CudaAdapter", "CudaProbe"]


class Adapter(Protocol):
    def request_device(self) -> torch.device:
        ...


class ComputeProbe(Protocol):
    def query_adapter(self) -> Optional[Adapter]:
        ...


class CudaAdapter:
    def __init__(self, index: int) -> None:
        self.index = index

    def request_device(self) -> torch.device:
        props = torch.cuda.get_device_properties(self.index)
        logger.info(
            "CUDA adapter %d: %s, compute capability %d.%d, %.1f GiB",
            self.index,
            props.name,
            props.major,
            props.minor,
            props.total_memory / (1 << 30),
        )
        return torch.device("cuda", self.index)


class CudaProbe:
    """
    Reports a CUDA adapter when both onnxruntime and torch can see the GPU.
    """

    def __init__(self, device_id: int = 0) -> None:
        self.device_id = device_id

    def query_adapter(self) -> Optional[CudaAdapter]:
        if "CUDAExecutionProvider" not in ort.get_available_providers():
            logger.info("onnxruntime was built without the CUDAExecutionProvider.")
            return None
        if not torch.cuda.is_available():
            logger.info("CUDA is not available to torch.")
            return None
        if self.device_id >= torch.cuda.device_count():
            logger.info(
                "CUDA device %d requested but only %d device(s) found.",
                self.device_id,
                torch.cuda.device_count(),
            )
            return None
        return CudaAdapter(self.device_id)
