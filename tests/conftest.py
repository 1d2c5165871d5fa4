from __future__ import annotations

from pathlib import Path
from typing import Iterable, List, Optional, Tuple

import numpy as np
import pytest
import torch

from bgcutout.runtime.session import BackendChoice


class EchoSession:
    """Returns the red input plane as the mask, so mask scores follow image content."""

    def __init__(self, output_name: str = "output") -> None:
        self.output_name = output_name
        self.calls = 0

    def run(self, inputs):
        self.calls += 1
        tensor = inputs["input"]
        return {self.output_name: np.ascontiguousarray(tensor[:, :1])}


class FailingSession:
    def run(self, inputs):
        raise RuntimeError("kernel exploded")


class RecordingFactory:
    def __init__(self, session=None, fail: Iterable[BackendChoice] = ()) -> None:
        self.session = session if session is not None else EchoSession()
        self.fail = set(fail)
        self.calls: List[Tuple[Path, BackendChoice]] = []

    def __call__(self, model_path, backend, config):
        self.calls.append((model_path, backend))
        if backend in self.fail:
            raise RuntimeError(f"{backend.value} session failed")
        return self.session

    @property
    def backends(self) -> List[BackendChoice]:
        return [backend for _, backend in self.calls]


class FakeAdapter:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail

    def request_device(self) -> torch.device:
        if self.fail:
            raise RuntimeError("device lost")
        return torch.device("cpu")


class FakeProbe:
    def __init__(self, adapter: Optional[FakeAdapter] = None, error: Optional[Exception] = None) -> None:
        self.adapter = adapter
        self.error = error
        self.queries = 0

    def query_adapter(self):
        self.queries += 1
        if self.error is not None:
            raise self.error
        return self.adapter


@pytest.fixture
def echo_session() -> EchoSession:
    return EchoSession()


@pytest.fixture
def make_factory():
    return RecordingFactory


@pytest.fixture
def make_probe():
    def _make(available: bool = False, device_fails: bool = False, error: Optional[Exception] = None):
        adapter = FakeAdapter(fail=device_fails) if available else None
        return FakeProbe(adapter=adapter, error=error)

    return _make


@pytest.fixture
def failing_session() -> FailingSession:
    return FailingSession()


@pytest.fixture
def model_file(tmp_path: Path) -> Path:
    path = tmp_path / "model.onnx"
    path.write_bytes(b"not really onnx")
    return path
