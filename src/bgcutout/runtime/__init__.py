from .probe import Adapter, ComputeProbe, CudaAdapter, CudaProbe
from .selector import BackendSelector, BackendState
from .session import (
    BackendChoice,
    EngineSession,
    OrtEngineSession,
    SessionFactory,
    build_providers,
    create_session,
)

__all__ = [
    "Adapter",
    "ComputeProbe",
    "CudaAdapter",
    "CudaProbe",
    "BackendSelector",
    "BackendState",
    "BackendChoice",
    "EngineSession",
    "OrtEngineSession",
    "SessionFactory",
    "build_providers",
    "create_session",
]
