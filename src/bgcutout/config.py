from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import onnxruntime as ort

GRAPH_OPTIMIZATION_LEVELS = {
    "disabled": ort.GraphOptimizationLevel.ORT_DISABLE_ALL,
    "basic": ort.GraphOptimizationLevel.ORT_ENABLE_BASIC,
    "extended": ort.GraphOptimizationLevel.ORT_ENABLE_EXTENDED,
    "all": ort.GraphOptimizationLevel.ORT_ENABLE_ALL,
}


@dataclass
class RemoverConfig:
    model: str = "rmbg-1.4"
    cache_dir: Path = field(default_factory=lambda: Path("~/.cache/bgcutout").expanduser())
    device_id: int = 0
    allow_accelerated: bool = True
    use_tensorrt: bool = False
    input_size: int = 1024
    input_name: str = "input"
    output_name: str = "output"
    graph_optimization: str = "all"
    enable_cpu_mem_arena: bool = True
    intra_op_num_threads: int = 0

    def __post_init__(self) -> None:
        if self.graph_optimization not in GRAPH_OPTIMIZATION_LEVELS:
            raise ValueError(
                f"Unknown graph optimization level '{self.graph_optimization}'. "
                f"Choices: {list(GRAPH_OPTIMIZATION_LEVELS)}"
            )
        if self.input_size <= 0:
            raise ValueError("input_size must be positive.")
        self.cache_dir = Path(self.cache_dir).expanduser()

    def session_options(self) -> ort.SessionOptions:
        options = ort.SessionOptions()
        options.graph_optimization_level = GRAPH_OPTIMIZATION_LEVELS[self.graph_optimization]
        options.enable_cpu_mem_arena = self.enable_cpu_mem_arena
        if self.intra_op_num_threads > 0:
            options.intra_op_num_threads = self.intra_op_num_threads
        return options
