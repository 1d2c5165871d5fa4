from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from statistics import mean
from typing import List, Optional

from .errors import CutoutError
from .models import MODEL_REGISTRY
from .pipeline import BackgroundRemover, RemoverConfig


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Remove image backgrounds with an ONNX segmentation model.",
    )
    parser.add_argument(
        "--input-dir",
        type=Path,
        required=True,
        help="Directory containing source images.",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        required=True,
        help="Directory where RGBA PNG cutouts will be written.",
    )
    parser.add_argument(
        "--model",
        type=str,
        default="rmbg-1.4",
        help=(
            "Model name, URL or local .onnx path. Known models: "
            + ", ".join(MODEL_REGISTRY.keys())
        ),
    )
    parser.add_argument(
        "--cache-dir",
        type=Path,
        default=Path("~/.cache/bgcutout").expanduser(),
        help="Directory used to cache downloaded models.",
    )
    parser.add_argument(
        "--device-id",
        type=int,
        default=0,
        help="CUDA device index for the accelerated backend.",
    )
    parser.add_argument(
        "--cpu-only",
        dest="allow_accelerated",
        action="store_false",
        help="Skip the accelerated backend and run on CPU.",
    )
    parser.add_argument(
        "--tensorrt",
        dest="use_tensorrt",
        action="store_true",
        help="Put the TensorRT provider ahead of CUDA on the accelerated backend.",
    )
    parser.add_argument(
        "--overwrite",
        action="store_true",
        help="Overwrite outputs even if the file already exists.",
    )
    parser.add_argument(
        "--json",
        dest="json_report",
        type=Path,
        default=None,
        help="Optional path to write a JSON timing report.",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity.",
    )
    return parser.parse_args(argv)


def run(argv: Optional[List[str]] = None) -> None:
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    args.input_dir = args.input_dir.expanduser()
    args.output_dir = args.output_dir.expanduser()

    if not args.input_dir.exists():
        raise SystemExit(f"Input directory {args.input_dir} does not exist.")

    config = RemoverConfig(
        model=args.model,
        cache_dir=args.cache_dir,
        device_id=args.device_id,
        allow_accelerated=args.allow_accelerated,
        use_tensorrt=args.use_tensorrt,
    )
    remover = BackgroundRemover(config)
    try:
        backend = remover.initialize()
    except CutoutError as exc:
        raise SystemExit(f"Error loading model: {exc}") from exc
    print(f"[+] Model {args.model} loaded on {backend.value} backend")

    timings = remover.process_directory(
        args.input_dir,
        args.output_dir,
        overwrite=args.overwrite,
    )
    if not timings:
        print("    No images processed (perhaps outputs already exist?).")
        return

    total_time = sum(timings.values())
    avg_time = mean(timings.values())
    print(
        f"    Processed {len(timings)} images | total {total_time:.2f}s | avg {avg_time:.3f}s"
    )

    if args.json_report:
        report = {
            "model": args.model,
            "backend": backend.value,
            "images": len(timings),
            "total_seconds": total_time,
            "avg_seconds": avg_time,
            "per_image": timings,
        }
        args.json_report.parent.mkdir(parents=True, exist_ok=True)
        with args.json_report.open("w", encoding="utf-8") as handle:
            json.dump(report, handle, indent=2)
        print(f"[+] Wrote timing report to {args.json_report}")


if __name__ == "__main__":
    run()
