from __future__ import annotations

import hashlib
import logging
from pathlib import Path
from typing import Optional

import requests
from tqdm import tqdm

logger = logging.getLogger(__name__)


def sha256_file(path: Path) -> str:
    hasher = hashlib.sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(1024 * 1024), b""):
            hasher.update(chunk)
    return hasher.hexdigest()


def download_file(
    url: str,
    destination: Path,
    expected_sha256: Optional[str] = None,
    chunk_size: int = 1024 * 1024,
    timeout: float = 60,
) -> Path:
    """
    Stream a remote model file into the local cache.

    Parameters
    ----------
    url: str
        Remote URL to download.
    destination: Path
        Local destination path. Written via a ``.tmp`` sibling and renamed on success.
    expected_sha256: Optional[str]
        Optional SHA-256 hex digest checked after the download.
    chunk_size: int
        Streaming chunk size in bytes. Defaults to 1 MiB.
    timeout: float
        Connect/read timeout in seconds passed to ``requests``.
    """

    destination.parent.mkdir(parents=True, exist_ok=True)

    if destination.exists() and destination.stat().st_size > 0:
        if not expected_sha256 or sha256_file(destination) == expected_sha256.lower():
            logger.debug("Using cached model %s", destination)
            return destination

    logger.info("Downloading %s -> %s", url, destination)
    tmp_path = destination.with_suffix(destination.suffix + ".tmp")
    with requests.get(url, stream=True, timeout=timeout) as response:
        response.raise_for_status()
        total = int(response.headers.get("content-length", 0)) or None
        with tqdm(
            total=total,
            unit="B",
            unit_scale=True,
            desc=f"Downloading {destination.name}",
        ) as progress, tmp_path.open("wb") as handle:
            for chunk in response.iter_content(chunk_size=chunk_size):
                if not chunk:
                    continue
                handle.write(chunk)
                progress.update(len(chunk))
    tmp_path.replace(destination)

    if expected_sha256 and sha256_file(destination) != expected_sha256.lower():
        destination.unlink(missing_ok=True)
        raise ValueError(
            f"Checksum mismatch for {destination}. Expected {expected_sha256}."
        )

    return destination
