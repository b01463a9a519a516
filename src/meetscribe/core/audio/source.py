from __future__ import annotations

from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

import httpx

from meetscribe.core_types import AudioAsset
from meetscribe.errors import DownloadFailure
from meetscribe.utils.logger import get_logger

logger = get_logger("meetscribe.audio")

# Fallback when ffprobe cannot read the container: assume ~128 kbps.
_BYTES_PER_SECOND_AT_128K = 128_000 / 8


def estimate_duration(size_bytes: int) -> float:
    return size_bytes / _BYTES_PER_SECOND_AT_128K


def _is_url(source: str) -> bool:
    return urlparse(source).scheme in ("http", "https")


def _filename_for(source: str) -> str:
    if _is_url(source):
        name = Path(urlparse(source).path).name
    else:
        name = Path(source).name
    return name or "audio.wav"


def fetch_bytes(source: str, *, timeout: float = 60.0) -> bytes:
    if not source or not source.strip():
        raise DownloadFailure("audio source is empty")

    if _is_url(source):
        try:
            with httpx.Client(timeout=timeout, follow_redirects=True) as client:
                resp = client.get(source)
                resp.raise_for_status()
                data = resp.content
        except httpx.HTTPError as e:
            raise DownloadFailure(f"failed to download audio: {e}", details={"source": source}) from e
    else:
        path = Path(source).expanduser()
        try:
            data = path.read_bytes()
        except OSError as e:
            raise DownloadFailure(f"failed to read audio: {e}", details={"source": source}) from e

    if not data:
        raise DownloadFailure("audio source is empty", details={"source": source})
    return data


def fetch_audio(
    source: str,
    *,
    timeout: float = 60.0,
    duration: Optional[float] = None,
    sample_rate: int = 16000,
) -> AudioAsset:
    """
    Load source audio from an http(s) URL or a local path.
    `duration` comes from the caller's probe; otherwise it is estimated from size.
    """
    data = fetch_bytes(source, timeout=timeout)
    dur = duration if duration is not None and duration > 0 else estimate_duration(len(data))
    logger.info(f"Fetched audio {_filename_for(source)} ({len(data)} bytes, ~{dur:.1f}s)")
    return AudioAsset(data=data, duration=dur, sample_rate=sample_rate, filename=_filename_for(source))
