from __future__ import annotations

import contextlib
import json
import os
import shutil
import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional

from meetscribe.utils.logger import get_logger

logger = get_logger("meetscribe.audio")


class ToolchainError(RuntimeError):
    """ffmpeg/ffprobe missing or exited non-zero."""


@dataclass(frozen=True)
class AudioInfo:
    duration: float
    sample_rate: int


def toolchain_available() -> bool:
    return shutil.which("ffmpeg") is not None and shutil.which("ffprobe") is not None


def _run(cmd: list[str], *, env: Optional[dict[str, str]] = None) -> str:
    """
    Run an audio tool and return stdout + stderr (ffmpeg reports filter
    statistics on stderr).
    """
    base_env = os.environ.copy()
    base_env.setdefault("LANG", "C.UTF-8")
    base_env.setdefault("LC_ALL", "C.UTF-8")
    if env:
        base_env.update(env)

    try:
        proc = subprocess.run(
            cmd,
            check=True,
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
            env=base_env,
        )
    except FileNotFoundError as e:
        raise ToolchainError(f"Executable not found: {cmd[0]}") from e
    except subprocess.CalledProcessError as e:
        if e.stderr:
            logger.error(e.stderr[-2000:])
        raise ToolchainError(f"Command failed: {' '.join(cmd)}") from e

    return (proc.stdout or "") + (proc.stderr or "")


@contextlib.contextmanager
def scratch_dir(prefix: str = "meetscribe-") -> Iterator[Path]:
    """
    Scoped temp directory; removed on success and on failure.
    """
    with tempfile.TemporaryDirectory(prefix=prefix) as d:
        yield Path(d)


def probe(path: Path) -> AudioInfo:
    out = _run(
        [
            "ffprobe",
            "-v", "quiet",
            "-print_format", "json",
            "-show_format",
            "-show_streams",
            str(path),
        ]
    )
    try:
        info = json.loads(out)
    except json.JSONDecodeError as e:
        raise ToolchainError(f"ffprobe returned non-JSON output for {path.name}") from e

    streams = info.get("streams") or [{}]
    duration = float((info.get("format") or {}).get("duration") or 0.0)
    sample_rate = int(streams[0].get("sample_rate") or 16000)
    return AudioInfo(duration=duration, sample_rate=sample_rate)


def apply_filters(
    in_path: Path,
    out_path: Path,
    *,
    filters: list[str],
    sample_rate: int = 16000,
) -> Path:
    """
    Run an -af chain and write mono 16-bit PCM wav.
    """
    cmd = ["ffmpeg", "-hide_banner", "-y", "-i", str(in_path)]
    if filters:
        cmd += ["-af", ",".join(filters)]
    cmd += ["-ar", str(sample_rate), "-ac", "1", "-acodec", "pcm_s16le", str(out_path)]
    _run(cmd)
    return out_path


def encode_mp3(in_path: Path, out_path: Path, *, sample_rate: int = 16000, bitrate: str = "64k") -> Path:
    _run(
        [
            "ffmpeg", "-hide_banner", "-y",
            "-i", str(in_path),
            "-ar", str(sample_rate),
            "-ac", "1",
            "-b:a", bitrate,
            str(out_path),
        ]
    )
    return out_path


def cut_range(in_path: Path, out_path: Path, start: float, end: float) -> Path:
    _run(
        [
            "ffmpeg", "-hide_banner", "-loglevel", "error", "-y",
            "-ss", f"{start}",
            "-to", f"{end}",
            "-i", str(in_path),
            str(out_path),
        ]
    )
    return out_path


def measure_levels(path: Path) -> str:
    """Raw astats metadata dump, parsed by quality.parse_levels()."""
    return _run(
        [
            "ffmpeg", "-hide_banner", "-i", str(path),
            "-af", "astats=metadata=1:reset=0,ametadata=print:file=-",
            "-f", "null", "-",
        ]
    )


def detect_silence(path: Path, *, noise_db: float = -30.0, min_silence: float = 0.3) -> str:
    """Raw silencedetect log, parsed by quality.parse_silences()."""
    return _run(
        [
            "ffmpeg", "-hide_banner", "-i", str(path),
            "-af", f"silencedetect=noise={noise_db:g}dB:d={min_silence:g}",
            "-f", "null", "-",
        ]
    )
