from __future__ import annotations

from pathlib import Path
from typing import Any

import httpx
import pytest

import meetscribe.core.audio.source as source
from meetscribe.errors import DownloadFailure


def test_local_file_is_read_and_named(tmp_path: Path) -> None:
    p = tmp_path / "standup.mp3"
    p.write_bytes(b"\x00" * 32_000)

    asset = source.fetch_audio(str(p))

    assert asset.filename == "standup.mp3"
    assert asset.data == b"\x00" * 32_000
    # no probe -> estimated at 128 kbps
    assert asset.duration == pytest.approx(2.0)


def test_probed_duration_wins(tmp_path: Path) -> None:
    p = tmp_path / "a.wav"
    p.write_bytes(b"abc")
    assert source.fetch_audio(str(p), duration=61.5).duration == 61.5


def test_missing_file_is_download_failure(tmp_path: Path) -> None:
    with pytest.raises(DownloadFailure) as ei:
        source.fetch_audio(str(tmp_path / "nope.wav"))
    assert ei.value.fatal is True
    assert ei.value.code == "download_failure"


def test_empty_source_is_download_failure() -> None:
    with pytest.raises(DownloadFailure):
        source.fetch_audio("  ")


def test_http_error_is_download_failure(monkeypatch: Any) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, request=request)

    real_client = httpx.Client

    def _client(**kw: Any) -> httpx.Client:
        return real_client(transport=httpx.MockTransport(handler), **kw)

    monkeypatch.setattr(source.httpx, "Client", _client)

    with pytest.raises(DownloadFailure):
        source.fetch_audio("https://example.test/rec.mp3")


def test_http_download(monkeypatch: Any) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"mp3-bytes", request=request)

    real_client = httpx.Client
    monkeypatch.setattr(source.httpx, "Client", lambda **kw: real_client(transport=httpx.MockTransport(handler), **kw))

    asset = source.fetch_audio("https://example.test/path/rec.mp3?sig=1", duration=10.0)
    assert asset.data == b"mp3-bytes"
    assert asset.filename == "rec.mp3"
