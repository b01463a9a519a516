from __future__ import annotations

import dataclasses
import json
from pathlib import Path
from types import SimpleNamespace
from typing import Any

from typer.testing import CliRunner

import meetscribe.cli.main as cli_main
from meetscribe.config import Settings
from meetscribe.core.asr.executor import PassExecutor
from meetscribe.core.pipeline import TranscriptionPipeline
from meetscribe.core.quality.monitor import AccuracyMonitor
from meetscribe.core.quality.store import InMemoryAccuracyStore
from meetscribe.core.refine.vocabulary import VocabularyEnhancer
from meetscribe.core.vocabulary.store import InMemoryVocabularyStore
from tests._helpers import FakeEngine, FakePreprocessor, fake_fetch, transcription

runner = CliRunner()


def _use_data_root(monkeypatch: Any, root: Path) -> Settings:
    settings = Settings(data_root=str(root), job_root=str(root / "jobs"), vocabulary_path="", metrics_dir="")
    monkeypatch.setattr(cli_main, "load_settings", lambda: settings)
    return settings


def test_score_prints_rates(tmp_path: Path) -> None:
    a = tmp_path / "a.txt"
    b = tmp_path / "b.txt"
    a.write_text("a b c d\n", encoding="utf-8")
    b.write_text("a x c d\n", encoding="utf-8")

    result = runner.invoke(cli_main.app, ["score", str(a), str(b)])

    assert result.exit_code == 0, result.output
    assert json.loads(result.output) == {"wer": 0.25, "cer": 1 / 7}


def test_vocab_import_export_seed(tmp_path: Path, monkeypatch: Any) -> None:
    _use_data_root(monkeypatch, tmp_path)
    csv_path = tmp_path / "terms.csv"
    csv_path.write_text("term,variations\nEBITDA,ebida\n", encoding="utf-8")

    imported = runner.invoke(cli_main.app, ["vocab-import", str(csv_path), "--org", "org", "--category", "finance"])
    assert imported.exit_code == 0, imported.output
    assert "imported=1" in imported.output
    assert (tmp_path / "vocabulary.json").exists()

    exported = runner.invoke(cli_main.app, ["vocab-export", "--org", "org"])
    assert exported.exit_code == 0, exported.output
    assert "ebitda,ebida,finance,,,0,0.5" in exported.output

    seeded = runner.invoke(cli_main.app, ["vocab-seed", "--org", "other"])
    assert seeded.exit_code == 0, seeded.output
    assert seeded.output.startswith("seeded=")
    assert seeded.output.strip() != "seeded=0"


def test_correct_then_report(tmp_path: Path, monkeypatch: Any) -> None:
    _use_data_root(monkeypatch, tmp_path)
    original = tmp_path / "orig.txt"
    corrected = tmp_path / "fixed.txt"
    original.write_text("a negyedéves árbevetél nőtt", encoding="utf-8")
    corrected.write_text("a negyedéves árbevétel nőtt", encoding="utf-8")

    out = runner.invoke(
        cli_main.app,
        ["correct", str(original), str(corrected), "--org", "org", "--id", "t1"],
    )
    assert out.exit_code == 0, out.output
    assert "wer=0.250" in out.output
    assert (tmp_path / "accuracy" / "corrections.jsonl").exists()

    report_path = tmp_path / "report.json"
    rep = runner.invoke(cli_main.app, ["report", "--org", "org", "--out", str(report_path)])
    assert rep.exit_code == 0, rep.output
    payload = json.loads(report_path.read_text(encoding="utf-8"))
    assert payload["organization_id"] == "org"
    assert payload["common_errors"] == []


def test_transcribe_writes_json_and_text(tmp_path: Path, monkeypatch: Any) -> None:
    settings = dataclasses.replace(_use_data_root(monkeypatch, tmp_path), seed_default_vocabulary=False)
    monkeypatch.setattr(cli_main, "load_settings", lambda: settings)

    vocabulary = InMemoryVocabularyStore()
    pipeline = TranscriptionPipeline(
        executor=PassExecutor(FakeEngine(lambda *_a: transcription((0.0, 2.0, "jó napot")))),
        preprocessor=FakePreprocessor(duration=10.0),
        enhancer=VocabularyEnhancer(vocabulary),
        monitor=AccuracyMonitor(InMemoryAccuracyStore(), vocabulary),
        fetch=fake_fetch(10.0),
    )
    monkeypatch.setattr(cli_main, "build_pipeline", lambda *_a, **_kw: pipeline)

    out_dir = tmp_path / "out"
    result = runner.invoke(
        cli_main.app,
        ["transcribe", "meeting.wav", "--org", "org", "--id", "t1", "--out", str(out_dir), "--passes", "1"],
    )

    assert result.exit_code == 0, result.output
    payload = json.loads((out_dir / "t1.json").read_text(encoding="utf-8"))
    assert payload["transcript"]["text"] == "jó napot"
    assert (out_dir / "t1.txt").read_text(encoding="utf-8") == "jó napot\n"


def test_transcribe_rejects_unknown_quality(tmp_path: Path, monkeypatch: Any) -> None:
    _use_data_root(monkeypatch, tmp_path)
    monkeypatch.setattr(cli_main, "build_pipeline", lambda *_a, **_kw: SimpleNamespace(enhancer=None))

    result = runner.invoke(cli_main.app, ["transcribe", "x.wav", "--org", "org", "--min-quality", "superb"])

    assert result.exit_code == 2


def test_submit_enqueues_and_status_reads_it_back(tmp_path: Path, monkeypatch: Any) -> None:
    from meetscribe.core.jobs import JobSpecStore
    from meetscribe.service.jobs import JobsService

    settings = _use_data_root(monkeypatch, tmp_path)
    enqueued = []
    queue = SimpleNamespace(connection=None, enqueue=lambda *a, **kw: enqueued.append(kw["job_id"]))
    svc = JobsService(settings, JobSpecStore(settings.job_root), queue)  # type: ignore[arg-type]
    monkeypatch.setattr(svc, "_rq_job_exists", lambda _jid: False)
    monkeypatch.setattr(cli_main, "_jobs_service", lambda _s: svc)

    submitted = runner.invoke(cli_main.app, ["submit", "meeting.wav", "--org", "org", "--speakers", "2"])
    assert submitted.exit_code == 0, submitted.output
    job_id = enqueued[0]
    assert f"job_id={job_id} state=queued" in submitted.output
    assert svc.store.read_dict(job_id, "spec")["inputs"]["transcription_id"] == job_id

    status = runner.invoke(cli_main.app, ["status", job_id])
    assert status.exit_code == 0, status.output
    assert json.loads(status.output)["state"] == "queued"

    missing = runner.invoke(cli_main.app, ["status", "no_such_job"])
    assert missing.exit_code == 1
