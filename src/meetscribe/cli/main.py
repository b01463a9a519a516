from __future__ import annotations

import dataclasses
import json
import uuid
from datetime import timedelta
from pathlib import Path
from typing import List, Optional

import typer

from meetscribe.config import Settings, load_settings
from meetscribe.core.contracts import PipelineConfig, PreprocessOptions
from meetscribe.core.factory import build_accuracy_store, build_monitor, build_pipeline, build_vocabulary_store
from meetscribe.core.quality.metrics import score as score_texts
from meetscribe.core.vocabulary.csv_io import export_csv, import_csv
from meetscribe.core.vocabulary.defaults import initialize_defaults
from meetscribe.core_types import CorrectionRecord, CorrectionSpan, utc_now
from meetscribe.errors import TranscriptionError
from meetscribe.utils.io import ensure_dir, write_json
from meetscribe.utils.logger import set_log_level

app = typer.Typer(help="Multi-pass, vocabulary-aware meeting transcription")

_QUALITIES = ("poor", "fair", "good", "excellent")


def _settings(engine: Optional[str] = None) -> Settings:
    settings = load_settings()
    set_log_level(settings.log_level)
    if engine:
        settings = dataclasses.replace(settings, stt_engine=engine)
    return settings


def _normalize_quality(q: Optional[str]) -> Optional[str]:
    if q is None:
        return None
    q2 = q.strip().lower()
    if q2 not in _QUALITIES:
        raise typer.BadParameter(f"min quality must be one of: {', '.join(_QUALITIES)}")
    return q2


def _read_text(p: Path) -> str:
    return p.read_text(encoding="utf-8").strip()


@app.command()
def transcribe(
    source: str = typer.Argument(..., help="Audio file path or http(s) URL"),
    org: str = typer.Option(..., "--org", help="Organization id (vocabulary owner)"),
    transcription_id: Optional[str] = typer.Option(None, "--id", help="Transcription id (default: random)"),
    out: Path = typer.Option(Path("./out"), help="Output directory"),
    lang: str = typer.Option("hu", help="Spoken language"),

    # Multi-pass
    passes: int = typer.Option(2, min=1, max=5, help="Passes over the same audio"),
    temperature: Optional[List[float]] = typer.Option(None, "--temperature", help="Temperature per pass (repeatable)"),

    # Prompt
    term: Optional[List[str]] = typer.Option(None, "--term", help="Extra vocabulary term (repeatable)"),
    hint: Optional[List[str]] = typer.Option(None, "--hint", help="Meeting context hint (repeatable)"),
    speakers: Optional[int] = typer.Option(None, min=1, help="Expected number of speakers"),

    # Range
    start: float = typer.Option(0.0, help="Start offset (seconds)"),
    end: Optional[float] = typer.Option(None, help="End offset (seconds)"),

    # Stages
    preprocess: bool = typer.Option(True, help="Clean audio with ffmpeg first"),
    multi_pass: bool = typer.Option(True, help="Merge several passes"),
    parallel: bool = typer.Option(True, help="Chunk long recordings and run them in parallel"),
    vocabulary: bool = typer.Option(True, help="Apply organization vocabulary"),
    llm: bool = typer.Option(False, help="LLM post-processing"),
    monitor: bool = typer.Option(True, help="Record accuracy metrics"),

    # Thresholds
    min_quality: Optional[str] = typer.Option(None, help="Warn below this audio quality"),
    min_confidence: Optional[float] = typer.Option(None, min=0.0, max=1.0, help="Warn below this confidence"),

    engine: Optional[str] = typer.Option(None, help="STT engine override: openai/local"),
):
    settings = _settings(engine)
    pipeline = build_pipeline(settings, with_llm=llm)
    if settings.seed_default_vocabulary and pipeline.enhancer is not None:
        initialize_defaults(pipeline.enhancer.store, org)

    config = PipelineConfig(
        organization_id=org,
        transcription_id=transcription_id or uuid.uuid4().hex,
        source=source,
        language=lang,
        passes=passes,
        temperatures=tuple(temperature) if temperature else (0.0, 0.2, 0.4),
        custom_vocabulary=tuple(term or ()),
        context_hints=tuple(hint or ()),
        speaker_count=speakers,
        start_time=start,
        end_time=end,
        enable_preprocessing=preprocess,
        enable_multi_pass=multi_pass,
        enable_parallel=parallel,
        enable_vocabulary=vocabulary,
        enable_llm_enhancement=llm,
        enable_accuracy_monitoring=monitor,
        preprocess=PreprocessOptions(),
        min_audio_quality=_normalize_quality(min_quality),  # type: ignore[arg-type]
        min_confidence=min_confidence,
    )

    try:
        result = pipeline.run(config)
    except TranscriptionError as e:
        typer.echo(f"Transcription failed: {e}", err=True)
        raise typer.Exit(code=1)

    ensure_dir(out)
    json_path = out / f"{config.transcription_id}.json"
    txt_path = out / f"{config.transcription_id}.txt"
    write_json(json_path, result.to_dict())
    txt_path.write_text(result.text + "\n", encoding="utf-8")

    typer.echo(
        f"{json_path} quality={result.audio_quality} confidence={result.confidence:.2f} "
        f"passes={result.pass_count} enhancements={','.join(result.enhancements_applied) or '-'}"
    )
    for w in result.warnings:
        typer.echo(f"warning: {w}", err=True)


@app.command()
def score(
    original: Path = typer.Argument(..., exists=True, help="Machine transcript (text file)"),
    corrected: Path = typer.Argument(..., exists=True, help="Reference transcript (text file)"),
):
    rates = score_texts(_read_text(original), _read_text(corrected))
    typer.echo(json.dumps(rates.model_dump()))


@app.command()
def correct(
    original: Path = typer.Argument(..., exists=True, help="Machine transcript (text file)"),
    corrected: Path = typer.Argument(..., exists=True, help="User-corrected transcript (text file)"),
    org: str = typer.Option(..., "--org", help="Organization id"),
    transcription_id: str = typer.Option(..., "--id", help="Transcription id"),
    spans: Optional[Path] = typer.Option(None, exists=True, help="JSON list of correction spans"),
    user: Optional[str] = typer.Option(None, help="User id"),
):
    settings = _settings()
    vocabulary = build_vocabulary_store(settings)
    monitor = build_monitor(settings, build_accuracy_store(settings), vocabulary)

    span_list: List[CorrectionSpan] = []
    if spans is not None:
        span_list = [CorrectionSpan.model_validate(s) for s in json.loads(spans.read_text(encoding="utf-8"))]

    outcome = monitor.record_correction(
        CorrectionRecord(
            transcription_id=transcription_id,
            organization_id=org,
            original=_read_text(original),
            corrected=_read_text(corrected),
            spans=span_list,
            user_id=user,
        )
    )
    typer.echo(
        f"wer={outcome.rates.wer:.3f} cer={outcome.rates.cer:.3f} confirmed={len(outcome.confirmed)} "
        f"penalized={len(outcome.penalized)} learned={len(outcome.learned)} patterns={outcome.patterns}"
    )
    for w in outcome.warnings:
        typer.echo(f"warning: {w}", err=True)


@app.command()
def report(
    org: str = typer.Option(..., "--org", help="Organization id"),
    days: int = typer.Option(30, min=1, help="Reporting window, ending now"),
    out: Optional[Path] = typer.Option(None, help="Write the report JSON here instead of stdout"),
):
    settings = _settings()
    monitor = build_monitor(settings, build_accuracy_store(settings), build_vocabulary_store(settings))
    end = utc_now()
    rep = monitor.report(org, end - timedelta(days=days), end)

    payload = rep.model_dump(mode="json")
    if out is not None:
        write_json(out, payload)
        typer.echo(str(out))
    else:
        typer.echo(json.dumps(payload, ensure_ascii=False, indent=2))


@app.command("vocab-import")
def vocab_import(
    csv_path: Path = typer.Argument(..., exists=True, help="CSV with term,variations,category,phonetic_hint,context_hints"),
    org: str = typer.Option(..., "--org", help="Organization id"),
    category: str = typer.Option("custom", help="Category for rows without one"),
):
    store = build_vocabulary_store(_settings())
    n = import_csv(store, org, csv_path.read_text(encoding="utf-8"), category=category)  # type: ignore[arg-type]
    typer.echo(f"imported={n}")


@app.command("vocab-export")
def vocab_export(
    org: str = typer.Option(..., "--org", help="Organization id"),
    out: Optional[Path] = typer.Option(None, help="Output CSV (default: stdout)"),
    category: Optional[str] = typer.Option(None, help="Only this category"),
):
    store = build_vocabulary_store(_settings())
    data = export_csv(store, org, category=category)  # type: ignore[arg-type]
    if out is not None:
        out.write_text(data, encoding="utf-8")
        typer.echo(str(out))
    else:
        typer.echo(data, nl=False)


@app.command("vocab-seed")
def vocab_seed(org: str = typer.Option(..., "--org", help="Organization id")):
    store = build_vocabulary_store(_settings())
    typer.echo(f"seeded={initialize_defaults(store, org)}")


def _jobs_service(settings: Settings):
    from meetscribe.core.jobs import JobSpecStore
    from meetscribe.service.jobs import JobsService
    from meetscribe.service.rq.broker import transcription_queue

    return JobsService(settings, JobSpecStore(settings.job_root), transcription_queue(settings))


@app.command()
def submit(
    source: str = typer.Argument(..., help="Audio file path or http(s) URL (as seen by the worker)"),
    org: str = typer.Option(..., "--org", help="Organization id (vocabulary owner)"),
    transcription_id: Optional[str] = typer.Option(None, "--id", help="Transcription id (default: job id)"),
    lang: str = typer.Option("hu", help="Spoken language"),
    passes: int = typer.Option(2, min=1, max=5, help="Passes over the same audio"),
    speakers: Optional[int] = typer.Option(None, min=1, help="Expected number of speakers"),
    llm: bool = typer.Option(False, help="LLM post-processing"),
):
    from meetscribe.core.jobs.schemas import TranscribeJobRequest

    settings = _settings()
    service = _jobs_service(settings)
    job_id = service.new_job_id()

    request = TranscribeJobRequest(
        organization_id=org,
        transcription_id=transcription_id or job_id,
        source=source,
        language=lang,
        passes=passes,
        speaker_count=speakers,
        enable_llm_enhancement=llm,
    )
    enqueued = service.submit_transcription(request, job_id=job_id)
    typer.echo(f"job_id={job_id} state={enqueued.status.state.value} job_dir={enqueued.spec.job_root}")


@app.command()
def status(job_id: str = typer.Argument(..., help="Job id printed by submit")):
    from meetscribe.core.jobs import JobSpecStore
    from meetscribe.core.jobs.schemas import JobStatus

    store = JobSpecStore(_settings().job_root)
    if not store.has_status(job_id):
        typer.echo(f"unknown job: {job_id}", err=True)
        raise typer.Exit(code=1)
    st = store.read_as_model(job_id, JobStatus, "status")
    typer.echo(json.dumps(st.model_dump(mode="json"), ensure_ascii=False, indent=2))


@app.command()
def worker(burst: bool = typer.Option(False, help="Exit once the queue is empty")):
    from meetscribe.service.rq.worker_main import main as worker_main

    worker_main(_settings(), burst=burst)


if __name__ == "__main__":
    app()
