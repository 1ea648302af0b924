import importlib.util
import json
from pathlib import Path

import pytest

from app.services.orchestrator import CompilationOrchestrator
from conftest import FakeFetcher

WORKER_PATH = Path(__file__).resolve().parents[1] / "deploy" / "cloud-run-job" / "worker.py"


@pytest.fixture(scope="module")
def worker():
    spec = importlib.util.spec_from_file_location("compile_worker", WORKER_PATH)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture(autouse=True)
def quiet_logging(monkeypatch):
    # Keep the worker from replacing pytest's log handlers
    monkeypatch.setattr("app.core.logging_config.setup_logging", lambda *args, **kwargs: None)


def _env(clips):
    return {"VIDEO_ID": "abc", "CLIPS": json.dumps(clips)}


def test_worker_prints_result(worker, orchestrator, publisher, capsys):
    code = worker.main(
        _env([{"start": "0:00:10", "end": "0:00:20", "videoUrl": "https://x/video.mp4"}]),
        orchestrator=orchestrator,
    )
    assert code == 0
    result = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
    assert result["videoId"] == "abc"
    assert result["clipsCount"] == 1
    assert result["compilationUrl"].startswith("https://storage.example.com/")
    assert len(publisher.uploads) == 1


def test_worker_requires_env(worker, orchestrator):
    assert worker.main({}, orchestrator=orchestrator) == 1
    assert worker.main({"VIDEO_ID": "abc", "CLIPS": "{not json"}, orchestrator=orchestrator) == 1
    assert worker.main({"VIDEO_ID": "abc", "CLIPS": "{}"}, orchestrator=orchestrator) == 1


def test_worker_rejects_invalid_clips(worker, orchestrator, fetcher):
    code = worker.main(_env([{"start": "0:00:10", "end": "0:00:20"}]), orchestrator=orchestrator)
    assert code == 1
    assert fetcher.calls == []


def test_worker_exits_nonzero_on_pipeline_failure(worker, encoder, publisher, tracker):
    orch = CompilationOrchestrator(
        fetcher=FakeFetcher(fail_on="https://x/video.mp4"),
        encoder=encoder,
        publisher=publisher,
        tracker=tracker,
    )
    code = worker.main(
        _env([{"start": "0:00:10", "end": "0:00:20", "videoUrl": "https://x/video.mp4"}]),
        orchestrator=orch,
    )
    assert code == 1
    assert publisher.uploads == []
