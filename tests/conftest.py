import time
from typing import Optional, Sequence

import pytest

from app.core.exceptions import ExtractError, FetchError, PublishError
from app.models.compilation import CompilationRequest, JobStatus
from app.services.encoder import Encoder, build_manifest
from app.services.job_tracker import JobTracker
from app.services.media_fetcher import MediaFetcher
from app.services.orchestrator import CompilationOrchestrator


class FakeFetcher(MediaFetcher):
    """Writes a small file instead of downloading."""

    def __init__(self, fail_on: Optional[str] = None):
        super().__init__(timeout=1)
        self.fail_on = fail_on
        self.calls: list[str] = []
        self.dest_paths: list[str] = []

    def fetch(self, url, dest_path, cancel=None, session=None):
        self.calls.append(url)
        self.dest_paths.append(dest_path)
        if url == self.fail_on:
            raise FetchError("Failed to download video: 404")
        with open(dest_path, "w") as f:
            f.write(url)
        return dest_path


class FakeEncoder(Encoder):
    """Records calls; output files hold a readable trace of what went in."""

    def __init__(self, fail_extract_at: Optional[int] = None):
        self.fail_extract_at = fail_extract_at
        self.extract_calls: list[tuple[str, float, float, str]] = []
        self.concat_calls: list[list[str]] = []
        self.manifests: list[str] = []

    def extract(self, source_path, start, duration, output_path, cancel=None):
        if self.fail_extract_at is not None and len(self.extract_calls) == self.fail_extract_at:
            raise ExtractError("ffmpeg exited with code 1: Invalid data found when processing input")
        self.extract_calls.append((source_path, start, duration, output_path))
        with open(source_path) as src:
            source_url = src.read()
        with open(output_path, "w") as f:
            f.write(f"{source_url}@{start:g}+{duration:g}\n")
        return output_path

    def concat(self, clip_paths: Sequence[str], manifest_path, output_path, cancel=None):
        self.concat_calls.append(list(clip_paths))
        manifest = build_manifest(clip_paths)
        with open(manifest_path, "w") as f:
            f.write(manifest)
        self.manifests.append(manifest)
        with open(output_path, "w") as out:
            for path in clip_paths:
                with open(path) as clip:
                    out.write(clip.read())
        return output_path


class FakePublisher:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.uploads: list[tuple[str, str]] = []

    def publish(self, local_path, blob_name):
        if self.fail:
            raise PublishError("GCS upload failed: 403 Forbidden")
        with open(local_path) as f:
            self.uploads.append((blob_name, f.read()))
        return f"https://storage.example.com/compilations/{blob_name}?X-Goog-Signature=abc"


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def encoder():
    return FakeEncoder()


@pytest.fixture
def publisher():
    return FakePublisher()


@pytest.fixture
def tracker():
    return JobTracker(retention_seconds=3600)


@pytest.fixture
def orchestrator(fetcher, encoder, publisher, tracker):
    orch = CompilationOrchestrator(
        fetcher=fetcher,
        encoder=encoder,
        publisher=publisher,
        tracker=tracker,
        max_workers=2,
        job_timeout=30,
    )
    yield orch
    orch.shutdown(wait=True)


def make_request(*clips, video_id="abc") -> CompilationRequest:
    return CompilationRequest(
        videoId=video_id,
        clips=[{"start": start, "end": end, "videoUrl": url} for start, end, url in clips],
    )


def wait_for_job(tracker: JobTracker, job_id: str, timeout: float = 5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        state = tracker.get(job_id)
        if state is not None and state.status is not JobStatus.PROCESSING:
            return state
        time.sleep(0.02)
    raise AssertionError(f"Job {job_id} did not finish within {timeout}s")
