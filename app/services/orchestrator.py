import logging
import os
import shutil
import tempfile
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from app.core import config
from app.core.exceptions import CompilationError, ExtractError, InternalError, InvalidRequest, JobCancelled
from app.models.compilation import CompilationRequest, CompileResult, JobStatus
from app.services.encoder import Encoder, EncoderFactory
from app.services.job_tracker import JobTracker, job_tracker, new_job_id
from app.services.media_fetcher import MediaFetcher
from app.services.storage import StorageService, storage_service
from app.services.timecode import clip_window

logger = logging.getLogger("compiler.orchestrator")

# Progress checkpoints reported to pollers
PROGRESS_STARTED = 5
PROGRESS_DOWNLOADING = 10
PROGRESS_EXTRACTING = 30
PROGRESS_CONCATENATING = 80
PROGRESS_UPLOADING = 90
PROGRESS_DONE = 100


def validate_request(request: CompilationRequest) -> List[Tuple[float, float]]:
    """Check a submission before any job exists.

    Returns ``(offset, duration)`` in seconds for every clip, in order.
    Raises InvalidRequest for the first problem found; nothing is accepted
    partially.
    """
    if not request.videoId or not request.clips:
        raise InvalidRequest("Invalid request. Required: videoId, clips array with videoUrl for each clip")

    if any(not clip.videoUrl for clip in request.clips):
        raise InvalidRequest("All clips must have a videoUrl property")

    windows = []
    for idx, clip in enumerate(request.clips):
        try:
            offset, duration = clip_window(clip.start, clip.end)
        except ValueError as exc:
            raise InvalidRequest(f"Clip {idx}: {exc}") from None
        if duration <= 0:
            raise InvalidRequest(f"Clip {idx}: end ({clip.end}) must be after start ({clip.start})")
        windows.append((offset, duration))
    return windows


def blob_name_for(video_id: str) -> str:
    return f"{video_id}-highlights-{int(time.time() * 1000)}.mp4"


@dataclass
class _JobHandle:
    cancel: threading.Event = field(default_factory=threading.Event)
    future: Optional[Future] = None
    timer: Optional[threading.Timer] = None
    reason: Optional[str] = None

    def stop(self, reason: str) -> None:
        if self.reason is None:
            self.reason = reason
        self.cancel.set()


class CompilationOrchestrator:
    """Runs compilation jobs: fetch, extract, concatenate, publish.

    ``submit`` validates and returns a job id straight away; the pipeline runs
    on a bounded thread pool and reports progress to the job tracker.
    """

    def __init__(
        self,
        fetcher: Optional[MediaFetcher] = None,
        encoder: Optional[Encoder] = None,
        publisher: Optional[StorageService] = None,
        tracker: Optional[JobTracker] = None,
        max_workers: int = config.MAX_CONCURRENT_JOBS,
        job_timeout: float = config.JOB_TIMEOUT_SECONDS,
    ):
        self.fetcher = fetcher or MediaFetcher()
        self.encoder = encoder or EncoderFactory.create()
        self.publisher = publisher or storage_service
        self.tracker = tracker or job_tracker
        self.max_workers = max(1, max_workers)
        self.job_timeout = job_timeout
        self._executor: Optional[ThreadPoolExecutor] = None
        self._handles: Dict[str, _JobHandle] = {}
        self._lock = threading.Lock()

    @property
    def executor(self) -> ThreadPoolExecutor:
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="compile")
            return self._executor

    def submit(self, request: CompilationRequest) -> str:
        validate_request(request)

        job_id = new_job_id()
        self.tracker.create(job_id)
        handle = _JobHandle()
        # The deadline counts from submission, so it also covers time spent queued
        if self.job_timeout and self.job_timeout > 0:
            handle.timer = threading.Timer(
                self.job_timeout,
                self.cancel,
                args=(job_id, f"Compilation timed out after {self.job_timeout:g}s"),
            )
            handle.timer.daemon = True
        with self._lock:
            self._handles[job_id] = handle
        if handle.timer is not None:
            handle.timer.start()
        handle.future = self.executor.submit(self._run_job, job_id, request, handle)

        unique_videos = len({clip.videoUrl for clip in request.clips})
        logger.info(
            "[%s] Accepted compilation for %s: %d clips from %d source video(s)",
            job_id, request.videoId, len(request.clips), unique_videos,
        )
        return job_id

    def compile_now(self, request: CompilationRequest, cancel: Optional[threading.Event] = None) -> CompileResult:
        """Run one compilation on the calling thread and return its result."""
        validate_request(request)
        job_id = new_job_id()
        self.tracker.create(job_id)

        started = time.time()
        try:
            url = self.run(job_id, request, cancel)
        except Exception as exc:
            self._fail(job_id, exc)
            raise
        return CompileResult(
            videoId=request.videoId,
            compilationUrl=url,
            clipsCount=len(request.clips),
            processingTime=f"{time.time() - started:.2f}s",
        )

    def cancel(self, job_id: str, reason: str = "Compilation cancelled") -> bool:
        with self._lock:
            handle = self._handles.get(job_id)
        if handle is None:
            return False
        handle.stop(reason)
        if handle.future is not None and handle.future.cancel():
            # Never started; nothing else will report on it
            self._finish(job_id)
            self.tracker.update(job_id, JobStatus.FAILED, JobCancelled.phase, 0, error=reason)
        return True

    def shutdown(self, wait: bool = False) -> None:
        with self._lock:
            job_ids = list(self._handles)
        for job_id in job_ids:
            self.cancel(job_id, "Service shutting down")
        with self._lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=wait, cancel_futures=True)

    def _run_job(self, job_id: str, request: CompilationRequest, handle: _JobHandle) -> None:
        started = time.time()
        try:
            self.run(job_id, request, handle.cancel)
            logger.info("[%s] Compilation complete in %.2fs", job_id, time.time() - started)
        except Exception as exc:
            if isinstance(exc, JobCancelled) and handle.reason:
                exc = JobCancelled(handle.reason)
            self._fail(job_id, exc)
        finally:
            self._finish(job_id)

    def run(self, job_id: str, request: CompilationRequest, cancel: Optional[threading.Event] = None) -> str:
        """Execute the pipeline for an already-created job and return the signed URL."""
        windows = validate_request(request)
        cancel = cancel or threading.Event()
        clip_count = len(request.clips)
        unique_urls = list(dict.fromkeys(clip.videoUrl for clip in request.clips))

        self._progress(job_id, "Starting compilation", PROGRESS_STARTED)
        workspace = tempfile.mkdtemp(prefix="compilation-")
        try:
            self._check_cancelled(cancel)
            self._progress(job_id, f"Downloading {len(unique_urls)} source video(s)", PROGRESS_DOWNLOADING)
            sources = self.fetcher.fetch_sources(unique_urls, workspace, cancel, job_id=job_id)

            self._progress(job_id, f"Extracting {clip_count} clip(s)", PROGRESS_EXTRACTING)
            clip_paths = []
            for idx, (clip, (offset, duration)) in enumerate(zip(request.clips, windows)):
                self._check_cancelled(cancel)
                logger.info(
                    "[%s] Extracting clip %d/%d: %s to %s (%.2fs)",
                    job_id, idx + 1, clip_count, clip.start, clip.end, duration,
                )
                clip_path = os.path.join(workspace, f"clip-{idx}.mp4")
                try:
                    clip_path = self.encoder.extract(sources[clip.videoUrl], offset, duration, clip_path, cancel)
                except ExtractError as exc:
                    raise ExtractError(f"Clip {idx + 1}/{clip_count} ({clip.start} to {clip.end}): {exc}") from exc
                clip_paths.append(clip_path)
                span = PROGRESS_CONCATENATING - PROGRESS_EXTRACTING
                self._progress(
                    job_id,
                    f"Extracted clip {idx + 1} of {clip_count}",
                    PROGRESS_EXTRACTING + span * (idx + 1) // clip_count,
                )

            self._check_cancelled(cancel)
            self._progress(job_id, f"Concatenating {clip_count} clip(s)", PROGRESS_CONCATENATING)
            output_path = self.encoder.concat(
                clip_paths,
                os.path.join(workspace, "concat.txt"),
                os.path.join(workspace, "compilation.mp4"),
                cancel,
            )

            self._check_cancelled(cancel)
            self._progress(job_id, "Uploading compilation", PROGRESS_UPLOADING)
            url = self.publisher.publish(output_path, blob_name_for(request.videoId))
        except CompilationError:
            raise
        except Exception as exc:
            logger.exception("[%s] Unexpected error during compilation", job_id)
            raise InternalError(str(exc) or exc.__class__.__name__) from exc
        finally:
            self._cleanup(job_id, workspace)

        self.tracker.update(
            job_id, JobStatus.COMPLETED, "Compilation complete", PROGRESS_DONE, video_url=url,
        )
        return url

    def _progress(self, job_id: str, message: str, progress: int) -> None:
        self.tracker.update(job_id, JobStatus.PROCESSING, message, progress)
        logger.info("[%s] %s (%d%%)", job_id, message, progress)

    def _fail(self, job_id: str, exc: Exception) -> None:
        phase = exc.phase if isinstance(exc, CompilationError) else InternalError.phase
        error = str(exc) or exc.__class__.__name__
        logger.error("[%s] %s: %s", job_id, phase, error)
        self.tracker.update(job_id, JobStatus.FAILED, phase, 0, error=error)

    def _finish(self, job_id: str) -> None:
        with self._lock:
            handle = self._handles.pop(job_id, None)
        if handle is not None and handle.timer is not None:
            handle.timer.cancel()

    @staticmethod
    def _check_cancelled(cancel: threading.Event) -> None:
        if cancel.is_set():
            raise JobCancelled("Compilation cancelled")

    @staticmethod
    def _cleanup(job_id: str, workspace: str) -> None:
        try:
            shutil.rmtree(workspace)
        except OSError as exc:
            logger.warning("[%s] Could not remove scratch directory %s: %s", job_id, workspace, exc)
