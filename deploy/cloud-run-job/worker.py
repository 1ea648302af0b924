"""
Cloud Run Job worker: compiles one highlight reel and exits.

Reads configuration from environment variables (set as execution overrides):
  VIDEO_ID   : label used in the output object name
  CLIPS      : JSON list of {"start", "end", "videoUrl"} objects

Shared env vars (set on the Job definition):
  GCS_BUCKET_NAME
  GCS_BASE_PREFIX
  GCS_SIGNING_SA_EMAIL

On success the result ({videoId, compilationUrl, clipsCount, processingTime})
is printed to stdout as JSON. Any failure exits(1); the job is not retried
because a failed compilation has to be resubmitted with a new clip list.
"""

import json
import logging
import os
import sys

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger("compiler.worker")


def parse_env(environ=os.environ):
    from app.models.compilation import CompilationRequest

    video_id = environ.get("VIDEO_ID")
    clips_raw = environ.get("CLIPS")
    if not video_id or not clips_raw:
        raise ValueError("VIDEO_ID and CLIPS env vars are required.")

    try:
        clips = json.loads(clips_raw)
    except json.JSONDecodeError as e:
        raise ValueError(f"CLIPS is not valid JSON: {e}") from e
    if not isinstance(clips, list):
        raise ValueError("CLIPS must be a JSON list.")

    return CompilationRequest(videoId=video_id, clips=clips)


def main(environ=os.environ, orchestrator=None) -> int:
    from pydantic import ValidationError

    from app.core.exceptions import CompilationError
    from app.core.logging_config import setup_logging
    from app.services.orchestrator import CompilationOrchestrator

    setup_logging()

    # -----------------------------------------------------------------------
    # 1. Parse execution-specific env vars
    # -----------------------------------------------------------------------
    try:
        request = parse_env(environ)
    except (ValueError, ValidationError) as e:
        logger.error("ERROR: %s", e)
        return 1

    # -----------------------------------------------------------------------
    # 2. Compile, upload and sign on this thread
    # -----------------------------------------------------------------------
    orchestrator = orchestrator or CompilationOrchestrator(max_workers=1)
    logger.info("Compiling %d clips for video %s ...", len(request.clips), request.videoId)
    try:
        result = orchestrator.compile_now(request)
    except CompilationError as e:
        logger.error("ERROR during compilation (%s): %s", e.phase, e)
        return 1

    print(json.dumps(result.model_dump()))
    logger.info("Done. Compilation for %s uploaded.", request.videoId)
    return 0


if __name__ == "__main__":
    sys.exit(main())
