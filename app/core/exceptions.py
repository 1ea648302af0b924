class CompilationError(Exception):
    """Base class for every error raised by the compilation pipeline."""

    phase = "Compilation failed"


class InvalidRequest(CompilationError):
    """The submission is malformed; no job is created."""

    phase = "Invalid request"


class FetchError(CompilationError):
    """A source video could not be downloaded."""

    phase = "Failed to download source video"


class ExtractError(CompilationError):
    """ffmpeg failed to cut a clip from its source."""

    phase = "Failed to extract clip"


class ConcatError(CompilationError):
    """ffmpeg failed to join the extracted clips."""

    phase = "Failed to concatenate clips"


class PublishError(CompilationError):
    """Upload or URL signing failed."""

    phase = "Failed to upload compilation"


class InternalError(CompilationError):
    phase = "Unexpected error during compilation"


class JobCancelled(CompilationError):
    """The job's deadline elapsed or the service is shutting down."""

    phase = "Compilation cancelled"
