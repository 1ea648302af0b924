from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class JobStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class ClipSelection(BaseModel):
    start: str                            # "H:MM:SS[.ff]"
    end: str                              # must be after start
    videoUrl: Optional[str] = None        # source video; required, checked on submit
    reason: Optional[str] = None          # why the highlight detector picked it


class CompilationRequest(BaseModel):
    videoId: Optional[str] = None         # caller-supplied label, used in the blob name
    clips: List[ClipSelection] = Field(default_factory=list)


class CompileAccepted(BaseModel):
    jobId: str


class CompileResult(BaseModel):
    videoId: str
    compilationUrl: str
    clipsCount: int
    processingTime: str                   # e.g. "12.34s"


class JobState(BaseModel):
    status: JobStatus
    message: str
    progress: int = Field(0, ge=0, le=100)
    videoUrl: Optional[str] = None        # only when completed
    error: Optional[str] = None           # only when failed


class HealthResponse(BaseModel):
    status: str
    service: str
    ffmpeg: str
    timestamp: str
