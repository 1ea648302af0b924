import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from app.core import config
from app.models.compilation import CompilationRequest, CompileAccepted
from app.services.orchestrator import CompilationOrchestrator

router = APIRouter(tags=["Compilation"])
logger = logging.getLogger("compiler.api")

orchestrator = CompilationOrchestrator()


def get_orchestrator() -> CompilationOrchestrator:
    return orchestrator


# ---------------------------------------------------------------------------
# POST /compile - accept a clip list and start a background compilation
# ---------------------------------------------------------------------------
@router.post("/compile", response_model=CompileAccepted, status_code=202)
async def compile_highlights(
    req: CompilationRequest,
    compiler: CompilationOrchestrator = Depends(get_orchestrator),
):
    """
    Validate the clip list and queue the compilation.
    InvalidRequest is turned into a 400 by the app's exception handler.
    """
    job_id = compiler.submit(req)
    return CompileAccepted(jobId=job_id)


# ---------------------------------------------------------------------------
# GET /status?jobId=... - poll a job
# ---------------------------------------------------------------------------
@router.get("/status")
async def compilation_status(
    jobId: Optional[str] = Query(default=None),
    compiler: CompilationOrchestrator = Depends(get_orchestrator),
):
    if not jobId:
        return JSONResponse(status_code=400, content={"error": "Job ID is required"})

    state = compiler.tracker.get(jobId)
    if state is None:
        if config.UNKNOWN_JOB_POLICY == "not_found":
            return JSONResponse(status_code=404, content={"error": "Job not found"})
        # Unknown or expired ids are reported as still processing
        logger.debug("Status requested for unknown job %s", jobId)
        state = compiler.tracker.placeholder()

    return JSONResponse(content=state.model_dump(mode="json", exclude_none=True))
