import logging
from datetime import datetime, timezone

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api import compilations
from app.core import config
from app.core.exceptions import InvalidRequest
from app.core.logging_config import setup_logging
from app.models.compilation import HealthResponse
from app.services.orchestrator import CompilationOrchestrator

logger = logging.getLogger("compiler.app")

app = FastAPI(title="Highlight Compilation Service", version="1.0.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(compilations.router)


@app.on_event("startup")
async def startup_event():
    setup_logging()
    logger.info("Video Compilation Service running on port %d", config.PORT)


@app.on_event("shutdown")
async def shutdown_event():
    compilations.orchestrator.shutdown(wait=False)


@app.exception_handler(InvalidRequest)
async def invalid_request_handler(request: Request, exc: InvalidRequest):
    logger.warning("Rejected %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=400, content={"error": str(exc)})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    details = "; ".join(
        f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg')}"
        for err in exc.errors()
    )
    return JSONResponse(status_code=400, content={"error": f"Invalid request. {details}"})


@app.get("/health", response_model=HealthResponse)
async def health(compiler: CompilationOrchestrator = Depends(compilations.get_orchestrator)):
    encoder = compiler.encoder
    return HealthResponse(
        status="healthy",
        service="video-compilation",
        ffmpeg="available" if encoder.is_available() else "missing",
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
