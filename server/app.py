import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

import config
from pipeline.errors import PipelineError
from server.routes import create_router

logger = logging.getLogger(__name__)


def create_app(db, orchestrator, object_store, summarizer) -> FastAPI:
    app = FastAPI(title="LiveDigest", version="0.1.0")

    @app.exception_handler(PipelineError)
    async def pipeline_error_handler(request: Request, exc: PipelineError):
        return JSONResponse(status_code=exc.status_code, content={"error": str(exc)})

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"error": str(exc.errors())})

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"error": str(exc)})

    router = create_router(db, orchestrator, object_store, summarizer)
    app.include_router(router, prefix="/api")

    audio_dir = orchestrator.audio.audio_dir
    app.mount("/audio", StaticFiles(directory=str(audio_dir)), name="audio")

    if config.STATIC_DIR.is_dir():
        app.mount("/", StaticFiles(directory=str(config.STATIC_DIR), html=True), name="static")

    return app
