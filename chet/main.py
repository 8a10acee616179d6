"""FastAPI application entry point.

Startup sequence: build model registry → open KV store → init Workers AI adapter.
"""

import os
import time
import traceback
from contextlib import asynccontextmanager

import structlog
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse

from chet.api.records import router as records_router
from chet.api.routes import router
from chet.core.config import build_model_registry, is_production
from chet.core.kv_store import KVStore
from chet.core.llm_adapter import LLMAdapter

load_dotenv()

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info("startup.begin")

    # Read-only for the life of the process
    app.state.models = build_model_registry()
    logger.info("startup.models_loaded", count=len(app.state.models))

    app.state.kv = KVStore()
    logger.info("startup.kv_initialized", healthy=app.state.kv.is_healthy())

    llm_adapter = LLMAdapter()
    app.state.llm_adapter = llm_adapter
    logger.info("startup.llm_initialized", healthy=llm_adapter.is_healthy())
    if not llm_adapter.is_healthy():
        logger.warning("startup.llm_unconfigured", hint="Set CF_ACCOUNT_ID and CF_API_TOKEN in .env")

    logger.info("startup.complete")
    yield
    await llm_adapter.aclose()
    logger.info("shutdown.complete")


app = FastAPI(
    title="C.H.E.T. API",
    description="Chat Helper for (almost) Every Task",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.environ.get("CORS_ORIGINS", "*").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_timing_middleware(request: Request, call_next):
    """Log start and duration of every request outside production."""
    if is_production():
        return await call_next(request)

    start = time.monotonic()
    logger.debug("request.started", method=request.method, path=request.url.path)
    response = await call_next(request)
    logger.info("request.completed", method=request.method, path=request.url.path,
                status=response.status_code, duration_ms=int((time.monotonic() - start) * 1000))
    return response


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """Last-resort 500 with a short diagnostic; stack preview outside production."""
    logger.error("request.unhandled", method=request.method, path=request.url.path,
                 error=str(exc), exc_info=exc)

    payload = {"error": "Failed to process request", "detail": str(exc) or type(exc).__name__}
    if not is_production():
        lines = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)).splitlines()
        payload["stack"] = "\n".join(lines[-5:])
    return JSONResponse(status_code=500, content=payload)


app.include_router(router)
app.include_router(records_router)
