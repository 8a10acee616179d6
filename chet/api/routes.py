"""FastAPI endpoints for chat, the model catalogue and health.

POST /api/chat - decode, validate and stream a completion
GET /api/models - model registry
GET /api/models/examples - example prompts per model
POST /api/save-file - echo content back as a download
GET /health - component health check
"""

import time
from dataclasses import asdict

import structlog
from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import Response, StreamingResponse

from chet.api.schemas import FileSaveRequest
from chet.core.body_decoder import decode_request
from chet.core.config import MODEL_EXAMPLES
from chet.core.dispatch import ChatRequestError, resolve_params, validate_chat_request
from chet.core.llm_adapter import LLMError, LLMUnavailableError
from chet.core.relay import StreamMetadata, StreamRelay

logger = structlog.get_logger(__name__)

router = APIRouter()

DEBUG_HEADER = "x-debug"


@router.post("/api/chat")
async def chat(req: Request):
    """Decode the (possibly mangled) body, validate it and relay the model stream."""
    start = time.monotonic()
    result = await decode_request(req)

    # Debug mode - return parsing diagnostics instead of calling the model
    if req.headers.get(DEBUG_HEADER) == "1":
        attempts = [asdict(a) for a in result.attempts]
        if not result.ok:
            raise HTTPException(status_code=400, detail={
                "error": result.error,
                "rawPreview": result.raw_preview,
                "attempts": attempts,
            })
        return {
            "ok": True,
            "parsed": result.body,
            "debug": {"strategy": result.strategy, "attempts": attempts},
            "bindings": {
                "hasAI": req.app.state.llm_adapter.is_healthy(),
                "hasKV": req.app.state.kv is not None,
            },
        }

    if not result.ok:
        logger.warning("chat.decode_failed", error=result.error, attempts=len(result.attempts))
        raise HTTPException(status_code=400, detail={
            "error": "Invalid request: could not parse body",
            "rawPreview": result.raw_preview,
        })

    models = req.app.state.models
    try:
        chat_request = validate_chat_request(result.body, models)
    except ChatRequestError as e:
        logger.warning("chat.invalid_request", field=e.field, error=str(e))
        raise HTTPException(status_code=400, detail={"error": str(e), "field": e.field})

    model_config = models[chat_request.model]
    params = resolve_params(chat_request, model_config)

    logger.info("chat.request", model=chat_request.model, strategy=result.strategy,
                messages=len(params.messages))

    try:
        upstream = await req.app.state.llm_adapter.stream(model_config.id, params.to_payload())
    except (LLMError, LLMUnavailableError) as e:
        logger.error("chat.upstream_failed", model=chat_request.model, error=str(e))
        raise HTTPException(status_code=500, detail={"error": "Failed to process request", "detail": str(e)})

    relay = StreamRelay(upstream, StreamMetadata(
        model_key=chat_request.model,
        model_id=model_config.id,
        params=params.metadata(),
    ))

    logger.info("chat.streaming", model=chat_request.model,
                setup_ms=int((time.monotonic() - start) * 1000))

    return StreamingResponse(
        relay,
        status_code=upstream.status_code,
        media_type=upstream.headers.get("content-type", "text/event-stream"),
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.get("/api/models")
def list_models(req: Request):
    """Every registry entry with its public key."""
    return [config.to_public(key) for key, config in req.app.state.models.items()]


@router.get("/api/models/examples")
def model_examples():
    return MODEL_EXAMPLES


@router.post("/api/save-file")
def save_file(request: FileSaveRequest):
    """Return the posted content as a file download."""
    if not request.filename or not request.content:
        raise HTTPException(status_code=400, detail="Filename and content are required")

    return Response(
        content=request.content.encode("utf-8"),
        media_type=request.content_type or "text/plain",
        headers={"Content-Disposition": f'attachment; filename="{request.filename}"'},
    )


@router.get("/health")
def health(req: Request):
    """Check health of all backend components."""
    components = {
        "workers_ai": "ok" if req.app.state.llm_adapter.is_healthy() else "error",
        "kv": "ok" if req.app.state.kv.is_healthy() else "error",
    }

    errors = [k for k, v in components.items() if v == "error"]
    if not errors:
        status = "healthy"
    elif len(errors) == len(components):
        status = "unhealthy"
    else:
        status = "degraded"

    return {"status": status, "components": components}


@router.get("/")
@router.head("/")
def root_health():
    """Basic root health check for deployment platforms."""
    return {"status": "ok", "service": "chet-api"}
