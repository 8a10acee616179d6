"""CRUD endpoints for records kept in the key-value store.

/api/prompts      - saved prompts, keys prompt:<id>
/api/mcp-servers  - MCP server configs, keys mcpserver:<id>
"""

import uuid
from datetime import datetime, timezone
from urllib.parse import urlparse

import structlog
from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError

from chet.api.schemas import (
    MCPServer,
    MCPServerCreate,
    MCPServerUpdate,
    PromptCreate,
    PromptUpdate,
    SavedPrompt,
)
from chet.core.kv_store import KVStore

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api")

PROMPT_PREFIX = "prompt:"
MCP_SERVER_PREFIX = "mcpserver:"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _load_all(kv: KVStore, prefix: str, model: type[BaseModel]) -> list[dict]:
    records = []
    for key in kv.list_keys(prefix):
        data = kv.get(key)
        if data is not None:
            records.append(model.model_validate(data).model_dump(by_alias=True))
    return records


def _is_valid_url(url: str) -> bool:
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def _with_trailing_slash(url: str) -> str:
    return url if url.endswith("/") else f"{url}/"


# ---------------------------------------------------------------------------
# Saved prompts
# ---------------------------------------------------------------------------

@router.get("/prompts")
def list_prompts(req: Request):
    try:
        return {"prompts": _load_all(req.app.state.kv, PROMPT_PREFIX, SavedPrompt)}
    except SQLAlchemyError as e:
        logger.error("prompts.list_failed", error=str(e))
        raise HTTPException(status_code=500, detail="Failed to fetch prompts")


@router.post("/prompts")
def create_prompt(body: PromptCreate, req: Request):
    if not body.name or not body.content:
        raise HTTPException(status_code=400, detail="Name and content are required")

    now = _now()
    prompt = SavedPrompt(
        id=str(uuid.uuid4()),
        name=body.name,
        content=body.content,
        tags=body.tags or [],
        created_at=now,
        updated_at=now,
    )
    try:
        req.app.state.kv.put(f"{PROMPT_PREFIX}{prompt.id}", prompt.model_dump(by_alias=True))
    except SQLAlchemyError as e:
        logger.error("prompts.create_failed", error=str(e))
        raise HTTPException(status_code=500, detail="Failed to create prompt")

    logger.info("prompts.created", prompt_id=prompt.id)
    return {"prompt": prompt.model_dump(by_alias=True)}


@router.put("/prompts")
def update_prompt(body: PromptUpdate, req: Request):
    if not body.id:
        raise HTTPException(status_code=400, detail="Prompt ID is required")

    kv = req.app.state.kv
    key = f"{PROMPT_PREFIX}{body.id}"
    existing = kv.get(key)
    if existing is None:
        raise HTTPException(status_code=404, detail="Prompt not found")

    prompt = SavedPrompt.model_validate(existing)
    updated = prompt.model_copy(update={
        "name": body.name if body.name is not None else prompt.name,
        "content": body.content if body.content is not None else prompt.content,
        "tags": body.tags if body.tags is not None else prompt.tags,
        "updated_at": _now(),
    })
    try:
        kv.put(key, updated.model_dump(by_alias=True))
    except SQLAlchemyError as e:
        logger.error("prompts.update_failed", prompt_id=body.id, error=str(e))
        raise HTTPException(status_code=500, detail="Failed to update prompt")

    return {"prompt": updated.model_dump(by_alias=True)}


@router.delete("/prompts")
def delete_prompt(req: Request, id: str | None = None):
    if not id:
        raise HTTPException(status_code=400, detail="Prompt ID is required")

    try:
        deleted = req.app.state.kv.delete(f"{PROMPT_PREFIX}{id}")
    except SQLAlchemyError as e:
        logger.error("prompts.delete_failed", prompt_id=id, error=str(e))
        raise HTTPException(status_code=500, detail="Failed to delete prompt")

    if not deleted:
        raise HTTPException(status_code=404, detail="Prompt not found")

    logger.info("prompts.deleted", prompt_id=id)
    return {"success": True}


# ---------------------------------------------------------------------------
# MCP servers
# ---------------------------------------------------------------------------

@router.get("/mcp-servers")
def list_mcp_servers(req: Request):
    try:
        return {"servers": _load_all(req.app.state.kv, MCP_SERVER_PREFIX, MCPServer)}
    except SQLAlchemyError as e:
        logger.error("mcp_servers.list_failed", error=str(e))
        raise HTTPException(status_code=500, detail="Failed to fetch MCP servers")


@router.post("/mcp-servers")
def create_mcp_server(body: MCPServerCreate, req: Request):
    if not body.name or not body.url:
        raise HTTPException(status_code=400, detail="Name and URL are required")
    if not _is_valid_url(body.url):
        raise HTTPException(status_code=400, detail="Invalid URL format")

    now = _now()
    server = MCPServer(
        id=str(uuid.uuid4()),
        name=body.name,
        url=_with_trailing_slash(body.url),
        api_key=body.api_key or "",
        created_at=now,
        updated_at=now,
    )
    try:
        req.app.state.kv.put(f"{MCP_SERVER_PREFIX}{server.id}", server.model_dump(by_alias=True))
    except SQLAlchemyError as e:
        logger.error("mcp_servers.create_failed", error=str(e))
        raise HTTPException(status_code=500, detail="Failed to create MCP server")

    logger.info("mcp_servers.created", server_id=server.id)
    return {"server": server.model_dump(by_alias=True)}


@router.put("/mcp-servers")
def update_mcp_server(body: MCPServerUpdate, req: Request):
    if not body.id:
        raise HTTPException(status_code=400, detail="Server ID is required")

    kv = req.app.state.kv
    key = f"{MCP_SERVER_PREFIX}{body.id}"
    existing = kv.get(key)
    if existing is None:
        raise HTTPException(status_code=404, detail="MCP server not found")

    if body.url and not _is_valid_url(body.url):
        raise HTTPException(status_code=400, detail="Invalid URL format")

    server = MCPServer.model_validate(existing)
    updated = server.model_copy(update={
        "name": body.name if body.name is not None else server.name,
        "url": _with_trailing_slash(body.url) if body.url else server.url,
        "api_key": body.api_key if body.api_key is not None else server.api_key,
        "updated_at": _now(),
    })
    try:
        kv.put(key, updated.model_dump(by_alias=True))
    except SQLAlchemyError as e:
        logger.error("mcp_servers.update_failed", server_id=body.id, error=str(e))
        raise HTTPException(status_code=500, detail="Failed to update MCP server")

    return {"server": updated.model_dump(by_alias=True)}


@router.delete("/mcp-servers")
def delete_mcp_server(req: Request, id: str | None = None):
    if not id:
        raise HTTPException(status_code=400, detail="Server ID is required")

    try:
        deleted = req.app.state.kv.delete(f"{MCP_SERVER_PREFIX}{id}")
    except SQLAlchemyError as e:
        logger.error("mcp_servers.delete_failed", server_id=id, error=str(e))
        raise HTTPException(status_code=500, detail="Failed to delete MCP server")

    if not deleted:
        raise HTTPException(status_code=404, detail="MCP server not found")

    logger.info("mcp_servers.deleted", server_id=id)
    return {"success": True}
