"""Resilient request-body decoder for the chat endpoint.

Proxies between the browser and this service have been seen to rewrite the
Content-Type, wrap the JSON in form fields, base64 it, strip quotes or
percent-encode it. The decoder reads the body once and walks an ordered list
of strategies over it; the first one that yields a JSON object wins. Every
candidate text it produces along the way is kept in an attempt log so a
failing client can be diagnosed with the x-debug header.
"""

import base64
import json
import re
from dataclasses import dataclass, field
from typing import Any, Callable, NamedTuple
from urllib.parse import parse_qsl

import structlog
from starlette.datastructures import UploadFile
from starlette.exceptions import HTTPException
from starlette.formparsers import MultiPartException
from starlette.requests import Request

from chet.core.config import PREVIEW_LENGTH
from chet.core.json_repair import repair_candidates

logger = structlog.get_logger(__name__)

# Form/query field names carrying a wrapped payload, in priority order
PAYLOAD_FIELDS = ("payloadB64", "payload_b64", "payload")

ENCODED_HEADER = "x-encoded-payload"

_FORM_CONTENT_TYPES = ("multipart/form-data", "application/x-www-form-urlencoded")
_MULTIPART_BOUNDARY = re.compile(rb"^--([^\r\n]{1,70})\r?\n")

_URLENCODED_HINT = re.compile(r"[=&]")
_PAYLOAD_B64_MARKER = re.compile(r"payloadB64\s*[:=]", re.IGNORECASE)
_PAYLOAD_B64_PAIR = re.compile(
    r'payloadB64\s*[:=]\s*(?:"([A-Za-z0-9+_\-/=]+)"|([A-Za-z0-9+_\-/=]+))',
    re.IGNORECASE,
)
_SUSPICIOUS_B64_RUN = re.compile(r"[A-Za-z0-9+/=]{40,}")
_LOOSE_B64_RUN = re.compile(r"[A-Za-z0-9+_\-/=]{40,}")
_B64_NOISE = re.compile(r"[\r\n\t]")


@dataclass
class DecodeAttempt:
    """One candidate text produced while decoding, capped for display."""
    label: str
    snippet: str


@dataclass
class DecodeResult:
    """Result of decoding a request body.

    Attributes:
        body: The recovered JSON object, or None if every strategy failed.
        strategy: Name of the strategy that produced the body.
        attempts: Every candidate tried, in order.
        raw_preview: First PREVIEW_LENGTH characters of the raw body.
        error: Short failure description, empty on success.
    """
    body: dict | None = None
    strategy: str = ""
    attempts: list[DecodeAttempt] = field(default_factory=list)
    raw_preview: str = ""
    error: str = ""

    @property
    def ok(self) -> bool:
        return self.body is not None


@dataclass
class DecodeContext:
    """Read-only view of the request that strategies work from.

    Attributes:
        raw_text: The body decoded as UTF-8.
        form_fields: Parsed form fields, or None if the body is not form data.
        query_params: The request URL's query string pairs.
        encoded_header: Whether the client flagged the payload as base64.
    """
    raw_text: str
    form_fields: list[tuple[str, str]] | None = None
    query_params: list[tuple[str, str]] = field(default_factory=list)
    encoded_header: bool = False
    raw_is_json: bool = field(init=False)
    raw_json: Any = field(init=False)
    json_error: str = field(init=False)
    looks_encoded: bool = field(init=False)

    def __post_init__(self) -> None:
        self.raw_is_json, self.raw_json, self.json_error = _load_json(self.raw_text)
        self.looks_encoded = bool(
            _PAYLOAD_B64_MARKER.search(self.raw_text)
            or _SUSPICIOUS_B64_RUN.search(self.raw_text)
        )


AttemptLog = list[DecodeAttempt]


class Strategy(NamedTuple):
    name: str
    applies: Callable[[DecodeContext], bool]
    run: Callable[[DecodeContext, AttemptLog], dict | None]


def b64decode_text(value: str) -> str:
    """Decode standard or URL-safe base64 into UTF-8 text.

    Missing padding is restored, and spaces are turned back into '+' since
    form decoding turns '+' into a space.

    Raises:
        ValueError: If the value is not base64 or not UTF-8 once decoded.
    """
    normalized = _B64_NOISE.sub("", value.strip())
    normalized = normalized.replace(" ", "+").replace("-", "+").replace("_", "/")
    normalized += "=" * (-len(normalized) % 4)
    return base64.b64decode(normalized, validate=True).decode("utf-8")


def _load_json(text: str) -> tuple[bool, Any, str]:
    try:
        return True, json.loads(text), ""
    except (ValueError, RecursionError) as e:
        return False, None, str(e)


def _as_object(text: str) -> dict | None:
    ok, value, _ = _load_json(text)
    return value if ok and isinstance(value, dict) else None


def _record(log: AttemptLog, label: str, text: str) -> None:
    log.append(DecodeAttempt(label=label, snippet=text[:PREVIEW_LENGTH]))


def _parse_with_repair(text: str, label: str, repair_prefix: str, log: AttemptLog) -> dict | None:
    """Direct parse, then each repair candidate in order."""
    _record(log, label, text)
    body = _as_object(text)
    if body is not None:
        return body
    for i, candidate in enumerate(repair_candidates(text)):
        _record(log, f"{repair_prefix}_repair_{i}", candidate)
        body = _as_object(candidate)
        if body is not None:
            return body
    return None


def _decode_candidate(candidate: str, name: str, log: AttemptLog,
                      plain_fallback: bool = False) -> dict | None:
    """Base64-decode a candidate and parse it.

    With plain_fallback, a candidate that is not base64 is parsed as-is, which
    covers clients that put plain JSON in a payload field.
    """
    if not candidate:
        return None
    try:
        decoded = b64decode_text(candidate)
    except ValueError:
        if not plain_fallback:
            return None
        return _parse_with_repair(candidate, f"{name}_plain", f"{name}_plain", log)
    return _parse_with_repair(decoded, f"{name}_decoded", name, log)


def _payload_field(pairs: list[tuple[str, str]]) -> str | None:
    for name in PAYLOAD_FIELDS:
        for key, value in pairs:
            if key == name and value:
                return value
    return None


# ---------------------------------------------------------------------------
# Strategies, in cascade order
# ---------------------------------------------------------------------------

def _form_payload(ctx: DecodeContext, log: AttemptLog) -> dict | None:
    if not ctx.form_fields:
        return None
    value = _payload_field(ctx.form_fields)
    if value is None:
        return None
    return _decode_candidate(value, "form_payload", log, plain_fallback=True)


def _urlencoded(name: str) -> Callable[[DecodeContext, AttemptLog], dict | None]:
    def run(ctx: DecodeContext, log: AttemptLog) -> dict | None:
        if ctx.raw_is_json or not _URLENCODED_HINT.search(ctx.raw_text):
            return None
        value = _payload_field(parse_qsl(ctx.raw_text, keep_blank_values=True))
        if value is None:
            return None
        return _decode_candidate(value, name, log, plain_fallback=True)
    return run


def _query_payload(ctx: DecodeContext, log: AttemptLog) -> dict | None:
    value = _payload_field(ctx.query_params)
    if value is None:
        return None
    return _decode_candidate(value, "encoded_header_query", log, plain_fallback=True)


def _bare_base64(ctx: DecodeContext, log: AttemptLog) -> dict | None:
    return _decode_candidate(ctx.raw_text.strip(), "base64", log)


def _outer_payload(ctx: DecodeContext, log: AttemptLog) -> dict | None:
    if not isinstance(ctx.raw_json, dict):
        return None
    value = ctx.raw_json.get("payloadB64")
    if not isinstance(value, str):
        return None
    return _decode_candidate(value, "outer_payloadB64", log)


def _regex_payload(ctx: DecodeContext, log: AttemptLog) -> dict | None:
    if ctx.raw_is_json:
        return None
    match = _PAYLOAD_B64_PAIR.search(ctx.raw_text)
    if not match:
        return None
    return _decode_candidate(match.group(1) or match.group(2), "regex_candidate", log)


def _loose_base64(ctx: DecodeContext, log: AttemptLog) -> dict | None:
    if ctx.raw_is_json:
        return None
    match = _LOOSE_B64_RUN.search(ctx.raw_text)
    if not match:
        return None
    return _decode_candidate(match.group(0), "loose_b64", log)


def _direct_parse(ctx: DecodeContext, log: AttemptLog) -> dict | None:
    _record(log, "raw", ctx.raw_text)
    if ctx.raw_is_json and isinstance(ctx.raw_json, dict):
        return ctx.raw_json
    return None


def _repair_raw(ctx: DecodeContext, log: AttemptLog) -> dict | None:
    for i, candidate in enumerate(repair_candidates(ctx.raw_text)):
        _record(log, f"repair_{i}", candidate)
        body = _as_object(candidate)
        if body is not None:
            return body
    return None


def _always(ctx: DecodeContext) -> bool:
    return True


def _encoded_header(ctx: DecodeContext) -> bool:
    return ctx.encoded_header


def _encoding_suspected(ctx: DecodeContext) -> bool:
    return ctx.encoded_header or ctx.looks_encoded


STRATEGIES: tuple[Strategy, ...] = (
    Strategy("form_payload", _always, _form_payload),
    Strategy("urlencoded_raw", _always, _urlencoded("urlencoded_raw")),
    Strategy("encoded_header_urlencoded", _encoded_header, _urlencoded("encoded_header_urlencoded")),
    Strategy("encoded_header_query", _encoded_header, _query_payload),
    Strategy("base64", _encoded_header, _bare_base64),
    Strategy("outer_payloadB64", _encoding_suspected, _outer_payload),
    Strategy("regex_candidate", _encoding_suspected, _regex_payload),
    Strategy("loose_b64", _encoding_suspected, _loose_base64),
    Strategy("raw", _always, _direct_parse),
    Strategy("repair", _always, _repair_raw),
)


def decode_body(ctx: DecodeContext) -> DecodeResult:
    """Run the strategy cascade over a prepared context.

    Args:
        ctx: The request view to decode.

    Returns:
        DecodeResult with the first JSON object recovered, or a failure with
        the raw preview and every attempt made.
    """
    log: AttemptLog = []
    preview = ctx.raw_text[:PREVIEW_LENGTH]

    if ctx.form_fields and _payload_field(ctx.form_fields) is None:
        joined = "&".join(f"{k}={v[:PREVIEW_LENGTH]}" for k, v in ctx.form_fields)
        _record(log, "form_fields", joined)

    for strategy in STRATEGIES:
        if not strategy.applies(ctx):
            continue
        body = strategy.run(ctx, log)
        if body is not None:
            logger.debug("decoder.succeeded", strategy=strategy.name, attempts=len(log))
            return DecodeResult(body=body, strategy=strategy.name, attempts=log, raw_preview=preview)

    logger.warning("decoder.failed", attempts=len(log), raw_len=len(ctx.raw_text))
    return DecodeResult(
        attempts=log,
        raw_preview=preview,
        error=f"Invalid JSON: {ctx.json_error or 'body is not a JSON object'}",
    )


# ---------------------------------------------------------------------------
# Request plumbing
# ---------------------------------------------------------------------------

def _clone_request(request: Request, body: bytes, content_type: str) -> Request:
    """Rebuild the request over the already-read body with a new Content-Type."""
    headers = [(k, v) for k, v in request.scope["headers"] if k.lower() != b"content-type"]
    headers.append((b"content-type", content_type.encode("latin-1")))
    scope = dict(request.scope, headers=headers)

    async def receive_body():
        return {"type": "http.request", "body": body, "more_body": False}

    return Request(scope, receive_body)


async def read_form_fields(request: Request, body: bytes) -> list[tuple[str, str]] | None:
    """Parse the body as form data without trusting the Content-Type header.

    A declared form type is used as-is; otherwise a multipart body is
    recognised from its leading boundary line. Parsing runs on a clone so the
    original request body stays readable.

    Returns:
        The (name, value) pairs, or None if the body is not form data.
    """
    content_type = request.headers.get("content-type", "")
    if not content_type.lower().startswith(_FORM_CONTENT_TYPES):
        match = _MULTIPART_BOUNDARY.match(body)
        if not match:
            return None
        content_type = f"multipart/form-data; boundary={match.group(1).decode('latin-1')}"

    clone = _clone_request(request, body, content_type)
    try:
        form = await clone.form()
    except (MultiPartException, HTTPException, ValueError) as e:
        logger.debug("decoder.form_unparsable", error=str(e))
        return None

    fields: list[tuple[str, str]] = []
    try:
        for key, value in form.multi_items():
            if isinstance(value, UploadFile):
                value = (await value.read()).decode("utf-8", errors="replace")
            fields.append((key, value))
    finally:
        await form.close()
    return fields or None


async def decode_request(request: Request) -> DecodeResult:
    """Read the request body once and decode it into a JSON object.

    Args:
        request: Incoming request with an unread body.

    Returns:
        DecodeResult. Never raises on malformed input.
    """
    body = await request.body()
    ctx = DecodeContext(
        raw_text=body.decode("utf-8", errors="replace"),
        form_fields=await read_form_fields(request, body),
        query_params=request.query_params.multi_items(),
        encoded_header=request.headers.get(ENCODED_HEADER) == "1",
    )
    return decode_body(ctx)
