"""Streaming relay between the inference provider and the HTTP client.

Upstream chunks are forwarded verbatim, one upstream read per downstream pull,
so a slow client throttles the provider read. Once the upstream finishes
cleanly a single metadata line is appended:

    {"meta": {"modelKey": ..., "modelId": ..., "params": {...}}}\\n

If the client goes away first, the upstream response is closed and no
metadata is produced. Upstream errors propagate to the consumer, also without
metadata.
"""

import enum
import json
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Protocol

import structlog

from chet.core.stream_parser import FragmentCounter

logger = structlog.get_logger(__name__)


class UpstreamStream(Protocol):
    """What the relay needs from a streaming response (httpx.Response fits)."""

    def aiter_bytes(self) -> AsyncIterator[bytes]: ...

    async def aclose(self) -> None: ...


@dataclass
class StreamMetadata:
    """Per-call bookkeeping appended after the upstream stream."""
    model_key: str
    model_id: str
    params: dict[str, Any] = field(default_factory=dict)

    def to_line(self) -> bytes:
        meta = {"meta": {"modelKey": self.model_key, "modelId": self.model_id, "params": self.params}}
        return (json.dumps(meta) + "\n").encode("utf-8")


class RelayState(enum.Enum):
    OPEN = "open"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ERRORED = "errored"


class StreamRelay:
    """Single-producer, single-consumer relay over an upstream byte stream.

    Iterate it (async for) or drive pull() directly. Closing the iterator
    before the upstream completes cancels the upstream.
    """

    def __init__(self, upstream: UpstreamStream, metadata: StreamMetadata):
        self._upstream = upstream
        self._chunks = upstream.aiter_bytes()
        self._metadata = metadata
        self._counter = FragmentCounter()
        self.state = RelayState.OPEN
        self.bytes_relayed = 0

    async def pull(self) -> bytes | None:
        """Read one upstream chunk and return what the client should get next.

        Returns:
            The upstream chunk, the metadata line right after upstream
            completion, or None once the relay is closed.

        Raises:
            Exception: Whatever the upstream read raised. The relay is then
                in the ERRORED state and the upstream has been released.
        """
        if self.state is not RelayState.OPEN:
            return None

        try:
            chunk = await anext(self._chunks)
        except StopAsyncIteration:
            self.state = RelayState.COMPLETED
            line = self._metadata.to_line()
            self._counter.flush()
            logger.info("relay.completed", model=self._metadata.model_key,
                        bytes=self.bytes_relayed, fragments=self._counter.fragments,
                        chars=self._counter.characters)
            try:
                await self._upstream.aclose()
            except Exception as e:
                # Every chunk was delivered, so the metadata line still goes out
                logger.warning("relay.close_failed", model=self._metadata.model_key, error=str(e))
            return line
        except Exception as e:
            self.state = RelayState.ERRORED
            logger.error("relay.upstream_failed", model=self._metadata.model_key,
                         bytes=self.bytes_relayed, error=str(e))
            await self._upstream.aclose()
            raise

        self.bytes_relayed += len(chunk)
        self._counter.feed(chunk)
        return chunk

    async def cancel(self) -> None:
        """Stop relaying and release the upstream. No-op once closed."""
        if self.state is not RelayState.OPEN:
            return
        self.state = RelayState.CANCELLED
        logger.info("relay.cancelled", model=self._metadata.model_key, bytes=self.bytes_relayed)
        await self._upstream.aclose()

    async def __aiter__(self) -> AsyncIterator[bytes]:
        try:
            while True:
                chunk = await self.pull()
                if chunk is None:
                    return
                yield chunk
        finally:
            if self.state is RelayState.OPEN:
                await self.cancel()
