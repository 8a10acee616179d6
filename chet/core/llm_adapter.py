"""Workers AI adapter.

Opens one streaming POST per chat request against the Workers AI REST API and
hands the live response to the relay. No retries: a failed call is reported
to the client, who may resend.
"""

import os

import httpx
import structlog

logger = structlog.get_logger(__name__)

DEFAULT_BASE_URL = "https://api.cloudflare.com/client/v4"


class LLMError(Exception):
    """Provider answered with an error status."""

    def __init__(self, message: str, status_code: int):
        super().__init__(message)
        self.status_code = status_code


class LLMUnavailableError(Exception):
    """Provider could not be reached (connect error, timeout)."""
    pass


class LLMAdapter:
    """Streams chat completions from Workers AI."""

    def __init__(self, client: httpx.AsyncClient | None = None):
        self.account_id = os.environ.get("CF_ACCOUNT_ID", "")
        self.api_token = os.environ.get("CF_API_TOKEN", "")
        self.base_url = os.environ.get("CF_AI_BASE_URL", DEFAULT_BASE_URL).rstrip("/")
        self.timeout = float(os.environ.get("LLM_TIMEOUT", "60"))

        self._client = client or httpx.AsyncClient(timeout=self.timeout)

    def is_healthy(self) -> bool:
        """Check that credentials are configured.

        Returns:
            True if both CF_ACCOUNT_ID and CF_API_TOKEN are set.
        """
        return bool(self.account_id) and bool(self.api_token)

    def run_url(self, model_id: str) -> str:
        return f"{self.base_url}/accounts/{self.account_id}/ai/run/{model_id}"

    async def stream(self, model_id: str, payload: dict) -> httpx.Response:
        """Start a streaming completion.

        Args:
            model_id: Provider model id, e.g. "@cf/meta/llama-3.3-70b-instruct-fp8-fast".
            payload: Provider parameter bundle (messages, max_tokens, ...).

        Returns:
            The open streaming response. The caller owns it and must aclose() it.

        Raises:
            LLMError: If the provider returns a 4xx/5xx status.
            LLMUnavailableError: If the request could not be sent.
        """
        logger.debug("llm.stream", model=model_id, messages=len(payload.get("messages", [])))

        request = self._client.build_request(
            "POST",
            self.run_url(model_id),
            json={**payload, "stream": True},
            headers={"Authorization": f"Bearer {self.api_token}"},
        )
        try:
            response = await self._client.send(request, stream=True)
        except httpx.HTTPError as e:
            logger.error("llm.unreachable", model=model_id, error=str(e))
            raise LLMUnavailableError(f"Workers AI request failed: {e}") from e

        if response.status_code >= 400:
            body = (await response.aread()).decode("utf-8", errors="replace")
            await response.aclose()
            logger.error("llm.error_status", model=model_id, status=response.status_code)
            raise LLMError(
                f"Workers AI rejected request ({response.status_code}): {body[:200]}",
                response.status_code,
            )

        return response

    async def aclose(self) -> None:
        await self._client.aclose()
