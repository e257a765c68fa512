"""
Chat Completion Proxy

Forwards a chat conversation to the Perplexity chat-completions endpoint and
hands the answer back untouched. Non-streaming calls return the decoded JSON
body; streaming calls yield the upstream bytes verbatim (server-sent events),
so the caller can relay them as they arrive.

The proxy adds nothing to the conversation and keeps no history.
"""

from typing import Iterator, Optional

import requests
import structlog

from expense_ledger.config import PerplexitySettings
from expense_ledger.models.chat import ChatRequest


logger = structlog.get_logger(__name__)


class ChatProxyError(Exception):
    """Upstream call failed. Carries the status code to relay to the client."""

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        self.message = message
        super().__init__(f"{status_code}: {message}")


class PerplexityChatProxy:
    """Thin client over POST {base_url}/chat/completions."""

    def __init__(
        self,
        settings: PerplexitySettings,
        session: Optional[requests.Session] = None,
    ):
        self._settings = settings
        self._session = session or requests.Session()

    @property
    def endpoint(self) -> str:
        return f"{self._settings.base_url.rstrip('/')}/chat/completions"

    def is_configured(self) -> bool:
        """Capability probe: only checks that an API key is present."""
        return bool(self._settings.api_key)

    def _payload(self, request: ChatRequest, stream: bool) -> dict:
        payload = request.model_dump()
        payload["model"] = request.model or self._settings.default_model
        payload["stream"] = stream
        return payload

    def _post(self, request: ChatRequest, stream: bool) -> requests.Response:
        if not self.is_configured():
            raise ChatProxyError(500, "Perplexity API key not set")

        headers = {
            "Authorization": f"Bearer {self._settings.api_key}",
            "Content-Type": "application/json",
        }
        try:
            response = self._session.post(
                self.endpoint,
                json=self._payload(request, stream),
                headers=headers,
                stream=stream,
                timeout=self._settings.request_timeout_seconds,
            )
        except requests.RequestException as e:
            logger.error("chat_request_failed", error=str(e))
            raise ChatProxyError(502, f"Chat service unreachable: {e}") from e

        if not response.ok:
            logger.warning(
                "chat_upstream_error",
                status_code=response.status_code,
                model=request.model or self._settings.default_model,
            )
            raise ChatProxyError(response.status_code, response.text)
        return response

    def complete(self, request: ChatRequest) -> dict:
        """
        Send the conversation and return the upstream JSON body.

        Raises:
            ChatProxyError: If the call fails or the body is not JSON
        """
        response = self._post(request, stream=False)
        try:
            return response.json()
        except ValueError:
            # requests' JSONDecodeError is a ValueError
            logger.warning("chat_body_not_json", status_code=response.status_code)
            raise ChatProxyError(502, response.text)

    def stream(self, request: ChatRequest) -> Iterator[bytes]:
        """
        Send the conversation with streaming on and yield the raw response
        chunks as they arrive.

        Raises:
            ChatProxyError: Before the first chunk, if the call is rejected
        """
        response = self._post(request, stream=True)

        def chunks() -> Iterator[bytes]:
            try:
                for chunk in response.iter_content(chunk_size=None):
                    if chunk:
                        yield chunk
            finally:
                response.close()

        return chunks()
