"""Production client that speaks the OpenAI Responses API with function tools."""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Callable, Dict, Mapping, Optional

from .llm_client import LLMClient, LLMResponseFormatError, LLMTransportError

__all__ = ["DEFAULT_RESPONSES_URL", "ResponsesClient"]

LOGGER = logging.getLogger(__name__)

DEFAULT_RESPONSES_URL = "https://api.openai.com/v1/responses"

Transport = Callable[[Dict[str, Any]], str]


class ResponsesClient(LLMClient):
    """Thin adapter around the Responses API."""

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        base_url: str = DEFAULT_RESPONSES_URL,
        model: str = "gpt-5-codex",
        reasoning_effort: Optional[str] = "medium",
        transport: Optional[Transport] = None,
        timeout: float = 300.0,
    ) -> None:
        super().__init__(model=model, reasoning_effort=reasoning_effort)
        self._api_key = api_key or os.getenv("OPENAI_API_KEY")
        self._base_url = base_url
        self._timeout = timeout
        self._transport = transport or self._http_transport

        if transport is None and not self._api_key:
            raise ValueError("An API key is required when using the default transport.")

    def _raw_invoke(self, payload: Dict[str, Any]) -> Mapping[str, Any]:
        """Send the request over the configured transport and decode the body."""
        try:
            raw_response = self._transport(payload)
        except LLMTransportError:
            raise
        except Exception as error:
            raise LLMTransportError(f"Transport rejected the request: {error}") from error

        if not raw_response or not raw_response.strip():
            raise LLMResponseFormatError("Responses API returned an empty body.")
        try:
            data = json.loads(raw_response)
        except json.JSONDecodeError as error:
            raise LLMResponseFormatError(f"Responses API returned invalid JSON: {raw_response[:200]}") from error
        if not isinstance(data, dict):
            raise LLMResponseFormatError("Responses API body is not a JSON object.")

        status = data.get("status")
        if status == "failed" or data.get("error"):
            detail = data.get("error") or status
            raise LLMTransportError(f"Responses API reported a failed response: {detail}")
        if status == "incomplete":
            LOGGER.warning("Responses API returned an incomplete response: %s", data.get("incomplete_details"))
        return data

    def _http_transport(self, payload: Dict[str, Any]) -> str:
        """Default HTTP transport that targets the OpenAI Responses API."""
        import urllib.error
        import urllib.request

        if os.getenv("ISSUE_AGENT_DEBUG_PAYLOAD"):
            LOGGER.debug("Responses request payload:\n%s", json.dumps(payload, indent=2, sort_keys=True))

        data = json.dumps(payload).encode("utf-8")
        request = urllib.request.Request(
            self._base_url,
            data=data,
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {self._api_key}",
            },
            method="POST",
        )

        try:
            with urllib.request.urlopen(request, timeout=self._timeout) as response:
                raw = response.read()
                status = getattr(response, "status", 200)
        except TimeoutError as error:  # pragma: no cover - network-dependent
            raise LLMTransportError("Responses API request timed out.") from error
        except urllib.error.HTTPError as error:  # pragma: no cover - network-dependent
            message = error.read().decode("utf-8", errors="ignore")
            raise LLMTransportError(f"OpenAI error: {error.code} {message}") from error
        except urllib.error.URLError as error:  # pragma: no cover - network-dependent
            raise LLMTransportError(f"Failed to reach the Responses API: {error.reason}") from error

        if status >= 400:
            raise LLMTransportError(f"Unexpected HTTP status {status}")

        return raw.decode("utf-8")
