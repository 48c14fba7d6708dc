"""Convenience exports for reasoning-service client implementations."""

from .llm_client import (
    ConversationRequest,
    LLMClient,
    LLMClientError,
    LLMResponseFormatError,
    LLMTransportError,
)
from .responses import ResponsesClient

__all__ = [
    "ConversationRequest",
    "LLMClient",
    "LLMClientError",
    "LLMResponseFormatError",
    "LLMTransportError",
    "ResponsesClient",
]
