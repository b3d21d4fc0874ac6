"""Abstract LLM provider protocol."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass
class ChatCompletion:
    """Raw chat completion text plus token usage (when the endpoint reports it)."""

    text: str
    total_tokens: int | None = None


class ProviderError(Exception):
    """Transport failure or non-success HTTP status from the model endpoint."""

    def __init__(self, message: str, status_code: int | None = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class LLMProvider(Protocol):
    """Protocol for LLM backends (OpenAI-compatible, Anthropic)."""

    def chat(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        model: str,
        max_tokens: int,
        temperature: float,
    ) -> ChatCompletion:
        """Send one system/user turn pair. Raises ProviderError on failure."""
        ...
