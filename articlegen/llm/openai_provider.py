"""OpenAI-compatible chat completions (OpenAI itself, or OpenRouter via base_url)."""

from typing import Any

import httpx
from openai import APIConnectionError, APIError, APIStatusError, OpenAI

from articlegen.llm.base import ChatCompletion, ProviderError


class OpenAIProvider:
    """Chat completion against any OpenAI-compatible endpoint."""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float = 120.0,
        http_client: httpx.Client | None = None,
    ):
        self._client = OpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            max_retries=0,
            http_client=http_client,
        )

    def chat(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        model: str,
        max_tokens: int,
        temperature: float,
    ) -> ChatCompletion:
        extra: dict[str, Any] = {}
        # response_format is only honoured by OpenAI models
        if model.startswith("openai/") or model.startswith("gpt-"):
            extra["response_format"] = {"type": "json_object"}
        try:
            response = self._client.chat.completions.create(
                model=model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                max_tokens=max_tokens,
                temperature=temperature,
                **extra,
            )
        except APIStatusError as e:
            raise ProviderError(
                f"Model endpoint error: {e.status_code} - {e.response.text}",
                status_code=e.status_code,
                body=e.response.text,
            ) from e
        except (APIConnectionError, APIError) as e:
            raise ProviderError(f"Model endpoint unreachable: {e}") from e

        content = response.choices[0].message.content if response.choices else None
        usage = getattr(response, "usage", None)
        return ChatCompletion(
            text=content or "",
            total_tokens=getattr(usage, "total_tokens", None),
        )
