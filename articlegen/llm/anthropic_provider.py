"""Anthropic Messages API behind the same chat() contract."""

import httpx
from anthropic import Anthropic, APIConnectionError, APIError, APIStatusError

from articlegen.llm.base import ChatCompletion, ProviderError


class AnthropicProvider:
    """Anthropic chat completion; the system prompt goes in the ``system`` field."""

    def __init__(
        self,
        api_key: str | None = None,
        timeout: float = 120.0,
        http_client: httpx.Client | None = None,
    ):
        self._client = Anthropic(
            api_key=api_key, timeout=timeout, max_retries=0, http_client=http_client
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
        # OpenRouter-style ids ("anthropic/claude-...") are not valid here
        model = model.split("/", 1)[-1]
        try:
            response = self._client.messages.create(
                model=model,
                system=system_prompt,
                max_tokens=max_tokens,
                temperature=temperature,
                messages=[{"role": "user", "content": user_prompt}],
            )
        except APIStatusError as e:
            raise ProviderError(
                f"Model endpoint error: {e.status_code} - {e.response.text}",
                status_code=e.status_code,
                body=e.response.text,
            ) from e
        except (APIConnectionError, APIError) as e:
            raise ProviderError(f"Model endpoint unreachable: {e}") from e

        text = "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        )
        usage = response.usage
        total = (usage.input_tokens + usage.output_tokens) if usage else None
        return ChatCompletion(text=text, total_tokens=total)
