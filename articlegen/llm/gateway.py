"""Model call gateway: one chat call in, one typed result out.

``call_model`` never raises. Transport failures and non-2xx responses become
``GATEWAY_ERROR`` results; completions that cannot be turned into JSON become
``PARSE_ERROR`` results carrying the first 500 characters of the raw text.
Retry policy belongs to the caller.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any

from articlegen.llm.base import LLMProvider, ProviderError

logger = logging.getLogger(__name__)

RAW_EXCERPT_CHARS = 500

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)


class ErrorCode(str, Enum):
    GATEWAY_ERROR = "GATEWAY_ERROR"
    PARSE_ERROR = "PARSE_ERROR"
    SHAPE_ERROR = "SHAPE_ERROR"
    REPAIR_UNRESOLVED = "REPAIR_UNRESOLVED"
    # Unexpected exception inside the stage executor (a bug, not model output)
    INTERNAL_ERROR = "INTERNAL_ERROR"


@dataclass(frozen=True)
class ModelCallConfig:
    model: str
    max_tokens: int = 4000
    temperature: float = 0.7


@dataclass
class GatewayResult:
    ok: bool
    data: Any = None
    error_code: ErrorCode | None = None
    error: str | None = None
    raw_excerpt: str | None = None
    tokens_used: int | None = None

    @classmethod
    def failure(
        cls,
        code: ErrorCode,
        error: str,
        *,
        raw_excerpt: str | None = None,
        tokens_used: int | None = None,
    ) -> GatewayResult:
        return cls(
            ok=False,
            error_code=code,
            error=error,
            raw_excerpt=raw_excerpt,
            tokens_used=tokens_used,
        )


class JSONExtractionError(ValueError):
    pass


# ---------------------------------------------------------------------------
# JSON extraction
# ---------------------------------------------------------------------------

def strip_code_fence(raw: str) -> str:
    """Remove a fence wrapping the whole completion (```json or plain ```) and trim."""
    s = raw.strip()
    if s.startswith("```"):
        s = re.sub(r"^```\w*\n?", "", s)
        s = re.sub(r"\n?```\s*$", "", s)
    return s.strip()


def _balanced_span(text: str, open_ch: str, close_ch: str) -> str | None:
    """Return the first balanced ``open_ch ... close_ch`` span, string-aware."""
    start = text.find(open_ch)
    if start == -1:
        return None
    depth = 0
    in_string = False
    escape = False
    for i in range(start, len(text)):
        ch = text[i]
        if escape:
            escape = False
            continue
        if ch == "\\":
            escape = True
            continue
        if ch == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if ch == open_ch:
            depth += 1
        elif ch == close_ch:
            depth -= 1
            if depth == 0:
                return text[start : i + 1]
    return None


def _normalize(parsed: Any) -> Any:
    # Double-encoded JSON: a string whose content is itself JSON
    if isinstance(parsed, str):
        try:
            reparsed = json.loads(parsed)
        except json.JSONDecodeError:
            return parsed
        logger.warning("Model returned double-encoded JSON string, re-parsing")
        return _normalize(reparsed)
    # An array wrapping the object we asked for
    if isinstance(parsed, list) and parsed and isinstance(parsed[0], dict):
        logger.warning("Model returned array instead of object, using first element")
        return parsed[0]
    return parsed


def extract_json(content: str) -> Any:
    """Parse a model completion as JSON.

    Whole-text candidates come first: the raw text, the text with an outer
    fence removed, then the first fenced block inside prose. Failing those,
    the first balanced ``{...}`` object, then ``[...]`` array, is taken from
    the unfenced text and then from the original.
    """
    raw = content.strip()
    unfenced = strip_code_fence(raw)
    candidates = [raw, unfenced]
    m = _FENCE_RE.search(raw)
    if m:
        candidates.append(m.group(1).strip())

    for text in dict.fromkeys(candidates):
        try:
            return _normalize(json.loads(text))
        except json.JSONDecodeError:
            continue

    for text in dict.fromkeys((unfenced, raw)):
        for open_ch, close_ch in (("{", "}"), ("[", "]")):
            span = _balanced_span(text, open_ch, close_ch)
            if span is None:
                continue
            try:
                return _normalize(json.loads(span))
            except json.JSONDecodeError:
                continue

    raise JSONExtractionError(
        f"Could not extract valid JSON from response. Content starts with: {raw[:100]}"
    )


# ---------------------------------------------------------------------------
# Public entry point
# ---------------------------------------------------------------------------

def call_model(
    provider: LLMProvider,
    system_prompt: str,
    user_prompt: str,
    config: ModelCallConfig,
) -> GatewayResult:
    """Send one system/user prompt pair and parse the completion as JSON."""
    try:
        completion = provider.chat(
            system_prompt,
            user_prompt,
            model=config.model,
            max_tokens=config.max_tokens,
            temperature=config.temperature,
        )
    except ProviderError as e:
        logger.error("Model call failed (model=%s, status=%s): %s", config.model, e.status_code, e)
        return GatewayResult.failure(ErrorCode.GATEWAY_ERROR, str(e))
    except Exception as e:  # noqa: BLE001 (boundary: the gateway never raises)
        logger.exception("Unexpected error calling model %s", config.model)
        return GatewayResult.failure(ErrorCode.GATEWAY_ERROR, f"Unexpected transport error: {e}")

    tokens = completion.total_tokens
    if not completion.text:
        return GatewayResult.failure(
            ErrorCode.GATEWAY_ERROR, "No content in response", tokens_used=tokens
        )

    try:
        data = extract_json(completion.text)
    except JSONExtractionError as e:
        logger.error(
            "JSON parse error (model=%s, %d chars): %s",
            config.model, len(completion.text), e,
        )
        return GatewayResult.failure(
            ErrorCode.PARSE_ERROR,
            f"Failed to parse JSON response: {e}",
            raw_excerpt=completion.text[:RAW_EXCERPT_CHARS],
            tokens_used=tokens,
        )

    return GatewayResult(ok=True, data=data, tokens_used=tokens)
