"""Token usage normalization at the LLM call boundary."""

from collections.abc import Mapping
from typing import Any

from askdata.models.chat import TokenUsage

_INPUT_KEYS = ("input_tokens", "prompt_tokens", "promptTokens", "inputTokens")
_OUTPUT_KEYS = ("output_tokens", "completion_tokens", "completionTokens", "outputTokens")
_TOTAL_KEYS = ("total_tokens", "totalTokens")


def _read(source: Any, keys: tuple[str, ...]) -> int | None:
    for key in keys:
        if isinstance(source, Mapping):
            value = source.get(key)
        else:
            value = getattr(source, key, None)
        if value is None:
            continue
        try:
            return max(int(value), 0)
        except (TypeError, ValueError):
            continue
    return None


def normalize_usage(raw: Any) -> TokenUsage:
    """
    Convert any provider usage shape into TokenUsage.

    Accepts objects or mappings using either the prompt/completion or the
    input/output naming. A missing total is derived from the two parts.
    Anything unreadable yields zero usage.
    """
    if raw is None:
        return TokenUsage()
    if isinstance(raw, TokenUsage):
        return raw
    input_tokens = _read(raw, _INPUT_KEYS) or 0
    output_tokens = _read(raw, _OUTPUT_KEYS) or 0
    total_tokens = _read(raw, _TOTAL_KEYS)
    if total_tokens is None:
        total_tokens = input_tokens + output_tokens
    return TokenUsage(
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        total_tokens=total_tokens,
    )


def usage_from_response(response: Any) -> TokenUsage:
    """Extract normalized usage from an LLMResponse (or any object with .usage)."""
    if response is None:
        return TokenUsage()
    return normalize_usage(getattr(response, "usage", None))
