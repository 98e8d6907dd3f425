"""
Provider-neutral shapes for one chat-completion call.

Every pipeline step makes a single system+user exchange, so the request
carries only the messages and the per-step sampling overrides.
"""

from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class LLMMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str = Field(..., min_length=1)


class LLMRequest(BaseModel):
    """One completion request. Unset overrides fall back to the provider defaults."""

    messages: List[LLMMessage] = Field(..., min_length=1)
    temperature: Optional[float] = Field(None, ge=0.0, le=2.0)
    max_tokens: Optional[int] = Field(None, gt=0)


class LLMUsage(BaseModel):
    """Usage exactly as the provider reported it. Normalized later by llm.usage."""

    prompt_tokens: int = Field(default=0, ge=0)
    completion_tokens: int = Field(default=0, ge=0)
    total_tokens: int = Field(default=0, ge=0)


class LLMResponse(BaseModel):
    content: str
    model: str = Field(..., description="Model that produced the text, as reported by the provider")
    usage: Optional[LLMUsage] = Field(
        None, description="Absent when the provider omits usage"
    )
    finish_reason: Literal["stop", "length", "content_filter", "error"] = "stop"
    provider: str
