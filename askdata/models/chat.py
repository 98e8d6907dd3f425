"""
Chat Turn Models

Pydantic models for the ask request, the versioned answer payload returned
for every turn, and the audit records written along the way. Wire names are
camelCase; Python attributes stay snake_case.
"""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

ANSWER_PAYLOAD_VERSION = "v1"


class WireModel(BaseModel):
    """Base for models serialized with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class TokenUsage(BaseModel):
    """Normalized token counts for one or more LLM calls."""

    input_tokens: int = Field(default=0, ge=0)
    output_tokens: int = Field(default=0, ge=0)
    total_tokens: int = Field(default=0, ge=0)

    model_config = ConfigDict(frozen=True)

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )

    @property
    def is_empty(self) -> bool:
        return self.total_tokens == 0 and self.input_tokens == 0 and self.output_tokens == 0


# ============================================================================
# Request Models
# ============================================================================


class AskRequest(WireModel):
    """Body of POST /chat/ask."""

    conversation_id: int | None = Field(default=None, gt=0)
    question: str = Field(..., min_length=1)
    use_rag: bool = Field(default=False)

    @field_validator("question")
    @classmethod
    def question_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Question is required")
        return v


class FeedbackRequest(WireModel):
    """Body of POST /chat/feedback."""

    conversation_id: int = Field(..., gt=0)
    message_id: int = Field(..., gt=0)
    rating: Literal["up", "down"]
    reason: str | None = Field(default=None)

    @field_validator("reason")
    @classmethod
    def trim_reason(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip()[:2000]
        return v or None


# ============================================================================
# Answer Payload
# ============================================================================


class TableBlock(WireModel):
    columns: list[str] = Field(default_factory=list)
    rows: list[dict[str, Any]] = Field(default_factory=list)
    row_count: int = 0
    truncated: bool = False


class DownloadEntry(WireModel):
    kind: Literal["csv"] = "csv"
    filename: str
    mime_type: str = "text/csv"
    content: str


class ChartSpec(WireModel):
    """Time-series area chart: one point per row keyed by x_key/y_key."""

    type: Literal["basicareachart"] = "basicareachart"
    x_key: str
    y_key: str
    data: list[dict[str, Any]] = Field(default_factory=list)


class TokensMeta(WireModel):
    model: str
    input: int = 0
    output: int = 0
    total: int = 0

    @classmethod
    def from_usage(cls, model: str, usage: TokenUsage) -> "TokensMeta":
        return cls(
            model=model,
            input=usage.input_tokens,
            output=usage.output_tokens,
            total=usage.total_tokens,
        )


class RagSource(WireModel):
    """Retrieved passage descriptor: rank plus a bounded snippet, no raw score."""

    id: int
    type: str | None = None
    title: str
    table_name: str | None = None
    column_name: str | None = None
    page: int | str | None = None
    filename: str | None = None
    source: str | None = None
    snippet: str | None = None


class RagMeta(WireModel):
    requested: bool = False
    used: bool = False
    error: str | None = None
    source_count: int = 0
    sources: list[RagSource] = Field(default_factory=list)


class AnswerMeta(WireModel):
    sql: str | None = None
    sql_query_id: int | None = None
    tokens: TokensMeta
    rag: RagMeta = Field(default_factory=RagMeta)


class AnswerPayload(WireModel):
    """Versioned answer contract returned and stored for every assistant turn."""

    version: Literal["v1"] = ANSWER_PAYLOAD_VERSION
    status: Literal["complete", "non_data", "error"]
    answer_text: str
    table: TableBlock = Field(default_factory=TableBlock)
    downloads: list[DownloadEntry] = Field(default_factory=list)
    chart: ChartSpec | None = None
    meta: AnswerMeta

    def with_tokens(self, model: str, usage: TokenUsage) -> "AnswerPayload":
        """Return a copy whose meta.tokens reflect the given usage."""
        meta = self.meta.model_copy(update={"tokens": TokensMeta.from_usage(model, usage)})
        return self.model_copy(update={"meta": meta})


# ============================================================================
# Audit Records
# ============================================================================


class SqlQueryRecord(BaseModel):
    """One executed or attempted statement; append-only."""

    tenant_id: int
    user_id: int
    conversation_id: int
    message_id: int | None = None
    sql_text: str
    status: Literal["success", "error"]
    rows_returned: int = 0
    error_message: str | None = None
    duration_ms: int = 0


class StoredMessage(WireModel):
    id: int
    role: Literal["user", "assistant"]
    content: str
    answer_payload: dict[str, Any] | None = None
    created_at: datetime | None = None
