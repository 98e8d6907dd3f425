"""
Answer Payload Assembly

Pure functions that build the versioned AnswerPayload from a turn's pieces,
plus the telemetry rows derived from it.
"""

import csv
import io
import json
import time
from typing import Any

from askdata.knowledge.vectors import RetrievedDocument
from askdata.models.chat import (
    AnswerMeta,
    AnswerPayload,
    ChartSpec,
    DownloadEntry,
    RagMeta,
    RagSource,
    TableBlock,
    TokensMeta,
    TokenUsage,
)


def build_table(
    columns: list[str], rows: list[dict[str, Any]], max_rows: int = 20
) -> TableBlock:
    """rowCount is always the full size; rows are capped at max_rows."""
    row_count = len(rows)
    return TableBlock(
        columns=list(columns),
        rows=rows[:max_rows],
        row_count=row_count,
        truncated=row_count > max_rows,
    )


def rows_to_csv(columns: list[str], rows: list[dict[str, Any]]) -> str:
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=columns, extrasaction="ignore", lineterminator="\n")
    writer.writeheader()
    for row in rows:
        writer.writerow({column: _csv_cell(row.get(column)) for column in columns})
    return buffer.getvalue()


def _csv_cell(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return value


def build_downloads(
    columns: list[str],
    rows: list[dict[str, Any]],
    conversation_id: int,
    threshold: int = 21,
    now_ms: int | None = None,
) -> list[DownloadEntry]:
    """One CSV export of the full result when it reaches the threshold."""
    if not columns or len(rows) < threshold:
        return []
    stamp = now_ms if now_ms is not None else int(time.time() * 1000)
    return [
        DownloadEntry(
            filename=f"export-{conversation_id}-{stamp}.csv",
            content=rows_to_csv(columns, rows),
        )
    ]


def source_title(metadata: dict[str, Any], rank: int) -> str:
    return (
        metadata.get("title")
        or metadata.get("table_name")
        or metadata.get("filename")
        or f"Source #{rank}"
    )


def build_rag_meta(
    requested: bool,
    docs: list[RetrievedDocument],
    error: str | None = None,
    snippet_chars: int = 500,
) -> RagMeta:
    """Describe retrieved passages by rank and snippet only; scores stay internal."""
    sources = []
    for rank, doc in enumerate(docs, start=1):
        meta = doc.metadata or {}
        sources.append(
            RagSource(
                id=rank,
                type=meta.get("type"),
                title=str(source_title(meta, rank)),
                table_name=meta.get("table_name"),
                column_name=meta.get("column_name"),
                page=meta.get("page"),
                filename=meta.get("filename"),
                source=meta.get("source"),
                snippet=(doc.page_content or "")[:snippet_chars] or None,
            )
        )
    return RagMeta(
        requested=requested,
        used=requested and len(docs) > 0,
        error=error,
        source_count=len(sources),
        sources=sources,
    )


def build_answer_payload(
    *,
    answer_text: str,
    table: TableBlock,
    downloads: list[DownloadEntry],
    chart: ChartSpec | None,
    sql: str,
    sql_query_id: int | None,
    model: str,
    usage: TokenUsage,
    rag: RagMeta,
) -> AnswerPayload:
    return AnswerPayload(
        status="complete",
        answer_text=answer_text,
        table=table,
        downloads=downloads,
        chart=chart,
        meta=AnswerMeta(
            sql=sql,
            sql_query_id=sql_query_id,
            tokens=TokensMeta.from_usage(model, usage),
            rag=rag,
        ),
    )


def build_non_data_payload(*, answer_text: str, model: str, usage: TokenUsage) -> AnswerPayload:
    return AnswerPayload(
        status="non_data",
        answer_text=answer_text,
        meta=AnswerMeta(tokens=TokensMeta.from_usage(model, usage)),
    )


def truncate_answer(text: str | None, max_chars: int = 500) -> str | None:
    if text is None:
        return None
    if len(text) <= max_chars:
        return text
    return text[: max_chars - 3] + "..."


def query_source_rows(docs: list[RetrievedDocument]) -> list[dict[str, Any]]:
    """Rank-ordered rows for query_sources telemetry."""
    return [
        {
            "source_type": (doc.metadata or {}).get("type"),
            "title": source_title(doc.metadata or {}, rank),
            "table_name": (doc.metadata or {}).get("table_name"),
            "similarity_score": doc.score,
            "source_rank": rank,
        }
        for rank, doc in enumerate(docs, start=1)
    ]
