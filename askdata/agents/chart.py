"""
Chart Inference

Optional enrichment: when a result has a recognizable period column and at
least one numeric column, build a time-series area chart. Never raises; a
result that cannot be charted simply has no chart.
"""

import json
import logging
import math
import re
from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, Field

from askdata.agents.base import BaseAgent, safe_json_parse
from askdata.models.chat import ChartSpec, TokenUsage

logger = logging.getLogger(__name__)

# Checked in order, exact column-name match.
DATE_KEY_PRIORITY = (
    "metrics.yearmonth",
    "yearmonth",
    "Month-Year",
    "Month",
    "year_month",
    "month_year",
    "month",
    "period",
    "date",
)

NUMERIC_RATIO = 0.6
LLM_SAMPLE_ROWS = 20

_METRIC_PRIORITY = (
    re.compile(r"revenue|sales|amount|total|gross|net|profit", re.IGNORECASE),
    re.compile(r"count|transactions|orders|qty|quantity|units", re.IGNORECASE),
    re.compile(r"points|visits|members|customers", re.IGNORECASE),
)


class ChartResult(BaseModel):
    chart: ChartSpec | None = None
    usage: TokenUsage = Field(default_factory=TokenUsage)


def to_number(value: Any) -> float | None:
    """Finite number from a number or a numeric string (commas allowed)."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, str):
        cleaned = value.replace(",", "").strip()
        if not cleaned:
            return None
        try:
            number = float(cleaned)
        except ValueError:
            return None
        return number if math.isfinite(number) else None
    return None


def detect_date_key(columns: list[str]) -> str | None:
    available = set(columns)
    for candidate in DATE_KEY_PRIORITY:
        if candidate in available:
            return candidate
    return None


def numeric_candidates(
    columns: list[str], rows: list[dict[str, Any]], date_key: str, sample_size: int = 50
) -> list[str]:
    """Columns whose non-empty sampled values are at least 60% numeric."""
    sample = rows[:sample_size]
    candidates = []
    for column in columns:
        if column == date_key:
            continue
        values = [row.get(column) for row in sample if row.get(column) not in (None, "")]
        if not values:
            continue
        numeric = sum(1 for value in values if to_number(value) is not None)
        if numeric / len(values) >= NUMERIC_RATIO:
            candidates.append(column)
    return candidates


def pick_metric_heuristic(candidates: list[str]) -> str | None:
    for pattern in _METRIC_PRIORITY:
        for candidate in candidates:
            if pattern.search(candidate):
                return candidate
    return candidates[0] if candidates else None


def normalize_period(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, (date, datetime)):
        return value.isoformat()[:10]
    text = str(value).strip()
    return text or None


def build_series(
    rows: list[dict[str, Any]], date_key: str, metric_key: str, max_points: int = 200
) -> list[dict[str, Any]]:
    """
    Map rows to {date_key: period, metric_key: number}.

    Rows with a missing period or unparseable value are dropped. Periods are
    year-first strings, so a plain string sort is chronological.
    """
    series = []
    for row in rows[:max_points]:
        period = normalize_period(row.get(date_key))
        number = to_number(row.get(metric_key))
        if period is None or number is None:
            continue
        if number.is_integer() and not isinstance(row.get(metric_key), float):
            number = int(number)
        series.append({date_key: period, metric_key: number})
    series.sort(key=lambda point: point[date_key])
    return series


class ChartBuilder(BaseAgent):
    """Pick a period column and a metric column, then build the series."""

    def __init__(
        self,
        llm_provider=None,
        prompts=None,
        sample_rows: int = 50,
        max_points: int = 200,
    ) -> None:
        super().__init__(name="ChartBuilder", llm_provider=llm_provider, prompts=prompts)
        self.sample_rows = sample_rows
        self.max_points = max_points

    async def execute(
        self, *, question: str, columns: list[str], rows: list[dict[str, Any]]
    ) -> ChartResult:
        try:
            return await self._infer(question, columns, rows)
        except Exception as e:
            logger.warning(f"[{self.name}] Chart inference failed: {e}")
            return ChartResult()

    async def _infer(
        self, question: str, columns: list[str], rows: list[dict[str, Any]]
    ) -> ChartResult:
        if not rows:
            return ChartResult()

        date_key = detect_date_key(columns)
        if date_key is None:
            return ChartResult()

        candidates = numeric_candidates(columns, rows, date_key, self.sample_rows)
        if not candidates:
            return ChartResult()

        usage = TokenUsage()
        if len(candidates) == 1:
            metric_key = candidates[0]
        else:
            metric_key, usage = await self._choose_metric(question, date_key, candidates, rows)

        data = build_series(rows, date_key, metric_key, self.max_points)
        if not data:
            return ChartResult(usage=usage)

        logger.debug(
            f"[{self.name}] Chart built",
            extra={"x_key": date_key, "y_key": metric_key, "points": len(data)},
        )
        return ChartResult(
            chart=ChartSpec(x_key=date_key, y_key=metric_key, data=data),
            usage=usage,
        )

    async def _choose_metric(
        self,
        question: str,
        date_key: str,
        candidates: list[str],
        rows: list[dict[str, Any]],
    ) -> tuple[str, TokenUsage]:
        fallback = pick_metric_heuristic(candidates)
        try:
            raw_text, usage = await self._generate(
                "agents/chart_metric.md",
                temperature=0.0,
                question=question,
                date_key=date_key,
                candidates_json=json.dumps(candidates),
                rows_json=json.dumps(rows[:LLM_SAMPLE_ROWS], default=str),
            )
        except Exception as e:
            logger.warning(f"[{self.name}] Metric selection call failed: {e}")
            return fallback, TokenUsage()

        parsed = safe_json_parse(raw_text)
        choice = parsed.get("metricKey") if isinstance(parsed, dict) else raw_text.strip()
        if isinstance(choice, str) and choice.strip() in candidates:
            return choice.strip(), usage
        return fallback, usage
