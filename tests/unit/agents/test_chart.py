"""
Unit tests for chart inference.

Tests:
- Period column detection order
- Numeric candidate detection
- Metric choice (single candidate, model choice, heuristic fallback)
- Series shape and ordering
"""

from datetime import date

import pytest

from askdata.agents.chart import (
    ChartBuilder,
    build_series,
    detect_date_key,
    numeric_candidates,
    pick_metric_heuristic,
    to_number,
)


class TestChartHelpers:
    """Pure helpers used by ChartBuilder."""

    def test_detect_date_key_priority(self):
        assert detect_date_key(["date", "month", "revenue"]) == "month"
        assert detect_date_key(["period", "yearmonth"]) == "yearmonth"
        assert detect_date_key(["Month", "month"]) == "Month"
        assert detect_date_key(["day", "revenue"]) is None

    @pytest.mark.parametrize(
        "value,expected",
        [
            (3, 3.0),
            (2.5, 2.5),
            ("1,234.5", 1234.5),
            (" 42 ", 42.0),
            ("", None),
            ("n/a", None),
            (True, None),
            (None, None),
            (float("nan"), None),
            ("inf", None),
        ],
    )
    def test_to_number(self, value, expected):
        assert to_number(value) == expected

    def test_numeric_candidates_uses_sixty_percent_rule(self):
        rows = [
            {"month": "2024-01", "revenue": "10", "note": "ok", "orders": 1},
            {"month": "2024-02", "revenue": "12", "note": "5", "orders": None},
            {"month": "2024-03", "revenue": "x", "note": "fine", "orders": 3},
        ]

        candidates = numeric_candidates(["month", "revenue", "note", "orders"], rows, "month")

        assert candidates == ["revenue", "orders"]

    def test_numeric_candidates_treats_empty_strings_as_missing(self):
        rows = [
            {"month": "2024-01", "revenue": "10", "refunds": ""},
            {"month": "2024-02", "revenue": "", "refunds": "2"},
            {"month": "2024-03", "revenue": "14", "refunds": ""},
            {"month": "2024-04", "revenue": "", "refunds": ""},
        ]

        candidates = numeric_candidates(["month", "revenue", "refunds"], rows, "month")

        assert candidates == ["revenue", "refunds"]

    def test_heuristic_prefers_money_then_counts(self):
        assert pick_metric_heuristic(["visits", "order_count", "net_sales"]) == "net_sales"
        assert pick_metric_heuristic(["visits", "order_count"]) == "order_count"
        assert pick_metric_heuristic(["a", "b"]) == "a"
        assert pick_metric_heuristic([]) is None

    def test_build_series_sorts_and_drops_bad_rows(self):
        rows = [
            {"month": "2024-03", "revenue": "30"},
            {"month": None, "revenue": 5},
            {"month": date(2024, 1, 1), "revenue": 10},
            {"month": "2024-02", "revenue": "bad"},
            {"month": "2024-02", "revenue": 20.5},
        ]

        series = build_series(rows, "month", "revenue")

        assert series == [
            {"month": "2024-01-01", "revenue": 10},
            {"month": "2024-02", "revenue": 20.5},
            {"month": "2024-03", "revenue": 30},
        ]

    def test_build_series_caps_points(self):
        rows = [{"month": f"2024-{i:02d}", "revenue": i} for i in range(1, 13)]

        assert len(build_series(rows, "month", "revenue", max_points=5)) == 5


class TestChartBuilder:
    """Test suite for ChartBuilder."""

    @pytest.fixture
    def builder(self, mock_llm_provider):
        return ChartBuilder(llm_provider=mock_llm_provider)

    @pytest.mark.asyncio
    async def test_no_rows_no_chart(self, builder, mock_llm_provider):
        result = await builder.execute(question="q", columns=["month", "revenue"], rows=[])

        assert result.chart is None
        mock_llm_provider.generate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_period_column_no_chart(self, builder):
        result = await builder.execute(
            question="q",
            columns=["store", "revenue"],
            rows=[{"store": "A", "revenue": 10}],
        )

        assert result.chart is None

    @pytest.mark.asyncio
    async def test_single_candidate_skips_model(self, builder, mock_llm_provider):
        rows = [{"month": "2024-02", "revenue": 20}, {"month": "2024-01", "revenue": 10}]

        result = await builder.execute(question="q", columns=["month", "revenue"], rows=rows)

        mock_llm_provider.generate.assert_not_awaited()
        assert result.usage.total_tokens == 0
        chart = result.chart
        assert chart.type == "basicareachart"
        assert chart.x_key == "month"
        assert chart.y_key == "revenue"
        assert chart.data == [{"month": "2024-01", "revenue": 10}, {"month": "2024-02", "revenue": 20}]
        assert chart.to_wire()["xKey"] == "month"

    @pytest.mark.asyncio
    async def test_model_picks_metric(self, builder, mock_llm_provider):
        mock_llm_provider.queue_response('{"metricKey": "visits"}', prompt_tokens=30, completion_tokens=6)
        rows = [
            {"month": "2024-01", "revenue": 10, "visits": 100},
            {"month": "2024-02", "revenue": 12, "visits": 90},
        ]

        result = await builder.execute(
            question="How did visits trend?", columns=["month", "revenue", "visits"], rows=rows
        )

        assert result.chart.y_key == "visits"
        assert result.usage.total_tokens == 36

    @pytest.mark.asyncio
    async def test_invalid_model_choice_uses_heuristic(self, builder, mock_llm_provider):
        mock_llm_provider.queue_response('{"metricKey": "not_a_column"}')
        rows = [{"month": "2024-01", "visits": 100, "revenue": 10}]

        result = await builder.execute(
            question="q", columns=["month", "visits", "revenue"], rows=rows
        )

        assert result.chart.y_key == "revenue"
        assert result.usage.total_tokens == 15

    @pytest.mark.asyncio
    async def test_model_failure_uses_heuristic(self, builder, mock_llm_provider):
        mock_llm_provider.queue_error(RuntimeError("rate limited"))
        rows = [{"month": "2024-01", "visits": 100, "order_count": 7}]

        result = await builder.execute(
            question="q", columns=["month", "visits", "order_count"], rows=rows
        )

        assert result.chart.y_key == "order_count"
        assert result.usage.total_tokens == 0
