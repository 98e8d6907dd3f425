"""
Unit tests for the read-only SQL guard and scope wrapping.

Tests:
- Each guard rule and its guard code
- Returned statement shape
- Scope filter applied over the whole result, including OR'd predicates
"""

import sqlite3

import pytest

from askdata.agents.validator import apply_scope, assert_read_only, normalize_sql
from askdata.models.errors import SqlGuardError


class TestAssertReadOnly:
    """Test suite for assert_read_only."""

    @pytest.mark.parametrize(
        "sql",
        [
            "SELECT id FROM orders LIMIT 20",
            "select id from orders limit 20;",
            "  SELECT\n  id,\n  total\nFROM orders\nWHERE total > 3\nLIMIT 20  ",
            "SELECT AVG(basket_size) AS avg_basket_size FROM orders LIMIT 1",
        ],
    )
    def test_bounded_select_passes(self, sql):
        assert assert_read_only(sql).upper().startswith("SELECT")

    def test_returns_trimmed_statement_without_semicolon(self):
        sql = "  SELECT id\nFROM orders LIMIT 20 ;  "
        assert assert_read_only(sql) == "SELECT id\nFROM orders LIMIT 20"

    @pytest.mark.parametrize(
        "sql,guard_code",
        [
            ("DELETE FROM orders", SqlGuardError.NOT_READ_ONLY),
            ("UPDATE orders SET total = 0 LIMIT 1", SqlGuardError.NOT_READ_ONLY),
            ("WITH x AS (SELECT 1) SELECT * FROM x LIMIT 1", SqlGuardError.NOT_READ_ONLY),
            ("SELECT id FROM orders -- everything\nLIMIT 20", SqlGuardError.COMMENTS_NOT_ALLOWED),
            ("SELECT /* hint */ id FROM orders LIMIT 20", SqlGuardError.COMMENTS_NOT_ALLOWED),
            (
                "SELECT id FROM orders LIMIT 20; DROP TABLE orders",
                SqlGuardError.MULTIPLE_STATEMENTS,
            ),
            (
                "SELECT id FROM orders UNION SELECT id FROM refunds LIMIT 20",
                SqlGuardError.UNION_NOT_ALLOWED,
            ),
            (
                "SELECT id FROM orders union all SELECT id FROM refunds LIMIT 20",
                SqlGuardError.UNION_NOT_ALLOWED,
            ),
            ("SELECT id FROM orders", SqlGuardError.LIMIT_REQUIRED),
            ("SELECT * INTO stolen_copy FROM orders LIMIT 10", SqlGuardError.NOT_READ_ONLY),
            ("SELECT id FROM orders LIMIT 10 FOR UPDATE", SqlGuardError.NOT_READ_ONLY),
            ("SELECT id FROM orders LIMIT 10 for share", SqlGuardError.NOT_READ_ONLY),
            ("SELECT id FROM orders LIMIT 10 FOR NO KEY UPDATE", SqlGuardError.NOT_READ_ONLY),
        ],
    )
    def test_rejections_carry_guard_code(self, sql, guard_code):
        with pytest.raises(SqlGuardError) as exc_info:
            assert_read_only(sql)

        error = exc_info.value
        assert error.guard_code == guard_code
        assert error.code == "SQL_EXECUTION_ERROR"
        assert error.http_status == 400
        assert error.to_payload()["guardCode"] == guard_code

    def test_select_prefix_needs_trailing_space(self):
        with pytest.raises(SqlGuardError) as exc_info:
            assert_read_only("SELECT")
        assert exc_info.value.guard_code == SqlGuardError.NOT_READ_ONLY

    def test_word_boundaries_for_union_and_limit(self):
        # Identifiers containing the keywords are fine; the LIMIT keyword is still required.
        assert assert_read_only("SELECT reunion_id FROM trips LIMIT 5")
        with pytest.raises(SqlGuardError) as exc_info:
            assert_read_only("SELECT speed_limit FROM roads")
        assert exc_info.value.guard_code == SqlGuardError.LIMIT_REQUIRED

    def test_into_and_for_outside_clauses_pass(self):
        assert assert_read_only("SELECT SUBSTRING(name FROM 1 FOR 3) FROM products LIMIT 5")
        assert assert_read_only("SELECT id FROM notes WHERE body = 'moved into storage' LIMIT 5")

    def test_normalize_sql_collapses_whitespace(self):
        assert normalize_sql("  SELECT\n\tid   FROM  t ") == "SELECT id FROM t"


class TestApplyScope:
    """Test suite for apply_scope."""

    def test_no_filter_returns_sql_unchanged(self):
        sql = "SELECT id FROM orders LIMIT 20"
        assert apply_scope(sql, None) == sql
        assert apply_scope(sql, "   ") == sql

    def test_wraps_statement_as_subquery(self):
        scoped = apply_scope("SELECT id, store_id FROM orders LIMIT 20", " store_id = 12 ")

        assert scoped == (
            "SELECT * FROM (\nSELECT id, store_id FROM orders LIMIT 20\n) "
            "AS scoped_result WHERE (store_id = 12)"
        )

    def test_or_in_generated_sql_cannot_widen_scope(self):
        """Run the wrapped statement on a real SQL engine."""
        connection = sqlite3.connect(":memory:")
        try:
            connection.execute("CREATE TABLE orders (id INTEGER, store_id INTEGER)")
            connection.executemany(
                "INSERT INTO orders VALUES (?, ?)",
                [(1, 12), (2, 12), (3, 99), (4, 77)],
            )
            generated = "SELECT id, store_id FROM orders WHERE id > 2 OR 1 = 1 LIMIT 20"

            scoped = apply_scope(assert_read_only(generated), "store_id = 12")
            rows = connection.execute(scoped).fetchall()
        finally:
            connection.close()

        assert sorted(rows) == [(1, 12), (2, 12)]
