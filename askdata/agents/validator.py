"""
Read-only SQL guard and tenant scope wrapping.

Generated SQL is untrusted. Before it reaches a tenant database it must be a
single bounded SELECT with no comments or UNION, and it is then wrapped as a
subquery so the tenant's scope filter applies to the whole result.
"""

import logging
import re

import sqlparse
from sqlparse.tokens import Keyword, Whitespace

from askdata.models.errors import SqlGuardError

logger = logging.getLogger(__name__)

_UNION_RE = re.compile(r"\bUNION\b")
_LIMIT_RE = re.compile(r"\bLIMIT\b")
_COMMENT_MARKERS = ("--", "/*", "*/")
_LOCKING_FOLLOWERS = {"UPDATE", "SHARE", "NO", "KEY"}


def normalize_sql(sql: str) -> str:
    """Collapse whitespace runs to single spaces and trim."""
    return re.sub(r"\s+", " ", sql or "").strip()


def assert_read_only(sql: str) -> str:
    """
    Validate a generated statement and return it trimmed, without a trailing
    semicolon. Checks run on the whitespace-normalized uppercase form.

    Raises:
        SqlGuardError: With the guard code of the first rule that failed
    """
    normalized = normalize_sql(sql)
    upper = normalized.upper()

    if not upper.startswith("SELECT "):
        raise SqlGuardError(SqlGuardError.NOT_READ_ONLY, "Only SELECT queries are allowed")

    if any(marker in upper for marker in _COMMENT_MARKERS):
        raise SqlGuardError(
            SqlGuardError.COMMENTS_NOT_ALLOWED, "SQL comments are not allowed"
        )

    statements = [s for s in sqlparse.split(normalized) if s.strip().rstrip(";").strip()]
    if len(statements) > 1:
        raise SqlGuardError(
            SqlGuardError.MULTIPLE_STATEMENTS, "Only a single SQL statement is allowed"
        )

    if _writes_or_locks(statements[0] if statements else normalized):
        raise SqlGuardError(
            SqlGuardError.NOT_READ_ONLY, "SELECT INTO and row locking clauses are not allowed"
        )

    if _UNION_RE.search(upper):
        raise SqlGuardError(SqlGuardError.UNION_NOT_ALLOWED, "UNION is not allowed")

    if not _LIMIT_RE.search(upper):
        raise SqlGuardError(SqlGuardError.LIMIT_REQUIRED, "A LIMIT clause is required")

    return sql.strip().rstrip(";").rstrip()


def _writes_or_locks(sql: str) -> bool:
    """True for a SELECT ... INTO target or a FOR UPDATE / FOR SHARE clause."""
    parsed = sqlparse.parse(sql)
    if not parsed:
        return False
    tokens = [t for t in parsed[0].flatten() if t.ttype not in Whitespace]
    for position, token in enumerate(tokens):
        if token.ttype not in Keyword:
            continue
        keyword = token.normalized.upper()
        if keyword == "INTO":
            return True
        if keyword == "FOR UPDATE":
            return True
        if keyword == "FOR" and position + 1 < len(tokens):
            if tokens[position + 1].value.upper() in _LOCKING_FOLLOWERS:
                return True
    return False


def apply_scope(sql: str, scope_filter: str | None) -> str:
    """
    Wrap the statement so the scope filter constrains its entire result.

    The filter is never spliced into the generated WHERE clause, so an
    ``OR`` in the generated SQL cannot widen what the tenant sees.
    """
    if not scope_filter or not scope_filter.strip():
        return sql
    return f"SELECT * FROM (\n{sql}\n) AS scoped_result WHERE ({scope_filter.strip()})"
