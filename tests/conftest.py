"""
Pytest configuration and shared fixtures.

This module provides fixtures and configuration used across all tests:
a queued mock LLM provider, an in-memory core store with the same async
interface as CoreStore, and a fake tenant data connector.
"""

import itertools
import logging
from datetime import UTC, datetime
from typing import Any
from unittest.mock import AsyncMock

import pytest

from askdata.connectors.base import ColumnInfo, QueryResult, TableInfo
from askdata.llm.models import LLMResponse, LLMUsage
from askdata.models.chat import SqlQueryRecord, TokenUsage
from askdata.models.tenant import RequestContext, TenantContext, UserContext

# ============================================================================
# Pytest Configuration
# ============================================================================


def pytest_addoption(parser):
    """Add custom command line options."""
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="Run integration tests (requires PostgreSQL and API keys)",
    )


def pytest_configure(config):
    """Configure pytest with custom markers and settings."""
    config.addinivalue_line(
        "markers", "integration: mark test as integration test (may require external services)"
    )
    config.addinivalue_line("markers", "slow: mark test as slow (takes more than 1 second)")
    config.addinivalue_line("markers", "unit: mark test as unit test (default)")


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless explicitly enabled."""
    if config.getoption("--run-integration"):
        return
    skip_integration = pytest.mark.skip(
        reason="Integration tests disabled (use --run-integration to enable)."
    )
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)


# ============================================================================
# Logging Configuration
# ============================================================================


@pytest.fixture(autouse=True)
def configure_test_logging(caplog):
    """Capture logs at DEBUG for every test."""
    caplog.set_level(logging.DEBUG)
    yield


@pytest.fixture
def disable_logging():
    """Disable logging for tests that generate excessive logs."""
    logging.disable(logging.CRITICAL)
    yield
    logging.disable(logging.NOTSET)


# ============================================================================
# Environment and Configuration
# ============================================================================


@pytest.fixture(autouse=True)
def mock_openai_api_key(monkeypatch):
    """
    Mock OpenAI API key so nothing attempts real API calls.

    Runs automatically for all tests.
    """
    from askdata.config import get_settings

    get_settings.cache_clear()

    test_key = "sk-test-key-1234567890-abcdefghijklmnop"
    monkeypatch.setenv("LLM_OPENAI_API_KEY", test_key)
    monkeypatch.setenv("ASKDATA_ENV_SOURCE", "environment")
    yield test_key

    get_settings.cache_clear()


# ============================================================================
# Tenancy
# ============================================================================


@pytest.fixture
def user() -> UserContext:
    return UserContext(user_id=7, tenant_id=3, role="USER", email="analyst@example.com")


@pytest.fixture
def tenant() -> TenantContext:
    return TenantContext(
        id=3,
        slug="acme",
        name="Acme Retail",
        data_db_host="warehouse.internal",
        data_db_name="acme",
        data_db_user="readonly",
        vector_collection="tenant_acme",
        table_allow_list=["orders"],
        scope_filter="store_id = 12",
    )


@pytest.fixture
def request_context(user, tenant) -> RequestContext:
    return RequestContext(user=user, tenant=tenant)


# ============================================================================
# Mock LLM Provider
# ============================================================================


class MockLLMProvider:
    """
    LLM provider double that returns queued responses in order.

    Usage:
        mock_llm_provider.queue_response("YES", prompt_tokens=10, completion_tokens=1)
        mock_llm_provider.queue_error(TimeoutError("slow"))
    """

    def __init__(self) -> None:
        self.model = "mock-model"
        self.provider_name = "mock"
        self.responses: list[Any] = []
        self.requests: list[Any] = []
        self.generate = AsyncMock(side_effect=self._generate)
        self.close = AsyncMock()

    def queue_response(
        self, content: str, prompt_tokens: int = 10, completion_tokens: int = 5
    ) -> None:
        self.responses.append(
            LLMResponse(
                content=content,
                model=self.model,
                usage=LLMUsage(
                    prompt_tokens=prompt_tokens,
                    completion_tokens=completion_tokens,
                    total_tokens=prompt_tokens + completion_tokens,
                ),
                provider=self.provider_name,
            )
        )

    def set_response(self, content: str) -> None:
        """Replace the queue with a single response."""
        self.responses = []
        self.queue_response(content)

    def queue_error(self, error: Exception) -> None:
        self.responses.append(error)

    def prompt_of(self, index: int) -> str:
        """User prompt text of the index-th request."""
        return self.requests[index].messages[-1].content

    async def _generate(self, request):
        self.requests.append(request)
        if not self.responses:
            raise AssertionError("No mock LLM response queued")
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


@pytest.fixture
def mock_llm_provider() -> MockLLMProvider:
    return MockLLMProvider()


# ============================================================================
# In-memory Core Store
# ============================================================================


class FakeCoreStore:
    """In-memory stand-in for CoreStore with the same async methods."""

    def __init__(self) -> None:
        self._ids = itertools.count(1)
        self.conversations: dict[int, dict[str, Any]] = {}
        self.messages: list[dict[str, Any]] = []
        self.sql_queries: list[dict[str, Any]] = []
        self.token_usage: dict[int, dict[str, Any]] = {}
        self.query_logs: list[dict[str, Any]] = []
        self.query_sources: list[dict[str, Any]] = []
        self.memories: dict[tuple[int, int], str] = {}

    def _next_id(self) -> int:
        return next(self._ids)

    async def ping(self) -> bool:
        return True

    async def create_conversation(self, *, tenant_id: int, user_id: int, title: str) -> int:
        conversation_id = self._next_id()
        now = datetime.now(UTC)
        self.conversations[conversation_id] = {
            "id": conversation_id,
            "tenant_id": tenant_id,
            "user_id": user_id,
            "title": title,
            "status": "active",
            "conversation_summary": None,
            "created_at": now,
            "updated_at": now,
        }
        return conversation_id

    async def conversation_exists(
        self, *, conversation_id: int, tenant_id: int, user_id: int
    ) -> bool:
        conversation = self.conversations.get(conversation_id)
        return bool(
            conversation
            and conversation["tenant_id"] == tenant_id
            and conversation["user_id"] == user_id
        )

    async def add_message(
        self,
        *,
        tenant_id: int,
        conversation_id: int,
        role: str,
        content: str,
        answer_payload: dict[str, Any] | None = None,
    ) -> int:
        message_id = self._next_id()
        self.messages.append(
            {
                "id": message_id,
                "tenant_id": tenant_id,
                "conversation_id": conversation_id,
                "role": role,
                "content": content,
                "answer_payload": answer_payload,
                "created_at": datetime.now(UTC),
            }
        )
        return message_id

    async def list_messages(self, *, conversation_id: int, tenant_id: int) -> list[dict[str, Any]]:
        return [
            {key: m[key] for key in ("id", "role", "content", "answer_payload", "created_at")}
            for m in self.messages
            if m["conversation_id"] == conversation_id and m["tenant_id"] == tenant_id
        ]

    async def list_conversations(
        self, *, tenant_id: int, user_id: int, limit: int = 50
    ) -> list[dict[str, Any]]:
        rows = []
        for conversation in self.conversations.values():
            if conversation["tenant_id"] != tenant_id or conversation["user_id"] != user_id:
                continue
            thread = [m for m in self.messages if m["conversation_id"] == conversation["id"]]
            rows.append(
                {
                    **conversation,
                    "last_message": thread[-1]["content"] if thread else None,
                }
            )
        return rows[:limit]

    async def get_conversation_summary(self, *, conversation_id: int, tenant_id: int) -> str:
        conversation = self.conversations.get(conversation_id)
        if not conversation or conversation["tenant_id"] != tenant_id:
            return ""
        return conversation["conversation_summary"] or ""

    async def update_conversation_summary(
        self, *, conversation_id: int, tenant_id: int, summary: str
    ) -> None:
        conversation = self.conversations[conversation_id]
        assert conversation["tenant_id"] == tenant_id
        conversation["conversation_summary"] = summary

    async def get_user_memory(self, *, user_id: int, tenant_id: int) -> str:
        return self.memories.get((user_id, tenant_id), "")

    async def record_sql_query(self, record: SqlQueryRecord) -> int:
        query_id = self._next_id()
        self.sql_queries.append(
            {"id": query_id, **record.model_dump(), "created_at": datetime.now(UTC)}
        )
        return query_id

    async def persist_assistant_turn(
        self,
        *,
        tenant_id: int,
        user_id: int,
        conversation_id: int,
        answer_text: str,
        answer_payload: dict[str, Any],
        model: str,
        usage: TokenUsage,
    ) -> tuple[int, int]:
        message_id = await self.add_message(
            tenant_id=tenant_id,
            conversation_id=conversation_id,
            role="assistant",
            content=answer_text,
            answer_payload=answer_payload,
        )
        usage_id = self._next_id()
        self.token_usage[usage_id] = {
            "id": usage_id,
            "tenant_id": tenant_id,
            "user_id": user_id,
            "conversation_id": conversation_id,
            "message_id": message_id,
            "model": model,
            "prompt_tokens": usage.input_tokens,
            "completion_tokens": usage.output_tokens,
            "total_tokens": usage.total_tokens,
            "created_at": datetime.now(UTC),
        }
        return message_id, usage_id

    async def rewrite_turn_usage(
        self,
        *,
        tenant_id: int,
        message_id: int,
        token_usage_id: int,
        answer_payload: dict[str, Any],
        usage: TokenUsage,
    ) -> None:
        self.token_usage[token_usage_id].update(
            prompt_tokens=usage.input_tokens,
            completion_tokens=usage.output_tokens,
            total_tokens=usage.total_tokens,
        )
        for message in self.messages:
            if message["id"] == message_id and message["tenant_id"] == tenant_id:
                message["answer_payload"] = answer_payload

    async def insert_query_log(self, **kwargs: Any) -> int:
        log_id = self._next_id()
        self.query_logs.append({"id": log_id, **kwargs})
        return log_id

    async def insert_query_sources(
        self, *, tenant_id: int, query_log_id: int, sources: list[dict[str, Any]]
    ) -> None:
        for source in sources:
            self.query_sources.append(
                {"tenant_id": tenant_id, "query_log_id": query_log_id, **source}
            )

    async def usage_summary(self, *, tenant_id: int, user_id: int, days: int = 30) -> dict[str, Any]:
        total = sum(
            row["total_tokens"]
            for row in self.token_usage.values()
            if row["tenant_id"] == tenant_id and row["user_id"] == user_id
        )
        return {
            "lifetime_total": total,
            "month_total": total,
            "week_total": total,
            "daily": [{"date": datetime.now(UTC).date().isoformat(), "total_tokens": total}]
            if total
            else [],
        }

    async def recent_sql_queries(
        self, *, conversation_id: int, tenant_id: int, limit: int = 10
    ) -> list[dict[str, Any]]:
        rows = [
            q
            for q in self.sql_queries
            if q["conversation_id"] == conversation_id and q["tenant_id"] == tenant_id
        ]
        return list(reversed(rows))[:limit]

    async def recent_token_usage(
        self, *, conversation_id: int, tenant_id: int, limit: int = 10
    ) -> list[dict[str, Any]]:
        rows = [
            row
            for row in self.token_usage.values()
            if row["conversation_id"] == conversation_id and row["tenant_id"] == tenant_id
        ]
        return list(reversed(rows))[:limit]

    async def message_in_conversation(
        self, *, message_id: int, conversation_id: int, tenant_id: int
    ) -> bool:
        return any(
            m["id"] == message_id
            and m["conversation_id"] == conversation_id
            and m["tenant_id"] == tenant_id
            for m in self.messages
        )

    def seed_conversation(
        self,
        *,
        tenant_id: int,
        user_id: int,
        title: str = "Seeded",
        messages: tuple[tuple[str, str], ...] = (),
    ) -> int:
        """Synchronous setup helper for tests that cannot await."""
        conversation_id = self._next_id()
        now = datetime.now(UTC)
        self.conversations[conversation_id] = {
            "id": conversation_id,
            "tenant_id": tenant_id,
            "user_id": user_id,
            "title": title,
            "status": "active",
            "conversation_summary": None,
            "created_at": now,
            "updated_at": now,
        }
        for role, content in messages:
            self.messages.append(
                {
                    "id": self._next_id(),
                    "tenant_id": tenant_id,
                    "conversation_id": conversation_id,
                    "role": role,
                    "content": content,
                    "answer_payload": {"version": "v1"} if role == "assistant" else None,
                    "created_at": now,
                }
            )
        return conversation_id

    def messages_for(self, conversation_id: int) -> list[dict[str, Any]]:
        return [m for m in self.messages if m["conversation_id"] == conversation_id]


@pytest.fixture
def fake_store() -> FakeCoreStore:
    return FakeCoreStore()


# ============================================================================
# Mock Database Connectors
# ============================================================================


@pytest.fixture
def orders_schema() -> list[TableInfo]:
    return [
        TableInfo(
            schema="public",
            table_name="orders",
            columns=[
                ColumnInfo(name="id", data_type="integer", is_primary_key=True),
                ColumnInfo(name="store_id", data_type="integer"),
                ColumnInfo(name="basket_size", data_type="numeric"),
                ColumnInfo(name="created_at", data_type="timestamp"),
            ],
            table_type="BASE TABLE",
        ),
        TableInfo(
            schema="public",
            table_name="secrets",
            columns=[ColumnInfo(name="value", data_type="text")],
            table_type="BASE TABLE",
        ),
    ]


@pytest.fixture
def mock_postgres_connector(orders_schema):
    """
    Mock tenant data connector.

    Usage:
        mock_postgres_connector.execute.return_value = QueryResult(...)
    """
    connector = AsyncMock()
    connector.connect = AsyncMock()
    connector.close = AsyncMock()
    connector.execute = AsyncMock(
        return_value=QueryResult(
            rows=[{"avg_basket_size": 3.4}],
            row_count=1,
            columns=["avg_basket_size"],
            execution_time_ms=4.2,
        )
    )
    connector.get_schema = AsyncMock(return_value=orders_schema)
    return connector


@pytest.fixture
def tenant_registry(mock_postgres_connector):
    from askdata.database.registry import TenantPoolRegistry

    return TenantPoolRegistry(connector_factory=lambda tenant: mock_postgres_connector)
