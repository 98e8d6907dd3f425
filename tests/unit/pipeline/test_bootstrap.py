"""
Unit tests for ConversationBootstrap and ConversationLocks.
"""

import asyncio

import pytest

from askdata.models.errors import ConversationBusyError, ConversationNotFoundError
from askdata.pipeline.bootstrap import DEFAULT_TITLE, ConversationBootstrap, derive_title
from askdata.pipeline.locks import ConversationLocks


class TestDeriveTitle:
    def test_short_question_is_title(self):
        assert derive_title("  Average basket size?  ") == "Average basket size?"

    def test_long_question_is_truncated(self):
        title = derive_title("x" * 200)
        assert len(title) == 80
        assert title.endswith("...")

    def test_blank_question_gets_default(self):
        assert derive_title("   ") == DEFAULT_TITLE


class TestConversationBootstrap:
    """Test suite for ConversationBootstrap."""

    @pytest.fixture
    def bootstrap(self, fake_store):
        return ConversationBootstrap(fake_store)

    @pytest.mark.asyncio
    async def test_creates_conversation_when_absent(self, bootstrap, fake_store, user):
        conversation_id = await bootstrap.ensure_conversation(
            user=user, conversation_id=None, question="What is the average basket size?"
        )

        conversation = fake_store.conversations[conversation_id]
        assert conversation["tenant_id"] == user.tenant_id
        assert conversation["user_id"] == user.user_id
        assert conversation["title"] == "What is the average basket size?"

    @pytest.mark.asyncio
    async def test_accepts_owned_conversation(self, bootstrap, fake_store, user):
        existing = await fake_store.create_conversation(
            tenant_id=user.tenant_id, user_id=user.user_id, title="t"
        )

        assert await bootstrap.ensure_conversation(
            user=user, conversation_id=existing, question="q"
        ) == existing

    @pytest.mark.asyncio
    async def test_other_users_conversation_is_not_found(self, bootstrap, fake_store, user):
        foreign = await fake_store.create_conversation(
            tenant_id=user.tenant_id, user_id=user.user_id + 1, title="t"
        )

        with pytest.raises(ConversationNotFoundError) as exc_info:
            await bootstrap.ensure_conversation(user=user, conversation_id=foreign, question="q")

        payload = exc_info.value.to_payload()
        assert payload["status"] == 404
        assert payload["code"] == "CONVERSATION_NOT_FOUND"
        assert payload["conversationId"] == foreign
        assert fake_store.messages == []

    @pytest.mark.asyncio
    async def test_other_tenants_conversation_is_not_found(self, bootstrap, fake_store, user):
        foreign = await fake_store.create_conversation(
            tenant_id=user.tenant_id + 1, user_id=user.user_id, title="t"
        )
        with pytest.raises(ConversationNotFoundError):
            await bootstrap.ensure_conversation(user=user, conversation_id=foreign, question="q")

    @pytest.mark.asyncio
    async def test_record_question_stores_trimmed_user_message(self, bootstrap, fake_store, user):
        conversation_id = await bootstrap.ensure_conversation(
            user=user, conversation_id=None, question="q"
        )

        message_id = await bootstrap.record_question(
            user=user, conversation_id=conversation_id, question="  How many orders?  "
        )

        [message] = fake_store.messages_for(conversation_id)
        assert message["id"] == message_id
        assert message["role"] == "user"
        assert message["content"] == "How many orders?"
        assert message["answer_payload"] is None


class TestConversationLocks:
    """Test suite for ConversationLocks."""

    @pytest.mark.asyncio
    async def test_reject_policy_fails_second_turn(self):
        locks = ConversationLocks("reject")

        async with locks.hold(3, 10):
            assert locks.is_busy(3, 10)
            with pytest.raises(ConversationBusyError) as exc_info:
                async with locks.hold(3, 10):
                    pass

        assert exc_info.value.http_status == 409
        assert exc_info.value.code == "CONVERSATION_BUSY"
        assert not locks.is_busy(3, 10)
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_different_conversations_do_not_block(self):
        locks = ConversationLocks("reject")

        async with locks.hold(3, 10):
            async with locks.hold(3, 11):
                assert locks.is_busy(3, 10)
                assert locks.is_busy(3, 11)

    @pytest.mark.asyncio
    async def test_serialize_policy_waits(self):
        locks = ConversationLocks("serialize")
        order = []

        async def turn(name, delay):
            async with locks.hold(3, 10):
                order.append(f"{name}-start")
                await asyncio.sleep(delay)
                order.append(f"{name}-end")

        first = asyncio.create_task(turn("a", 0.02))
        await asyncio.sleep(0)
        second = asyncio.create_task(turn("b", 0))
        await asyncio.gather(first, second)

        assert order == ["a-start", "a-end", "b-start", "b-end"]
        assert len(locks) == 0
