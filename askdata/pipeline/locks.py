"""Per-conversation turn locks."""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Literal

from askdata.models.errors import ConversationBusyError

logger = logging.getLogger(__name__)

BusyPolicy = Literal["reject", "serialize"]


class ConversationLocks:
    """
    One asyncio.Lock per (tenant_id, conversation_id).

    With policy "reject" a second concurrent turn fails fast with
    CONVERSATION_BUSY; with "serialize" it waits its turn. Idle locks are
    dropped once nobody holds or waits on them.
    """

    def __init__(self, policy: BusyPolicy = "reject") -> None:
        self.policy = policy
        self._locks: dict[tuple[int, int], asyncio.Lock] = {}
        self._waiters: dict[tuple[int, int], int] = {}

    def is_busy(self, tenant_id: int, conversation_id: int) -> bool:
        lock = self._locks.get((tenant_id, conversation_id))
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, tenant_id: int, conversation_id: int) -> AsyncIterator[None]:
        key = (tenant_id, conversation_id)
        lock = self._locks.setdefault(key, asyncio.Lock())

        if lock.locked() and self.policy == "reject":
            logger.warning(
                "Conversation busy, rejecting turn",
                extra={"tenant_id": tenant_id, "conversation_id": conversation_id},
            )
            raise ConversationBusyError(conversation_id)

        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                if not lock.locked():
                    self._locks.pop(key, None)

    def __len__(self) -> int:
        return len(self._locks)
