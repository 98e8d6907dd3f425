"""Conversation and turn persistence."""

from askdata.conversations.store import CoreStore, create_core_pool, normalize_postgres_url

__all__ = ["CoreStore", "create_core_pool", "normalize_postgres_url"]
