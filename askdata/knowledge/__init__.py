"""Knowledge-base retrieval."""

from askdata.knowledge.vectors import (
    RetrievedDocument,
    VectorStore,
    VectorStoreError,
    VectorStoreRegistry,
)

__all__ = ["RetrievedDocument", "VectorStore", "VectorStoreError", "VectorStoreRegistry"]
