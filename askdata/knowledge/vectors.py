"""
Vector Store

Chroma-based knowledge-base search with an async interface. Each tenant owns
one collection; handles are long-lived and shared through VectorStoreRegistry.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import chromadb
from chromadb.config import Settings
from chromadb.utils.embedding_functions import OpenAIEmbeddingFunction

logger = logging.getLogger(__name__)


class VectorStoreError(Exception):
    """Raised when vector store operations fail."""

    pass


@dataclass
class RetrievedDocument:
    """One similarity-search hit."""

    page_content: str
    metadata: dict[str, Any] = field(default_factory=dict)
    score: float | None = None


class VectorStore:
    """
    Knowledge-base collection for one tenant.

    Usage:
        store = VectorStore("tenant_acme", persist_directory="./chroma_data", ...)
        await store.initialize()
        docs = await store.similarity_search("basket size definition", k=5)
    """

    def __init__(
        self,
        collection_name: str,
        persist_directory: str | Path,
        embedding_model: str,
        openai_api_key: str | None,
        client: Any = None,
    ):
        self.collection_name = collection_name
        self.persist_directory = Path(persist_directory)
        self.embedding_model = embedding_model
        self.openai_api_key = openai_api_key

        self.client = client
        self.collection: chromadb.Collection | None = None

    async def initialize(self) -> None:
        """
        Initialize the Chroma client and collection.

        Raises:
            VectorStoreError: If initialization fails
        """
        try:
            await asyncio.to_thread(self._init_client)
            logger.info(f"VectorStore ready: collection={self.collection_name}")
        except Exception as e:
            logger.error(f"Failed to initialize VectorStore: {e}")
            raise VectorStoreError(f"Initialization failed: {e}") from e

    def _init_client(self) -> None:
        if self.client is None:
            self.persist_directory.mkdir(parents=True, exist_ok=True)
            self.client = chromadb.PersistentClient(
                path=str(self.persist_directory),
                settings=Settings(anonymized_telemetry=False),
            )

        embedding_function = OpenAIEmbeddingFunction(
            api_key=self.openai_api_key,
            model_name=self.embedding_model,
        )

        self.collection = self.client.get_or_create_collection(
            name=self.collection_name,
            metadata={"hnsw:space": "cosine"},
            embedding_function=embedding_function,
        )

    async def similarity_search(self, query: str, k: int = 5) -> list[RetrievedDocument]:
        """
        Return the k passages closest to the query.

        Score is 1 - cosine distance, so higher is closer.

        Raises:
            VectorStoreError: If search fails
        """
        if not self.collection:
            raise VectorStoreError("VectorStore not initialized. Call initialize() first.")

        try:
            results = await asyncio.to_thread(
                self.collection.query,
                query_texts=[query],
                n_results=k,
            )
        except Exception as e:
            logger.error(f"Search failed: {e}")
            raise VectorStoreError(f"Search failed: {e}") from e

        documents: list[RetrievedDocument] = []
        if results.get("ids") and results["ids"][0]:
            docs = (results.get("documents") or [[]])[0]
            metadatas = (results.get("metadatas") or [[]])[0]
            distances = (results.get("distances") or [[]])[0]
            for i in range(len(results["ids"][0])):
                distance = distances[i] if i < len(distances) else None
                documents.append(
                    RetrievedDocument(
                        page_content=(docs[i] if i < len(docs) else "") or "",
                        metadata=dict((metadatas[i] if i < len(metadatas) else None) or {}),
                        score=1.0 - distance if distance is not None else None,
                    )
                )

        logger.debug(f"Search in '{self.collection_name}' returned {len(documents)} results")
        return documents


class VectorStoreRegistry:
    """Long-lived VectorStore handles keyed by collection name."""

    def __init__(
        self,
        persist_directory: str | Path,
        embedding_model: str,
        openai_api_key: str | None,
    ) -> None:
        self.persist_directory = Path(persist_directory)
        self.embedding_model = embedding_model
        self.openai_api_key = openai_api_key
        self._client: Any = None
        self._stores: dict[str, VectorStore] = {}
        self._lock = asyncio.Lock()

    async def get(self, collection_name: str | None) -> VectorStore:
        """
        Raises:
            VectorStoreError: If the tenant has no collection or it cannot be opened
        """
        if not collection_name:
            raise VectorStoreError("Tenant has no knowledge-base collection configured")

        store = self._stores.get(collection_name)
        if store is not None:
            return store

        async with self._lock:
            store = self._stores.get(collection_name)
            if store is None:
                store = VectorStore(
                    collection_name=collection_name,
                    persist_directory=self.persist_directory,
                    embedding_model=self.embedding_model,
                    openai_api_key=self.openai_api_key,
                    client=self._client,
                )
                await store.initialize()
                self._client = store.client
                self._stores[collection_name] = store
        return store

    async def similarity_search(
        self, collection_name: str | None, query: str, k: int = 5
    ) -> list[RetrievedDocument]:
        store = await self.get(collection_name)
        return await store.similarity_search(query, k=k)
