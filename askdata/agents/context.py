"""
Context Builder

Assembles the prompt context the SQL translator sees besides the schema:

1. The last Q/A pairs of the conversation
2. The user's long-term memory
3. The rolling conversation summary
4. Knowledge-base passages (RAG), only when requested

Each block is fetched independently and a failure in one never aborts the
turn. RAG failures are additionally reported back so the answer payload can
say retrieval was attempted and why it produced nothing.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from askdata.knowledge.vectors import RetrievedDocument, VectorStoreRegistry
from askdata.models.tenant import TenantContext, UserContext

logger = logging.getLogger(__name__)

RECENT_QA_HEADING = "Most recent questions and answers (before the current question):\n"
USER_MEMORY_HEADING = "User long-term memory / preferences:\n"
SUMMARY_HEADING = "Conversation summary so far:\n"
RAG_HEADING = "Knowledge base sources:\n"
BLOCK_SEPARATOR = "\n\n---\n\n"
EMPTY_CONTEXT = "(No additional RAG or memory context available.)"


@dataclass
class ContextBundle:
    """Everything the context step produced for one turn."""

    recent_qa: str = ""
    user_memory: str = ""
    conversation_summary: str = ""
    rag_text: str = ""
    retrieved_docs: list[RetrievedDocument] = field(default_factory=list)
    rag_requested: bool = False
    rag_error: str | None = None
    combined: str = EMPTY_CONTEXT

    @property
    def rag_used(self) -> bool:
        return self.rag_requested and len(self.retrieved_docs) > 0


def extract_last_qa_pairs(
    messages: list[dict[str, Any]], max_pairs: int = 2
) -> list[tuple[str, str]]:
    """
    Pair user questions with the assistant answer that follows them.

    A user message opens a pair and the next assistant message closes it.
    A question with no answer is dropped when the next question arrives.
    Only the last max_pairs complete pairs survive.
    """
    pairs: list[tuple[str, str]] = []
    pending_question: str | None = None

    for message in messages:
        role = message.get("role")
        content = (message.get("content") or "").strip()
        if role == "user":
            pending_question = content
        elif role == "assistant" and pending_question is not None:
            pairs.append((pending_question, content))
            pending_question = None
            if len(pairs) > max_pairs:
                pairs.pop(0)

    return pairs


def format_qa_pairs(pairs: list[tuple[str, str]]) -> str:
    return "\n\n".join(
        f"Q{i}: {question}\nA{i}: {answer}" for i, (question, answer) in enumerate(pairs, start=1)
    )


def describe_source(doc: RetrievedDocument, rank: int) -> str:
    """Header line for one retrieved passage: Source #n [type · title · ...]."""
    meta = doc.metadata or {}
    parts: list[str] = []
    if meta.get("type"):
        parts.append(str(meta["type"]))
    title = meta.get("title") or meta.get("table_name") or meta.get("filename")
    if title:
        parts.append(str(title))
    if meta.get("table_name"):
        parts.append(f"table: {meta['table_name']}")
    if meta.get("column_name"):
        parts.append(f"column: {meta['column_name']}")
    if meta.get("filename"):
        parts.append(f"file: {meta['filename']}")
    if meta.get("page") is not None:
        parts.append(f"page: {meta['page']}")

    header = f"Source #{rank}"
    if parts:
        header += f" [{' · '.join(parts)}]"
    return header


def format_rag_sources(docs: list[RetrievedDocument]) -> str:
    return "\n\n".join(
        f"{describe_source(doc, rank)}\n{doc.page_content}" for rank, doc in enumerate(docs, start=1)
    )


def combine_context(
    *, recent_qa: str = "", user_memory: str = "", summary: str = "", rag_text: str = ""
) -> str:
    blocks = []
    if recent_qa.strip():
        blocks.append(RECENT_QA_HEADING + recent_qa.strip())
    if user_memory.strip():
        blocks.append(USER_MEMORY_HEADING + user_memory.strip())
    if summary.strip():
        blocks.append(SUMMARY_HEADING + summary.strip())
    if rag_text.strip():
        blocks.append(RAG_HEADING + rag_text.strip())
    return BLOCK_SEPARATOR.join(blocks) if blocks else EMPTY_CONTEXT


class ContextBuilder:
    """
    Build the combined context block for the SQL translator.

    Args:
        store: Core store (list_messages, get_user_memory, get_conversation_summary)
        vectors: Vector store registry, or None when RAG is not configured
        top_k: Number of passages to retrieve
        max_pairs: Number of recent Q/A pairs to keep
    """

    def __init__(
        self,
        store: Any,
        vectors: VectorStoreRegistry | None = None,
        top_k: int = 5,
        max_pairs: int = 2,
    ) -> None:
        self.store = store
        self.vectors = vectors
        self.top_k = top_k
        self.max_pairs = max_pairs

    async def build(
        self,
        *,
        user: UserContext,
        tenant: TenantContext,
        conversation_id: int,
        question: str,
        use_rag: bool,
        current_message_id: int | None = None,
    ) -> ContextBundle:
        bundle = ContextBundle(rag_requested=use_rag)

        bundle.recent_qa = await self._recent_qa(
            conversation_id=conversation_id,
            tenant_id=tenant.id,
            current_message_id=current_message_id,
        )
        bundle.user_memory = await self._user_memory(user)
        bundle.conversation_summary = await self._conversation_summary(conversation_id, tenant.id)

        if use_rag:
            bundle.retrieved_docs, bundle.rag_error = await self._retrieve(tenant, question)
            bundle.rag_text = format_rag_sources(bundle.retrieved_docs)

        bundle.combined = combine_context(
            recent_qa=bundle.recent_qa,
            user_memory=bundle.user_memory,
            summary=bundle.conversation_summary,
            rag_text=bundle.rag_text,
        )

        logger.info(
            "Context built",
            extra={
                "conversation_id": conversation_id,
                "has_recent_qa": bool(bundle.recent_qa),
                "has_memory": bool(bundle.user_memory),
                "has_summary": bool(bundle.conversation_summary),
                "rag_requested": use_rag,
                "rag_docs": len(bundle.retrieved_docs),
            },
        )
        return bundle

    async def _recent_qa(
        self, *, conversation_id: int, tenant_id: int, current_message_id: int | None
    ) -> str:
        try:
            messages = await self.store.list_messages(
                conversation_id=conversation_id, tenant_id=tenant_id
            )
        except Exception as e:
            logger.warning(f"Failed to load recent Q/A context: {e}")
            return ""

        # Drop the question this turn just stored.
        if current_message_id is not None:
            messages = [m for m in messages if m.get("id") != current_message_id]
        elif messages:
            messages = messages[:-1]

        return format_qa_pairs(extract_last_qa_pairs(messages, self.max_pairs))

    async def _user_memory(self, user: UserContext) -> str:
        try:
            return await self.store.get_user_memory(user_id=user.user_id, tenant_id=user.tenant_id)
        except Exception as e:
            logger.warning(f"Failed to load user long-term memory: {e}")
            return ""

    async def _conversation_summary(self, conversation_id: int, tenant_id: int) -> str:
        try:
            return await self.store.get_conversation_summary(
                conversation_id=conversation_id, tenant_id=tenant_id
            )
        except Exception as e:
            logger.warning(f"Failed to load conversation summary: {e}")
            return ""

    async def _retrieve(
        self, tenant: TenantContext, question: str
    ) -> tuple[list[RetrievedDocument], str | None]:
        if self.vectors is None:
            return [], "Knowledge base is not configured"
        try:
            docs = await self.vectors.similarity_search(
                tenant.vector_collection, question, k=self.top_k
            )
            return docs, None
        except Exception as e:
            logger.error(
                f"RAG retrieval failed: {e}",
                extra={"tenant_id": tenant.id, "collection": tenant.vector_collection},
            )
            return [], str(e) or e.__class__.__name__
