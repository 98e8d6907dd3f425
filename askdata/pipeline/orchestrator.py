"""
AskData Turn Orchestrator

LangGraph state machine that answers one question in one conversation:

    classify -> non_data -> END
    classify -> context -> translate -> execute -> sql_error -> END
    execute (ok) -> summarize -> chart -> assemble -> END

The user's question is stored before the graph starts, so a later failure
never drops it. Progress and the terminal event go out through the turn's
SSEStream. Telemetry runs after the answer is committed, as independent
best-effort hooks.
"""

import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any, TypedDict

from langgraph.graph import END, StateGraph
from pydantic import ValidationError

from askdata.agents.chart import ChartBuilder
from askdata.agents.classifier import RequestClassifier
from askdata.agents.context import ContextBuilder, ContextBundle
from askdata.agents.executor import ExecutionResult, ScopedSQLExecutor
from askdata.agents.non_data import NonDataResponder
from askdata.agents.response_synthesis import AnswerSummarizer
from askdata.agents.sql import SQLTranslator
from askdata.agents.summary import ConversationSummaryMaintainer
from askdata.api.sse import SSEStream
from askdata.config import ChatSettings
from askdata.database.schema import SchemaDescriber
from askdata.llm.base import BaseLLMProvider
from askdata.models.chat import AnswerPayload, AskRequest, ChartSpec, StoredMessage, TokenUsage
from askdata.models.errors import AskError, InvalidRequestError
from askdata.models.tenant import RequestContext, TenantContext, UserContext
from askdata.pipeline.answer import (
    build_answer_payload,
    build_downloads,
    build_non_data_payload,
    build_rag_meta,
    build_table,
    query_source_rows,
    truncate_answer,
)
from askdata.pipeline.bootstrap import ConversationBootstrap
from askdata.pipeline.locks import ConversationLocks
from askdata.prompts.loader import PromptLoader

logger = logging.getLogger(__name__)

INTERNAL_ERROR_MESSAGE = "Internal server error"

PostCommitHook = Callable[["TurnState"], Awaitable[None]]


# ============================================================================
# Turn State
# ============================================================================


class TurnState(TypedDict, total=False):
    """Everything one turn carries between graph nodes."""

    # Input
    stream: SSEStream
    user: UserContext
    tenant: TenantContext
    conversation_id: int
    user_message_id: int
    question: str
    use_rag: bool
    started_at: float

    # Progress
    stage: str
    usage: TokenUsage
    is_data_request: bool

    # Data path
    context: ContextBundle
    sql: str
    execution: ExecutionResult
    answer_text: str
    chart: ChartSpec | None

    # Output
    payload: AnswerPayload
    assistant_message_id: int
    token_usage_id: int
    messages: list[dict[str, Any]]


# ============================================================================
# Pipeline
# ============================================================================


class AskPipeline:
    """
    Orchestrates a chat turn from request body to terminal SSE event.

    Usage:
        pipeline = AskPipeline(store=store, resolver=resolver, ...)
        stream = SSEStream()
        await pipeline.handle_ask(token, body, stream)
    """

    def __init__(
        self,
        *,
        store: Any,
        resolver: Any,
        registry: Any,
        schema: SchemaDescriber,
        llm_provider: BaseLLMProvider,
        vectors: Any = None,
        chat_settings: ChatSettings | None = None,
        top_k: int = 5,
        prompts: PromptLoader | None = None,
        locks: ConversationLocks | None = None,
    ) -> None:
        self.store = store
        self.resolver = resolver
        self.schema = schema
        self.llm = llm_provider
        self.settings = chat_settings or ChatSettings()
        self.model_name = getattr(llm_provider, "model", "unknown")
        self.locks = locks or ConversationLocks(self.settings.conversation_busy_policy)

        prompts = prompts or PromptLoader()
        self.bootstrap = ConversationBootstrap(store)
        self.classifier = RequestClassifier(llm_provider, prompts)
        self.context_builder = ContextBuilder(
            store, vectors, top_k=top_k, max_pairs=self.settings.recent_message_pairs
        )
        self.translator = SQLTranslator(llm_provider, prompts)
        self.executor = ScopedSQLExecutor(registry, store)
        self.summarizer = AnswerSummarizer(
            llm_provider, prompts, sample_rows=self.settings.summary_sample_rows
        )
        self.chart_builder = ChartBuilder(
            llm_provider,
            prompts,
            sample_rows=self.settings.chart_sample_rows,
            max_points=self.settings.chart_max_points,
        )
        self.summary_maintainer = ConversationSummaryMaintainer(
            store,
            llm_provider,
            prompts,
            min_messages=self.settings.min_messages_for_summary,
            interval=self.settings.summary_message_interval,
        )
        self.non_data = NonDataResponder(llm_provider, prompts)

        self.post_commit_hooks: list[PostCommitHook] = [self._log_query]

        self.graph = self._build_graph()
        logger.info("AskPipeline initialized")

    def _build_graph(self) -> StateGraph:
        workflow = StateGraph(TurnState)

        workflow.add_node("classify", self._run_classifier)
        workflow.add_node("non_data", self._run_non_data)
        workflow.add_node("context", self._run_context)
        workflow.add_node("translate", self._run_translator)
        workflow.add_node("execute", self._run_executor)
        workflow.add_node("sql_error", self._handle_sql_error)
        workflow.add_node("summarize", self._run_summarizer)
        workflow.add_node("chart", self._run_chart)
        workflow.add_node("assemble", self._run_assembler)

        workflow.set_entry_point("classify")

        workflow.add_conditional_edges(
            "classify",
            self._route_after_classification,
            {
                "data": "context",
                "non_data": "non_data",
            },
        )
        workflow.add_edge("context", "translate")
        workflow.add_edge("translate", "execute")
        workflow.add_conditional_edges(
            "execute",
            self._route_after_execution,
            {
                "ok": "summarize",
                "sql_error": "sql_error",
            },
        )
        workflow.add_edge("summarize", "chart")
        workflow.add_edge("chart", "assemble")
        workflow.add_edge("assemble", END)
        workflow.add_edge("non_data", END)
        workflow.add_edge("sql_error", END)

        return workflow.compile()

    # ========================================================================
    # Entry Point
    # ========================================================================

    async def handle_ask(self, token: str | None, body: Any, stream: SSEStream) -> None:
        """
        Run one turn and always leave the stream closed with exactly one
        terminal event.
        """
        try:
            await self._handle(token, body, stream)
        except AskError as e:
            logger.warning(f"Turn failed: {e.code} {e.message}")
            if not stream.closed:
                stream.close_with("error", e.to_payload(), e.http_status)
        except Exception as e:
            logger.exception(f"Unexpected error in ask pipeline: {e}")
            if not stream.closed:
                stream.stream_error(500, "INTERNAL_SERVER_ERROR", INTERNAL_ERROR_MESSAGE)

    async def _handle(self, token: str | None, body: Any, stream: SSEStream) -> None:
        request_context: RequestContext = await self.resolver.resolve(token)
        user, tenant = request_context.user, request_context.tenant

        request = self._parse_request(body)
        question = request.question.strip()

        stream.emit_status("Checking your conversation…", 2)
        conversation_id = await self.bootstrap.ensure_conversation(
            user=user, conversation_id=request.conversation_id, question=question
        )

        async with self.locks.hold(tenant.id, conversation_id):
            user_message_id = await self.bootstrap.record_question(
                user=user, conversation_id=conversation_id, question=question
            )
            stream.emit_status("Understanding your question…", 5)

            logger.info(
                "Turn started",
                extra={
                    "tenant_id": tenant.id,
                    "user_id": user.user_id,
                    "conversation_id": conversation_id,
                    "use_rag": request.use_rag,
                },
            )

            initial_state: TurnState = {
                "stream": stream,
                "user": user,
                "tenant": tenant,
                "conversation_id": conversation_id,
                "user_message_id": user_message_id,
                "question": question,
                "use_rag": request.use_rag,
                "started_at": time.perf_counter(),
                "stage": "start",
                "usage": TokenUsage(),
            }
            final_state = await self.graph.ainvoke(initial_state)

        logger.info(
            "Turn finished",
            extra={
                "conversation_id": conversation_id,
                "stage": final_state.get("stage"),
                "total_tokens": final_state["usage"].total_tokens,
                "duration_ms": int((time.perf_counter() - final_state["started_at"]) * 1000),
            },
        )

        if final_state.get("stage") == "done":
            await self._run_post_commit_hooks(final_state)

    @staticmethod
    def _parse_request(body: Any) -> AskRequest:
        if isinstance(body, AskRequest):
            return body
        if not isinstance(body, dict):
            raise InvalidRequestError("Request body must be a JSON object")
        try:
            return AskRequest.model_validate(body)
        except ValidationError as e:
            if any(error.get("loc", ())[:1] == ("question",) for error in e.errors()):
                raise InvalidRequestError("Question is required") from e
            raise InvalidRequestError("Invalid request body") from e

    # ========================================================================
    # Graph Nodes
    # ========================================================================

    async def _run_classifier(self, state: TurnState) -> TurnState:
        stream = state["stream"]
        stream.emit_status("Classifying your question…", 10)

        result = await self.classifier.execute(state["question"])
        state["usage"] = state["usage"] + result.usage
        state["is_data_request"] = result.is_data_request
        state["stage"] = "classified"

        if result.is_data_request:
            stream.emit_status("Preparing to query your data…", 15)
        else:
            stream.emit_status("Preparing response…", 20)
        return state

    async def _run_non_data(self, state: TurnState) -> TurnState:
        stream = state["stream"]
        stream.emit_status("Drafting response…", 60)

        reply = await self.non_data.execute(state["question"])
        usage = state["usage"] + reply.usage
        payload = build_non_data_payload(
            answer_text=reply.answer_text, model=self.model_name, usage=usage
        )

        stream.emit_status("Finalizing response…", 90)
        message_id, token_usage_id = await self.store.persist_assistant_turn(
            tenant_id=state["tenant"].id,
            user_id=state["user"].user_id,
            conversation_id=state["conversation_id"],
            answer_text=reply.answer_text,
            answer_payload=payload.to_wire(),
            model=self.model_name,
            usage=usage,
        )

        state.update(
            usage=usage,
            answer_text=reply.answer_text,
            payload=payload,
            assistant_message_id=message_id,
            token_usage_id=token_usage_id,
            stage="non_data",
        )
        await self._finish(state)
        return state

    async def _run_context(self, state: TurnState) -> TurnState:
        state["stream"].emit_status(
            "Searching knowledge base…" if state["use_rag"] else "Gathering conversation context…",
            25,
        )
        state["context"] = await self.context_builder.build(
            user=state["user"],
            tenant=state["tenant"],
            conversation_id=state["conversation_id"],
            question=state["question"],
            use_rag=state["use_rag"],
            current_message_id=state["user_message_id"],
        )
        state["stage"] = "context_built"
        return state

    async def _run_translator(self, state: TurnState) -> TurnState:
        state["stream"].emit_status("Writing SQL for your question…", 40)
        schema_text = await self.schema.get_schema(state["tenant"])
        result = await self.translator.execute(
            question=state["question"],
            schema=schema_text,
            context=state["context"].combined,
            max_rows=self.settings.max_table_rows,
        )
        state["usage"] = state["usage"] + result.usage
        state["sql"] = result.sql
        state["stage"] = "translated"
        return state

    async def _run_executor(self, state: TurnState) -> TurnState:
        state["stream"].emit_status("Running query…", 55)
        state["execution"] = await self.executor.execute(
            sql=state["sql"],
            user=state["user"],
            tenant=state["tenant"],
            conversation_id=state["conversation_id"],
            message_id=state["user_message_id"],
        )
        state["stage"] = "executed" if state["execution"].ok else "sql_error"
        return state

    async def _handle_sql_error(self, state: TurnState) -> TurnState:
        """Terminal for this attempt. The SqlQueryRecord is already stored."""
        execution = state["execution"]
        context = state["context"]
        extra: dict[str, Any] = {
            "sql": execution.sql,
            "conversationId": state["conversation_id"],
            "rag": build_rag_meta(
                context.rag_requested,
                context.retrieved_docs,
                context.rag_error,
                self.settings.rag_snippet_chars,
            ).to_wire(),
        }
        if execution.guard_code:
            extra["guardCode"] = execution.guard_code

        logger.warning(
            "Turn ended with SQL error",
            extra={"conversation_id": state["conversation_id"], "guard_code": execution.guard_code},
        )
        state["stream"].stream_error(
            400,
            "SQL_EXECUTION_ERROR",
            execution.error or "SQL execution failed",
            extra,
        )
        state["stage"] = "sql_error"
        return state

    async def _run_summarizer(self, state: TurnState) -> TurnState:
        state["stream"].emit_status("Summarizing results…", 70)
        execution = state["execution"]
        summary = await self.summarizer.execute(
            question=state["question"],
            sql=execution.sql,
            columns=execution.columns,
            rows=execution.rows,
        )
        state["usage"] = state["usage"] + summary.usage
        state["answer_text"] = summary.answer_text
        state["stage"] = "summarized"
        return state

    async def _run_chart(self, state: TurnState) -> TurnState:
        state["stream"].emit_status("Looking for a chart…", 82)
        execution = state["execution"]
        result = await self.chart_builder.execute(
            question=state["question"], columns=execution.columns, rows=execution.rows
        )
        state["usage"] = state["usage"] + result.usage
        state["chart"] = result.chart
        state["stage"] = "charted"
        return state

    async def _run_assembler(self, state: TurnState) -> TurnState:
        stream = state["stream"]
        stream.emit_status("Finalizing answer…", 90)

        execution = state["execution"]
        context = state["context"]
        payload = build_answer_payload(
            answer_text=state["answer_text"],
            table=build_table(execution.columns, execution.rows, self.settings.max_table_rows),
            downloads=build_downloads(
                execution.columns,
                execution.rows,
                state["conversation_id"],
                self.settings.csv_export_row_threshold,
            ),
            chart=state.get("chart"),
            sql=execution.sql,
            sql_query_id=execution.sql_query_id,
            model=self.model_name,
            usage=state["usage"],
            rag=build_rag_meta(
                context.rag_requested,
                context.retrieved_docs,
                context.rag_error,
                self.settings.rag_snippet_chars,
            ),
        )

        message_id, token_usage_id = await self.store.persist_assistant_turn(
            tenant_id=state["tenant"].id,
            user_id=state["user"].user_id,
            conversation_id=state["conversation_id"],
            answer_text=payload.answer_text,
            answer_payload=payload.to_wire(),
            model=self.model_name,
            usage=state["usage"],
        )
        state.update(
            payload=payload,
            assistant_message_id=message_id,
            token_usage_id=token_usage_id,
        )

        # The transcript now includes this turn's answer.
        refresh = await self.summary_maintainer.execute(
            conversation_id=state["conversation_id"], tenant_id=state["tenant"].id
        )
        if not refresh.usage.is_empty:
            usage = state["usage"] + refresh.usage
            refreshed_payload = payload.with_tokens(self.model_name, usage)
            try:
                await self.store.rewrite_turn_usage(
                    tenant_id=state["tenant"].id,
                    message_id=message_id,
                    token_usage_id=token_usage_id,
                    answer_payload=refreshed_payload.to_wire(),
                    usage=usage,
                )
            except Exception as e:
                # The committed answer stands with the usage it was stored with.
                logger.error(f"Usage rewrite failed for message {message_id}: {e}")
            else:
                state.update(usage=usage, payload=refreshed_payload)

        await self._finish(state)
        state["stage"] = "done"
        return state

    async def _finish(self, state: TurnState) -> None:
        messages = await self.store.list_messages(
            conversation_id=state["conversation_id"], tenant_id=state["tenant"].id
        )
        state["messages"] = messages

        stream = state["stream"]
        stream.emit_status("Done.", 100)
        stream.close_with(
            "final",
            {
                "conversationId": state["conversation_id"],
                "messages": [StoredMessage.model_validate(m).to_wire() for m in messages],
                "answerPayload": state["payload"].to_wire(),
            },
        )

    # ========================================================================
    # Conditional Edge Logic
    # ========================================================================

    def _route_after_classification(self, state: TurnState) -> str:
        return "data" if state.get("is_data_request", True) else "non_data"

    def _route_after_execution(self, state: TurnState) -> str:
        execution = state.get("execution")
        return "ok" if execution is not None and execution.ok else "sql_error"

    # ========================================================================
    # Post-commit Telemetry
    # ========================================================================

    async def _run_post_commit_hooks(self, state: TurnState) -> None:
        for hook in self.post_commit_hooks:
            try:
                await hook(state)
            except Exception as e:
                logger.error(
                    f"Post-commit hook {getattr(hook, '__name__', hook)} failed: {e}",
                    extra={"conversation_id": state.get("conversation_id")},
                )

    async def _log_query(self, state: TurnState) -> None:
        """QueryLog row plus rank-ordered QuerySource rows when RAG was used."""
        context = state["context"]
        latency_ms = int((time.perf_counter() - state["started_at"]) * 1000)
        query_log_id = await self.store.insert_query_log(
            tenant_id=state["tenant"].id,
            user_id=state["user"].user_id,
            conversation_id=state["conversation_id"],
            question=state["question"],
            answer_summary=truncate_answer(
                state.get("answer_text"), self.settings.answer_summary_chars
            ),
            sql=state["execution"].sql,
            used_rag=context.rag_used,
            model=self.model_name,
            usage=state["usage"],
            latency_ms=latency_ms,
        )
        if context.rag_used:
            await self.store.insert_query_sources(
                tenant_id=state["tenant"].id,
                query_log_id=query_log_id,
                sources=query_source_rows(context.retrieved_docs),
            )
