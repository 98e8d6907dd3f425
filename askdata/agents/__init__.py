"""LLM-backed and deterministic steps of a chat turn."""

from askdata.agents.base import BaseAgent, safe_json_parse, strip_code_fences
from askdata.agents.chart import ChartBuilder, ChartResult
from askdata.agents.classifier import ClassificationResult, RequestClassifier
from askdata.agents.context import ContextBuilder, ContextBundle
from askdata.agents.executor import ExecutionResult, ScopedSQLExecutor
from askdata.agents.non_data import NON_DATA_FALLBACK, NonDataReply, NonDataResponder
from askdata.agents.response_synthesis import AnswerSummarizer, AnswerSummary
from askdata.agents.sql import SQLTranslator, TranslationResult
from askdata.agents.summary import ConversationSummaryMaintainer, SummaryRefresh
from askdata.agents.validator import apply_scope, assert_read_only

__all__ = [
    "BaseAgent",
    "safe_json_parse",
    "strip_code_fences",
    "ChartBuilder",
    "ChartResult",
    "ClassificationResult",
    "RequestClassifier",
    "ContextBuilder",
    "ContextBundle",
    "ExecutionResult",
    "ScopedSQLExecutor",
    "NON_DATA_FALLBACK",
    "NonDataReply",
    "NonDataResponder",
    "AnswerSummarizer",
    "AnswerSummary",
    "SQLTranslator",
    "TranslationResult",
    "ConversationSummaryMaintainer",
    "SummaryRefresh",
    "apply_scope",
    "assert_read_only",
]
