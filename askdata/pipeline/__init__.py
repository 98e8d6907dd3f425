"""Per-turn orchestration: bootstrap, state machine and answer assembly."""

from askdata.pipeline.bootstrap import ConversationBootstrap, derive_title
from askdata.pipeline.locks import ConversationLocks
from askdata.pipeline.orchestrator import AskPipeline, TurnState

__all__ = [
    "AskPipeline",
    "ConversationBootstrap",
    "ConversationLocks",
    "TurnState",
    "derive_title",
]
