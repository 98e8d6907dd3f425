"""Answer feedback storage."""

from askdata.feedback.store import FeedbackStore

__all__ = ["FeedbackStore"]
