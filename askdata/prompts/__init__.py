"""Prompt templates and loader."""

from askdata.prompts.loader import PromptLoader

__all__ = ["PromptLoader"]
