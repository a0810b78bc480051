"""Prompt templates and loader."""

from kqlassist.prompts.loader import PromptLoader

__all__ = ["PromptLoader"]
