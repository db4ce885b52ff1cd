"""Prompt repository package."""

from bitcore.prompts.models import (
    PromptError,
    PromptErrorCode,
    PromptRecord,
    PromptSummary,
    normalize_prompt_id,
)
from bitcore.prompts.repository import PromptRepository

__all__ = [
    "PromptError",
    "PromptErrorCode",
    "PromptRecord",
    "PromptRepository",
    "PromptSummary",
    "normalize_prompt_id",
]
