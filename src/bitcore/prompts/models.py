"""Prompt record models and error contracts."""

from __future__ import annotations

import re
from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

PROMPT_ID_PATTERN = re.compile(r"^[a-z0-9][a-z0-9_-]*$")


class PromptErrorCode(StrEnum):
    """Stable prompt repository error codes."""

    NOT_FOUND = "prompt_not_found"
    INVALID_ID = "prompt_invalid_id"
    INVALID_RECORD = "prompt_invalid_record"
    STORE_UNAVAILABLE = "prompt_store_unavailable"


_KIND_BY_CODE = {
    PromptErrorCode.NOT_FOUND: "not_found",
    PromptErrorCode.INVALID_ID: "input_validation",
    PromptErrorCode.INVALID_RECORD: "input_validation",
    PromptErrorCode.STORE_UNAVAILABLE: "server",
}


class PromptError(RuntimeError):
    """Prompt repository failure with stable code."""

    def __init__(
        self,
        code: PromptErrorCode,
        message: str,
        *,
        data: dict[str, object] | None = None,
    ) -> None:
        """Create prompt failure.

        Args:
            code: Stable prompt error code.
            message: Human-readable error message.
            data: Optional structured payload for diagnostics.
        """
        super().__init__(message)
        self.code = code
        self.kind = _KIND_BY_CODE[code]
        self.data = data or {}


def normalize_prompt_id(value: str) -> str:
    """Validate and normalize a prompt id slug.

    Raises:
        PromptError: If the id is not a valid slug.
    """
    normalized = value.strip().lower()
    if not PROMPT_ID_PATTERN.match(normalized):
        raise PromptError(
            PromptErrorCode.INVALID_ID,
            f"Invalid prompt id '{value}'. Use lowercase letters, digits, '-' or '_'.",
            data={"id": value},
        )
    return normalized


class PromptRecord(BaseModel):
    """Stored prompt definition."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str
    title: str = Field(min_length=1)
    body: str = Field(min_length=1)
    description: str | None = None
    tags: tuple[str, ...] = ()
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime

    @field_validator("id")
    @classmethod
    def _validate_id(cls, value: str) -> str:
        if not PROMPT_ID_PATTERN.match(value):
            raise ValueError("prompt id must be a lowercase slug.")
        return value


class PromptSummary(BaseModel):
    """Listing view of a prompt."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str
    title: str
    description: str | None = None
    tags: tuple[str, ...] = ()
    updated_at: datetime
    body: str | None = None
