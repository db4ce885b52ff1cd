"""Mission error contracts."""

from __future__ import annotations

from enum import StrEnum


class MissionErrorCode(StrEnum):
    """Stable mission repository/runtime error codes."""

    NOT_FOUND = "mission_not_found"
    INVALID_SPEC = "mission_invalid_spec"
    SCHEDULE_INVALID = "mission_schedule_invalid"
    STATE_UNAVAILABLE = "mission_state_unavailable"
    ENGINE_MISSING = "mission_engine_missing"
    EXECUTION_FAILED = "mission_execution_failed"
    SCHEDULER_DISABLED = "mission_scheduler_disabled"
    DISABLED = "mission_disabled"
    TEMPLATE_NOT_FOUND = "mission_template_not_found"
    TEMPLATE_INVALID = "mission_template_invalid"
    TEMPLATE_STORE_UNAVAILABLE = "mission_template_store_unavailable"


_KIND_BY_CODE = {
    MissionErrorCode.NOT_FOUND: "not_found",
    MissionErrorCode.INVALID_SPEC: "input_validation",
    MissionErrorCode.SCHEDULE_INVALID: "input_validation",
    MissionErrorCode.STATE_UNAVAILABLE: "server",
    MissionErrorCode.ENGINE_MISSING: "server",
    MissionErrorCode.EXECUTION_FAILED: "server",
    MissionErrorCode.SCHEDULER_DISABLED: "input_validation",
    MissionErrorCode.DISABLED: "input_validation",
    MissionErrorCode.TEMPLATE_NOT_FOUND: "not_found",
    MissionErrorCode.TEMPLATE_INVALID: "input_validation",
    MissionErrorCode.TEMPLATE_STORE_UNAVAILABLE: "server",
}


class MissionError(RuntimeError):
    """Mission failure with stable code."""

    def __init__(
        self,
        code: MissionErrorCode,
        message: str,
        *,
        data: dict[str, object] | None = None,
    ) -> None:
        """Create mission failure.

        Args:
            code: Stable mission error code.
            message: Human-readable error message.
            data: Optional structured payload for diagnostics.
        """
        super().__init__(message)
        self.code = code
        self.kind = _KIND_BY_CODE[code]
        self.data = data or {}
