"""Structured problem bodies returned for rejected commands and bad requests."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from quiz.logic.enums import ReasonCode

if TYPE_CHECKING:
    from quiz.logic.phase_guard import CommandRejection

_STATUS_BY_REASON: dict[ReasonCode, int] = {
    ReasonCode.NONE: 400,
    ReasonCode.INVALID_STATE_TRANSITION: 409,
    ReasonCode.PHASE_MISMATCH: 409,
    ReasonCode.DUPLICATE_COMMAND: 409,
    ReasonCode.UNAUTHORIZED_ROLE: 403,
}

_TITLE_BY_REASON: dict[ReasonCode, str] = {
    ReasonCode.NONE: "Bad Request",
    ReasonCode.INVALID_STATE_TRANSITION: "Invalid State Transition",
    ReasonCode.PHASE_MISMATCH: "Reducer rejected event",
    ReasonCode.DUPLICATE_COMMAND: "Duplicate Command",
    ReasonCode.UNAUTHORIZED_ROLE: "Unauthorized Role",
}


class Problem(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    title: str
    status: int
    detail: str
    reason: ReasonCode = ReasonCode.NONE
    field: str | None = None
    correlation_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


def problem_from_rejection(rejection: CommandRejection, correlation_id: str | None = None) -> Problem:
    return Problem(
        title=_TITLE_BY_REASON[rejection.reason],
        status=_STATUS_BY_REASON[rejection.reason],
        detail=rejection.detail,
        reason=rejection.reason,
        field=rejection.field,
        correlation_id=correlation_id,
    )


def bad_request(detail: str, *, field: str | None = None, correlation_id: str | None = None) -> Problem:
    return Problem(
        title="Bad Request",
        status=400,
        detail=detail,
        field=field,
        correlation_id=correlation_id,
    )


def not_found(detail: str, *, correlation_id: str | None = None) -> Problem:
    return Problem(title="Not Found", status=404, detail=detail, correlation_id=correlation_id)
