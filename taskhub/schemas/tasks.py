from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..core.errors import MissingRequiredField, ValidationFailed

UNASSIGNED_NAME = "unassigned"


class TaskPayload(BaseModel):
    """Body of a task create or replace. ``assignedUserName`` is never read from clients."""

    model_config = ConfigDict(extra="ignore")

    name: str = Field(..., min_length=1)
    description: str = Field(default="")
    deadline: datetime
    completed: bool = Field(default=False)
    assignedUser: str = Field(default="")

    @field_validator("deadline")
    @classmethod
    def _aware_deadline(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @field_validator("description", "assignedUser", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return "" if value is None else value


def parse_task_payload(body: Any) -> TaskPayload:
    if body is None:
        body = {}
    if not isinstance(body, Mapping):
        raise ValidationFailed(data={"errors": [{"msg": "request body must be a JSON object"}]})
    if any(_is_blank(body.get(field)) for field in ("name", "deadline")):
        raise MissingRequiredField(("name", "deadline"))
    return TaskPayload.model_validate(dict(body))


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


__all__ = ["TaskPayload", "UNASSIGNED_NAME", "parse_task_payload"]
