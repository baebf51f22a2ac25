from __future__ import annotations

from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..core.errors import MissingRequiredField, ValidationFailed


class UserPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=1)
    pendingTasks: list[str] = Field(default_factory=list)

    @field_validator("email")
    @classmethod
    def _strip_email(cls, value: str) -> str:
        return value.strip()

    @field_validator("pendingTasks", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return [] if value is None else value


def parse_user_payload(body: Any, *, context: str | None = None) -> UserPayload:
    """Validate a user body; ``context`` names the operation in the missing-field message."""

    if body is None:
        body = {}
    if not isinstance(body, Mapping):
        raise ValidationFailed(data={"errors": [{"msg": "request body must be a JSON object"}]})
    if any(_is_blank(body.get(field)) for field in ("name", "email")):
        raise MissingRequiredField(("name", "email"), context=context)
    return UserPayload.model_validate(dict(body))


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


__all__ = ["UserPayload", "parse_user_payload"]
