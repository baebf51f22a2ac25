from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable

from ..core.errors import InvalidReference, ReferenceNotFound
from ..core.logging import get_logger
from ..schemas.tasks import UNASSIGNED_NAME
from ..store.base import TASKS, USERS, Document, StoreSession, normalize_object_id

logger = get_logger(name=__name__)


@dataclass(slots=True, frozen=True)
class AssigneeRef:
    user_id: str | None
    name: str

    @property
    def assigned(self) -> bool:
        return self.user_id is not None


UNASSIGNED = AssigneeRef(user_id=None, name=UNASSIGNED_NAME)


class ReferenceValidator:
    """Resolves client supplied ids against the store inside the open transaction."""

    def __init__(self, session: StoreSession) -> None:
        self._session = session

    async def resolve_assignee(self, raw: Any, *, field_name: str = "assignedUser") -> AssigneeRef:
        if raw is None or (isinstance(raw, str) and not raw.strip()):
            return UNASSIGNED
        user_id = normalize_object_id(raw)
        if user_id is None:
            raise InvalidReference(field_name, raw)
        user = await self._session.get(USERS, user_id)
        if user is None:
            raise ReferenceNotFound(field_name, user_id, entity="User")
        return AssigneeRef(user_id=user_id, name=user["name"])

    async def resolve_tasks(self, raw_ids: Iterable[Any], *, field_name: str = "pendingTasks") -> dict[str, Document]:
        """Return the referenced tasks keyed by normalized id, in first-seen order."""

        resolved: dict[str, Document] = {}
        for raw in raw_ids:
            task_id = normalize_object_id(raw)
            if task_id is None:
                raise InvalidReference(field_name, raw)
            if task_id in resolved:
                continue
            task = await self._session.get(TASKS, task_id)
            if task is None:
                raise ReferenceNotFound(field_name, task_id, entity="Task")
            resolved[task_id] = task
        logger.debug("task_references_resolved", field=field_name, count=len(resolved))
        return resolved


__all__ = ["AssigneeRef", "ReferenceValidator", "UNASSIGNED"]
