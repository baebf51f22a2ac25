from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Mapping


class FieldKind(str, Enum):
    ID = "id"
    STRING = "string"
    BOOLEAN = "boolean"
    INTEGER = "integer"
    DATETIME = "datetime"
    ID_SET = "id_set"
    OPTIONAL_ID = "optional_id"


@dataclass(slots=True, frozen=True)
class CollectionSchema:
    name: str
    fields: Mapping[str, FieldKind]

    def kind_of(self, field: str) -> FieldKind | None:
        return self.fields.get(field)


USER_SCHEMA = CollectionSchema(
    name="users",
    fields={
        "_id": FieldKind.ID,
        "name": FieldKind.STRING,
        "email": FieldKind.STRING,
        "pendingTasks": FieldKind.ID_SET,
        "dateCreated": FieldKind.DATETIME,
        "__v": FieldKind.INTEGER,
    },
)

TASK_SCHEMA = CollectionSchema(
    name="tasks",
    fields={
        "_id": FieldKind.ID,
        "name": FieldKind.STRING,
        "description": FieldKind.STRING,
        "deadline": FieldKind.DATETIME,
        "completed": FieldKind.BOOLEAN,
        # "" marks an unassigned task
        "assignedUser": FieldKind.OPTIONAL_ID,
        "assignedUserName": FieldKind.STRING,
        "dateCreated": FieldKind.DATETIME,
        "__v": FieldKind.INTEGER,
    },
)

SCHEMAS: dict[str, CollectionSchema] = {USER_SCHEMA.name: USER_SCHEMA, TASK_SCHEMA.name: TASK_SCHEMA}
