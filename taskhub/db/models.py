from __future__ import annotations

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import ARRAY

metadata = MetaData()

OBJECT_ID_LENGTH = 24

users = Table(
    "users",
    metadata,
    Column("id", String(length=OBJECT_ID_LENGTH), primary_key=True),
    Column("name", Text(), nullable=False),
    Column("email", Text(), nullable=False, unique=True),
    Column(
        "pending_tasks",
        ARRAY(String(length=OBJECT_ID_LENGTH)),
        nullable=False,
        server_default=text("'{}'::varchar[]"),
    ),
    Column("date_created", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("version", Integer(), nullable=False, server_default=text("0")),
)

tasks = Table(
    "tasks",
    metadata,
    Column("id", String(length=OBJECT_ID_LENGTH), primary_key=True),
    Column("name", Text(), nullable=False),
    Column("description", Text(), nullable=False, server_default=text("''")),
    Column("deadline", DateTime(timezone=True), nullable=False),
    Column("completed", Boolean(), nullable=False, server_default=text("false")),
    Column("assigned_user", String(length=OBJECT_ID_LENGTH), nullable=False, server_default=text("''")),
    Column("assigned_user_name", Text(), nullable=False, server_default=text("'unassigned'")),
    Column("date_created", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("version", Integer(), nullable=False, server_default=text("0")),
)
Index("ix_tasks_assigned_user", tasks.c.assigned_user)
Index("ix_tasks_completed", tasks.c.completed)

TABLES: dict[str, Table] = {"users": users, "tasks": tasks}

# Document field name -> column name, per collection.
FIELD_COLUMNS: dict[str, dict[str, str]] = {
    "users": {
        "_id": "id",
        "name": "name",
        "email": "email",
        "pendingTasks": "pending_tasks",
        "dateCreated": "date_created",
        "__v": "version",
    },
    "tasks": {
        "_id": "id",
        "name": "name",
        "description": "description",
        "deadline": "deadline",
        "completed": "completed",
        "assignedUser": "assigned_user",
        "assignedUserName": "assigned_user_name",
        "dateCreated": "date_created",
        "__v": "version",
    },
}
