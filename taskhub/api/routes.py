from __future__ import annotations

from typing import Any, Mapping

from fastapi import APIRouter, Body, Depends, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from ..core import metrics
from ..core.config import Settings
from ..core.errors import NotFound, classify_failure
from ..dependencies import get_app_settings, get_document_store, get_mutator
from ..query.matching import project
from ..query.schema import TASK_SCHEMA, USER_SCHEMA, CollectionSchema
from ..query.translator import CountQuery, parse_projection, translate_list_query
from ..schemas.tasks import parse_task_payload
from ..schemas.users import parse_user_payload
from ..store.base import DocumentStore, normalize_object_id
from ..sync.mutator import TransactionalMutator

router = APIRouter()


def _envelope(message: str, data: Any, status_code: int = status.HTTP_200_OK) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"message": message, "data": jsonable_encoder(data)})


def _failure(exc: Exception, *, fallback: str) -> JSONResponse:
    outcome = classify_failure(exc, fallback=fallback)
    return _envelope(outcome.message, outcome.data, outcome.status_code)


async def _list_documents(
    store: DocumentStore,
    schema: CollectionSchema,
    params: Mapping[str, Any],
    *,
    default_limit: int | None,
) -> Any:
    query = translate_list_query(params, schema, default_limit=default_limit)
    if isinstance(query, CountQuery):
        metrics.increment_query(collection=schema.name, mode="count")
        return await store.count(schema.name, query.filter)
    metrics.increment_query(collection=schema.name, mode="list")
    return await store.find(schema.name, query)


async def _get_document(store: DocumentStore, schema: CollectionSchema, raw_id: str, params: Mapping[str, Any]) -> Any:
    projection = parse_projection(params.get("select"), schema)
    document = await _require_existing(store, schema.name, raw_id)
    return project(document, projection)


async def _require_existing(store: DocumentStore, collection: str, raw_id: str) -> dict[str, Any]:
    doc_id = normalize_object_id(raw_id)
    if doc_id is None:
        raise NotFound.for_collection(collection)
    document = await store.get(collection, doc_id)
    if document is None:
        raise NotFound.for_collection(collection)
    return document


@router.get("", tags=["health"])
async def api_home() -> JSONResponse:
    return _envelope("OK", {"collections": [USER_SCHEMA.name, TASK_SCHEMA.name]})


# Users -------------------------------------------------------------------


@router.get("/users", tags=["users"])
async def list_users(
    request: Request,
    store: DocumentStore = Depends(get_document_store),
    settings: Settings = Depends(get_app_settings),
) -> JSONResponse:
    try:
        data = await _list_documents(
            store,
            USER_SCHEMA,
            request.query_params,
            default_limit=settings.query.user_default_limit,
        )
    except Exception as exc:
        return _failure(exc, fallback="Error getting users")
    return _envelope("OK", data)


@router.post("/users", tags=["users"])
async def create_user(
    body: Any = Body(None),
    mutator: TransactionalMutator = Depends(get_mutator),
) -> JSONResponse:
    try:
        payload = parse_user_payload(body)
        user = await mutator.create_user(payload)
    except Exception as exc:
        return _failure(exc, fallback="Error creating user")
    return _envelope("User created successfully", user, status.HTTP_201_CREATED)


@router.get("/users/{user_id}", tags=["users"])
async def get_user(
    user_id: str,
    request: Request,
    store: DocumentStore = Depends(get_document_store),
) -> JSONResponse:
    try:
        user = await _get_document(store, USER_SCHEMA, user_id, request.query_params)
    except Exception as exc:
        return _failure(exc, fallback="Error getting user")
    return _envelope("OK", user)


@router.put("/users/{user_id}", tags=["users"])
async def replace_user(
    user_id: str,
    body: Any = Body(None),
    store: DocumentStore = Depends(get_document_store),
    mutator: TransactionalMutator = Depends(get_mutator),
) -> JSONResponse:
    try:
        await _require_existing(store, USER_SCHEMA.name, user_id)
        payload = parse_user_payload(body, context="PUT")
        user = await mutator.replace_user(user_id, payload)
    except Exception as exc:
        return _failure(exc, fallback="Error updating user")
    return _envelope("User updated successfully", user)


@router.delete("/users/{user_id}", tags=["users"])
async def delete_user(
    user_id: str,
    mutator: TransactionalMutator = Depends(get_mutator),
) -> JSONResponse:
    try:
        await mutator.delete_user(user_id)
    except Exception as exc:
        return _failure(exc, fallback="Error deleting user")
    return _envelope("User deleted successfully", {})


# Tasks -------------------------------------------------------------------


@router.get("/tasks", tags=["tasks"])
async def list_tasks(
    request: Request,
    store: DocumentStore = Depends(get_document_store),
    settings: Settings = Depends(get_app_settings),
) -> JSONResponse:
    try:
        data = await _list_documents(
            store,
            TASK_SCHEMA,
            request.query_params,
            default_limit=settings.query.task_default_limit,
        )
    except Exception as exc:
        return _failure(exc, fallback="Error getting tasks")
    return _envelope("OK", data)


@router.post("/tasks", tags=["tasks"])
async def create_task(
    body: Any = Body(None),
    mutator: TransactionalMutator = Depends(get_mutator),
) -> JSONResponse:
    try:
        payload = parse_task_payload(body)
        task = await mutator.create_task(payload)
    except Exception as exc:
        return _failure(exc, fallback="Error creating task")
    return _envelope("Task created successfully", task, status.HTTP_201_CREATED)


@router.get("/tasks/{task_id}", tags=["tasks"])
async def get_task(
    task_id: str,
    request: Request,
    store: DocumentStore = Depends(get_document_store),
) -> JSONResponse:
    try:
        task = await _get_document(store, TASK_SCHEMA, task_id, request.query_params)
    except Exception as exc:
        return _failure(exc, fallback="Error getting task")
    return _envelope("OK", task)


@router.put("/tasks/{task_id}", tags=["tasks"])
async def replace_task(
    task_id: str,
    body: Any = Body(None),
    store: DocumentStore = Depends(get_document_store),
    mutator: TransactionalMutator = Depends(get_mutator),
) -> JSONResponse:
    try:
        await _require_existing(store, TASK_SCHEMA.name, task_id)
        payload = parse_task_payload(body)
        task = await mutator.replace_task(task_id, payload)
    except Exception as exc:
        return _failure(exc, fallback="Error updating task")
    return _envelope("Task updated successfully", task)


@router.delete("/tasks/{task_id}", tags=["tasks"])
async def delete_task(
    task_id: str,
    mutator: TransactionalMutator = Depends(get_mutator),
) -> JSONResponse:
    try:
        await mutator.delete_task(task_id)
    except Exception as exc:
        return _failure(exc, fallback="Error deleting task")
    return _envelope("Task deleted successfully", {})


__all__ = ["router"]
