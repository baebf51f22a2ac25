"""Translate loosely typed list-request parameters into validated store queries.

The translator accepts the raw ``where`` / ``sort`` / ``select`` / ``skip`` /
``limit`` / ``count`` strings of a request and produces either a
:class:`ListQuery` or a :class:`CountQuery`. Filters are normalized so that
every field predicate is an operator mapping (``{"completed": true}`` becomes
``{"completed": {"$eq": True}}``) and every value is coerced to the Python type
the stores hold for that field. Store implementations only ever see this
normalized form.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping

from pydantic import TypeAdapter, ValidationError

from ..core import metrics
from ..core.errors import InvalidQueryParameter
from ..core.logging import get_logger
from ..store.base import normalize_object_id
from .schema import CollectionSchema, FieldKind

logger = get_logger(name=__name__)

DEFAULT_PROJECTION: dict[str, int] = {"__v": 0}

LOGICAL_OPERATORS = frozenset({"$and", "$or", "$nor"})
COMPARISON_OPERATORS = frozenset({"$eq", "$ne", "$gt", "$gte", "$lt", "$lte"})
SET_OPERATORS = frozenset({"$in", "$nin"})
ARRAY_OPERATORS = frozenset({"$all", "$size"})
FIELD_OPERATORS = COMPARISON_OPERATORS | SET_OPERATORS | ARRAY_OPERATORS | {"$exists", "$regex", "$options", "$not"}

_SORT_DIRECTIONS: dict[Any, int] = {
    1: 1,
    -1: -1,
    "1": 1,
    "-1": -1,
    "asc": 1,
    "ascending": 1,
    "desc": -1,
    "descending": -1,
}
_REGEX_FLAGS = {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL, "x": re.VERBOSE}
_TEXT_KINDS = frozenset({FieldKind.STRING, FieldKind.ID, FieldKind.OPTIONAL_ID})

_bool_adapter = TypeAdapter(bool)
_int_adapter = TypeAdapter(int)
_datetime_adapter = TypeAdapter(datetime)


@dataclass(slots=True, frozen=True)
class ListQuery:
    filter: dict[str, Any]
    sort: tuple[tuple[str, int], ...] = ()
    projection: dict[str, int] | None = None
    skip: int | None = None
    limit: int | None = None


@dataclass(slots=True, frozen=True)
class CountQuery:
    filter: dict[str, Any]


def translate_list_query(
    params: Mapping[str, Any],
    schema: CollectionSchema,
    *,
    default_limit: int | None,
) -> ListQuery | CountQuery:
    """Build the query descriptor for a collection list or count request."""

    filter_ = parse_filter(params.get("where"), schema)
    if is_count_mode(params.get("count")):
        return CountQuery(filter=filter_)

    sort = parse_sort(params.get("sort"), schema)
    projection = parse_projection(params.get("select"), schema)
    skip = parse_skip(params.get("skip"))
    limit = parse_limit(params.get("limit"))
    if limit is None:
        limit = default_limit
    return ListQuery(filter=filter_, sort=sort, projection=projection, skip=skip, limit=limit)


def is_count_mode(raw: Any) -> bool:
    return isinstance(raw, str) and raw.strip().lower() == "true"


def parse_filter(raw: Any, schema: CollectionSchema) -> dict[str, Any]:
    payload = _load_json(raw, "where")
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise _reject("where", "must be a JSON object")
    return normalize_filter(payload, schema, parameter="where")


def parse_sort(raw: Any, schema: CollectionSchema) -> tuple[tuple[str, int], ...]:
    payload = _load_json(raw, "sort")
    if payload is None:
        return ()
    if not isinstance(payload, dict):
        raise _reject("sort", "must be a JSON object")
    keys: list[tuple[str, int]] = []
    for field, direction in payload.items():
        if schema.kind_of(field) is None:
            raise _reject("sort", f"unknown field '{field}'")
        normalized = direction.lower() if isinstance(direction, str) else direction
        if isinstance(normalized, bool) or normalized not in _SORT_DIRECTIONS:
            raise _reject("sort", f"direction for '{field}' must be 1 or -1")
        keys.append((field, _SORT_DIRECTIONS[normalized]))
    return tuple(keys)


def parse_projection(raw: Any, schema: CollectionSchema) -> dict[str, int]:
    """Parse ``select``; without one the internal revision field is hidden."""

    payload = _load_json(raw, "select")
    if payload is None:
        return dict(DEFAULT_PROJECTION)
    if not isinstance(payload, dict):
        raise _reject("select", "must be a JSON object")
    projection: dict[str, int] = {}
    # Rejected rather than ignored, matching the where filter.
    for field, flag in payload.items():
        if schema.kind_of(field) is None:
            raise _reject("select", f"unknown field '{field}'")
        if flag not in (0, 1) or isinstance(flag, float):
            raise _reject("select", f"value for '{field}' must be 0 or 1")
        projection[field] = int(flag)
    modes = {flag for field, flag in projection.items() if field != "_id"}
    if len(modes) > 1:
        raise _reject("select", "cannot mix inclusion and exclusion")
    return projection


def parse_skip(raw: Any) -> int | None:
    value = _parse_int(raw)
    if value is None or value < 0:
        return None
    return value


def parse_limit(raw: Any) -> int | None:
    value = _parse_int(raw)
    if value is None or value <= 0:
        return None
    return value


def normalize_filter(expression: Mapping[str, Any], schema: CollectionSchema, *, parameter: str = "where") -> dict[str, Any]:
    normalized: dict[str, Any] = {}
    for key, value in expression.items():
        if key in LOGICAL_OPERATORS:
            if not isinstance(value, list) or not value:
                raise _reject(parameter, f"{key} expects a non-empty array")
            clauses = []
            for clause in value:
                if not isinstance(clause, dict):
                    raise _reject(parameter, f"{key} clauses must be objects")
                clauses.append(normalize_filter(clause, schema, parameter=parameter))
            normalized[key] = clauses
            continue
        if key.startswith("$"):
            raise _reject(parameter, f"unsupported operator '{key}'")
        # Unknown fields have no column to compile against, so they fail instead of matching nothing.
        kind = schema.kind_of(key)
        if kind is None:
            raise _reject(parameter, f"unknown field '{key}'")
        normalized[key] = _normalize_predicate(key, kind, value, parameter)
    return normalized


def _normalize_predicate(field: str, kind: FieldKind, value: Any, parameter: str) -> dict[str, Any]:
    if not _is_operator_mapping(value):
        return {"$eq": _coerce_operand(field, kind, value, parameter, allow_list=kind is FieldKind.ID_SET)}

    operators: dict[str, Any] = {}
    for operator, operand in value.items():
        if operator not in FIELD_OPERATORS:
            raise _reject(parameter, f"unsupported operator '{operator}' on '{field}'")
        if operator in {"$eq", "$ne"}:
            operators[operator] = _coerce_operand(field, kind, operand, parameter, allow_list=kind is FieldKind.ID_SET)
        elif operator in {"$gt", "$gte", "$lt", "$lte"}:
            if kind is FieldKind.ID_SET:
                raise _reject(parameter, f"{operator} is not supported on '{field}'")
            operators[operator] = _coerce_operand(field, kind, operand, parameter)
        elif operator in SET_OPERATORS:
            if not isinstance(operand, list):
                raise _reject(parameter, f"{operator} on '{field}' expects an array")
            operators[operator] = [_coerce_operand(field, kind, item, parameter) for item in operand]
        elif operator == "$exists":
            operators[operator] = _coerce_bool(field, operand, parameter)
        elif operator == "$regex":
            if kind not in _TEXT_KINDS or not isinstance(operand, str):
                raise _reject(parameter, f"$regex on '{field}' expects a string pattern on a text field")
            operators[operator] = operand
        elif operator == "$options":
            if not isinstance(operand, str) or any(flag not in _REGEX_FLAGS for flag in operand):
                raise _reject(parameter, f"$options on '{field}' accepts only i, m, s, x")
            operators[operator] = operand
        elif operator == "$all":
            if kind is not FieldKind.ID_SET or not isinstance(operand, list):
                raise _reject(parameter, f"$all on '{field}' expects an array on a set field")
            operators[operator] = [_coerce_operand(field, kind, item, parameter) for item in operand]
        elif operator == "$size":
            if kind is not FieldKind.ID_SET:
                raise _reject(parameter, f"$size is not supported on '{field}'")
            size = _coerce_scalar(field, FieldKind.INTEGER, operand, parameter)
            if size < 0:
                raise _reject(parameter, f"$size on '{field}' must be non-negative")
            operators[operator] = size
        elif operator == "$not":
            if isinstance(operand, str):
                operators[operator] = _normalize_predicate(field, kind, {"$regex": operand}, parameter)
            elif _is_operator_mapping(operand):
                operators[operator] = _normalize_predicate(field, kind, operand, parameter)
            else:
                raise _reject(parameter, f"$not on '{field}' expects an operator object")

    if "$options" in operators and "$regex" not in operators:
        raise _reject(parameter, f"$options on '{field}' requires $regex")
    if "$regex" in operators:
        try:
            re.compile(operators["$regex"], regex_flags(operators.get("$options", "")))
        except re.error as exc:
            raise _reject(parameter, f"invalid $regex on '{field}': {exc}") from exc
    return operators


def regex_flags(options: str) -> int:
    flags = 0
    for flag in options:
        flags |= _REGEX_FLAGS[flag]
    return flags


def _is_operator_mapping(value: Any) -> bool:
    return isinstance(value, dict) and bool(value) and all(isinstance(key, str) and key.startswith("$") for key in value)


def _coerce_operand(field: str, kind: FieldKind, value: Any, parameter: str, *, allow_list: bool = False) -> Any:
    if value is None:
        return None
    if kind is FieldKind.ID_SET:
        if isinstance(value, list):
            if not allow_list:
                raise _reject(parameter, f"nested arrays are not supported on '{field}'")
            return [_coerce_scalar(field, FieldKind.ID, item, parameter) for item in value]
        return _coerce_scalar(field, FieldKind.ID, value, parameter)
    return _coerce_scalar(field, kind, value, parameter)


def _coerce_scalar(field: str, kind: FieldKind, value: Any, parameter: str) -> Any:
    if kind in _TEXT_KINDS:
        if not isinstance(value, str):
            raise _reject(parameter, f"'{field}' expects a string")
        if kind is FieldKind.ID:
            return value.strip().lower()
        if kind is FieldKind.OPTIONAL_ID:
            return normalize_object_id(value) or value
        return value
    if kind is FieldKind.BOOLEAN:
        return _coerce_bool(field, value, parameter)
    try:
        if kind is FieldKind.INTEGER:
            return _int_adapter.validate_python(value)
        parsed = _datetime_adapter.validate_python(value)
    except ValidationError as exc:
        raise _reject(parameter, f"'{field}' expects a {kind.value}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _coerce_bool(field: str, value: Any, parameter: str) -> bool:
    try:
        return _bool_adapter.validate_python(value)
    except ValidationError as exc:
        raise _reject(parameter, f"'{field}' expects a boolean") from exc


def _parse_int(raw: Any) -> int | None:
    if raw is None:
        return None
    if isinstance(raw, int) and not isinstance(raw, bool):
        return raw
    try:
        return int(str(raw).strip())
    except ValueError:
        return None


def _load_json(raw: Any, parameter: str) -> Any:
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return None
    try:
        return json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise _reject(parameter) from exc


def _reject(parameter: str, detail: str | None = None) -> InvalidQueryParameter:
    metrics.increment_query_rejected(parameter=parameter)
    logger.info("query_rejected", parameter=parameter, detail=detail)
    return InvalidQueryParameter(parameter, detail)


__all__ = [
    "CountQuery",
    "DEFAULT_PROJECTION",
    "ListQuery",
    "is_count_mode",
    "normalize_filter",
    "parse_filter",
    "parse_limit",
    "parse_projection",
    "parse_skip",
    "parse_sort",
    "regex_flags",
    "translate_list_query",
]
