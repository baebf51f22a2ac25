from __future__ import annotations

import re
from typing import Any, Iterable, Mapping, Sequence

from .translator import regex_flags

Document = Mapping[str, Any]


def matches(document: Document, filter: Mapping[str, Any]) -> bool:
    """Evaluate a normalized filter against a single document."""

    for key, condition in filter.items():
        if key == "$and":
            if not all(matches(document, clause) for clause in condition):
                return False
        elif key == "$or":
            if not any(matches(document, clause) for clause in condition):
                return False
        elif key == "$nor":
            if any(matches(document, clause) for clause in condition):
                return False
        elif not _match_operators(document.get(key), condition):
            return False
    return True


def sort_documents(documents: Iterable[Document], sort: Sequence[tuple[str, int]]) -> list[Document]:
    ordered = list(documents)
    for field, direction in reversed(sort):
        ordered.sort(key=lambda doc: _sort_key(doc.get(field)), reverse=direction < 0)
    return ordered


def project(document: Document, projection: Mapping[str, int] | None) -> dict[str, Any]:
    if not projection:
        return dict(document)
    included = [field for field, flag in projection.items() if flag and field != "_id"]
    if included or projection.get("_id") == 1:
        keep = set(included)
        if projection.get("_id", 1):
            keep.add("_id")
        return {field: value for field, value in document.items() if field in keep}
    excluded = {field for field, flag in projection.items() if not flag}
    return {field: value for field, value in document.items() if field not in excluded}


def _match_operators(value: Any, operators: Mapping[str, Any]) -> bool:
    is_set = isinstance(value, (list, tuple, set, frozenset))
    for operator, operand in operators.items():
        if operator == "$eq":
            ok = _equals(value, operand, is_set)
        elif operator == "$ne":
            ok = not _equals(value, operand, is_set)
        elif operator == "$in":
            ok = any(_equals(value, item, is_set) for item in operand)
        elif operator == "$nin":
            ok = not any(_equals(value, item, is_set) for item in operand)
        elif operator in {"$gt", "$gte", "$lt", "$lte"}:
            ok = _compare(value, operator, operand)
        elif operator == "$exists":
            ok = (value is not None) is operand
        elif operator == "$regex":
            ok = isinstance(value, str) and re.search(operand, value, regex_flags(operators.get("$options", ""))) is not None
        elif operator == "$options":
            continue
        elif operator == "$all":
            ok = is_set and set(operand).issubset(value)
        elif operator == "$size":
            ok = is_set and len(value) == operand
        elif operator == "$not":
            ok = not _match_operators(value, operand)
        else:  # pragma: no cover - the translator rejects unknown operators
            raise ValueError(f"unsupported operator {operator}")
        if not ok:
            return False
    return True


def _equals(value: Any, operand: Any, is_set: bool) -> bool:
    if is_set:
        if isinstance(operand, list):
            return set(value) == set(operand)
        return operand in value
    return value == operand


def _compare(value: Any, operator: str, operand: Any) -> bool:
    if value is None or operand is None:
        return False
    try:
        if operator == "$gt":
            return value > operand
        if operator == "$gte":
            return value >= operand
        if operator == "$lt":
            return value < operand
        return value <= operand
    except TypeError:
        return False


def _sort_key(value: Any) -> tuple[bool, Any]:
    if isinstance(value, (list, tuple, set, frozenset)):
        return (True, tuple(sorted(value)))
    return (value is not None, value)


__all__ = ["matches", "project", "sort_documents"]
