from __future__ import annotations

from typing import Any, Mapping, Sequence

from sqlalchemy import Table, and_, any_, false, func, not_, or_, true
from sqlalchemy.sql.elements import ColumnElement

from .schema import CollectionSchema, FieldKind

# Mongo regex options mapped onto PostgreSQL ARE embedded options.
_PG_REGEX_OPTIONS = {"i": "i", "m": "n", "x": "x", "s": ""}


def compile_filter(
    table: Table,
    columns: Mapping[str, str],
    schema: CollectionSchema,
    filter: Mapping[str, Any],
) -> ColumnElement[bool]:
    """Compile a normalized filter into a SQLAlchemy boolean expression."""

    clauses: list[ColumnElement[bool]] = []
    for key, condition in filter.items():
        if key == "$and":
            clauses.append(and_(*(compile_filter(table, columns, schema, clause) for clause in condition)))
        elif key == "$or":
            clauses.append(or_(*(compile_filter(table, columns, schema, clause) for clause in condition)))
        elif key == "$nor":
            clauses.append(not_(or_(*(compile_filter(table, columns, schema, clause) for clause in condition))))
        else:
            column = table.c[columns[key]]
            clauses.append(_compile_operators(column, schema.kind_of(key), condition))
    if not clauses:
        return true()
    if len(clauses) == 1:
        return clauses[0]
    return and_(*clauses)


def compile_order_by(table: Table, columns: Mapping[str, str], sort: Sequence[tuple[str, int]]) -> list[Any]:
    order: list[Any] = []
    for field, direction in sort:
        column = table.c[columns[field]]
        # Mongo places nulls first on ascending sorts
        order.append(column.asc().nullsfirst() if direction > 0 else column.desc().nullslast())
    return order


def _compile_operators(column: Any, kind: FieldKind | None, operators: Mapping[str, Any]) -> ColumnElement[bool]:
    is_set = kind is FieldKind.ID_SET
    clauses: list[ColumnElement[bool]] = []
    for operator, operand in operators.items():
        if operator == "$eq":
            clauses.append(_equals(column, operand, is_set))
        elif operator == "$ne":
            clauses.append(_not_equals(column, operand, is_set))
        elif operator == "$in":
            clauses.append(_in(column, operand, is_set))
        elif operator == "$nin":
            clauses.append(not_(_in(column, operand, is_set)) if is_set else _not_in(column, operand))
        elif operator == "$gt":
            clauses.append(column > operand)
        elif operator == "$gte":
            clauses.append(column >= operand)
        elif operator == "$lt":
            clauses.append(column < operand)
        elif operator == "$lte":
            clauses.append(column <= operand)
        elif operator == "$exists":
            clauses.append(column.isnot(None) if operand else column.is_(None))
        elif operator == "$regex":
            clauses.append(_regex(column, operand, operators.get("$options", "")))
        elif operator == "$options":
            continue
        elif operator == "$all":
            clauses.append(column.contains(list(operand)))
        elif operator == "$size":
            clauses.append(func.coalesce(func.cardinality(column), 0) == operand)
        elif operator == "$not":
            clauses.append(not_(_compile_operators(column, kind, operand)))
        else:  # pragma: no cover - the translator rejects unknown operators
            raise ValueError(f"unsupported operator {operator}")
    if len(clauses) == 1:
        return clauses[0]
    return and_(*clauses)


def _equals(column: Any, operand: Any, is_set: bool) -> ColumnElement[bool]:
    if operand is None:
        return column.is_(None)
    if is_set:
        if isinstance(operand, list):
            return and_(column.contains(operand), column.contained_by(operand))
        return operand == any_(column)
    return column == operand


def _not_equals(column: Any, operand: Any, is_set: bool) -> ColumnElement[bool]:
    if operand is None:
        return column.isnot(None)
    if is_set:
        return not_(_equals(column, operand, is_set))
    return or_(column != operand, column.is_(None))


def _in(column: Any, operand: Sequence[Any], is_set: bool) -> ColumnElement[bool]:
    values = [value for value in operand if value is not None]
    if is_set:
        return column.overlap(values) if values else false()
    clause = column.in_(values) if values else false()
    if len(values) != len(operand):
        clause = or_(clause, column.is_(None))
    return clause


def _not_in(column: Any, operand: Sequence[Any]) -> ColumnElement[bool]:
    values = [value for value in operand if value is not None]
    clause = or_(column.notin_(values), column.is_(None)) if values else true()
    if len(values) != len(operand):
        clause = and_(clause, column.isnot(None))
    return clause


def _regex(column: Any, pattern: str, options: str) -> ColumnElement[bool]:
    embedded = "".join(_PG_REGEX_OPTIONS[flag] for flag in options)
    if embedded:
        pattern = f"(?{embedded}){pattern}"
    return column.op("~")(pattern)


__all__ = ["compile_filter", "compile_order_by"]
