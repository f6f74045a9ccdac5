"""Translate dict-style ``where`` filters into SQLAlchemy expressions.

A filter is a dict keyed by column names, relation names or the logical
keys ``AND`` / ``OR`` / ``NOT``::

    {
        "is_public": True,
        "name": {"contains": "road", "mode": "insensitive"},
        "user": {"is": {"email": {"endswith": "@example.com"}}},
        "songs": {"some": {"song": {"artist": "Queen"}}},
        "OR": [{"description": None}, {"description": {"not": ""}}],
    }
"""

from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import Index, UniqueConstraint, and_, false, func, inspect, not_, or_, true
from sqlalchemy.sql import ColumnElement

from app.client.errors import InvalidQueryError

LOGICAL_KEYS = ("AND", "OR", "NOT")

SCALAR_OPERATORS = frozenset({
    "equals",
    "not",
    "in",
    "not_in",
    "lt",
    "lte",
    "gt",
    "gte",
    "contains",
    "startswith",
    "endswith",
    "mode",
})

QUERY_MODES = ("default", "insensitive")


def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def column_names(model) -> List[str]:
    """Attribute names of the mapped columns of ``model``."""
    return [prop.key for prop in inspect(model).column_attrs]


def relationship_names(model) -> List[str]:
    return [rel.key for rel in inspect(model).relationships]


def _fold_case(value: Any, insensitive: bool) -> Any:
    return value.lower() if insensitive and isinstance(value, str) else value


def _apply_operator(expr, operator: str, operand: Any, insensitive: bool) -> ColumnElement:
    lowered = func.lower(expr) if insensitive else expr

    if operator == "equals":
        if operand is None:
            return expr.is_(None)
        return lowered == _fold_case(operand, insensitive)

    if operator == "not":
        if operand is None:
            return expr.is_not(None)
        if isinstance(operand, dict):
            nested = dict(operand)
            if insensitive:
                nested.setdefault("mode", "insensitive")
            return not_(scalar_condition(expr, nested))
        return lowered != _fold_case(operand, insensitive)

    if operator in ("in", "not_in"):
        if not isinstance(operand, (list, tuple, set, frozenset)):
            raise InvalidQueryError(f"Operator '{operator}' expects a list")
        values = [_fold_case(item, insensitive) for item in operand]
        return lowered.in_(values) if operator == "in" else lowered.not_in(values)

    if operator == "lt":
        return expr < operand
    if operator == "lte":
        return expr <= operand
    if operator == "gt":
        return expr > operand
    if operator == "gte":
        return expr >= operand

    if not isinstance(operand, str):
        raise InvalidQueryError(f"Operator '{operator}' expects a string")
    if operator == "contains":
        return expr.icontains(operand, autoescape=True) if insensitive else expr.contains(operand, autoescape=True)
    if operator == "startswith":
        return expr.istartswith(operand, autoescape=True) if insensitive else expr.startswith(operand, autoescape=True)
    if operator == "endswith":
        return expr.iendswith(operand, autoescape=True) if insensitive else expr.endswith(operand, autoescape=True)

    raise InvalidQueryError(f"Unknown filter operator '{operator}'")


def scalar_condition(expr, value: Any) -> ColumnElement:
    """Build the condition for one column (or aggregate) expression.

    A bare value means equality; a dict is a set of operators that must all
    hold.
    """
    if not isinstance(value, dict):
        return expr.is_(None) if value is None else expr == value

    unknown = set(value) - SCALAR_OPERATORS
    if unknown:
        raise InvalidQueryError(f"Unknown filter operator(s): {', '.join(sorted(unknown))}")

    mode = value.get("mode", "default")
    if mode not in QUERY_MODES:
        raise InvalidQueryError(f"Unknown query mode '{mode}'")
    insensitive = mode == "insensitive"

    conditions = [
        _apply_operator(expr, operator, operand, insensitive)
        for operator, operand in value.items()
        if operator != "mode"
    ]
    return and_(true(), *conditions)


def _relation_condition(model, rel, value: Any) -> ColumnElement:
    attr = getattr(model, rel.key)
    target = rel.mapper.class_

    if rel.uselist:
        if not isinstance(value, dict) or not value or not set(value) <= {"some", "every", "none"}:
            raise InvalidQueryError(
                f"Filter on list relation '{rel.key}' must use 'some', 'every' or 'none'"
            )
        conditions = []
        for operator, nested in value.items():
            criteria = combine(target, nested or {})
            if operator == "some":
                conditions.append(attr.any(criteria))
            elif operator == "none":
                conditions.append(not_(attr.any(criteria)))
            else:
                conditions.append(not_(attr.any(not_(criteria))))
        return and_(true(), *conditions)

    if value is None:
        return not_(attr.has())

    if not isinstance(value, dict):
        raise InvalidQueryError(f"Filter on relation '{rel.key}' must be a dict or None")

    if value and set(value) <= {"is", "is_not"}:
        conditions = []
        for operator, nested in value.items():
            if nested is None:
                condition = not_(attr.has()) if operator == "is" else attr.has()
            else:
                condition = attr.has(combine(target, nested))
                if operator == "is_not":
                    condition = not_(condition)
            conditions.append(condition)
        return and_(true(), *conditions)

    return attr.has(combine(target, value))


def conditions_for(model, where: Optional[Dict[str, Any]]) -> List[ColumnElement]:
    """Return the list of conditions a ``where`` dict expands to."""
    if where is None:
        return []
    if not isinstance(where, dict):
        raise InvalidQueryError(f"Filter for {model.__name__} must be a dict")

    mapper = inspect(model)
    columns = set(column_names(model))
    conditions = []

    for key, value in where.items():
        if key == "AND":
            conditions.append(and_(true(), *[combine(model, item) for item in _as_list(value)]))
        elif key == "OR":
            conditions.append(or_(false(), *[combine(model, item) for item in _as_list(value)]))
        elif key == "NOT":
            conditions.extend(not_(combine(model, item)) for item in _as_list(value))
        elif key in mapper.relationships:
            conditions.append(_relation_condition(model, mapper.relationships[key], value))
        elif key in columns:
            conditions.append(scalar_condition(getattr(model, key), value))
        else:
            raise InvalidQueryError(f"Unknown field '{key}' for {model.__name__}")

    return conditions


def combine(model, where: Optional[Dict[str, Any]]) -> ColumnElement:
    """AND together every condition of ``where`` (an empty filter is true)."""
    return and_(true(), *conditions_for(model, where))


def build_where(model, where: Optional[Dict[str, Any]]) -> Optional[ColumnElement]:
    """Single WHERE expression for ``where``, or None when it filters nothing."""
    conditions = conditions_for(model, where)
    if not conditions:
        return None
    return and_(*conditions) if len(conditions) > 1 else conditions[0]


# -------------------------------------------------------------------------
# UNIQUE SELECTORS
# -------------------------------------------------------------------------


def unique_keys(model) -> List[Tuple[str, ...]]:
    """Every set of attributes that identifies at most one row of ``model``.

    The primary key comes first, then unique columns, then compound unique
    constraints and unique indexes.
    """
    mapper = inspect(model)
    table = mapper.local_table

    def key_for(column) -> str:
        return mapper.get_property_by_column(column).key

    keys: List[Tuple[str, ...]] = [tuple(key_for(column) for column in mapper.primary_key)]
    for column in table.columns:
        if column.unique:
            keys.append((key_for(column),))
    for constraint in table.constraints:
        if isinstance(constraint, UniqueConstraint):
            keys.append(tuple(key_for(column) for column in constraint.columns))
    for index in table.indexes:
        if isinstance(index, Index) and index.unique:
            keys.append(tuple(key_for(column) for column in index.columns))

    seen = set()
    ordered = []
    for key in keys:
        if key and key not in seen:
            seen.add(key)
            ordered.append(key)
    return ordered


def compound_key_name(fields: Iterable[str]) -> str:
    """Name of a compound selector, e.g. ``playlist_id_song_id``."""
    return "_".join(fields)


def normalize_unique_where(model, where: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Validate a unique selector and flatten compound keys.

    ``{"playlist_id_song_id": {"playlist_id": a, "song_id": b}}`` becomes
    ``{"playlist_id": a, "song_id": b}``. Raises ``InvalidQueryError`` when no
    unique key is fully specified by plain equality values.
    """
    if not isinstance(where, dict) or not where:
        raise InvalidQueryError(f"A unique selector is required for {model.__name__}")

    keys = unique_keys(model)
    compound = {compound_key_name(key): key for key in keys if len(key) > 1}

    flat: Dict[str, Any] = {}
    for name, value in where.items():
        if name in compound:
            if not isinstance(value, dict) or set(value) != set(compound[name]):
                raise InvalidQueryError(
                    f"Compound selector '{name}' requires exactly: {', '.join(compound[name])}"
                )
            flat.update(value)
        else:
            flat[name] = value

    equality = {
        name
        for name, value in flat.items()
        if name not in LOGICAL_KEYS and value is not None and not isinstance(value, (dict, list))
    }
    if not any(set(key) <= equality for key in keys):
        options = " | ".join(", ".join(key) for key in keys)
        raise InvalidQueryError(
            f"Selector for {model.__name__} must identify a unique record ({options})"
        )
    return flat
