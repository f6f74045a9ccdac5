"""``order_by`` parsing and keyset cursors."""

from typing import Any, List, NamedTuple, Optional, Sequence

from sqlalchemy import and_, inspect, or_
from sqlalchemy.sql import ColumnElement

from app.client.errors import InvalidQueryError
from app.client.filters import column_names

SORT_DIRECTIONS = ("asc", "desc")
NULLS_PLACEMENTS = ("first", "last")


class OrderTerm(NamedTuple):
    """One ``ORDER BY`` term."""

    field: str
    expr: Any
    direction: str = "asc"
    nulls: Optional[str] = None

    def reversed(self) -> "OrderTerm":
        direction = "desc" if self.direction == "asc" else "asc"
        nulls = None
        if self.nulls is not None:
            nulls = "last" if self.nulls == "first" else "first"
        return self._replace(direction=direction, nulls=nulls)

    def clause(self):
        clause = self.expr.asc() if self.direction == "asc" else self.expr.desc()
        if self.nulls == "first":
            clause = clause.nulls_first()
        elif self.nulls == "last":
            clause = clause.nulls_last()
        return clause


def parse_direction(field: str, value: Any):
    if isinstance(value, str):
        direction, nulls = value, None
    elif isinstance(value, dict) and "sort" in value and set(value) <= {"sort", "nulls"}:
        direction, nulls = value["sort"], value.get("nulls")
    else:
        raise InvalidQueryError(f"Invalid sort order for '{field}'")

    if direction not in SORT_DIRECTIONS:
        raise InvalidQueryError(f"Sort order for '{field}' must be 'asc' or 'desc'")
    if nulls is not None and nulls not in NULLS_PLACEMENTS:
        raise InvalidQueryError(f"Nulls placement for '{field}' must be 'first' or 'last'")
    return direction, nulls


def iter_order_items(order_by: Any):
    """Yield ``(field, value)`` pairs from a dict or a list of dicts."""
    if order_by is None:
        return
    items = order_by if isinstance(order_by, (list, tuple)) else [order_by]
    for item in items:
        if not isinstance(item, dict):
            raise InvalidQueryError("order_by entries must be dicts")
        for field, value in item.items():
            yield field, value


def parse_order_by(model, order_by: Any) -> List[OrderTerm]:
    """Parse ``order_by`` into terms over the columns of ``model``."""
    columns = set(column_names(model))
    terms = []
    for field, value in iter_order_items(order_by):
        if field not in columns:
            raise InvalidQueryError(f"Cannot order {model.__name__} by '{field}'")
        direction, nulls = parse_direction(field, value)
        terms.append(OrderTerm(field, getattr(model, field), direction, nulls))
    return terms


def with_primary_key(model, terms: List[OrderTerm]) -> List[OrderTerm]:
    """Append the primary key so that the ordering is total."""
    present = {term.field for term in terms}
    mapper = inspect(model)
    extra = []
    for column in mapper.primary_key:
        key = mapper.get_property_by_column(column).key
        if key not in present:
            extra.append(OrderTerm(key, getattr(model, key)))
    return list(terms) + extra


def reverse_terms(terms: Sequence[OrderTerm]) -> List[OrderTerm]:
    return [term.reversed() for term in terms]


def cursor_condition(terms: Sequence[OrderTerm], values: Sequence[Any]) -> ColumnElement:
    """Rows at or after the cursor row in ``terms`` order (keyset pagination).

    NULL sort values at the cursor are not comparable; such rows drop out.
    """
    alternatives = []
    for index, term in enumerate(terms):
        equal_prefix = [terms[i].expr == values[i] for i in range(index)]
        beyond = term.expr > values[index] if term.direction == "asc" else term.expr < values[index]
        alternatives.append(and_(*equal_prefix, beyond))
    alternatives.append(and_(*[term.expr == value for term, value in zip(terms, values)]))
    return or_(*alternatives)
