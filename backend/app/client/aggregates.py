"""``aggregate`` and ``group_by`` query building.

Both operate over a subquery of the already filtered (and possibly
paginated) rows, so ``where`` / ``skip`` / ``take`` narrow the input set
before any aggregate is computed.
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import Integer, Numeric, and_, false, func, inspect, not_, or_, select, true
from sqlalchemy.sql import ColumnElement

from app.client.errors import InvalidQueryError
from app.client.filters import LOGICAL_KEYS, column_names, scalar_condition
from app.client.ordering import OrderTerm, iter_order_items, parse_direction

COUNT = "_count"
AVG = "_avg"
SUM = "_sum"
MIN = "_min"
MAX = "_max"
ALL = "_all"

AGGREGATE_KEYS = (COUNT, AVG, SUM, MIN, MAX)
NUMERIC_ONLY = (AVG, SUM)

_FUNCTIONS = {
    AVG: func.avg,
    SUM: func.sum,
    MIN: func.min,
    MAX: func.max,
}


def _requested_fields(spec: Any, option: str) -> List[str]:
    if spec is None or spec is False:
        return []
    if isinstance(spec, (list, tuple)):
        return list(spec)
    if isinstance(spec, dict):
        return [name for name, wanted in spec.items() if wanted]
    raise InvalidQueryError(f"'{option}' expects a list or dict of field names")


class AggregateSelection:
    """The aggregates requested by a call, bound to the columns of a subquery."""

    def __init__(self, model, source, count: Any = None, avg: Any = None, sum: Any = None,
                 min: Any = None, max: Any = None):
        self.model = model
        self.source = source
        self.field_names = set(column_names(model))
        self._mapper = inspect(model)
        self.count_all = count is True
        self.fields: Dict[str, List[str]] = {
            COUNT: [] if count is True else _requested_fields(count, "count"),
            AVG: _requested_fields(avg, "avg"),
            SUM: _requested_fields(sum, "sum"),
            MIN: _requested_fields(min, "min"),
            MAX: _requested_fields(max, "max"),
        }
        for group, names in self.fields.items():
            for name in names:
                if group == COUNT and name == ALL:
                    continue
                self._check_field(group, name)

    def column(self, name: str):
        column = self._mapper.columns[name]
        return self.source.c[column.name]

    def _check_field(self, group: str, name: str) -> None:
        if name not in self.field_names:
            raise InvalidQueryError(f"Unknown field '{name}' for {self.model.__name__}")
        if group in NUMERIC_ONLY:
            column_type = self._mapper.columns[name].type
            if not isinstance(column_type, (Integer, Numeric)):
                raise InvalidQueryError(f"Cannot compute {group} of non-numeric field '{name}'")

    def expression(self, group: str, name: str) -> ColumnElement:
        """SQL expression for one aggregate of one field."""
        if group == COUNT:
            return func.count() if name == ALL else func.count(self.column(name))
        if group not in _FUNCTIONS:
            raise InvalidQueryError(f"Unknown aggregate '{group}'")
        self._check_field(group, name)
        return _FUNCTIONS[group](self.column(name))

    def labelled(self) -> List[ColumnElement]:
        expressions = []
        if self.count_all:
            expressions.append(func.count().label(COUNT))
        for group, names in self.fields.items():
            for name in names:
                expressions.append(self.expression(group, name).label(f"{group}__{name}"))
        return expressions

    @property
    def is_empty(self) -> bool:
        return not self.count_all and not any(self.fields.values())

    def shape(self, row: Dict[str, Any]) -> Dict[str, Any]:
        """Fold flat labelled values back into ``{"_avg": {...}, ...}``."""
        result: Dict[str, Any] = {}
        if self.count_all:
            result[COUNT] = row[COUNT] or 0
        for group, names in self.fields.items():
            if not names:
                continue
            values = result.setdefault(group, {})
            for name in names:
                value = row[f"{group}__{name}"]
                if group == COUNT:
                    value = value or 0
                elif group == AVG and value is not None:
                    value = float(value)
                elif isinstance(value, Decimal):
                    value = float(value)
                values[name] = value
        return result


def aggregate_statement(selection: AggregateSelection):
    if selection.is_empty:
        raise InvalidQueryError("aggregate requires at least one of count, avg, sum, min or max")
    return select(*selection.labelled()).select_from(selection.source)


def _having_conditions(selection: AggregateSelection, by: Sequence[str], having: Any) -> List[ColumnElement]:
    if having is None:
        return []
    if not isinstance(having, dict):
        raise InvalidQueryError("having must be a dict")

    conditions = []
    for key, value in having.items():
        if key in LOGICAL_KEYS:
            items = value if isinstance(value, (list, tuple)) else [value]
            nested = [and_(true(), *_having_conditions(selection, by, item)) for item in items]
            if key == "AND":
                conditions.append(and_(true(), *nested))
            elif key == "OR":
                conditions.append(or_(false(), *nested))
            else:
                conditions.extend(not_(item) for item in nested)
            continue

        if key not in selection.field_names:
            raise InvalidQueryError(f"Unknown field '{key}' in having")

        if isinstance(value, dict) and value and set(value) <= set(AGGREGATE_KEYS):
            for group, operators in value.items():
                conditions.append(scalar_condition(selection.expression(group, key), operators))
        elif key in by:
            conditions.append(scalar_condition(selection.column(key), value))
        else:
            raise InvalidQueryError(
                f"Field '{key}' in having must be grouped by or filtered through an aggregate"
            )
    return conditions


def _group_order_terms(selection: AggregateSelection, by: Sequence[str], order_by: Any) -> List[OrderTerm]:
    terms = []
    for key, value in iter_order_items(order_by):
        if key in AGGREGATE_KEYS:
            if not isinstance(value, dict):
                raise InvalidQueryError(f"order_by '{key}' expects a dict of field directions")
            for name, direction_spec in value.items():
                direction, nulls = parse_direction(name, direction_spec)
                terms.append(OrderTerm(f"{key}.{name}", selection.expression(key, name), direction, nulls))
        elif key in by:
            direction, nulls = parse_direction(key, value)
            terms.append(OrderTerm(key, selection.column(key), direction, nulls))
        else:
            raise InvalidQueryError(f"Cannot order grouped results by '{key}': it is not in 'by'")
    return terms


def group_by_statement(
    selection: AggregateSelection,
    by: Sequence[str],
    having: Any = None,
    order_by: Any = None,
    skip: Optional[int] = None,
    take: Optional[int] = None,
) -> Tuple[Any, List[str]]:
    if not by:
        raise InvalidQueryError("group_by requires at least one 'by' field")
    for name in by:
        if name not in selection.field_names:
            raise InvalidQueryError(f"Unknown field '{name}' for {selection.model.__name__}")
    if (skip is not None or take is not None) and not order_by:
        raise InvalidQueryError("group_by with skip or take requires order_by")
    if skip is not None and skip < 0:
        raise InvalidQueryError("skip must not be negative")
    if take is not None and take < 0:
        raise InvalidQueryError("take must not be negative in group_by")

    by_columns = [selection.column(name).label(name) for name in by]
    stmt = select(*by_columns, *selection.labelled()).group_by(*[selection.column(name) for name in by])

    conditions = _having_conditions(selection, by, having)
    if conditions:
        stmt = stmt.having(and_(*conditions))

    terms = _group_order_terms(selection, by, order_by)
    if terms:
        stmt = stmt.order_by(*[term.clause() for term in terms])
    if skip:
        stmt = stmt.offset(skip)
    if take is not None:
        stmt = stmt.limit(take)
    return stmt, list(by)


def shape_group(selection: AggregateSelection, by: Sequence[str], row: Dict[str, Any]) -> Dict[str, Any]:
    result = {name: row[name] for name in by}
    result.update(selection.shape(row))
    return result
