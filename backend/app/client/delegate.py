"""Per-model delegate exposing the CRUD, aggregate and group-by operations."""

import logging
from typing import TYPE_CHECKING, Any, Dict, Generic, List, Optional, Sequence, Type, TypeVar, Union

from sqlalchemy import Integer, delete, false, func, insert, inspect, select, update
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import MANYTOONE

from app.client.aggregates import AggregateSelection, aggregate_statement, group_by_statement, shape_group
from app.client.errors import InvalidQueryError, RecordNotFoundError
from app.client.filters import build_where, column_names, normalize_unique_where
from app.client.include import attach_relation_counts, loader_options
from app.client.ordering import cursor_condition, parse_order_by, reverse_terms, with_primary_key

if TYPE_CHECKING:
    from app.client.client import DatabaseClient

logger = logging.getLogger(__name__)

TModel = TypeVar("TModel")

Where = Optional[Dict[str, Any]]
Include = Optional[Dict[str, Any]]
OrderBy = Optional[Union[Dict[str, Any], Sequence[Dict[str, Any]]]]

ATOMIC_OPERATIONS = ("set", "increment", "decrement", "multiply", "divide")
NESTED_WRITES = ("create", "connect")

_SKIP_DUPLICATES_INSERTS = {
    "postgresql": postgresql_insert,
    "sqlite": sqlite_insert,
}


def _as_list(value: Any) -> list:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def _update_value(model, field: str, value: Any) -> Any:
    """Plain values are assigned; ``{"increment": 1}`` style dicts become SQL."""
    if not isinstance(value, dict):
        return value
    if len(value) != 1 or next(iter(value)) not in ATOMIC_OPERATIONS:
        raise InvalidQueryError(
            f"Update of '{field}' must use exactly one of: {', '.join(ATOMIC_OPERATIONS)}"
        )

    operation, operand = next(iter(value.items()))
    if operation == "set":
        return operand
    if operand is None:
        raise InvalidQueryError(f"'{operation}' on '{field}' requires a number")

    column = getattr(model, field)
    if operation == "increment":
        return column + operand
    if operation == "decrement":
        return column - operand
    if operation == "multiply":
        return column * operand
    # Integer columns truncate on every backend, matching integer arithmetic
    if isinstance(inspect(model).columns[field].type, Integer):
        return column // operand
    return column / operand


class ModelDelegate(Generic[TModel]):
    """Query and write operations for one mapped model.

    Reads always refresh instances already present in the session so that
    results reflect the database, including rows changed by bulk writes.
    """

    def __init__(self, client: "DatabaseClient", model: Type[TModel]):
        self._client = client
        self.model = model
        self._mapper = inspect(model)
        self._columns = set(column_names(model))

    def __repr__(self) -> str:
        return f"<ModelDelegate({self.model.__name__})>"

    @property
    def _db(self):
        return self._client.db

    @property
    def _name(self) -> str:
        return self.model.__name__

    # -------------------------------------------------------------------------
    # READS
    # -------------------------------------------------------------------------

    async def _build_select(
        self,
        where: Where,
        order_by: OrderBy,
        skip: Optional[int],
        take: Optional[int],
        cursor: Where,
        distinct: Optional[Sequence[str]],
    ):
        """SELECT for a find/count/aggregate call, or None when the cursor row is gone."""
        if skip is not None and skip < 0:
            raise InvalidQueryError("skip must not be negative")

        terms = parse_order_by(self.model, order_by)
        backwards = take is not None and take < 0
        if cursor is not None or backwards:
            terms = with_primary_key(self.model, terms)
        if backwards:
            terms = reverse_terms(terms)

        stmt = select(self.model)
        criteria = build_where(self.model, where)
        if criteria is not None:
            stmt = stmt.where(criteria)

        if cursor is not None:
            cursor_where = build_where(self.model, normalize_unique_where(self.model, cursor))
            cursor_row = (
                await self._db.execute(select(*[term.expr for term in terms]).where(cursor_where))
            ).first()
            if cursor_row is None:
                return None
            stmt = stmt.where(cursor_condition(terms, list(cursor_row)))

        if terms:
            stmt = stmt.order_by(*[term.clause() for term in terms])
        if not distinct:
            if skip:
                stmt = stmt.offset(skip)
            if take is not None:
                stmt = stmt.limit(abs(take))
        return stmt

    def _distinct(self, records: list, distinct: Sequence[str], skip: Optional[int], take: Optional[int]) -> list:
        fields = _as_list(distinct)
        for field in fields:
            if field not in self._columns:
                raise InvalidQueryError(f"Unknown distinct field '{field}' for {self._name}")

        seen = set()
        unique = []
        for record in records:
            key = tuple(getattr(record, field) for field in fields)
            if key in seen:
                continue
            seen.add(key)
            unique.append(record)

        start = skip or 0
        end = None if take is None else start + abs(take)
        return unique[start:end]

    async def _fetch_unique(self, model, where: Where, include: Include = None):
        flat = normalize_unique_where(model, where)
        stmt = (
            select(model)
            .where(build_where(model, flat))
            .options(*loader_options(model, include))
            .execution_options(populate_existing=True)
        )
        record = (await self._db.execute(stmt)).scalars().first()
        if record is not None:
            await attach_relation_counts(self._db, model, [record], include)
        return record

    async def _require(self, model, where: Where):
        record = await self._fetch_unique(model, where)
        if record is None:
            raise RecordNotFoundError(f"No {model.__name__} record found to connect")
        return record

    async def find_unique(self, where: Dict[str, Any], include: Include = None) -> Optional[TModel]:
        """Find the record identified by a unique selector, or None."""
        return await self._fetch_unique(self.model, where, include)

    async def find_unique_or_raise(self, where: Dict[str, Any], include: Include = None) -> TModel:
        record = await self.find_unique(where, include)
        if record is None:
            raise RecordNotFoundError(f"No {self._name} record found")
        return record

    async def find_many(
        self,
        where: Where = None,
        order_by: OrderBy = None,
        skip: Optional[int] = None,
        take: Optional[int] = None,
        cursor: Where = None,
        distinct: Optional[Sequence[str]] = None,
        include: Include = None,
    ) -> List[TModel]:
        """Find every record matching ``where``.

        ``cursor`` starts the page at a unique row (inclusive), a negative
        ``take`` pages backwards and ``distinct`` keeps the first row per
        combination of the given fields.
        """
        stmt = await self._build_select(where, order_by, skip, take, cursor, distinct)
        if stmt is None:
            return []

        stmt = stmt.options(*loader_options(self.model, include)).execution_options(populate_existing=True)
        records = list((await self._db.execute(stmt)).scalars().all())

        if distinct:
            records = self._distinct(records, distinct, skip, take)
        if take is not None and take < 0:
            records.reverse()

        await attach_relation_counts(self._db, self.model, records, include)
        return records

    async def find_first(
        self,
        where: Where = None,
        order_by: OrderBy = None,
        skip: Optional[int] = None,
        cursor: Where = None,
        distinct: Optional[Sequence[str]] = None,
        include: Include = None,
    ) -> Optional[TModel]:
        records = await self.find_many(
            where=where,
            order_by=order_by,
            skip=skip,
            take=1,
            cursor=cursor,
            distinct=distinct,
            include=include,
        )
        return records[0] if records else None

    async def find_first_or_raise(self, **kwargs: Any) -> TModel:
        record = await self.find_first(**kwargs)
        if record is None:
            raise RecordNotFoundError(f"No {self._name} record found")
        return record

    # -------------------------------------------------------------------------
    # WRITES
    # -------------------------------------------------------------------------

    async def _build_instance(self, model, data: Dict[str, Any]):
        """Instantiate ``model`` from ``data``, resolving nested relation writes."""
        if not isinstance(data, dict):
            raise InvalidQueryError(f"Data for {model.__name__} must be a dict")

        mapper = inspect(model)
        columns = set(column_names(model))
        values = {}
        nested = []
        for key, value in data.items():
            if key in mapper.relationships:
                nested.append((mapper.relationships[key], value))
            elif key in columns:
                values[key] = value
            else:
                raise InvalidQueryError(f"Unknown field '{key}' for {model.__name__}")

        instance = model(**values)
        for rel, spec in nested:
            await self._nested_write(instance, rel, spec)
        return instance

    async def _nested_write(self, instance, rel, spec: Any) -> None:
        if not isinstance(spec, dict) or not spec or not set(spec) <= set(NESTED_WRITES):
            raise InvalidQueryError(f"Nested write for '{rel.key}' must use 'create' or 'connect'")
        target = rel.mapper.class_

        if rel.uselist:
            collection = getattr(instance, rel.key)
            for item in _as_list(spec.get("create")):
                collection.append(await self._build_instance(target, item))
            for selector in _as_list(spec.get("connect")):
                collection.append(await self._require(target, selector))
            return

        if len(spec) != 1:
            raise InvalidQueryError(f"Relation '{rel.key}' takes either 'create' or 'connect'")

        if "create" in spec:
            setattr(instance, rel.key, await self._build_instance(target, spec["create"]))
            return

        related = await self._require(target, spec["connect"])
        if rel.direction is MANYTOONE:
            # Set the foreign key directly; the parent's collection stays unloaded.
            local_mapper = inspect(type(instance))
            remote_mapper = inspect(target)
            for local_column, remote_column in rel.local_remote_pairs:
                local_key = local_mapper.get_property_by_column(local_column).key
                remote_key = remote_mapper.get_property_by_column(remote_column).key
                setattr(instance, local_key, getattr(related, remote_key))
        else:
            setattr(instance, rel.key, related)

    def _column_values(self, data: Dict[str, Any]) -> Dict[str, Any]:
        if not isinstance(data, dict):
            raise InvalidQueryError(f"Data for {self._name} must be a dict")
        for key in data:
            if key not in self._columns:
                raise InvalidQueryError(f"Unknown or relation field '{key}' for {self._name}")
        return dict(data)

    def _assign(self, instance, data: Dict[str, Any]) -> None:
        if not isinstance(data, dict):
            raise InvalidQueryError(f"Data for {self._name} must be a dict")
        values = {}
        for key, value in data.items():
            if key in self._mapper.relationships:
                raise InvalidQueryError(f"Relation '{key}' cannot be written through update")
            if key not in self._columns:
                raise InvalidQueryError(f"Unknown field '{key}' for {self._name}")
            values[key] = _update_value(self.model, key, value)
        # Nothing touches the instance until every field has been accepted
        for key, value in values.items():
            setattr(instance, key, value)

    async def _reload(self, instance, include: Include):
        """Re-select a just-written instance with the requested relations."""
        identity = inspect(instance).identity
        criteria = [column == value for column, value in zip(self._mapper.primary_key, identity)]
        stmt = (
            select(self.model)
            .where(*criteria)
            .options(*loader_options(self.model, include))
            .execution_options(populate_existing=True)
        )
        record = (await self._db.execute(stmt)).scalars().one()
        await attach_relation_counts(self._db, self.model, [record], include)
        return record

    async def create(self, data: Dict[str, Any], include: Include = None) -> TModel:
        """Insert one record.

        Relations in ``data`` accept ``{"create": ...}`` and
        ``{"connect": <unique selector>}``.
        """
        instance = await self._build_instance(self.model, data)

        async def operation():
            self._db.add(instance)

        await self._client._write(self.model, operation)
        logger.debug(f"Created {self._name} {inspect(instance).identity}")
        return await self._reload(instance, include)

    async def create_many(self, data: Sequence[Dict[str, Any]], skip_duplicates: bool = False) -> int:
        """Insert many records without nested writes; returns the number inserted."""
        rows = [self._column_values(item) for item in data]
        if not rows:
            return 0

        if not skip_duplicates:
            async def bulk_insert():
                await self._db.execute(insert(self.model), rows)
                return len(rows)

            return await self._client._write(self.model, bulk_insert)

        dialect = self._db.get_bind().dialect.name
        insert_for_dialect = _SKIP_DUPLICATES_INSERTS.get(dialect)
        if insert_for_dialect is None:
            raise InvalidQueryError(f"skip_duplicates is not supported on {dialect}")

        async def insert_new_rows():
            inserted = 0
            for row in rows:
                stmt = insert_for_dialect(self.model.__table__).values(**row).on_conflict_do_nothing()
                result = await self._db.execute(stmt)
                inserted += max(result.rowcount, 0)
            return inserted

        return await self._client._write(self.model, insert_new_rows)

    async def update(self, where: Dict[str, Any], data: Dict[str, Any], include: Include = None) -> TModel:
        """Update the record identified by ``where``.

        Numeric fields accept ``set``, ``increment``, ``decrement``,
        ``multiply`` and ``divide``, applied atomically in SQL.
        """
        instance = await self._fetch_unique(self.model, where)
        if instance is None:
            raise RecordNotFoundError(f"No {self._name} record found for update")

        async def operation():
            self._assign(instance, data)

        await self._client._write(self.model, operation)
        return await self._reload(instance, include)

    async def update_many(self, where: Where = None, data: Optional[Dict[str, Any]] = None) -> int:
        """Update every matching record; returns the number of rows matched."""
        if not isinstance(data, dict):
            raise InvalidQueryError(f"Data for {self._name} must be a dict")
        values = {}
        for key, value in data.items():
            if key not in self._columns:
                raise InvalidQueryError(f"Unknown or relation field '{key}' for {self._name}")
            values[key] = _update_value(self.model, key, value)
        if not values:
            return await self.count(where=where)

        stmt = update(self.model).values(**values).execution_options(synchronize_session=False)
        criteria = build_where(self.model, where)
        if criteria is not None:
            stmt = stmt.where(criteria)

        async def operation():
            return (await self._db.execute(stmt)).rowcount

        return await self._client._write(self.model, operation)

    async def upsert(
        self,
        where: Dict[str, Any],
        create: Dict[str, Any],
        update: Dict[str, Any],
        include: Include = None,
    ) -> TModel:
        """Update the record identified by ``where``, or create it from ``create``."""
        instance = await self._fetch_unique(self.model, where)
        if instance is None:
            return await self.create(create, include)

        if update:
            async def operation():
                self._assign(instance, update)

            await self._client._write(self.model, operation)
        return await self._reload(instance, include)

    async def delete(self, where: Dict[str, Any], include: Include = None) -> TModel:
        """Delete the record identified by ``where`` and return it as it was."""
        instance = await self._fetch_unique(self.model, where, include)
        if instance is None:
            raise RecordNotFoundError(f"No {self._name} record found for delete")

        async def operation():
            await self._db.delete(instance)

        await self._client._write(self.model, operation)
        logger.debug(f"Deleted {self._name} {inspect(instance).identity}")
        return instance

    async def delete_many(self, where: Where = None) -> int:
        """Delete every matching record; returns the number of rows deleted."""
        stmt = delete(self.model).execution_options(synchronize_session=False)
        criteria = build_where(self.model, where)
        if criteria is not None:
            stmt = stmt.where(criteria)

        async def operation():
            return (await self._db.execute(stmt)).rowcount

        return await self._client._write(self.model, operation)

    # -------------------------------------------------------------------------
    # AGGREGATES
    # -------------------------------------------------------------------------

    async def count(
        self,
        where: Where = None,
        order_by: OrderBy = None,
        skip: Optional[int] = None,
        take: Optional[int] = None,
        cursor: Where = None,
    ) -> int:
        if skip is None and take is None and cursor is None:
            stmt = select(func.count()).select_from(self.model)
            criteria = build_where(self.model, where)
            if criteria is not None:
                stmt = stmt.where(criteria)
        else:
            base = await self._build_select(where, order_by, skip, take, cursor, None)
            if base is None:
                return 0
            stmt = select(func.count()).select_from(base.subquery())
        return (await self._db.execute(stmt)).scalar_one()

    async def aggregate(
        self,
        where: Where = None,
        order_by: OrderBy = None,
        skip: Optional[int] = None,
        take: Optional[int] = None,
        cursor: Where = None,
        count: Any = None,
        avg: Any = None,
        sum: Any = None,
        min: Any = None,
        max: Any = None,
    ) -> Dict[str, Any]:
        """Aggregate over the matching rows.

        Returns ``{"_count": ..., "_avg": {...}, "_sum": {...}, "_min": {...},
        "_max": {...}}`` with only the requested keys present.
        """
        base = await self._build_select(where, order_by, skip, take, cursor, None)
        if base is None:
            base = select(self.model).where(false())

        selection = AggregateSelection(
            self.model, base.subquery(), count=count, avg=avg, sum=sum, min=min, max=max
        )
        row = (await self._db.execute(aggregate_statement(selection))).mappings().one()
        return selection.shape(row)

    async def group_by(
        self,
        by: Union[str, Sequence[str]],
        where: Where = None,
        having: Where = None,
        order_by: OrderBy = None,
        skip: Optional[int] = None,
        take: Optional[int] = None,
        count: Any = None,
        avg: Any = None,
        sum: Any = None,
        min: Any = None,
        max: Any = None,
    ) -> List[Dict[str, Any]]:
        """Group matching rows by ``by`` and aggregate each group."""
        fields = [by] if isinstance(by, str) else list(by)

        base = select(self.model)
        criteria = build_where(self.model, where)
        if criteria is not None:
            base = base.where(criteria)

        selection = AggregateSelection(
            self.model, base.subquery(), count=count, avg=avg, sum=sum, min=min, max=max
        )
        stmt, fields = group_by_statement(selection, fields, having, order_by, skip, take)
        rows = (await self._db.execute(stmt)).mappings().all()
        return [shape_group(selection, fields, row) for row in rows]
