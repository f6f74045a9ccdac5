"""Eager loading of related records and relation counts."""

from typing import Any, Dict, List, Optional

from sqlalchemy import func, inspect, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.client.errors import InvalidQueryError
from app.client.filters import build_where


COUNT_KEY = "_count"
INCLUDE_OPTIONS = frozenset({"include", "where"})


def _relationship(model, name: str):
    relationships = inspect(model).relationships
    if name not in relationships:
        raise InvalidQueryError(f"Unknown relation '{name}' for {model.__name__}")
    return relationships[name]


def loader_options(model, include: Optional[Dict[str, Any]]) -> list:
    """Build ``selectinload`` options for an ``include`` dict.

    Each value is ``True`` or a dict with an optional nested ``include`` and,
    for list relations, a ``where`` filter.
    """
    if not include:
        return []
    if not isinstance(include, dict):
        raise InvalidQueryError("include must be a dict")

    options = []
    for name, spec in include.items():
        if name == COUNT_KEY or not spec:
            continue
        rel = _relationship(model, name)
        attr = getattr(model, name)
        target = rel.mapper.class_

        if spec is True:
            options.append(selectinload(attr))
            continue
        if not isinstance(spec, dict) or not set(spec) <= INCLUDE_OPTIONS:
            raise InvalidQueryError(f"Invalid include for '{name}'")

        if spec.get("where"):
            if not rel.uselist:
                raise InvalidQueryError(f"Relation '{name}' is not a list and cannot be filtered")
            criteria = build_where(target, spec["where"])
            if criteria is not None:
                attr = attr.and_(criteria)

        loader = selectinload(attr)
        nested = loader_options(target, spec.get("include"))
        if nested:
            loader = loader.options(*nested)
        options.append(loader)
    return options


def count_relations(model, spec: Any) -> List[str]:
    """Relation names requested by a ``_count`` spec."""
    relationships = inspect(model).relationships
    if spec is True:
        return [rel.key for rel in relationships if rel.uselist]
    if isinstance(spec, (list, tuple)):
        names = list(spec)
    elif isinstance(spec, dict):
        names = [name for name, wanted in spec.items() if wanted]
    else:
        raise InvalidQueryError("_count must be True, a list or a dict of relation names")

    for name in names:
        rel = _relationship(model, name)
        if not rel.uselist:
            raise InvalidQueryError(f"Cannot count to-one relation '{name}'")
    return names


async def _count_relation(db: AsyncSession, model, records: list, name: str) -> None:
    rel = _relationship(model, name)
    if len(rel.local_remote_pairs) != 1:
        raise InvalidQueryError(f"Cannot count relation '{name}' with a composite key")

    local_column, remote_column = rel.local_remote_pairs[0]
    local_key = inspect(model).get_property_by_column(local_column).key
    keys = {getattr(record, local_key) for record in records}

    stmt = (
        select(remote_column, func.count())
        .where(remote_column.in_(keys))
        .group_by(remote_column)
    )
    counts = dict((await db.execute(stmt)).all())

    for record in records:
        record.relation_counts[name] = counts.get(getattr(record, local_key), 0)


async def attach_relation_counts(
    db: AsyncSession,
    model,
    records: list,
    include: Optional[Dict[str, Any]],
) -> None:
    """Populate ``record.relation_counts`` wherever ``include`` asks for ``_count``.

    Walks nested includes so that counts can be requested at any depth.
    """
    records = [record for record in records if record is not None]
    if not records or not include:
        return

    if include.get(COUNT_KEY):
        names = count_relations(model, include[COUNT_KEY])
        for record in records:
            record.relation_counts = {}
        for name in names:
            await _count_relation(db, model, records, name)

    for name, spec in include.items():
        if name == COUNT_KEY or not isinstance(spec, dict) or not spec.get("include"):
            continue
        rel = _relationship(model, name)
        children = []
        for record in records:
            value = getattr(record, name)
            if value is None:
                continue
            children.extend(value if rel.uselist else [value])
        await attach_relation_counts(db, rel.mapper.class_, children, spec["include"])
