"""Read layer over the session's current branches.

``QuerySet`` values are immutable id selections; every refinement returns a
new query set. Rows are resolved against the session's current state, so
pending mutations never show up here.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, TypeAlias, cast

from ormstate.domain.branch import access_by_id, normalize_ids
from ormstate.domain.entity import Entity
from ormstate.domain.errors import DoesNotExistError, MultipleResultsError
from ormstate.domain.mutations import Create, Delete, Update

if TYPE_CHECKING:
    from collections.abc import Callable, Hashable, Iterable, Iterator, Mapping

    from ormstate.domain.branch import Branch, Patch, Record
    from ormstate.domain.schema import Schema
    from ormstate.domain.session import Session

Predicate: TypeAlias = "Callable[[Record], bool]"
SortKey: TypeAlias = "str | Callable[[Record], Any]"


def _matcher(predicate: Predicate | None, lookups: Mapping[str, Any]) -> Predicate:
    def matches(record: Record) -> bool:
        if predicate is not None and not predicate(record):
            return False
        return all(
            field_name in record and record[field_name] == expected
            for field_name, expected in lookups.items()
        )

    return matches


def _sort_value(record: Record, field_name: str) -> tuple[bool, Any]:
    value = record.get(field_name)
    return (value is None, value)


class QuerySet:
    __slots__ = ("_ids", "schema", "session")

    def __init__(self, schema: Schema, session: Session, ids: Iterable[Hashable]) -> None:
        self.schema = schema
        self.session = session
        self._ids = tuple(ids)

    def __repr__(self) -> str:
        return f"<QuerySet {self.schema.name} ids={list(self.ids())!r}>"

    def _branch(self) -> Branch:
        return self.session.branch_for(self.schema.name)

    def _derive(self, ids: Iterable[Hashable]) -> QuerySet:
        return QuerySet(self.schema, self.session, ids)

    def _wrap(self, record: Record) -> Entity:
        return Entity(self.schema, self.session, record)

    def records(self) -> Iterator[Record]:
        branch = self._branch()
        for id_value in self._ids:
            record = access_by_id(branch, id_value)
            if record is not None:
                yield record

    def ids(self) -> list[Hashable]:
        return [record[self.schema.id_attribute] for record in self.records()]

    def __iter__(self) -> Iterator[Entity]:
        return (self._wrap(record) for record in self.records())

    def __len__(self) -> int:
        return self.count()

    def __bool__(self) -> bool:
        return self.exists()

    def count(self) -> int:
        return sum(1 for _ in self.records())

    def exists(self) -> bool:
        return any(True for _ in self.records())

    def all(self) -> QuerySet:
        return self._derive(self._ids)

    def filter(self, predicate: Predicate | None = None, /, **lookups: Any) -> QuerySet:
        matches = _matcher(predicate, lookups)
        id_attribute = self.schema.id_attribute
        return self._derive(record[id_attribute] for record in self.records() if matches(record))

    def exclude(self, predicate: Predicate | None = None, /, **lookups: Any) -> QuerySet:
        matches = _matcher(predicate, lookups)
        id_attribute = self.schema.id_attribute
        return self._derive(
            record[id_attribute] for record in self.records() if not matches(record)
        )

    def order_by(self, *keys: SortKey) -> QuerySet:
        """Sort by field names (``"-name"`` for descending) or key callables.

        Sorting is stable; earlier keys take precedence.
        """

        records = list(self.records())
        for key in reversed(keys):
            if callable(key):
                records.sort(key=key)
                continue
            descending = key.startswith("-")
            field_name = key.removeprefix("-")
            records.sort(
                key=lambda record, f=field_name: _sort_value(record, f),
                reverse=descending,
            )
        id_attribute = self.schema.id_attribute
        return self._derive(record[id_attribute] for record in records)

    def first(self) -> Entity | None:
        record = next(self.records(), None)
        return None if record is None else self._wrap(record)

    def last(self) -> Entity | None:
        records = list(self.records())
        return self._wrap(records[-1]) if records else None

    def get(self, predicate: Predicate | None = None, /, **lookups: Any) -> Entity:
        """Return the single matching row.

        Raises:
            DoesNotExistError: when nothing matches.
            MultipleResultsError: when more than one row matches.
        """

        matches = [record for record in self.records() if _matcher(predicate, lookups)(record)]
        if not matches:
            raise DoesNotExistError(f"No {self.schema.name} matches {lookups!r}")
        if len(matches) > 1:
            raise MultipleResultsError(
                f"{len(matches)} {self.schema.name} rows match {lookups!r}"
            )
        return self._wrap(matches[0])

    def to_plain(self) -> list[dict[str, Any]]:
        return [dict(record) for record in self.records()]

    def update(self, patch: Patch) -> None:
        """Record a single Update covering every row in the selection."""
        ids = self.ids()
        if ids:
            self.session.add_mutation(Update(self.schema.name, ids, patch))

    def delete(self) -> None:
        ids = self.ids()
        if ids:
            self.session.add_mutation(Delete(self.schema.name, ids))


class Manager:
    """Entry point for querying and creating rows of one entity."""

    __slots__ = ("schema", "session")

    def __init__(self, schema: Schema, session: Session) -> None:
        self.schema = schema
        self.session = session

    def __repr__(self) -> str:
        return f"<Manager {self.schema.name}>"

    def get_queryset(self) -> QuerySet:
        branch = self.session.branch_for(self.schema.name)
        return QuerySet(self.schema, self.session, branch.id_array)

    def __iter__(self) -> Iterator[Entity]:
        return iter(self.get_queryset())

    def __len__(self) -> int:
        return self.count()

    def all(self) -> QuerySet:
        return self.get_queryset()

    def ids(self) -> list[Hashable]:
        return self.get_queryset().ids()

    def by_ids(self, ids: Iterable[Hashable]) -> QuerySet:
        """Select ``ids`` in the given order; ids without a row are dropped."""
        return QuerySet(self.schema, self.session, dict.fromkeys(ids))

    def with_id(self, id_value: Hashable) -> Entity | None:
        branch = self.session.branch_for(self.schema.name)
        record = access_by_id(branch, id_value)
        return None if record is None else Entity(self.schema, self.session, record)

    def filter(self, predicate: Predicate | None = None, /, **lookups: Any) -> QuerySet:
        return self.get_queryset().filter(predicate, **lookups)

    def exclude(self, predicate: Predicate | None = None, /, **lookups: Any) -> QuerySet:
        return self.get_queryset().exclude(predicate, **lookups)

    def order_by(self, *keys: SortKey) -> QuerySet:
        return self.get_queryset().order_by(*keys)

    def get(self, predicate: Predicate | None = None, /, **lookups: Any) -> Entity:
        return self.get_queryset().get(predicate, **lookups)

    def first(self) -> Entity | None:
        return self.get_queryset().first()

    def last(self) -> Entity | None:
        return self.get_queryset().last()

    def count(self) -> int:
        return self.get_queryset().count()

    def exists(self) -> bool:
        return self.get_queryset().exists()

    def create(self, payload: Mapping[str, Any]) -> Entity:
        """Record a Create and return a facade for the new row.

        Many-to-many values in ``payload`` (ids or facades) become through
        rows instead of record fields.
        """

        relations = {name: payload[name] for name in self.schema.relations if name in payload}
        fields = {name: value for name, value in payload.items() if name not in relations}
        record = cast("Create", self.session.add_mutation(Create(self.schema.name, fields)))
        entity = Entity(self.schema, self.session, record.payload)
        for field_name, targets in relations.items():
            if isinstance(targets, Entity):
                entity.add_related(field_name, targets)
            else:
                entity.add_related(field_name, *normalize_ids(targets))
        return entity
