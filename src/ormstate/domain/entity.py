"""Entity facade: a point-in-time view of one record.

Reads come from the snapshot captured at construction. Writes never touch
that snapshot; they append mutation records to the session, so their effect
shows up only in the next derived branch.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from ormstate.domain.branch import normalize_ids
from ormstate.domain.errors import InvalidMutationError, SchemaError
from ormstate.domain.fields import ForeignKey, ManyToMany
from ormstate.domain.mutations import Create, Delete, Update

if TYPE_CHECKING:
    from collections.abc import Hashable, Iterator, Mapping

    from ormstate.domain.branch import Patch, Record
    from ormstate.domain.query import QuerySet
    from ormstate.domain.schema import Schema, ThroughLink
    from ormstate.domain.session import Session


class Entity:
    __slots__ = ("_record", "schema", "session")

    def __init__(self, schema: Schema, session: Session, record: Mapping[str, Any]) -> None:
        self.schema = schema
        self.session = session
        self._record: Record = MappingProxyType(dict(record))

    @property
    def id(self) -> Hashable:
        return self._record.get(self.schema.id_attribute)

    @property
    def fields(self) -> Record:
        return self._record

    def __getitem__(self, field_name: str) -> Any:
        return self._record[field_name]

    def __contains__(self, field_name: object) -> bool:
        return field_name in self._record

    def get(self, field_name: str, default: Any = None) -> Any:
        return self._record.get(field_name, default)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Entity):
            return NotImplemented
        return self.schema.name == other.schema.name and self.id == other.id

    def __hash__(self) -> int:
        return hash((self.schema.name, self.id))

    def __str__(self) -> str:
        fields = ", ".join(f"{name}: {value}" for name, value in self._record.items())
        return f"{self.schema.name}: {{{fields}}}"

    def __repr__(self) -> str:
        return f"<Entity {self.schema.name} id={self.id!r}>"

    def to_plain(self) -> dict[str, Any]:
        return dict(self._record)

    # Writes

    def set(self, field_name: str, value: Any) -> None:
        self.update({field_name: value})

    def update(self, patch: Patch) -> None:
        """Record one Update for this id, however many fields ``patch`` holds."""
        self.session.add_mutation(Update(self.schema.name, (self._require_id(),), patch))

    def delete(self) -> None:
        """Record this row for deletion. The facade itself stays readable."""
        self.session.add_mutation(Delete(self.schema.name, (self._require_id(),)))

    def _require_id(self) -> Hashable:
        id_value = self.id
        if id_value is None:
            raise InvalidMutationError(f"{self.schema.name} record has no id to address")
        return id_value

    # Relations

    def related(self, field_name: str) -> Entity | QuerySet | None:
        """Follow a relational field.

        A foreign key resolves to the referenced facade (``None`` when unset or
        dangling); a many-to-many field resolves to a query set of targets, in
        through-row order.
        """

        kind = self.schema.fields.get(field_name)
        if isinstance(kind, ForeignKey):
            value = self._record.get(field_name)
            if value is None:
                return None
            return self.session.manager(kind.resolve_target(self.schema.name)).with_id(value)
        if isinstance(kind, ManyToMany):
            link = self._link(field_name)
            target_ids = [row[link.to_field] for row in self._through_rows(link)]
            return self.session.manager(link.target).by_ids(target_ids)
        raise SchemaError(f"{self.schema.name}.{field_name} is not a relational field")

    def add_related(self, field_name: str, *targets: object) -> None:
        link = self._link(field_name)
        own_id = self._require_id()
        for target_id in _target_ids(targets):
            self.session.add_mutation(
                Create(link.through, {link.from_field: own_id, link.to_field: target_id})
            )

    def remove_related(self, field_name: str, *targets: object) -> None:
        """Delete the through rows linking this row to ``targets``.

        Only rows present in the session's current state are considered.
        """

        link = self._link(field_name)
        doomed = set(_target_ids(targets))
        rows = [row for row in self._through_rows(link) if row[link.to_field] in doomed]
        self._delete_through_rows(link, rows)

    def clear_related(self, field_name: str) -> None:
        link = self._link(field_name)
        self._delete_through_rows(link, list(self._through_rows(link)))

    def _link(self, field_name: str) -> ThroughLink:
        link = self.schema.relations.get(field_name)
        if link is None:
            raise SchemaError(f"{self.schema.name}.{field_name} is not a many-to-many field")
        return link

    def _through_rows(self, link: ThroughLink) -> Iterator[Record]:
        own_id = self.id
        for row in self.session.manager(link.through).all().records():
            if row.get(link.from_field) == own_id:
                yield row

    def _delete_through_rows(self, link: ThroughLink, rows: list[Record]) -> None:
        if not rows:
            return
        id_attribute = self.session.get_schema(link.through).id_attribute
        self.session.add_mutation(Delete(link.through, tuple(row[id_attribute] for row in rows)))


def _target_ids(targets: tuple[object, ...]) -> list[Hashable]:
    ids: list[Hashable] = []
    for target in targets:
        if isinstance(target, Entity):
            ids.append(target.id)
        else:
            ids.extend(normalize_ids(target))
    return ids
