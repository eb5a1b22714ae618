"""Branch algebra: pure operations on one entity's normalized table.

A ``Branch`` is never mutated. Every write returns a new branch; a write that
matches nothing returns the input branch itself.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, TypeAlias

from ormstate.domain.errors import DuplicateIdError

if TYPE_CHECKING:
    from collections.abc import Hashable, Iterator

    from ormstate.domain.schema import Schema

Record: TypeAlias = "Mapping[str, Any]"
Patch: TypeAlias = "Mapping[str, Any] | Callable[[Record], Mapping[str, Any] | None]"
IdSelector: TypeAlias = "Hashable | Iterable[Hashable]"


def _empty_items() -> Mapping[Hashable, Record]:
    return MappingProxyType({})


@dataclass(frozen=True, slots=True)
class Branch:
    """Normalized table for one entity.

    ``id_array`` holds ids in insertion order, ``items_by_id`` the records and
    ``max_id`` the highest integer id this branch has ever held.
    """

    id_array: tuple[Hashable, ...] = ()
    items_by_id: Mapping[Hashable, Record] = field(default_factory=_empty_items)
    max_id: int | None = None

    def __len__(self) -> int:
        return len(self.id_array)

    def __contains__(self, id_value: object) -> bool:
        return id_value in self.items_by_id


def default_state() -> Branch:
    return Branch()


def normalize_ids(selector: IdSelector) -> tuple[Hashable, ...]:
    """Return the selector as a tuple of distinct ids, keeping first-seen order."""
    if isinstance(selector, str | bytes) or not isinstance(selector, Iterable):
        return (selector,)
    return tuple(dict.fromkeys(selector))


def is_counter_id(id_value: object) -> bool:
    return isinstance(id_value, int) and not isinstance(id_value, bool)


def next_id(state: Branch) -> int:
    return 0 if state.max_id is None else state.max_id + 1


def advance_counter(max_id: int | None, id_value: object) -> int | None:
    if isinstance(id_value, bool) or not isinstance(id_value, int):
        return max_id
    return id_value if max_id is None else max(max_id, id_value)


def insert(schema: Schema, state: Branch, payload: Record) -> Branch:
    """Append a record, assigning the next counter id when none is given.

    Raises:
        DuplicateIdError: when the id is already present in the branch.
    """

    id_attribute = schema.id_attribute
    id_value = payload.get(id_attribute)
    if id_value is None:
        id_value = next_id(state)
    if id_value in state.items_by_id:
        raise DuplicateIdError(schema.name, id_value)

    record = dict(payload)
    record[id_attribute] = id_value
    items = dict(state.items_by_id)
    items[id_value] = MappingProxyType(record)
    return Branch(
        id_array=(*state.id_array, id_value),
        items_by_id=MappingProxyType(items),
        max_id=advance_counter(state.max_id, id_value),
    )


def update(schema: Schema, state: Branch, ids: IdSelector, patch: Patch) -> Branch:
    """Merge ``patch`` into every selected record that exists.

    A callable patch receives the current record and returns the changes; a
    result that is not a mapping leaves the record as is. The id attribute is
    never rewritten; missing ids are skipped.
    """

    items: dict[Hashable, Record] | None = None
    for id_value in normalize_ids(ids):
        current = (items or state.items_by_id).get(id_value)
        if current is None:
            continue
        changes = patch(current) if callable(patch) else patch
        if not isinstance(changes, Mapping):
            continue
        merged = {**current, **changes}
        merged[schema.id_attribute] = current[schema.id_attribute]
        if items is None:
            items = dict(state.items_by_id)
        items[id_value] = MappingProxyType(merged)

    if items is None:
        return state
    return replace(state, items_by_id=MappingProxyType(items))


def delete(schema: Schema, state: Branch, ids: IdSelector) -> Branch:  # noqa: ARG001
    """Remove every selected id that exists; missing ids are skipped."""

    doomed = {id_value for id_value in normalize_ids(ids) if id_value in state.items_by_id}
    if not doomed:
        return state
    return replace(
        state,
        id_array=tuple(id_value for id_value in state.id_array if id_value not in doomed),
        items_by_id=MappingProxyType(
            {key: record for key, record in state.items_by_id.items() if key not in doomed}
        ),
    )


def access_by_id(state: Branch, id_value: Hashable) -> Record | None:
    return state.items_by_id.get(id_value)


def access_id_list(state: Branch) -> list[Hashable]:
    return list(state.id_array)


def access_list(state: Branch) -> list[Record]:
    return [state.items_by_id[id_value] for id_value in state.id_array]


def iterate(state: Branch) -> Iterator[Record]:
    for id_value in state.id_array:
        yield state.items_by_id[id_value]
