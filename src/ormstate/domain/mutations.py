"""Mutation records and the append-only mutation log."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, TypeAlias

from ormstate.domain.branch import normalize_ids

if TYPE_CHECKING:
    from collections.abc import Hashable, Iterator

    from ormstate.domain.branch import Patch


class MutationType(StrEnum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


def _freeze(payload: Mapping[str, Any]) -> Mapping[str, Any]:
    return MappingProxyType(dict(payload))


@dataclass(frozen=True, slots=True)
class Create:
    entity_name: str
    payload: Mapping[str, Any]

    def __post_init__(self) -> None:
        if isinstance(self.payload, Mapping):
            object.__setattr__(self, "payload", _freeze(self.payload))

    @property
    def type(self) -> MutationType:
        return MutationType.CREATE


@dataclass(frozen=True, slots=True)
class Update:
    """Field-wise merge of ``patch`` into the records under ``ids``."""

    entity_name: str
    ids: tuple[Hashable, ...]
    patch: Patch

    def __post_init__(self) -> None:
        object.__setattr__(self, "ids", normalize_ids(self.ids))
        if isinstance(self.patch, Mapping):
            object.__setattr__(self, "patch", _freeze(self.patch))

    @property
    def type(self) -> MutationType:
        return MutationType.UPDATE


@dataclass(frozen=True, slots=True)
class Delete:
    entity_name: str
    ids: tuple[Hashable, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "ids", normalize_ids(self.ids))

    @property
    def type(self) -> MutationType:
        return MutationType.DELETE


Mutation: TypeAlias = "Create | Update | Delete"


class MutationLog:
    """Ordered, append-only sequence of mutation records.

    Records are also indexed per entity so ``for_entity`` does not rescan the
    whole log.
    """

    __slots__ = ("_by_entity", "_records")

    def __init__(self) -> None:
        self._records: list[Mutation] = []
        self._by_entity: dict[str, list[Mutation]] = {}

    def append(self, record: Mutation) -> None:
        self._records.append(record)
        self._by_entity.setdefault(record.entity_name, []).append(record)

    def for_entity(self, entity_name: str) -> tuple[Mutation, ...]:
        return tuple(self._by_entity.get(entity_name, ()))

    def entity_names(self) -> tuple[str, ...]:
        return tuple(self._by_entity)

    def __iter__(self) -> Iterator[Mutation]:
        return iter(tuple(self._records))

    def __len__(self) -> int:
        return len(self._records)

    def __repr__(self) -> str:
        return f"MutationLog({len(self._records)} records)"
