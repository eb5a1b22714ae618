"""Per-cycle session: the mutation log plus current/next state derivation.

A session is opened against a root state (entity name -> ``Branch``),
collects mutation records while it is open and folds them through the branch
algebra on request. ``finalize`` computes every branch and closes the
session; a new cycle needs a new session.
"""

from __future__ import annotations

from collections.abc import Hashable, Mapping
from enum import StrEnum
from functools import partial, reduce
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from ormstate.domain.branch import (
    Branch,
    advance_counter,
    default_state,
    delete,
    insert,
    update,
)
from ormstate.domain.entity import Entity
from ormstate.domain.errors import (
    DuplicateIdError,
    InvalidMutationError,
    SchemaError,
    SessionClosedError,
)
from ormstate.domain.fields import ForeignKey, ManyToMany
from ormstate.domain.mutations import Create, Delete, MutationLog, Update
from ormstate.domain.query import Manager

if TYPE_CHECKING:
    from collections.abc import Callable

    from ormstate.domain.branch import Record
    from ormstate.domain.mutations import Mutation
    from ormstate.domain.schema import Schema


class SessionStatus(StrEnum):
    OPEN = "open"
    FINALIZED = "finalized"


def apply_mutation(schema: Schema, state: Branch, record: Mutation) -> Branch:
    """Dispatch one record onto a branch."""
    match record:
        case Create(payload=payload):
            return insert(schema, state, payload)
        case Update(ids=ids, patch=patch):
            return update(schema, state, ids, patch)
        case Delete(ids=ids):
            return delete(schema, state, ids)
        case _:
            return state


def _value_problem(schema: Schema, key: str, value: object) -> str | None:
    kind = schema.fields.get(key)
    if isinstance(kind, ManyToMany):
        return (
            f"{schema.name}.{key} is many-to-many; write it through {schema.name} "
            "entity relations instead"
        )
    if isinstance(value, Entity) and isinstance(kind, ForeignKey):
        return None
    if isinstance(value, Entity | Branch):
        return f"{schema.name}.{key} would embed {type(value).__name__}; store its id"
    if isinstance(kind, ForeignKey) and isinstance(value, Mapping):
        return f"{schema.name}.{key} is a foreign key and only holds an id reference"
    return None


def _normalize_values(schema: Schema, values: Mapping[str, Any]) -> dict[str, Any]:
    normalized: dict[str, Any] = {}
    for key, value in values.items():
        problem = _value_problem(schema, key, value)
        if problem is not None:
            raise InvalidMutationError(problem)
        normalized[key] = value.id if isinstance(value, Entity) else value
    return normalized


def _checked_patch(
    schema: Schema, patch: Callable[[Record], Mapping[str, Any] | None]
) -> Callable[[Record], Mapping[str, Any] | None]:
    """Wrap a callable patch so its result is normalized when the branch is folded.

    A result that is not a mapping, or that holds a value a mapping patch would
    be rejected for, leaves the record unchanged.
    """

    def checked(record: Record) -> Mapping[str, Any] | None:
        changes = patch(record)
        if not isinstance(changes, Mapping):
            return None
        if any(_value_problem(schema, key, value) is not None for key, value in changes.items()):
            return None
        return _normalize_values(schema, changes)

    return checked


class Session:
    """Transaction-scoped coordinator for one state cycle.

    Not thread-safe: a session and its log belong to the cycle that opened it.
    """

    def __init__(
        self,
        schemas: Mapping[str, Schema],
        state: Mapping[str, Branch] | None = None,
        *,
        action: object = None,
    ) -> None:
        self.schemas = schemas
        self.action = action
        self._state: Mapping[str, Branch] = MappingProxyType(dict(state or {}))
        self._log = MutationLog()
        self._status = SessionStatus.OPEN
        self._next: dict[str, Branch] = {}
        self._live: dict[str, set[Hashable]] = {}
        self._counters: dict[str, int | None] = {}

    def __repr__(self) -> str:
        return f"Session(status={self._status.value}, mutations={len(self._log)})"

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def is_open(self) -> bool:
        return self._status is SessionStatus.OPEN

    @property
    def state(self) -> Mapping[str, Branch]:
        return self._state

    @property
    def mutations(self) -> tuple[Mutation, ...]:
        return tuple(self._log)

    def get_schema(self, entity_name: str) -> Schema:
        schema = self.schemas.get(entity_name)
        if schema is None:
            raise SchemaError(f"Unknown entity {entity_name!r}")
        return schema

    def manager(self, entity_name: str) -> Manager:
        return Manager(self.get_schema(entity_name), self)

    # Reads

    def current_state_for(self, entity_name: str) -> Branch | None:
        return self._state.get(entity_name)

    def branch_for(self, entity_name: str) -> Branch:
        """Current branch for the entity, or the default state when it has none."""
        current = self._state.get(entity_name)
        return default_state() if current is None else current

    def get_mutations_for(self, entity_name: str) -> tuple[Mutation, ...]:
        return self._log.for_entity(entity_name)

    def get_next_state(self, entity_name: str) -> Branch:
        """Fold this entity's mutations over its current branch.

        Without a current branch, only the Create records are folded into the
        default state. Results are cached until the entity receives another
        mutation.
        """

        cached = self._next.get(entity_name)
        if cached is not None:
            return cached
        schema = self.get_schema(entity_name)
        if not self.is_open:
            raise SessionClosedError(
                f"Next state for {entity_name!r} was not computed before the session closed"
            )

        current = self._state.get(entity_name)
        records = self._log.for_entity(entity_name)
        if current is None:
            current = default_state()
            records = tuple(record for record in records if isinstance(record, Create))

        next_state = reduce(partial(apply_mutation, schema), records, current)
        self._next[entity_name] = next_state
        return next_state

    def next_state(self) -> dict[str, Branch]:
        return {name: self.get_next_state(name) for name in self.schemas}

    def finalize(self) -> Mapping[str, Branch]:
        """Compute every branch, close the session and return the new root state."""
        if not self.is_open:
            raise SessionClosedError("Session is already finalized")
        root = self.next_state()
        self._status = SessionStatus.FINALIZED
        return MappingProxyType(root)

    # Writes

    def add_mutation(self, record: Mutation) -> Mutation:
        """Validate and append ``record``; return the record as stored.

        Create records without an id get one reserved here, so the returned
        record may differ from the one passed in.

        Raises:
            SessionClosedError: when the session is finalized.
            InvalidMutationError: when the record targets an unknown entity or
                is structurally invalid.
            DuplicateIdError: when a Create names an id that is already live.
        """

        if not self.is_open:
            raise SessionClosedError("Cannot add mutations to a finalized session")
        if not isinstance(record, Create | Update | Delete):
            raise InvalidMutationError(f"Not a mutation record: {record!r}")
        schema = self.schemas.get(record.entity_name)
        if schema is None:
            raise InvalidMutationError(
                f"Mutation targets unknown entity {record.entity_name!r}"
            )

        match record:
            case Create():
                record = self._accept_create(schema, record)
            case Update():
                record = self._accept_update(schema, record)
            case Delete():
                self._check_ids(record.ids)
                # deletes only reach the fold when the entity has a current branch
                if schema.name in self._state:
                    self._live_ids(schema.name).difference_update(record.ids)

        self._log.append(record)
        self._next.pop(schema.name, None)
        return record

    def _accept_create(self, schema: Schema, record: Create) -> Create:
        if not isinstance(record.payload, Mapping):
            raise InvalidMutationError(f"{schema.name} payload must be a mapping")
        payload = _normalize_values(schema, record.payload)
        live = self._live_ids(schema.name)
        id_value = payload.get(schema.id_attribute)
        if id_value is None:
            id_value = self._reserve_id(schema.name)
            payload[schema.id_attribute] = id_value
        else:
            self._check_ids((id_value,))
            if id_value in live:
                raise DuplicateIdError(schema.name, id_value)
        live.add(id_value)
        self._counters[schema.name] = advance_counter(self._counter(schema.name), id_value)
        return Create(schema.name, payload)

    def _accept_update(self, schema: Schema, record: Update) -> Update:
        self._check_ids(record.ids)
        patch = record.patch
        if isinstance(patch, Mapping):
            return Update(schema.name, record.ids, _normalize_values(schema, patch))
        if not callable(patch):
            raise InvalidMutationError(f"{schema.name} patch must be a mapping or a callable")
        return Update(schema.name, record.ids, _checked_patch(schema, patch))

    @staticmethod
    def _check_ids(ids: tuple[object, ...]) -> None:
        for id_value in ids:
            if not isinstance(id_value, Hashable):
                raise InvalidMutationError(f"Ids must be hashable, got {id_value!r}")

    def _live_ids(self, entity_name: str) -> set[Hashable]:
        live = self._live.get(entity_name)
        if live is None:
            current = self._state.get(entity_name)
            live = set(current.id_array) if current is not None else set()
            self._live[entity_name] = live
        return live

    def _counter(self, entity_name: str) -> int | None:
        if entity_name not in self._counters:
            current = self._state.get(entity_name)
            self._counters[entity_name] = current.max_id if current is not None else None
        return self._counters[entity_name]

    def _reserve_id(self, entity_name: str) -> int:
        counter = self._counter(entity_name)
        candidate = 0 if counter is None else counter + 1
        live = self._live_ids(entity_name)
        while candidate in live:
            candidate += 1
        return candidate


def open_session(
    schemas: Mapping[str, Schema],
    root_state: Mapping[str, Branch] | None = None,
    *,
    action: object = None,
) -> Session:
    return Session(schemas, root_state, action=action)
