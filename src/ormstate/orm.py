"""ORM registry and reducer host.

Wires declared entities to sessions: resolves schemas once, hands out empty
root states, and runs one session per reducer cycle.
"""

from __future__ import annotations

from logging import getLogger
from types import MappingProxyType
from typing import TYPE_CHECKING, TypeAlias

from ormstate.config import EngineConfig
from ormstate.domain.branch import default_state
from ormstate.domain.errors import SchemaError
from ormstate.domain.schema import EntityDeclaration, resolve_schemas
from ormstate.domain.session import open_session

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from ormstate.domain.branch import Branch
    from ormstate.domain.fields import FieldKind
    from ormstate.domain.query import Manager
    from ormstate.domain.schema import Schema
    from ormstate.domain.session import Session

RootState: TypeAlias = "Mapping[str, Branch]"
ReducerHook: TypeAlias = "Callable[[object, Manager, Session], None]"
Reducer: TypeAlias = "Callable[[RootState | None, object], RootState]"

log = getLogger(__name__)


class ORM:
    """Registry of entity declarations and per-entity reducer hooks."""

    def __init__(self, config: EngineConfig | None = None) -> None:
        self.config = config or EngineConfig()
        self._declarations: dict[str, EntityDeclaration] = {}
        self._hooks: dict[str, ReducerHook] = {}
        self._schemas: Mapping[str, Schema] | None = None

    def __repr__(self) -> str:
        return f"ORM(entities={list(self._declarations)!r})"

    def register(
        self,
        name: str,
        fields: Mapping[str, FieldKind] | None = None,
        *,
        id_attribute: str | None = None,
    ) -> None:
        if name in self._declarations:
            raise SchemaError(f"Entity {name!r} is already registered")
        self._declarations[name] = EntityDeclaration(dict(fields or {}), id_attribute)
        self._schemas = None
        log.debug("Registered entity %s", name)

    def register_reducer(self, name: str, hook: ReducerHook) -> None:
        """Attach a hook that records mutations for ``name`` on every cycle."""
        if name not in self._declarations:
            raise SchemaError(f"Cannot attach a reducer to unregistered entity {name!r}")
        self._hooks[name] = hook

    @property
    def schemas(self) -> Mapping[str, Schema]:
        if self._schemas is None:
            self._schemas = resolve_schemas(
                self._declarations,
                default_id_attribute=self.config.default_id_attribute,
            )
            log.debug("Resolved %d schemas", len(self._schemas))
        return self._schemas

    def get_schema(self, name: str) -> Schema:
        schema = self.schemas.get(name)
        if schema is None:
            raise SchemaError(f"Unknown entity {name!r}")
        return schema

    def get_empty_state(self) -> RootState:
        return MappingProxyType({name: default_state() for name in self.schemas})

    def session(self, state: RootState | None = None, action: object = None) -> Session:
        return open_session(
            self.schemas,
            self.get_empty_state() if state is None else state,
            action=action,
        )

    def mutate(self, state: RootState | None, fn: Callable[[Session], None]) -> RootState:
        """Run ``fn`` against a fresh session and return the resulting root state."""
        session = self.session(state)
        fn(session)
        return session.finalize()

    def reducer(self) -> Reducer:
        """Return a ``(state, action) -> state`` function for a state container."""

        def reduce_root(state: RootState | None, action: object) -> RootState:
            session = self.session(state, action)
            for name, hook in self._hooks.items():
                hook(action, session.manager(name), session)
            next_state = session.finalize()
            log.debug(
                "Reduced %r with %d mutations over %d entities",
                action,
                len(session.mutations),
                len(next_state),
            )
            return next_state

        return reduce_root
