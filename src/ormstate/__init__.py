from __future__ import annotations

from importlib import metadata

from ormstate.domain import (
    SELF,
    Attribute,
    Branch,
    Create,
    Delete,
    DoesNotExistError,
    DuplicateIdError,
    Entity,
    EntityDeclaration,
    ForeignKey,
    InvalidMutationError,
    Manager,
    ManyToMany,
    MultipleResultsError,
    MutationLog,
    OrmError,
    QuerySet,
    Schema,
    SchemaError,
    Session,
    SessionClosedError,
    SessionStatus,
    Update,
    open_session,
    resolve_schemas,
)
from ormstate.orm import ORM

try:
    __version__ = metadata.version("ormstate")
except metadata.PackageNotFoundError:
    __version__ = "0.0.0+local"

__all__ = [
    "ORM",
    "SELF",
    "Attribute",
    "Branch",
    "Create",
    "Delete",
    "DoesNotExistError",
    "DuplicateIdError",
    "Entity",
    "EntityDeclaration",
    "ForeignKey",
    "InvalidMutationError",
    "Manager",
    "ManyToMany",
    "MultipleResultsError",
    "MutationLog",
    "OrmError",
    "QuerySet",
    "Schema",
    "SchemaError",
    "Session",
    "SessionClosedError",
    "SessionStatus",
    "Update",
    "__version__",
    "open_session",
    "resolve_schemas",
]
