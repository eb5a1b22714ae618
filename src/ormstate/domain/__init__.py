"""Normalization and mutation-application engine."""

from __future__ import annotations

from ormstate.domain.branch import (
    Branch,
    access_by_id,
    access_id_list,
    access_list,
    default_state,
    delete,
    insert,
    iterate,
    update,
)
from ormstate.domain.entity import Entity
from ormstate.domain.errors import (
    DoesNotExistError,
    DuplicateIdError,
    InvalidMutationError,
    MultipleResultsError,
    OrmError,
    SchemaError,
    SessionClosedError,
)
from ormstate.domain.fields import SELF, Attribute, FieldType, ForeignKey, ManyToMany
from ormstate.domain.mutations import Create, Delete, MutationLog, MutationType, Update
from ormstate.domain.query import Manager, QuerySet
from ormstate.domain.schema import EntityDeclaration, Schema, ThroughLink, resolve_schemas
from ormstate.domain.session import Session, SessionStatus, apply_mutation, open_session

__all__ = [  # noqa: RUF022
    # schema
    "SELF",
    "Attribute",
    "FieldType",
    "ForeignKey",
    "ManyToMany",
    "EntityDeclaration",
    "Schema",
    "ThroughLink",
    "resolve_schemas",
    # branch algebra
    "Branch",
    "default_state",
    "insert",
    "update",
    "delete",
    "access_by_id",
    "access_id_list",
    "access_list",
    "iterate",
    # mutations
    "Create",
    "Update",
    "Delete",
    "MutationLog",
    "MutationType",
    # session
    "Session",
    "SessionStatus",
    "apply_mutation",
    "open_session",
    # facade and queries
    "Entity",
    "Manager",
    "QuerySet",
    # errors
    "OrmError",
    "SchemaError",
    "DuplicateIdError",
    "InvalidMutationError",
    "SessionClosedError",
    "DoesNotExistError",
    "MultipleResultsError",
]
