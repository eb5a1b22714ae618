"""Error taxonomy for the normalization engine.

Absence is never an error here: updates and deletes against missing ids are
no-ops and lookups return ``None``.
"""

from __future__ import annotations


class OrmError(Exception):
    """Base class for every error raised by ormstate."""


class SchemaError(OrmError):
    """Raised when entity declarations are malformed or collide."""


class DuplicateIdError(OrmError):
    """Raised when a record is inserted under an id that is already live."""

    def __init__(self, entity_name: str, id_value: object) -> None:
        super().__init__(f"{entity_name} already holds a record with id {id_value!r}")
        self.entity_name = entity_name
        self.id_value = id_value


class InvalidMutationError(OrmError):
    """Raised when a mutation record cannot be appended to the log."""


class SessionClosedError(OrmError):
    """Raised when a finalized session is asked to accept or compute anything new."""


class DoesNotExistError(OrmError, LookupError):
    """Raised by ``get`` lookups that match no record."""


class MultipleResultsError(OrmError, LookupError):
    """Raised by ``get`` lookups that match more than one record."""
