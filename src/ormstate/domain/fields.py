"""Field kinds (pure, dependency-light).

The engine only needs each field's kind and, for relational kinds, the name
of the entity it points at.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Final, TypeAlias

SELF: Final[str] = "this"


class FieldType(StrEnum):
    ATTRIBUTE = "attribute"
    FOREIGN_KEY = "fk"
    MANY_TO_MANY = "m2m"


@dataclass(frozen=True, slots=True)
class Attribute:
    """Plain value stored on the record."""

    @property
    def field_type(self) -> FieldType:
        return FieldType.ATTRIBUTE

    @property
    def is_relational(self) -> bool:
        return False


@dataclass(frozen=True, slots=True)
class ForeignKey:
    """Scalar reference to one record of ``to``."""

    to: str

    @property
    def field_type(self) -> FieldType:
        return FieldType.FOREIGN_KEY

    @property
    def is_relational(self) -> bool:
        return True

    def resolve_target(self, owner: str) -> str:
        return owner if self.to == SELF else self.to


@dataclass(frozen=True, slots=True)
class ManyToMany:
    """Relation materialized as rows of a through entity.

    ``through`` names an explicitly declared entity; when omitted, one is
    synthesized at schema resolution.
    """

    to: str
    through: str | None = None

    @property
    def field_type(self) -> FieldType:
        return FieldType.MANY_TO_MANY

    @property
    def is_relational(self) -> bool:
        return True

    def resolve_target(self, owner: str) -> str:
        return owner if self.to == SELF else self.to


FieldKind: TypeAlias = "Attribute | ForeignKey | ManyToMany"
