"""Schema descriptors and many-to-many relation synthesis.

``resolve_schemas`` turns plain entity declarations into read-only
``Schema`` values. Every many-to-many field without an explicit ``through``
entity gets a synthesized through schema holding two foreign keys: one back
to the declaring entity ("from") and one to the target ("to").
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING

from ormstate.domain.errors import SchemaError
from ormstate.domain.fields import Attribute, ForeignKey, ManyToMany

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping

    from ormstate.domain.fields import FieldKind

DEFAULT_ID_ATTRIBUTE = "id"


def through_name(owner: str, field_name: str) -> str:
    return f"{owner}{field_name[:1].upper()}{field_name[1:]}"


def from_field_name(entity_name: str) -> str:
    return f"from{entity_name}Id"


def to_field_name(entity_name: str) -> str:
    return f"to{entity_name}Id"


@dataclass(frozen=True, slots=True)
class ThroughLink:
    """How one many-to-many field maps onto its through entity."""

    field_name: str
    owner: str
    target: str
    through: str
    from_field: str
    to_field: str


@dataclass(frozen=True, slots=True)
class EntityDeclaration:
    """What a caller declares for one entity before resolution."""

    fields: Mapping[str, FieldKind] = field(default_factory=dict)
    id_attribute: str | None = None


@dataclass(frozen=True, slots=True)
class Schema:
    name: str
    id_attribute: str
    fields: Mapping[str, FieldKind]
    relations: Mapping[str, ThroughLink] = field(default_factory=lambda: MappingProxyType({}))
    is_through: bool = False

    def __repr__(self) -> str:
        return f"Schema({self.name!r}, id_attribute={self.id_attribute!r})"

    def field_kind(self, name: str) -> FieldKind | None:
        return self.fields.get(name)

    def foreign_keys(self) -> Iterator[tuple[str, ForeignKey]]:
        for name, kind in self.fields.items():
            if isinstance(kind, ForeignKey):
                yield name, kind

    def many_to_many(self) -> Iterator[tuple[str, ManyToMany]]:
        for name, kind in self.fields.items():
            if isinstance(kind, ManyToMany):
                yield name, kind


def resolve_schemas(
    declared: Mapping[str, EntityDeclaration | Mapping[str, FieldKind]],
    *,
    default_id_attribute: str = DEFAULT_ID_ATTRIBUTE,
) -> Mapping[str, Schema]:
    """Resolve declarations into schemas, synthesizing through entities.

    The result is read-only and keyed by entity name: declared entities first,
    in declaration order, followed by the synthesized through entities.

    Raises:
        SchemaError: on unknown relation targets, colliding through names, or
            an id attribute declared as a relational field.
    """

    declarations = {
        name: _as_declaration(name, value, default_id_attribute)
        for name, value in declared.items()
    }

    synthesized: dict[str, Schema] = {}
    links: dict[str, dict[str, ThroughLink]] = {name: {} for name in declarations}

    for owner, declaration in declarations.items():
        for field_name, kind in declaration.fields.items():
            if isinstance(kind, Attribute):
                continue
            target = kind.resolve_target(owner)
            if target not in declarations:
                raise SchemaError(
                    f"{owner}.{field_name} references undeclared entity {kind.to!r}"
                )
            if not isinstance(kind, ManyToMany):
                continue
            if kind.through is not None:
                links[owner][field_name] = _explicit_link(
                    owner, field_name, target, kind.through, declarations
                )
                continue
            name = through_name(owner, field_name)
            if name in declarations or name in synthesized:
                raise SchemaError(
                    f"{owner}.{field_name} synthesizes through entity {name!r}, "
                    "which is already taken"
                )
            link = ThroughLink(
                field_name=field_name,
                owner=owner,
                target=target,
                through=name,
                from_field=from_field_name(owner),
                to_field=to_field_name(target),
            )
            synthesized[name] = Schema(
                name=name,
                id_attribute=default_id_attribute,
                fields=MappingProxyType(
                    {
                        link.from_field: ForeignKey(owner),
                        link.to_field: ForeignKey(target),
                    }
                ),
                is_through=True,
            )
            links[owner][field_name] = link

    schemas: dict[str, Schema] = {}
    for name, declaration in declarations.items():
        schemas[name] = Schema(
            name=name,
            id_attribute=declaration.id_attribute or default_id_attribute,
            fields=MappingProxyType(dict(declaration.fields)),
            relations=MappingProxyType(links[name]),
        )
    schemas.update(synthesized)
    return MappingProxyType(schemas)


def _as_declaration(
    name: str,
    value: EntityDeclaration | Mapping[str, FieldKind],
    default_id_attribute: str,
) -> EntityDeclaration:
    if not name:
        raise SchemaError("Entity names must be non-empty strings")
    declaration = value if isinstance(value, EntityDeclaration) else EntityDeclaration(value)
    for field_name, kind in declaration.fields.items():
        if not isinstance(kind, Attribute | ForeignKey | ManyToMany):
            raise SchemaError(f"{name}.{field_name} has unsupported field kind {kind!r}")
    id_attribute = declaration.id_attribute
    if id_attribute is not None and not id_attribute:
        raise SchemaError(f"{name} declares an empty id attribute")
    for field_name, kind in declaration.fields.items():
        if kind.is_relational and field_name == (id_attribute or default_id_attribute):
            raise SchemaError(f"{name}.{field_name} is the id attribute and cannot be relational")
    return declaration


def _explicit_link(
    owner: str,
    field_name: str,
    target: str,
    through: str,
    declarations: Mapping[str, EntityDeclaration],
) -> ThroughLink:
    declaration = declarations.get(through)
    if declaration is None:
        raise SchemaError(f"{owner}.{field_name} uses undeclared through entity {through!r}")

    def keys_to(entity: str) -> list[str]:
        return [
            name
            for name, kind in declaration.fields.items()
            if isinstance(kind, ForeignKey) and kind.resolve_target(through) == entity
        ]

    if owner == target:
        candidates = keys_to(owner)
        if len(candidates) != 2:  # noqa: PLR2004
            raise SchemaError(
                f"Through entity {through!r} needs exactly two foreign keys to {owner!r}"
            )
        from_field, to_field = candidates
    else:
        from_candidates, to_candidates = keys_to(owner), keys_to(target)
        if len(from_candidates) != 1 or len(to_candidates) != 1:
            raise SchemaError(
                f"Through entity {through!r} needs one foreign key to {owner!r} "
                f"and one to {target!r}"
            )
        from_field, to_field = from_candidates[0], to_candidates[0]
    return ThroughLink(
        field_name=field_name,
        owner=owner,
        target=target,
        through=through,
        from_field=from_field,
        to_field=to_field,
    )


__all__ = [
    "DEFAULT_ID_ATTRIBUTE",
    "EntityDeclaration",
    "Schema",
    "ThroughLink",
    "from_field_name",
    "resolve_schemas",
    "through_name",
    "to_field_name",
]
