"""Pydantic models for JSON replay documents.

A document declares entities, optionally seeds their branches, and lists the
mutations to fold::

    {"entities": {"Book": {"fields": {"tags": {"kind": "m2m", "to": "Tag"}}},
                  "Tag": {}},
     "state": {"Tag": {"items": [{"id": 1, "name": "fiction"}]}},
     "mutations": [{"type": "create", "entity": "Book", "payload": {"title": "Dune"}}]}
"""

from __future__ import annotations

from logging import getLogger
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, Any, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from ormstate.domain.branch import access_list, default_state, insert
from ormstate.domain.errors import OrmError
from ormstate.domain.fields import Attribute, FieldType, ForeignKey, ManyToMany
from ormstate.domain.mutations import Create, Delete, Update
from ormstate.domain.schema import EntityDeclaration

if TYPE_CHECKING:
    from collections.abc import Mapping

    from ormstate.domain.branch import Branch
    from ormstate.domain.fields import FieldKind
    from ormstate.domain.mutations import Mutation
    from ormstate.domain.schema import Schema

log = getLogger(__name__)

JsonId = int | str


class DocumentError(OrmError):
    """Raised when a replay document cannot be read or validated."""


class DocumentBaseModel(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)


class FieldModel(DocumentBaseModel):
    kind: FieldType = FieldType.ATTRIBUTE
    to: str | None = None
    through: str | None = None

    @model_validator(mode="after")
    def _check_target(self) -> FieldModel:
        if self.kind is not FieldType.ATTRIBUTE and not self.to:
            raise ValueError(f"{self.kind.value} fields need a 'to' entity")
        if self.through is not None and self.kind is not FieldType.MANY_TO_MANY:
            raise ValueError("'through' only applies to m2m fields")
        return self

    def to_kind(self) -> FieldKind:
        match self.kind:
            case FieldType.FOREIGN_KEY:
                return ForeignKey(self.to or "")
            case FieldType.MANY_TO_MANY:
                return ManyToMany(self.to or "", self.through)
            case _:
                return Attribute()


class EntityModel(DocumentBaseModel):
    id_attribute: str | None = None
    fields: dict[str, FieldModel] = Field(default_factory=dict)

    def declaration(self) -> EntityDeclaration:
        return EntityDeclaration(
            {name: model.to_kind() for name, model in self.fields.items()},
            self.id_attribute,
        )


class BranchModel(DocumentBaseModel):
    ids: list[JsonId] | None = None
    items: list[dict[str, Any]] = Field(default_factory=list)


class _IdsMixin(DocumentBaseModel):
    entity: str
    ids: list[JsonId]

    @field_validator("ids", mode="before")
    @classmethod
    def _wrap_scalar(cls, value: object) -> object:
        if isinstance(value, int | str):
            return [value]
        return value


class CreateModel(DocumentBaseModel):
    type: Literal["create"]
    entity: str
    payload: dict[str, Any] = Field(default_factory=dict)

    def to_mutation(self) -> Create:
        return Create(self.entity, self.payload)


class UpdateModel(_IdsMixin):
    type: Literal["update"]
    patch: dict[str, Any]

    def to_mutation(self) -> Update:
        return Update(self.entity, self.ids, self.patch)


class DeleteModel(_IdsMixin):
    type: Literal["delete"]

    def to_mutation(self) -> Delete:
        return Delete(self.entity, self.ids)


MutationModel = Annotated[CreateModel | UpdateModel | DeleteModel, Field(discriminator="type")]


class DocumentModel(DocumentBaseModel):
    entities: dict[str, EntityModel]
    state: dict[str, BranchModel] = Field(default_factory=dict)
    mutations: list[MutationModel] = Field(default_factory=list)

    def declarations(self) -> dict[str, EntityDeclaration]:
        return {name: entity.declaration() for name, entity in self.entities.items()}

    def root_state(self, schemas: Mapping[str, Schema]) -> dict[str, Branch]:
        """Build a branch per schema, inserting the seeded items in order.

        Through entities can be seeded like any other entity, so a dumped
        state can be fed back in.
        """

        unknown = sorted(set(self.state) - set(schemas))
        if unknown:
            raise DocumentError(f"state seeds unknown entities: {', '.join(unknown)}")
        root: dict[str, Branch] = {}
        for name, schema in schemas.items():
            seed = self.state.get(name)
            root[name] = default_state() if seed is None else _seed_branch(schema, seed)
        return root

    def to_mutations(self) -> list[Mutation]:
        return [model.to_mutation() for model in self.mutations]


def _seed_branch(schema: Schema, seed: BranchModel) -> Branch:
    branch = default_state()
    for item in seed.items:
        _check_seed_item(schema, item)
        branch = insert(schema, branch, item)
    if seed.ids is not None and list(branch.id_array) != seed.ids:
        raise DocumentError(f"{schema.name} ids {seed.ids!r} do not match its items")
    return branch


def _check_seed_item(schema: Schema, item: Mapping[str, Any]) -> None:
    id_value = item.get(schema.id_attribute)
    if id_value is not None and not isinstance(id_value, int | str):
        raise DocumentError(f"{schema.name} ids must be integers or strings, got {id_value!r}")
    for key, value in item.items():
        link = schema.relations.get(key)
        if link is not None:
            raise DocumentError(f"{schema.name}.{key} is many-to-many; seed {link.through} instead")
        if isinstance(schema.fields.get(key), ForeignKey) and isinstance(value, dict | list):
            raise DocumentError(
                f"{schema.name}.{key} is a foreign key and only holds an id reference"
            )


def parse_document(text: str) -> DocumentModel:
    try:
        document = DocumentModel.model_validate_json(text)
    except ValidationError as exc:
        raise DocumentError(f"Invalid document: {exc}") from exc
    log.debug(
        "Parsed document: %d entities, %d mutations",
        len(document.entities),
        len(document.mutations),
    )
    return document


def load_document(path: Path | str) -> DocumentModel:
    source = Path(path)
    try:
        text = source.read_text(encoding="utf-8")
    except OSError as exc:
        raise DocumentError(f"Cannot read document {source}: {exc}") from exc
    return parse_document(text)


def dump_state(root: Mapping[str, Branch]) -> dict[str, dict[str, Any]]:
    return {
        name: {
            "ids": list(branch.id_array),
            "items": [dict(record) for record in access_list(branch)],
        }
        for name, branch in root.items()
    }


def dump_schemas(schemas: Mapping[str, Schema]) -> dict[str, dict[str, Any]]:
    dumped: dict[str, dict[str, Any]] = {}
    for name, schema in schemas.items():
        fields: dict[str, dict[str, Any]] = {}
        for field_name, kind in schema.fields.items():
            entry: dict[str, Any] = {"kind": kind.field_type.value}
            if isinstance(kind, ForeignKey | ManyToMany):
                entry["to"] = kind.resolve_target(name)
            link = schema.relations.get(field_name)
            if link is not None:
                entry["through"] = link.through
            fields[field_name] = entry
        dumped[name] = {
            "id_attribute": schema.id_attribute,
            "through": schema.is_through,
            "fields": fields,
        }
    return dumped
