from __future__ import annotations

import json
from typing import TYPE_CHECKING

import pytest

from ormstate import Create, Delete, ForeignKey, ManyToMany, Update, open_session, resolve_schemas
from ormstate.adapters import DocumentError, dump_schemas, dump_state, load_document, parse_document
from ormstate.domain.branch import access_list

if TYPE_CHECKING:
    from pathlib import Path

    from ormstate import Branch

DOCUMENT = {
    "entities": {
        "Book": {
            "fields": {
                "title": {},
                "author": {"kind": "fk", "to": "Author"},
                "tags": {"kind": "m2m", "to": "Tag"},
            }
        },
        "Author": {"id_attribute": "slug"},
        "Tag": {},
    },
    "state": {"Tag": {"items": [{"id": 1, "label": "fiction"}, {"label": "classic"}]}},
    "mutations": [
        {"type": "create", "entity": "Author", "payload": {"slug": "herbert"}},
        {"type": "create", "entity": "Book", "payload": {"title": "Dune", "author": "herbert"}},
        {"type": "update", "entity": "Tag", "ids": 1, "patch": {"label": "sf"}},
        {"type": "delete", "entity": "Tag", "ids": [2]},
    ],
}


def test_parse_document_builds_declarations() -> None:
    document = parse_document(json.dumps(DOCUMENT))

    schemas = resolve_schemas(document.declarations())

    assert list(schemas) == ["Book", "Author", "Tag", "BookTags"]
    assert schemas["Author"].id_attribute == "slug"
    assert schemas["Book"].fields["author"] == ForeignKey("Author")
    assert schemas["Book"].fields["tags"] == ManyToMany("Tag")


def test_document_mutations_become_records() -> None:
    document = parse_document(json.dumps(DOCUMENT))

    assert document.to_mutations() == [
        Create("Author", {"slug": "herbert"}),
        Create("Book", {"title": "Dune", "author": "herbert"}),
        Update("Tag", (1,), {"label": "sf"}),
        Delete("Tag", (2,)),
    ]


def test_root_state_seeds_items_in_order() -> None:
    document = parse_document(json.dumps(DOCUMENT))
    schemas = resolve_schemas(document.declarations())

    root = document.root_state(schemas)

    assert set(root) == set(schemas)
    assert access_list(root["Tag"]) == [{"id": 1, "label": "fiction"}, {"id": 2, "label": "classic"}]
    assert root["Book"].id_array == ()


def test_replayed_document_dumps_to_plain_json() -> None:
    document = parse_document(json.dumps(DOCUMENT))
    schemas = resolve_schemas(document.declarations())
    session = open_session(schemas, document.root_state(schemas))
    for record in document.to_mutations():
        session.add_mutation(record)

    dumped = dump_state(session.finalize())

    assert dumped["Tag"] == {"ids": [1], "items": [{"id": 1, "label": "sf"}]}
    assert dumped["Author"] == {"ids": ["herbert"], "items": [{"slug": "herbert"}]}
    assert dumped["Book"]["items"] == [{"title": "Dune", "author": "herbert", "id": 0}]
    json.dumps(dumped)


def test_dump_schemas_describes_through_entities() -> None:
    document = parse_document(json.dumps(DOCUMENT))

    dumped = dump_schemas(resolve_schemas(document.declarations()))

    assert dumped["Book"]["fields"]["tags"] == {"kind": "m2m", "to": "Tag", "through": "BookTags"}
    assert dumped["Book"]["fields"]["title"] == {"kind": "attribute"}
    assert dumped["BookTags"] == {
        "id_attribute": "id",
        "through": True,
        "fields": {
            "fromBookId": {"kind": "fk", "to": "Book"},
            "toTagId": {"kind": "fk", "to": "Tag"},
        },
    }


@pytest.mark.parametrize(
    ("document", "message"),
    [
        ("not json", "Invalid document"),
        ('{"entities": {"Book": {"fields": {"author": {"kind": "fk"}}}}}', "need a 'to' entity"),
        (
            '{"entities": {"Book": {"fields": {"title": {"through": "X"}}}}}',
            "only applies to m2m",
        ),
        (
            '{"entities": {}, "mutations": [{"type": "upsert", "entity": "Book"}]}',
            "Invalid document",
        ),
        ('{"entities": {}, "extra": 1}', "Invalid document"),
    ],
)
def test_invalid_documents_raise_document_error(document: str, message: str) -> None:
    with pytest.raises(DocumentError, match=message):
        parse_document(document)


def test_load_document_reads_files(tmp_path: Path) -> None:
    path = tmp_path / "library.json"
    path.write_text(json.dumps(DOCUMENT), encoding="utf-8")

    assert len(load_document(path).mutations) == 4


def test_load_document_wraps_io_errors(tmp_path: Path) -> None:
    with pytest.raises(DocumentError, match="Cannot read document"):
        load_document(tmp_path / "missing.json")


def _root_state(document: dict[str, object]) -> dict[str, Branch]:
    model = parse_document(json.dumps(document))
    return model.root_state(resolve_schemas(model.declarations()))


@pytest.mark.parametrize(
    ("state", "message"),
    [
        ({"Shelf": {}}, "state seeds unknown entities: Shelf"),
        ({"Tag": {"items": [{"id": [1]}]}}, "ids must be integers or strings"),
        ({"Book": {"items": [{"author": {"id": 1}}]}}, "only holds an id reference"),
        ({"Book": {"items": [{"tags": [1]}]}}, "many-to-many; seed BookTags instead"),
        ({"Tag": {"ids": [2], "items": [{"id": 1}]}}, "do not match its items"),
    ],
)
def test_invalid_seeded_state_raises_document_error(
    state: dict[str, object], message: str
) -> None:
    with pytest.raises(DocumentError, match=message):
        _root_state({"entities": DOCUMENT["entities"], "state": state})


def test_dumped_state_can_seed_the_next_replay() -> None:
    first = parse_document(json.dumps(DOCUMENT))
    schemas = resolve_schemas(first.declarations())
    session = open_session(schemas, first.root_state(schemas))
    book = session.manager("Book").create({"title": "Dune", "tags": [1, 2]})
    dumped = dump_state(session.finalize())

    root = _root_state({"entities": DOCUMENT["entities"], "state": dumped})

    assert dump_state(root) == dumped
    replayed = open_session(schemas, root)
    tags = replayed.manager("Book").with_id(book.id).related("tags")
    assert [tag["label"] for tag in tags] == ["fiction", "classic"]
    assert replayed.manager("Tag").create({"label": "new"}).id == 3
