from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from ormstate import ORM, Attribute, EntityDeclaration, ForeignKey, ManyToMany, resolve_schemas

if TYPE_CHECKING:
    from collections.abc import Mapping

    from ormstate import Branch, Schema, Session


LIBRARY_DECLARATIONS: dict[str, EntityDeclaration] = {
    "Author": EntityDeclaration({"name": Attribute()}),
    "Tag": EntityDeclaration({"label": Attribute()}),
    "Book": EntityDeclaration(
        {
            "title": Attribute(),
            "author": ForeignKey("Author"),
            "tags": ManyToMany("Tag"),
        }
    ),
}


@pytest.fixture(autouse=True)
def _clear_engine_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("ORMSTATE_ID_ATTRIBUTE", raising=False)
    monkeypatch.delenv("ORMSTATE_LOG_LEVEL", raising=False)


@pytest.fixture
def library_schemas() -> Mapping[str, Schema]:
    return resolve_schemas(LIBRARY_DECLARATIONS)


@pytest.fixture
def library_orm() -> ORM:
    orm = ORM()
    for name, declaration in LIBRARY_DECLARATIONS.items():
        orm.register(name, declaration.fields, id_attribute=declaration.id_attribute)
    return orm


def seed_library(session: Session) -> None:
    authors = session.manager("Author")
    authors.create({"id": 1, "name": "Ursula K. Le Guin"})
    authors.create({"id": 2, "name": "Frank Herbert"})
    tags = session.manager("Tag")
    tags.create({"id": 1, "label": "fiction"})
    tags.create({"id": 2, "label": "classic"})
    books = session.manager("Book")
    books.create({"id": 1, "title": "Dune", "author": 2, "tags": [1, 2]})
    books.create({"id": 2, "title": "A Wizard of Earthsea", "author": 1, "tags": [1]})


@pytest.fixture
def library_state(library_orm: ORM) -> Mapping[str, Branch]:
    """Two authors, two tags, two books and three BookTags rows (ids 0, 1, 2)."""
    return library_orm.mutate(None, seed_library)


@pytest.fixture
def library_session(library_orm: ORM, library_state: Mapping[str, Branch]) -> Session:
    return library_orm.session(library_state)
