from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from ormstate import Create, DoesNotExistError, MultipleResultsError, Update, open_session
from ormstate.domain.branch import access_list

if TYPE_CHECKING:
    from collections.abc import Mapping

    from ormstate import ORM, Schema, Session
    from ormstate.orm import RootState


def test_manager_lists_rows_in_insertion_order(library_session: Session) -> None:
    books = library_session.manager("Book")

    assert books.ids() == [1, 2]
    assert len(books) == 2
    assert [book["title"] for book in books] == ["Dune", "A Wizard of Earthsea"]
    assert books.first()["title"] == "Dune"
    assert books.last()["title"] == "A Wizard of Earthsea"


def test_reads_ignore_pending_mutations(library_session: Session) -> None:
    tags = library_session.manager("Tag")

    tags.create({"label": "new"})

    assert tags.count() == 2
    assert library_session.get_next_state("Tag").id_array == (1, 2, 3)


def test_filter_by_lookups_and_predicate(library_session: Session) -> None:
    books = library_session.manager("Book")

    assert books.filter(author=1).ids() == [2]
    assert books.filter(lambda record: record["title"].startswith("D")).ids() == [1]
    assert books.filter(lambda record: True, author=2, title="Dune").ids() == [1]
    assert not books.filter(publisher="Ace")
    assert books.exclude(author=1).ids() == [1]


def test_order_by_fields_and_callables(library_session: Session) -> None:
    books = library_session.manager("Book")

    assert books.order_by("title").ids() == [2, 1]
    assert books.order_by("-author").ids() == [1, 2]
    assert books.order_by(lambda record: len(record["title"])).ids() == [1, 2]


def test_order_by_is_stable_and_puts_missing_values_last(
    library_orm: ORM, library_state: RootState
) -> None:
    def add_tags(session: Session) -> None:
        session.manager("Tag").create({"label": "a"})
        session.add_mutation(Create("Tag", {"id": 10, "label": "fiction", "rank": 1}))

    tags = library_orm.session(library_orm.mutate(library_state, add_tags)).manager("Tag")

    assert tags.order_by("rank").ids() == [10, 1, 2, 3]
    assert tags.order_by("label", "-id").ids() == [3, 2, 10, 1]


def test_get_returns_the_single_match(library_session: Session) -> None:
    assert library_session.manager("Author").get(name="Frank Herbert").id == 2


def test_get_raises_when_nothing_or_several_match(library_session: Session) -> None:
    books = library_session.manager("Book")

    with pytest.raises(DoesNotExistError, match="No Book matches"):
        books.get(title="Missing")
    with pytest.raises(MultipleResultsError, match="2 Book rows match"):
        books.get()
    with pytest.raises(LookupError):
        books.get(title="Missing")


def test_by_ids_keeps_order_and_drops_missing(library_session: Session) -> None:
    tags = library_session.manager("Tag").by_ids([2, 99, 1, 2])

    assert tags.ids() == [2, 1]
    assert tags.to_plain() == [{"id": 2, "label": "classic"}, {"id": 1, "label": "fiction"}]


def test_with_id_returns_none_for_missing_rows(library_session: Session) -> None:
    assert library_session.manager("Tag").with_id(99) is None


def test_entity_without_branch_reads_as_empty(library_schemas: Mapping[str, Schema]) -> None:
    authors = open_session(library_schemas, {}).manager("Author")

    assert authors.ids() == []
    assert not authors.exists()
    assert authors.first() is None


def test_queryset_update_records_a_single_update(library_session: Session) -> None:
    library_session.manager("Book").filter(author=2).update({"title": "Dune (1965)"})
    library_session.manager("Book").filter(author=3).update({"title": "Nothing"})

    assert library_session.mutations == (Update("Book", (1,), {"title": "Dune (1965)"}),)


def test_queryset_delete_records_a_single_delete(library_session: Session) -> None:
    library_session.manager("Tag").all().delete()

    assert len(library_session.mutations) == 1
    assert access_list(library_session.get_next_state("Tag")) == []


def test_create_splits_many_to_many_values_into_through_rows(library_session: Session) -> None:
    tag = library_session.manager("Tag").with_id(2)

    book = library_session.manager("Book").create({"title": "Lathe", "author": 1, "tags": [tag]})

    assert book.to_plain() == {"title": "Lathe", "author": 1, "id": 3}
    through = access_list(library_session.get_next_state("BookTags"))
    assert through[-1] == {"fromBookId": 3, "toTagId": 2, "id": 3}
    assert [record.type.value for record in library_session.mutations] == ["create", "create"]
