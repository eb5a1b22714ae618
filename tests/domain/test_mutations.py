from __future__ import annotations

import pytest

from ormstate import Create, Delete, MutationLog, Update
from ormstate.domain.mutations import MutationType


def test_records_report_their_type() -> None:
    assert Create("Tag", {"label": "x"}).type is MutationType.CREATE
    assert Update("Tag", (1,), {"label": "y"}).type is MutationType.UPDATE
    assert Delete("Tag", (1,)).type is MutationType.DELETE


def test_create_payload_is_frozen_copy() -> None:
    payload = {"label": "x"}
    record = Create("Tag", payload)

    payload["label"] = "changed"

    assert record.payload == {"label": "x"}
    with pytest.raises(TypeError):
        record.payload["label"] = "y"  # type: ignore[index]


def test_ids_are_normalized() -> None:
    assert Update("Tag", 3, {}).ids == (3,)  # type: ignore[arg-type]
    assert Delete("Tag", [2, 1, 2]).ids == (2, 1)  # type: ignore[arg-type]
    assert Delete("Tag", "abc").ids == ("abc",)  # type: ignore[arg-type]


def test_callable_patch_is_kept_as_is() -> None:
    def patch(record):
        return {"count": record["count"] + 1}

    assert Update("Tag", (1,), patch).patch is patch


def test_log_keeps_append_order_and_indexes_by_entity() -> None:
    log = MutationLog()
    first = Create("Tag", {"label": "a"})
    second = Create("Book", {"title": "b"})
    third = Delete("Tag", (1,))

    for record in (first, second, third):
        log.append(record)

    assert list(log) == [first, second, third]
    assert len(log) == 3
    assert log.for_entity("Tag") == (first, third)
    assert log.for_entity("Author") == ()
    assert log.entity_names() == ("Tag", "Book")


def test_log_iteration_is_a_snapshot() -> None:
    log = MutationLog()
    log.append(Create("Tag", {}))

    walk = iter(log)
    log.append(Create("Tag", {}))

    assert len(list(walk)) == 1
