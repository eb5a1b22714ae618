"""Adapters between ormstate and external representations."""

from __future__ import annotations

from .json_document import (
    DocumentError,
    DocumentModel,
    dump_schemas,
    dump_state,
    load_document,
    parse_document,
)

__all__ = [
    "DocumentError",
    "DocumentModel",
    "dump_schemas",
    "dump_state",
    "load_document",
    "parse_document",
]
