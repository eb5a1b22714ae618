from __future__ import annotations

import argparse
import json
import logging
import sys
from signal import SIGINT, signal
from typing import TYPE_CHECKING, Any

from dotenv import load_dotenv

from ormstate.adapters import dump_schemas, dump_state, load_document
from ormstate.config import ConfigurationError, configure_logging, get_engine_config
from ormstate.domain.errors import OrmError
from ormstate.domain.schema import resolve_schemas
from ormstate.domain.session import open_session

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

    from ormstate.config import EngineConfig

log = logging.getLogger(__name__)


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Fold recorded mutations into normalized state")
    subparsers = parser.add_subparsers(dest="command", required=True)

    schema = subparsers.add_parser(
        "schema", help="Print resolved schemas, through entities included"
    )
    schema.add_argument("document", type=str, help="Path to a JSON replay document")
    schema.add_argument(
        "--indent",
        type=int,
        default=2,
        help="JSON indentation (default: %(default)s)",
    )

    replay = subparsers.add_parser(
        "replay", help="Fold a document's mutations and print the state"
    )
    replay.add_argument("document", type=str, help="Path to a JSON replay document")
    replay.add_argument(
        "--entity",
        action="append",
        default=None,
        help="Only print this entity's branch (repeatable)",
    )
    replay.add_argument(
        "--indent",
        type=int,
        default=2,
        help="JSON indentation (default: %(default)s)",
    )

    args = parser.parse_args(list(argv))
    if args.indent < 0:
        parser.error("--indent must be non-negative")
    return args


def _schema_command(args: argparse.Namespace, config: EngineConfig) -> dict[str, Any]:
    document = load_document(args.document)
    schemas = resolve_schemas(
        document.declarations(), default_id_attribute=config.default_id_attribute
    )
    return dump_schemas(schemas)


def _replay_command(args: argparse.Namespace, config: EngineConfig) -> dict[str, Any]:
    document = load_document(args.document)
    schemas = resolve_schemas(
        document.declarations(), default_id_attribute=config.default_id_attribute
    )
    session = open_session(schemas, document.root_state(schemas))
    for record in document.to_mutations():
        session.add_mutation(record)
    log.info("Folding %d mutations", len(session.mutations))

    wanted = args.entity or list(schemas)
    unknown = [name for name in wanted if name not in schemas]
    if unknown:
        raise ValueError(f"Unknown entity: {', '.join(unknown)}")
    root = session.finalize()
    return dump_state({name: root[name] for name in wanted})


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    try:
        config = get_engine_config()
    except ConfigurationError:
        configure_logging()
        log.exception("Invalid configuration")
        sys.exit(2)
    configure_logging(level=config.log_level)

    parsed_args = _parse_args(args_list)

    try:
        if parsed_args.command == "schema":
            output = _schema_command(parsed_args, config)
        elif parsed_args.command == "replay":
            output = _replay_command(parsed_args, config)
        else:
            raise ValueError(f"Unsupported command: {parsed_args.command}")  # noqa: TRY301
    except (OrmError, ValueError):
        log.exception("Failed to process %s", parsed_args.document)
        sys.exit(1)

    json.dump(output, sys.stdout, indent=parsed_args.indent or None, default=str)
    sys.stdout.write("\n")


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C) gracefully."""
    log.info("Closed by user (Ctrl+C)")
    sys.exit(0)


def run() -> None:
    load_dotenv()
    signal(SIGINT, sigint_handler)
    main()


if __name__ == "__main__":
    run()
