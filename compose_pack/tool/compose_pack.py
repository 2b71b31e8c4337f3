"""Command line tool for rendering and diffing compose-pack releases."""

import argparse
import asyncio
import logging
import sys
import traceback

from compose_pack.exceptions import ComposePackException
from . import diff, template

_LOGGER = logging.getLogger(__name__)


def _make_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Command line utility for rendering charts into docker compose releases.",
    )
    parser.add_argument(
        "--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    )

    subparsers = parser.add_subparsers(dest="command", help="Command", required=True)

    template.TemplateAction.register(subparsers)
    diff.DiffAction.register(subparsers)
    return parser


def main() -> None:
    """Compose-pack command line tool main entry point."""
    parser = _make_parser()
    args = parser.parse_args()

    if args.log_level:
        logging.basicConfig(level=args.log_level)

    action = args.cls()
    try:
        asyncio.run(action.run(**vars(args)))
    except ComposePackException as err:
        if args.log_level == "DEBUG":
            traceback.print_exc(file=sys.stderr)
        print("compose-pack error: ", err, file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
