"""Compose-pack diff action."""

from argparse import (
    ArgumentParser,
    _SubParsersAction as SubParsersAction,
)
import logging
from typing import cast

from compose_pack.diff import format_report
from compose_pack.orchestrator import Orchestrator

from .common import add_render_flags, build_render_options

_LOGGER = logging.getLogger(__name__)


class DiffAction:
    """Show what would change if the release were rendered now."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "diff",
                help="Diff a release against a freshly rendered chart",
                description=(
                    "Compare the current release with what would be rendered. "
                    "The chart defaults to the one the release was rendered from."
                ),
            ),
        )
        args.add_argument(
            "release",
            help="Name of the release",
            type=str,
        )
        args.add_argument(
            "--chart",
            default=None,
            help="Chart directory, archive or url to compare against",
        )
        args.add_argument(
            "--show-files",
            action="store_true",
            help="Show the changed file contents in addition to the compose changes",
        )
        add_render_flags(args)
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        release: str,
        chart: str | None,
        show_files: bool,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        options = build_render_options(release, chart, kwargs)
        report = await Orchestrator().diff_release(options)
        for line in format_report(report, show_files=show_files):
            print(line)
