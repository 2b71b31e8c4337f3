"""Compose-pack template action."""

from argparse import (
    ArgumentParser,
    _SubParsersAction as SubParsersAction,
)
import logging
import sys
from typing import cast

from compose_pack.orchestrator import Orchestrator

from .common import add_render_flags, build_render_options

_LOGGER = logging.getLogger(__name__)


class TemplateAction:
    """Render a chart into a release runtime directory."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "template",
                help="Render a chart into a release runtime directory",
                description=(
                    "Render the chart templates, merge the compose fragments and "
                    "write the release runtime directory without starting anything."
                ),
            ),
        )
        args.add_argument(
            "chart",
            help="Chart directory, archive or url",
            type=str,
        )
        args.add_argument(
            "--name",
            required=True,
            help="Name of the release",
        )
        args.add_argument(
            "--dry-run",
            action="store_true",
            help="Print the merged compose manifest instead of writing the release",
        )
        add_render_flags(args)
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        chart: str,
        name: str,
        dry_run: bool,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        options = build_render_options(name, chart, kwargs)
        orchestrator = Orchestrator()
        if dry_run:
            rendered = await orchestrator.template_release(options)
            sys.stdout.write(rendered.manifest)
            return
        runtime_dir, metadata = await orchestrator.render_release(options)
        print(
            f"Rendered release {metadata.release_name} "
            f"({metadata.chart_metadata.name} {metadata.chart_metadata.version}) "
            f"to {runtime_dir}"
        )
