"""Flags shared by the actions that render a release."""

from argparse import ArgumentParser
import os
import pathlib
from typing import Any

from compose_pack.orchestrator import RenderOptions
from compose_pack.values import parse_set_flags


def add_render_flags(args: ArgumentParser) -> None:
    """Add flags that control how a release is rendered."""
    args.add_argument(
        "--values",
        "-f",
        dest="value_files",
        action="append",
        default=[],
        help="Values file merged over the chart defaults, may be repeated",
    )
    args.add_argument(
        "--set",
        dest="set_values",
        action="append",
        default=[],
        help="Override a value with key=value, may be repeated",
    )
    args.add_argument(
        "--release-dir",
        type=pathlib.Path,
        default=None,
        help="Base directory holding the release runtime directories",
    )
    args.add_argument(
        "--runtime-dir",
        type=pathlib.Path,
        default=None,
        help="Explicit runtime directory of the release, must be named after the release",
    )


def build_render_options(
    release_name: str, chart_source: str | None, kwargs: dict[str, Any]
) -> RenderOptions:
    """Build the render options from parsed command line flags."""
    return RenderOptions(
        release_name=release_name,
        chart_source=chart_source or "",
        value_files=list(kwargs.get("value_files") or []),
        set_values=parse_set_flags(kwargs.get("set_values") or []),
        runtime_base_dir=kwargs.get("release_dir"),
        runtime_path=kwargs.get("runtime_dir"),
        env=dict(os.environ),
    )
