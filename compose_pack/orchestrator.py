"""Orchestrator for compose-pack.

This module ties the chart loader, values, templates, compose merge, runtime
directory and release store together into the render and diff flows.

```python
from compose_pack.orchestrator import Orchestrator, RenderOptions

orchestrator = Orchestrator()
runtime_dir, metadata = await orchestrator.render_release(
    RenderOptions(release_name="demo", chart_source="./charts/demo")
)
```
"""

from dataclasses import dataclass, field
import logging
from pathlib import Path

from .chart import Chart, TEMPLATES_COMPOSE_DIR
from .compose import Compose
from .config import OrchestratorConfig
from .diff import DiffReport, diff_manifests
from .exceptions import InputException, RuntimeDirException, TemplateException
from .loader import load_chart
from .release import ReleaseMetadata, ReleaseStore
from .runtime import (
    read_runtime_files,
    read_runtime_manifest,
    resolve_runtime_location,
    write_runtime,
)
from .template import FilesAccessor, RenderContext, TemplateEngine
from .values import Values, build_values

__all__ = [
    "Orchestrator",
    "RenderOptions",
    "RenderedRelease",
]

_LOGGER = logging.getLogger(__name__)


@dataclass
class RenderOptions:
    """Options for rendering a release."""

    release_name: str
    """The name of the release."""

    chart_source: str = ""
    """Chart directory, archive or url."""

    value_files: list[str] = field(default_factory=list)
    """Values files merged in order over the chart defaults."""

    set_values: dict[str, str] = field(default_factory=dict)
    """Dotted key overrides applied after the values files."""

    runtime_base_dir: Path | None = None
    """Directory holding releases, defaults to the configured releases dir."""

    runtime_path: Path | None = None
    """Explicit runtime directory of the release."""

    env: dict[str, str] = field(default_factory=dict)
    """Environment variables visible to templates."""


@dataclass
class RenderedRelease:
    """A release rendered in memory."""

    chart: Chart
    """The chart that was rendered."""

    values: Values
    """The merged values and their sources."""

    manifest: str
    """The merged compose document."""

    files: dict[str, bytes]
    """The rendered and static file assets."""

    compose_files: list[str]
    """The compose fragments merged into the manifest, in merge order."""


class Orchestrator:
    """Coordinates rendering and diffing releases."""

    def __init__(self, config: OrchestratorConfig | None = None) -> None:
        """Initialize the orchestrator."""
        self.config = config or OrchestratorConfig()
        self.compose = Compose(self.config.compose_config)
        self.templates = TemplateEngine()
        self.store = ReleaseStore()

    def runtime_dir(self, options: RenderOptions) -> Path:
        """Return the runtime directory for the release."""
        return resolve_runtime_location(
            options.release_name,
            options.runtime_base_dir or self.config.release_config.releases_dir,
            options.runtime_path,
        )

    async def template_release(
        self, options: RenderOptions, chart_source: str | None = None
    ) -> RenderedRelease:
        """Render a release in memory without writing anything."""
        if not options.release_name:
            raise InputException("Release name must be provided")
        source = chart_source or options.chart_source
        if not source:
            raise InputException("Chart source must be provided")

        chart = await load_chart(source)
        values = build_values(chart, options.value_files, options.set_values)
        ctx = RenderContext(
            values=values.values,
            release_name=options.release_name,
            chart=chart.metadata,
            env=options.env,
            files=FilesAccessor(chart.static_files),
        )
        fragments = self.templates.render_compose_fragments(chart, ctx)
        if not fragments:
            raise TemplateException(
                TEMPLATES_COMPOSE_DIR, "chart produced no compose templates"
            )
        files = self.templates.render_files(chart, ctx)
        result = await self.compose.merge_fragments(
            fragments, files, options.release_name
        )
        return RenderedRelease(
            chart=chart,
            values=values,
            manifest=result.manifest,
            files=files,
            compose_files=result.compose_files,
        )

    async def render_release(
        self, options: RenderOptions
    ) -> tuple[Path, ReleaseMetadata]:
        """Render a release and write its runtime directory and metadata."""
        runtime_dir = self.runtime_dir(options)
        rendered = await self.template_release(options)
        await write_runtime(runtime_dir, rendered.manifest, rendered.files)
        metadata = ReleaseMetadata(
            release_name=options.release_name,
            chart_metadata=rendered.chart.metadata,
            chart_source=options.chart_source,
            values=rendered.values.values,
            values_sources=rendered.values.sources,
            compose_files=rendered.compose_files,
        )
        await self.store.save(runtime_dir, metadata)
        _LOGGER.info(
            "Rendered release %s from chart %s into %s",
            options.release_name,
            rendered.chart,
            runtime_dir,
        )
        return runtime_dir, metadata

    async def diff_release(self, options: RenderOptions) -> DiffReport:
        """Compare the current release with a freshly rendered candidate.

        The chart source defaults to the one recorded when the release was
        last rendered.
        """
        runtime_dir = self.runtime_dir(options)
        current = await self.store.load(runtime_dir)
        chart_source = options.chart_source
        if not chart_source:
            if current is None:
                raise InputException(
                    f"Chart source is required, release {options.release_name} does not exist yet"
                )
            if not current.chart_source:
                raise InputException(
                    f"Release {options.release_name} exists but its chart source is unknown"
                )
            chart_source = current.chart_source
            _LOGGER.debug("Using recorded chart source %s", chart_source)

        rendered = await self.template_release(options, chart_source=chart_source)
        if current is None:
            return diff_manifests(None, rendered.manifest, None, rendered.files)

        if (manifest := await read_runtime_manifest(runtime_dir)) is None:
            raise RuntimeDirException(
                f"Release {options.release_name} is missing its manifest in {runtime_dir}"
            )
        current_files = await read_runtime_files(runtime_dir)
        return diff_manifests(
            manifest, rendered.manifest, current_files, rendered.files
        )
