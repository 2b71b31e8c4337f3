"""Library for rendering chart templates with Jinja2.

Templates are evaluated against a `RenderContext` that exposes these names:

- `Values`: the merged values for the release
- `Env`: a snapshot of environment variables passed in by the caller
- `Release`: `Release.Name`
- `Chart`: `Chart.Name`, `Chart.Version`, `Chart.Description`, `Chart.Maintainers`
- `Files`: read access to the chart's static files

Helper templates only define macros. Every macro is registered by name and
can be called from any compose or file template, either directly or through
`include`:

```
{# templates/helpers/labels.tpl #}
{% macro labels(component) -%}
app: {{ Release.Name }}
component: {{ component }}
{%- endmacro %}

{# templates/compose/app.tpl.yaml #}
services:
  app:
    image: "app:{{ Values.image.tag | default('latest') }}"
    labels: {{ include("labels", "web") | nindent(6) }}
```
"""

import base64
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
import fnmatch
import json
import logging
from typing import Any

import jinja2
from jinja2.runtime import Macro
import yaml

from .chart import Chart, ChartMetadata
from .exceptions import TemplateException

__all__ = [
    "FilesAccessor",
    "RenderContext",
    "TemplateEngine",
]

_LOGGER = logging.getLogger(__name__)


class FilesAccessor:
    """Read only access to the chart static files from templates."""

    def __init__(self, files: Mapping[str, bytes]) -> None:
        """Initialize FilesAccessor."""
        self._files = files

    def get(self, path: str) -> str:
        """Return the file contents as text, or an empty string when missing."""
        if (data := self._files.get(path)) is None:
            return ""
        return data.decode("utf-8")

    def get_bytes(self, path: str) -> bytes:
        """Return the raw file contents, or empty bytes when missing."""
        return self._files.get(path, b"")

    def glob(self, pattern: str) -> list[str]:
        """Return the sorted paths matching a glob pattern."""
        return sorted(path for path in self._files if fnmatch.fnmatch(path, pattern))

    def __contains__(self, path: object) -> bool:
        return path in self._files


@dataclass(frozen=True, kw_only=True)
class RenderContext:
    """The inputs that chart templates are evaluated against."""

    values: dict[str, Any]
    """The merged values for the release."""

    release_name: str
    """The name of the release being rendered."""

    chart: ChartMetadata
    """The metadata of the chart being rendered."""

    env: Mapping[str, str] = field(default_factory=dict)
    """Environment variables visible to templates."""

    files: FilesAccessor = field(default_factory=lambda: FilesAccessor({}))
    """Accessor for the chart static files."""

    def template_vars(self) -> dict[str, Any]:
        """Return the variables exposed to templates."""
        return {
            "Values": self.values,
            "Env": dict(self.env),
            "Release": {"Name": self.release_name},
            "Chart": {
                "Name": self.chart.name,
                "Version": self.chart.version,
                "Description": self.chart.description or "",
                "Maintainers": list(self.chart.maintainers or []),
            },
            "Files": self.files,
        }


def _quote(value: Any) -> str:
    return json.dumps("" if value is None else str(value))


def _squote(value: Any) -> str:
    text = "" if value is None else str(value)
    return "'" + text.replace("'", "''") + "'"


def _to_json(value: Any) -> str:
    return json.dumps(value, sort_keys=False)


def _to_yaml(value: Any) -> str:
    try:
        dumped = yaml.safe_dump(value, sort_keys=False, default_flow_style=False)
    except yaml.YAMLError as err:
        raise jinja2.TemplateRuntimeError(
            f"toYaml unable to represent {type(value).__name__}: {err}"
        ) from err
    return dumped.rstrip("\n")


def _nindent(value: Any, width: int) -> str:
    pad = " " * width
    return "\n" + "\n".join(pad + line for line in str(value).splitlines())


def _indent(value: Any, width: int) -> str:
    pad = " " * width
    return "\n".join(pad + line for line in str(value).splitlines())


def _b64enc(value: Any) -> str:
    data = value if isinstance(value, bytes) else str(value).encode("utf-8")
    return base64.b64encode(data).decode("ascii")


def _required(value: Any, message: str = "required value is missing") -> Any:
    if isinstance(value, jinja2.Undefined) or value is None or value == "":
        raise jinja2.TemplateRuntimeError(message)
    return value


_FILTERS: dict[str, Callable[..., Any]] = {
    "quote": _quote,
    "squote": _squote,
    "to_json": _to_json,
    "toJson": _to_json,
    "to_yaml": _to_yaml,
    "toYaml": _to_yaml,
    "indent": _indent,
    "nindent": _nindent,
    "b64enc": _b64enc,
    "required": _required,
}


# Errors raised while evaluating a template, including ones from filters
_RENDER_ERRORS = (
    jinja2.TemplateError,
    yaml.YAMLError,
    TypeError,
    ValueError,
    ArithmeticError,
    LookupError,
)


def _describe(err: Exception) -> str:
    if isinstance(err, jinja2.TemplateSyntaxError) and err.lineno:
        return f"line {err.lineno}: {err.message}"
    if isinstance(err, jinja2.TemplateError) and err.message:
        return err.message
    return f"{type(err).__name__}: {err}"


class TemplateEngine:
    """Renders chart templates against a render context.

    A new Jinja2 environment is created for every render so helper macros from
    one release never leak into another.
    """

    def _environment(
        self, ctx: RenderContext
    ) -> tuple[jinja2.Environment, dict[str, Macro]]:
        env = jinja2.Environment(
            autoescape=False,
            undefined=jinja2.StrictUndefined,
            keep_trailing_newline=True,
        )
        env.filters.update(_FILTERS)
        snapshot = dict(ctx.env)
        helpers: dict[str, Macro] = {}

        def include(name: str, *args: Any, **kwargs: Any) -> str:
            if (macro := helpers.get(name)) is None:
                raise jinja2.TemplateRuntimeError(f"helper '{name}' is not defined")
            return str(macro(*args, **kwargs))

        def lookup_env(name: str, default: str = "") -> str:
            return snapshot.get(name, default)

        env.globals.update(ctx.template_vars())
        env.globals["include"] = include
        env.globals["env"] = lookup_env
        return env, helpers

    def _register_helpers(
        self,
        env: jinja2.Environment,
        helpers: dict[str, Macro],
        chart: Chart,
        ctx: RenderContext,
    ) -> None:
        """Evaluate helper templates and register their macros by name."""
        for path in sorted(chart.helper_templates):
            try:
                module = env.from_string(chart.helper_templates[path]).make_module(
                    vars=ctx.template_vars()
                )
            except _RENDER_ERRORS as err:
                raise TemplateException(path, _describe(err)) from err
            for name, value in vars(module).items():
                if not isinstance(value, Macro):
                    continue
                if name in helpers:
                    _LOGGER.warning(
                        "Helper %s defined in %s replaces an earlier definition",
                        name,
                        path,
                    )
                helpers[name] = value
                env.globals[name] = value
        _LOGGER.debug("Registered %d helpers", len(helpers))

    def _render_all(
        self, chart: Chart, templates: dict[str, str], ctx: RenderContext
    ) -> dict[str, str]:
        env, helpers = self._environment(ctx)
        self._register_helpers(env, helpers, chart, ctx)
        results: dict[str, str] = {}
        for path in sorted(templates):
            _LOGGER.debug("Rendering template %s", path)
            try:
                results[path] = env.from_string(templates[path]).render()
            except _RENDER_ERRORS as err:
                raise TemplateException(path, _describe(err)) from err
        return results

    def render_compose_fragments(
        self, chart: Chart, ctx: RenderContext
    ) -> dict[str, str]:
        """Render the compose templates, keyed by fragment path."""
        return self._render_all(chart, chart.compose_templates, ctx)

    def render_files(self, chart: Chart, ctx: RenderContext) -> dict[str, bytes]:
        """Render the file templates and combine them with the static files.

        A file template that renders to the same path as a static file replaces
        the static file.
        """
        results: dict[str, bytes] = dict(chart.static_files)
        for path, content in self._render_all(
            chart, chart.file_templates, ctx
        ).items():
            if path in results:
                _LOGGER.warning(
                    "File template %s overwrites the static file with the same path",
                    path,
                )
            results[path] = content.encode("utf-8")
        return dict(sorted(results.items()))
