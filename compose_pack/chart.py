"""Representation of a loaded chart.

A chart is a versioned bundle of templates, default values and static assets
laid out on disk like this:

```
my-chart/
  Chart.yaml                  # name, version, description, maintainers
  values.yaml                 # default values
  values.schema.json          # optional JSON schema for the merged values
  templates/compose/*.tpl.yaml
  templates/files/**/*.tpl
  templates/helpers/*.tpl
  files/**                    # copied verbatim
```

Charts are produced by `compose_pack.loader.load_chart` and are never modified
after they are loaded.
"""

from dataclasses import dataclass, field
from typing import Any

from mashumaro import DataClassDictMixin
from mashumaro.config import BaseConfig

from .exceptions import InvalidChartException

__all__ = [
    "Chart",
    "ChartMetadata",
]

METADATA_FILE = "Chart.yaml"
VALUES_FILE = "values.yaml"
VALUES_SCHEMA_FILE = "values.schema.json"
TEMPLATES_COMPOSE_DIR = "templates/compose"
TEMPLATES_FILES_DIR = "templates/files"
TEMPLATES_HELPERS_DIR = "templates/helpers"
FILES_DIR = "files"
TEMPLATE_SUFFIX = ".tpl"
COMPOSE_TEMPLATE_SUFFIXES = (".tpl.yaml", ".tpl.yml")


@dataclass(frozen=True)
class ChartMetadata(DataClassDictMixin):
    """Metadata read from Chart.yaml."""

    name: str
    """The name of the chart."""

    version: str
    """The version of the chart."""

    description: str | None = None
    """A human readable description of the chart."""

    maintainers: list[str] | None = None
    """People responsible for the chart."""

    @classmethod
    def parse_doc(cls, doc: Any) -> "ChartMetadata":
        """Parse the ChartMetadata from the contents of Chart.yaml.

        An integer version is accepted as its decimal string. A float version
        is rejected since YAML already dropped its trailing zeros, so `1.10`
        must be written as `"1.10"`.
        """
        if not isinstance(doc, dict):
            raise InvalidChartException(
                f"Invalid {METADATA_FILE} expected a mapping: {doc}"
            )
        if not (name := doc.get("name")) or not isinstance(name, str):
            raise InvalidChartException(f"Invalid {METADATA_FILE} missing name: {doc}")
        version = doc.get("version")
        if isinstance(version, float):
            raise InvalidChartException(
                f"Invalid {METADATA_FILE} version {version!r} must be quoted as a string"
            )
        if isinstance(version, int) and not isinstance(version, bool):
            version = str(version)
        if not version or not isinstance(version, str):
            raise InvalidChartException(
                f"Invalid {METADATA_FILE} missing version: {doc}"
            )
        maintainers: list[str] | None = None
        if raw_maintainers := doc.get("maintainers"):
            if not isinstance(raw_maintainers, list):
                raise InvalidChartException(
                    f"Invalid {METADATA_FILE} maintainers must be a list: {doc}"
                )
            maintainers = [_maintainer_name(item) for item in raw_maintainers]
        description = doc.get("description")
        return cls(
            name=name,
            version=version,
            description=str(description) if description is not None else None,
            maintainers=maintainers,
        )

    class Config(BaseConfig):
        omit_none = True


def _maintainer_name(item: Any) -> str:
    """Return a maintainer entry, accepting the Helm style `{name, email}` form."""
    if isinstance(item, dict):
        name = str(item.get("name", ""))
        if email := item.get("email"):
            return f"{name} <{email}>"
        return name
    return str(item)


@dataclass(frozen=True, kw_only=True)
class Chart:
    """A fully loaded chart.

    Template keys are relative paths with the template suffix removed, and
    always use `/` as a separator.
    """

    metadata: ChartMetadata
    """The chart metadata."""

    base_dir: str
    """The directory the chart was loaded from, for informational purposes."""

    values: dict[str, Any] = field(default_factory=dict)
    """The default values of the chart."""

    values_schema: dict[str, Any] | None = None
    """Optional JSON schema used to validate merged values."""

    compose_templates: dict[str, str] = field(default_factory=dict)
    """Templates that render into compose fragments."""

    file_templates: dict[str, str] = field(default_factory=dict)
    """Templates that render into runtime files."""

    helper_templates: dict[str, str] = field(default_factory=dict)
    """Templates that only define snippets for other templates."""

    static_files: dict[str, bytes] = field(default_factory=dict)
    """Files copied verbatim into the runtime directory."""

    @property
    def name(self) -> str:
        """Return the name of the chart."""
        return self.metadata.name

    @property
    def version(self) -> str:
        """Return the version of the chart."""
        return self.metadata.version

    def __str__(self) -> str:
        return f"{self.metadata.name}-{self.metadata.version}"
