"""Module for building the merged values of a release.

Values are layered in order: the chart defaults, each values file, then the
`--set` style overrides. Mappings are merged key by key while scalars and
lists from a later layer replace the earlier value entirely.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
import logging
from pathlib import Path
from typing import Any

import jsonschema
from jsonschema.exceptions import best_match
import yaml

from .chart import Chart, VALUES_FILE
from .exceptions import SchemaValidationException, ValuesException

__all__ = [
    "Values",
    "build_values",
    "deep_copy",
    "deep_merge",
    "parse_set_flags",
]

_LOGGER = logging.getLogger(__name__)

CHART_VALUES_SOURCE = f"chart:{VALUES_FILE}"
SET_VALUES_SOURCE = "cli:set"


@dataclass
class Values:
    """The merged values for a release and where they came from."""

    values: dict[str, Any] = field(default_factory=dict)
    """The merged configuration tree."""

    sources: list[str] = field(default_factory=list)
    """Ordered list of the sources that contributed to the values."""


def deep_copy(value: Any) -> Any:
    """Return a copy of a configuration tree that shares no mappings or lists."""
    if isinstance(value, dict):
        return {key: deep_copy(item) for key, item in value.items()}
    if isinstance(value, list):
        return [deep_copy(item) for item in value]
    return value


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge two dictionaries, similar to how Helm merges values.

    Lists and scalars in the override replace the base value entirely. Neither
    input is modified.
    """
    result = {key: deep_copy(value) for key, value in base.items()}
    for key, override_value in override.items():
        base_value = result.get(key)
        if isinstance(base_value, dict) and isinstance(override_value, dict):
            result[key] = deep_merge(base_value, override_value)
        else:
            result[key] = deep_copy(override_value)
    return result


def parse_set_flags(flags: Iterable[str]) -> dict[str, str]:
    """Parse `key=value` override flags into a mapping of dotted keys."""
    overrides: dict[str, str] = {}
    for flag in flags:
        key, sep, value = flag.partition("=")
        key = key.strip()
        if not sep or not key:
            raise ValuesException(f"Invalid override '{flag}', expected key=value")
        overrides[key] = value
    return overrides


def _assign_path(values: dict[str, Any], path: list[str], value: str) -> None:
    """Assign value at the dotted path, replacing any non-mapping on the way."""
    inner = values
    for part in path[:-1]:
        if not isinstance(inner.get(part), dict):
            inner[part] = {}
        inner = inner[part]
    inner[path[-1]] = value


def build_set_overrides(set_values: dict[str, str]) -> dict[str, Any]:
    """Convert dotted `a.b.c` keys into a nested mapping with string leaves."""
    overrides: dict[str, Any] = {}
    for key, value in set_values.items():
        _assign_path(overrides, key.split("."), value)
    return overrides


def load_values_file(path: Path) -> dict[str, Any]:
    """Read a values file, treating an empty file as an empty mapping."""
    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as err:
        raise ValuesException(f"Unable to read values file {path}: {err}") from err
    try:
        doc = yaml.safe_load(content)
    except yaml.YAMLError as err:
        raise ValuesException(f"Unable to parse values file {path}: {err}") from err
    if doc is None:
        return {}
    if not isinstance(doc, dict):
        raise ValuesException(
            f"Expected values file {path} to be a mapping, found {type(doc).__name__}"
        )
    return doc


def _format_error_path(error: jsonschema.ValidationError) -> str:
    if not error.absolute_path:
        return "(root)"
    return ".".join(str(part) for part in error.absolute_path)


def validate_values(schema: dict[str, Any] | None, values: dict[str, Any]) -> None:
    """Validate the values against the chart's JSON schema, if any."""
    if not schema:
        return
    try:
        validator_cls = jsonschema.validators.validator_for(schema)
        validator_cls.check_schema(schema)
    except jsonschema.SchemaError as err:
        raise SchemaValidationException(
            f"Invalid values schema: {err.message}"
        ) from err
    validator = validator_cls(schema)
    if (error := best_match(validator.iter_errors(values))) is not None:
        raise SchemaValidationException(
            f"Values failed schema validation at {_format_error_path(error)}: {error.message}"
        )


def build_values(
    chart: Chart,
    value_files: list[str] | None = None,
    set_values: dict[str, str] | None = None,
) -> Values:
    """Merge the chart defaults with values files and overrides."""
    result = Values(values=deep_copy(chart.values), sources=[CHART_VALUES_SOURCE])

    for value_file in value_files or ():
        _LOGGER.debug("Merging values file %s", value_file)
        contents = load_values_file(Path(value_file))
        result.values = deep_merge(result.values, contents)
        result.sources.append(value_file)

    if set_values:
        _LOGGER.debug("Merging %d override values", len(set_values))
        result.values = deep_merge(result.values, build_set_overrides(set_values))
        result.sources.append(SET_VALUES_SOURCE)

    validate_values(chart.values_schema, result.values)
    return result
