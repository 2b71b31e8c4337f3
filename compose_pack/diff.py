"""Module for comparing a deployed release with a freshly rendered candidate.

Services are compared by the YAML text of their definition in the merged
manifest, and file assets are compared by path and contents. The change hunks
are a positional line comparison rather than a minimal edit script, which
keeps them stable and easy to read for small configuration changes.

This is used internally, primarily by the diff tool.
"""

from collections.abc import Generator, Iterable
from dataclasses import dataclass, field
import logging
from typing import Any, TypeVar

import yaml

__all__ = [
    "DiffReport",
    "diff_manifests",
    "format_report",
    "positional_diff",
]

_LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


def _unique_keys(k1: dict[T, Any], k2: dict[T, Any]) -> Iterable[T]:
    """Return an ordered set."""
    return {
        **{k: True for k in k1.keys()},
        **{k: True for k in k2.keys()},
    }.keys()


@dataclass
class DiffReport:
    """Differences between the current and candidate state of a release."""

    is_new: bool = False
    """True when there is no current release and everything is new."""

    compose_differs: bool = False
    """True when the merged manifests are not byte for byte identical."""

    compose_hunks: list[str] = field(default_factory=list)
    """Positional line diff of the merged manifests."""

    added_services: list[str] = field(default_factory=list)
    """Services only present in the candidate."""

    removed_services: list[str] = field(default_factory=list)
    """Services only present in the current release."""

    modified_services: list[str] = field(default_factory=list)
    """Services whose definition changed."""

    added_files: list[str] = field(default_factory=list)
    """Files only present in the candidate."""

    removed_files: list[str] = field(default_factory=list)
    """Files only present in the current release."""

    modified_files: list[str] = field(default_factory=list)
    """Files whose contents changed."""

    candidate_manifest: str = field(default="", repr=False)
    """The merged manifest of the candidate."""

    current_files: dict[str, bytes] = field(default_factory=dict, repr=False)
    """File assets of the current release."""

    candidate_files: dict[str, bytes] = field(default_factory=dict, repr=False)
    """File assets of the candidate."""

    @property
    def compose_changed(self) -> bool:
        """Return true if the merged manifest changed."""
        return self.is_new or self.compose_differs

    @property
    def files_changed(self) -> bool:
        """Return true if any file asset was added, removed or modified."""
        return bool(self.added_files or self.removed_files or self.modified_files)

    @property
    def has_changes(self) -> bool:
        """Return true if applying the candidate would change anything."""
        return self.compose_changed or self.files_changed

    @property
    def affected_services(self) -> list[str]:
        """Return the services affected by the change, annotated by kind."""
        return [
            *self.added_services,
            *(f"{name} (removed)" for name in self.removed_services),
            *(f"{name} (modified)" for name in self.modified_services),
        ]


def positional_diff(current: str, candidate: str) -> list[str]:
    """Compare two texts line by line at matching positions.

    Each differing pair of lines produces `- old` followed by `+ new`, where
    empty lines are left out.
    """
    current_lines = current.split("\n")
    candidate_lines = candidate.split("\n")
    results: list[str] = []
    for i in range(max(len(current_lines), len(candidate_lines))):
        old = current_lines[i] if i < len(current_lines) else ""
        new = candidate_lines[i] if i < len(candidate_lines) else ""
        if old == new:
            continue
        if old:
            results.append(f"- {old}")
        if new:
            results.append(f"+ {new}")
    return results


def _services(manifest: str | None) -> dict[str, str]:
    """Return the YAML text of each service keyed by service name."""
    if not manifest:
        return {}
    try:
        doc = yaml.safe_load(manifest)
    except yaml.YAMLError as err:
        _LOGGER.debug("Unable to parse manifest, treating as no services: %s", err)
        return {}
    if not isinstance(doc, dict) or not isinstance(
        services := doc.get("services"), dict
    ):
        return {}
    return {
        str(name): yaml.safe_dump(service, sort_keys=False)
        for name, service in services.items()
    }


def diff_manifests(
    current: str | None,
    candidate: str,
    current_files: dict[str, bytes] | None,
    candidate_files: dict[str, bytes],
) -> DiffReport:
    """Compare the current manifest and files with the candidate.

    A current manifest of None means the release does not exist yet, so every
    service and file of the candidate is reported as added.
    """
    report = DiffReport(
        is_new=current is None,
        candidate_manifest=candidate,
        current_files=dict(current_files or {}),
        candidate_files=dict(candidate_files),
    )
    current_services = _services(current)
    candidate_services = _services(candidate)
    for name in _unique_keys(current_services, candidate_services):
        if name not in current_services:
            report.added_services.append(name)
        elif name not in candidate_services:
            report.removed_services.append(name)
        elif current_services[name] != candidate_services[name]:
            report.modified_services.append(name)
    if current is not None and current != candidate:
        report.compose_differs = True
        report.compose_hunks = positional_diff(current, candidate)

    for path in _unique_keys(report.current_files, report.candidate_files):
        if path not in report.current_files:
            report.added_files.append(path)
        elif path not in report.candidate_files:
            report.removed_files.append(path)
        elif report.current_files[path] != report.candidate_files[path]:
            report.modified_files.append(path)

    for names in (
        report.added_services,
        report.removed_services,
        report.modified_services,
        report.added_files,
        report.removed_files,
        report.modified_files,
    ):
        names.sort()
    _LOGGER.debug("Computed diff: %s", report)
    return report


def _decode(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")


def format_report(
    report: DiffReport, show_files: bool = False
) -> Generator[str, None, None]:
    """Generate the human readable lines of a diff report."""
    if report.is_new:
        yield "New release, the following would be created:"
        yield ""
        yield "Docker Compose Configuration:"
        yield from report.candidate_manifest.rstrip("\n").split("\n")
        yield ""
        if report.added_services:
            yield "Services that would be created:"
            for name in report.added_services:
                yield f"  * {name}"
            yield ""
        if report.added_files:
            yield "Files that would be created:"
            for path in report.added_files:
                yield f"  + {path}"
            yield ""
        if show_files and report.added_files:
            yield "File contents:"
            for path in report.added_files:
                yield ""
                yield f"--- {path}"
                yield from _decode(report.candidate_files[path]).split("\n")
        return

    if not report.compose_changed:
        yield "No changes detected in docker-compose.yaml"
    else:
        yield "Docker Compose changes:"
        yield ""
        yield from report.compose_hunks
        yield ""
        if affected := report.affected_services:
            yield "Affected services:"
            for name in affected:
                yield f"  * {name}"
            yield ""

    if not report.files_changed:
        if show_files:
            yield "No changes detected in files/"
        return

    yield "File changes:"
    if report.added_files:
        yield "  Added:"
        for path in report.added_files:
            yield f"    + {path}"
    if report.removed_files:
        yield "  Removed:"
        for path in report.removed_files:
            yield f"    - {path}"
    if report.modified_files:
        yield "  Modified:"
        for path in report.modified_files:
            yield f"    ~ {path}"
    yield ""

    if show_files and report.modified_files:
        yield "Detailed file diffs:"
        for path in report.modified_files:
            yield ""
            yield f"--- a/{path}"
            yield f"+++ b/{path}"
            yield from positional_diff(
                _decode(report.current_files[path]),
                _decode(report.candidate_files[path]),
            )
