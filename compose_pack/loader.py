"""Library for loading a chart from a directory, archive or url.

The source kind is decided once up front and then handed to a dedicated
loader:

```python
from compose_pack.loader import load_chart

chart = await load_chart("./charts/my-app")
chart = await load_chart("my-app-1.0.0.cpack.tgz")
chart = await load_chart("https://example.com/charts/my-app-1.0.0.cpack.tgz")
print(f"Loaded chart {chart.metadata.name} {chart.metadata.version}")
```

Archives and downloads are unpacked into temporary locations that are removed
before `load_chart` returns, whether or not loading succeeded.
"""

from collections.abc import Awaitable, Callable
from enum import Enum
import json
import logging
import os
from pathlib import Path, PurePosixPath
import tarfile
import tempfile
from typing import Any

import aiofiles
import requests
import yaml

from .chart import (
    Chart,
    ChartMetadata,
    COMPOSE_TEMPLATE_SUFFIXES,
    FILES_DIR,
    METADATA_FILE,
    TEMPLATE_SUFFIX,
    TEMPLATES_COMPOSE_DIR,
    TEMPLATES_FILES_DIR,
    TEMPLATES_HELPERS_DIR,
    VALUES_FILE,
    VALUES_SCHEMA_FILE,
)
from .exceptions import (
    ChartNotFoundException,
    InputException,
    InvalidChartException,
    NetworkException,
)

__all__ = [
    "load_chart",
    "load_chart_dir",
    "SourceKind",
    "resolve_source_kind",
]

_LOGGER = logging.getLogger(__name__)

ARCHIVE_SUFFIXES = (".tar", ".tar.gz", ".tgz", ".cpack", ".cpack.tgz")
URL_PREFIXES = ("http://", "https://")
DOWNLOAD_SUFFIX = ".cpack.tgz"
DOWNLOAD_TIMEOUT = 60
DOWNLOAD_CHUNK = 1024 * 1024
USER_AGENT = "compose-pack"


class SourceKind(Enum):
    """The kinds of chart sources that can be loaded."""

    DIRECTORY = "directory"
    ARCHIVE = "archive"
    URL = "url"


def is_url(source: str) -> bool:
    """Return true if the source is a http(s) url."""
    return source.lower().startswith(URL_PREFIXES)


def is_archive(source: str) -> bool:
    """Return true if the source has a recognized archive extension."""
    return source.lower().endswith(ARCHIVE_SUFFIXES)


def resolve_source_kind(source: str) -> SourceKind:
    """Determine how a chart source should be loaded."""
    if is_url(source):
        return SourceKind.URL
    path = Path(source)
    if path.is_dir():
        return SourceKind.DIRECTORY
    if path.exists():
        if is_archive(source):
            return SourceKind.ARCHIVE
        raise InvalidChartException(
            f"Chart source {source} is not a directory or chart archive"
        )
    raise ChartNotFoundException(f"Chart source {source} not found")


def _should_skip(name: str) -> bool:
    """Return true for OS artifacts that are never part of a chart."""
    parts = PurePosixPath(name).parts
    if parts and parts[0] == "__MACOSX":
        return True
    base = parts[-1] if parts else ""
    return base.startswith("._") or base == ".DS_Store"


def _is_hidden_dir(name: str) -> bool:
    return name.startswith(".") or name == "__MACOSX"


def _strip_suffix(name: str, suffix: str) -> str:
    return name[: -len(suffix)] if name.endswith(suffix) else name


def _walk_files(root: Path) -> list[tuple[str, Path]]:
    """Return all files below root as sorted (relative posix path, path) pairs."""
    if not root.is_dir():
        return []
    results = []
    for path in root.rglob("*"):
        if not path.is_file():
            continue
        rel = path.relative_to(root).as_posix()
        if _should_skip(rel):
            continue
        results.append((rel, path))
    return sorted(results)


async def _read_text(path: Path) -> str:
    async with aiofiles.open(path, encoding="utf-8") as f:
        return await f.read()


async def _read_bytes(path: Path) -> bytes:
    async with aiofiles.open(path, mode="rb") as f:
        return await f.read()


async def _read_metadata(chart_dir: Path) -> ChartMetadata:
    metadata_path = chart_dir / METADATA_FILE
    if not metadata_path.is_file():
        raise InvalidChartException(f"Chart {chart_dir} missing {METADATA_FILE}")
    try:
        doc = yaml.safe_load(await _read_text(metadata_path))
    except (yaml.YAMLError, UnicodeDecodeError) as err:
        raise InvalidChartException(
            f"Unable to parse {metadata_path}: {err}"
        ) from err
    return ChartMetadata.parse_doc(doc)


async def _read_values(chart_dir: Path) -> dict[str, Any]:
    values_path = chart_dir / VALUES_FILE
    if not values_path.is_file():
        raise InvalidChartException(f"Chart {chart_dir} missing {VALUES_FILE}")
    try:
        doc = yaml.safe_load(await _read_text(values_path))
    except (yaml.YAMLError, UnicodeDecodeError) as err:
        raise InvalidChartException(f"Unable to parse {values_path}: {err}") from err
    if doc is None:
        return {}
    if not isinstance(doc, dict):
        raise InvalidChartException(
            f"Invalid {values_path} expected a mapping, found {type(doc).__name__}"
        )
    return doc


async def _read_schema(chart_dir: Path) -> dict[str, Any] | None:
    schema_path = chart_dir / VALUES_SCHEMA_FILE
    if not schema_path.is_file():
        return None
    try:
        schema = json.loads(await _read_text(schema_path))
    except (ValueError, UnicodeDecodeError) as err:
        raise InvalidChartException(f"Unable to parse {schema_path}: {err}") from err
    if not isinstance(schema, dict):
        raise InvalidChartException(f"Invalid {schema_path} expected a JSON object")
    return schema


async def _read_templates(root: Path, suffixes: tuple[str, ...]) -> dict[str, str]:
    """Read templates matching the suffixes, keyed without the `.tpl` marker."""
    templates: dict[str, str] = {}
    for rel, path in _walk_files(root):
        suffix = next((s for s in suffixes if rel.endswith(s)), None)
        if suffix is None:
            continue
        key = _strip_suffix(rel, suffix) + suffix.replace(TEMPLATE_SUFFIX, "", 1)
        try:
            templates[key] = await _read_text(path)
        except UnicodeDecodeError as err:
            raise InvalidChartException(f"Template {path} is not utf-8: {err}") from err
    return templates


async def load_chart_dir(chart_dir: Path) -> Chart:
    """Load a chart from a local directory."""
    _LOGGER.debug("Loading chart from directory %s", chart_dir)
    metadata = await _read_metadata(chart_dir)
    values = await _read_values(chart_dir)
    schema = await _read_schema(chart_dir)
    static_files = {
        rel: await _read_bytes(path) for rel, path in _walk_files(chart_dir / FILES_DIR)
    }
    chart = Chart(
        metadata=metadata,
        base_dir=str(chart_dir),
        values=values,
        values_schema=schema,
        compose_templates=await _read_templates(
            chart_dir / TEMPLATES_COMPOSE_DIR, COMPOSE_TEMPLATE_SUFFIXES
        ),
        file_templates=await _read_templates(
            chart_dir / TEMPLATES_FILES_DIR, (TEMPLATE_SUFFIX,)
        ),
        helper_templates=await _read_templates(
            chart_dir / TEMPLATES_HELPERS_DIR, (TEMPLATE_SUFFIX,)
        ),
        static_files=static_files,
    )
    _LOGGER.debug(
        "Loaded chart %s (%d compose templates, %d file templates, %d helpers, %d files)",
        chart,
        len(chart.compose_templates),
        len(chart.file_templates),
        len(chart.helper_templates),
        len(chart.static_files),
    )
    return chart


def _extract_archive(archive: Path, dest: Path) -> None:
    """Extract regular files and directories from a tar archive into dest."""
    dest_root = dest.resolve()
    try:
        with tarfile.open(archive, mode="r:*") as tar:
            for member in tar:
                if _should_skip(member.name):
                    continue
                target = (dest_root / member.name).resolve()
                if not target.is_relative_to(dest_root):
                    raise InvalidChartException(
                        f"Chart archive {archive} entry {member.name} escapes the archive root"
                    )
                if member.isdir():
                    target.mkdir(parents=True, exist_ok=True)
                    continue
                if not member.isfile():
                    _LOGGER.debug("Skipping archive entry %s", member.name)
                    continue
                target.parent.mkdir(parents=True, exist_ok=True)
                if (content := tar.extractfile(member)) is None:
                    continue
                with content, target.open("wb") as out:
                    while chunk := content.read(DOWNLOAD_CHUNK):
                        out.write(chunk)
    except (tarfile.TarError, EOFError, OSError) as err:
        raise InvalidChartException(
            f"Unable to extract chart archive {archive}: {err}"
        ) from err


def _find_chart_root(base: Path) -> Path:
    """Find the first directory containing the chart metadata file."""
    for dirpath, dirnames, filenames in os.walk(base):
        dirnames[:] = sorted(d for d in dirnames if not _is_hidden_dir(d))
        for filename in sorted(filenames):
            if filename.lower() == METADATA_FILE.lower() and not _should_skip(
                filename
            ):
                return Path(dirpath)
    raise InvalidChartException(f"Chart archive missing {METADATA_FILE}")


async def load_chart_archive(archive: Path) -> Chart:
    """Load a chart from a tar or gzipped tar archive."""
    _LOGGER.debug("Loading chart from archive %s", archive)
    with tempfile.TemporaryDirectory(prefix="compose-pack-chart-") as tmp_dir:
        _extract_archive(archive, Path(tmp_dir))
        return await load_chart_dir(_find_chart_root(Path(tmp_dir)))


def _download(url: str, dest: Path) -> None:
    """Download the url contents to the destination file."""
    try:
        with requests.get(
            url,
            stream=True,
            timeout=DOWNLOAD_TIMEOUT,
            headers={"User-Agent": USER_AGENT},
        ) as resp:
            if not 200 <= resp.status_code < 300:
                raise NetworkException(
                    f"Unable to download chart {url}: unexpected status {resp.status_code} {resp.reason}"
                )
            with dest.open("wb") as out:
                for chunk in resp.iter_content(chunk_size=DOWNLOAD_CHUNK):
                    if chunk:
                        out.write(chunk)
    except requests.RequestException as err:
        raise NetworkException(f"Unable to download chart {url}: {err}") from err


async def load_chart_url(url: str) -> Chart:
    """Download a chart archive and load it."""
    _LOGGER.info("Downloading chart %s", url)
    fd, name = tempfile.mkstemp(prefix="compose-pack-chart-", suffix=DOWNLOAD_SUFFIX)
    os.close(fd)
    download_path = Path(name)
    try:
        _download(url, download_path)
        return await load_chart_archive(download_path)
    finally:
        download_path.unlink(missing_ok=True)


async def _load_dir_source(source: str) -> Chart:
    return await load_chart_dir(Path(source))


async def _load_archive_source(source: str) -> Chart:
    return await load_chart_archive(Path(source))


_LOADERS: dict[SourceKind, Callable[[str], Awaitable[Chart]]] = {
    SourceKind.DIRECTORY: _load_dir_source,
    SourceKind.ARCHIVE: _load_archive_source,
    SourceKind.URL: load_chart_url,
}


async def load_chart(source: str) -> Chart:
    """Load a chart from a directory, archive or url."""
    if not source:
        raise InputException("Chart source must be provided")
    kind = resolve_source_kind(source)
    _LOGGER.debug("Resolved chart source %s as %s", source, kind.value)
    return await _LOADERS[kind](source)
