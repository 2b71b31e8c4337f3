"""Library for reading and writing a release runtime directory.

A runtime directory is self contained and can be handed directly to the
compose runtime:

```
<releases-dir>/<release>/
  docker-compose.yaml   # the merged manifest
  files/**              # rendered and static file assets
  release.json          # see compose_pack.release
```
"""

import logging
import os
from pathlib import Path
import shutil

import aiofiles
import aiofiles.os
from aiofiles.ospath import exists, isdir

from .chart import FILES_DIR
from .exceptions import InputException, RuntimeDirException

__all__ = [
    "resolve_runtime_location",
    "write_runtime",
    "read_runtime_manifest",
    "read_runtime_files",
]

_LOGGER = logging.getLogger(__name__)

MANIFEST_FILE = "docker-compose.yaml"


def resolve_runtime_location(
    release_name: str, base_dir: Path | str, runtime_path: Path | str | None = None
) -> Path:
    """Return the runtime directory for a release.

    An explicit runtime path is used as is but its final component must be
    the release name. Otherwise the release lives in a directory named after
    it under the base directory.
    """
    if not release_name:
        raise InputException("Release name must be provided")
    if runtime_path:
        path = Path(runtime_path).absolute()
        if path.name != release_name:
            raise InputException(
                f"Runtime directory {path} must be named after release {release_name}"
            )
        return path
    return Path(base_dir) / release_name


async def write_runtime(
    runtime_dir: Path, manifest: str, files: dict[str, bytes]
) -> None:
    """Write the merged manifest and replace the file assets of a release."""
    files_dir = runtime_dir / FILES_DIR
    _LOGGER.debug("Writing runtime directory %s", runtime_dir)
    try:
        await aiofiles.os.makedirs(runtime_dir, exist_ok=True)
        async with aiofiles.open(
            runtime_dir / MANIFEST_FILE, mode="w", encoding="utf-8"
        ) as f:
            await f.write(manifest)
        if await isdir(files_dir):
            shutil.rmtree(files_dir)
        for rel, content in files.items():
            path = files_dir / rel
            await aiofiles.os.makedirs(path.parent, exist_ok=True)
            async with aiofiles.open(path, mode="wb") as f:
                await f.write(content)
    except OSError as err:
        raise RuntimeDirException(
            f"Unable to write runtime directory {runtime_dir}: {err}"
        ) from err


async def read_runtime_manifest(runtime_dir: Path) -> str | None:
    """Return the merged manifest of a release, or None if it was never written."""
    path = runtime_dir / MANIFEST_FILE
    if not await exists(path):
        return None
    try:
        async with aiofiles.open(path, encoding="utf-8") as f:
            return await f.read()
    except (OSError, UnicodeDecodeError) as err:
        raise RuntimeDirException(f"Unable to read manifest {path}: {err}") from err


async def read_runtime_files(runtime_dir: Path) -> dict[str, bytes]:
    """Return the file assets of a release keyed by relative path."""
    files_dir = runtime_dir / FILES_DIR
    if not await isdir(files_dir):
        return {}
    results: dict[str, bytes] = {}
    try:
        for dirpath, _, filenames in os.walk(files_dir):
            for filename in filenames:
                path = Path(dirpath) / filename
                rel = path.relative_to(files_dir).as_posix()
                async with aiofiles.open(path, mode="rb") as f:
                    results[rel] = await f.read()
    except OSError as err:
        raise RuntimeDirException(
            f"Unable to read runtime files {files_dir}: {err}"
        ) from err
    return dict(sorted(results.items()))
