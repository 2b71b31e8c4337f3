"""Library for merging rendered compose fragments with `docker compose config`.

Compose file merge semantics are owned by the compose runtime, so fragments
are written to a scratch directory and handed to the runtime which prints the
single merged document:

```python
from compose_pack.compose import Compose

compose = Compose()
result = await compose.merge_fragments(
    {"app.yaml": "services:\n  app:\n    image: nginx\n"},
    files={"nginx.conf": b"..."},
    project_name="demo",
)
print(result.manifest)
```

The scratch directory is removed before returning and any reference to it in
the merged output is rewritten as `.` so that relative paths such as bind
mounts of `./files/...` point into the release runtime directory.
"""

from dataclasses import dataclass, field
import logging
import os
from pathlib import Path
import tempfile

import aiofiles
import aiofiles.os

from . import command
from .config import ComposeConfig
from .exceptions import CommandNotFoundException, ComposeException
from .chart import FILES_DIR

__all__ = [
    "Compose",
    "MergeResult",
]

_LOGGER = logging.getLogger(__name__)

PROJECT_NAME_ENV = "COMPOSE_PROJECT_NAME"


@dataclass
class MergeResult:
    """The output of merging compose fragments."""

    manifest: str
    """The merged compose document."""

    compose_files: list[str] = field(default_factory=list)
    """The fragment names that were merged, in merge order."""


async def _write_scratch(base: Path, rel: str, content: bytes) -> None:
    path = base / rel
    await aiofiles.os.makedirs(path.parent, exist_ok=True)
    async with aiofiles.open(path, mode="wb") as f:
        await f.write(content)


def _relativize(manifest: str, scratch_dir: str) -> str:
    """Replace references to the scratch directory with the current directory."""
    prefixes = {os.path.realpath(scratch_dir), scratch_dir}
    for prefix in sorted(prefixes, key=len, reverse=True):
        manifest = manifest.replace(prefix, ".")
    return manifest


class Compose:
    """Runs the compose runtime to merge fragments into one manifest."""

    def __init__(self, config: ComposeConfig | None = None) -> None:
        """Initialize Compose."""
        self._config = config or ComposeConfig()

    def _commands(self) -> list[list[str]]:
        commands = [self._config.command]
        if self._config.fallback_command:
            commands.append(self._config.fallback_command)
        return commands

    async def _config_command(
        self, scratch_dir: Path, compose_files: list[str], project_name: str
    ) -> str:
        args: list[str] = []
        for compose_file in compose_files:
            args.extend(["-f", compose_file])
        args.append("config")
        last_err: CommandNotFoundException | None = None
        for base in self._commands():
            cmd = command.Command(
                base + args,
                cwd=scratch_dir,
                exc=ComposeException,
                env={PROJECT_NAME_ENV: project_name},
                timeout=self._config.timeout,
            )
            try:
                return await command.run(cmd)
            except CommandNotFoundException as err:
                _LOGGER.debug("Compose command %s not available: %s", base, err)
                last_err = err
        raise ComposeException(
            f"Unable to find a compose command: {last_err}"
        ) from last_err

    async def merge_fragments(
        self,
        fragments: dict[str, str],
        files: dict[str, bytes],
        project_name: str,
    ) -> MergeResult:
        """Merge the compose fragments into a single manifest.

        The fragments are passed to the compose runtime in sorted order, and
        the files are made available under `files/` so that the runtime can
        resolve references to them.
        """
        if not fragments:
            raise ComposeException("No compose fragments to merge")
        compose_files = sorted(fragments)
        with tempfile.TemporaryDirectory(prefix="compose-pack-fragments-") as tmp_dir:
            scratch_dir = Path(tmp_dir)
            try:
                for name in compose_files:
                    await _write_scratch(
                        scratch_dir, name, fragments[name].encode("utf-8")
                    )
                for rel, content in files.items():
                    await _write_scratch(scratch_dir / FILES_DIR, rel, content)
            except OSError as err:
                raise ComposeException(
                    f"Unable to write compose fragments: {err}"
                ) from err
            _LOGGER.debug(
                "Merging %d compose fragments for project %s",
                len(compose_files),
                project_name,
            )
            out = await self._config_command(scratch_dir, compose_files, project_name)
            manifest = _relativize(out, tmp_dir)
        return MergeResult(manifest=manifest, compose_files=compose_files)
