"""Persistence of release metadata.

Each release owns a runtime directory holding a `release.json` file that
records how the release was rendered. The merged values are never written to
disk, only the ordered list of sources they came from.

```python
from compose_pack.release import ReleaseStore

store = ReleaseStore()
if (metadata := await store.load(runtime_dir)) is None:
    print("Release has not been rendered yet")
else:
    print(f"Release {metadata.release_name} uses {metadata.chart_metadata.name}")
```
"""

import datetime
from dataclasses import dataclass, field
import hashlib
import json
import logging
from pathlib import Path
from typing import Any

import aiofiles
import aiofiles.os
from aiofiles.ospath import exists
from mashumaro import DataClassDictMixin, field_options
from mashumaro.config import BaseConfig
from mashumaro.exceptions import InvalidFieldValue, MissingField

from .chart import ChartMetadata
from .exceptions import InputException, ReleaseStoreException

__all__ = [
    "ReleaseMetadata",
    "ReleaseStore",
]

_LOGGER = logging.getLogger(__name__)

RELEASE_FILE = "release.json"
RELEASE_TMP_FILE = ".release.json.tmp"

_TIME_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def format_time(value: datetime.datetime | None) -> str | None:
    """Format a timestamp as RFC 3339 in UTC with second precision."""
    if value is None:
        return None
    return value.astimezone(datetime.timezone.utc).strftime(_TIME_FORMAT)


def parse_time(value: str | None) -> datetime.datetime | None:
    """Parse an RFC 3339 timestamp into a UTC datetime."""
    if value is None:
        return None
    parsed = datetime.datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=datetime.timezone.utc)
    return parsed.astimezone(datetime.timezone.utc)


def now() -> datetime.datetime:
    """Return the current UTC time truncated to seconds."""
    return datetime.datetime.now(datetime.timezone.utc).replace(microsecond=0)


@dataclass
class ReleaseMetadata(DataClassDictMixin):
    """Metadata describing a rendered release."""

    release_name: str = field(metadata=field_options(alias="releaseName"))
    """The name of the release."""

    chart_metadata: ChartMetadata = field(metadata=field_options(alias="chartMetadata"))
    """Metadata of the chart the release was rendered from."""

    chart_source: str = field(metadata=field_options(alias="chartSource"), default="")
    """The chart source string used for the render."""

    chart_digest: str = field(metadata=field_options(alias="chartDigest"), default="")
    """Digest of the release identity, recomputed on every save."""

    runtime_path: str = field(metadata=field_options(alias="runtimePath"), default="")
    """The runtime directory of the release."""

    created_at: datetime.datetime | None = field(
        metadata=field_options(
            alias="createdAt", serialize=format_time, deserialize=parse_time
        ),
        default=None,
    )
    """When the release was first saved."""

    values: dict[str, Any] = field(
        metadata={"serialize": "omit"}, default_factory=dict
    )
    """The merged values, only kept in memory."""

    values_sources: list[str] = field(
        metadata=field_options(alias="valuesSources"), default_factory=list
    )
    """Ordered list of the sources that contributed to the values."""

    compose_files: list[str] = field(
        metadata=field_options(alias="composeFiles"), default_factory=list
    )
    """Ordered list of the compose fragments merged into the manifest."""

    def compute_digest(self) -> str:
        """Return the digest of the release identity."""
        digest = hashlib.sha256()
        for part in (
            self.release_name,
            self.chart_metadata.name,
            self.chart_metadata.version,
            self.chart_metadata.description or "",
            format_time(self.created_at) or "",
        ):
            digest.update(part.encode("utf-8"))
            digest.update(b"\0")
        return digest.hexdigest()

    def update_digest(self) -> None:
        """Recompute and store the digest."""
        self.chart_digest = self.compute_digest()

    class Config(BaseConfig):
        omit_none = True
        serialize_by_alias = True


class ReleaseStore:
    """Reads and writes release metadata in a runtime directory."""

    async def load(self, runtime_path: Path | str) -> ReleaseMetadata | None:
        """Load the release metadata, returning None if the release does not exist."""
        if not runtime_path:
            raise InputException("Release runtime path must be provided")
        path = Path(runtime_path) / RELEASE_FILE
        if not await exists(path):
            _LOGGER.debug("No release metadata found at %s", path)
            return None
        try:
            async with aiofiles.open(path, encoding="utf-8") as f:
                content = await f.read()
        except (OSError, UnicodeDecodeError) as err:
            raise ReleaseStoreException(
                f"Unable to read release metadata {path}: {err}"
            ) from err
        try:
            doc = json.loads(content)
            if not isinstance(doc, dict):
                raise ValueError("expected a JSON object")
            return ReleaseMetadata.from_dict(doc)
        except (
            ValueError,
            TypeError,
            LookupError,
            MissingField,
            InvalidFieldValue,
        ) as err:
            raise ReleaseStoreException(
                f"Unable to parse release metadata {path}: {err}"
            ) from err

    async def save(self, runtime_path: Path | str, metadata: ReleaseMetadata) -> None:
        """Persist the release metadata.

        The runtime path and digest are stamped on the metadata and the
        creation time is set if it was not already. The file is written to a
        temporary name and renamed so that readers never see partial contents.
        """
        if not runtime_path:
            raise InputException("Release runtime path must be provided")
        runtime_dir = Path(runtime_path)
        metadata.runtime_path = str(runtime_dir)
        if metadata.created_at is None:
            metadata.created_at = now()
        metadata.update_digest()
        content = json.dumps(metadata.to_dict(), indent=2) + "\n"
        tmp_path = runtime_dir / RELEASE_TMP_FILE
        try:
            await aiofiles.os.makedirs(runtime_dir, exist_ok=True)
            async with aiofiles.open(tmp_path, mode="w", encoding="utf-8") as f:
                await f.write(content)
            await aiofiles.os.replace(tmp_path, runtime_dir / RELEASE_FILE)
        except OSError as err:
            raise ReleaseStoreException(
                f"Unable to write release metadata to {runtime_dir}: {err}"
            ) from err
        _LOGGER.debug("Saved release metadata for %s", metadata.release_name)
