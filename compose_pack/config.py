"""Configuration objects for compose-pack."""

from dataclasses import dataclass, field
import os
from pathlib import Path

RELEASE_DIR_ENV = "COMPOSEPACK_RELEASE_DIR"


def _default_releases_dir() -> Path:
    if env_dir := os.environ.get(RELEASE_DIR_ENV):
        return Path(env_dir)
    return Path.home() / ".composepack" / "releases"


@dataclass
class ComposeConfig:
    """Configuration for invoking the docker compose runtime."""

    command: list[str] = field(default_factory=lambda: ["docker", "compose"])
    """Primary command line used to invoke compose."""

    fallback_command: list[str] | None = field(
        default_factory=lambda: ["docker-compose"]
    )
    """Legacy command line used when the primary command is not installed."""

    timeout: float = 60.0
    """Seconds to wait for a compose invocation."""


@dataclass
class ReleaseConfig:
    """Configuration for where releases are stored."""

    releases_dir: Path = field(default_factory=_default_releases_dir)
    """Base directory holding one runtime directory per release."""


@dataclass
class OrchestratorConfig:
    """Configuration for rendering and diffing releases."""

    compose_config: ComposeConfig = field(default_factory=ComposeConfig)
    release_config: ReleaseConfig = field(default_factory=ReleaseConfig)
