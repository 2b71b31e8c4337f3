"""Shared fixtures for compose-pack tests."""

from collections.abc import Callable
import pathlib
import sys

import pytest

from compose_pack.config import ComposeConfig, OrchestratorConfig, ReleaseConfig

TESTDATA_DIR = pathlib.Path(__file__).parent / "testdata"
FAKE_COMPOSE = TESTDATA_DIR / "fake_compose.py"

DEMO_CHART = {
    "Chart.yaml": "name: demo\nversion: 1.0.0\ndescription: Demo application\n",
    "values.yaml": 'image:\n  tag: "1.0"\n',
    "templates/compose/app.tpl.yaml": (
        "services:\n"
        "  app:\n"
        '    image: "app:{{ Values.image.tag }}"\n'
    ),
}

ChartFactory = Callable[..., pathlib.Path]


def write_tree(root: pathlib.Path, files: dict[str, str | bytes]) -> pathlib.Path:
    """Write the files relative to root."""
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content)
    return root


@pytest.fixture(name="make_chart")
def make_chart_fixture(tmp_path: pathlib.Path) -> ChartFactory:
    """Fixture that writes a chart directory under the test tmp path.

    The demo chart is used as a base and the extra files are added on top,
    a value of None removes a file from the base.
    """

    def make(
        name: str = "demo", extra: dict[str, str | bytes | None] | None = None
    ) -> pathlib.Path:
        files: dict[str, str | bytes | None] = {**DEMO_CHART, **(extra or {})}
        return write_tree(
            tmp_path / "charts" / name,
            {rel: content for rel, content in files.items() if content is not None},
        )

    return make


@pytest.fixture(name="compose_config")
def compose_config_fixture() -> ComposeConfig:
    """Compose configuration that runs the fake compose command."""
    return ComposeConfig(
        command=[sys.executable, str(FAKE_COMPOSE)],
        fallback_command=None,
        timeout=30.0,
    )


@pytest.fixture(name="releases_dir")
def releases_dir_fixture(tmp_path: pathlib.Path) -> pathlib.Path:
    """Directory holding releases for a test."""
    return tmp_path / "releases"


@pytest.fixture(name="orchestrator_config")
def orchestrator_config_fixture(
    compose_config: ComposeConfig, releases_dir: pathlib.Path
) -> OrchestratorConfig:
    """Orchestrator configuration isolated to the test tmp path."""
    return OrchestratorConfig(
        compose_config=compose_config,
        release_config=ReleaseConfig(releases_dir=releases_dir),
    )
