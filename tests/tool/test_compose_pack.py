"""Tests for the compose-pack command line tool."""

from collections.abc import Callable
from pathlib import Path
import sys

import pytest
import yaml

from compose_pack import orchestrator
from compose_pack.config import OrchestratorConfig
from compose_pack.tool.compose_pack import main

ChartFactory = Callable[..., Path]


@pytest.fixture(autouse=True)
def fake_compose(
    orchestrator_config: OrchestratorConfig, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Run the command line tool against the fake compose command."""
    monkeypatch.setattr(
        orchestrator, "OrchestratorConfig", lambda: orchestrator_config
    )


def run_main(monkeypatch: pytest.MonkeyPatch, *args: str) -> None:
    monkeypatch.setattr(sys, "argv", ["compose-pack", *args])
    main()


def test_template(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
    make_chart: ChartFactory,
    releases_dir: Path,
) -> None:
    """Test rendering a release from the command line."""
    run_main(
        monkeypatch,
        "template",
        str(make_chart()),
        "--name",
        "prod",
        "--set",
        "image.tag=3.0",
    )
    assert f"Rendered release prod (demo 1.0.0) to {releases_dir / 'prod'}" in (
        capsys.readouterr().out
    )
    manifest_path = releases_dir / "prod" / "docker-compose.yaml"
    manifest = yaml.safe_load(manifest_path.read_text())
    assert manifest["services"]["app"]["image"] == "app:3.0"


def test_template_dry_run(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
    make_chart: ChartFactory,
    releases_dir: Path,
) -> None:
    """Test printing the manifest without writing the release."""
    run_main(
        monkeypatch, "template", str(make_chart()), "--name", "prod", "--dry-run"
    )
    manifest = yaml.safe_load(capsys.readouterr().out)
    assert manifest["services"]["app"]["image"] == "app:1.0"
    assert not releases_dir.exists()


def test_diff(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
    make_chart: ChartFactory,
) -> None:
    """Test diffing a release from the command line."""
    run_main(monkeypatch, "template", str(make_chart()), "--name", "prod")
    capsys.readouterr()

    run_main(monkeypatch, "diff", "prod", "--set", "image.tag=2.0")

    out = capsys.readouterr().out
    assert "-     image: app:1.0" in out
    assert "+     image: app:2.0" in out
    assert "  * app (modified)" in out


def test_diff_new_release(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
    make_chart: ChartFactory,
) -> None:
    """Test diffing a release that does not exist yet."""
    run_main(monkeypatch, "diff", "prod", "--chart", str(make_chart()))
    out = capsys.readouterr().out
    assert "New release, the following would be created:" in out
    assert "  * app" in out


@pytest.mark.parametrize(
    ("args", "message"),
    [
        (["diff", "prod"], "Chart source is required"),
        (["template", "/does/not/exist", "--name", "prod"], "not found"),
        (["template", ".", "--name", "prod", "--set", "novalue"], "Invalid override"),
    ],
)
def test_errors(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
    args: list[str],
    message: str,
) -> None:
    """Test errors are printed and exit with a failure."""
    with pytest.raises(SystemExit) as exc_info:
        run_main(monkeypatch, *args)
    assert exc_info.value.code == 1
    err = capsys.readouterr().err
    assert "compose-pack error:" in err
    assert message in err
