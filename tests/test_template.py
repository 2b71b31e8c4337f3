"""Tests for the template engine."""

import base64
from typing import Any

import pytest
import yaml

from compose_pack.chart import Chart, ChartMetadata
from compose_pack.exceptions import TemplateException
from compose_pack.template import FilesAccessor, RenderContext, TemplateEngine

METADATA = ChartMetadata(
    name="demo",
    version="1.0.0",
    description="Demo application",
    maintainers=["ops"],
)


def make_chart(**kwargs: Any) -> Chart:
    return Chart(metadata=METADATA, base_dir="/charts/demo", **kwargs)


def make_context(
    chart: Chart,
    values: dict[str, Any] | None = None,
    env: dict[str, str] | None = None,
) -> RenderContext:
    return RenderContext(
        values=values or {},
        release_name="prod",
        chart=chart.metadata,
        env=env or {},
        files=FilesAccessor(chart.static_files),
    )


def test_render_compose_fragments() -> None:
    """Test compose templates see values, release and chart identity."""
    chart = make_chart(
        compose_templates={
            "b.yaml": (
                "services:\n"
                "  b:\n"
                '    image: "{{ Chart.Name }}:{{ Chart.Version }}"\n'
            ),
            "a.yaml": (
                "services:\n"
                "  a:\n"
                '    image: "app:{{ Values.image.tag }}"\n'
                "    container_name: {{ Release.Name }}-a\n"
            ),
        }
    )
    ctx = make_context(chart, {"image": {"tag": "1.0"}})

    fragments = TemplateEngine().render_compose_fragments(chart, ctx)

    assert list(fragments) == ["a.yaml", "b.yaml"]
    assert yaml.safe_load(fragments["a.yaml"]) == {
        "services": {"a": {"image": "app:1.0", "container_name": "prod-a"}}
    }
    assert yaml.safe_load(fragments["b.yaml"]) == {
        "services": {"b": {"image": "demo:1.0.0"}}
    }


def test_file_template_release_name() -> None:
    """Test a file template renders to its path without the template suffix."""
    chart = make_chart(file_templates={"release.txt": "{{ Release.Name }}"})
    files = TemplateEngine().render_files(chart, make_context(chart))
    assert files == {"release.txt": b"prod"}


def test_helpers() -> None:
    """Test helper macros are shared by all templates."""
    chart = make_chart(
        helper_templates={
            "labels": (
                "{% macro labels(component) -%}\n"
                "app: {{ Release.Name }}\n"
                "component: {{ component }}\n"
                "{%- endmacro %}\n"
            ),
            "names": "{% macro fullname() %}{{ Release.Name }}-{{ Chart.Name }}{% endmacro %}",
        },
        compose_templates={
            "app.yaml": (
                "services:\n"
                "  app:\n"
                "    container_name: {{ fullname() }}\n"
                '    labels: {{ include("labels", "web") | nindent(6) }}\n'
            )
        },
        file_templates={"name.txt": '{{ include("fullname") }}'},
    )
    engine = TemplateEngine()
    ctx = make_context(chart)

    fragments = engine.render_compose_fragments(chart, ctx)
    files = engine.render_files(chart, ctx)

    assert yaml.safe_load(fragments["app.yaml"]) == {
        "services": {
            "app": {
                "container_name": "prod-demo",
                "labels": {"app": "prod", "component": "web"},
            }
        }
    }
    assert files == {"name.txt": b"prod-demo"}


def test_unknown_helper() -> None:
    """Test including a helper that does not exist."""
    chart = make_chart(compose_templates={"app.yaml": '{{ include("missing") }}'})
    with pytest.raises(TemplateException, match="helper 'missing' is not defined"):
        TemplateEngine().render_compose_fragments(chart, make_context(chart))


def test_helpers_do_not_leak_between_renders() -> None:
    """Test helpers registered for one chart are not visible to another."""
    engine = TemplateEngine()
    with_helper = make_chart(
        helper_templates={"h": "{% macro greet() %}hi{% endmacro %}"},
        compose_templates={"app.yaml": "{{ greet() }}"},
    )
    assert engine.render_compose_fragments(
        with_helper, make_context(with_helper)
    ) == {"app.yaml": "hi"}

    without_helper = make_chart(compose_templates={"app.yaml": "{{ greet() }}"})
    with pytest.raises(TemplateException):
        engine.render_compose_fragments(without_helper, make_context(without_helper))


def test_env_and_files() -> None:
    """Test the environment snapshot and static file accessors."""
    chart = make_chart(
        static_files={"conf/a.conf": b"alpha", "conf/b.conf": b"beta", "x.bin": b"x"},
        file_templates={
            "out.txt": (
                "{{ env('USER_NAME') }} {{ env('MISSING', 'fallback') }} {{ Env.USER_NAME }}\n"
                "{{ Files.get('conf/a.conf') }} [{{ Files.get('missing') }}]\n"
                "{{ Files.glob('conf/*') | join(',') }}\n"
                "{{ Files.get_bytes('x.bin') | b64enc }}"
            )
        },
    )
    ctx = make_context(chart, env={"USER_NAME": "alice"})

    files = TemplateEngine().render_files(chart, ctx)

    assert files["out.txt"].decode() == (
        "alice fallback alice\n"
        "alpha []\n"
        "conf/a.conf,conf/b.conf\n"
        + base64.b64encode(b"x").decode()
    )


def test_static_files_passthrough_and_override(
    caplog: pytest.LogCaptureFixture,
) -> None:
    """Test a file template replaces a static file with the same path."""
    chart = make_chart(
        static_files={"a.txt": b"static a", "b.txt": b"static b"},
        file_templates={"b.txt": "rendered {{ Release.Name }}"},
    )
    files = TemplateEngine().render_files(chart, make_context(chart))
    assert files == {"a.txt": b"static a", "b.txt": b"rendered prod"}
    assert "b.txt overwrites the static file" in caplog.text


def test_filters() -> None:
    """Test the filters available to templates."""
    chart = make_chart(
        compose_templates={
            "app.yaml": (
                "quote: {{ Values.name | quote }}\n"
                "squote: {{ Values.quoted | squote }}\n"
                "json: {{ Values.env | to_json }}\n"
                "default: {{ Values.missing | default('dflt') }}\n"
                "yaml: {{ Values.env | toYaml | nindent(2) }}\n"
            )
        }
    )
    ctx = make_context(
        chart, {"name": 'say "hi"', "quoted": "it's", "env": {"A": "1", "B": "2"}}
    )

    fragments = TemplateEngine().render_compose_fragments(chart, ctx)

    assert yaml.safe_load(fragments["app.yaml"]) == {
        "quote": 'say "hi"',
        "squote": "it's",
        "json": {"A": "1", "B": "2"},
        "default": "dflt",
        "yaml": {"A": "1", "B": "2"},
    }


def test_required_filter() -> None:
    """Test the required filter fails the render with its message."""
    chart = make_chart(
        compose_templates={
            "app.yaml": "{{ Values.password | required('password is required') }}"
        }
    )
    ctx = make_context(chart, {"password": ""})
    with pytest.raises(TemplateException, match="password is required"):
        TemplateEngine().render_compose_fragments(chart, ctx)


def test_undefined_value() -> None:
    """Test referencing a missing value names the failing template."""
    chart = make_chart(
        compose_templates={
            "ok.yaml": "services: {}\n",
            "nested/broken.yaml": "image: {{ Values.image.tag }}\n",
        }
    )
    with pytest.raises(TemplateException, match="nested/broken.yaml") as exc_info:
        TemplateEngine().render_compose_fragments(chart, make_context(chart))
    assert exc_info.value.template_path == "nested/broken.yaml"


def test_syntax_error() -> None:
    """Test a template that can't be parsed."""
    chart = make_chart(file_templates={"bad.conf": "{% if %}\n"})
    with pytest.raises(TemplateException, match="Template bad.conf failed: line 1"):
        TemplateEngine().render_files(chart, make_context(chart))


def test_helper_syntax_error() -> None:
    """Test a helper template that can't be parsed."""
    chart = make_chart(
        helper_templates={"broken": "{% macro x() %}"},
        compose_templates={"app.yaml": "services: {}\n"},
    )
    with pytest.raises(TemplateException, match="Template broken failed"):
        TemplateEngine().render_compose_fragments(chart, make_context(chart))


def test_evaluation_error() -> None:
    """Test errors raised while evaluating an expression."""
    chart = make_chart(compose_templates={"app.yaml": "{{ 1 / Values.zero }}"})
    with pytest.raises(TemplateException, match="ZeroDivisionError"):
        TemplateEngine().render_compose_fragments(
            chart, make_context(chart, {"zero": 0})
        )


@pytest.mark.parametrize(
    "expression",
    [
        "Values.missing | toYaml",
        "Files | toYaml",
    ],
)
def test_to_yaml_error(expression: str) -> None:
    """Test toYaml failures are reported against the failing template."""
    chart = make_chart(compose_templates={"app.yaml": f"x: {{{{ {expression} }}}}\n"})
    with pytest.raises(TemplateException, match="app.yaml") as exc_info:
        TemplateEngine().render_compose_fragments(chart, make_context(chart))
    assert exc_info.value.template_path == "app.yaml"


def test_template_vars() -> None:
    """Test the variables exposed to templates."""
    template_vars = make_context(make_chart(), {"a": 1}).template_vars()
    assert isinstance(template_vars.pop("Files"), FilesAccessor)
    assert template_vars == {
        "Values": {"a": 1},
        "Env": {},
        "Release": {"Name": "prod"},
        "Chart": {
            "Name": "demo",
            "Version": "1.0.0",
            "Description": "Demo application",
            "Maintainers": ["ops"],
        },
    }
