"""
markform — CLI contracts

File: tests/integration/test_cli.py

Purpose
- Enforce CLI behavior for ``inspect``, ``validate``, ``scope``, ``apply`` and
  ``config`` against real form files: exit codes, JSON payloads, and error output.

What this test file should cover
- Deterministic JSON output for every command.
- Exit codes: 0 ok, 1 invalid, 2 usage or load failure.
- ``--skip``, ``--role`` and ``--check-rows`` handling.
- ``apply``: patch files, partial batches, and the filled form on stdout or disk.
- ``python -m markform`` as a subprocess.
"""

from __future__ import annotations

import json
import logging
import os
import subprocess
import sys
from collections.abc import Iterator
from pathlib import Path

import pytest
import structlog

from markform.observability.logging import DEFAULT_LOGGER_NAME
from markform.ui.cli import EXIT_INVALID, EXIT_OK, EXIT_USAGE, run_cli

PROJECT_ROOT = Path(__file__).resolve().parents[2]
SRC_PATH = PROJECT_ROOT / "src"

FORM_TEXT = """---
markform:
  spec: MF/0.1
---
# Intake

{% form id="intake" title="Intake" %}

{% group id="basics" title="Basics" %}
{% string-field id="name" label="Name" required=true role="user" %}{% /string-field %}

{% single-select id="color" label="Color" %}
- [ ] Red {% #red %}
- [x] Blue {% #blue %}
{% /single-select %}
{% /group %}

{% number-field id="age" label="Age" min=0 %}
```value
-3
```
{% /number-field %}

{% table-field id="people" label="People" %}
```value
| Name | Age |
| string | number |
|---|---|
| Ada | 36 |
| Alan | 41 |
```
{% /table-field %}

{% /form %}
"""


@pytest.fixture(autouse=True)
def _isolated(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    monkeypatch.chdir(tmp_path)
    for name in list(os.environ):
        if name.startswith("MARKFORM_"):
            monkeypatch.delenv(name)
    yield
    logger = logging.getLogger(DEFAULT_LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    structlog.reset_defaults()


@pytest.fixture()
def form_path(tmp_path: Path) -> Path:
    path = tmp_path / "intake.md"
    path.write_text(FORM_TEXT, encoding="utf-8")
    return path


def _json_out(capsys: pytest.CaptureFixture[str]) -> dict[str, object]:
    payload = json.loads(capsys.readouterr().out)
    assert isinstance(payload, dict)
    return payload


@pytest.mark.integration
def test_inspect_json(form_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert run_cli(["inspect", str(form_path), "--json"]) == EXIT_OK
    payload = _json_out(capsys)

    assert payload["command"] == "inspect"
    assert payload["form_id"] == "intake"
    assert payload["form_state"] == "invalid"
    assert payload["is_complete"] is False
    assert payload["is_valid"] is False
    issues = payload["issues"]
    assert isinstance(issues, list)
    assert [(issue["ref"], issue["reason"], issue["priority"]) for issue in issues] == [
        ("name", "required_missing", 1),
        ("age", "validation_error", 2),
    ]
    structure = payload["structure"]
    assert isinstance(structure, dict)
    assert structure["field_count"] == 4
    assert structure["column_count"] == 2


@pytest.mark.integration
def test_inspect_skip_and_role(form_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert run_cli(["inspect", str(form_path), "--json", "--skip", "name"]) == EXIT_OK
    skipped = _json_out(capsys)
    assert [issue["ref"] for issue in skipped["issues"]] == ["age"]  # type: ignore[union-attr]

    assert run_cli(["inspect", str(form_path), "--json", "--role", "user"]) == EXIT_OK
    user_only = _json_out(capsys)
    assert [issue["ref"] for issue in user_only["issues"]] == ["name"]  # type: ignore[union-attr]


@pytest.mark.integration
def test_inspect_unknown_skip_is_usage_error(
    form_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    assert run_cli(["inspect", str(form_path), "--skip", "ghost"]) == EXIT_USAGE
    assert "error: Cannot skip unknown field 'ghost'" in capsys.readouterr().err


@pytest.mark.integration
def test_inspect_text_output(form_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert run_cli(["inspect", str(form_path), "--verbose"]) == EXIT_OK
    out = capsys.readouterr().out
    assert out.startswith("Form: intake\nState: invalid\nComplete: no\n")
    assert "fields: 4 (1 required)" in out
    assert "Fields:" in out
    assert 'Required field "Name" is empty' in out


@pytest.mark.integration
def test_validate_json_reports_errors(form_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert run_cli(["validate", str(form_path), "--json"]) == EXIT_INVALID
    payload = _json_out(capsys)
    assert payload["valid"] is False
    assert [issue["code"] for issue in payload["issues"]] == [  # type: ignore[union-attr]
        "required_missing",
        "min_value",
    ]


@pytest.mark.integration
def test_validate_passes_once_fixed(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    path = tmp_path / "fixed.md"
    path.write_text(
        FORM_TEXT.replace("-3", "30").replace(
            '{% string-field id="name" label="Name" required=true role="user" %}',
            '{% string-field id="name" label="Name" required=true role="user" %}\n'
            "```value\nAda\n```\n",
        ),
        encoding="utf-8",
    )
    assert run_cli(["validate", str(path)]) == EXIT_OK
    out = capsys.readouterr().out
    assert "OK  no validation errors" in out


@pytest.mark.integration
@pytest.mark.parametrize(
    ("args", "code", "expected"),
    [
        (["color.red"], EXIT_OK, {"ok": True, "scope": "option", "ref": "color.red"}),
        (["people.age"], EXIT_OK, {"ok": True, "scope": "column", "ref": "people.age"}),
        (["people.age[5]"], EXIT_OK, {"ok": True, "scope": "cell", "ref": "people.age[5]"}),
        (
            ["people.age[5]", "--check-rows"],
            EXIT_INVALID,
            {"ok": False, "error": 'Row index 5 is out of bounds for table "people" (2 rows)'},
        ),
        (["color.green"], EXIT_INVALID, {"ok": False}),
    ],
)
def test_scope_json(
    form_path: Path,
    capsys: pytest.CaptureFixture[str],
    args: list[str],
    code: int,
    expected: dict[str, object],
) -> None:
    assert run_cli(["scope", str(form_path), *args, "--json"]) == code
    payload = _json_out(capsys)
    assert payload["command"] == "scope"
    assert payload["input"] == args[0]
    for key, value in expected.items():
        assert payload[key] == value


@pytest.mark.integration
def test_scope_text_output(form_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert run_cli(["scope", str(form_path), "name"]) == EXIT_OK
    assert capsys.readouterr().out == "field: name\n"

    assert run_cli(["scope", str(form_path), "Bad"]) == EXIT_INVALID
    assert "FAIL  Invalid scope reference format: Bad" in capsys.readouterr().out


@pytest.mark.integration
def test_config_json_uses_file_and_env(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    config_path = tmp_path / "custom.toml"
    config_path.write_text('[parsing]\ndefault_role = "user"\n', encoding="utf-8")
    monkeypatch.setenv("MARKFORM_PARSING_DEFAULT_PRIORITY", "high")

    assert run_cli(["config", "--config", str(config_path), "--json"]) == EXIT_OK
    payload = _json_out(capsys)
    assert payload["command"] == "config"
    config = payload["config"]
    assert isinstance(config, dict)
    assert config["parsing"] == {
        "default_priority": "high",
        "default_role": "user",
        "warn_on_placeholder": True,
    }


@pytest.mark.integration
def test_config_defaults_role_into_parsed_fields(
    form_path: Path, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    (tmp_path / "markform.toml").write_text(
        '[parsing]\ndefault_role = "reviewer"\n', encoding="utf-8"
    )
    assert run_cli(["inspect", str(form_path), "--json", "--role", "reviewer"]) == EXIT_OK
    payload = _json_out(capsys)
    assert [issue["ref"] for issue in payload["issues"]] == ["age"]  # type: ignore[union-attr]


@pytest.mark.integration
@pytest.mark.parametrize(
    ("argv_tail", "message"),
    [
        (["--config", "absent.toml"], "config file not found"),
        ([], "No form tag found"),
    ],
)
def test_load_failures_exit_with_usage_code(
    tmp_path: Path,
    capsys: pytest.CaptureFixture[str],
    argv_tail: list[str],
    message: str,
) -> None:
    path = tmp_path / "empty.md"
    path.write_text("# Nothing to fill\n", encoding="utf-8")
    assert run_cli(["validate", str(path), *argv_tail]) == EXIT_USAGE
    err = capsys.readouterr().err
    assert err.startswith("error: ")
    assert message in err


@pytest.mark.integration
def test_missing_form_file(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert run_cli(["inspect", str(tmp_path / "missing.md")]) == EXIT_USAGE
    assert "unable to read form file" in capsys.readouterr().err


@pytest.mark.integration
def test_missing_command_is_argparse_usage_error() -> None:
    with pytest.raises(SystemExit) as exc_info:
        run_cli([])
    assert exc_info.value.code == EXIT_USAGE


@pytest.mark.integration
def test_module_entrypoint_subprocess(form_path: Path) -> None:
    env = os.environ.copy()
    existing_pythonpath = env.get("PYTHONPATH")
    src_pythonpath = str(SRC_PATH)
    env["PYTHONPATH"] = (
        src_pythonpath if not existing_pythonpath else f"{src_pythonpath}:{existing_pythonpath}"
    )
    completed = subprocess.run(
        [sys.executable, "-m", "markform", "validate", str(form_path), "--json"],
        cwd=form_path.parent,
        text=True,
        capture_output=True,
        check=False,
        env=env,
    )
    assert completed.returncode == EXIT_INVALID, completed.stderr
    assert json.loads(completed.stdout)["form_id"] == "intake"


def _patch_file(tmp_path: Path, patches: object) -> Path:
    path = tmp_path / "patches.json"
    path.write_text(json.dumps(patches), encoding="utf-8")
    return path


@pytest.mark.integration
def test_apply_json_writes_filled_form(
    form_path: Path, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    patches = _patch_file(
        tmp_path,
        [
            {"op": "set_string", "fieldId": "name", "value": "Grace"},
            {"op": "set_number", "fieldId": "age", "value": 30},
            {"op": "set_string", "fieldId": "ghost", "value": "x"},
        ],
    )
    out_path = tmp_path / "filled.md"

    code = run_cli(["apply", str(form_path), str(patches), "--output", str(out_path), "--json"])
    assert code == EXIT_OK
    payload = _json_out(capsys)
    assert payload["command"] == "apply"
    assert payload["status"] == "partial"
    assert payload["applied"] == 2
    assert payload["output"] == str(out_path)
    assert "markdown" not in payload
    rejected = payload["rejected"]
    assert isinstance(rejected, list)
    assert [(item["patch_index"], item["message"]) for item in rejected] == [
        (2, 'Field "ghost" not found')
    ]

    assert run_cli(["validate", str(out_path), "--json"]) == EXIT_OK
    assert _json_out(capsys)["valid"] is True


@pytest.mark.integration
def test_apply_writes_markdown_to_stdout(
    form_path: Path, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    patches = _patch_file(tmp_path, [{"op": "skip_field", "fieldId": "age", "reason": "private"}])

    assert run_cli(["apply", str(form_path), str(patches)]) == EXIT_OK
    captured = capsys.readouterr()
    assert captured.out.startswith("---\nmarkform:\n  spec: MF/0.1\n")
    assert 'state="skipped"' in captured.out
    assert "%SKIP% (private)" in captured.out
    assert "rejected patch" not in captured.err


@pytest.mark.integration
def test_apply_exits_invalid_when_every_patch_is_rejected(
    form_path: Path, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    patches = _patch_file(
        tmp_path,
        [
            {"op": "set_string", "fieldId": "ghost", "value": "x"},
            {"op": "skip_field", "fieldId": "name"},
        ],
    )

    assert run_cli(["apply", str(form_path), str(patches)]) == EXIT_INVALID
    captured = capsys.readouterr()
    assert captured.out.startswith("---\n")
    assert 'rejected patch 0: Field "ghost" not found' in captured.err
    assert 'rejected patch 1: Cannot skip required field "name"' in captured.err


@pytest.mark.integration
@pytest.mark.parametrize(
    ("content", "message"),
    [
        (None, "unable to read patch file"),
        ("{not json", "invalid JSON in patch file"),
        ('{"op": "set_string"}', "must hold an array of objects"),
        ('[{"op": "fly"}]', "Invalid patch op 'fly'"),
        ('[{"op": "clear_field", "field": "name"}]', "Unknown patch keys: field"),
    ],
)
def test_apply_bad_patch_file_is_usage_error(
    form_path: Path,
    tmp_path: Path,
    capsys: pytest.CaptureFixture[str],
    content: str | None,
    message: str,
) -> None:
    patches = tmp_path / "patches.json"
    if content is not None:
        patches.write_text(content, encoding="utf-8")

    assert run_cli(["apply", str(form_path), str(patches)]) == EXIT_USAGE
    err = capsys.readouterr().err
    assert err.startswith("error: ")
    assert message in err
