"""Command-line interface router for markform."""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from markform.config import (
    ConfigLoadError,
    ConfigValidationError,
    ParseSettings,
    load_config,
    settings_from_config,
)
from markform.domain.models import ParsedForm
from markform.errors import MarkformError, MarkformParseError
from markform.fill.patches import ApplyStatus, Patch, apply_patches
from markform.fill.serialize import serialize_form
from markform.observability import setup_logging
from markform.parsing.form import parse_form
from markform.progress.inspect import ALL_ROLES, inspect_form
from markform.scope.refs import serialize_scope_ref
from markform.scope.validation import check_scope_ref
from markform.ui.render import CLIRenderer, create_renderer
from markform.validation.fields import is_valid, validate_form

EXIT_OK = 0
EXIT_INVALID = 1
EXIT_USAGE = 2


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = EXIT_INVALID

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router for all supported CLI workflows."""

    parser = argparse.ArgumentParser(
        prog="markform",
        description=(
            "markform: typed, agent-fillable forms embedded in Markdown.\n\n"
            "Common workflows:\n"
            "  markform inspect form.md            Show progress and prioritized issues\n"
            "  markform validate form.md           Report every validation issue\n"
            "  markform scope form.md name.first   Check a scope reference\n"
            "  markform apply form.md patches.json Apply fill patches and write the form\n"
            "  markform config                     Show effective configuration\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to markform TOML config (default: ./markform.toml if present).",
    )
    common.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        default=False,
        help="Show detailed output.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # inspect -------------------------------------------------------------
    inspect_parser = subparsers.add_parser(
        "inspect",
        parents=[common],
        help="Inspect a form: structure, progress, and prioritized issues",
        description=(
            "Parse a form document and report its progress state and open issues.\n\n"
            "Examples:\n"
            "  markform inspect form.md\n"
            "  markform inspect form.md --role user\n"
            "  markform inspect form.md --skip notes --json\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    inspect_parser.add_argument("path", help="Markdown file containing one form")
    inspect_parser.add_argument(
        "--skip",
        dest="skips",
        action="append",
        default=[],
        metavar="FIELD",
        help="Treat FIELD as skipped (repeatable).",
    )
    inspect_parser.add_argument(
        "--role",
        dest="roles",
        action="append",
        default=None,
        metavar="ROLE",
        help=f"Only report issues for fields owned by ROLE (repeatable; '{ALL_ROLES}' for all).",
    )
    inspect_parser.add_argument(
        "--json", action="store_true", help="Emit deterministic JSON output"
    )
    inspect_parser.set_defaults(handler=_cmd_inspect)

    # validate ------------------------------------------------------------
    validate_parser = subparsers.add_parser(
        "validate",
        parents=[common],
        help="Validate every field of a form",
        description=(
            "Parse a form document and list every validation issue.\n"
            "Exits 1 when any error-severity issue is found.\n\n"
            "Examples:\n"
            "  markform validate form.md\n"
            "  markform validate form.md --json\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    validate_parser.add_argument("path", help="Markdown file containing one form")
    validate_parser.add_argument(
        "--json", action="store_true", help="Emit deterministic JSON output"
    )
    validate_parser.set_defaults(handler=_cmd_validate)

    # scope ---------------------------------------------------------------
    scope_parser = subparsers.add_parser(
        "scope",
        parents=[common],
        help="Parse and resolve a scope reference against a form",
        description=(
            "Resolve FIELD, FIELD.OPTION, FIELD.COLUMN, or FIELD.COLUMN[ROW]\n"
            "against the form's schema.\n\n"
            "Examples:\n"
            "  markform scope form.md colors.red\n"
            "  markform scope form.md people.name[2] --check-rows\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    scope_parser.add_argument("path", help="Markdown file containing one form")
    scope_parser.add_argument("ref", help="Scope reference to resolve")
    scope_parser.add_argument(
        "--check-rows",
        action="store_true",
        default=False,
        help="Also bounds-check cell row indexes against the current table values.",
    )
    scope_parser.add_argument(
        "--json", action="store_true", help="Emit deterministic JSON output"
    )
    scope_parser.set_defaults(handler=_cmd_scope)

    # apply ---------------------------------------------------------------
    apply_parser = subparsers.add_parser(
        "apply",
        parents=[common],
        help="Apply fill patches to a form and write the filled form",
        description=(
            "Apply a JSON array of patches (set_*, clear_field, skip_field,\n"
            "abort_field, add_note, remove_note) and serialize the result.\n"
            "Without --output the filled form is written to stdout.\n"
            "Exits 1 when every patch is rejected.\n\n"
            "Examples:\n"
            "  markform apply form.md patches.json > filled.md\n"
            "  markform apply form.md patches.json --output form.md --json\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    apply_parser.add_argument("path", help="Markdown file containing one form")
    apply_parser.add_argument("patches", help="JSON file holding an array of patch objects")
    apply_parser.add_argument(
        "--output",
        "-o",
        default=None,
        metavar="FILE",
        help="Write the filled form to FILE instead of stdout.",
    )
    apply_parser.add_argument(
        "--json", action="store_true", help="Emit a deterministic JSON summary"
    )
    apply_parser.set_defaults(handler=_cmd_apply)

    # config --------------------------------------------------------------
    config_parser = subparsers.add_parser(
        "config",
        parents=[common],
        help="Show effective configuration",
        description=(
            "Display the effective config after merging defaults, file, and env.\n\n"
            "Examples:\n"
            "  markform config\n"
            "  markform config --json\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    config_parser.add_argument("--json", action="store_true", help="Emit JSON output")
    config_parser.set_defaults(handler=_cmd_config)

    return parser


# ---------------------------------------------------------------------------
# Entrypoints
# ---------------------------------------------------------------------------


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return EXIT_USAGE

    try:
        result = handler(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    return int(result)


def main(argv: Sequence[str] | None = None) -> int:
    """Compatibility wrapper for main-module wiring."""

    return run_cli(argv)


def cli_entrypoint() -> None:
    """Console-script entrypoint."""

    raise SystemExit(run_cli())


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_inspect(args: argparse.Namespace) -> int:
    form = _load_form(args)
    roles = getattr(args, "roles", None)
    try:
        result = inspect_form(
            form,
            extra_skips=list(getattr(args, "skips", [])),
            target_roles=list(roles) if roles else None,
        )
    except MarkformError as exc:
        raise CLIError(str(exc), exit_code=EXIT_USAGE) from exc

    if _flag(args, "json"):
        _emit_json(
            {
                "command": "inspect",
                "form_id": form.schema.id,
                "form_state": result.form_state.value,
                "is_complete": result.is_complete,
                "is_valid": result.is_valid,
                "structure": result.structure.to_dict(),
                "progress": result.progress.to_dict(),
                "issues": [issue.to_dict() for issue in result.issues],
            }
        )
        return EXIT_OK

    _get_renderer(args).inspection(form.schema.id, result)
    return EXIT_OK


def _cmd_validate(args: argparse.Namespace) -> int:
    form = _load_form(args)
    issues = validate_form(form)
    valid = is_valid(issues)

    if _flag(args, "json"):
        _emit_json(
            {
                "command": "validate",
                "form_id": form.schema.id,
                "valid": valid,
                "issues": [issue.to_dict() for issue in issues],
            }
        )
        return EXIT_OK if valid else EXIT_INVALID

    renderer = _get_renderer(args)
    renderer.heading(f"Form: {form.schema.id}")
    if issues:
        renderer.section(f"Issues ({len(issues)}):")
        renderer.validation_issues(issues)
    if valid:
        renderer.ok("no validation errors")
        return EXIT_OK
    renderer.fail("validation errors found")
    return EXIT_INVALID


def _cmd_scope(args: argparse.Namespace) -> int:
    form = _load_form(args)
    text = _require_str(getattr(args, "ref", None), "ref")
    row_counts = form.row_counts() if _flag(args, "check_rows") else None
    result = check_scope_ref(text, form.schema, row_counts)

    payload: dict[str, object] = {"command": "scope", "input": text, "ok": result.ok}
    if result.ok and result.ref is not None:
        payload["scope"] = result.ref.scope
        payload["ref"] = serialize_scope_ref(result.ref)
    else:
        payload["error"] = result.error

    if _flag(args, "json"):
        _emit_json(payload)
        return EXIT_OK if result.ok else EXIT_INVALID

    renderer = _get_renderer(args)
    if result.ok and result.ref is not None:
        renderer.kv(result.ref.scope, serialize_scope_ref(result.ref))
        return EXIT_OK
    renderer.fail(result.error or "invalid scope reference")
    return EXIT_INVALID


def _cmd_apply(args: argparse.Namespace) -> int:
    settings = settings_from_config(_load_effective_config(args))
    form = _load_form(args, settings)
    patches = _load_patches(args)
    result = apply_patches(form, patches)
    try:
        markdown = serialize_form(result.form, settings=settings)
    except (MarkformError, ValueError) as exc:
        raise CLIError(f"unable to serialize filled form: {exc}") from exc

    output = _optional_str(getattr(args, "output", None))
    if output is not None:
        out_path = Path(output).expanduser()
        try:
            out_path.write_text(markdown, encoding="utf-8")
        except OSError as exc:
            raise CLIError(f"unable to write {out_path}: {exc}", exit_code=EXIT_USAGE) from exc
    exit_code = EXIT_INVALID if result.status is ApplyStatus.REJECTED else EXIT_OK

    if _flag(args, "json"):
        payload: dict[str, object] = {
            "command": "apply",
            "form_id": form.schema.id,
            "status": result.status.value,
            "form_state": result.inspection.form_state.value,
            "is_complete": result.is_complete,
            "applied": len(result.applied),
            "rejected": [rejection.to_dict() for rejection in result.rejected],
            "warnings": [warning.to_dict() for warning in result.warnings],
            "output": output,
        }
        if output is None:
            payload["markdown"] = markdown
        _emit_json(payload)
        return exit_code

    if output is None:
        sys.stdout.write(markdown)
        for rejection in result.rejected:
            print(f"rejected patch {rejection.patch_index}: {rejection.message}", file=sys.stderr)
        return exit_code

    renderer = _get_renderer(args)
    renderer.heading(f"Form: {form.schema.id}")
    renderer.kv("Status", result.status.value)
    renderer.kv("Applied", len(result.applied))
    renderer.kv("Output", output)
    if result.rejected:
        renderer.section(f"Rejected ({len(result.rejected)}):")
        renderer.items([f"#{item.patch_index}: {item.message}" for item in result.rejected])
    if result.warnings:
        renderer.section(f"Warnings ({len(result.warnings)}):")
        renderer.items([f"#{item.patch_index}: {item.message}" for item in result.warnings])
    if exit_code == EXIT_OK:
        renderer.ok(f"form state: {result.inspection.form_state.value}")
    else:
        renderer.fail("every patch was rejected")
    return exit_code


def _cmd_config(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)

    if _flag(args, "json"):
        _emit_json({"command": "config", "config": config})
        return EXIT_OK

    renderer = _get_renderer(args)
    renderer.kv("Config file", _optional_str(getattr(args, "config_path", None)) or "(default)")
    renderer.text(json.dumps(config, indent=2, sort_keys=True, ensure_ascii=False))
    return EXIT_OK


# ---------------------------------------------------------------------------
# Rendering helpers
# ---------------------------------------------------------------------------


def _emit_json(payload: Mapping[str, object]) -> None:
    """Emit a JSON payload to stdout with deterministic formatting."""

    print(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False))


def _get_renderer(args: argparse.Namespace) -> CLIRenderer:
    return create_renderer(verbose=_flag(args, "verbose"))


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load_effective_config(args: argparse.Namespace) -> dict[str, Any]:
    config_path = _optional_str(getattr(args, "config_path", None))
    try:
        config = load_config(config_path)
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc), exit_code=EXIT_USAGE) from exc

    observability = config["observability"]
    setup_logging(observability["log_level"], log_format=observability["log_format"])
    return config


def _load_form(args: argparse.Namespace, settings: ParseSettings | None = None) -> ParsedForm:
    if settings is None:
        settings = settings_from_config(_load_effective_config(args))
    path = Path(_require_str(getattr(args, "path", None), "path")).expanduser()
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise CLIError(f"unable to read form file {path}: {exc}", exit_code=EXIT_USAGE) from exc

    try:
        return parse_form(text, settings, source=str(path))
    except MarkformParseError as exc:
        raise CLIError(str(exc), exit_code=EXIT_USAGE) from exc


def _load_patches(args: argparse.Namespace) -> list[Patch]:
    path = Path(_require_str(getattr(args, "patches", None), "patches")).expanduser()
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise CLIError(f"unable to read patch file {path}: {exc}", exit_code=EXIT_USAGE) from exc
    except json.JSONDecodeError as exc:
        raise CLIError(f"invalid JSON in patch file {path}: {exc}", exit_code=EXIT_USAGE) from exc

    if not isinstance(raw, list) or not all(isinstance(item, dict) for item in raw):
        raise CLIError(f"patch file {path} must hold an array of objects", exit_code=EXIT_USAGE)
    try:
        return [Patch.from_dict(item) for item in raw]
    except MarkformError as exc:
        raise CLIError(f"{path}: {exc}", exit_code=EXIT_USAGE) from exc


def _flag(args: argparse.Namespace, name: str) -> bool:
    return bool(getattr(args, name, False))


def _optional_str(value: object) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _require_str(value: object, name: str) -> str:
    parsed = _optional_str(value)
    if parsed is None:
        raise CLIError(f"missing required argument: {name}", exit_code=EXIT_USAGE)
    return parsed


__all__ = ["CLIError", "build_parser", "cli_entrypoint", "main", "run_cli"]
