#!/usr/bin/env python3
"""Command-line entry point for funder exports.

Usage (from project root):
    python -m funder_export.main export --type HUD_HMIS --input clients.json \\
        --start 2024-01-01 --end 2024-01-31
    python -m funder_export.main export --template my_template.json --input clients.json \\
        --start 2024-01-01 --end 2024-01-31 --output-dir exports/
    python -m funder_export.main preview --type DOL_WIPS --input clients.json \\
        --start 2024-01-01 --end 2024-03-31 --limit 5
    python -m funder_export.main validate --template my_template.json --form-field dateOfBirth
    python -m funder_export.main next-run "0 6 1 * *" --from 2024-01-15T10:00 --count 3
    python -m funder_export.main describe "0 6 * * 1"

Subcommands:
    export      Extract, validate, generate and store one export
    preview     Show the first mapped rows and validation warnings
    validate    Check a template's mappings, transformers and rules
    next-run    Print upcoming run times for a cron expression
    describe    Print a human-readable description of a cron expression

``--type`` builds an ad hoc active template from the predefined layout;
``--template`` loads a template JSON document (camelCase keys).
"""

from __future__ import annotations

import argparse
import json
from datetime import date, datetime
from pathlib import Path
from typing import TYPE_CHECKING

from funder_export.config import DATA_DIR, DEFAULT_TIMEZONE, setup_logging
from funder_export.errors import ExportError
from funder_export.extractor import InMemoryRecordSource
from funder_export.pipeline import ExportPipeline, LocalExportStorage
from funder_export.scheduler import describe_cron, get_next_run_time
from funder_export.templates import (
    InMemoryTemplateRepository,
    create_from_predefined,
    template_from_dict,
    validate_template_config,
)
from funder_export.types import ExportRequest, ExportStatus, ExportType, TemplateStatus
from funder_export.validation import format_validation_report

if TYPE_CHECKING:
    from funder_export.types import ExportTemplate

logger = setup_logging(__name__)

CLI_ORGANIZATION = "local"


# =============================================================================
# Template Loading
# =============================================================================


def load_template(args: argparse.Namespace) -> ExportTemplate:
    """Build the template named by ``--template`` or ``--type``."""
    if args.template:
        with Path(args.template).open(encoding="utf-8") as f:
            return template_from_dict(json.load(f))

    template = create_from_predefined(
        args.type,
        args.organization,
        source_form_ids=[],
        template_id=f"predefined-{args.type.lower()}",
    )
    template.status = TemplateStatus.ACTIVE
    return template


def build_request(args: argparse.Namespace, template: ExportTemplate) -> ExportRequest:
    return ExportRequest(
        template_id=template.id,
        organization_id=template.organization_id,
        period_start=args.start,
        period_end=args.end,
        subject_id_filter=tuple(args.subject_id) if args.subject_id else None,
        program_id_filter=tuple(args.program_id) if args.program_id else None,
        skip_validation=getattr(args, "skip_validation", False),
    )


def build_pipeline(args: argparse.Namespace, template: ExportTemplate) -> ExportPipeline:
    source = InMemoryRecordSource.from_json(args.input)
    storage = LocalExportStorage(args.output_dir or DATA_DIR)
    return ExportPipeline(source, storage, InMemoryTemplateRepository([template]), batch_size=args.batch_size)


# =============================================================================
# Commands
# =============================================================================


def cmd_export(args: argparse.Namespace) -> int:
    template = load_template(args)
    pipeline = build_pipeline(args, template)
    result = pipeline.run(build_request(args, template))

    if result.validation_result is not None and not args.quiet:
        print(format_validation_report(result.validation_result))
    print(json.dumps(result.to_dict(), indent=2, default=str))

    if result.status == ExportStatus.COMPLETED:
        logger.info("✓ Saved to: %s", Path(args.output_dir or DATA_DIR) / (result.file_path or ""))
        return 0
    return 1


def cmd_preview(args: argparse.Namespace) -> int:
    template = load_template(args)
    pipeline = build_pipeline(args, template)
    preview = pipeline.preview(build_request(args, template), limit=args.limit)

    print(" | ".join(preview.headers))
    for row in preview.rows:
        print(" | ".join(row))
    print(f"\nShowing {len(preview.rows)} of {preview.total_records} records")
    for warning in preview.validation_warnings:
        print(f"  ⚠ Record {warning.record_index + 1} {warning.field}: {warning.message}")
    return 0


def cmd_validate(args: argparse.Namespace) -> int:
    template = load_template(args)
    check = validate_template_config(template, args.form_field)

    for error in check.errors:
        print(f"✗ {error}")
    for warning in check.warnings:
        print(f"⚠ {warning}")
    if check.is_valid:
        print(f"✓ Template {template.name} is valid ({len(check.warnings)} warnings)")
        return 0
    return 1


def cmd_next_run(args: argparse.Namespace) -> int:
    moment = args.from_time
    for _ in range(args.count):
        moment = get_next_run_time(args.expression, args.timezone, moment)
        print(moment.isoformat())
    return 0


def cmd_describe(args: argparse.Namespace) -> int:
    print(describe_cron(args.expression))
    return 0


# =============================================================================
# CLI
# =============================================================================


def _add_template_args(parser: argparse.ArgumentParser) -> None:
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--template", help="Template JSON file")
    source.add_argument(
        "--type",
        choices=[t.value for t in ExportType if t != ExportType.CUSTOM],
        help="Use the predefined template for this export type",
    )
    parser.add_argument("--organization", default=CLI_ORGANIZATION, help="Organization id for --type")


def _add_run_args(parser: argparse.ArgumentParser) -> None:
    _add_template_args(parser)
    parser.add_argument("--input", "-i", required=True, help="JSON file with a list of subjects")
    parser.add_argument("--start", type=date.fromisoformat, required=True, help="Period start (YYYY-MM-DD)")
    parser.add_argument("--end", type=date.fromisoformat, required=True, help="Period end (YYYY-MM-DD)")
    parser.add_argument("--subject-id", action="append", help="Limit to subject id (repeatable)")
    parser.add_argument("--program-id", action="append", help="Limit to program id (repeatable)")
    parser.add_argument("--output-dir", "-o", help="Storage root (default: DATA_DIR)")
    parser.add_argument("--batch-size", type=int, default=None, help="Subjects per extraction batch")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="funder-export",
        description="Generate funder compliance exports from case-management data.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  funder-export export --type HUD_HMIS -i clients.json --start 2024-01-01 --end 2024-01-31
  funder-export preview --type CAP60 -i clients.json --start 2024-01-01 --end 2024-01-31
  funder-export next-run "0 6 L * *" --timezone America/New_York --count 3
        """,
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    export = subparsers.add_parser("export", help="Run an export")
    _add_run_args(export)
    export.add_argument("--skip-validation", action="store_true", help="Generate even with validation errors")
    export.add_argument("--quiet", action="store_true", help="Don't print the validation report")
    export.set_defaults(func=cmd_export)

    preview = subparsers.add_parser("preview", help="Preview mapped rows")
    _add_run_args(preview)
    preview.add_argument("--limit", type=int, default=None, help="Rows to show (default from config)")
    preview.set_defaults(func=cmd_preview)

    validate = subparsers.add_parser("validate", help="Validate a template")
    _add_template_args(validate)
    validate.add_argument(
        "--form-field",
        action="append",
        default=None,
        help="Available form field slug (repeatable); omit to check syntax only",
    )
    validate.set_defaults(func=cmd_validate)

    next_run = subparsers.add_parser("next-run", help="Show upcoming run times")
    next_run.add_argument("expression", help="Five-field cron expression")
    next_run.add_argument("--timezone", "-z", default=DEFAULT_TIMEZONE, help="IANA timezone")
    next_run.add_argument(
        "--from",
        dest="from_time",
        type=datetime.fromisoformat,
        default=None,
        help="Start time (ISO 8601; naive values use --timezone)",
    )
    next_run.add_argument("--count", "-n", type=int, default=1, help="Number of runs to list")
    next_run.set_defaults(func=cmd_next_run)

    describe = subparsers.add_parser("describe", help="Describe a cron expression")
    describe.add_argument("expression", help="Five-field cron expression")
    describe.set_defaults(func=cmd_describe)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Parse CLI arguments and dispatch the subcommand.

    Returns
    -------
    int
        ``0`` on success; ``1`` when an export is not completed, a template
        is invalid, or a configuration error is reported; ``2`` for usage
        errors (raised by argparse).
    """
    args = build_parser().parse_args(argv)
    try:
        return int(args.func(args))
    except ExportError as exc:
        logger.error("%s", exc)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
