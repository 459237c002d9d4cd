#!/usr/bin/env python3
"""
Question subject reconciliation CLI.

Brings questions.subject_id into a consistent state and keeps it there:
detect the migration phase, backfill subject_id from topics, move questions
whose content disagrees with their subject, then verify.

Every mode is safe to re-run. Exit status is 0 only when the data ended up
COMPLETE, nothing was left orphaned or failed, verification passed, and a
dry run found nothing left to change.

Usage:
    # Where is the migration at?
    python reconcile_subjects.py --mode status

    # Add the subject_id column (idempotent)
    python reconcile_subjects.py --mode migrate

    # Backfill only, preview first
    python reconcile_subjects.py --mode backfill --dry-run
    python reconcile_subjects.py --mode backfill

    # Re-score Mathematics questions from the 2022 paper
    python reconcile_subjects.py --mode correct --subject mathematics --exam-year 2022

    # Integrity checks only
    python reconcile_subjects.py --mode verify

    # Everything, migrating first if needed, saving the report
    python reconcile_subjects.py --mode run --apply-migration --report-file run.txt
"""

import argparse
import json
import sys
from dataclasses import asdict
from pathlib import Path

from dotenv import load_dotenv

from qbank.config import Settings, ensure_directories, get_config
from qbank.models.database import Database
from qbank.models.store import QuestionStore
from qbank.processing.subject_classifier import SubjectClassifier, load_profiles
from qbank.reconcile.corrector import UnknownSubjectError
from qbank.reconcile.models import SchemaPhase
from qbank.reconcile.pipeline import BACKFILL, CORRECT, ReconciliationPipeline
from qbank.reconcile.report import (
    format_schema_state, format_verification, format_run_report, run_report_to_json
)
from qbank.reconcile.schema_state import SchemaStateDetector
from qbank.reconcile.verifier import IntegrityVerifier


MODES = ("status", "migrate", "backfill", "correct", "verify", "run")

STAGES_BY_MODE = {
    "backfill": (BACKFILL,),
    "correct": (CORRECT,),
    "run": (BACKFILL, CORRECT),
}


def print_header(text: str):
    """Print section header."""
    print(f"\n{'='*60}")
    print(f"  {text}")
    print(f"{'='*60}\n")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Backfill, correct and verify question subject assignments",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s --mode status                         Show migration phase and counts
  %(prog)s --mode run --apply-migration          Full pipeline
  %(prog)s --mode correct --dry-run              Show planned reassignments
  %(prog)s --mode verify --json                  Machine-readable checks
        """
    )
    parser.add_argument(
        "--mode", choices=MODES, default="run",
        help="Stage(s) to run (default: run = backfill + correct + verify)"
    )
    parser.add_argument(
        "--database-url", type=str,
        help="Override the configured SQLAlchemy database URL"
    )

    selection = parser.add_argument_group("Correction scope")
    selection.add_argument(
        "--exam-year", type=int,
        help="Only re-score questions from this exam year"
    )
    selection.add_argument(
        "--subject", type=str, dest="current_subject",
        help="Only re-score questions currently assigned to this subject slug"
    )
    selection.add_argument(
        "--active-only", action="store_true",
        help="Skip inactive questions"
    )
    selection.add_argument(
        "--profiles", type=Path,
        help="JSON file with subject keyword/pattern profiles"
    )
    selection.add_argument(
        "--margin", type=int,
        help="Minimum score lead required to reassign"
    )

    execution = parser.add_argument_group("Execution")
    execution.add_argument(
        "--apply-migration", action="store_true",
        help="Add the subject_id column first if it is missing"
    )
    execution.add_argument(
        "--batch-size", type=int,
        help="Backfill writes per batch"
    )
    execution.add_argument(
        "--retries", type=int,
        help="Retries per failed write (default from settings: 0)"
    )
    execution.add_argument(
        "--dry-run", action="store_true",
        help="Show what would change without saving"
    )

    output = parser.add_argument_group("Output")
    output.add_argument(
        "--json", action="store_true",
        help="Print the report as JSON"
    )
    output.add_argument(
        "--report-file", type=Path,
        help="Also save the report (relative paths go under the report dir)"
    )
    output.add_argument(
        "--quiet", "-q", action="store_true",
        help="No progress output on stderr"
    )
    return parser


def resolve_settings(args) -> Settings:
    overrides = {
        "database_url": args.database_url,
        "batch_size": args.batch_size,
        "write_retries": args.retries,
        "min_reassign_margin": args.margin,
        "subject_profiles_path": args.profiles,
    }
    overrides = {k: v for k, v in overrides.items() if v is not None}
    if not overrides:
        return get_config()
    return Settings(**overrides)


def save_report(text: str, path: Path, settings: Settings) -> Path:
    if not path.is_absolute():
        ensure_directories(settings)
        path = Path(settings.report_dir) / path
    path.write_text(text, encoding="utf-8")
    return path


def cmd_status(store: QuestionStore) -> int:
    print_header("Migration Status")
    state = SchemaStateDetector(store).detect()
    print("\n".join(format_schema_state(state)))
    return 0 if state.phase is SchemaPhase.COMPLETE else 1


def cmd_migrate(store: QuestionStore, dry_run: bool) -> int:
    print_header("Subject ID Migration")
    state = SchemaStateDetector(store).detect()
    if state.phase is not SchemaPhase.NOT_APPLIED:
        print("  subject_id column already present")
    elif dry_run:
        print("  Would add subject_id column, index and subject_corrections table")
        print("\n(DRY RUN - no changes were saved)")
        return 0
    store.apply_subject_column()
    state = SchemaStateDetector(store).detect()
    print("\n".join(format_schema_state(state)))
    return 0 if state.column_present else 1


def cmd_verify(store: QuestionStore, as_json: bool) -> int:
    report = IntegrityVerifier(store).verify()
    if as_json:
        print(json.dumps({"passed": report.passed, **asdict(report)}, indent=2))
    else:
        print_header("Integrity Verification")
        print("\n".join(format_verification(report)))
    return 0 if report.passed else 1


def main(argv=None) -> int:
    load_dotenv()
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.batch_size is not None and args.batch_size < 1:
        parser.error("--batch-size must be at least 1")
    if args.margin is not None and args.margin < 1:
        parser.error("--margin must be at least 1")
    if args.retries is not None and args.retries < 0:
        parser.error("--retries cannot be negative")

    settings = resolve_settings(args)
    db = Database(settings.database_url)
    store = QuestionStore(db)

    try:
        if args.mode == "status":
            return cmd_status(store)
        if args.mode == "migrate":
            return cmd_migrate(store, args.dry_run)
        if args.mode == "verify":
            return cmd_verify(store, args.json)

        classifier = SubjectClassifier(load_profiles(settings.subject_profiles_path))
        pipeline = ReconciliationPipeline.from_settings(
            store, classifier, settings, verbose=not args.quiet
        )
        try:
            report = pipeline.run(
                stages=STAGES_BY_MODE[args.mode],
                apply_migration=args.apply_migration,
                dry_run=args.dry_run,
                exam_year=args.exam_year,
                current_subject=args.current_subject,
                active_only=args.active_only,
            )
        except UnknownSubjectError as e:
            parser.error(str(e))

        text = run_report_to_json(report) if args.json else format_run_report(report)
        print(text)
        if args.report_file:
            path = save_report(text, args.report_file, settings)
            print(f"\nReport saved to: {path}", file=sys.stderr)
        return 0 if report.succeeded else 1
    finally:
        db.dispose()


if __name__ == "__main__":
    sys.exit(main())
