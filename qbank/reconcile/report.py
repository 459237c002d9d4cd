"""
Rendering of reconciliation results for operators.
"""

import json
from dataclasses import asdict
from datetime import datetime
from typing import Optional

from .models import (
    BackfillResult, CorrectionResult, RunReport, SchemaPhase, SchemaState,
    VerificationReport
)


RULE = "=" * 80
THIN_RULE = "-" * 40

# Sample rows listed per section; the JSON output always carries everything
MAX_LISTED = 20

PHASE_ADVICE = {
    SchemaPhase.NOT_APPLIED: "Migration NOT applied: run with --apply-migration (or --mode migrate)",
    SchemaPhase.NEEDS_BACKFILL: "Migration applied but backfill NOT run",
    SchemaPhase.PARTIAL_BACKFILL: "Backfill incomplete or questions need manual review",
    SchemaPhase.COMPLETE: "Migration and backfill complete",
}


def _short(identifier: Optional[str]) -> str:
    return identifier if identifier else "NULL"


def format_schema_state(state: SchemaState) -> list[str]:
    lines = [
        "SCHEMA STATE",
        THIN_RULE,
        f"Phase: {state.phase.value}",
        f"  {PHASE_ADVICE[state.phase]}",
    ]
    if state.column_present:
        lines.extend([
            f"Total questions:              {state.total}",
            f"With subject_id:              {state.with_subject} ({state.coverage_percent:.0f}%)",
            f"With topic_id:                {state.with_topic}",
            f"Topic but no subject_id:      {state.topic_without_subject}",
            f"Both NULL:                    {state.both_null}",
        ])
    return lines


def format_backfill(result: BackfillResult) -> list[str]:
    lines = ["BACKFILL", THIN_RULE]
    if result.skipped_reason:
        lines.append(f"Skipped: {result.skipped_reason}")
        return lines

    lines.extend([
        f"Questions needing backfill:    {result.examined}",
        f"Resolvable through topic:      {result.valid}",
        f"Updated:                       {result.updated}" + (" (dry run)" if result.dry_run else ""),
        f"Already set concurrently:      {result.already_set}",
        f"Orphaned (no topic):           {result.orphaned_no_topic}",
        f"Orphaned (dangling topic):     {result.orphaned_dangling}",
        f"Failed writes:                 {result.failed}",
    ])

    if result.orphans:
        lines.extend(["", f"Orphaned questions requiring manual review ({len(result.orphans)}):"])
        for orphan in result.orphans[:MAX_LISTED]:
            lines.append(f"  - {orphan.question_id} [{orphan.reason.value}] topic={_short(orphan.topic_id)}")
            lines.append(f"    {orphan.preview}...")
        if len(result.orphans) > MAX_LISTED:
            lines.append(f"  ... and {len(result.orphans) - MAX_LISTED} more")

    if result.failures:
        lines.extend(["", "Failed writes (re-run to retry):"])
        for failure in result.failures[:MAX_LISTED]:
            lines.append(f"  - {failure.question_id} topic={_short(failure.topic_id)}: {failure.message}")
        if len(result.failures) > MAX_LISTED:
            lines.append(f"  ... and {len(result.failures) - MAX_LISTED} more")
    return lines


def format_correction(result: CorrectionResult) -> list[str]:
    lines = ["MISASSIGNMENT CORRECTION", THIN_RULE]
    if result.skipped_reason:
        lines.append(f"Skipped: {result.skipped_reason}")
        return lines

    lines.extend([
        f"Questions re-scored:           {result.examined}",
        f"Content agrees with subject:   {result.confirmed}",
        f"Subject has no profile (kept): {result.not_assessable}",
        f"Reassignments planned:         {len(result.reassignments)}",
        f"Reassigned:                    {result.moved}" + (" (dry run)" if result.dry_run else ""),
        f"Lead below margin (kept):      {result.below_margin}",
        f"Blocked by earlier correction: {result.blocked_by_history}",
        f"Needs manual classification:   {len(result.uncertain)}",
        f"Failed writes:                 {result.failed}",
    ])
    if result.missing_subjects:
        lines.append(f"Profiled subjects not in storage: {', '.join(result.missing_subjects)}")

    if result.reassignments:
        lines.extend(["", "Reassignments:"])
        for move in result.reassignments[:MAX_LISTED]:
            lines.append(
                f"  - {move.question_id}: {move.from_slug or move.from_subject_id} "
                f"({move.from_score}) -> {move.to_slug} ({move.to_score})"
            )
        if len(result.reassignments) > MAX_LISTED:
            lines.append(f"  ... and {len(result.reassignments) - MAX_LISTED} more")

    if result.uncertain:
        lines.extend(["", "Still needs manual classification:"])
        for question in result.uncertain[:MAX_LISTED]:
            lines.append(f"  - {question.question_id}: {question.preview}...")
        if len(result.uncertain) > MAX_LISTED:
            lines.append(f"  ... and {len(result.uncertain) - MAX_LISTED} more")

    if result.failures:
        lines.extend(["", "Failed writes (re-run to retry):"])
        for failure in result.failures[:MAX_LISTED]:
            lines.append(f"  - {failure.question_id} -> {failure.target_subject_id}: {failure.message}")
    return lines


def format_verification(report: VerificationReport) -> list[str]:
    lines = ["VERIFICATION", THIN_RULE]
    for check in report.checks:
        mark = "✓" if check.passed else "✗"
        lines.append(f"{mark} {check.name}")
        lines.append(f"    {check.details}")
        if check.sample_ids:
            lines.append(f"    Sample: {', '.join(check.sample_ids)}")
    return lines


def format_run_report(report: RunReport) -> str:
    """Full operator report, ending with an explicit success/failure line."""
    lines = [
        RULE,
        "QUESTION SUBJECT RECONCILIATION REPORT",
        f"Generated: {datetime.now().isoformat()}",
        RULE,
        "",
    ]
    lines.extend(format_schema_state(report.initial_state))
    if report.migration_applied:
        lines.extend(["", "Migration: subject_id column added"])

    for section in (
        format_backfill(report.backfill) if report.backfill else None,
        format_correction(report.correction) if report.correction else None,
        format_verification(report.verification) if report.verification else None,
    ):
        if section:
            lines.append("")
            lines.extend(section)

    if report.final_state is not None and report.final_state.phase != report.initial_state.phase:
        lines.extend(["", f"Final phase: {report.final_state.phase.value}"])

    lines.extend(["", RULE])
    if report.dry_run:
        lines.append("(DRY RUN - no changes were saved)")
    lines.append("RESULT: SUCCESS" if report.succeeded else "RESULT: FAILED - another pass or manual review needed")
    lines.append(RULE)
    return "\n".join(lines)


def run_report_to_dict(report: RunReport) -> dict:
    data = asdict(report)
    data["succeeded"] = report.succeeded
    if report.backfill is not None:
        data["backfill"].update(
            orphaned_no_topic=report.backfill.orphaned_no_topic,
            orphaned_dangling=report.backfill.orphaned_dangling,
            failed=report.backfill.failed,
        )
    if report.correction is not None:
        data["correction"].update(
            moved=report.correction.moved,
            moved_by_subject=report.correction.moved_by_subject,
        )
    if report.verification is not None:
        data["verification"]["passed"] = report.verification.passed
    return data


def run_report_to_json(report: RunReport) -> str:
    # str-valued enums serialize as their values
    return json.dumps(run_report_to_dict(report), indent=2, default=str)
