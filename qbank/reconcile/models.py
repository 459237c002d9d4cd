"""
Result types for the reconciliation stages.

Every stage returns one of these instead of narrating to the console;
report.py turns them into text or JSON.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class SchemaPhase(str, Enum):
    NOT_APPLIED = "not_applied"
    NEEDS_BACKFILL = "needs_backfill"
    PARTIAL_BACKFILL = "partial_backfill"
    COMPLETE = "complete"


class IssueKind(str, Enum):
    SCHEMA_NOT_READY = "schema_not_ready"
    REFERENTIAL_ORPHAN = "referential_orphan"
    LOW_CONFIDENCE = "low_confidence_classification"
    WRITE_FAILURE = "write_failure"


class OrphanReason(str, Enum):
    NO_TOPIC = "no_topic"
    DANGLING_TOPIC = "dangling_topic"


@dataclass
class SchemaState:
    """Detected migration phase plus the counts it was derived from."""

    phase: SchemaPhase
    total: int = 0
    with_subject: int = 0
    with_topic: int = 0
    topic_with_subject: int = 0
    topic_without_subject: int = 0
    both_null: int = 0

    @property
    def column_present(self) -> bool:
        return self.phase is not SchemaPhase.NOT_APPLIED

    @property
    def coverage_percent(self) -> float:
        if self.total == 0:
            return 100.0 if self.column_present else 0.0
        return self.with_subject / self.total * 100


@dataclass
class OrphanedQuestion:
    """Question the backfill cannot fix; needs a manual subject decision."""

    question_id: str
    topic_id: Optional[str]
    reason: OrphanReason
    preview: str = ""
    kind: IssueKind = IssueKind.REFERENTIAL_ORPHAN


@dataclass
class WriteFailure:
    """An update that failed; isolated to its row (backfill) or group (correction)."""

    question_id: str
    message: str
    topic_id: Optional[str] = None
    target_subject_id: Optional[str] = None
    kind: IssueKind = IssueKind.WRITE_FAILURE


@dataclass
class UncertainQuestion:
    """Classifier found no cue for any subject; left as-is for manual review."""

    question_id: str
    current_subject_id: Optional[str]
    preview: str = ""
    kind: IssueKind = IssueKind.LOW_CONFIDENCE


@dataclass
class Reassignment:
    """A planned (or applied) content-based subject move."""

    question_id: str
    from_subject_id: Optional[str]
    to_subject_id: str
    from_slug: Optional[str]
    to_slug: str
    from_score: int
    to_score: int
    preview: str = ""


@dataclass
class BackfillResult:
    """Outcome of one backfill run."""

    phase: SchemaPhase
    skipped_reason: Optional[str] = None  # set when the phase needs no/can't take backfill
    dry_run: bool = False

    examined: int = 0               # questions lacking subject_id in the snapshot
    valid: int = 0                  # resolvable through their topic
    updated: int = 0
    already_set: int = 0            # filled by a concurrent writer since the snapshot
    batches: int = 0

    orphans: list[OrphanedQuestion] = field(default_factory=list)
    failures: list[WriteFailure] = field(default_factory=list)

    @property
    def orphaned_no_topic(self) -> int:
        return sum(1 for o in self.orphans if o.reason is OrphanReason.NO_TOPIC)

    @property
    def orphaned_dangling(self) -> int:
        return sum(1 for o in self.orphans if o.reason is OrphanReason.DANGLING_TOPIC)

    @property
    def failed(self) -> int:
        return len(self.failures)

    @property
    def clean(self) -> bool:
        return not self.orphans and not self.failures


@dataclass
class CorrectionResult:
    """Outcome of one misassignment-correction run."""

    skipped_reason: Optional[str] = None
    dry_run: bool = False

    examined: int = 0
    confirmed: int = 0              # content agrees with the current subject
    not_assessable: int = 0         # current subject has no profile; never re-scored
    below_margin: int = 0           # better subject found but lead too small
    blocked_by_history: int = 0     # would revert an earlier correction without a higher score

    reassignments: list[Reassignment] = field(default_factory=list)
    uncertain: list[UncertainQuestion] = field(default_factory=list)
    failures: list[WriteFailure] = field(default_factory=list)
    missing_subjects: list[str] = field(default_factory=list)  # profile slugs absent from storage

    @property
    def moved(self) -> int:
        if self.dry_run:
            return 0
        failed = {f.question_id for f in self.failures}
        return sum(1 for r in self.reassignments if r.question_id not in failed)

    @property
    def moved_by_subject(self) -> dict[str, int]:
        if self.dry_run:
            return {}
        failed = {f.question_id for f in self.failures}
        counts: dict[str, int] = {}
        for r in self.reassignments:
            if r.question_id not in failed:
                counts[r.to_slug] = counts.get(r.to_slug, 0) + 1
        return counts

    @property
    def failed(self) -> int:
        return len(self.failures)


@dataclass
class CheckResult:
    """One integrity check."""

    name: str
    passed: bool
    details: str
    count: Optional[int] = None
    extra: dict = field(default_factory=dict)
    sample_ids: list[str] = field(default_factory=list)


@dataclass
class VerificationReport:
    checks: list[CheckResult] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return bool(self.checks) and all(c.passed for c in self.checks)

    def check(self, name: str) -> CheckResult:
        for c in self.checks:
            if c.name == name:
                return c
        raise KeyError(name)


@dataclass
class RunReport:
    """Everything one invocation did, stage by stage."""

    initial_state: SchemaState
    final_state: Optional[SchemaState] = None
    migration_applied: bool = False
    backfill: Optional[BackfillResult] = None
    correction: Optional[CorrectionResult] = None
    verification: Optional[VerificationReport] = None
    dry_run: bool = False

    @property
    def succeeded(self) -> bool:
        """
        True only when the data converged (final phase COMPLETE), no stage
        left orphans or failures behind, a dry run left no planned moves
        pending, and the closing verification passed.
        """
        state = self.final_state or self.initial_state
        if state.phase is not SchemaPhase.COMPLETE:
            return False
        if self.backfill is not None and not self.backfill.clean:
            return False
        if self.correction is not None and self.correction.failures:
            return False
        if self.dry_run and self.correction is not None and self.correction.reassignments:
            return False
        return self.verification is not None and self.verification.passed
