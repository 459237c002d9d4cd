"""
Integrity verification for question subject assignments.

Never mutates. Checks run in a fixed order and sample ids are sorted, so two
calls with no data change in between produce equal reports.
"""

from ..models.store import QuestionStore, UnknownColumnError
from .models import CheckResult, VerificationReport


SUBJECT_COLUMN_PRESENT = "subject_column_present"
NO_DOUBLE_NULL = "no_double_null"
TOPIC_SUBJECT_CONSISTENCY = "topic_subject_consistency"
TOPIC_REFERENCES_RESOLVE = "topic_references_resolve"
SUBJECT_COVERAGE = "subject_coverage"

CHECK_ORDER = (
    SUBJECT_COLUMN_PRESENT,
    NO_DOUBLE_NULL,
    TOPIC_SUBJECT_CONSISTENCY,
    TOPIC_REFERENCES_RESOLVE,
    SUBJECT_COVERAGE,
)


class IntegrityVerifier:
    """Run the invariant battery against the live dataset."""

    def __init__(self, store: QuestionStore, sample_size: int = 10):
        self.store = store
        self.sample_size = sample_size

    def verify(self) -> VerificationReport:
        try:
            self.store.check_column("questions", "subject_id")
        except UnknownColumnError as e:
            checks = [CheckResult(
                name=SUBJECT_COLUMN_PRESENT,
                passed=False,
                details=f"Column does not exist: {e}",
            )]
            checks.extend(
                CheckResult(name=name, passed=False, details="Not run: subject_id column missing")
                for name in CHECK_ORDER[1:]
            )
            return VerificationReport(checks=checks)

        counts = self.store.count_questions()
        linked = self.store.fetch_linked_questions()
        history = self.store.fetch_corrections()

        checks = [
            CheckResult(
                name=SUBJECT_COLUMN_PRESENT,
                passed=True,
                details="Column exists and is queryable",
            ),
            self._check_double_null(counts),
            self._check_consistency(linked, history),
            self._check_references(linked),
            self._check_coverage(counts),
        ]
        return VerificationReport(checks=checks)

    def _check_double_null(self, counts: dict[str, int]) -> CheckResult:
        both_null = counts["both_null"]
        return CheckResult(
            name=NO_DOUBLE_NULL,
            passed=both_null == 0,
            count=both_null,
            details=(
                "All questions have either subject_id or topic_id"
                if both_null == 0
                else f"{both_null} questions have neither subject_id nor topic_id"
            ),
        )

    def _check_consistency(self, linked, history) -> CheckResult:
        """
        Mismatches whose latest correction points at the current subject are
        deliberate overrides; anything else is drift.
        """
        checked = [q for q in linked if q.topic_exists and q.subject_id is not None]
        overrides = []
        drift = []
        for q in checked:
            if q.subject_id == q.topic_subject_id:
                continue
            corrections = history.get(q.id)
            if corrections and corrections[-1].to_subject_id == q.subject_id:
                overrides.append(q.id)
            else:
                drift.append(q.id)

        if not drift and not overrides:
            details = f"All {len(checked)} questions match their topic's subject"
        else:
            details = (
                f"{len(overrides) + len(drift)} of {len(checked)} questions differ from their "
                f"topic's subject ({len(overrides)} recorded overrides, {len(drift)} unexpected drift)"
            )
        return CheckResult(
            name=TOPIC_SUBJECT_CONSISTENCY,
            passed=not drift,
            count=len(overrides) + len(drift),
            details=details,
            extra={
                "checked": len(checked),
                "expected_overrides": len(overrides),
                "unexpected_drift": len(drift),
            },
            sample_ids=sorted(drift)[:self.sample_size],
        )

    def _check_references(self, linked) -> CheckResult:
        dangling = [q for q in linked if not q.topic_exists]
        unresolved = sorted(q.id for q in dangling if q.subject_id is None)
        if not dangling:
            details = "Every topic_id references an existing topic"
        else:
            details = (
                f"{len(dangling)} questions reference a missing topic, "
                f"{len(unresolved)} of them without a subject_id"
            )
        return CheckResult(
            name=TOPIC_REFERENCES_RESOLVE,
            passed=not unresolved,
            count=len(unresolved),
            details=details,
            extra={"dangling_total": len(dangling)},
            sample_ids=unresolved[:self.sample_size],
        )

    def _check_coverage(self, counts: dict[str, int]) -> CheckResult:
        total = counts["total"]
        populated = counts["with_subject"]
        percent = round(populated / total * 100, 1) if total else 100.0
        return CheckResult(
            name=SUBJECT_COVERAGE,
            passed=True,
            count=populated,
            details=f"{populated} of {total} questions have subject_id ({percent}%)",
            extra={"total": total, "percent": percent},
        )
