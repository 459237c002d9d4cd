"""
Schema state detection for the subject_id migration.

Read-only; safe to call at any point, including mid-migration.
"""

from ..models.store import QuestionStore, UnknownColumnError
from .models import SchemaPhase, SchemaState


def classify_phase(counts: dict[str, int]) -> SchemaPhase:
    """
    Map question counts to a migration phase (column assumed present).

    NEEDS_BACKFILL: questions have topics but none of them has a subject yet
    COMPLETE: every topic-linked question has a subject and none is double-null
    PARTIAL_BACKFILL: everything in between
    """
    if counts["with_topic"] > 0 and counts["topic_with_subject"] == 0:
        return SchemaPhase.NEEDS_BACKFILL
    if counts["topic_without_subject"] == 0 and counts["both_null"] == 0:
        return SchemaPhase.COMPLETE
    return SchemaPhase.PARTIAL_BACKFILL


class SchemaStateDetector:
    """Inspect the live schema and data to find the current migration phase."""

    def __init__(self, store: QuestionStore):
        self.store = store

    def detect(self) -> SchemaState:
        try:
            self.store.check_column("questions", "subject_id")
        except UnknownColumnError:
            return SchemaState(phase=SchemaPhase.NOT_APPLIED)

        counts = self.store.count_questions()
        return SchemaState(
            phase=classify_phase(counts),
            total=counts["total"],
            with_subject=counts["with_subject"],
            with_topic=counts["with_topic"],
            topic_with_subject=counts["topic_with_subject"],
            topic_without_subject=counts["topic_without_subject"],
            both_null=counts["both_null"],
        )
