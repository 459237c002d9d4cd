"""
Misassignment correction: move questions whose content disagrees with their
assigned subject.

A question is moved only when all of these hold:
- its current subject has a profile
- the classifier is confident (top score > 0)
- the top subject differs from the current one
- the top score leads the current subject's score by at least min_margin
- the move does not revert an earlier correction without a higher score

Uncertain questions are reported for manual classification, never guessed.
Writes are one bulk update per destination subject, each recorded in the
subject_corrections audit table.
"""

import sys
from typing import Optional

from ..models.store import (
    CorrectionRecord, QuestionRecord, QuestionStore, StorageWriteError, SubjectRecord
)
from ..processing.subject_classifier import SubjectClassifier, build_question_text
from ..utils.retry import RetryPolicy
from .models import (
    CorrectionResult, Reassignment, SchemaPhase, SchemaState, UncertainQuestion,
    WriteFailure
)


class UnknownSubjectError(ValueError):
    """A subject slug given as a filter does not exist in storage."""


def rejected_before(history: list[CorrectionRecord], subject_id: str, score: int) -> bool:
    """
    True if an earlier correction moved the question away from subject_id and
    the new score does not beat the score that won that correction.
    """
    return any(
        c.from_subject_id == subject_id and score <= c.to_score
        for c in history
    )


class MisassignmentCorrector:
    """Re-score assigned questions and reassign confident disagreements."""

    def __init__(
        self,
        store: QuestionStore,
        classifier: SubjectClassifier,
        min_margin: int = 1,
        retry_policy: Optional[RetryPolicy] = None,
        preview_chars: int = 100,
        verbose: bool = True
    ):
        if min_margin < 1:
            raise ValueError("min_margin must be at least 1")
        self.store = store
        self.classifier = classifier
        self.min_margin = min_margin
        self.retry_policy = retry_policy or RetryPolicy()
        self.preview_chars = preview_chars
        self.verbose = verbose

    def _log(self, message: str):
        if self.verbose:
            print(message, file=sys.stderr)

    def run(
        self,
        state: SchemaState,
        exam_year: Optional[int] = None,
        current_subject: Optional[str] = None,
        active_only: bool = False,
        dry_run: bool = False
    ) -> CorrectionResult:
        """
        Args:
            state: Detected schema state; nothing runs without the column
            exam_year: Only questions from this exam year
            current_subject: Only questions currently in this subject (slug)
            active_only: Skip questions hidden with is_active = false
            dry_run: Plan and report without writing
        """
        result = CorrectionResult(dry_run=dry_run)
        if state.phase is SchemaPhase.NOT_APPLIED:
            result.skipped_reason = "subject_id column missing; apply the migration first"
            self._log(f"  Correction skipped: {result.skipped_reason}")
            return result

        subjects = self.store.fetch_subjects_by_slug()
        slug_by_id = {s.id: s.slug for s in subjects.values()}

        result.missing_subjects = [slug for slug in self.classifier.slugs if slug not in subjects]
        for slug in result.missing_subjects:
            self._log(f"  Subject '{slug}' has a profile but is not in storage; excluded")
        classifier = self.classifier.restricted_to(subjects)
        if not classifier.profiles:
            result.skipped_reason = "none of the profiled subjects exist in storage"
            self._log(f"  Correction skipped: {result.skipped_reason}")
            return result

        subject_ids = None
        if current_subject is not None:
            if current_subject not in subjects:
                raise UnknownSubjectError(f"unknown subject slug: {current_subject}")
            subject_ids = [subjects[current_subject].id]

        questions = self.store.fetch_assigned_questions(
            exam_year=exam_year,
            subject_ids=subject_ids,
            active_only=active_only,
        )
        profiled_ids = {subjects[slug].id for slug in classifier.slugs}
        candidates = [q for q in questions if q.subject_id in profiled_ids]
        result.not_assessable = len(questions) - len(candidates)
        if result.not_assessable:
            self._log(f"  Skipping {result.not_assessable} questions in subjects without a profile")

        history = self.store.fetch_corrections([q.id for q in candidates])
        self._log(f"  Questions to re-score: {len(candidates)}")

        for question in candidates:
            self._assess(question, classifier, subjects, slug_by_id, history.get(question.id, []), result)
        result.examined = len(candidates)

        self._log(
            f"  Confirmed: {result.confirmed}  To move: {len(result.reassignments)}  "
            f"Uncertain: {len(result.uncertain)}"
        )

        if not dry_run:
            self._apply(result)
        return result

    def _assess(
        self,
        question: QuestionRecord,
        classifier: SubjectClassifier,
        subjects: dict[str, SubjectRecord],
        slug_by_id: dict[str, str],
        history: list[CorrectionRecord],
        result: CorrectionResult
    ):
        decision = classifier.classify(build_question_text(question.question_text, question.options))
        if decision.uncertain:
            result.uncertain.append(UncertainQuestion(
                question_id=question.id,
                current_subject_id=question.subject_id,
                preview=question.preview(self.preview_chars),
            ))
            return

        current_slug = slug_by_id.get(question.subject_id)
        if decision.subject == current_slug:
            result.confirmed += 1
            return

        top_score = decision.top_score
        current_score = decision.score_for(current_slug)
        if top_score - current_score < self.min_margin:
            result.below_margin += 1
            return

        target = subjects[decision.subject]
        if rejected_before(history, target.id, top_score):
            result.blocked_by_history += 1
            return

        result.reassignments.append(Reassignment(
            question_id=question.id,
            from_subject_id=question.subject_id,
            to_subject_id=target.id,
            from_slug=current_slug,
            to_slug=target.slug,
            from_score=current_score,
            to_score=top_score,
            preview=question.preview(self.preview_chars),
        ))

    def _apply(self, result: CorrectionResult):
        """One bulk update per destination subject."""
        groups: dict[str, list[Reassignment]] = {}
        for move in result.reassignments:
            groups.setdefault(move.to_subject_id, []).append(move)

        for subject_id, moves in groups.items():
            ids = [m.question_id for m in moves]
            corrections = [
                CorrectionRecord(
                    question_id=m.question_id,
                    from_subject_id=m.from_subject_id,
                    to_subject_id=m.to_subject_id,
                    from_score=m.from_score,
                    to_score=m.to_score,
                )
                for m in moves
            ]
            try:
                self.retry_policy.call(self.store.reassign_subject, ids, subject_id, corrections)
                self._log(f"  ✓ Moved {len(ids)} questions to {moves[0].to_slug}")
            except StorageWriteError as e:
                self._log(f"  ✗ Moving {len(ids)} questions to {moves[0].to_slug} failed: {e}")
                result.failures.extend(
                    WriteFailure(
                        question_id=m.question_id,
                        message=str(e),
                        target_subject_id=subject_id,
                    )
                    for m in moves
                )
