"""
Subject ID backfill: derive questions.subject_id from the legacy topic link.

Flow:
1. Snapshot questions with subject_id IS NULL and the topic -> subject map
2. Categorize: valid / orphaned (no topic) / orphaned (dangling topic)
3. Write valid rows in fixed-size batches, concurrently within a batch
4. Report counts, orphans and per-row failures

Orphans are never auto-fixed. A failed row never aborts the run; re-running
the engine retries it, and rows already filled are skipped.
"""

import asyncio
import sys
from typing import Optional

from tqdm import tqdm

from ..models.store import QuestionRecord, QuestionStore, StorageWriteError
from ..utils.retry import RetryPolicy
from .models import (
    BackfillResult, OrphanedQuestion, OrphanReason, SchemaPhase, SchemaState,
    WriteFailure
)


DEFAULT_BATCH_SIZE = 50


def categorize_questions(
    questions: list[QuestionRecord],
    topic_subjects: dict[str, str],
    preview_chars: int = 100
) -> tuple[list[tuple[QuestionRecord, str]], list[OrphanedQuestion]]:
    """
    Split questions into (question, target subject id) pairs and orphans.

    Args:
        questions: Questions lacking subject_id
        topic_subjects: Topic id -> subject id lookup
    """
    valid = []
    orphans = []
    for question in questions:
        if question.topic_id is None:
            orphans.append(OrphanedQuestion(
                question_id=question.id,
                topic_id=None,
                reason=OrphanReason.NO_TOPIC,
                preview=question.preview(preview_chars),
            ))
        elif question.topic_id not in topic_subjects:
            orphans.append(OrphanedQuestion(
                question_id=question.id,
                topic_id=question.topic_id,
                reason=OrphanReason.DANGLING_TOPIC,
                preview=question.preview(preview_chars),
            ))
        else:
            valid.append((question, topic_subjects[question.topic_id]))
    return valid, orphans


class BackfillEngine:
    """Populate subject_id from topics, batch by batch."""

    def __init__(
        self,
        store: QuestionStore,
        batch_size: int = DEFAULT_BATCH_SIZE,
        retry_policy: Optional[RetryPolicy] = None,
        preview_chars: int = 100,
        verbose: bool = True
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.store = store
        self.batch_size = batch_size
        self.retry_policy = retry_policy or RetryPolicy()
        self.preview_chars = preview_chars
        self.verbose = verbose

    def _log(self, message: str):
        if self.verbose:
            print(message, file=sys.stderr)

    def run(self, state: SchemaState, dry_run: bool = False) -> BackfillResult:
        return asyncio.run(self.run_async(state, dry_run=dry_run))

    async def run_async(self, state: SchemaState, dry_run: bool = False) -> BackfillResult:
        result = BackfillResult(phase=state.phase, dry_run=dry_run)

        if state.phase is SchemaPhase.NOT_APPLIED:
            result.skipped_reason = "subject_id column missing; apply the migration first"
            self._log(f"  Backfill skipped: {result.skipped_reason}")
            return result
        if state.phase is SchemaPhase.COMPLETE:
            result.skipped_reason = "every topic-linked question already has a subject_id"
            self._log(f"  Backfill skipped: {result.skipped_reason}")
            return result

        questions = self.store.fetch_questions_without_subject()
        topic_subjects = self.store.fetch_topic_subject_map()
        self._log(f"  Questions without subject_id: {len(questions)}")
        self._log(f"  Topics in lookup: {len(topic_subjects)}")

        valid, orphans = categorize_questions(questions, topic_subjects, self.preview_chars)
        result.examined = len(questions)
        result.valid = len(valid)
        result.orphans = orphans
        self._log(f"  Valid: {len(valid)}  Orphaned: {len(orphans)}")

        if dry_run or not valid:
            return result

        batches = [
            valid[i:i + self.batch_size]
            for i in range(0, len(valid), self.batch_size)
        ]
        result.batches = len(batches)

        for batch in tqdm(batches, desc="  Backfilling", unit="batch", disable=not self.verbose):
            outcomes = await asyncio.gather(
                *(self._write_one(question, target) for question, target in batch)
            )
            for question, target, updated, error in outcomes:
                if error is not None:
                    result.failures.append(WriteFailure(
                        question_id=question.id,
                        topic_id=question.topic_id,
                        target_subject_id=target,
                        message=error,
                    ))
                elif updated:
                    result.updated += 1
                else:
                    result.already_set += 1

        self._log(f"  Updated: {result.updated}  Failed: {result.failed}")
        return result

    async def _write_one(self, question: QuestionRecord, target: str):
        """Returns (question, target, updated, error message or None)."""
        try:
            updated = await asyncio.to_thread(
                self.retry_policy.call,
                self.store.update_subject_id,
                question.id,
                target,
            )
            return question, target, updated, None
        except StorageWriteError as e:
            return question, target, False, str(e)
