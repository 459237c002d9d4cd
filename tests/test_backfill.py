"""Tests for reconcile/backfill.py: topic-derived subject_id backfill."""

import pytest

from qbank.models.database import Database
from qbank.models.store import QuestionRecord, QuestionStore, StorageWriteError
from qbank.reconcile.backfill import BackfillEngine, categorize_questions
from qbank.reconcile.models import OrphanReason, SchemaPhase, SchemaState
from qbank.utils.retry import RetryPolicy

from factories import (
    ALGEBRA, ENGLISH, GRAMMAR, LITERATURE, MATH, NO_CUE_TEXT, NOVELS,
    add_question, seed_subjects, set_subject, subject_of
)


NO_WAIT = dict(wait_min=0, wait_max=0)


class FailingStore(QuestionStore):
    """Fails the first `failures` writes for the given question ids."""

    def __init__(self, database, fail_ids, failures=None):
        super().__init__(database)
        self.fail_ids = set(fail_ids)
        self.remaining = {qid: failures for qid in fail_ids}
        self.attempts = {}

    def update_subject_id(self, question_id, subject_id):
        self.attempts[question_id] = self.attempts.get(question_id, 0) + 1
        if question_id in self.fail_ids:
            left = self.remaining[question_id]
            if left is None or left > 0:
                if left is not None:
                    self.remaining[question_id] = left - 1
                raise StorageWriteError(f"simulated failure for {question_id}")
        return super().update_subject_id(question_id, subject_id)


class RacingStore(QuestionStore):
    """Another writer fills one row between the snapshot and the write."""

    def __init__(self, database, raced_id):
        super().__init__(database)
        self.raced_id = raced_id

    def fetch_questions_without_subject(self):
        snapshot = super().fetch_questions_without_subject()
        set_subject(self.db, self.raced_id, LITERATURE)
        return snapshot


def engine_for(store, **kwargs):
    kwargs.setdefault("verbose", False)
    return BackfillEngine(store, **kwargs)


class TestCategorizeQuestions:
    def test_splits_valid_and_orphans(self):
        questions = [
            QuestionRecord(id="a", question_text="x", topic_id=ALGEBRA),
            QuestionRecord(id="b", question_text="y"),
            QuestionRecord(id="c", question_text="z", topic_id="topic-gone"),
        ]
        valid, orphans = categorize_questions(questions, {ALGEBRA: MATH})

        assert [(q.id, target) for q, target in valid] == [("a", MATH)]
        assert [(o.question_id, o.reason) for o in orphans] == [
            ("b", OrphanReason.NO_TOPIC),
            ("c", OrphanReason.DANGLING_TOPIC),
        ]

    def test_preview_truncated(self):
        question = QuestionRecord(id="a", question_text="w" * 300)
        _, orphans = categorize_questions([question], {}, preview_chars=40)
        assert orphans[0].preview == "w" * 40


class TestBackfillEngine:
    def test_fills_from_topics(self, seeded_db, seeded_store, detect):
        result = engine_for(seeded_store).run(detect(seeded_store))

        assert result.updated == 3
        assert result.clean
        assert subject_of(seeded_db, "q-math") == MATH
        assert subject_of(seeded_db, "q-eng") == ENGLISH
        assert subject_of(seeded_db, "q-lit") == LITERATURE
        assert detect(seeded_store).phase is SchemaPhase.COMPLETE

    def test_idempotent(self, seeded_db, seeded_store, detect):
        engine = engine_for(seeded_store)
        engine.run(detect(seeded_store))

        # Second pass against the same stale state finds nothing to write
        again = engine.run(SchemaState(phase=SchemaPhase.PARTIAL_BACKFILL))
        assert again.examined == 0
        assert again.updated == 0

        # ...and against a fresh detection it is skipped outright
        skipped = engine.run(detect(seeded_store))
        assert skipped.skipped_reason
        assert subject_of(seeded_db, "q-math") == MATH

    def test_never_overwrites_existing_subject(self, seeded_db, seeded_store, detect):
        set_subject(seeded_db, "q-math", ENGLISH)
        result = engine_for(seeded_store).run(detect(seeded_store))

        assert result.examined == 2
        assert subject_of(seeded_db, "q-math") == ENGLISH

    def test_orphans_reported_not_fixed(self, seeded_db, seeded_store, detect):
        add_question(seeded_db, "q-none", NO_CUE_TEXT)
        add_question(seeded_db, "q-dangling", NO_CUE_TEXT, topic_id="topic-gone")

        result = engine_for(seeded_store).run(detect(seeded_store))

        assert result.updated == 3
        assert result.orphaned_no_topic == 1
        assert result.orphaned_dangling == 1
        assert not result.clean
        assert subject_of(seeded_db, "q-none") is None
        assert subject_of(seeded_db, "q-dangling") is None
        assert {o.question_id for o in result.orphans} == {"q-none", "q-dangling"}

    def test_dry_run_writes_nothing(self, seeded_db, seeded_store, detect):
        result = engine_for(seeded_store).run(detect(seeded_store), dry_run=True)

        assert result.dry_run
        assert result.valid == 3
        assert result.updated == 0
        assert subject_of(seeded_db, "q-math") is None

    def test_skipped_without_column(self, legacy_store, detect):
        result = engine_for(legacy_store).run(detect(legacy_store))
        assert result.phase is SchemaPhase.NOT_APPLIED
        assert result.skipped_reason
        assert result.examined == 0

    def test_batches(self, db, store, detect):
        for i in range(7):
            add_question(db, f"q-{i}", NO_CUE_TEXT, topic_id=GRAMMAR)

        result = engine_for(store, batch_size=3).run(detect(store))

        assert result.batches == 3
        assert result.updated == 7

    def test_invalid_batch_size(self, store):
        with pytest.raises(ValueError):
            BackfillEngine(store, batch_size=0)

    def test_concurrent_fill_counted_as_already_set(self, seeded_db, detect):
        store = RacingStore(seeded_db, "q-lit")
        result = engine_for(store).run(detect(store))

        assert result.updated == 2
        assert result.already_set == 1
        assert subject_of(seeded_db, "q-lit") == LITERATURE


class TestWriteFailures:
    def test_failure_isolated_to_row(self, seeded_db, detect):
        store = FailingStore(seeded_db, ["q-eng"])
        result = engine_for(store, batch_size=2).run(detect(store))

        assert result.updated == 2
        assert result.failed == 1
        failure = result.failures[0]
        assert failure.question_id == "q-eng"
        assert failure.topic_id == GRAMMAR
        assert failure.target_subject_id == ENGLISH
        assert "simulated failure" in failure.message
        assert subject_of(seeded_db, "q-eng") is None
        assert subject_of(seeded_db, "q-lit") == LITERATURE

    def test_rerun_picks_up_failed_row(self, seeded_db, seeded_store, detect):
        failing = FailingStore(seeded_db, ["q-eng"])
        engine_for(failing).run(detect(failing))

        result = engine_for(seeded_store).run(detect(seeded_store))
        assert result.examined == 1
        assert result.updated == 1
        assert subject_of(seeded_db, "q-eng") == ENGLISH

    def test_no_retry_by_default(self, seeded_db, detect):
        store = FailingStore(seeded_db, ["q-eng"], failures=1)
        result = engine_for(store).run(detect(store))

        assert store.attempts["q-eng"] == 1
        assert result.failed == 1

    def test_retry_policy_recovers(self, seeded_db, detect):
        store = FailingStore(seeded_db, ["q-eng"], failures=2)
        engine = engine_for(store, retry_policy=RetryPolicy(max_retries=2, **NO_WAIT))
        result = engine.run(detect(store))

        assert store.attempts["q-eng"] == 3
        assert result.failed == 0
        assert result.updated == 3

    def test_retries_exhausted(self, seeded_db, detect):
        store = FailingStore(seeded_db, ["q-math"])
        engine = engine_for(store, retry_policy=RetryPolicy(max_retries=1, **NO_WAIT))
        result = engine.run(detect(store))

        assert store.attempts["q-math"] == 2
        assert [f.question_id for f in result.failures] == ["q-math"]
        assert subject_of(seeded_db, "q-math") is None


class TestInMemoryDatabase:
    def test_concurrent_writes_share_one_connection(self, detect):
        database = Database("sqlite://")
        database.create_tables()
        seed_subjects(database)
        for i in range(300):
            add_question(database, f"q-{i:03d}", NO_CUE_TEXT, topic_id=GRAMMAR)
        store = QuestionStore(database)

        try:
            result = engine_for(store, batch_size=50).run(detect(store))

            assert result.updated == 300
            assert result.failures == []
            assert detect(store).phase is SchemaPhase.COMPLETE
            assert subject_of(database, "q-299") == ENGLISH
        finally:
            database.dispose()
