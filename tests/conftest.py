import pytest

from qbank.models.database import Database
from qbank.models.store import QuestionStore
from qbank.reconcile.schema_state import SchemaStateDetector

from factories import (
    ALGEBRA, ENGLISH_TEXT, GRAMMAR, LITERATURE_TEXT, MATH_TEXT, NOVELS,
    add_legacy_question, add_question, create_legacy_schema, seed_subjects
)


@pytest.fixture
def database_url(tmp_path):
    # File database: backfill writes from worker threads
    return f"sqlite:///{tmp_path / 'questions.db'}"


@pytest.fixture
def db(database_url):
    """Migrated schema with the three subjects and their topics, no questions."""
    database = Database(database_url)
    database.create_tables()
    seed_subjects(database)
    yield database
    database.dispose()


@pytest.fixture
def store(db):
    return QuestionStore(db)


@pytest.fixture
def seeded_db(db):
    """One topic-linked question per subject, none backfilled yet."""
    add_question(db, "q-math", MATH_TEXT, topic_id=ALGEBRA)
    add_question(db, "q-eng", ENGLISH_TEXT, topic_id=GRAMMAR)
    add_question(db, "q-lit", LITERATURE_TEXT, topic_id=NOVELS)
    return db


@pytest.fixture
def seeded_store(seeded_db):
    return QuestionStore(seeded_db)


@pytest.fixture
def legacy_db(database_url):
    """Pre-migration schema: questions have topic_id but no subject_id column."""
    database = Database(database_url)
    create_legacy_schema(database)
    add_legacy_question(database, "q-math", MATH_TEXT, topic_id=ALGEBRA)
    add_legacy_question(database, "q-eng", ENGLISH_TEXT, topic_id=GRAMMAR)
    yield database
    database.dispose()


@pytest.fixture
def legacy_store(legacy_db):
    return QuestionStore(legacy_db)


@pytest.fixture
def detect():
    def _detect(store):
        return SchemaStateDetector(store).detect()
    return _detect
