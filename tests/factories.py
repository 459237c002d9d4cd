"""Seed data and raw-SQL helpers shared by the reconciliation tests."""

from sqlalchemy import text

from qbank.models.database import Database, Question, Subject, SubjectCorrection, Topic


MATH = "subj-math"
ENGLISH = "subj-eng"
LITERATURE = "subj-lit"

PHYSICS = "subj-phy"
ECONOMICS = "subj-eco"

ALGEBRA = "topic-alg"
GRAMMAR = "topic-gram"
NOVELS = "topic-novel"
MECHANICS = "topic-mech"
MARKETS = "topic-markets"

SUBJECTS = [
    (MATH, "Mathematics", "mathematics"),
    (ENGLISH, "English Language", "english-language"),
    (LITERATURE, "Literature in English", "literature-in-english"),
]

TOPICS = [
    (ALGEBRA, MATH, "Algebra"),
    (GRAMMAR, ENGLISH, "Grammar"),
    (NOVELS, LITERATURE, "Novels"),
]

# Texts the built-in profiles classify unambiguously
MATH_TEXT = "Solve the equation 2x + 3 = 7"
ENGLISH_TEXT = "Choose the correct verb to complete the sentence"
LITERATURE_TEXT = "In the novel, who is the protagonist?"
NO_CUE_TEXT = "Who won the 1966 World Cup?"
# Subjects the built-in profiles do not cover, with stray mathematics cues
PHYSICS_TEXT = "Calculate the velocity of a body moving at 2.5 m/s"
ECONOMICS_TEXT = "Which of these is a feature of a sole proprietorship business?"

# Questions as they exist before the subject_id migration
LEGACY_SCHEMA = [
    """CREATE TABLE subjects (
        id VARCHAR PRIMARY KEY,
        name VARCHAR NOT NULL,
        slug VARCHAR NOT NULL UNIQUE,
        category VARCHAR,
        is_active BOOLEAN NOT NULL DEFAULT 1
    )""",
    """CREATE TABLE topics (
        id VARCHAR PRIMARY KEY,
        subject_id VARCHAR NOT NULL REFERENCES subjects(id),
        name VARCHAR NOT NULL
    )""",
    """CREATE TABLE questions (
        id VARCHAR PRIMARY KEY,
        question_text TEXT NOT NULL,
        option_a TEXT,
        option_b TEXT,
        option_c TEXT,
        option_d TEXT,
        correct_answer VARCHAR(1) NOT NULL DEFAULT 'A',
        exam_year INTEGER,
        exam_type VARCHAR,
        topic_id VARCHAR,
        is_active BOOLEAN NOT NULL DEFAULT 1
    )""",
]


def seed_subjects(db: Database):
    with db.get_session() as session:
        session.add_all([
            Subject(id=sid, name=name, slug=slug) for sid, name, slug in SUBJECTS
        ])
        session.add_all([
            Topic(id=tid, subject_id=sid, name=name) for tid, sid, name in TOPICS
        ])


def add_subject(db: Database, subject_id: str, name: str, slug: str, topic_id=None):
    with db.get_session() as session:
        session.add(Subject(id=subject_id, name=name, slug=slug))
        if topic_id is not None:
            session.add(Topic(id=topic_id, subject_id=subject_id, name=name))


def add_question(
    db: Database,
    question_id: str,
    question_text: str,
    topic_id=None,
    subject_id=None,
    exam_year=2022,
    is_active=True,
    options=()
):
    padded = list(options) + [None] * (4 - len(options))
    with db.get_session() as session:
        session.add(Question(
            id=question_id,
            question_text=question_text,
            option_a=padded[0],
            option_b=padded[1],
            option_c=padded[2],
            option_d=padded[3],
            exam_year=exam_year,
            exam_type="UTME",
            topic_id=topic_id,
            subject_id=subject_id,
            is_active=is_active,
        ))


def add_correction(db: Database, question_id, from_subject_id, to_subject_id, from_score=0, to_score=0):
    with db.get_session() as session:
        session.add(SubjectCorrection(
            question_id=question_id,
            from_subject_id=from_subject_id,
            to_subject_id=to_subject_id,
            from_score=from_score,
            to_score=to_score,
        ))


def set_subject(db: Database, question_id: str, subject_id):
    with db.get_session() as session:
        session.get(Question, question_id).subject_id = subject_id


def subject_of(db: Database, question_id: str):
    with db.get_session() as session:
        return session.get(Question, question_id).subject_id


def correction_count(db: Database) -> int:
    with db.get_session() as session:
        return session.query(SubjectCorrection).count()


def create_legacy_schema(db: Database):
    with db.engine.begin() as conn:
        for statement in LEGACY_SCHEMA:
            conn.execute(text(statement))
        for sid, name, slug in SUBJECTS:
            conn.execute(
                text("INSERT INTO subjects (id, name, slug) VALUES (:id, :name, :slug)"),
                {"id": sid, "name": name, "slug": slug},
            )
        for tid, sid, name in TOPICS:
            conn.execute(
                text("INSERT INTO topics (id, subject_id, name) VALUES (:id, :sid, :name)"),
                {"id": tid, "sid": sid, "name": name},
            )


def add_legacy_question(db: Database, question_id: str, question_text: str, topic_id=None):
    with db.engine.begin() as conn:
        conn.execute(
            text(
                "INSERT INTO questions (id, question_text, exam_year, topic_id) "
                "VALUES (:id, :text, 2022, :topic)"
            ),
            {"id": question_id, "text": question_text, "topic": topic_id},
        )
