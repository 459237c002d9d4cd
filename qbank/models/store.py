"""
Query API over the question bank.

All reconciliation stages talk to storage through QuestionStore. Reads return
frozen snapshot records, never live ORM objects, so stages can fan writes out
to worker threads without sharing sessions.

SQLAlchemy errors are translated at this seam:
- UnknownColumnError: a queried column does not exist (schema not migrated)
- StorageWriteError: an update failed; callers isolate it to the row/batch
Read failures are not translated and abort the run.
"""

from dataclasses import dataclass
from typing import Iterable, Optional

from sqlalchemy import func, inspect, select, text, update
from sqlalchemy.exc import DBAPIError, SQLAlchemyError

from .database import Base, Database, Question, Subject, SubjectCorrection, Topic


# PostgreSQL SQLSTATE for undefined_column
UNDEFINED_COLUMN_SQLSTATE = "42703"


class StorageError(Exception):
    """Base class for storage failures raised by QuestionStore."""


class UnknownColumnError(StorageError):
    """A query referenced a column the live schema does not have."""

    def __init__(self, table: str, column: str, message: str = ""):
        self.table = table
        self.column = column
        super().__init__(message or f'column "{column}" does not exist on "{table}"')


class StorageWriteError(StorageError):
    """An individual update failed (constraint violation, transient error)."""


@dataclass(frozen=True)
class SubjectRecord:
    id: str
    name: str
    slug: str
    category: Optional[str] = None


@dataclass(frozen=True)
class QuestionRecord:
    id: str
    question_text: str
    options: tuple[Optional[str], ...] = ()
    topic_id: Optional[str] = None
    subject_id: Optional[str] = None
    exam_year: Optional[int] = None
    exam_type: Optional[str] = None
    is_active: bool = True

    def preview(self, length: int = 100) -> str:
        return (self.question_text or "")[:length]


@dataclass(frozen=True)
class CorrectionRecord:
    question_id: str
    from_subject_id: Optional[str]
    to_subject_id: str
    from_score: int = 0
    to_score: int = 0


@dataclass(frozen=True)
class LinkedQuestion:
    """A question with a topic_id, joined (outer) to its topic."""
    id: str
    subject_id: Optional[str]
    topic_id: str
    topic_exists: bool
    topic_subject_id: Optional[str]


def is_unknown_column_error(exc: BaseException) -> bool:
    """Recognize "unknown column" across SQLite and PostgreSQL drivers."""
    orig = getattr(exc, "orig", exc)
    if getattr(orig, "pgcode", None) == UNDEFINED_COLUMN_SQLSTATE:
        return True
    message = str(orig).lower()
    if "no such column" in message:
        return True
    return "column" in message and "does not exist" in message


def _to_record(question: Question) -> QuestionRecord:
    return QuestionRecord(
        id=question.id,
        question_text=question.question_text or "",
        options=tuple(question.options),
        topic_id=question.topic_id,
        subject_id=question.subject_id,
        exam_year=question.exam_year,
        exam_type=question.exam_type,
        is_active=bool(question.is_active),
    )


class QuestionStore:
    """Relational store for subjects, topics and questions."""

    def __init__(self, database: Database):
        self.db = database

    # === Schema introspection ===

    def check_column(self, table: str = "questions", column: str = "subject_id") -> None:
        """Raise UnknownColumnError if table.column cannot be selected."""
        try:
            with self.db.get_session() as session:
                session.execute(text(f"SELECT {column} FROM {table} LIMIT 1"))
        except DBAPIError as e:
            if is_unknown_column_error(e):
                raise UnknownColumnError(table, column, str(e.orig)) from e
            raise

    def has_table(self, table: str) -> bool:
        return inspect(self.db.engine).has_table(table)

    def ensure_corrections_table(self):
        Base.metadata.create_all(self.db.engine, tables=[SubjectCorrection.__table__])

    def has_column(self, table: str, column: str) -> bool:
        columns = inspect(self.db.engine).get_columns(table)
        return any(c["name"] == column for c in columns)

    def apply_subject_column(self) -> bool:
        """
        Add questions.subject_id, its index and the corrections table.

        Idempotent. Returns True if the column had to be added.
        """
        added = False
        with self.db.engine.begin() as conn:
            if not self.has_column("questions", "subject_id"):
                conn.execute(text(
                    "ALTER TABLE questions ADD COLUMN subject_id VARCHAR "
                    "REFERENCES subjects(id)"
                ))
                added = True
            conn.execute(text(
                "CREATE INDEX IF NOT EXISTS idx_questions_subject_id "
                "ON questions (subject_id)"
            ))
        self.ensure_corrections_table()
        return added

    # === Reads ===

    def count_questions(self) -> dict[str, int]:
        """Counts the schema state detector classifies on."""
        with self.db.get_session() as session:
            def count(*criteria) -> int:
                stmt = select(func.count(Question.id))
                for criterion in criteria:
                    stmt = stmt.where(criterion)
                return session.execute(stmt).scalar_one()

            return {
                "total": count(),
                "with_subject": count(Question.subject_id.is_not(None)),
                "with_topic": count(Question.topic_id.is_not(None)),
                "topic_with_subject": count(
                    Question.topic_id.is_not(None), Question.subject_id.is_not(None)
                ),
                "topic_without_subject": count(
                    Question.topic_id.is_not(None), Question.subject_id.is_(None)
                ),
                "both_null": count(
                    Question.topic_id.is_(None), Question.subject_id.is_(None)
                ),
            }

    def fetch_questions_without_subject(self) -> list[QuestionRecord]:
        with self.db.get_session() as session:
            rows = session.scalars(
                select(Question)
                .where(Question.subject_id.is_(None))
                .order_by(Question.id)
            ).all()
            return [_to_record(q) for q in rows]

    def fetch_assigned_questions(
        self,
        exam_year: Optional[int] = None,
        subject_ids: Optional[Iterable[str]] = None,
        active_only: bool = False
    ) -> list[QuestionRecord]:
        """Questions that already carry a subject_id, optionally filtered."""
        stmt = select(Question).where(Question.subject_id.is_not(None))
        if exam_year is not None:
            stmt = stmt.where(Question.exam_year == exam_year)
        if subject_ids is not None:
            stmt = stmt.where(Question.subject_id.in_(list(subject_ids)))
        if active_only:
            stmt = stmt.where(Question.is_active.is_(True))
        with self.db.get_session() as session:
            rows = session.scalars(stmt.order_by(Question.id)).all()
            return [_to_record(q) for q in rows]

    def fetch_topic_subject_map(self) -> dict[str, str]:
        """Topic id -> subject id for every topic."""
        with self.db.get_session() as session:
            rows = session.execute(select(Topic.id, Topic.subject_id)).all()
            return {topic_id: subject_id for topic_id, subject_id in rows}

    def fetch_subjects_by_slug(
        self,
        slugs: Optional[Iterable[str]] = None
    ) -> dict[str, SubjectRecord]:
        stmt = select(Subject)
        if slugs is not None:
            stmt = stmt.where(Subject.slug.in_(list(slugs)))
        with self.db.get_session() as session:
            return {
                s.slug: SubjectRecord(id=s.id, name=s.name, slug=s.slug, category=s.category)
                for s in session.scalars(stmt).all()
            }

    def fetch_corrections(
        self,
        question_ids: Optional[Iterable[str]] = None
    ) -> dict[str, list[CorrectionRecord]]:
        """Correction history per question, oldest first."""
        if not self.has_table(SubjectCorrection.__tablename__):
            return {}
        stmt = select(SubjectCorrection).order_by(SubjectCorrection.id)
        if question_ids is not None:
            stmt = stmt.where(SubjectCorrection.question_id.in_(list(question_ids)))
        history: dict[str, list[CorrectionRecord]] = {}
        with self.db.get_session() as session:
            for row in session.scalars(stmt).all():
                history.setdefault(row.question_id, []).append(CorrectionRecord(
                    question_id=row.question_id,
                    from_subject_id=row.from_subject_id,
                    to_subject_id=row.to_subject_id,
                    from_score=row.from_score,
                    to_score=row.to_score,
                ))
        return history

    def fetch_linked_questions(self) -> list[LinkedQuestion]:
        """Every question with a topic_id, outer-joined to topics."""
        stmt = (
            select(Question.id, Question.subject_id, Question.topic_id, Topic.id, Topic.subject_id)
            .select_from(Question)
            .outerjoin(Topic, Topic.id == Question.topic_id)
            .where(Question.topic_id.is_not(None))
            .order_by(Question.id)
        )
        with self.db.get_session() as session:
            return [
                LinkedQuestion(
                    id=qid,
                    subject_id=subject_id,
                    topic_id=topic_id,
                    topic_exists=joined_topic_id is not None,
                    topic_subject_id=topic_subject_id,
                )
                for qid, subject_id, topic_id, joined_topic_id, topic_subject_id
                in session.execute(stmt).all()
            ]

    # === Writes ===

    def update_subject_id(self, question_id: str, subject_id: str) -> bool:
        """
        Set subject_id on one question if it is still NULL.

        Returns False when a concurrent writer already filled it.
        """
        try:
            with self.db.get_session() as session:
                result = session.execute(
                    update(Question)
                    .where(Question.id == question_id, Question.subject_id.is_(None))
                    .values(subject_id=subject_id)
                )
                return result.rowcount == 1
        except SQLAlchemyError as e:
            raise StorageWriteError(f"update of question {question_id} failed: {e}") from e

    def reassign_subject(
        self,
        question_ids: list[str],
        subject_id: str,
        corrections: list[CorrectionRecord]
    ) -> int:
        """Move questions to one subject and record why, in one transaction."""
        if not question_ids:
            return 0
        self.ensure_corrections_table()
        try:
            with self.db.get_session() as session:
                result = session.execute(
                    update(Question)
                    .where(Question.id.in_(question_ids))
                    .values(subject_id=subject_id)
                )
                session.add_all([
                    SubjectCorrection(
                        question_id=c.question_id,
                        from_subject_id=c.from_subject_id,
                        to_subject_id=c.to_subject_id,
                        from_score=c.from_score,
                        to_score=c.to_score,
                    )
                    for c in corrections
                ])
                return result.rowcount
        except SQLAlchemyError as e:
            raise StorageWriteError(
                f"bulk reassignment of {len(question_ids)} questions to {subject_id} failed: {e}"
            ) from e
