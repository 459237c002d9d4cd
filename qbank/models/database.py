"""
SQLAlchemy ORM models for the question bank.
Questions carry both the legacy topic_id and the denormalized subject_id.
"""

import threading
import uuid
from datetime import datetime
from typing import Optional
from contextlib import contextmanager, nullcontext
from sqlalchemy import (
    create_engine, ForeignKey, Text, Index
)
from sqlalchemy.orm import (
    DeclarativeBase, Mapped, mapped_column,
    relationship, sessionmaker
)
from sqlalchemy.pool import StaticPool
from enum import Enum


def new_id() -> str:
    return str(uuid.uuid4())


class AnswerKey(str, Enum):
    A = "A"
    B = "B"
    C = "C"
    D = "D"


class Base(DeclarativeBase):
    """Base class for all ORM models."""
    pass


class Subject(Base):
    """A subject such as Mathematics; referenced by topics and questions."""
    __tablename__ = "subjects"

    id: Mapped[str] = mapped_column(primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(nullable=False)
    slug: Mapped[str] = mapped_column(unique=True, nullable=False)
    category: Mapped[Optional[str]]
    is_active: Mapped[bool] = mapped_column(default=True)

    topics: Mapped[list["Topic"]] = relationship(back_populates="subject")

    def __repr__(self) -> str:
        return f"Subject(slug={self.slug!r})"


class Topic(Base):
    """Legacy finer-grained classification unit."""
    __tablename__ = "topics"

    id: Mapped[str] = mapped_column(primary_key=True, default=new_id)
    subject_id: Mapped[str] = mapped_column(
        ForeignKey("subjects.id"),
        index=True
    )
    name: Mapped[str] = mapped_column(nullable=False)

    subject: Mapped["Subject"] = relationship(back_populates="topics")

    def __repr__(self) -> str:
        return f"Topic(id={self.id!r}, name={self.name!r})"


class Question(Base):
    """
    Exam question.

    topic_id is the legacy reference written by import scripts; subject_id is
    the current reference, filled by backfill and moved by correction.
    topic_id is not a ForeignKey on purpose: dangling references exist in the
    live data and must stay visible to the reconciliation pass.
    """
    __tablename__ = "questions"

    id: Mapped[str] = mapped_column(primary_key=True, default=new_id)
    question_text: Mapped[str] = mapped_column(Text, nullable=False)
    option_a: Mapped[Optional[str]] = mapped_column(Text)
    option_b: Mapped[Optional[str]] = mapped_column(Text)
    option_c: Mapped[Optional[str]] = mapped_column(Text)
    option_d: Mapped[Optional[str]] = mapped_column(Text)
    correct_answer: Mapped[AnswerKey] = mapped_column(default=AnswerKey.A)
    exam_year: Mapped[Optional[int]]
    exam_type: Mapped[Optional[str]]

    topic_id: Mapped[Optional[str]] = mapped_column(index=True)
    subject_id: Mapped[Optional[str]] = mapped_column(ForeignKey("subjects.id"))

    is_active: Mapped[bool] = mapped_column(default=True)

    __table_args__ = (
        Index("idx_questions_subject_id", "subject_id"),
    )

    def __repr__(self) -> str:
        return f"Question(id={self.id!r}, subject_id={self.subject_id!r})"

    @property
    def options(self) -> list[Optional[str]]:
        return [self.option_a, self.option_b, self.option_c, self.option_d]


class SubjectCorrection(Base):
    """Audit row for a deliberate content-based subject override."""
    __tablename__ = "subject_corrections"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    question_id: Mapped[str] = mapped_column(index=True)
    from_subject_id: Mapped[Optional[str]]
    to_subject_id: Mapped[str]
    from_score: Mapped[int] = mapped_column(default=0)
    to_score: Mapped[int] = mapped_column(default=0)
    corrected_at: Mapped[datetime] = mapped_column(default=datetime.utcnow)

    def __repr__(self) -> str:
        return (
            f"SubjectCorrection(question={self.question_id!r}, "
            f"{self.from_subject_id!r} -> {self.to_subject_id!r})"
        )


class Database:
    """Database connection manager."""

    def __init__(self, db_url: str = "sqlite:///data/questions.db"):
        kwargs = {}
        # Sessions on a shared in-memory connection must not overlap across threads
        self._session_lock = None
        if db_url.startswith("sqlite"):
            if db_url in ("sqlite://", "sqlite:///:memory:"):
                # One shared connection, otherwise every thread sees its own empty database
                kwargs["poolclass"] = StaticPool
                kwargs["connect_args"] = {"check_same_thread": False}
                self._session_lock = threading.RLock()
            else:
                kwargs["connect_args"] = {"check_same_thread": False, "timeout": 30}
        self.engine = create_engine(db_url, echo=False, **kwargs)
        self.SessionLocal = sessionmaker(bind=self.engine)

    def create_tables(self):
        """Create all tables."""
        Base.metadata.create_all(self.engine)

    def dispose(self):
        self.engine.dispose()

    @contextmanager
    def get_session(self):
        """Get a database session with context manager support."""
        with self._session_lock or nullcontext():
            session = self.SessionLocal()
            try:
                yield session
                session.commit()
            except Exception:
                session.rollback()
                raise
            finally:
                session.close()

