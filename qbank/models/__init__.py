"""Database models and the query API."""

from .database import (
    Database,
    Base,
    Subject,
    Topic,
    Question,
    SubjectCorrection,
    AnswerKey
)
from .store import (
    QuestionStore,
    QuestionRecord,
    SubjectRecord,
    CorrectionRecord,
    LinkedQuestion,
    StorageError,
    UnknownColumnError,
    StorageWriteError
)

__all__ = [
    "Database",
    "Base",
    "Subject",
    "Topic",
    "Question",
    "SubjectCorrection",
    "AnswerKey",
    "QuestionStore",
    "QuestionRecord",
    "SubjectRecord",
    "CorrectionRecord",
    "LinkedQuestion",
    "StorageError",
    "UnknownColumnError",
    "StorageWriteError"
]
