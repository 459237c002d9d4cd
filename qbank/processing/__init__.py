"""Question text classification."""

from .subject_classifier import (
    SubjectClassifier,
    SubjectProfile,
    SubjectProfileConfig,
    Classification,
    build_question_text,
    load_profiles,
    default_classifier
)

__all__ = [
    "SubjectClassifier", "SubjectProfile", "SubjectProfileConfig",
    "Classification",
    "build_question_text",
    "load_profiles", "default_classifier"
]
