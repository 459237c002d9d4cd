"""
Keyword/pattern subject classification for exam questions.

Rule-based and deterministic:
1. Score each subject: keyword substring hits + 2 x regex pattern hits
2. No subject scores above zero -> uncertain (never guessed)
3. Otherwise the highest score wins; ties go to the earliest profile

Profiles are injected, so one classifier serves the backfill audit, the
misassignment corrector and the tests.
"""

import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional, Sequence, Union

from pydantic import BaseModel, Field, field_validator

from .subject_profiles import DEFAULT_SUBJECT_PROFILES


# Pattern hits encode structural cues (inline equations, set phrasing) and count double
PATTERN_WEIGHT = 2


class SubjectProfileConfig(BaseModel):
    """Validated profile definition, as written in a profiles JSON file."""

    slug: str = Field(min_length=1)
    name: Optional[str] = None
    keywords: list[str] = Field(default_factory=list)
    patterns: list[str] = Field(default_factory=list)

    @field_validator("keywords")
    @classmethod
    def _lower_keywords(cls, keywords: list[str]) -> list[str]:
        # dict.fromkeys keeps first occurrence order, drops duplicates and blanks
        return list(dict.fromkeys(k.strip().lower() for k in keywords if k.strip()))

    @field_validator("patterns")
    @classmethod
    def _check_patterns(cls, patterns: list[str]) -> list[str]:
        for pattern in patterns:
            try:
                re.compile(pattern)
            except re.error as e:
                raise ValueError(f"invalid pattern {pattern!r}: {e}") from e
        return list(dict.fromkeys(patterns))


@dataclass(frozen=True)
class SubjectProfile:
    """Keywords and compiled patterns for one subject."""

    slug: str
    keywords: tuple[str, ...] = ()
    patterns: tuple[re.Pattern, ...] = ()
    name: Optional[str] = None

    @classmethod
    def from_config(cls, config: SubjectProfileConfig) -> "SubjectProfile":
        return cls(
            slug=config.slug,
            name=config.name,
            keywords=tuple(config.keywords),
            patterns=tuple(re.compile(p) for p in config.patterns),
        )

    @classmethod
    def build(
        cls,
        slug: str,
        keywords: Iterable[str] = (),
        patterns: Iterable[str] = (),
        name: Optional[str] = None
    ) -> "SubjectProfile":
        return cls.from_config(SubjectProfileConfig(
            slug=slug, name=name, keywords=list(keywords), patterns=list(patterns)
        ))

    def score(self, text: str) -> int:
        keyword_hits = sum(1 for keyword in self.keywords if keyword in text)
        pattern_hits = sum(1 for pattern in self.patterns if pattern.search(text))
        return keyword_hits + PATTERN_WEIGHT * pattern_hits


@dataclass(frozen=True)
class Classification:
    """Result of classifying one text. subject is None when uncertain."""

    subject: Optional[str]
    scores: dict[str, int] = field(default_factory=dict)

    @property
    def uncertain(self) -> bool:
        return self.subject is None

    @property
    def top_score(self) -> int:
        return max(self.scores.values(), default=0)

    def score_for(self, slug: Optional[str]) -> int:
        """Score a subject received; subjects without a profile score 0."""
        if slug is None:
            return 0
        return self.scores.get(slug, 0)


def build_question_text(question_text: Optional[str], options: Iterable[Optional[str]] = ()) -> str:
    """Prompt plus all answer options, lower-cased."""
    parts = [question_text or ""]
    parts.extend(option for option in options if option)
    return " ".join(parts).lower()


class SubjectClassifier:
    """
    Score question text against an ordered list of subject profiles.

    The profile order is the tie-break priority: among subjects sharing the
    top score, the first one supplied wins.
    """

    def __init__(self, profiles: Sequence[SubjectProfile]):
        slugs = [p.slug for p in profiles]
        if len(set(slugs)) != len(slugs):
            raise ValueError(f"duplicate subject slugs in profiles: {slugs}")
        self.profiles = tuple(profiles)

    @property
    def slugs(self) -> list[str]:
        return [p.slug for p in self.profiles]

    def score(self, text: str) -> dict[str, int]:
        text = text.lower()
        return {profile.slug: profile.score(text) for profile in self.profiles}

    def classify(self, text: str) -> Classification:
        scores = self.score(text)
        best = max(scores.values(), default=0)
        if best == 0:
            return Classification(subject=None, scores=scores)
        # dicts keep insertion order, so this is the first profile at the max
        winner = next(slug for slug, value in scores.items() if value == best)
        return Classification(subject=winner, scores=scores)

    def restricted_to(self, slugs: Iterable[str]) -> "SubjectClassifier":
        """Same classifier over a subset of profiles, order preserved."""
        keep = set(slugs)
        return SubjectClassifier([p for p in self.profiles if p.slug in keep])


def load_profiles(source: Union[Path, str, None] = None) -> list[SubjectProfile]:
    """
    Load subject profiles.

    Args:
        source: Path to a JSON file holding either a list of profiles or
            {"subjects": [...]}. None uses the built-in canonical profiles.
    """
    if source is None:
        raw = DEFAULT_SUBJECT_PROFILES
    else:
        raw = json.loads(Path(source).read_text(encoding="utf-8"))
        if isinstance(raw, dict):
            raw = raw.get("subjects", [])
    return [SubjectProfile.from_config(SubjectProfileConfig(**entry)) for entry in raw]


def default_classifier() -> SubjectClassifier:
    return SubjectClassifier(load_profiles())
