"""Question-subject reconciliation: detect, backfill, correct, verify."""

from .models import (
    SchemaPhase, SchemaState, IssueKind, OrphanReason,
    OrphanedQuestion, WriteFailure, UncertainQuestion, Reassignment,
    BackfillResult, CorrectionResult, CheckResult, VerificationReport, RunReport
)
from .schema_state import SchemaStateDetector, classify_phase
from .backfill import BackfillEngine, categorize_questions
from .corrector import MisassignmentCorrector
from .verifier import IntegrityVerifier
from .pipeline import ReconciliationPipeline

__all__ = [
    "SchemaPhase", "SchemaState", "IssueKind", "OrphanReason",
    "OrphanedQuestion", "WriteFailure", "UncertainQuestion", "Reassignment",
    "BackfillResult", "CorrectionResult", "CheckResult", "VerificationReport", "RunReport",
    "SchemaStateDetector", "classify_phase",
    "BackfillEngine", "categorize_questions",
    "MisassignmentCorrector",
    "IntegrityVerifier",
    "ReconciliationPipeline"
]
