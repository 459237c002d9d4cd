"""
Reconciliation pipeline: detect -> (migrate) -> backfill -> correct -> verify.

The detected SchemaState is passed into each stage rather than re-derived.
Every stage is idempotent, so the whole pipeline can be re-run until the
verifier passes.
"""

import asyncio
import sys
from typing import Iterable, Optional

from ..models.store import QuestionStore
from ..processing.subject_classifier import SubjectClassifier
from ..utils.retry import RetryPolicy
from .backfill import BackfillEngine, DEFAULT_BATCH_SIZE
from .corrector import MisassignmentCorrector
from .models import RunReport, SchemaPhase
from .schema_state import SchemaStateDetector
from .verifier import IntegrityVerifier


BACKFILL = "backfill"
CORRECT = "correct"
ALL_STAGES = (BACKFILL, CORRECT)


class ReconciliationPipeline:
    """Run the reconciliation stages in order and collect one RunReport."""

    def __init__(
        self,
        store: QuestionStore,
        classifier: SubjectClassifier,
        batch_size: int = DEFAULT_BATCH_SIZE,
        min_margin: int = 1,
        retry_policy: Optional[RetryPolicy] = None,
        preview_chars: int = 100,
        verbose: bool = True
    ):
        self.store = store
        self.verbose = verbose
        self.detector = SchemaStateDetector(store)
        self.backfill = BackfillEngine(
            store,
            batch_size=batch_size,
            retry_policy=retry_policy,
            preview_chars=preview_chars,
            verbose=verbose,
        )
        self.corrector = MisassignmentCorrector(
            store,
            classifier,
            min_margin=min_margin,
            retry_policy=retry_policy,
            preview_chars=preview_chars,
            verbose=verbose,
        )
        self.verifier = IntegrityVerifier(store)

    @classmethod
    def from_settings(cls, store: QuestionStore, classifier: SubjectClassifier, settings, verbose: bool = True):
        return cls(
            store,
            classifier,
            batch_size=settings.batch_size,
            min_margin=settings.min_reassign_margin,
            retry_policy=RetryPolicy.from_settings(settings),
            preview_chars=settings.preview_chars,
            verbose=verbose,
        )

    def _log(self, message: str):
        if self.verbose:
            print(message, file=sys.stderr)

    def run(self, **kwargs) -> RunReport:
        return asyncio.run(self.run_async(**kwargs))

    async def run_async(
        self,
        stages: Iterable[str] = ALL_STAGES,
        apply_migration: bool = False,
        dry_run: bool = False,
        exam_year: Optional[int] = None,
        current_subject: Optional[str] = None,
        active_only: bool = False
    ) -> RunReport:
        stages = set(stages)
        unknown = stages - set(ALL_STAGES)
        if unknown:
            raise ValueError(f"unknown stages: {sorted(unknown)}")

        self._log("\n[Phase 1] Detecting schema state...")
        state = self.detector.detect()
        self._log(f"  State: {state.phase.value}")
        report = RunReport(initial_state=state, dry_run=dry_run)

        if state.phase is SchemaPhase.NOT_APPLIED and apply_migration and not dry_run:
            self._log("  Adding subject_id column...")
            report.migration_applied = self.store.apply_subject_column()
            state = self.detector.detect()
            self._log(f"  State after migration: {state.phase.value}")

        if BACKFILL in stages:
            self._log("\n[Phase 2] Backfilling subject_id from topics...")
            report.backfill = await self.backfill.run_async(state, dry_run=dry_run)

        if CORRECT in stages:
            self._log("\n[Phase 3] Correcting misassigned questions...")
            report.correction = self.corrector.run(
                state,
                exam_year=exam_year,
                current_subject=current_subject,
                active_only=active_only,
                dry_run=dry_run,
            )

        self._log("\n[Phase 4] Verifying integrity...")
        report.verification = self.verifier.verify()
        report.final_state = self.detector.detect()
        return report
