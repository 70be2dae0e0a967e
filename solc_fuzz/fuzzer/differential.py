"""Differential classification of per-backend results.

For one variant, each configured backend contributes a compile outcome
and at most one run outcome. The classifier turns them into divergence
records:

  1. every backend failed to compile      → nothing (invalid variant)
  2. a backend failed while another built → ``compile-mismatch``
  3. compiled, but no bytecode/selector   → ``missing-execution`` (``no-op``)
  4. VM process failed for a backend      → ``execution-error``
  5. all run outcomes identical           → no ``output-mismatch``
  6. otherwise, against the first backend (configured order) whose status
     is ``success``, every other run that differs in output, storage or
     logs                                  → ``output-mismatch``

Records are only produced when some other backend got further than the
one being reported; identical failures everywhere are not divergences.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from solc_fuzz.core.types import (
    CallPlan,
    CompileOutcome,
    DivergenceCategory,
    DivergenceRecord,
    RunOutcome,
    RunStatus,
)

logger = logging.getLogger(__name__)


@dataclass
class BackendResult:
    """Everything one backend produced for one variant."""

    compile: CompileOutcome
    run: RunOutcome | None = None
    missing_execution: bool = False
    execution_error: str | None = None

    @property
    def version(self) -> str:
        return self.compile.backend.version

    @property
    def run_status(self) -> str | None:
        """Status that takes part in the comparison, if any."""
        if self.run is not None:
            return self.run.status
        if self.missing_execution:
            return RunStatus.NO_OP.value
        return None


class DivergenceClassifier:
    """Stateless classifier; one ``classify`` call per iteration."""

    def classify(
        self,
        results: list[BackendResult],
        variant_file: str,
        plan: CallPlan | None = None,
    ) -> list[DivergenceRecord]:
        if not any(r.compile.success for r in results):
            logger.debug("All backends failed to compile %s; skipping", variant_file)
            return []

        records: list[DivergenceRecord] = []

        for r in results:
            if not r.compile.success:
                records.append(DivergenceRecord(
                    category=DivergenceCategory.COMPILE_MISMATCH,
                    file=variant_file,
                    version=r.version,
                    error=r.compile.error,
                ))

        if plan is None:
            return records

        executed = [r for r in results if r.run is not None]
        if not executed:
            return records

        for r in results:
            if r.missing_execution:
                records.append(self._fuzzing_record(
                    DivergenceCategory.MISSING_EXECUTION, r, variant_file, plan,
                    run=RunOutcome.no_op(),
                ))
            elif r.execution_error is not None:
                records.append(self._fuzzing_record(
                    DivergenceCategory.EXECUTION_ERROR, r, variant_file, plan,
                    error=r.execution_error,
                ))

        records.extend(self._compare_runs(results, variant_file, plan))
        return records

    def _compare_runs(
        self,
        results: list[BackendResult],
        variant_file: str,
        plan: CallPlan,
    ) -> list[DivergenceRecord]:
        outcomes = [
            r.run if r.run is not None else RunOutcome.no_op()
            for r in results
            if r.run_status is not None
        ]
        if all(o == outcomes[0] for o in outcomes):
            return []

        base = select_base(results)
        if base is None or base.run is None:
            logger.debug("No successful run to compare against for %s", variant_file)
            return []

        records: list[DivergenceRecord] = []
        for r in results:
            if r is base or r.run is None:
                continue
            kinds = r.run.divergences_from(base.run)
            if kinds:
                logger.info(
                    "%s diverges from %s on %s: %s",
                    r.version, base.version, variant_file, ", ".join(kinds),
                )
                records.append(self._fuzzing_record(
                    DivergenceCategory.OUTPUT_MISMATCH, r, variant_file, plan,
                    run=r.run, kinds=kinds,
                ))
        return records

    @staticmethod
    def _fuzzing_record(
        category: DivergenceCategory,
        result: BackendResult,
        variant_file: str,
        plan: CallPlan,
        *,
        run: RunOutcome | None = None,
        kinds: list[str] | None = None,
        error: str | None = None,
    ) -> DivergenceRecord:
        return DivergenceRecord(
            category=category,
            file=variant_file,
            version=result.version,
            error=error,
            function_name=plan.function_name,
            encoded_call=plan.call_data(result.compile.selectors),
            call_parameters=plan.parameters_as_strings(),
            run_result=run.to_dict() if run is not None else None,
            kinds=kinds,
        )


def select_base(results: list[BackendResult]) -> BackendResult | None:
    """First backend, in configured order, whose run succeeded."""
    for r in results:
        if r.run is not None and r.run.status == RunStatus.SUCCESS.value:
            return r
    return None
