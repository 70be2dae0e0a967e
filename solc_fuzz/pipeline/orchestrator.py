"""Fuzz orchestrator — drives variants through every backend and records divergences.

Per iteration:
  1. Generate a variant                    (VariantGenerator)
  2. Plan one call for the target function (CallPlanner)
  3. Compile with each backend, in order   (CompilationDispatcher)
  4. Execute every executable artifact     (EVMRunner)
  5. Classify divergences                  (DivergenceClassifier)
  6. Append the records to the results file before the next iteration

The session ends after ``num_tests`` iterations or once the wall-clock
budget is spent; the budget is checked between iterations only, an
external process that is already running is always waited for.
"""

from __future__ import annotations

import logging
import os
import random
import sys
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, TextIO

from solc_fuzz.core.config import EOF_BACKEND, FuzzConfig, Settings
from solc_fuzz.core.errors import ConfigurationError, ProcessError
from solc_fuzz.core.types import BackendDescriptor, DivergenceRecord, SyntaxTree, Variant
from solc_fuzz.fuzzer.call_planner import CallPlanner
from solc_fuzz.fuzzer.differential import BackendResult, DivergenceClassifier
from solc_fuzz.fuzzer.evm_runner import EVMRunner
from solc_fuzz.fuzzer.rewriter import ExternalRewriteEngine, VariantGenerator, load_rule_set
from solc_fuzz.ingestion.dispatcher import CompilationDispatcher
from solc_fuzz.ingestion.eof_compiler import CompilerVersionCache, EOFCompiler
from solc_fuzz.ingestion.solidity_compiler import SolidityCompiler, load_seed_trees
from solc_fuzz.pipeline.result_sink import ResultSink, save_variant

logger = logging.getLogger(__name__)


@dataclass
class CampaignStats:
    """Counters accumulated over a session."""

    tests_performed: int = 0
    compilation_failures: int = 0
    fuzzing_failures: int = 0
    skipped_variants: int = 0
    time_limit_reached: bool = False
    failures_by_tag: dict[str, int] = field(default_factory=dict)

    def record(self, records: list[DivergenceRecord]) -> None:
        self.tests_performed += 1
        for r in records:
            if r.category.is_compilation:
                self.compilation_failures += 1
            else:
                self.fuzzing_failures += 1
            tag = r.category.tag
            self.failures_by_tag[tag] = self.failures_by_tag.get(tag, 0) + 1

    def summary(self) -> str:
        lines = [
            f"Tests performed: {self.tests_performed}",
            f"Compilation failures encountered: {self.compilation_failures}",
            f"Fuzzing failures encountered: {self.fuzzing_failures}",
        ]
        for tag, count in sorted(self.failures_by_tag.items()):
            lines.append(f"  {tag}: {count}")
        return "\n".join(lines)


class FuzzOrchestrator:
    """Top-level controller for one differential fuzzing session.

    Usage::

        orchestrator = FuzzOrchestrator.from_config(config, get_settings())
        stats = orchestrator.run()
    """

    def __init__(
        self,
        config: FuzzConfig,
        seeds: list[SyntaxTree],
        generator: VariantGenerator,
        dispatcher: CompilationDispatcher,
        runner: EVMRunner,
        planner: CallPlanner | None = None,
        classifier: DivergenceClassifier | None = None,
        clock: Callable[[], float] = time.monotonic,
        out: TextIO | None = None,
    ) -> None:
        if not config.versions:
            raise ConfigurationError("At least one compiler version is required")
        self._config = config
        self._seeds = seeds
        self._generator = generator
        self._dispatcher = dispatcher
        self._runner = runner
        self._planner = planner
        self._classifier = classifier or DivergenceClassifier()
        self._clock = clock
        self._out = out or sys.stdout
        self._backends = [BackendDescriptor(v) for v in config.versions]
        self._stats = CampaignStats()

        # Microseconds plus pid keep concurrent sessions in separate files.
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S.%f")
        self.results_path = (
            config.output_dir / f"{config.base_file_name}.results.{stamp}-{os.getpid()}.jsonl"
        )

    # ── Construction ─────────────────────────────────────────────────────────

    @classmethod
    def from_config(cls, config: FuzzConfig, settings: Settings) -> FuzzOrchestrator:
        """Wire the real collaborators and validate everything before iterating.

        Raises:
            ConfigurationError: on bad rules, seeds, target function or tools.
        """
        engine = ExternalRewriteEngine(settings)
        rules = load_rule_set(config.rewrites_path, engine)

        solc = SolidityCompiler(settings)
        seeds = load_seed_trees(
            config.seed_files, config.compiler_version, config.compiler_settings, solc,
        )

        planner: CallPlanner | None = None
        runner = EVMRunner(settings)
        if config.test_call_function is not None:
            planner = CallPlanner(config.test_call_function, config.compiler_version)
            for seed in seeds:
                planner.check(seed)
            if not runner.available:
                raise ConfigurationError(f"EVM driver '{settings.evmc_path}' not found")

        rng = random.Random(config.random_seed)
        generator = VariantGenerator(engine, rules, config.rewrite_depth, rng)
        dispatcher = CompilationDispatcher(
            engine,
            solc,
            EOFCompiler(settings),
            CompilerVersionCache(settings),
            config.compiler_settings,
        )
        return cls(config, seeds, generator, dispatcher, runner, planner=planner)

    # ── Public API ───────────────────────────────────────────────────────────

    def run(self) -> CampaignStats:
        """Run the session and return its counters.

        The summary is printed even when an error or interrupt ends the
        session early; the exception then propagates to the caller.
        """
        cfg = self._config
        start = self._clock()
        deadline = start + cfg.time_limit_ms / 1000 if cfg.time_limit_ms is not None else None

        logger.info(
            "Starting differential fuzzing: %d seeds, backends=%s, depth=%d",
            len(self._seeds),
            ", ".join(str(b) for b in self._backends),
            cfg.rewrite_depth,
        )

        limit = cfg.iteration_limit
        try:
            with ResultSink(self.results_path) as sink:
                i = 0
                while limit is None or i < limit:
                    records = self._fuzz_one(i)
                    sink.write_iteration(records)
                    self._stats.record(records)
                    self._print(
                        f"Test {i}: {len(records)} failures "
                        f"(compilation: {self._stats.compilation_failures}, "
                        f"fuzzing: {self._stats.fuzzing_failures})"
                    )
                    i += 1

                    if deadline is not None and self._clock() >= deadline:
                        self._stats.time_limit_reached = True
                        self._print(f"Time limit of {cfg.time_limit_ms}ms reached. Exiting...")
                        break
        finally:
            duration_ms = (self._clock() - start) * 1000
            logger.info(
                "Differential fuzzing finished: %d tests in %.1fs",
                self._stats.tests_performed,
                duration_ms / 1000,
                extra={"duration_ms": round(duration_ms)},
            )
            self._print(self._stats.summary())
        return self._stats

    # ── Single iteration ─────────────────────────────────────────────────────

    def _fuzz_one(self, index: int) -> list[DivergenceRecord]:
        cfg = self._config
        variant = self._generator.generate(self._seeds, index)
        variant_file = cfg.output_dir / f"{cfg.base_file_name}.variant.{index}.sol"

        if cfg.verbose >= 2:
            self._print("=" * 66)
            self._print(self._render(variant))
        if cfg.save_variants:
            save_variant(variant_file, self._render(variant))

        # Arguments are fixed before any backend sees the variant.
        plan = self._planner.plan(variant.tree) if self._planner is not None else None

        results: list[BackendResult] = []
        for backend in self._backends:
            context = {"iteration": index, "backend": str(backend)}
            outcome = self._dispatcher.compile(variant, backend)
            result = BackendResult(compile=outcome)
            results.append(result)

            if not outcome.success:
                logger.debug("Test %d: compile errors", index, extra=context)
                continue
            if plan is None:
                continue

            call_data = plan.call_data(outcome.selectors) if outcome.bytecode else None
            if call_data is None:
                logger.debug(
                    "Bytecode or selector for %s not found", plan.signature, extra=context,
                )
                result.missing_execution = True
                continue

            try:
                result.run = self._runner.execute(outcome.bytecode, call_data, backend.vm_revision)
            except ProcessError as e:
                logger.error("EVM failed for test %d: %s", index, e, extra=context)
                result.execution_error = str(e)

        if all(not r.compile.success for r in results):
            self._stats.skipped_variants += 1

        records = self._classifier.classify(results, str(variant_file), plan)
        if records and not cfg.save_variants:
            # Keep the source of every variant a record points at.
            save_variant(variant_file, self._render(variant))
        return records

    # ── Helpers ──────────────────────────────────────────────────────────────

    def _render(self, variant: Variant) -> str:
        return self._dispatcher.render(variant.tree, self._backends[0])

    def _print(self, line: str) -> None:
        print(line, file=self._out, flush=True)


def resolve_versions(versions: list[str] | None, test_eof: bool, default: str) -> list[str]:
    """Backend list in configured order; ``eof`` is appended when requested."""
    resolved = list(versions) if versions else [default]
    if test_eof and EOF_BACKEND not in resolved:
        resolved.append(EOF_BACKEND)
    return resolved
