"""Variant generation on top of an external AST rewrite engine.

The rewrite engine owns the rule grammar and the rewrite semantics. This
module only needs three things from it:

  - ``parse_rules(text)``               → a ``RuleSet``
  - ``rewrite(tree, rules, depth, seed)`` → a mutated ``SyntaxTree``
  - ``render(tree, version)``           → source text for a compiler version

``ExternalRewriteEngine`` speaks to a rewriter command over a JSON
request/reply on stdin/stdout:

    {"action": "parse",   "rules": "<text>"}
        → {"generators": [...], "rewrites": [...]}
    {"action": "rewrite", "ast": {...}, "rules": "<text>", "depth": N, "seed": S}
        → {"ast": {...}}
    {"action": "render",  "ast": {...}, "version": "0.8.27"}
        → {"source": "..."}

Errors are reported as ``{"error": {"message": ..., "line": L, "column": C}}``.
"""

from __future__ import annotations

import json
import logging
import random
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Protocol, Sequence

from solc_fuzz.core.config import Settings
from solc_fuzz.core.errors import ConfigurationError, NoOpError, ProcessError, RewriteError
from solc_fuzz.core.types import SyntaxTree, Variant

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RuleSet:
    """Parsed rule file: named generators plus rewrite rules."""

    text: str
    generators: tuple[str, ...] = ()
    rewrites: tuple[str, ...] = ()
    path: Path | None = None

    def __bool__(self) -> bool:
        return bool(self.rewrites)


class RewriteEngine(Protocol):
    def parse_rules(self, text: str) -> RuleSet: ...

    def rewrite(self, tree: SyntaxTree, rules: RuleSet, depth: int, seed: int) -> SyntaxTree: ...

    def render(self, tree: SyntaxTree, version: str) -> str: ...


class ExternalRewriteEngine:
    """Rewrite engine backed by the ``REWRITER_PATH`` command."""

    def __init__(self, settings: Settings) -> None:
        self._command = settings.rewriter_path
        self._timeout = settings.rewrite_timeout

    def parse_rules(self, text: str) -> RuleSet:
        reply = self._call({"action": "parse", "rules": text})
        return RuleSet(
            text=text,
            generators=tuple(reply.get("generators", [])),
            rewrites=tuple(reply.get("rewrites", [])),
        )

    def rewrite(self, tree: SyntaxTree, rules: RuleSet, depth: int, seed: int) -> SyntaxTree:
        reply = self._call({
            "action": "rewrite",
            "ast": tree.source_unit,
            "rules": rules.text,
            "depth": depth,
            "seed": seed,
        })
        return SyntaxTree(source_unit=reply["ast"], file_name=tree.file_name)

    def render(self, tree: SyntaxTree, version: str) -> str:
        reply = self._call({"action": "render", "ast": tree.source_unit, "version": version})
        return reply["source"]

    def _call(self, request: dict[str, Any]) -> dict[str, Any]:
        cmd = [self._command]
        try:
            result = subprocess.run(
                cmd,
                input=json.dumps(request),
                capture_output=True,
                text=True,
                timeout=self._timeout,
            )
        except FileNotFoundError as e:
            raise ConfigurationError(f"Rewrite engine '{self._command}' not found") from e
        except subprocess.TimeoutExpired as e:
            raise ProcessError(
                f"Rewrite engine timed out after {self._timeout}s", command=cmd,
            ) from e

        try:
            reply = json.loads(result.stdout)
        except json.JSONDecodeError as e:
            raise ProcessError(
                f"Unparsable rewrite engine output: {e}",
                command=cmd,
                returncode=result.returncode,
                stdout=result.stdout,
                stderr=result.stderr,
            ) from e

        if "error" in reply:
            err = reply["error"]
            location = ""
            if "line" in err:
                location = f"{err['line']}:{err.get('column', 0)}: "
            raise RewriteError(f"{request['action']} failed: {location}{err.get('message', '')}")
        if result.returncode != 0:
            raise RewriteError(
                f"Rewrite engine exited with code {result.returncode}: {result.stderr}"
            )
        return reply


def load_rule_set(path: Path | None, engine: RewriteEngine) -> RuleSet:
    """Read and parse the rule file.

    Raises:
        NoOpError: if no rule file was given or it holds no rewrite rules.
        ConfigurationError: if the file cannot be read or parsed.
    """
    if path is None:
        raise NoOpError("No re-write rules specified")
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"Cannot read rewrites file '{path}': {e}") from e

    try:
        rules = engine.parse_rules(text)
    except RewriteError as e:
        raise ConfigurationError(f"Error parsing rewrites: {e}") from e

    if not rules:
        raise NoOpError("No re-write rules specified")

    logger.info(
        "Loaded %d rewrite rules and %d generators from %s",
        len(rules.rewrites), len(rules.generators), path,
    )
    return RuleSet(text=rules.text, generators=rules.generators, rewrites=rules.rewrites, path=path)


SeedSelector = Callable[[Sequence[SyntaxTree], random.Random], SyntaxTree]


class VariantGenerator:
    """Produces one mutated variant per iteration.

    The seed choice and the rewrite engine's own seed are both drawn from
    ``rng``, so one ``random.Random`` reproduces a whole session.
    """

    def __init__(
        self,
        engine: RewriteEngine,
        rules: RuleSet,
        depth: int,
        rng: random.Random,
        selector: SeedSelector | None = None,
    ) -> None:
        if not rules:
            raise RewriteError("Rule set contains no rewrite rules")
        if depth < 0:
            raise RewriteError(f"Rewrite depth must be non-negative, got {depth}")
        self._engine = engine
        self._rules = rules
        self._depth = depth
        self._rng = rng
        self._selector = selector

    def generate(self, seeds: Sequence[SyntaxTree], index: int) -> Variant:
        if not seeds:
            raise ConfigurationError("No seed programs to mutate")

        if self._selector is not None:
            seed = self._selector(seeds, self._rng)
        else:
            seed = self._rng.choice(seeds)

        if self._depth == 0:
            return Variant(index=index, tree=seed, seed=seed, depth=0)

        mutation_seed = self._rng.getrandbits(64)
        tree = self._engine.rewrite(seed, self._rules, self._depth, mutation_seed)
        logger.debug("Variant %d: %d rewrites on %s", index, self._depth, seed.file_name)
        return Variant(index=index, tree=tree, seed=seed, depth=self._depth)
