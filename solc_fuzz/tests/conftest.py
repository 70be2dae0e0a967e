"""Shared fixtures for the solc-fuzz test suite."""

from __future__ import annotations

import copy
import io
import random
from pathlib import Path
from typing import Any, Callable

import pytest

from solc_fuzz.core.config import FuzzConfig, Settings, get_settings
from solc_fuzz.core.errors import ProcessError
from solc_fuzz.core.types import (
    BackendDescriptor,
    CompileOutcome,
    RunOutcome,
    SyntaxTree,
    Variant,
)
from solc_fuzz.fuzzer.rewriter import RuleSet, VariantGenerator


SELECTOR = "26121ff0"


# ── Syntax trees ─────────────────────────────────────────────────────────────


def make_ast(
    contract: str = "C",
    function: str = "f",
    param_types: tuple[str, ...] = ("uint256",),
) -> dict[str, Any]:
    """Minimal compact-JSON AST with one contract and one function."""
    params = [
        {
            "nodeType": "VariableDeclaration",
            "name": f"p{i}",
            "typeDescriptions": {"typeString": t},
        }
        for i, t in enumerate(param_types)
    ]
    return {
        "nodeType": "SourceUnit",
        "nodes": [
            {"nodeType": "PragmaDirective", "literals": ["solidity", "^", "0.8", ".0"]},
            {
                "nodeType": "ContractDefinition",
                "name": contract,
                "nodes": [
                    {
                        "nodeType": "FunctionDefinition",
                        "name": function,
                        "parameters": {"nodeType": "ParameterList", "parameters": params},
                    },
                ],
            },
        ],
    }


@pytest.fixture
def seed_tree() -> SyntaxTree:
    return SyntaxTree(
        source_unit=make_ast(),
        file_name="Seed.sol",
        source="contract C { function f(uint256 p0) public {} }",
    )


@pytest.fixture
def variant(seed_tree: SyntaxTree) -> Variant:
    return Variant(index=0, tree=seed_tree, seed=seed_tree, depth=1)


# ── Fake collaborators ───────────────────────────────────────────────────────


class FakeEngine:
    """In-memory rewrite engine: tags each rewrite with its seed."""

    def __init__(self, rewrites: tuple[str, ...] = ("swap",)) -> None:
        self.rewrites = rewrites
        self.rewrite_calls: list[tuple[str, int, int]] = []
        self.render_calls: list[str] = []

    def parse_rules(self, text: str) -> RuleSet:
        return RuleSet(text=text, rewrites=self.rewrites if text.strip() else ())

    def rewrite(self, tree: SyntaxTree, rules: RuleSet, depth: int, seed: int) -> SyntaxTree:
        self.rewrite_calls.append((tree.file_name, depth, seed))
        ast = copy.deepcopy(tree.source_unit)
        ast["mutationSeed"] = seed
        return SyntaxTree(source_unit=ast, file_name=tree.file_name)

    def render(self, tree: SyntaxTree, version: str) -> str:
        self.render_calls.append(version)
        return f"// solc {version}\n// seed {tree.source_unit.get('mutationSeed')}\n"


class FakeDispatcher:
    """Returns canned compile outcomes per backend version."""

    def __init__(self, outcomes: dict[str, dict[str, Any]], engine: FakeEngine | None = None) -> None:
        self._outcomes = outcomes
        self._engine = engine or FakeEngine()
        self.compiled: list[str] = []

    def render(self, tree: SyntaxTree, backend: BackendDescriptor) -> str:
        return self._engine.render(tree, "0.8.27" if backend.is_eof else backend.version)

    def compile(self, variant: Variant, backend: BackendDescriptor) -> CompileOutcome:
        self.compiled.append(backend.version)
        return CompileOutcome(backend=backend, **self._outcomes[backend.version])


class FakeRunner:
    """Returns canned run outcomes keyed by bytecode; records every call."""

    available = True

    def __init__(self, outcomes: dict[str, RunOutcome | ProcessError]) -> None:
        self._outcomes = outcomes
        self.calls: list[tuple[str, str, int]] = []

    def execute(self, bytecode: str, call_data: str, revision: int) -> RunOutcome:
        self.calls.append((bytecode, call_data, revision))
        outcome = self._outcomes[bytecode]
        if isinstance(outcome, ProcessError):
            raise outcome
        return outcome


class FakeClock:
    """Monotonic clock that advances a fixed step on every read."""

    def __init__(self, step: float) -> None:
        self.now = 0.0
        self.step = step

    def __call__(self) -> float:
        value = self.now
        self.now += self.step
        return value


def compiled(bytecode: str = "6080", selectors: dict[str, str] | None = None) -> dict[str, Any]:
    return {
        "success": True,
        "bytecode": bytecode,
        "selectors": {"f(uint256)": SELECTOR} if selectors is None else selectors,
    }


def rejected(error: str = "foo.sol:1:1: ParserError: Expected ';'") -> dict[str, Any]:
    return {"success": False, "error": error}


@pytest.fixture
def fake_engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def make_generator(fake_engine: FakeEngine) -> Callable[..., VariantGenerator]:
    def _make(depth: int = 1, seed: int = 7) -> VariantGenerator:
        rules = fake_engine.parse_rules("swap")
        return VariantGenerator(fake_engine, rules, depth, random.Random(seed))

    return _make


@pytest.fixture
def fuzz_config(tmp_path: Path) -> FuzzConfig:
    return FuzzConfig(
        seed_files=[tmp_path / "Seed.sol"],
        rewrites_path=tmp_path / "rules.txt",
        versions=["0.8.26", "0.8.27"],
        num_tests=1,
        test_call_function="f",
        output_dir=tmp_path / "out",
        random_seed=1,
    )


@pytest.fixture
def stdout_buffer() -> io.StringIO:
    return io.StringIO()


# ── Settings ─────────────────────────────────────────────────────────────────


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        solc_path=str(tmp_path / "solc-eof"),
        solc_wrapper_path=str(tmp_path / "solc_wrapper.sh"),
        solc_version_wrapper_path=str(tmp_path / "solc_version_wrapper.sh"),
        evmc_path="evmc",
        evm_path="libevmone.so",
        compile_timeout=5.0,
        vm_timeout=5.0,
        rewrite_timeout=5.0,
    )


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
