"""Compilation dispatcher — routes a variant to its backend and normalizes the result."""

from __future__ import annotations

import logging
from typing import Any

from solc_fuzz.core.errors import CompileError
from solc_fuzz.core.types import BackendDescriptor, CompileOutcome, SyntaxTree, Variant
from solc_fuzz.fuzzer.rewriter import RewriteEngine
from solc_fuzz.ingestion.eof_compiler import CombinedJsonOutput, CompilerVersionCache, EOFCompiler
from solc_fuzz.ingestion.solidity_compiler import SolidityCompiler, StandardOutput

logger = logging.getLogger(__name__)


class CompilationDispatcher:
    """Routes variants to the standard or EOF compiler and normalizes the result.

    Compile failures never escape ``compile()``: one backend rejecting a
    variant must not stop the others. ``ProcessError`` (unparsable output,
    timeout) does escape and ends the session.
    """

    def __init__(
        self,
        engine: RewriteEngine,
        solc: SolidityCompiler,
        eof: EOFCompiler,
        versions: CompilerVersionCache,
        compiler_settings: dict[str, Any] | None = None,
    ) -> None:
        self._engine = engine
        self._solc = solc
        self._eof = eof
        self._versions = versions
        self._compiler_settings = compiler_settings

    def render(self, tree: SyntaxTree, backend: BackendDescriptor) -> str:
        """Source text for *tree* as understood by *backend*'s compiler version."""
        return self._engine.render(tree, self._versions.resolve(backend))

    def compile(self, variant: Variant, backend: BackendDescriptor) -> CompileOutcome:
        source = self.render(variant.tree, backend)
        contract_name = variant.tree.contract_name or variant.seed.contract_name

        try:
            if backend.is_eof:
                return self._from_combined(backend, self._eof.compile_source(source))
            output = self._solc.compile_source(
                source, backend.version, self._compiler_settings,
            )
            return self._from_standard(backend, output, contract_name)
        except CompileError as e:
            return CompileOutcome(backend=backend, success=False, error=str(e))

    @staticmethod
    def _from_standard(
        backend: BackendDescriptor,
        output: StandardOutput,
        contract_name: str | None,
    ) -> CompileOutcome:
        if not output.success:
            raise CompileError("\n".join(output.errors))
        bytecode = output.bytecode(contract_name)
        if bytecode is None:
            logger.debug("Bytecode not found for contract %s. Version: %s", contract_name, backend)
        return CompileOutcome(
            backend=backend,
            success=True,
            bytecode=bytecode,
            selectors=output.selectors(contract_name),
        )

    @staticmethod
    def _from_combined(backend: BackendDescriptor, output: CombinedJsonOutput) -> CompileOutcome:
        if not output.success:
            raise CompileError("\n".join(output.errors))
        return CompileOutcome(
            backend=backend,
            success=True,
            bytecode=output.bytecode(),
            selectors=output.selectors(),
        )
