"""Solidity compiler integration: seed parsing and the standard solc backend."""

from __future__ import annotations

import json
import logging
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import solcx
from solcx.exceptions import SolcError

from solc_fuzz.core.config import Settings
from solc_fuzz.core.errors import ConfigurationError, ProcessError
from solc_fuzz.core.types import SyntaxTree

logger = logging.getLogger(__name__)

# Name under which every variant is handed to solc.
VARIANT_FILE_NAME = "foo.sol"

_VARIANT_OUTPUT_SELECTION = {
    "*": {
        "*": [
            "evm.bytecode.object",
            "evm.methodIdentifiers",
        ],
    }
}


@dataclass
class StandardOutput:
    """solc ``--standard-json`` output, keyed per file then per contract."""

    contracts: dict[str, dict[str, Any]] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors

    def bytecode(self, contract_name: str | None) -> str | None:
        contract = self._contract(contract_name)
        if contract is None:
            return None
        return contract.get("evm", {}).get("bytecode", {}).get("object") or None

    def selectors(self, contract_name: str | None) -> dict[str, str]:
        contract = self._contract(contract_name)
        if contract is None:
            return {}
        return dict(contract.get("evm", {}).get("methodIdentifiers", {}))

    def _contract(self, contract_name: str | None) -> dict[str, Any] | None:
        if contract_name is None:
            return None
        return self.contracts.get(VARIANT_FILE_NAME, {}).get(contract_name)


def parse_standard_output(stdout: str) -> StandardOutput:
    """Parse ``--standard-json`` stdout.

    Raises:
        ProcessError: if stdout is not valid JSON.
    """
    try:
        output = json.loads(stdout)
    except json.JSONDecodeError as e:
        raise ProcessError(f"Unparsable solc output: {e}", stdout=stdout) from e

    errors = [
        err.get("formattedMessage", err.get("message", ""))
        for err in output.get("errors", [])
        if err.get("severity") == "error"
    ]
    return StandardOutput(contracts=output.get("contracts", {}), errors=errors)


class SolidityCompiler:
    """Compile Solidity source with a native solc release selected by version."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._installed: set[str] = set()

    def ensure_installed(self, version: str) -> None:
        """Make the solc release for *version* available locally."""
        if version in self._installed:
            return
        installed = {str(v) for v in solcx.get_installed_solc_versions()}
        if version not in installed:
            if not self._settings.solc_install_missing:
                raise ConfigurationError(
                    f"solc {version} is not installed and SOLC_INSTALL_MISSING is off"
                )
            logger.info("Installing solc %s", version)
            solcx.install_solc(version)
        self._installed.add(version)

    def compile_source(
        self,
        source_code: str,
        version: str,
        compiler_settings: dict[str, Any] | None = None,
    ) -> StandardOutput:
        """Compile *source_code* and return the raw standard-JSON result.

        Compile errors are reported in the returned object, never raised.
        A solc process that crashes is reported the same way, with its
        stderr as the diagnostic.

        Raises:
            ProcessError: on timeout or unparsable output.
        """
        self.ensure_installed(version)
        binary = str(solcx.get_executable(version))

        standard_input = {
            "language": "Solidity",
            "sources": {VARIANT_FILE_NAME: {"content": source_code}},
            "settings": {
                **(compiler_settings or {}),
                "outputSelection": _VARIANT_OUTPUT_SELECTION,
            },
        }
        cmd = [binary, "--standard-json"]

        try:
            result = subprocess.run(
                cmd,
                input=json.dumps(standard_input),
                capture_output=True,
                text=True,
                timeout=self._settings.compile_timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise ProcessError(
                f"solc {version} timed out after {self._settings.compile_timeout}s",
                command=cmd,
            ) from e

        if result.returncode != 0:
            logger.debug("solc %s exited with code %d", version, result.returncode)
            return StandardOutput(
                errors=[result.stderr.strip() or f"solc exited with code {result.returncode}"]
            )

        return parse_standard_output(result.stdout)


def load_seed_trees(
    files: list[Path],
    version: str,
    compiler_settings: dict[str, Any] | None,
    compiler: SolidityCompiler,
) -> list[SyntaxTree]:
    """Compile each seed file once and return its syntax tree.

    Args:
        files: Seed source paths
        version: solc version used to parse the seeds
        compiler_settings: Extra standard-JSON settings (optimizer, evmVersion...)
        compiler: Compiler used to make sure *version* is installed

    Returns:
        One tree per file, in order

    Raises:
        ConfigurationError: if a seed is missing, fails to compile, or
            does not yield exactly one source unit.
    """
    compiler.ensure_installed(version)
    trees: list[SyntaxTree] = []

    for path in files:
        if not path.is_file():
            raise ConfigurationError(f"Seed file '{path}' does not exist")
        source_code = path.read_text(encoding="utf-8")

        standard_input = {
            "language": "Solidity",
            "sources": {path.name: {"content": source_code}},
            "settings": {
                **(compiler_settings or {}),
                "outputSelection": {"*": {"": ["ast"]}},
            },
        }
        try:
            output = solcx.compile_standard(
                standard_input,
                solc_version=version,
                allow_paths=".",
            )
        except SolcError as e:
            raise ConfigurationError(
                f"Unable to compile seed '{path}' with solc {version}:\n{e.message}"
            ) from e

        sources = output.get("sources", {})
        if len(sources) != 1:
            raise ConfigurationError(
                f"Expected a single source unit in '{path}', got {len(sources)}"
            )
        ast = next(iter(sources.values())).get("ast", {})
        trees.append(SyntaxTree(source_unit=ast, file_name=path.name, source=source_code))
        logger.debug("Loaded seed %s", path)

    return trees
