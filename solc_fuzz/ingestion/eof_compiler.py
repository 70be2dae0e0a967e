"""Experimental EOF compiler backend.

The EOF build of solc is driven through ``solc_wrapper.sh``, which prints
one ``--combined-json bin,bin-runtime,hashes`` object. Its version is
queried through ``solc_version_wrapper.sh`` and cached per binary path.
"""

from __future__ import annotations

import json
import logging
import os
import re
import subprocess
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from solc_fuzz.core.config import Settings
from solc_fuzz.core.errors import ProcessError
from solc_fuzz.core.types import BackendDescriptor

logger = logging.getLogger(__name__)

_VERSION_RE = re.compile(r"Version:\s(\d+\.\d+\.\d+)")


@dataclass
class CombinedJsonOutput:
    """``--combined-json`` output: one flat ``<file>:<contract>`` entry per contract."""

    contracts: dict[str, dict[str, Any]] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors

    def _first(self) -> dict[str, Any] | None:
        for entry in self.contracts.values():
            return entry
        return None

    def bytecode(self) -> str | None:
        entry = self._first()
        if entry is None:
            return None
        return entry.get("bin") or None

    def selectors(self) -> dict[str, str]:
        entry = self._first()
        if entry is None:
            return {}
        return dict(entry.get("hashes", {}))


class EOFCompiler:
    """Compile source with the EOF-enabled solc build via its wrapper script."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    def compile_source(self, source_code: str) -> CombinedJsonOutput:
        """Compile *source_code*.

        Nonzero exit status or ``Error:`` on stderr is a compile failure.

        Raises:
            ProcessError: on timeout or unparsable output.
        """
        with tempfile.TemporaryDirectory(prefix="solc-fuzz-eof-") as tmp:
            src_path = Path(tmp) / "eof_temp.sol"
            src_path.write_text(source_code, encoding="utf-8")
            cmd = ["bash", self._settings.solc_wrapper_path, str(src_path)]
            env = {**os.environ, "SOLC_PATH": self._settings.solc_path}

            try:
                result = subprocess.run(
                    cmd,
                    capture_output=True,
                    text=True,
                    env=env,
                    timeout=self._settings.compile_timeout,
                )
            except subprocess.TimeoutExpired as e:
                raise ProcessError(
                    f"EOF compiler timed out after {self._settings.compile_timeout}s",
                    command=cmd,
                ) from e

        if result.returncode != 0:
            logger.debug("EOF compiler exited with code %d", result.returncode)
            return CombinedJsonOutput(
                errors=[f"Compiler exited with code {result.returncode}, stderr: {result.stderr}"]
            )
        if "Error:" in result.stderr:
            return CombinedJsonOutput(
                errors=[f"Compiler exited with non-empty stderr: {result.stderr}"]
            )

        try:
            output = json.loads(result.stdout)
        except json.JSONDecodeError as e:
            raise ProcessError(
                f"Error parsing EOF compiler output: {e}",
                command=cmd,
                returncode=result.returncode,
                stdout=result.stdout,
                stderr=result.stderr,
            ) from e

        return CombinedJsonOutput(contracts=output.get("contracts", {}))


class CompilerVersionCache:
    """Resolves backend descriptors to concrete compiler versions for one session."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._versions: dict[str, str] = {}

    def resolve(self, backend: BackendDescriptor) -> str:
        if not backend.is_eof:
            return backend.version
        return self.query(self._settings.solc_path)

    def query(self, compiler_path: str) -> str:
        """Ask the compiler at *compiler_path* for its version, once."""
        if compiler_path in self._versions:
            return self._versions[compiler_path]

        version = self._settings.default_solc_version
        try:
            result = subprocess.run(
                ["bash", self._settings.solc_version_wrapper_path, compiler_path],
                capture_output=True,
                text=True,
                timeout=self._settings.compile_timeout,
            )
        except (FileNotFoundError, subprocess.TimeoutExpired) as e:
            logger.debug("Returning default compiler version: %s", e)
        else:
            match = _VERSION_RE.search(result.stdout)
            if result.returncode == 0 and match:
                version = match.group(1)
            else:
                logger.debug(
                    "Returning default compiler version. Code: %d. Stdout: %s",
                    result.returncode, result.stdout,
                )

        logger.debug("Resolved compiler version %s => %s", compiler_path, version)
        self._versions[compiler_path] = version
        return version
