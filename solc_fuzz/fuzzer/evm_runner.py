"""Reference EVM execution via the ``evmc run`` driver.

Each invocation deploys the bytecode with ``--create``, calls it with the
planned input, and asks the driver to dump final storage and emitted logs
into two scratch files. The status and return data are only available as
human-readable ``Result:`` / ``Output:`` lines on stdout; ``parse_vm_stdout``
is the single place that depends on that format.
"""

from __future__ import annotations

import json
import logging
import re
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Any

from solc_fuzz.core.config import Settings
from solc_fuzz.core.errors import ProcessError
from solc_fuzz.core.types import LogEntry, RunOutcome, RunStatus

logger = logging.getLogger(__name__)

RESULT_RE = re.compile(r"Result:([ \w]+)")
OUTPUT_RE = re.compile(r"Output:([ \w]+)")


def parse_vm_stdout(stdout: str) -> tuple[str, str]:
    """Extract ``(status, output)`` from the driver's stdout.

    Raises:
        ProcessError: if there is no ``Result:`` marker.
    """
    result = RESULT_RE.search(stdout)
    if result is None:
        raise ProcessError("Error parsing EVM result status", stdout=stdout)

    output = OUTPUT_RE.search(stdout)
    return RunStatus.normalize(result.group(1)), output.group(1).strip() if output else ""


def _read_json(path: Path, what: str) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ProcessError(f"Error reading EVM {what} dump: {e}") from e


class EVMRunner:
    """Runs compiled bytecode in the reference VM."""

    def __init__(self, settings: Settings) -> None:
        self._evmc = settings.evmc_path
        self._vm = settings.evm_path
        self._timeout = settings.vm_timeout

    @property
    def available(self) -> bool:
        """Whether the ``evmc`` driver can be found."""
        return shutil.which(self._evmc) is not None

    def execute(self, bytecode: str, call_data: str, revision: int) -> RunOutcome:
        """Deploy *bytecode*, call it with *call_data*, return the normalized outcome.

        Raises:
            ProcessError: on nonzero exit, timeout, missing status marker
                or unreadable dump files.
        """
        logger.debug("Running EVM for revision %d", revision)

        # Scratch files are per invocation and removed with the directory.
        with tempfile.TemporaryDirectory(prefix="solc-fuzz-evm-") as tmp:
            storage_file = Path(tmp) / "storage.json"
            logs_file = Path(tmp) / "logs.json"
            cmd = [
                self._evmc, "run",
                "--vm", self._vm,
                "--rev", str(revision),
                bytecode,
                "--create",
                "--input", call_data,
                "--storage-dump-file", str(storage_file),
                "--logs-dump-file", str(logs_file),
            ]

            try:
                result = subprocess.run(
                    cmd,
                    capture_output=True,
                    text=True,
                    timeout=self._timeout,
                )
            except subprocess.TimeoutExpired as e:
                raise ProcessError(
                    f"EVM timed out after {self._timeout}s", command=cmd,
                ) from e

            if result.returncode != 0:
                logger.debug("EVM error: %s", result.stderr)
                raise ProcessError(
                    f"EVM exited with code {result.returncode}: {result.stderr.strip()}",
                    command=cmd,
                    returncode=result.returncode,
                    stdout=result.stdout,
                    stderr=result.stderr,
                )

            logger.debug("EVM output: %s", result.stdout)
            status, output = parse_vm_stdout(result.stdout)
            storage = _read_json(storage_file, "storage")
            logs = _read_json(logs_file, "logs")

        if not isinstance(storage, dict) or not isinstance(logs, list):
            raise ProcessError("Unexpected EVM dump shape", stdout=result.stdout)

        return RunOutcome(
            status=status,
            output=output,
            storage=storage,
            logs=tuple(LogEntry.from_dict(entry) for entry in logs),
        )
