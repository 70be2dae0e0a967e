"""Durable output: NDJSON divergence records and variant sources."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from types import TracebackType
from typing import IO, Iterable

from solc_fuzz.core.types import DivergenceRecord

logger = logging.getLogger(__name__)


class ResultSink:
    """Append-only newline-delimited JSON stream of divergence records.

    Each iteration's records are written and fsync'ed together, so a run
    killed between iterations leaves only complete lines behind.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._fh: IO[str] | None = None
        self.records_written = 0

    def open(self) -> ResultSink:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._fh = self.path.open("a", encoding="utf-8")
        logger.info("Writing results to %s", self.path)
        return self

    def write_iteration(self, records: Iterable[DivergenceRecord]) -> int:
        """Append the records of one iteration and flush them to disk."""
        if self._fh is None:
            raise RuntimeError("ResultSink is not open")
        lines = [json.dumps(r.to_dict()) + "\n" for r in records]
        if not lines:
            return 0
        self._fh.write("".join(lines))
        self._fh.flush()
        os.fsync(self._fh.fileno())
        self.records_written += len(lines)
        return len(lines)

    def close(self) -> None:
        if self._fh is None:
            return
        self._fh.flush()
        self._fh.close()
        self._fh = None

    def __enter__(self) -> ResultSink:
        return self.open()

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()


def save_variant(path: Path, source: str) -> bool:
    """Write a variant's source unless the file already exists.

    Returns:
        True if the file was created by this call
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    try:
        with path.open("x", encoding="utf-8") as fh:
            fh.write(source)
    except FileExistsError:
        return False
    logger.debug("Saved variant %s", path)
    return True
