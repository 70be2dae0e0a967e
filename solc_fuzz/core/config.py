"""Core configuration for solc-fuzz.

Two layers:
  - ``Settings``   — process environment (tool paths, timeouts, logging),
                     loaded once through pydantic-settings.
  - ``FuzzConfig`` — per-run knobs built from the command line.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Tool locations and process limits loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Compiler ─────────────────────────────────────────────────────────
    solc_path: str = "solc"
    solc_wrapper_path: str = "solc_wrapper.sh"
    solc_version_wrapper_path: str = "solc_version_wrapper.sh"
    default_solc_version: str = "0.8.27"
    solc_install_missing: bool = True
    compile_timeout: float = 120.0

    # ── Reference EVM ────────────────────────────────────────────────────
    evm_path: str = "evmone.so"
    evmc_path: str = "evmc"
    vm_timeout: float = 60.0

    # ── Rewrite engine ───────────────────────────────────────────────────
    rewriter_path: str = "sol-fuzz-rewrite"
    rewrite_timeout: float = 60.0

    # ── Logging ──────────────────────────────────────────────────────────
    log_level: str = "INFO"
    log_pretty: bool = True


@lru_cache
def get_settings() -> Settings:
    """Return cached settings singleton."""
    return Settings()


EOF_BACKEND = "eof"


@dataclass
class FuzzConfig:
    """Knobs for one differential fuzzing session."""

    seed_files: list[Path]
    rewrites_path: Path | None = None
    versions: list[str] = field(default_factory=list)
    compiler_settings: dict[str, Any] | None = None
    rewrite_depth: int = 1
    # ``None`` with a time limit runs until the deadline, otherwise one test.
    num_tests: int | None = None
    test_call_function: str | None = None
    test_eof: bool = False
    save_variants: bool = False
    verbose: int = 0
    # Wall-clock budget in milliseconds; ``None`` runs until ``num_tests``.
    time_limit_ms: int | None = None
    output_dir: Path = Path("fuzzer-results")
    random_seed: int | None = None

    @property
    def compiler_version(self) -> str:
        """Version used to parse the seeds (the first configured backend)."""
        return self.versions[0]

    @property
    def base_file_name(self) -> str:
        return self.seed_files[0].stem

    @property
    def iteration_limit(self) -> int | None:
        if self.num_tests is not None:
            return self.num_tests
        return None if self.time_limit_ms is not None else 1
