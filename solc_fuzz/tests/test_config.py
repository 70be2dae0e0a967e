"""Tests for solc_fuzz.core.config — settings loading and per-run knobs."""

from __future__ import annotations

import os
from pathlib import Path
from unittest.mock import patch

from solc_fuzz.core.config import FuzzConfig, Settings, get_settings


class TestSettings:
    """Verify settings defaults and environment overrides."""

    def test_tool_defaults(self):
        s = Settings()
        assert s.solc_wrapper_path == "solc_wrapper.sh"
        assert s.solc_version_wrapper_path == "solc_version_wrapper.sh"
        assert s.evmc_path == "evmc"
        assert s.default_solc_version == "0.8.27"

    def test_timeouts_positive(self):
        s = Settings()
        assert s.compile_timeout > 0
        assert s.vm_timeout > 0
        assert s.rewrite_timeout > 0

    @patch.dict(os.environ, {"SOLC_PATH": "/opt/solc-eof", "EVM_PATH": "/opt/libevmone.so"})
    def test_unprefixed_env_override(self):
        s = Settings()
        assert s.solc_path == "/opt/solc-eof"
        assert s.evm_path == "/opt/libevmone.so"

    @patch.dict(os.environ, {"LOG_LEVEL": "DEBUG", "LOG_PRETTY": "false"})
    def test_logging_env_override(self):
        s = Settings()
        assert s.log_level == "DEBUG"
        assert s.log_pretty is False

    def test_get_settings_returns_same_instance(self):
        get_settings.cache_clear()
        assert get_settings() is get_settings()


class TestFuzzConfig:

    def test_compiler_version_is_first_backend(self):
        cfg = FuzzConfig(seed_files=[Path("a/Token.sol")], versions=["0.8.26", "0.8.27"])
        assert cfg.compiler_version == "0.8.26"

    def test_base_file_name_is_first_seed_stem(self):
        cfg = FuzzConfig(seed_files=[Path("a/Token.sol"), Path("b/Other.sol")], versions=["0.8.27"])
        assert cfg.base_file_name == "Token"

    def test_iteration_limit_defaults_to_one(self):
        cfg = FuzzConfig(seed_files=[Path("A.sol")], versions=["0.8.27"])
        assert cfg.iteration_limit == 1

    def test_time_limit_alone_is_unbounded(self):
        cfg = FuzzConfig(seed_files=[Path("A.sol")], versions=["0.8.27"], time_limit_ms=2000)
        assert cfg.iteration_limit is None

    def test_explicit_num_tests_wins(self):
        cfg = FuzzConfig(
            seed_files=[Path("A.sol")], versions=["0.8.27"], num_tests=5, time_limit_ms=2000,
        )
        assert cfg.iteration_limit == 5
