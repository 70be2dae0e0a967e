"""solc-fuzz CLI — differential fuzzing of Solidity compiler backends.

Usage:
    solc-fuzz <seed.sol>... --rewrites <rules> [options]

Examples:
    solc-fuzz Token.sol --rewrites rules.txt --compiler-versions 0.8.26 0.8.27
    solc-fuzz Token.sol --rewrites rules.txt --test-call-function transfer --num-tests 500
    solc-fuzz Token.sol --rewrites rules.txt --test-call-function f --test-eof --time-limit 60000
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

from solc_fuzz import __version__
from solc_fuzz.core.config import FuzzConfig, Settings, get_settings
from solc_fuzz.core.errors import ConfigurationError, NoOpError, SolcFuzzError
from solc_fuzz.core.logging import setup_logging
from solc_fuzz.pipeline.orchestrator import FuzzOrchestrator, resolve_versions

logger = logging.getLogger(__name__)


# ── Coloured output helpers ──────────────────────────────────────────────────

_RESET = "\033[0m"
_RED = "\033[91m"
_YELLOW = "\033[93m"


def _c(text: str, code: str) -> str:
    return f"{code}{text}{_RESET}"


# ── CLI argument parser ─────────────────────────────────────────────────────


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="solc-fuzz",
        description="Differential fuzzer for Solidity compiler backends",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("seeds", nargs="*", type=Path, help="Seed Solidity files")
    parser.add_argument("--version", action="version", version=f"solc-fuzz {__version__}")
    parser.add_argument(
        "--compiler-versions",
        nargs="+",
        metavar="VERSION",
        help="solc versions to compare, in order (default: DEFAULT_SOLC_VERSION)",
    )
    parser.add_argument(
        "--compiler-settings",
        metavar="JSON",
        help="Standard-JSON 'settings' object passed to every solc compile",
    )
    parser.add_argument("--rewrites", type=Path, metavar="PATH", help="Rewrite rules file")
    parser.add_argument(
        "--rewrite-depth", type=int, default=1, metavar="N",
        help="Rewrites applied per variant (default: 1)",
    )
    parser.add_argument(
        "--num-tests", type=int, metavar="N",
        help="Variants to test (default: 1, or unbounded with --time-limit)",
    )
    parser.add_argument("--save", action="store_true", help="Save every variant's source")
    parser.add_argument(
        "--test-call-function", metavar="NAME",
        help="Function of the target contract to call after deployment",
    )
    parser.add_argument(
        "--test-eof", action="store_true",
        help="Also compile with the EOF solc build (requires --test-call-function)",
    )
    parser.add_argument(
        "--verbose", type=int, default=0, metavar="LEVEL",
        help="0: progress, 1: debug logging, 2: also print each variant",
    )
    parser.add_argument(
        "--time-limit", type=int, metavar="MS",
        help="Stop after this many milliseconds (checked between tests)",
    )
    parser.add_argument(
        "--output", type=Path, default=Path("fuzzer-results"), metavar="DIR",
        help="Directory for results and saved variants (default: fuzzer-results)",
    )
    parser.add_argument("--seed", type=int, metavar="N", help="Random seed for variant generation")
    return parser


# ── Config assembly ──────────────────────────────────────────────────────────


def _parse_compiler_settings(raw: str | None) -> dict[str, Any] | None:
    if raw is None:
        return None
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigurationError(
            f"Invalid compiler settings '{raw}'. Compiler settings must be a valid JSON object ({e})."
        ) from e
    if not isinstance(value, dict):
        raise ConfigurationError(
            f"Invalid compiler settings '{raw}'. Compiler settings must be a valid JSON object "
            f"(got {type(value).__name__})."
        )
    return value


def parse_config(args: argparse.Namespace, settings: Settings) -> FuzzConfig:
    """Turn parsed arguments into a ``FuzzConfig``.

    Raises:
        NoOpError: if no rule file or no test function (with ``--test-eof``) is given.
        ConfigurationError: on invalid values.
    """
    if args.rewrites is None:
        raise NoOpError("No re-write rules specified")
    if args.test_eof and not args.test_call_function:
        raise NoOpError("No test call function specified")
    if args.rewrite_depth < 0:
        raise ConfigurationError(f"--rewrite-depth must be non-negative, got {args.rewrite_depth}")
    if args.num_tests is not None and args.num_tests < 1:
        raise ConfigurationError(f"--num-tests must be positive, got {args.num_tests}")
    if args.time_limit is not None and args.time_limit < 0:
        raise ConfigurationError(f"--time-limit must be non-negative, got {args.time_limit}")

    return FuzzConfig(
        seed_files=list(args.seeds),
        rewrites_path=args.rewrites,
        versions=resolve_versions(
            args.compiler_versions, args.test_eof, settings.default_solc_version,
        ),
        compiler_settings=_parse_compiler_settings(args.compiler_settings),
        rewrite_depth=args.rewrite_depth,
        num_tests=args.num_tests,
        test_call_function=args.test_call_function,
        test_eof=args.test_eof,
        save_variants=args.save,
        verbose=args.verbose,
        time_limit_ms=args.time_limit,
        output_dir=args.output,
        random_seed=args.seed,
    )


# ── Entry point ──────────────────────────────────────────────────────────────


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.seeds:
        parser.print_help()
        return 0

    settings = get_settings()
    setup_logging(
        log_level="DEBUG" if args.verbose >= 1 else settings.log_level,
        pretty=settings.log_pretty,
    )

    try:
        config = parse_config(args, settings)
        FuzzOrchestrator.from_config(config, settings).run()
    except NoOpError as e:
        print(_c(f"{e}. Exiting...", _YELLOW), file=sys.stderr)
        return 0
    except SolcFuzzError as e:
        print(_c(f"Error: {e}", _RED), file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print(_c("Interrupted", _YELLOW), file=sys.stderr)
        return 1
    except Exception as e:
        logger.exception("Unexpected failure")
        print(_c(f"Error: {e}", _RED), file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
