"""Exception hierarchy shared by every solc-fuzz component."""

from __future__ import annotations


class SolcFuzzError(Exception):
    """Base class for all errors raised by solc-fuzz."""


class ConfigurationError(SolcFuzzError):
    """Bad arguments, settings, seeds or rule files. Raised before any iteration."""


class NoOpError(ConfigurationError):
    """Nothing to do (help printed, no rewrite rules...). Exits with status 0."""


class UnsupportedParameterType(ConfigurationError):
    """The target function takes a parameter the call planner cannot generate."""

    def __init__(self, type_string: str, parameter: str = "") -> None:
        self.type_string = type_string
        self.parameter = parameter
        where = f" for parameter '{parameter}'" if parameter else ""
        super().__init__(f"Unsupported parameter type '{type_string}'{where}")


class RewriteError(SolcFuzzError):
    """The rewrite engine was misconfigured or failed to produce a variant."""


class CompileError(SolcFuzzError):
    """A backend rejected a variant. Absorbed into a failed compile outcome."""


class ProcessError(SolcFuzzError):
    """An external process exited abnormally or produced unparsable output."""

    def __init__(
        self,
        message: str,
        *,
        command: list[str] | None = None,
        returncode: int | None = None,
        stdout: str = "",
        stderr: str = "",
    ) -> None:
        super().__init__(message)
        self.command = command or []
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
