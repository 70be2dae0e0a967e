"""Shared types used across the fuzzing pipeline."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Iterator

from pydantic import BaseModel, ConfigDict, Field

from solc_fuzz.core.config import EOF_BACKEND


# ── Syntax trees ─────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class SyntaxTree:
    """One solc source unit in compact JSON AST form.

    ``source`` is the text the tree was parsed from (seeds) or last
    rendered to (variants); it is informational only, the rewrite engine
    works on ``source_unit``.
    """

    source_unit: dict[str, Any]
    file_name: str
    source: str = ""

    def contracts(self) -> Iterator[dict[str, Any]]:
        for node in self.source_unit.get("nodes", []):
            if node.get("nodeType") == "ContractDefinition":
                yield node

    @property
    def contract_name(self) -> str | None:
        """Name of the target contract (the first contract in the unit)."""
        for contract in self.contracts():
            return contract.get("name")
        return None

    def find_function(self, name: str) -> dict[str, Any] | None:
        """Return the ``FunctionDefinition`` node called *name* in the target contract."""
        for contract in self.contracts():
            for node in contract.get("nodes", []):
                if node.get("nodeType") == "FunctionDefinition" and node.get("name") == name:
                    return node
            return None
        return None


@dataclass(frozen=True)
class Variant:
    """A mutated derivative of a seed, tested during one iteration."""

    index: int
    tree: SyntaxTree
    seed: SyntaxTree
    depth: int = 0


# ── Backends & compilation ───────────────────────────────────────────────────


STANDARD_VM_REVISION = 13  # Cancun
EOF_VM_REVISION = 14       # Prague + EOF


@dataclass(frozen=True)
class BackendDescriptor:
    """A compiler configuration paired with the VM revision that runs its output."""

    version: str

    @property
    def is_eof(self) -> bool:
        return self.version == EOF_BACKEND

    @property
    def vm_revision(self) -> int:
        return EOF_VM_REVISION if self.is_eof else STANDARD_VM_REVISION

    def __str__(self) -> str:
        return self.version


@dataclass(frozen=True)
class CompileOutcome:
    """Normalized result of compiling one variant with one backend."""

    backend: BackendDescriptor
    success: bool
    bytecode: str | None = None
    selectors: dict[str, str] = field(default_factory=dict)
    error: str = ""

    @property
    def executable(self) -> bool:
        return self.success and bool(self.bytecode)


# ── Calls ────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class CallPlan:
    """One randomly generated call, shared verbatim by every backend of an iteration."""

    function_name: str
    parameter_types: tuple[str, ...]
    parameter_values: tuple[int, ...]
    encoded_arguments: str

    @property
    def signature(self) -> str:
        return f"{self.function_name}({','.join(self.parameter_types)})"

    def call_data(self, selectors: dict[str, str]) -> str | None:
        """Prefix the encoded arguments with the selector a backend reported.

        Returns None when the backend's selector table lacks the target
        function.
        """
        selector = selectors.get(self.signature)
        if selector is None:
            return None
        return "0x" + selector.removeprefix("0x") + self.encoded_arguments

    def parameters_as_strings(self) -> list[str]:
        return [str(v) for v in self.parameter_values]


# ── Execution ────────────────────────────────────────────────────────────────


class RunStatus(str, enum.Enum):
    """Status markers reported by the reference VM (plus the local ``no-op``)."""

    SUCCESS = "success"
    REVERT = "revert"
    OUT_OF_GAS = "out-of-gas"
    NO_OP = "no-op"

    @classmethod
    def normalize(cls, marker: str) -> str:
        """Map the VM's human-readable marker (``out of gas``) to a status string.

        Statuses outside the known set are kept verbatim (hyphenated) so they
        still take part in the comparison.
        """
        text = "-".join(marker.strip().lower().split())
        for member in cls:
            if member.value == text:
                return member.value
        return text


@dataclass(frozen=True)
class LogEntry:
    """One emitted event."""

    address: str
    topics: tuple[str, ...] = ()
    data: str = ""

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> LogEntry:
        return cls(
            address=str(raw.get("address", "")),
            topics=tuple(str(t) for t in raw.get("topics", [])),
            data=str(raw.get("data", "")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"address": self.address, "topics": list(self.topics), "data": self.data}


@dataclass(frozen=True)
class RunOutcome:
    """Normalized result of executing compiled bytecode in the reference VM."""

    status: str
    output: str = ""
    storage: dict[str, Any] = field(default_factory=dict)
    logs: tuple[LogEntry, ...] = ()

    @classmethod
    def no_op(cls) -> RunOutcome:
        return cls(status=RunStatus.NO_OP.value)

    def divergences_from(self, base: RunOutcome) -> list[str]:
        """Return which observable parts differ from *base*."""
        kinds: list[str] = []
        if self.output != base.output:
            kinds.append("output")
        if self.storage != base.storage:
            kinds.append("storage")
        if self.logs != base.logs:
            kinds.append("logs")
        return kinds

    def to_dict(self) -> dict[str, Any]:
        return {
            "result": {"result": self.status, "output": self.output},
            "storage": self.storage,
            "logs": [log.to_dict() for log in self.logs],
        }


# ── Divergence records ───────────────────────────────────────────────────────


class DivergenceCategory(str, enum.Enum):
    """Kinds of cross-backend divergence."""

    COMPILE_MISMATCH = "compile-mismatch"
    MISSING_EXECUTION = "missing-execution"
    OUTPUT_MISMATCH = "output-mismatch"
    EXECUTION_ERROR = "execution-error"

    @property
    def tag(self) -> str:
        """Discriminant written to the ``failure`` field of a result line."""
        return _FAILURE_TAGS[self]

    @property
    def is_compilation(self) -> bool:
        return self is DivergenceCategory.COMPILE_MISMATCH


_FAILURE_TAGS = {
    DivergenceCategory.COMPILE_MISMATCH: "compilation:error",
    DivergenceCategory.MISSING_EXECUTION: "fuzzing:no-fuzzing",
    DivergenceCategory.OUTPUT_MISMATCH: "fuzzing:output-mismatch",
    DivergenceCategory.EXECUTION_ERROR: "fuzzing:execution-error",
}


class DivergenceRecord(BaseModel):
    """A classified failure, serialized as one line of the results file."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    category: DivergenceCategory
    file: str
    version: str
    error: str | None = None
    function_name: str | None = Field(default=None, alias="functionName")
    encoded_call: str | None = Field(default=None, alias="encodedCall")
    call_parameters: list[str] | None = Field(default=None, alias="callParameters")
    run_result: dict[str, Any] | None = Field(default=None, alias="runResult")
    kinds: list[str] | None = None

    def to_dict(self) -> dict[str, Any]:
        body = self.model_dump(by_alias=True, exclude_none=True, exclude={"category"})
        return {"failure": self.category.tag, **body}
