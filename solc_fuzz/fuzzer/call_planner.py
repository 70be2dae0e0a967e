"""Random call generation for the target function.

One ``CallPlan`` is drawn per iteration, before any backend runs, and the
same encoded arguments go to every backend of that iteration.
"""

from __future__ import annotations

import logging
import re
import secrets
from dataclasses import dataclass
from typing import Any

from solc_fuzz.core.errors import ConfigurationError, UnsupportedParameterType
from solc_fuzz.core.types import CallPlan, SyntaxTree

logger = logging.getLogger(__name__)

_INT_TYPE_RE = re.compile(r"^(u?)int(\d*)$")
_WORD_BITS = 256


@dataclass(frozen=True)
class IntegerType:
    signed: bool
    bits: int

    @property
    def canonical(self) -> str:
        return f"{'int' if self.signed else 'uint'}{self.bits}"


def resolve_parameter_type(parameter: dict[str, Any]) -> IntegerType:
    """Resolve a ``VariableDeclaration`` node to its integer type.

    Raises:
        UnsupportedParameterType: for anything that is not ``intN``/``uintN``.
    """
    type_string = (
        parameter.get("typeDescriptions", {}).get("typeString")
        or parameter.get("typeName", {}).get("name")
        or ""
    )
    match = _INT_TYPE_RE.match(type_string.strip())
    if match is None:
        raise UnsupportedParameterType(type_string, parameter.get("name", ""))

    bits = int(match.group(2)) if match.group(2) else _WORD_BITS
    if bits % 8 or not 8 <= bits <= _WORD_BITS:
        raise UnsupportedParameterType(type_string, parameter.get("name", ""))
    return IntegerType(signed=match.group(1) != "u", bits=bits)


def random_integer(int_type: IntegerType) -> int:
    """Uniform value of *int_type* from a cryptographically strong source.

    Unsigned: ``[0, 2**N)``. Signed: a fair sign draw, then a magnitude,
    covering ``[-(2**(N-1)), 2**(N-1))``.
    """
    if not int_type.signed:
        return secrets.randbits(int_type.bits)
    magnitude = secrets.randbits(int_type.bits - 1)
    if secrets.randbits(1):
        return -magnitude - 1
    return magnitude


def encode_word(value: int) -> str:
    """ABI-encode one static integer as a 32-byte two's-complement word."""
    return (value % (1 << _WORD_BITS)).to_bytes(32, "big").hex()


def find_target_function(tree: SyntaxTree, name: str) -> dict[str, Any]:
    function = tree.find_function(name)
    if function is None:
        raise ConfigurationError(
            f"Function {name} not found in contract {tree.contract_name} ({tree.file_name})"
        )
    return function


def parameter_nodes(function: dict[str, Any]) -> list[dict[str, Any]]:
    return list(function.get("parameters", {}).get("parameters", []))


class CallPlanner:
    """Builds the per-iteration call to ``function_name``.

    ``version`` is the compiler version whose type rules the parameter
    declarations were read with (the first configured backend).
    """

    def __init__(self, function_name: str, version: str) -> None:
        self.function_name = function_name
        self.version = version

    def check(self, tree: SyntaxTree) -> None:
        """Fail early if *tree* lacks the target function or uses unsupported types."""
        for param in parameter_nodes(find_target_function(tree, self.function_name)):
            resolve_parameter_type(param)

    def plan(self, tree: SyntaxTree) -> CallPlan:
        function = find_target_function(tree, self.function_name)
        types = [resolve_parameter_type(p) for p in parameter_nodes(function)]
        values = [random_integer(t) for t in types]

        plan = CallPlan(
            function_name=self.function_name,
            parameter_types=tuple(t.canonical for t in types),
            parameter_values=tuple(values),
            encoded_arguments="".join(encode_word(v) for v in values),
        )
        logger.debug("Planned %s with %s (solc %s)", plan.signature, values, self.version)
        return plan
