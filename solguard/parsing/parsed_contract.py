"""
Inbound model for parser output.

The external Solidity parser resolves identifiers, types and modifier bodies
and hands the core a ``ParsedContract``. This module defines that shape and
loads it from the JSON the parser writes.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from solguard.core.errors import MalformedInputError

logger = logging.getLogger(__name__)

NODE_KINDS = frozenset({
    "read", "write", "call", "arith", "loop", "require", "branch", "declare", "block_value",
})


@dataclass
class ParsedParameter:
    name: str
    type: str


@dataclass
class ParsedStateVariable:
    name: str
    type: str
    line: int = 0
    is_constant: bool = False


@dataclass
class ParsedModifier:
    """Modifier already classified by the parser (owner, role, mutex or custom)."""
    name: str
    kind: str = "custom"
    role: Optional[str] = None


@dataclass
class AstNode:
    """One statement-level node of a function body."""
    kind: str
    line: int = 0
    attrs: Dict[str, Any] = field(default_factory=dict)
    body: List["AstNode"] = field(default_factory=list)
    else_body: List["AstNode"] = field(default_factory=list)

    def get(self, key: str, default: Any = None) -> Any:
        return self.attrs.get(key, default)


@dataclass
class ParsedFunction:
    name: str
    visibility: str = "public"
    mutability: str = "nonpayable"
    parameters: List[ParsedParameter] = field(default_factory=list)
    modifiers: List[str] = field(default_factory=list)
    body: List[AstNode] = field(default_factory=list)
    is_constructor: bool = False
    returns_sensitive: bool = False
    line: int = 0


@dataclass
class ParsedContract:
    name: str
    functions: List[ParsedFunction] = field(default_factory=list)
    state_variables: List[ParsedStateVariable] = field(default_factory=list)
    modifiers: List[ParsedModifier] = field(default_factory=list)
    compiler_version: Optional[str] = None
    # Contract, interface, struct and enum names visible to the contract
    types: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ParsedContract":
        """Create a ParsedContract from the parser's JSON structure."""
        if not isinstance(data, dict):
            raise MalformedInputError("Parsed contract must be a JSON object")
        name = _require(data, "name", "contract")
        return cls(
            name=name,
            compiler_version=data.get("compiler_version"),
            state_variables=[
                ParsedStateVariable(
                    name=_require(v, "name", "state variable"),
                    type=v.get("type", "uint256"),
                    line=v.get("line", 0),
                    is_constant=bool(v.get("constant", False)),
                )
                for v in data.get("state_variables", [])
            ],
            modifiers=[
                ParsedModifier(
                    name=_require(m, "name", "modifier"),
                    kind=m.get("kind", "custom"),
                    role=m.get("role"),
                )
                for m in data.get("modifiers", [])
            ],
            functions=[_parse_function(f) for f in data.get("functions", [])],
            types=[str(t) for t in data.get("types", [])],
        )


def _require(data: Dict[str, Any], key: str, what: str) -> Any:
    if not isinstance(data, dict) or key not in data:
        raise MalformedInputError(f"Missing '{key}' in {what} entry", identifier=key)
    return data[key]


def _parse_function(data: Dict[str, Any]) -> ParsedFunction:
    name = _require(data, "name", "function")
    return ParsedFunction(
        name=name,
        visibility=data.get("visibility", "public"),
        mutability=data.get("mutability", "nonpayable"),
        parameters=[
            ParsedParameter(name=_require(p, "name", "parameter"), type=p.get("type", "uint256"))
            for p in data.get("parameters", [])
        ],
        modifiers=list(data.get("modifiers", [])),
        body=[_parse_node(n) for n in data.get("body", [])],
        is_constructor=bool(data.get("is_constructor", False)),
        returns_sensitive=bool(data.get("returns_sensitive", False)),
        line=data.get("line", 0),
    )


def _parse_node(data: Dict[str, Any]) -> AstNode:
    kind = _require(data, "kind", "statement")
    if kind not in NODE_KINDS:
        raise MalformedInputError(f"Unknown statement kind '{kind}'", identifier=kind)
    attrs = {k: v for k, v in data.items() if k not in ("kind", "line", "body", "else")}
    return AstNode(
        kind=kind,
        line=data.get("line", 0),
        attrs=attrs,
        body=[_parse_node(n) for n in data.get("body", [])],
        else_body=[_parse_node(n) for n in data.get("else", [])],
    )


def load_parsed_contract(path: Union[str, Path]) -> ParsedContract:
    """Load parser output written as JSON."""
    path = Path(path)
    logger.debug("Loading parsed contract from %s", path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise MalformedInputError(f"Invalid JSON in {path}: {e}") from e
    return ParsedContract.from_dict(data)
