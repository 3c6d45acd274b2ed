"""
Graph builder: converts parser output into the ordered statement model.
"""
from __future__ import annotations

import logging
import re
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence, Set, Tuple

from .errors import MalformedInputError
from .models import (
    ArithmeticOp, BlockValueRead, BoundKind, BoundType, CallKind, ContractGraph, ExternalCall, Function,
    Guard, GuardCheck, GuardKind, Loop, Mutability, Parameter, StateVariable, Statement,
    StorageRead, StorageWrite, Visibility,
)
from ..parsing.parsed_contract import AstNode, ParsedContract, ParsedFunction

logger = logging.getLogger(__name__)

BUILTIN_IDENTIFIERS = frozenset({
    "msg", "block", "tx", "this", "now", "gasleft", "abi", "keccak256", "sha256", "sha3",
    "ripemd160", "ecrecover", "address", "payable", "bool", "string", "bytes", "true", "false",
    "type", "super", "require", "assert", "revert", "blockhash", "addmod", "mulmod",
    "selfdestruct", "wei", "gwei", "ether", "seconds", "minutes", "hours", "days", "weeks",
})

BLOCK_VALUE_SOURCES = frozenset({
    "block.timestamp", "block.number", "block.difficulty", "block.prevrandao",
    "block.coinbase", "blockhash", "now",
})

DEFAULT_SAFE_HELPERS = ("SafeMath", "SafeCast", "Math.tryAdd", "Math.trySub", "Math.tryMul")

_STRING_LITERAL = re.compile(r"\"(?:[^\"\\]|\\.)*\"|'(?:[^'\\]|\\.)*'")
_ROOT_IDENTIFIER = re.compile(r"(?<![\w.$])([A-Za-z_$][\w$]*)")
_ELEMENTARY_TYPE = re.compile(r"^(u?int\d*|bytes\d*|fixed\w*|ufixed\w*)$")
# Contract, interface and struct names used as casts or constructors: IERC20(token)
_TYPE_CAST = re.compile(r"(?<![\w.$])([A-Z][\w$]*)\s*\(")
_INT_LITERAL = re.compile(r"^(0x[0-9a-fA-F]+|\d[\d_]*(e\d+)?)$")
_LENGTH_ACCESS = re.compile(r"^([A-Za-z_$][\w$]*)\.length$")
_VERSION = re.compile(r"(\d+)\.(\d+)(?:\.(\d+))?")

_GUARD_KINDS = {
    "owner": GuardKind.OWNER_CHECK,
    "role": GuardKind.ROLE_CHECK,
    "mutex": GuardKind.MUTEX,
    "custom": GuardKind.CUSTOM_MODIFIER,
    "none": GuardKind.NONE,
    "condition": GuardKind.CONDITION,
    "gas": GuardKind.GAS_CHECK,
}


def root_identifiers(expr: Optional[str]) -> List[str]:
    """Return the root identifiers referenced by an expression, in order."""
    if not expr:
        return []
    text = _STRING_LITERAL.sub("", str(expr))
    casts = set(_TYPE_CAST.findall(text))
    found: List[str] = []
    for name in _ROOT_IDENTIFIER.findall(text):
        if name in BUILTIN_IDENTIFIERS or name in casts or _ELEMENTARY_TYPE.match(name):
            continue
        if name not in found:
            found.append(name)
    return found


def _literal_value(text: str) -> int:
    text = text.replace("_", "")
    if text.startswith("0x"):
        return int(text, 16)
    if "e" in text:
        base, exp = text.split("e")
        return int(base) * 10 ** int(exp)
    return int(text)


def is_checked_by_default(compiler_version: Optional[str]) -> bool:
    """Solidity 0.8 and later reverts on overflow unless inside ``unchecked``."""
    if not compiler_version:
        return False
    match = _VERSION.search(compiler_version)
    if not match:
        return False
    major, minor = int(match.group(1)), int(match.group(2))
    return major > 0 or minor >= 8


class _Scope:
    """Identifier resolution for one function."""

    def __init__(self, state_vars: Dict[str, StateVariable], params: Iterable[Parameter],
                 function_name: str, members: Iterable[str] = ()):
        self.state_vars = state_vars
        self.params = {p.name: p for p in params}
        self.locals: Set[str] = set()
        # Functions, modifiers and declared types of the contract
        self.members: FrozenSet[str] = frozenset(members)
        self.function_name = function_name

    def is_value(self, name: str) -> bool:
        return name in self.state_vars or name in self.params or name in self.locals

    def is_known(self, name: str) -> bool:
        return self.is_value(name) or name in self.members

    def check(self, names: Iterable[str]) -> None:
        for name in names:
            if not self.is_known(name):
                raise MalformedInputError(
                    f"Undeclared identifier '{name}'", identifier=name,
                    function_name=self.function_name,
                )

    def check_expr(self, expr: Optional[str]) -> Tuple[str, ...]:
        names = root_identifiers(expr)
        self.check(names)
        return tuple(n for n in names if self.is_value(n))

    def check_state_var(self, name: Optional[str]) -> str:
        if not name:
            raise MalformedInputError("Storage access without a variable", function_name=self.function_name)
        if name not in self.state_vars:
            self.check([name])
            raise MalformedInputError(
                f"'{name}' is not a state variable", identifier=name, function_name=self.function_name,
            )
        return name


class GraphBuilder:
    """
    Builds a ``ContractGraph`` from a ``ParsedContract``.

    Pure transform: statement order in every function matches source order
    and positions are assigned in pre-order, loop bodies included.
    """

    def __init__(self, safe_helpers: Sequence[str] = DEFAULT_SAFE_HELPERS):
        self.safe_helpers = tuple(safe_helpers)

    def build(self, parsed: ParsedContract) -> ContractGraph:
        state_vars = {
            v.name: StateVariable(name=v.name, type=v.type, line=v.line, is_constant=v.is_constant)
            for v in parsed.state_variables
        }
        modifiers = {m.name: m for m in parsed.modifiers}
        members = {f.name for f in parsed.functions} | set(modifiers) | set(parsed.types) | {parsed.name}
        checked_default = is_checked_by_default(parsed.compiler_version)

        functions: List[Function] = []
        seen: Set[str] = set()
        for pf in parsed.functions:
            if pf.name in seen:
                raise MalformedInputError(
                    f"Duplicate function name '{pf.name}'; the parser must supply unique names",
                    identifier=pf.name,
                )
            seen.add(pf.name)
            functions.append(
                _FunctionBuilder(
                    parsed.name, pf, state_vars, modifiers, members, checked_default, self.safe_helpers,
                ).build()
            )

        logger.debug("Built graph for %s: %d functions", parsed.name, len(functions))
        return ContractGraph(
            name=parsed.name,
            functions=tuple(functions),
            state_variables=tuple(state_vars.values()),
            compiler_version=parsed.compiler_version,
        )


class _FunctionBuilder:

    def __init__(self, contract_name, parsed: ParsedFunction, state_vars, modifiers, members,
                 checked_default: bool, safe_helpers: Tuple[str, ...]):
        self.contract_name = contract_name
        self.parsed = parsed
        self.modifiers = modifiers
        self.checked_default = checked_default
        self.safe_helpers = safe_helpers
        self.params = tuple(Parameter(p.name, p.type) for p in parsed.parameters)
        self.scope = _Scope(state_vars, self.params, parsed.name, members)
        self._next_position = 0

    def build(self) -> Function:
        pf = self.parsed
        return Function(
            name=pf.name,
            contract_name=self.contract_name,
            visibility=self._enum(Visibility, pf.visibility, "visibility"),
            mutability=self._enum(Mutability, pf.mutability, "mutability"),
            guards=self._resolve_guards(),
            parameters=self.params,
            statements=tuple(self._convert_block(pf.body)),
            is_constructor=pf.is_constructor,
            returns_sensitive=pf.returns_sensitive,
            line=pf.line,
        )

    def _enum(self, enum_cls, value: str, what: str):
        try:
            return enum_cls((value or "").lower())
        except ValueError:
            raise MalformedInputError(
                f"Invalid {what} '{value}'", identifier=value, function_name=self.parsed.name,
            ) from None

    def _resolve_guards(self) -> FrozenSet[Guard]:
        guards = set()
        for name in self.parsed.modifiers:
            modifier = self.modifiers.get(name)
            if modifier is None:
                raise MalformedInputError(
                    f"Undeclared modifier '{name}'", identifier=name, function_name=self.parsed.name,
                )
            kind = _GUARD_KINDS.get(modifier.kind)
            if kind is None or kind in (GuardKind.CONDITION, GuardKind.GAS_CHECK):
                logger.debug("Modifier %s has unrecognised kind %r, treating as custom", name, modifier.kind)
                kind = GuardKind.CUSTOM_MODIFIER
            if kind == GuardKind.NONE:
                continue
            guards.add(Guard(kind=kind, name=name, role_expr=modifier.role))
        return frozenset(guards)

    def _take_position(self) -> int:
        position = self._next_position
        self._next_position += 1
        return position

    def _convert_block(self, nodes: List[AstNode]) -> List[Statement]:
        statements: List[Statement] = []
        for node in nodes:
            statements.extend(self._convert(node))
        return statements

    def _convert(self, node: AstNode) -> List[Statement]:
        handler = getattr(self, f"_convert_{node.kind}", None)
        if handler is None:
            raise MalformedInputError(
                f"Unknown statement kind '{node.kind}'", identifier=node.kind,
                function_name=self.parsed.name,
            )
        return handler(node)

    def _convert_declare(self, node: AstNode) -> List[Statement]:
        name = node.get("name")
        if not name:
            raise MalformedInputError("Local declaration without a name", function_name=self.parsed.name)
        self.scope.check_expr(node.get("value"))
        self.scope.locals.add(name)
        return []

    def _convert_read(self, node: AstNode) -> List[Statement]:
        var = self.scope.check_state_var(node.get("var"))
        return [StorageRead(position=self._take_position(), line=node.line, var=var)]

    def _convert_write(self, node: AstNode) -> List[Statement]:
        var = self.scope.check_state_var(node.get("var"))
        sources: List[str] = []
        for expr in node.get("sources", []):
            sources.extend(n for n in self.scope.check_expr(expr) if n not in sources)
        return [StorageWrite(position=self._take_position(), line=node.line, var=var, sources=tuple(sources))]

    def _convert_call(self, node: AstNode) -> List[Statement]:
        target = node.get("target")
        if not target:
            raise MalformedInputError("External call without a target", function_name=self.parsed.name)
        value = node.get("value")
        reads = list(self.scope.check_expr(target))
        for name in self.scope.check_expr(value):
            if name not in reads:
                reads.append(name)
        for arg in node.get("args", []):
            self.scope.check_expr(arg)
        call_kind = self._enum(CallKind, node.get("call_kind", "low_level"), "call kind")
        return [ExternalCall(
            position=self._take_position(),
            line=node.line,
            target_expr=str(target),
            value_expr=None if value is None else str(value),
            call_kind=call_kind,
            trusted_target=bool(node.get("trusted", False)),
            reads=tuple(reads),
        )]

    def _convert_arith(self, node: AstNode) -> List[Statement]:
        operator = node.get("operator")
        if not operator:
            raise MalformedInputError("Arithmetic node without an operator", function_name=self.parsed.name)
        operands: List[str] = []
        for expr in node.get("operands", []):
            operands.extend(n for n in self.scope.check_expr(expr) if n not in operands)
        result = node.get("result")
        if result is not None:
            self.scope.check([result])
        return [ArithmeticOp(
            position=self._take_position(),
            line=node.line,
            operator=operator,
            operand_type=node.get("operand_type", "uint256"),
            checked=self._is_checked(node),
            operands=tuple(operands),
            result=result,
        )]

    def _is_checked(self, node: AstNode) -> bool:
        helper = node.get("helper")
        if helper and any(helper == h or helper.startswith(h + ".") for h in self.safe_helpers):
            return True
        if node.get("unchecked", False):
            return False
        return self.checked_default

    def _convert_loop(self, node: AstNode) -> List[Statement]:
        position = self._take_position()
        index_var = node.get("index")
        if index_var:
            self.scope.locals.add(index_var)
        init_from = node.get("init_from")
        if init_from is not None:
            self.scope.check_state_var(init_from)
        bound = self._derive_bound(node.get("bound"))
        body = tuple(self._convert_block(node.body))
        return [Loop(
            position=position, line=node.line, bound=bound, body=body,
            index_var=index_var, init_from=init_from,
        )]

    def _derive_bound(self, expr: Optional[str]) -> BoundKind:
        if expr is None:
            return BoundKind.unbounded()
        text = str(expr).strip()
        if _INT_LITERAL.match(text):
            return BoundKind.constant(_literal_value(text))
        self.scope.check_expr(text)
        length = _LENGTH_ACCESS.match(text)
        if length:
            base = length.group(1)
            if base in self.scope.state_vars:
                return BoundKind.storage_length(base)
            if base in self.scope.params:
                return BoundKind.parameter(base)
            return BoundKind.unbounded()
        if text in self.scope.params:
            return BoundKind.parameter(text)
        state_var = self.scope.state_vars.get(text)
        if state_var is not None and state_var.is_constant:
            return BoundKind(BoundType.CONSTANT, text)
        return BoundKind.unbounded()

    def _convert_require(self, node: AstNode) -> List[Statement]:
        kind_name = node.get("guard", "condition")
        kind = _GUARD_KINDS.get(kind_name)
        if kind is None or kind == GuardKind.NONE:
            raise MalformedInputError(
                f"Unknown guard kind '{kind_name}'", identifier=kind_name, function_name=self.parsed.name,
            )
        reads: List[str] = []
        for expr in node.get("reads", []):
            reads.extend(n for n in self.scope.check_expr(expr) if n not in reads)
        bounds: List[str] = []
        for expr in node.get("bounds", []):
            bounds.extend(n for n in self.scope.check_expr(expr) if n not in bounds)
        return [GuardCheck(
            position=self._take_position(), line=node.line, kind=kind,
            reads=tuple(reads), bounds=tuple(bounds), role_expr=node.get("role"),
        )]

    def _convert_branch(self, node: AstNode) -> List[Statement]:
        reads: List[str] = []
        for expr in node.get("reads", []):
            reads.extend(n for n in self.scope.check_expr(expr) if n not in reads)
        statements: List[Statement] = [GuardCheck(
            position=self._take_position(), line=node.line, kind=GuardKind.CONDITION, reads=tuple(reads),
        )]
        statements.extend(self._convert_block(node.body))
        statements.extend(self._convert_block(node.else_body))
        return statements

    def _convert_block_value(self, node: AstNode) -> List[Statement]:
        source = node.get("source")
        if source not in BLOCK_VALUE_SOURCES:
            raise MalformedInputError(
                f"Unknown block value source '{source}'", identifier=source, function_name=self.parsed.name,
            )
        target = node.get("target")
        if target is not None:
            self.scope.check([target])
        return [BlockValueRead(position=self._take_position(), line=node.line, source=source, target=target)]
