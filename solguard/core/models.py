"""Core data models for contract analysis."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum, IntEnum
from typing import Any, Dict, FrozenSet, Iterator, List, Optional, Tuple, Union
import hashlib
import json


class Severity(IntEnum):
    """Severity levels for findings with deterministic ordering and scores."""
    INFO = 1
    LOW = 2
    MEDIUM = 3
    HIGH = 4
    CRITICAL = 5

    @property
    def score(self) -> int:
        """Numeric score used for comparisons and gating."""
        return int(self)

    @classmethod
    def from_string(cls, value: str) -> "Severity":
        name = (value or "").upper()
        if name in cls.__members__:
            return cls[name]
        raise ValueError(f"Unknown severity: {value}")

    def __str__(self) -> str:
        return self.name


class Visibility(str, Enum):
    PUBLIC = "public"
    EXTERNAL = "external"
    INTERNAL = "internal"
    PRIVATE = "private"


class Mutability(str, Enum):
    PAYABLE = "payable"
    VIEW = "view"
    PURE = "pure"
    NONPAYABLE = "nonpayable"


class CallKind(str, Enum):
    """How an external call reaches its target."""
    LOW_LEVEL = "low_level"
    DELEGATECALL = "delegatecall"
    TRANSFER = "transfer"
    SEND = "send"
    INTERFACE = "interface"


class GuardKind(str, Enum):
    """Guard variants carried by functions and guard-check statements."""
    ROLE_CHECK = "role"
    OWNER_CHECK = "owner"
    CUSTOM_MODIFIER = "custom"
    MUTEX = "mutex"
    NONE = "none"
    # In-body checks only
    CONDITION = "condition"
    GAS_CHECK = "gas"


ACCESS_GUARD_KINDS = frozenset({GuardKind.ROLE_CHECK, GuardKind.OWNER_CHECK, GuardKind.CUSTOM_MODIFIER})


@dataclass(frozen=True)
class Guard:
    """A permission or mutual-exclusion guard attached to a function."""
    kind: GuardKind
    name: Optional[str] = None
    role_expr: Optional[str] = None

    @property
    def is_access_guard(self) -> bool:
        return self.kind in ACCESS_GUARD_KINDS


class BoundType(str, Enum):
    CONSTANT = "constant"
    PARAMETER = "parameter"
    STORAGE_COLLECTION_LENGTH = "storage_collection_length"
    UNBOUNDED = "unbounded"


@dataclass(frozen=True)
class BoundKind:
    """Iteration bound of a loop, derived once from its condition."""
    kind: BoundType
    value: Optional[Union[int, str]] = None

    @classmethod
    def constant(cls, n: int) -> "BoundKind":
        return cls(BoundType.CONSTANT, n)

    @classmethod
    def parameter(cls, name: str) -> "BoundKind":
        return cls(BoundType.PARAMETER, name)

    @classmethod
    def storage_length(cls, var: str) -> "BoundKind":
        return cls(BoundType.STORAGE_COLLECTION_LENGTH, var)

    @classmethod
    def unbounded(cls) -> "BoundKind":
        return cls(BoundType.UNBOUNDED)

    def __str__(self) -> str:
        if self.value is None:
            return self.kind.value
        return f"{self.kind.value}({self.value})"


# Statements. Every statement carries its pre-order position inside the
# function and the source line reported by the parser.

@dataclass(frozen=True)
class StorageRead:
    position: int
    line: int
    var: str


@dataclass(frozen=True)
class StorageWrite:
    position: int
    line: int
    var: str
    sources: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ExternalCall:
    position: int
    line: int
    target_expr: str
    value_expr: Optional[str] = None
    call_kind: CallKind = CallKind.LOW_LEVEL
    trusted_target: bool = False
    reads: Tuple[str, ...] = ()

    @property
    def value_is_zero(self) -> bool:
        return self.value_expr is not None and _is_zero_literal(self.value_expr)

    @property
    def transfers_value(self) -> bool:
        return self.value_expr is not None and not self.value_is_zero

    @property
    def invokes_unknown_contract(self) -> bool:
        if self.call_kind in (CallKind.LOW_LEVEL, CallKind.DELEGATECALL):
            return True
        return self.call_kind == CallKind.INTERFACE and not self.trusted_target


@dataclass(frozen=True)
class ArithmeticOp:
    position: int
    line: int
    operator: str
    operand_type: str
    checked: bool
    operands: Tuple[str, ...] = ()
    result: Optional[str] = None


@dataclass(frozen=True)
class Loop:
    position: int
    line: int
    bound: BoundKind
    body: Tuple["Statement", ...] = ()
    index_var: Optional[str] = None
    init_from: Optional[str] = None

    @property
    def end_position(self) -> int:
        end = self.position
        for stmt in self.body:
            end = stmt.end_position if isinstance(stmt, Loop) else stmt.position
        return end

    def walk_body(self) -> Iterator["Statement"]:
        for stmt in self.body:
            yield stmt
            if isinstance(stmt, Loop):
                yield from stmt.walk_body()


@dataclass(frozen=True)
class GuardCheck:
    position: int
    line: int
    kind: GuardKind
    reads: Tuple[str, ...] = ()
    bounds: Tuple[str, ...] = ()
    role_expr: Optional[str] = None


@dataclass(frozen=True)
class BlockValueRead:
    position: int
    line: int
    source: str
    target: Optional[str] = None


Statement = Union[StorageRead, StorageWrite, ExternalCall, ArithmeticOp, Loop, GuardCheck, BlockValueRead]


def _is_zero_literal(expr: str) -> bool:
    text = expr.strip()
    if text.startswith("0x"):
        return set(text[2:]) <= {"0"}
    return text.replace("_", "") in {"0", "0.0"} or text in {"0 ether", "0 wei"}


@dataclass(frozen=True)
class Parameter:
    name: str
    type: str

    @property
    def is_address(self) -> bool:
        return self.type.replace(" payable", "").strip() == "address"


@dataclass(frozen=True)
class StateVariable:
    name: str
    type: str
    line: int = 0
    is_constant: bool = False

    @property
    def is_collection(self) -> bool:
        return self.type.startswith("mapping") or self.type.endswith("]")


@dataclass(frozen=True)
class Function:
    """Contract function, the unit of analysis. Immutable once built."""
    name: str
    contract_name: str
    visibility: Visibility
    mutability: Mutability
    statements: Tuple[Statement, ...] = ()
    guards: FrozenSet[Guard] = frozenset()
    parameters: Tuple[Parameter, ...] = ()
    is_constructor: bool = False
    returns_sensitive: bool = False
    line: int = 0

    @property
    def is_externally_reachable(self) -> bool:
        return self.visibility in (Visibility.PUBLIC, Visibility.EXTERNAL)

    @property
    def is_read_only(self) -> bool:
        return self.mutability in (Mutability.VIEW, Mutability.PURE)

    @property
    def parameter_names(self) -> FrozenSet[str]:
        return frozenset(p.name for p in self.parameters)

    def walk(self) -> Iterator[Statement]:
        """Yield every statement in pre-order, loop bodies included."""
        for stmt in self.statements:
            yield stmt
            if isinstance(stmt, Loop):
                yield from stmt.walk_body()

    def statement_count(self) -> int:
        return sum(1 for _ in self.walk())

    def has_guard(self, kind: GuardKind) -> bool:
        if any(g.kind == kind for g in self.guards):
            return True
        return any(isinstance(s, GuardCheck) and s.kind == kind for s in self.walk())


@dataclass(frozen=True)
class ContractGraph:
    """Built statement model for one contract."""
    name: str
    functions: Tuple[Function, ...]
    state_variables: Tuple[StateVariable, ...] = ()
    compiler_version: Optional[str] = None

    def function_names(self) -> List[str]:
        return [f.name for f in self.functions]

    def get_function(self, name: str) -> Optional[Function]:
        for func in self.functions:
            if func.name == name:
                return func
        return None


@dataclass(frozen=True)
class Finding:
    """Security finding emitted by a rule."""
    rule_id: str
    function_name: str
    statement_position: int
    severity: Severity
    message: str
    contract_name: str = ""
    line: int = 0
    title: str = ""
    recommendation: str = ""
    cwe_id: Optional[str] = None
    references: Tuple[str, ...] = ()

    @property
    def key(self) -> Tuple[str, str, int]:
        return (self.rule_id, self.function_name, self.statement_position)

    @property
    def sort_key(self) -> Tuple[int, str, int, str, str]:
        return (-self.severity.score, self.rule_id, self.statement_position, self.function_name, self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rule_id": self.rule_id,
            "contract_name": self.contract_name,
            "function_name": self.function_name,
            "statement_position": self.statement_position,
            "line": self.line,
            "severity": self.severity.name,
            "title": self.title,
            "message": self.message,
            "recommendation": self.recommendation,
            "cwe_id": self.cwe_id,
            "references": list(self.references),
        }


class RuleStatus(str, Enum):
    FINDINGS = "findings"
    CLEAN = "clean"
    NOT_APPLICABLE = "not_applicable"


@dataclass(frozen=True)
class RuleOutcome:
    """Records that a rule ran on a function and what it concluded."""
    rule_id: str
    function_name: str
    status: RuleStatus


@dataclass(frozen=True)
class RuleResult:
    """Private output of one (function x rule) run."""
    rule_id: str
    function_name: str
    findings: Tuple[Finding, ...] = ()
    applicable: bool = True

    @property
    def outcome(self) -> RuleOutcome:
        if self.findings:
            status = RuleStatus.FINDINGS
        elif self.applicable:
            status = RuleStatus.CLEAN
        else:
            status = RuleStatus.NOT_APPLICABLE
        return RuleOutcome(self.rule_id, self.function_name, status)


@dataclass(frozen=True)
class Report:
    """Final ordered report for one contract."""
    contract_name: str
    ordered_findings: Tuple[Finding, ...]
    analyzed_at: datetime
    outcomes: Tuple[RuleOutcome, ...] = ()
    rules_run: Tuple[str, ...] = ()
    tool_version: str = ""
    severity_threshold: Severity = Severity.INFO

    @property
    def highest_severity(self) -> Optional[Severity]:
        if not self.ordered_findings:
            return None
        return self.ordered_findings[0].severity

    def count_by_severity(self) -> Dict[str, int]:
        counts = {sev.name: 0 for sev in sorted(Severity, reverse=True)}
        for finding in self.ordered_findings:
            counts[finding.severity.name] += 1
        return counts

    def findings_for(self, rule_id: str) -> List[Finding]:
        return [f for f in self.ordered_findings if f.rule_id == rule_id]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "meta": {
                "contract_name": self.contract_name,
                "analyzed_at": self.analyzed_at.isoformat(),
                "tool_version": self.tool_version,
                "rules_run": list(self.rules_run),
                "severity_threshold": self.severity_threshold.name,
                "total_findings": len(self.ordered_findings),
                "by_severity": self.count_by_severity(),
                "digest": self.digest(),
            },
            "findings": [f.to_dict() for f in self.ordered_findings],
            "outcomes": [
                {"rule_id": o.rule_id, "function_name": o.function_name, "status": o.status.value}
                for o in self.outcomes
            ],
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, sort_keys=True)

    def digest(self) -> str:
        """Stable hash over findings and outcomes, independent of analyzed_at."""
        payload = {
            "contract": self.contract_name,
            "findings": [f.to_dict() for f in self.ordered_findings],
            "outcomes": [[o.rule_id, o.function_name, o.status.value] for o in self.outcomes],
        }
        canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
