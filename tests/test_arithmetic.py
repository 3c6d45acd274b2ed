"""
Tests for the arithmetic effect analyzer and unchecked-arithmetic rule.
"""
import pytest

from solguard.core.models import RuleStatus, Severity
from solguard.rules.arithmetic import UncheckedArithmeticRule, analyze_arithmetic, operand_width
from solguard.rules.base import RuleContext

from factories import build_graph, make_contract, make_function, run_rule


def _deposit(body, compiler_version="0.7.6"):
    return make_contract([make_function("deposit", body)], compiler_version=compiler_version)


ADD_TO_BALANCE = {
    "kind": "arith", "operator": "+=", "operand_type": "uint256",
    "operands": ["balances[msg.sender]", "amount"], "result": "balances", "line": 20,
}


def test_wrapping_add_to_storage_is_high():
    result = run_rule(UncheckedArithmeticRule, _deposit([ADD_TO_BALANCE]), "deposit")

    assert len(result.findings) == 1
    finding = result.findings[0]
    assert finding.severity == Severity.HIGH
    assert finding.statement_position == 0
    assert finding.line == 20
    assert "256-bit" in finding.message


def test_checked_compiler_yields_clean():
    result = run_rule(UncheckedArithmeticRule, _deposit([ADD_TO_BALANCE], "0.8.20"), "deposit")
    assert result.findings == ()
    assert result.outcome.status == RuleStatus.CLEAN


def test_unchecked_block_on_checked_compiler_is_reported():
    node = dict(ADD_TO_BALANCE, unchecked=True)
    result = run_rule(UncheckedArithmeticRule, _deposit([node], "0.8.20"), "deposit")
    assert [f.severity for f in result.findings] == [Severity.HIGH]


def test_safe_helper_counts_as_checked():
    node = dict(ADD_TO_BALANCE, helper="SafeMath.add")
    result = run_rule(UncheckedArithmeticRule, _deposit([node]), "deposit")
    assert result.findings == ()


def test_guard_immediately_before_suppresses_finding():
    body = [
        {"kind": "require", "reads": ["amount <= 1000"], "bounds": ["amount"]},
        ADD_TO_BALANCE,
    ]
    result = run_rule(UncheckedArithmeticRule, _deposit(body), "deposit")
    assert result.findings == ()


def test_guard_separated_by_another_statement_does_not_count():
    body = [
        {"kind": "require", "reads": ["amount <= 1000"], "bounds": ["amount"]},
        {"kind": "read", "var": "owner"},
        ADD_TO_BALANCE,
    ]
    result = run_rule(UncheckedArithmeticRule, _deposit(body), "deposit")
    assert [f.statement_position for f in result.findings] == [2]


def test_local_result_that_never_reaches_storage_is_ignored():
    body = [
        {"kind": "declare", "name": "fee", "type": "uint256"},
        {"kind": "arith", "operator": "*", "operand_type": "uint256", "operands": ["amount"], "result": "fee"},
    ]
    result = run_rule(UncheckedArithmeticRule, _deposit(body), "deposit")
    assert result.findings == ()


def test_local_result_written_to_storage_is_reported():
    body = [
        {"kind": "declare", "name": "fee", "type": "uint256"},
        {"kind": "arith", "operator": "*", "operand_type": "uint256", "operands": ["amount"], "result": "fee"},
        {"kind": "write", "var": "balances", "sources": ["fee"]},
    ]
    result = run_rule(UncheckedArithmeticRule, _deposit(body), "deposit")
    assert [f.statement_position for f in result.findings] == [0]


def test_subtraction_message_mentions_underflow():
    node = dict(ADD_TO_BALANCE, operator="-=")
    result = run_rule(UncheckedArithmeticRule, _deposit([node]), "deposit")
    assert "underflow" in result.findings[0].message


def test_division_is_not_applicable():
    node = dict(ADD_TO_BALANCE, operator="/")
    result = run_rule(UncheckedArithmeticRule, _deposit([node]), "deposit")
    assert result.outcome.status == RuleStatus.NOT_APPLICABLE


def test_non_integer_operand_type_is_info():
    node = dict(ADD_TO_BALANCE, operand_type="UFixed")
    result = run_rule(UncheckedArithmeticRule, _deposit([node]), "deposit")
    assert [f.severity for f in result.findings] == [Severity.INFO]
    assert result.findings[0].title == "Unverifiable arithmetic operand type"


@pytest.mark.parametrize("type_name,expected", [
    ("uint8", (8, False)),
    ("uint", (256, False)),
    ("int128", (128, True)),
    ("int", (256, True)),
    ("address", (None, False)),
])
def test_operand_width(type_name, expected):
    assert operand_width(type_name) == expected


def test_effects_describe_each_operation():
    body = [
        ADD_TO_BALANCE,
        {"kind": "arith", "operator": "%", "operand_type": "uint8", "operands": ["amount"]},
    ]
    graph = build_graph(_deposit(body))
    context = RuleContext(contract_name=graph.name, state_variables=graph.state_variables)
    first, second = analyze_arithmetic(graph.get_function("deposit"), context)

    assert first.wrapping and first.can_overflow and first.influences_storage
    assert second.bit_width == 8
    assert not second.can_overflow
