"""
Tests for the access-control resolver and missing-access-control rule.
"""
import pytest

from solguard.core.models import RuleStatus, Severity
from solguard.rules.access_control import AccessResolver, MissingAccessControlRule

from factories import build_graph, make_contract, make_function, run_rule

SET_OWNER = [
    {"kind": "read", "var": "balances", "line": 40},
    {"kind": "write", "var": "owner", "sources": ["newOwner"], "line": 41},
]
NEW_OWNER = [{"name": "newOwner", "type": "address"}]

MODIFIERS = [
    {"name": "onlyOwner", "kind": "owner"},
    {"name": "onlyGuardian", "kind": "custom"},
    {"name": "whenNotPaused", "kind": "custom"},
    {"name": "nonReentrant", "kind": "mutex"},
]


def _contract(**kwargs):
    kwargs.setdefault("parameters", NEW_OWNER)
    body = kwargs.pop("body", SET_OWNER)
    return make_contract([make_function("setOwner", body, **kwargs)], modifiers=MODIFIERS)


def test_unguarded_public_write_is_critical():
    result = run_rule(MissingAccessControlRule, _contract(), "setOwner")

    assert len(result.findings) == 1
    finding = result.findings[0]
    assert finding.severity == Severity.CRITICAL
    assert finding.statement_position == 1
    assert finding.line == 41


def test_owner_modifier_is_clean():
    result = run_rule(MissingAccessControlRule, _contract(modifiers=["onlyOwner"]), "setOwner")
    assert result.findings == ()
    assert result.outcome.status == RuleStatus.CLEAN


def test_in_body_owner_check_is_clean():
    body = [{"kind": "require", "guard": "owner", "reads": ["msg.sender == owner"]}] + SET_OWNER
    result = run_rule(MissingAccessControlRule, _contract(body=body), "setOwner")
    assert result.findings == ()


def test_mutex_is_not_an_access_guard():
    result = run_rule(MissingAccessControlRule, _contract(modifiers=["nonReentrant"]), "setOwner")
    assert [f.severity for f in result.findings] == [Severity.CRITICAL]


def test_unknown_custom_modifier_is_info():
    result = run_rule(MissingAccessControlRule, _contract(modifiers=["whenNotPaused"]), "setOwner")

    assert [f.severity for f in result.findings] == [Severity.INFO]
    assert result.findings[0].title == "Unverifiable access guard"
    assert "whenNotPaused" in result.findings[0].message


def test_unknown_modifier_beside_recognized_guard_is_info():
    contract = _contract(modifiers=["onlyOwner", "whenNotPaused"])
    result = run_rule(MissingAccessControlRule, contract, "setOwner")

    assert [(f.severity, f.statement_position) for f in result.findings] == [(Severity.INFO, 1)]
    finding = result.findings[0]
    assert finding.title == "Unverifiable access guard"
    assert "guarded by onlyOwner" in finding.message
    assert "whenNotPaused" in finding.message


def test_in_body_check_beside_unknown_modifier_is_info():
    body = [{"kind": "require", "guard": "owner", "reads": ["msg.sender == owner"]}] + SET_OWNER
    result = run_rule(MissingAccessControlRule, _contract(body=body, modifiers=["whenNotPaused"]), "setOwner")

    assert [f.severity for f in result.findings] == [Severity.INFO]
    assert "in-body owner check" in result.findings[0].message


def test_only_prefixed_custom_modifier_is_recognized():
    result = run_rule(MissingAccessControlRule, _contract(modifiers=["onlyGuardian"]), "setOwner")
    assert result.findings == ()


def test_configured_modifier_is_recognized():
    result = run_rule(
        MissingAccessControlRule, _contract(modifiers=["whenNotPaused"]), "setOwner",
        known_modifiers=["whenNotPaused"],
    )
    assert result.findings == ()


@pytest.mark.parametrize("overrides", [
    {"visibility": "internal"},
    {"visibility": "private"},
    {"is_constructor": True},
])
def test_unreachable_or_constructor_is_not_applicable(overrides):
    result = run_rule(MissingAccessControlRule, _contract(**overrides), "setOwner")
    assert result.outcome.status == RuleStatus.NOT_APPLICABLE


def test_function_without_sensitive_statements_is_not_applicable():
    body = [{"kind": "read", "var": "owner"}]
    result = run_rule(MissingAccessControlRule, _contract(body=body), "setOwner")
    assert result.outcome.status == RuleStatus.NOT_APPLICABLE


def test_value_transfer_is_sensitive():
    body = [{"kind": "call", "target": "newOwner", "value": "address(this).balance", "line": 50}]
    result = run_rule(MissingAccessControlRule, _contract(body=body), "setOwner")
    assert [f.statement_position for f in result.findings] == [0]


def test_view_returning_sensitive_data_is_reported():
    body = [{"kind": "read", "var": "owner"}]
    contract = _contract(body=body, mutability="view", returns_sensitive=True, line=60)
    result = run_rule(MissingAccessControlRule, contract, "setOwner")

    assert len(result.findings) == 1
    assert result.findings[0].statement_position == 0
    assert result.findings[0].line == 60
    assert "returns sensitive data" in result.findings[0].message


def test_resolver_splits_recognized_and_unresolved():
    contract = _contract(modifiers=["onlyOwner", "whenNotPaused", "nonReentrant"])
    func = build_graph(contract).get_function("setOwner")
    resolution = AccessResolver().resolve(func)

    assert [g.name for g in resolution.recognized] == ["onlyOwner"]
    assert [g.name for g in resolution.unresolved] == ["whenNotPaused"]
    assert not resolution.is_empty
