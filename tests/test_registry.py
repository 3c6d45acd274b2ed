"""
Tests for rule registration and selector matching.
"""
import importlib

from solguard.core.registry import discover_rules, get_registered_rules, get_rule
from solguard.rules import explain_selector, load_rules, match_rules
from solguard.rules.reentrancy import ReentrancyRule

ALL_RULE_IDS = [
    "MISSING_ACCESS_CONTROL", "REENTRANCY", "UNBOUNDED_GAS", "UNCHECKED_ARITH", "UNSAFE_RANDOMNESS",
]


def test_rules_registered():
    # Import rules package to trigger registration side-effects
    importlib.import_module("solguard.rules")
    discover_rules()
    assert [r.rule_id for r in get_registered_rules()] == ALL_RULE_IDS
    assert get_rule("REENTRANCY") is ReentrancyRule
    assert get_rule("NOPE") is None


def test_exact_selector_matching():
    """Test exact rule id matching."""
    matches = match_rules(get_registered_rules(), "REENTRANCY")
    assert [r.rule_id for r in matches] == ["REENTRANCY"]

    assert match_rules(get_registered_rules(), "reentrancy") == []


def test_glob_selector_matching():
    """Test glob pattern matching."""
    all_rules = get_registered_rules()

    assert [r.rule_id for r in match_rules(all_rules, "UN*")] == [
        "UNBOUNDED_GAS", "UNCHECKED_ARITH", "UNSAFE_RANDOMNESS",
    ]
    assert [r.rule_id for r in match_rules(all_rules, "*_GAS")] == ["UNBOUNDED_GAS"]
    assert [r.rule_id for r in match_rules(all_rules, "*ACCESS*")] == ["MISSING_ACCESS_CONTROL"]


def test_category_selector_matching():
    """Test category-based selector matching."""
    all_rules = get_registered_rules()

    assert [r.rule_id for r in match_rules(all_rules, "category:access")] == ["MISSING_ACCESS_CONTROL"]
    assert len(match_rules(all_rules, "category:*")) == len(all_rules)
    assert [r.rule_id for r in match_rules(all_rules, "category:ra*")] == ["UNSAFE_RANDOMNESS"]


def test_disabled_selectors_take_precedence():
    rules, warnings = load_rules(["*"], ["category:gas", "REENTRANCY"])
    assert [r.rule_id for r in rules] == ["MISSING_ACCESS_CONTROL", "UNCHECKED_ARITH", "UNSAFE_RANDOMNESS"]
    assert warnings == []


def test_unmatched_selectors_warn():
    rules, warnings = load_rules(["REENTRANCY", "NOTHING_*"], ["category:none"])
    assert [r.rule_id for r in rules] == ["REENTRANCY"]
    assert len(warnings) == 2


def test_explain_selector_structure():
    """Test the explain_selector function returns proper structure."""
    explanation = explain_selector("category:arithmetic")

    assert explanation["selector"] == "category:arithmetic"
    assert explanation["match_type"] == "category"
    assert explanation["matched_count"] == 1
    rule_info = explanation["matched_rules"][0]
    assert rule_info["rule_id"] == "UNCHECKED_ARITH"
    assert rule_info["category"] == "arithmetic"
    assert rule_info["description"]

    assert explain_selector("UN*")["match_type"] == "glob"
    assert explain_selector("REENTRANCY")["match_type"] == "exact"


def test_rule_metadata():
    metadata = ReentrancyRule.get_metadata()
    assert metadata["rule_id"] == "REENTRANCY"
    assert metadata["severity"] == "CRITICAL"
    assert metadata["cwe_id"] == "CWE-841"
    assert metadata["enabled_by_default"] is True
