"""
Rule package with selector support.
"""
from typing import Any, Dict, List, Tuple

from ..core.registry import get_registered_rules

# Importing the modules registers their rules
from . import access_control, arithmetic, loops, randomness, reentrancy  # noqa: F401


def load_rules(enabled: List[str], disabled: List[str] = ()) -> Tuple[List[Any], List[str]]:
    """
    Select rule classes from enabled/disabled selectors.

    Disabled selectors take precedence over enabled ones. Selectors that
    match no rule produce a warning.

    Returns:
        Tuple of (selected rule classes, warnings)
    """
    all_rules = get_registered_rules()
    warnings: List[str] = []

    enabled_set = set()
    for selector in enabled:
        matched = match_rules(all_rules, selector)
        if not matched:
            warnings.append(f"Enabled selector '{selector}' matches no rules")
        if selector == "*":
            matched = [r for r in matched if getattr(r, "enabled_by_default", True)]
        enabled_set.update(r.rule_id for r in matched)

    for selector in disabled:
        matched = match_rules(all_rules, selector)
        if not matched:
            warnings.append(f"Disabled selector '{selector}' matches no rules")
        enabled_set.difference_update(r.rule_id for r in matched)

    return [r for r in all_rules if r.rule_id in enabled_set], warnings


def match_rules(all_rules: List[Any], selector: str) -> List[Any]:
    """
    Match rules against a selector.

    Supports:
    - Exact id match: "REENTRANCY"
    - Glob patterns: "UNCHECKED_*", "*_GAS"
    - Category patterns: "category:access", "category:*"
    """
    return [rule for rule in all_rules if rule.matches_selector(selector)]


def explain_selector(selector: str) -> Dict[str, Any]:
    """Explain which rules match a selector and why."""
    matched = match_rules(get_registered_rules(), selector)
    return {
        "selector": selector,
        "match_type": _determine_match_type(selector),
        "matched_count": len(matched),
        "matched_rules": [
            {"rule_id": r.rule_id, "category": r.category, "description": r.description}
            for r in matched
        ],
    }


def _determine_match_type(selector: str) -> str:
    if selector.startswith("category:"):
        return "category"
    if any(ch in selector for ch in "*?["):
        return "glob"
    return "exact"
