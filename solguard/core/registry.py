"""Registry for analysis rules."""

import importlib
import logging
import pkgutil
from typing import Dict, List, Optional, Type

logger = logging.getLogger(__name__)

_RULE_REGISTRY: Dict[str, Type] = {}


def register(cls: Type) -> Type:
    """Decorator to register a rule class under its ``rule_id``."""
    if not getattr(cls, "rule_id", None):
        cls.rule_id = cls.__name__.upper()

    if cls.rule_id in _RULE_REGISTRY and _RULE_REGISTRY[cls.rule_id] is not cls:
        logger.warning(f"Rule {cls.rule_id} is already registered. Overriding.")

    if not callable(getattr(cls, "analyze", None)):
        logger.error(f"Rule {cls.rule_id} must implement 'analyze' method.")
        return cls

    _RULE_REGISTRY[cls.rule_id] = cls
    logger.debug(f"Registered rule: {cls.rule_id}")
    return cls


def get_rule(rule_id: str) -> Optional[Type]:
    """Get a rule class by id."""
    return _RULE_REGISTRY.get(rule_id)


def get_registered_rules() -> List[Type]:
    """Get all registered rule classes, ordered by rule id."""
    return [_RULE_REGISTRY[k] for k in sorted(_RULE_REGISTRY)]


def discover_rules(package_name: str = "solguard.rules") -> None:
    """Import every rule module so its classes register themselves."""
    logger.debug(f"Discovering rules in {package_name}")
    package = importlib.import_module(package_name)
    for _, name, is_pkg in pkgutil.walk_packages(package.__path__, package.__name__ + "."):
        if not is_pkg:
            importlib.import_module(name)
            logger.debug(f"Imported rule module: {name}")
