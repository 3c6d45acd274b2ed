"""
Configuration settings manager for solguard.
Handles loading and validating configuration from files and environment variables.
"""

import logging
import os
import tomllib
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, Field, ValidationError, model_validator

from ..core.graph_builder import DEFAULT_SAFE_HELPERS
from ..core.models import Severity

logger = logging.getLogger(__name__)

VALID_SEVERITIES = {s.name for s in Severity}
VALID_FORMATS = {"table", "json"}


class AnalysisConfig(BaseModel):
    """Configuration for the analysis pass."""
    severity_threshold: str = "INFO"
    enabled_rules: List[str] = Field(default_factory=lambda: ["*"])
    disabled_rules: List[str] = Field(default_factory=list)
    max_functions_per_contract: int = 500
    max_statements_per_function: int = 10_000
    max_workers: int = 4


class AccessControlConfig(BaseModel):
    """Additional modifier names accepted as access guards."""
    known_modifiers: List[str] = Field(default_factory=list)


class ArithmeticConfig(BaseModel):
    """Helpers whose wrapped operations count as checked arithmetic."""
    safe_helpers: List[str] = Field(default_factory=lambda: list(DEFAULT_SAFE_HELPERS))


class OutputConfig(BaseModel):
    """Configuration for output formatting."""
    format: str = "table"
    json_file: Optional[str] = None


class ReportingConfig(BaseModel):
    """Configuration for CI gating."""
    fail_on_severity: Optional[str] = None


class Settings(BaseModel):
    """Main configuration settings."""
    analysis: AnalysisConfig = Field(default_factory=AnalysisConfig)
    access_control: AccessControlConfig = Field(default_factory=AccessControlConfig)
    arithmetic: ArithmeticConfig = Field(default_factory=ArithmeticConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    reporting: ReportingConfig = Field(default_factory=ReportingConfig)

    @model_validator(mode="after")
    def validate_settings(self) -> "Settings":
        """Correct out-of-range values instead of failing the run."""
        threshold = self.analysis.severity_threshold.upper()
        if threshold not in VALID_SEVERITIES:
            logger.warning(f"Invalid severity_threshold '{self.analysis.severity_threshold}'. Using default: INFO")
            threshold = "INFO"
        self.analysis.severity_threshold = threshold

        if self.reporting.fail_on_severity is not None:
            fail_on = self.reporting.fail_on_severity.upper()
            if fail_on not in VALID_SEVERITIES:
                logger.warning(f"Invalid fail_on_severity '{self.reporting.fail_on_severity}'. Using default: HIGH")
                fail_on = "HIGH"
            self.reporting.fail_on_severity = fail_on

        defaults = AnalysisConfig()
        for name in ("max_functions_per_contract", "max_statements_per_function", "max_workers"):
            if getattr(self.analysis, name) < 1:
                logger.warning(f"Invalid {name} {getattr(self.analysis, name)}. Using default: {getattr(defaults, name)}")
                setattr(self.analysis, name, getattr(defaults, name))

        if self.output.format not in VALID_FORMATS:
            logger.warning(f"Invalid output format '{self.output.format}'. Using default: table")
            self.output.format = "table"

        return self

    @property
    def threshold(self) -> Severity:
        return Severity.from_string(self.analysis.severity_threshold)


def _parse_list(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


ENV_PREFIX = "SOLGUARD_"

ENV_MAPPINGS: Dict[str, Tuple[str, Callable[[str], Any]]] = {
    "SEVERITY_THRESHOLD": ("analysis.severity_threshold", str),
    "ENABLED_RULES": ("analysis.enabled_rules", _parse_list),
    "DISABLED_RULES": ("analysis.disabled_rules", _parse_list),
    "MAX_FUNCTIONS": ("analysis.max_functions_per_contract", int),
    "MAX_STATEMENTS": ("analysis.max_statements_per_function", int),
    "MAX_WORKERS": ("analysis.max_workers", int),
    "KNOWN_MODIFIERS": ("access_control.known_modifiers", _parse_list),
    "SAFE_HELPERS": ("arithmetic.safe_helpers", _parse_list),
    "OUTPUT_FORMAT": ("output.format", lambda v: v.lower()),
    "OUTPUT_JSON_FILE": ("output.json_file", str),
    "FAIL_ON_SEVERITY": ("reporting.fail_on_severity", lambda v: v.upper()),
}


class ConfigManager:
    """Loads configuration with precedence: env > TOML file > defaults."""

    DEFAULT_CONFIG_FILES = ["solguard.toml", ".solguard.toml", "pyproject.toml"]

    def __init__(self):
        self._config: Optional[Settings] = None
        self.loaded_from: str = "defaults"
        self.warnings: List[str] = []

    @property
    def config(self) -> Settings:
        """Get current configuration, loading defaults if not loaded."""
        if self._config is None:
            self._config = Settings()
        return self._config

    def load(self, config_path: Optional[Union[str, Path]] = None) -> Settings:
        """
        Load configuration from a file with environment overrides.

        Args:
            config_path: Path to configuration file (optional). When omitted the
                current directory is searched for ``DEFAULT_CONFIG_FILES``.

        Returns:
            Loaded configuration
        """
        self.warnings = []
        self.loaded_from = "defaults"

        data = self._load_from_file(config_path)
        env_data = self._load_env_overrides()
        merged = self._deep_merge(data, env_data)

        try:
            self._config = Settings.model_validate(merged)
        except ValidationError as e:
            message = f"Error validating configuration: {e}"
            logger.error(message)
            self.warnings.append(message)
            self._config = Settings()
            self.loaded_from = "defaults"
        return self._config

    def _load_from_file(self, config_path: Optional[Union[str, Path]]) -> Dict[str, Any]:
        if config_path:
            candidates = [Path(config_path)]
        else:
            candidates = [Path(name) for name in self.DEFAULT_CONFIG_FILES]

        for path in candidates:
            if not path.exists():
                if config_path:
                    self._warn(f"Configuration file not found: {path}")
                continue
            try:
                with open(path, "rb") as f:
                    data = tomllib.load(f)
            except (OSError, tomllib.TOMLDecodeError) as e:
                self._warn(f"Failed to load config from {path}: {e}")
                continue
            if path.name == "pyproject.toml":
                data = data.get("tool", {}).get("solguard", {})
            if data:
                self.loaded_from = str(path)
                logger.debug(f"Loaded configuration from {path}")
                return data
        return {}

    def _load_env_overrides(self) -> Dict[str, Any]:
        overrides: Dict[str, Any] = {}
        for key, (config_path, parser) in ENV_MAPPINGS.items():
            env_var = f"{ENV_PREFIX}{key}"
            value = os.environ.get(env_var)
            if value is None:
                continue
            try:
                parsed = parser(value)
            except (TypeError, ValueError) as e:
                self._warn(f"Invalid environment variable {env_var}={value}: {e}")
                continue
            logger.debug(f"Applying environment override: {env_var}={parsed}")
            self._set_nested_value(overrides, config_path, parsed)
        return overrides

    def _warn(self, message: str) -> None:
        logger.warning(message)
        self.warnings.append(message)

    @staticmethod
    def _set_nested_value(config: Dict[str, Any], path: str, value: Any) -> None:
        keys = path.split(".")
        current = config
        for key in keys[:-1]:
            current = current.setdefault(key, {})
        current[keys[-1]] = value

    def _deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        result = dict(base)
        for key, value in override.items():
            if isinstance(result.get(key), dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value
        return result

    def write(self, path: Union[str, Path], settings: Optional[Settings] = None) -> None:
        """Write configuration to a TOML file."""
        import tomli_w

        data = (settings or self.config).model_dump(exclude_none=True)
        with open(path, "wb") as f:
            tomli_w.dump(data, f)


def load_settings(config_path: Optional[Union[str, Path]] = None) -> Settings:
    """Load configuration with the default manager."""
    return ConfigManager().load(config_path)
