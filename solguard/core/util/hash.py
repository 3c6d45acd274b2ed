"""
Utility functions for computing stable configuration hashes.
"""
import hashlib
import json
from typing import Any, Dict

# Output destinations do not change analysis results
EXCLUDED_FIELDS = {"json_file"}


def compute_config_hash(config: Any) -> str:
    """
    Compute a stable SHA256 hash of the configuration.

    The hash is computed over a normalized JSON representation with
    output-only fields removed and keys sorted.

    Args:
        config: Configuration dictionary or pydantic Settings object

    Returns:
        SHA256 hash as hexadecimal string
    """
    if hasattr(config, "model_dump"):
        config_dict = config.model_dump()
    else:
        config_dict = config

    normalized = normalize_config_for_hash(config_dict)
    canonical_json = json.dumps(normalized, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical_json.encode("utf-8")).hexdigest()


def normalize_config_for_hash(config: Dict[str, Any]) -> Dict[str, Any]:
    """Drop excluded and None-valued fields recursively."""

    def clean(obj: Any) -> Any:
        if isinstance(obj, dict):
            return {
                key: clean(value)
                for key, value in obj.items()
                if key not in EXCLUDED_FIELDS and value is not None
            }
        if isinstance(obj, list):
            return [clean(item) for item in obj]
        return obj

    return clean(config) or {}
