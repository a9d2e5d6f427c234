"""JSON Schema-based validation for the chaosdns YAML configuration.

The schema lives in ``assets/config-schema.json`` inside the package. It checks
the document's shape (types, ranges, known keys); the pydantic model in
config_models then normalizes values and enforces the remaining rules.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from jsonschema import Draft202012Validator, ValidationError
from jsonschema.exceptions import SchemaError

logger = logging.getLogger(__name__)


def get_default_schema_path() -> Path:
    """Brief: Resolve the default JSON Schema path for configuration.

    Inputs:
      - None.

    Outputs:
      - Path to ``assets/config-schema.json``, searched upward from this
        module (package data first, then a source checkout root).
    """

    here = Path(__file__).resolve()
    for ancestor in here.parents:
        candidate = ancestor / "assets" / "config-schema.json"
        if candidate.is_file():
            return candidate
    return here.parents[1] / "assets" / "config-schema.json"


def _load_schema(schema_path: Optional[Path] = None) -> Dict[str, Any]:
    path = schema_path or get_default_schema_path()
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)


def _format_errors(errors: List[ValidationError], *, config_path: Optional[str]) -> str:
    """Brief: Format jsonschema validation errors into a human-readable string.

    Inputs:
      - errors: List of jsonschema.ValidationError instances.
      - config_path: Optional path to the YAML config being validated.

    Outputs:
      - String with one line per error, suitable for logs or CLI output.
    """

    lines: List[str] = [f"Invalid configuration in {config_path or '<config dict>'}:"]
    for err in errors:
        instance_path = "/".join(str(p) for p in err.path) or "<root>"
        lines.append(f"- {instance_path}: {err.message}")
    return "\n".join(lines)


def _split_extra_property_errors(
    errors: List[ValidationError],
) -> Tuple[List[ValidationError], List[ValidationError]]:
    extra: List[ValidationError] = []
    other: List[ValidationError] = []
    for err in errors:
        if getattr(err, "validator", None) == "additionalProperties":
            extra.append(err)
        else:
            other.append(err)
    return extra, other


def validate_config(
    cfg: Dict[str, Any],
    *,
    schema_path: Optional[Path] = None,
    config_path: Optional[str] = None,
    unknown_keys: str = "warn",
) -> None:
    """Brief: Validate a parsed YAML configuration mapping against JSON Schema.

    Inputs:
      - cfg: Dict loaded from YAML.
      - schema_path: Optional explicit schema file (defaults to the packaged
        one).
      - config_path: Path of the YAML file, used only in messages.
      - unknown_keys: "ignore", "warn" (default) or "error" for keys the
        schema does not describe.

    Outputs:
      - None on success.

    Raises:
      - ValueError: when validation fails (or when unknown keys are present
        and unknown_keys is "error"), or when the schema itself cannot be
        loaded.

    Example:
      >>> validate_config({"domain": "example.test.", "chaos": 10})
    """
    if unknown_keys not in {"ignore", "warn", "error"}:
        raise ValueError(
            f"unknown_keys policy must be 'ignore', 'warn', or 'error', got {unknown_keys!r}"
        )

    effective_schema_path = schema_path or get_default_schema_path()
    try:
        schema = _load_schema(effective_schema_path)
        validator = Draft202012Validator(schema)
    except (OSError, json.JSONDecodeError, SchemaError) as exc:
        raise ValueError(
            f"Failed to load configuration schema {effective_schema_path}: {exc}"
        ) from exc

    all_errors = sorted(validator.iter_errors(cfg), key=lambda e: list(e.path))
    if not all_errors:
        return None

    extra_errors, other_errors = _split_extra_property_errors(all_errors)
    if other_errors:
        raise ValueError(
            _format_errors(other_errors + extra_errors, config_path=config_path)
        )

    message = _format_errors(extra_errors, config_path=config_path)
    if unknown_keys == "warn":
        logger.warning(message)
    elif unknown_keys == "error":
        raise ValueError(message)
    return None
