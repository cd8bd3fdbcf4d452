"""
referral_config -- single public entrypoint for the referral Policy Table.

Responsibility:
    Provides the ONLY way to obtain the approval policy at runtime through
    ``get_policy_table()``.  Thresholds and role names live in YAML, never
    in the engine.

Architecture position:
    Configuration -- sits above ``referral_kernel``.  The kernel MUST NEVER
    import from ``referral_config``; services receive a ``PolicyTable``.

Failure modes:
    - ``FileNotFoundError`` -- the policy file does not exist.
    - ``yaml.YAMLError`` -- the policy file is not valid YAML.
    - ``PolicyConfigurationError`` -- the table failed validation; every
      problem is listed.

Audit relevance:
    Every successful call emits a ``REFERRAL_POLICY_TRACE`` log entry with
    the policy name, version and hash.  The same hash is stamped on every
    referral created under the table.
"""

from __future__ import annotations

from pathlib import Path

from referral_config.loader import load_yaml_file, parse_policy_table
from referral_config.validator import validate_policy_data
from referral_kernel.domain.policy import PolicyTable
from referral_kernel.exceptions import PolicyConfigurationError
from referral_kernel.logging_config import get_logger

_logger = get_logger("config")

DEFAULT_POLICY_PATH = Path(__file__).parent / "policies" / "default.yaml"


def get_policy_table(path: Path | str | None = None) -> PolicyTable:
    """Load, validate and compile a policy table.

    Args:
        path: Policy YAML file.  Defaults to the shipped
            ``policies/default.yaml``.

    Raises:
        PolicyConfigurationError: If validation reports any error.
    """
    source = Path(path) if path is not None else DEFAULT_POLICY_PATH
    data = load_yaml_file(source)

    validation = validate_policy_data(data)
    for warning in validation.warnings:
        _logger.warning(
            "policy_validation_warning",
            extra={"policy_file": str(source), "warning": warning},
        )
    if not validation.is_valid:
        raise PolicyConfigurationError(validation.errors)

    table = parse_policy_table(data)

    _logger.info(
        "REFERRAL_POLICY_TRACE",
        extra={
            "trace_type": "REFERRAL_POLICY_TRACE",
            "policy_name": table.policy_name,
            "policy_version": table.version,
            "policy_hash": table.policy_hash,
            "rule_count": len(table.rules),
            "policy_file": str(source),
        },
    )
    return table


__all__ = [
    "DEFAULT_POLICY_PATH",
    "get_policy_table",
]
