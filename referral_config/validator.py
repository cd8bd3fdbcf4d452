"""
Policy Table Validator (``referral_config.validator``).

Responsibility
--------------
Checks raw policy-table data (as loaded from YAML) before it is parsed, so
that a bad table fails at load time with every problem listed instead of
surfacing as a mis-routed approval later.

Invariants enforced
-------------------
* Every approval category has a non-empty permitted-role entry.
* Rules reference known categories, priorities, sources and destination
  kinds, and carry only known condition keys.
* Thresholds are non-negative; risk bands are ordered.
* Rule names are unique.

Failure modes
-------------
* Errors (``PolicyValidationResult.errors``)  -> the table MUST NOT be used.
* Warnings  -> the table may be used but should be reviewed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any

from referral_kernel.domain.policy import DestinationKind
from referral_kernel.domain.referral import ApprovalCategory, Priority, SourceCategory

RULE_CONDITION_KEYS = frozenset({
    "fee_above",
    "priorities",
    "risk_score_above",
    "sources",
    "destination",
    "cross_attorney",
})


@dataclass
class PolicyValidationResult:
    """
    Result of policy validation.

    ``is_valid`` returns ``True`` only when ``errors`` is empty.
    """

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)


def validate_policy_data(data: Any) -> PolicyValidationResult:
    result = PolicyValidationResult()

    if not isinstance(data, dict):
        result.add_error("policy table must be a mapping")
        return result

    _validate_identity(data, result)
    _validate_category_roles(data.get("category_roles"), result)
    _validate_rules(data.get("rules"), result)
    _validate_risk_bands(data.get("risk_bands"), result)

    return result


def _validate_identity(data: dict[str, Any], result: PolicyValidationResult) -> None:
    name = data.get("policy_name")
    if not isinstance(name, str) or not name.strip():
        result.add_error("policy_name must be a non-empty string")
    version = data.get("version")
    if isinstance(version, bool) or not isinstance(version, int) or version < 1:
        result.add_error("version must be a positive integer")


def _validate_category_roles(roles: Any, result: PolicyValidationResult) -> None:
    if not isinstance(roles, dict):
        result.add_error("category_roles must be a mapping of category -> roles")
        return

    known = {c.value for c in ApprovalCategory}
    for key, value in roles.items():
        if key not in known:
            result.add_error(f"category_roles: unknown category '{key}'")
            continue
        if (
            not isinstance(value, list)
            or not value
            or not all(isinstance(r, str) and r.strip() for r in value)
        ):
            result.add_error(
                f"category_roles.{key}: must be a non-empty list of role names"
            )

    for category in ApprovalCategory:
        if category.value not in roles:
            result.add_error(
                f"category_roles: no permitted roles for '{category.value}'"
            )


def _is_non_negative_number(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return False
    return number.is_finite() and number >= 0


def _validate_rules(rules: Any, result: PolicyValidationResult) -> None:
    if rules is None:
        result.add_warning("no rules declared: every referral is auto-approved")
        return
    if not isinstance(rules, list):
        result.add_error("rules must be a list")
        return

    categories = {c.value for c in ApprovalCategory}
    priorities = {p.value for p in Priority}
    sources = {s.value for s in SourceCategory}
    destinations = {d.value for d in DestinationKind}
    seen_names: set[str] = set()

    for index, rule in enumerate(rules):
        label = f"rules[{index}]"
        if not isinstance(rule, dict):
            result.add_error(f"{label}: must be a mapping")
            continue

        name = rule.get("name")
        if name is not None:
            label = f"rule '{name}'"
            if name in seen_names:
                result.add_error(f"{label}: duplicate rule name")
            seen_names.add(name)

        if rule.get("category") not in categories:
            result.add_error(f"{label}: unknown category {rule.get('category')!r}")

        when = rule.get("when") or {}
        if not isinstance(when, dict):
            result.add_error(f"{label}: 'when' must be a mapping")
            continue

        unknown = set(when) - RULE_CONDITION_KEYS
        for key in sorted(unknown):
            result.add_error(f"{label}: unknown condition '{key}'")

        if "fee_above" in when and not _is_non_negative_number(when["fee_above"]):
            result.add_error(f"{label}: fee_above must be a non-negative number")

        if "risk_score_above" in when:
            score = when["risk_score_above"]
            if isinstance(score, bool) or not isinstance(score, int) or score < 0:
                result.add_error(
                    f"{label}: risk_score_above must be a non-negative integer"
                )

        for key, singular, allowed in (
            ("priorities", "priority", priorities),
            ("sources", "source", sources),
        ):
            if key not in when:
                continue
            values = when[key]
            if not isinstance(values, list) or not values:
                result.add_error(f"{label}: {key} must be a non-empty list")
                continue
            for value in values:
                if value not in allowed:
                    result.add_error(f"{label}: unknown {singular} {value!r}")

        if "destination" in when and when["destination"] not in destinations:
            result.add_error(
                f"{label}: destination must be one of {sorted(destinations)}"
            )

        if "cross_attorney" in when and not isinstance(when["cross_attorney"], bool):
            result.add_error(f"{label}: cross_attorney must be true or false")

        if not when:
            result.add_warning(f"{label}: no conditions, always fires")


def _validate_risk_bands(bands: Any, result: PolicyValidationResult) -> None:
    if bands is None:
        return
    if not isinstance(bands, dict):
        result.add_error("risk_bands must be a mapping")
        return
    medium = bands.get("medium_above", 2)
    high = bands.get("high_above", 4)
    for key, value in (("medium_above", medium), ("high_above", high)):
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            result.add_error(f"risk_bands.{key} must be a non-negative integer")
            return
    if medium > high:
        result.add_error("risk_bands.medium_above must not exceed high_above")
