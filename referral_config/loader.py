"""
Policy Table Loader (``referral_config.loader``).

Responsibility
--------------
Loads a policy-table YAML file and parses it into the frozen
``referral_kernel.domain.policy`` dataclasses.  Callers should go through
``referral_config.get_policy_table()``, which validates first.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys in unvalidated data  -> ``KeyError`` propagates.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml

from referral_kernel.domain.policy import DestinationKind, PolicyTable, RequirementRule
from referral_kernel.domain.referral import ApprovalCategory, Priority, SourceCategory


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_rule(data: dict[str, Any]) -> RequirementRule:
    """Parse a ``RequirementRule`` from a dict."""
    when = data.get("when") or {}
    fee_above = when.get("fee_above")
    destination = when.get("destination")
    return RequirementRule(
        category=ApprovalCategory(data["category"]),
        name=data.get("name", ""),
        fee_above=Decimal(str(fee_above)) if fee_above is not None else None,
        priorities=frozenset(Priority(p) for p in when.get("priorities", ())),
        risk_score_above=when.get("risk_score_above"),
        sources=frozenset(SourceCategory(s) for s in when.get("sources", ())),
        destination=DestinationKind(destination) if destination is not None else None,
        cross_attorney=when.get("cross_attorney"),
    )


def compute_policy_hash(data: dict[str, Any]) -> str:
    """SHA-256 over the raw table serialized with sorted keys and no whitespace."""
    # YAML dates are the only non-JSON scalars safe_load produces.
    canonical = json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def parse_policy_table(data: dict[str, Any]) -> PolicyTable:
    """
    Parse a ``PolicyTable`` from validated data.

    Postconditions:
        - ``policy_hash`` identifies the source table; two files that parse
          to the same data share a hash.
    """
    bands = data.get("risk_bands") or {}
    return PolicyTable(
        policy_name=data["policy_name"],
        version=data["version"],
        category_roles={
            ApprovalCategory(category): frozenset(roles)
            for category, roles in data["category_roles"].items()
        },
        rules=tuple(parse_rule(r) for r in data.get("rules") or ()),
        risk_medium_above=bands.get("medium_above", 2),
        risk_high_above=bands.get("high_above", 4),
        policy_hash=compute_policy_hash(data),
    )
