"""Tests for policy-table loading and validation (referral_config)."""

from decimal import Decimal

import pytest
import yaml

from referral_config import DEFAULT_POLICY_PATH, get_policy_table
from referral_config.loader import load_yaml_file, parse_policy_table
from referral_config.validator import validate_policy_data
from referral_kernel.domain.policy import DestinationKind
from referral_kernel.domain.referral import ApprovalCategory, SourceCategory
from referral_kernel.exceptions import PolicyConfigurationError

ROLES = {
    "case_manager": ["case_manager"],
    "firm_admin": ["firm_admin"],
    "compliance": ["compliance_officer"],
}


def write_policy(tmp_path, data, name="policy.yaml"):
    path = tmp_path / name
    path.write_text(yaml.safe_dump(data))
    return path


class TestDefaultPolicy:

    def test_loads(self):
        table = get_policy_table()
        assert table.policy_name == "default"
        assert table.version == 1
        assert len(table.rules) == 5
        assert table.risk_medium_above == 2
        assert table.risk_high_above == 4

    def test_hash_is_stable(self):
        first = get_policy_table()
        second = get_policy_table(DEFAULT_POLICY_PATH)
        assert first.policy_hash == second.policy_hash
        assert len(first.policy_hash) == 64

    def test_fee_thresholds_are_decimal(self):
        table = get_policy_table()
        fees = {r.name: r.fee_above for r in table.rules if r.fee_above is not None}
        assert fees == {"fee_bearing": Decimal("0"), "high_value_fee": Decimal("10000")}

    def test_emits_trace(self, captured_logs):
        table = get_policy_table()
        traces = [r for r in captured_logs() if r["message"] == "REFERRAL_POLICY_TRACE"]
        assert len(traces) == 1
        assert traces[0]["policy_hash"] == table.policy_hash
        assert traces[0]["rule_count"] == 5


class TestCustomPolicy:

    def test_custom_table(self, tmp_path):
        path = write_policy(tmp_path, {
            "policy_name": "court_referrals",
            "version": 3,
            "category_roles": ROLES,
            "rules": [
                {
                    "name": "court_internal",
                    "category": "compliance",
                    "when": {"sources": ["court"], "destination": "internal"},
                },
            ],
        })

        table = get_policy_table(path)

        assert table.policy_name == "court_referrals"
        rule = table.rules[0]
        assert rule.category == ApprovalCategory.COMPLIANCE
        assert rule.sources == frozenset({SourceCategory.COURT})
        assert rule.destination == DestinationKind.INTERNAL
        assert table.permitted_roles(ApprovalCategory.COMPLIANCE) == frozenset({"compliance_officer"})

    def test_different_content_different_hash(self, tmp_path):
        base = {"policy_name": "p", "version": 1, "category_roles": ROLES, "rules": []}
        a = parse_policy_table(base)
        b = parse_policy_table({**base, "version": 2})
        assert a.policy_hash != b.policy_hash

    def test_empty_file_is_invalid(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_yaml_file(path) == {}
        with pytest.raises(PolicyConfigurationError):
            get_policy_table(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_policy_table(tmp_path / "missing.yaml")


class TestValidation:

    def test_default_is_valid(self):
        result = validate_policy_data(load_yaml_file(DEFAULT_POLICY_PATH))
        assert result.is_valid
        assert result.warnings == []

    def test_every_problem_reported(self, tmp_path):
        path = write_policy(tmp_path, {
            "policy_name": "broken",
            "version": 0,
            "category_roles": {
                "case_manager": ["case_manager"],
                "firm_admin": [],
                "paralegal": ["paralegal"],
            },
            "rules": [
                {"name": "r1", "category": "treasury", "when": {"fee_above": -5}},
                {"name": "r1", "category": "compliance", "when": {"priorities": ["asap"]}},
                {"name": "r3", "category": "compliance", "when": {"colour": "red"}},
            ],
            "risk_bands": {"medium_above": 5, "high_above": 4},
        })

        with pytest.raises(PolicyConfigurationError) as exc_info:
            get_policy_table(path)

        errors = "\n".join(exc_info.value.errors)
        assert "version must be a positive integer" in errors
        assert "category_roles.firm_admin" in errors
        assert "unknown category 'paralegal'" in errors
        assert "no permitted roles for 'compliance'" in errors
        assert "unknown category 'treasury'" in errors
        assert "fee_above must be a non-negative number" in errors
        assert "duplicate rule name" in errors
        assert "unknown priority 'asap'" in errors
        assert "unknown condition 'colour'" in errors
        assert "medium_above must not exceed high_above" in errors

    def test_unconditional_rule_warns(self):
        result = validate_policy_data({
            "policy_name": "p",
            "version": 1,
            "category_roles": ROLES,
            "rules": [{"name": "always", "category": "firm_admin"}],
        })
        assert result.is_valid
        assert any("always fires" in w for w in result.warnings)

    def test_non_mapping(self):
        result = validate_policy_data(["not", "a", "mapping"])
        assert not result.is_valid

    @pytest.mark.parametrize("when, message", [
        ({"risk_score_above": "high"}, "risk_score_above"),
        ({"destination": "abroad"}, "destination must be one of"),
        ({"cross_attorney": "yes"}, "cross_attorney must be true or false"),
        ({"sources": []}, "sources must be a non-empty list"),
    ])
    def test_bad_conditions(self, when, message):
        result = validate_policy_data({
            "policy_name": "p",
            "version": 1,
            "category_roles": ROLES,
            "rules": [{"name": "r", "category": "compliance", "when": when}],
        })
        assert any(message in e for e in result.errors)
