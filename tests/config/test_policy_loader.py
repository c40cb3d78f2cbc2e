"""library_config: loading the lending policy from YAML."""

from decimal import Decimal

import pytest
import yaml

from library_config import get_active_policy
from library_config.loader import compute_checksum, parse_policy
from library_kernel.domain.policy import LendingPolicy


def _write(tmp_path, text: str):
    path = tmp_path / "policy.yaml"
    path.write_text(text)
    return path


class TestDefaultPolicy:

    def test_shipped_policy_matches_defaults(self):
        assert get_active_policy() == LendingPolicy()

    def test_policy_trace_is_logged(self, captured_logs):
        get_active_policy()

        (trace,) = [r for r in captured_logs() if r["message"] == "LIBRARY_POLICY_TRACE"]
        assert trace["policy_name"] == "default"
        assert trace["policy_version"] == 1
        assert len(trace["checksum"]) == 64
        assert trace["fee_per_day"] == "1.00"


class TestOverrides:

    def test_override_file(self, tmp_path):
        path = _write(tmp_path, """
name: strict
version: 2
lending:
  fee_per_day: "0.25"
  max_active_loans: 2
  guard_mode: raise
""")
        policy = get_active_policy(path)

        assert policy.fee_per_day == Decimal("0.25")
        assert policy.max_active_loans == 2
        assert policy.guard_mode == "raise"
        assert policy.default_loan_days == 14

    def test_float_fee_parsed_without_binary_noise(self):
        assert parse_policy({"fee_per_day": 0.1}).fee_per_day == Decimal("0.1")

    def test_missing_lending_section_keeps_defaults(self, tmp_path):
        assert get_active_policy(_write(tmp_path, "name: empty\n")) == LendingPolicy()


class TestRejectedPolicies:

    def test_unknown_key(self):
        with pytest.raises(ValueError, match="max_loans"):
            parse_policy({"max_loans": 3})

    @pytest.mark.parametrize("data", [
        {"max_active_loans": "five"},
        {"max_active_loans": 2.5},
        {"max_active_loans": True},
        {"fee_per_day": "lots"},
        {"fee_per_day": False},
    ])
    def test_wrong_types(self, data):
        with pytest.raises(ValueError):
            parse_policy(data)

    def test_out_of_range_value(self):
        with pytest.raises(ValueError):
            parse_policy({"max_loan_days": 0})

    def test_lending_must_be_a_mapping(self, tmp_path):
        with pytest.raises(ValueError):
            get_active_policy(_write(tmp_path, "lending: [1, 2]\n"))

    def test_document_must_be_a_mapping(self, tmp_path):
        with pytest.raises(ValueError):
            get_active_policy(_write(tmp_path, "- just\n- a list\n"))

    def test_malformed_yaml(self, tmp_path):
        with pytest.raises(yaml.YAMLError):
            get_active_policy(_write(tmp_path, "lending: {fee_per_day: [\n"))

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_policy(tmp_path / "absent.yaml")


def test_checksum_is_order_independent():
    assert compute_checksum({"a": 1, "b": 2}) == compute_checksum({"b": 2, "a": 1})
    assert compute_checksum({"a": 1}) != compute_checksum({"a": 2})
