"""
Policy loader (``library_config.loader``).

Responsibility
--------------
Loads a lending policy YAML file and parses it into a
``library_kernel.domain.policy.LendingPolicy``.  This is internal tooling;
the single public entry point is ``library_config.get_active_policy()``.

Invariants enforced
-------------------
* Unknown keys are rejected, so a typo never silently falls back to a
  default.
* Every parse error raises ``ValueError`` with the offending key.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the parsed
  document for configuration identity.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Wrong types / out-of-range values  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from library_kernel.domain.policy import LendingPolicy

_INT_KEYS = (
    "max_active_loans",
    "min_loan_days",
    "max_loan_days",
    "default_loan_days",
    "max_comment_length",
    "lock_timeout_ms",
)
_DECIMAL_KEYS = ("fee_per_day", "significant_resize_ratio")
_STR_KEYS = ("guard_mode",)
_KNOWN_KEYS = frozenset(_INT_KEYS + _DECIMAL_KEYS + _STR_KEYS)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping, got {type(data).__name__}")
    return data


def parse_decimal(key: str, value: Any) -> Decimal:
    """Parse a Decimal from YAML.  Floats go through str() to avoid binary noise."""
    if isinstance(value, bool):
        raise ValueError(f"{key}: expected a number, got {value!r}")
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"{key}: expected a number, got {value!r}") from exc


def parse_int(key: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{key}: expected an integer, got {value!r}")
    return value


def parse_policy(data: dict[str, Any]) -> LendingPolicy:
    """
    Build a LendingPolicy from the ``lending`` section of a policy file.

    Keys absent from ``data`` keep the LendingPolicy defaults.
    """
    unknown = set(data) - _KNOWN_KEYS
    if unknown:
        raise ValueError(f"Unknown lending policy keys: {sorted(unknown)}")

    kwargs: dict[str, Any] = {}
    for key in _INT_KEYS:
        if key in data:
            kwargs[key] = parse_int(key, data[key])
    for key in _DECIMAL_KEYS:
        if key in data:
            kwargs[key] = parse_decimal(key, data[key])
    for key in _STR_KEYS:
        if key in data:
            kwargs[key] = str(data[key])

    # LendingPolicy.__post_init__ raises ValueError on out-of-range values.
    return LendingPolicy(**kwargs)


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
