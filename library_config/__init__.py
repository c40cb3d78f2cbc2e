"""
library_config -- single public entrypoint for lending policy.

Responsibility:
    Provides the ONLY way to obtain the lending policy at runtime through
    ``get_active_policy()``.  No kernel component reads configuration files
    or environment variables; they receive a ``LendingPolicy``.

Architecture position:
    Configuration -- sits above ``library_kernel``.  The kernel MUST NEVER
    import from ``library_config``.

Failure modes:
    - ``FileNotFoundError`` -- the policy file does not exist.
    - ``yaml.YAMLError`` -- the policy file is not valid YAML.
    - ``ValueError`` -- unknown keys, wrong types or out-of-range values.

Audit relevance:
    Every successful ``get_active_policy()`` call emits a
    ``LIBRARY_POLICY_TRACE`` log entry with the policy name, version and
    checksum, tying every fee and limit decision to the exact policy file
    that governed it.
"""

from __future__ import annotations

import logging
from pathlib import Path

from library_config.loader import compute_checksum, load_yaml_file, parse_policy
from library_kernel.domain.policy import LendingPolicy

_logger = logging.getLogger("library_kernel.config")

_DEFAULT_POLICY_PATH = Path(__file__).parent / "policies" / "default.yaml"

__all__ = ["get_active_policy"]


def get_active_policy(path: Path | str | None = None) -> LendingPolicy:
    """The ONLY public configuration entrypoint.

    Args:
        path: Policy file to load.  Defaults to
            library_config/policies/default.yaml.

    Returns:
        A validated, frozen LendingPolicy.

    Raises:
        FileNotFoundError, yaml.YAMLError, ValueError.
    """
    policy_path = Path(path) if path is not None else _DEFAULT_POLICY_PATH
    document = load_yaml_file(policy_path)

    lending = document.get("lending", {})
    if not isinstance(lending, dict):
        raise ValueError(f"{policy_path}: 'lending' must be a mapping")

    policy = parse_policy(lending)
    checksum = compute_checksum(document)

    _logger.info(
        "LIBRARY_POLICY_TRACE",
        extra={
            "trace_type": "LIBRARY_POLICY_TRACE",
            "policy_name": document.get("name", policy_path.stem),
            "policy_version": document.get("version"),
            "policy_path": str(policy_path),
            "checksum": checksum,
            "fee_per_day": str(policy.fee_per_day),
            "max_active_loans": policy.max_active_loans,
            "guard_mode": policy.guard_mode,
        },
    )
    return policy
