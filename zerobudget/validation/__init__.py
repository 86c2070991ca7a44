"""Validation package."""

from zerobudget.validation.inputs import (
    apply_changes,
    build,
    parse_amount,
    require_key,
    require_positive,
)
from zerobudget.validation.periods import ensure_valid_chain, find_chain_issues

__all__ = [
    "apply_changes",
    "build",
    "ensure_valid_chain",
    "find_chain_issues",
    "parse_amount",
    "require_key",
    "require_positive",
]
