"""
Pay Period Chain Validation

Carryovers propagate by start-date order. Whether that order is
meaningful depends on how the periods relate:
- overlapping periods would count the same days twice
- gaps between periods silently drop spending that falls in the gap

The configured PeriodChainPolicy decides which of these are rejected.
Checks run before any carryover is written.
"""

from typing import Sequence

from zerobudget.config import PeriodChainPolicy
from zerobudget.errors import BusinessRuleViolation
from zerobudget.models import PayPeriod


def find_chain_issues(
    periods: Sequence[PayPeriod],
    policy: PeriodChainPolicy,
) -> list[str]:
    """
    Describe every violation of `policy` between consecutive periods.

    `periods` must already be sorted by start date.
    """
    if policy == PeriodChainPolicy.NONE:
        return []

    issues = []
    for previous, current in zip(periods, periods[1:]):
        if previous.date_range.overlaps(current.date_range):
            issues.append(
                f"{previous.key} overlaps {current.key}"
            )
        elif (
            policy == PeriodChainPolicy.REQUIRE_ADJACENT
            and not previous.date_range.is_followed_by(current.date_range)
        ):
            issues.append(
                f"gap between {previous.key} and {current.key}"
            )
    return issues


def ensure_valid_chain(
    periods: Sequence[PayPeriod],
    policy: PeriodChainPolicy,
) -> None:
    """Raise BusinessRuleViolation if the chain breaks the policy."""
    issues = find_chain_issues(periods, policy)
    if issues:
        raise BusinessRuleViolation(
            "Pay periods cannot be chained: " + "; ".join(issues)
        )
