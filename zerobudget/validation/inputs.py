"""
Command Input Validation

IMPORTANT: Validation NEVER silently fixes issues.
Anything malformed is reported as a ValidationError before a single
document is written.
"""

from decimal import Decimal
from typing import Any, Iterable, TypeVar

import pydantic

from zerobudget.errors import ValidationError
from zerobudget.models import Document, to_money


D = TypeVar("D", bound=Document)


def require_key(value: Any, field: str) -> str:
    """Reject missing or blank identity keys."""
    if value is None or not str(value).strip():
        raise ValidationError(f"{field} is required")
    return str(value).strip()


def parse_amount(value: Any, field: str = "amount") -> Decimal:
    """Convert user input to money, reporting bad input as ValidationError."""
    if value is None:
        raise ValidationError(f"{field} is required")
    try:
        return to_money(value)
    except ValueError:
        raise ValidationError(f"{field} is not a valid amount: {value!r}")


def require_positive(value: Any, field: str = "amount") -> Decimal:
    amount = parse_amount(value, field)
    if amount <= 0:
        raise ValidationError(f"{field} must be greater than zero")
    return amount


def build(model: type[D], **fields: Any) -> D:
    """Construct an entity, reporting schema failures as ValidationError."""
    try:
        return model(**fields)
    except pydantic.ValidationError as e:
        raise ValidationError(_describe(e))


def apply_changes(entity: D, changes: dict[str, Any], allowed: Iterable[str]) -> D:
    """
    Partial update: only supplied fields change.

    Raises:
        ValidationError: On unknown fields or values the model rejects
    """
    allowed = set(allowed)
    unknown = sorted(set(changes) - allowed)
    if unknown:
        raise ValidationError(f"Cannot update field(s): {', '.join(unknown)}")
    try:
        return entity.with_changes(**changes)
    except pydantic.ValidationError as e:
        raise ValidationError(_describe(e))


def _describe(error: pydantic.ValidationError) -> str:
    parts = []
    for issue in error.errors():
        location = ".".join(str(p) for p in issue["loc"]) or "value"
        parts.append(f"{location}: {issue['msg']}")
    return "; ".join(parts)
