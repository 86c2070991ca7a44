"""
Ledger Error Taxonomy

DESIGN DECISION: Every failure a caller can act on is one of three kinds:
- ValidationError: malformed or missing input, nothing was written
- NotFoundError: a referenced entity does not exist, nothing was written
- BusinessRuleViolation: a domain invariant would break, checked before the write

Infrastructure failures come from the storage layer (StorageError and
friends in zerobudget.services.storage) and are propagated untouched.

Each error carries a machine-readable `kind` plus a human-readable message
so any outer surface (Streamlit, an HTTP layer) can render it uniformly.
"""


class LedgerError(Exception):
    """Base class for all domain errors raised by the ledger and budget services."""

    kind = "ledger_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, str]:
        """Structured form for API responses and logs."""
        return {"kind": self.kind, "message": self.message}


class ValidationError(LedgerError):
    """Malformed or missing required input."""

    kind = "validation_error"


class NotFoundError(LedgerError):
    """A referenced entity does not exist."""

    kind = "not_found"

    def __init__(self, entity: str, key: str):
        super().__init__(f"{entity} not found: {key}")
        self.entity = entity
        self.key = key


class AccountNotFoundError(NotFoundError):
    """The account a transaction points at is missing."""

    def __init__(self, key: str):
        super().__init__("Account", key)


class BusinessRuleViolation(LedgerError):
    """A domain invariant would be broken by the requested change."""

    kind = "business_rule_violation"
