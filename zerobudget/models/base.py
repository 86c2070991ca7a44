"""
Stored Document Base Model

Every entity persisted through the Ledger Store shares the same envelope:
identity key, tenant, timestamps and the store-managed version used for
optimistic concurrency.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from zerobudget.models.primitives import new_key, utcnow


class Document(BaseModel):
    """Base for all stored entities."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    key: str = Field(
        default_factory=new_key,
        description="Identity key within the collection"
    )
    family_id: str = Field(
        default="default",
        min_length=1,
        description="Tenant that owns this document"
    )
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    version: int = Field(
        default=0,
        ge=0,
        description="Store-managed revision, incremented on every write"
    )

    def with_changes(self, **changes: Any):
        """
        Return a validated copy with the given fields replaced.

        Unlike model_copy(update=...), the result is re-validated so
        money normalization and date checks still apply.
        """
        data = self.model_dump()
        data.update(changes)
        data["updated_at"] = utcnow()
        return type(self).model_validate(data)
