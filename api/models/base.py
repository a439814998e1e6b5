# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Base entity models with common fields and validation.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field, ConfigDict
from bson import ObjectId


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def generate_object_id() -> str:
    """Generate a new MongoDB ObjectId as string."""
    return str(ObjectId())


class BaseEntity(BaseModel):
    """Base entity with the identifier and timestamps shared by stored rows."""

    model_config = ConfigDict(
        # Allow population by field name or alias
        populate_by_name=True,
        # Use enum values instead of enum objects
        use_enum_values=True,
        # Validate assignment
        validate_assignment=True,
        # Stored rows carry extra columns we do not model
        extra="ignore"
    )

    id: str = Field(default_factory=generate_object_id, description="Unique identifier")
    created_at: Optional[datetime] = Field(default_factory=utc_now, description="Creation timestamp")

    @classmethod
    def from_document(cls, document: Optional[Dict[str, Any]]):
        """Build an entity from a stored document, mapping `_id` to `id`."""
        if document is None:
            return None
        data = dict(document)
        if "_id" in data:
            data["id"] = str(data.pop("_id"))
        return cls(**data)

    def to_public_dict(self) -> Dict[str, Any]:
        """JSON-ready representation."""
        return self.model_dump(mode="json")
