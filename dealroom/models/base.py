# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Base entity models with common fields and document conversion.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, Optional
from pydantic import AfterValidator, BaseModel, Field, ConfigDict
from pydantic.alias_generators import to_camel
from bson import ObjectId


def generate_object_id() -> str:
    """Generate a new MongoDB ObjectId as string."""
    return str(ObjectId())


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Instants are kept as naive UTC; offset-aware input is converted."""
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


UTCDateTime = Annotated[datetime, AfterValidator(to_naive_utc)]


def to_plain(value: Any) -> Any:
    """Convert enums nested in a value to their plain values."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {key: to_plain(item) for key, item in value.items()}
    if isinstance(value, list):
        return [to_plain(item) for item in value]
    return value


class BaseEntity(BaseModel):
    """Base entity with common fields for all negotiation records."""

    model_config = ConfigDict(
        # Documents are stored with camelCase keys
        alias_generator=to_camel,
        populate_by_name=True,
        validate_assignment=True,
        arbitrary_types_allowed=True
    )

    id: str = Field(default_factory=generate_object_id, description="Unique identifier")
    created_at: datetime = Field(default_factory=datetime.utcnow, description="Creation timestamp")
    updated_at: datetime = Field(default_factory=datetime.utcnow, description="Last update timestamp")
    created_by: Optional[str] = Field(None, description="User ID who created this entity")
    updated_by: Optional[str] = Field(None, description="User ID who last updated this entity")
    schema_version: int = Field(default=1, description="Schema version for migrations")

    def update_timestamp(self, updated_by: Optional[str], now: Optional[datetime] = None) -> None:
        """Update the timestamp and updated_by fields."""
        self.updated_at = now or datetime.utcnow()
        self.updated_by = updated_by

    def to_document(self) -> Dict[str, Any]:
        """Serialize to a MongoDB document with camelCase keys."""
        document = to_plain(self.model_dump(by_alias=True))
        document["_id"] = document.pop("id")
        return document

    @classmethod
    def from_document(cls, document: Dict[str, Any]):
        """Build an entity from a stored MongoDB document."""
        data = dict(document)
        if "_id" in data:
            data["id"] = str(data.pop("_id"))
        return cls.model_validate(data)

    def to_response(self) -> Dict[str, Any]:
        """JSON-friendly representation for API responses."""
        return self.model_dump(mode="json")
