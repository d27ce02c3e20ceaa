# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Base entity models with common fields and validation.
"""

from datetime import datetime, timezone
from typing import Any, List, Optional
from pydantic import BaseModel, Field, ConfigDict, PrivateAttr
from bson import ObjectId


def generate_object_id() -> str:
    """Generate a new MongoDB ObjectId as string."""
    return str(ObjectId())


def utc_now() -> datetime:
    """Current timestamp as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat a naive datetime as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_blank(value: Any) -> bool:
    """Check if a value is None or a whitespace-only string."""
    return value is None or not str(value).strip()


class BaseEntity(BaseModel):
    """Base entity with common fields for all survey domain objects."""

    model_config = ConfigDict(
        # Allow population by field name or alias
        populate_by_name=True,
        # Use enum values instead of enum objects
        use_enum_values=True,
        # Validate assignment
        validate_assignment=True,
        # Arbitrary types allowed
        arbitrary_types_allowed=True
    )

    id: str = Field(default_factory=generate_object_id, description="Unique identifier")
    created_at: datetime = Field(default_factory=utc_now, description="Creation timestamp")
    updated_at: datetime = Field(default_factory=utc_now, description="Last update timestamp")
    schema_version: int = Field(default=1, description="Schema version for migrations")

    def update_timestamp(self) -> None:
        """Update the last-modified timestamp."""
        self.updated_at = utc_now()


class AggregateRoot(BaseEntity):
    """
    Base class for transactional consistency boundaries.

    Carries the optimistic concurrency version compared by the repository
    on save, and collects domain events raised by successful transitions.
    Events are kept in memory only and drained by the application layer
    after the aggregate has been persisted.
    """

    version: int = Field(default=0, ge=0, description="Optimistic concurrency version")

    _domain_events: List[Any] = PrivateAttr(default_factory=list)

    @property
    def domain_events(self) -> tuple:
        """Pending domain events raised since the last drain."""
        return tuple(self._domain_events)

    def add_domain_event(self, event: Any) -> None:
        """Record a domain event for dispatch after commit."""
        self._domain_events.append(event)

    def pull_domain_events(self) -> List[Any]:
        """Return and clear pending domain events."""
        events = list(self._domain_events)
        self._domain_events.clear()
        return events

    def clear_domain_events(self) -> None:
        """Discard pending domain events."""
        self._domain_events.clear()
