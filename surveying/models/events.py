# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Domain events raised by the survey aggregate.

Events are plain immutable values. The aggregate only records them; the
application service drains and publishes them after the aggregate is saved.
"""

from datetime import datetime
from typing import Any, ClassVar, Dict
from pydantic import BaseModel, Field, ConfigDict

from .base import generate_object_id, utc_now
from .value_objects import ParticipantInfo


class DomainEvent(BaseModel):
    """Base class for survey domain events."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    event_type: ClassVar[str] = "survey.event"

    event_id: str = Field(default_factory=generate_object_id, description="Unique event identifier")
    occurred_at: datetime = Field(default_factory=utc_now, description="When the event was raised")
    survey_id: str = Field(..., description="Owning survey identifier")

    @property
    def routing_key(self) -> str:
        """AMQP routing key for the event."""
        return self.event_type

    def to_message(self) -> Dict[str, Any]:
        """Serialize the event for the message broker."""
        payload = self.model_dump(mode="json")
        payload["event_type"] = self.event_type
        return payload


class ResponseSubmittedEvent(DomainEvent):
    """Raised when a response has been validated and submitted."""

    event_type: ClassVar[str] = "survey.response.submitted"

    response_id: str = Field(..., description="Submitted response identifier")
    participant: ParticipantInfo = Field(..., description="Participant who submitted")
    attempt_number: int = Field(..., ge=1, description="Attempt number of the submission")


class SurveyStructureFrozenEvent(DomainEvent):
    """Raised when the survey structure is frozen."""

    event_type: ClassVar[str] = "survey.structure.frozen"

    structure_version: int = Field(..., description="Structure version after freezing")


class SurveyStructureUnfrozenEvent(DomainEvent):
    """Raised when the survey structure is unfrozen."""

    event_type: ClassVar[str] = "survey.structure.unfrozen"

    structure_version: int = Field(..., description="Structure version after unfreezing")
