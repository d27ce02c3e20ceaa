# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Immutable value objects used by the survey aggregate.

Value objects compare by value and are frozen; "mutators" such as
``DemographySnapshot.with_field`` return a new instance.
"""

import json
from datetime import datetime, timedelta
from types import MappingProxyType
from typing import Any, ClassVar, Dict, FrozenSet, List, Mapping, Optional, Tuple
from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator

from .base import ensure_utc, utc_now
from .enums import QuestionKind, RepeatPolicyKind


class ValueObject(BaseModel):
    """Base class for frozen, value-compared domain objects."""

    model_config = ConfigDict(
        frozen=True,
        use_enum_values=True,
        populate_by_name=True
    )


class RepeatPolicy(ValueObject):
    """Decides how many answer instances a question may collect per response."""

    kind: RepeatPolicyKind = Field(default=RepeatPolicyKind.NONE, description="Repeat policy kind")
    max_repeats: Optional[int] = Field(None, description="Maximum repeats (fixed kind only)")

    @model_validator(mode='after')
    def validate_max_repeats(self):
        """Fixed policies need a positive maximum; other kinds take none."""
        if self.kind == RepeatPolicyKind.FIXED:
            if self.max_repeats is None or self.max_repeats < 1:
                raise ValueError('MaxRepeats must be at least 1 for fixed repeat policies')
        elif self.max_repeats is not None:
            raise ValueError(f'MaxRepeats is only allowed for fixed repeat policies (got kind "{self.kind}")')
        return self

    @classmethod
    def none(cls) -> "RepeatPolicy":
        return cls(kind=RepeatPolicyKind.NONE)

    @classmethod
    def fixed(cls, max_repeats: int) -> "RepeatPolicy":
        return cls(kind=RepeatPolicyKind.FIXED, max_repeats=max_repeats)

    @classmethod
    def unbounded(cls) -> "RepeatPolicy":
        return cls(kind=RepeatPolicyKind.UNBOUNDED)

    def is_valid_repeat_index(self, repeat_index: int) -> bool:
        """Check whether a 1-based repeat index is allowed by this policy."""
        if repeat_index < 1:
            return False

        if self.kind == RepeatPolicyKind.NONE:
            return repeat_index == 1
        if self.kind == RepeatPolicyKind.FIXED:
            return repeat_index <= self.max_repeats
        return True

    def can_add_more_repeats(self, current_answered_count: int) -> bool:
        """Check whether another repeat may be added after ``current_answered_count``."""
        if self.kind == RepeatPolicyKind.NONE:
            return current_answered_count < 1
        if self.kind == RepeatPolicyKind.FIXED:
            return current_answered_count < self.max_repeats
        return True

    def get_max_repeat_index(self) -> Optional[int]:
        """Highest valid repeat index, or None when unbounded."""
        if self.kind == RepeatPolicyKind.NONE:
            return 1
        if self.kind == RepeatPolicyKind.FIXED:
            return self.max_repeats
        return None

    def __str__(self) -> str:
        if self.kind == RepeatPolicyKind.NONE:
            return "None (Single)"
        if self.kind == RepeatPolicyKind.FIXED:
            return f"Fixed (Max: {self.max_repeats})"
        return "Unbounded (Unlimited)"


class ParticipationPolicy(ValueObject):
    """Rules governing how many attempts a participant may make."""

    max_attempts_per_member: int = Field(..., description="Maximum attempts per participant")
    allow_multiple_submissions: bool = Field(default=False, description="Whether a participant may submit more than once")
    cool_down_seconds: Optional[int] = Field(None, description="Minimum seconds between attempts")
    allow_back_navigation: bool = Field(default=True, description="Whether participants may navigate backwards")

    @field_validator('max_attempts_per_member')
    @classmethod
    def validate_max_attempts(cls, v):
        """Validate maximum attempts."""
        if v <= 0:
            raise ValueError('Max attempts per member must be greater than 0')
        return v

    @field_validator('cool_down_seconds')
    @classmethod
    def validate_cool_down(cls, v):
        """Validate cooldown."""
        if v is not None and v < 0:
            raise ValueError('Cool down seconds cannot be negative')
        return v

    def is_attempt_allowed(self, attempt_number: int) -> bool:
        """Check whether the given attempt number fits within the policy."""
        return 0 <= attempt_number <= self.max_attempts_per_member

    def is_cool_down_passed(self, last_attempt_at: Optional[datetime], now: Optional[datetime] = None) -> bool:
        """Check whether enough time has elapsed since the previous attempt."""
        if not self.cool_down_seconds or last_attempt_at is None:
            return True

        now = ensure_utc(now) or utc_now()
        return now - ensure_utc(last_attempt_at) >= timedelta(seconds=self.cool_down_seconds)


class ParticipantInfo(ValueObject):
    """Opaque participant reference: a member id or an anonymous hash."""

    member_id: Optional[str] = Field(None, description="Member identifier")
    participant_hash: Optional[str] = Field(None, description="Anonymous participant hash")

    @field_validator('participant_hash')
    @classmethod
    def validate_participant_hash(cls, v):
        """Normalize participant hash."""
        if v is None:
            return v
        if not v.strip():
            raise ValueError('Participant hash cannot be empty')
        return v.strip()

    @field_validator('member_id')
    @classmethod
    def validate_member_id(cls, v):
        """Validate member id."""
        if v is None:
            return v
        if not v.strip():
            raise ValueError('Member ID cannot be empty')
        return v.strip()

    @model_validator(mode='after')
    def validate_identity(self):
        """Exactly one of member_id and participant_hash must be set."""
        if (self.member_id is None) == (self.participant_hash is None):
            raise ValueError('Participant must have either a member ID or a participant hash')
        return self

    @classmethod
    def for_member(cls, member_id: str) -> "ParticipantInfo":
        if member_id is None or not str(member_id).strip():
            raise ValueError('Member ID cannot be empty')
        return cls(member_id=str(member_id))

    @classmethod
    def for_anonymous(cls, participant_hash: str) -> "ParticipantInfo":
        if participant_hash is None or not participant_hash.strip():
            raise ValueError('Participant hash cannot be empty')
        return cls(participant_hash=participant_hash)

    @property
    def is_anonymous(self) -> bool:
        return self.participant_hash is not None

    def get_participant_identifier(self) -> str:
        return self.participant_hash if self.is_anonymous else self.member_id

    def get_short_identifier(self) -> str:
        return self.get_participant_identifier()[:8]

    def get_display_name(self) -> str:
        if self.is_anonymous:
            return f"Anonymous ({self.get_short_identifier()})"
        return f"Member {self.member_id}"


class DemographySnapshot(ValueObject):
    """Demographic attributes of a participant captured when a response starts."""

    ALLOWED_KEYS: ClassVar[FrozenSet[str]] = frozenset({
        "DisciplineCode",
        "ProvinceCode",
        "LicenseGradeCode",
        "SeniorityBand",
        "EducationLevel",
        "AgeGroup",
        "Gender",
        "OrganizationType",
        "PositionLevel",
    })

    data: Dict[str, str] = Field(default_factory=dict, description="Demographic fields")
    schema_version: int = Field(default=1, description="Snapshot schema version")

    @field_validator('data', mode='before')
    @classmethod
    def validate_data(cls, v):
        """Restrict keys to the allow-list, skip blank keys and store None as empty."""
        if v is None:
            raise ValueError('Demography data cannot be None')

        cleaned = {}
        for key, value in dict(v).items():
            if key is None or not str(key).strip():
                continue
            if key not in cls.ALLOWED_KEYS:
                raise ValueError(f'Key "{key}" is not in the allowed demographic keys')
            cleaned[key] = "" if value is None else str(value)
        return cleaned

    @classmethod
    def empty(cls) -> "DemographySnapshot":
        return cls(data={})

    def with_field(self, key: str, value: Optional[str]) -> "DemographySnapshot":
        """Return a new snapshot with ``key`` set to ``value``."""
        if key is None or not key.strip():
            raise ValueError('Key cannot be empty')
        if key not in self.ALLOWED_KEYS:
            raise ValueError(f'Key "{key}" is not in the allowed demographic keys')

        data = dict(self.data)
        data[key] = "" if value is None else value
        return DemographySnapshot(data=data, schema_version=self.schema_version)

    def get_field(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def has_field(self, key: str) -> bool:
        return key in self.data

    def get_all_fields(self) -> Mapping[str, str]:
        return MappingProxyType(dict(self.data))

    def __hash__(self) -> int:
        return hash((tuple(sorted(self.data.items())), self.schema_version))


class AudienceFilter(ValueObject):
    """JSON-encoded audience criteria attached to a survey."""

    filter_expression: str = Field(..., description="JSON criteria expression")
    filter_version: int = Field(default=1, description="Filter DSL version")

    @field_validator('filter_expression')
    @classmethod
    def validate_filter_expression(cls, v):
        """Validate filter expression."""
        if v is None or not v.strip():
            raise ValueError('Filter expression cannot be empty')
        return v

    @classmethod
    def from_definition_codes(
        cls,
        required_features: Optional[List[str]] = None,
        required_capabilities: Optional[List[str]] = None,
        excluded_features: Optional[List[str]] = None,
        excluded_capabilities: Optional[List[str]] = None
    ) -> "AudienceFilter":
        criteria = {
            "requiredFeatures": list(required_features or []),
            "requiredCapabilities": list(required_capabilities or []),
            "excludedFeatures": list(excluded_features or []),
            "excludedCapabilities": list(excluded_capabilities or []),
        }
        return cls(filter_expression=json.dumps(criteria))

    @classmethod
    def for_member_groups(cls, member_groups: Optional[List[str]] = None) -> "AudienceFilter":
        return cls(filter_expression=json.dumps({"memberGroups": list(member_groups or [])}))

    def get_criteria(self) -> Dict[str, Any]:
        """Parsed criteria, or an empty dict when the expression is not valid JSON."""
        try:
            criteria = json.loads(self.filter_expression)
        except (ValueError, TypeError):
            return {}
        return criteria if isinstance(criteria, dict) else {}

    def get_required_feature_codes(self) -> List[str]:
        return list(self.get_criteria().get("requiredFeatures", []))

    def get_required_capability_codes(self) -> List[str]:
        return list(self.get_criteria().get("requiredCapabilities", []))

    def is_empty(self) -> bool:
        """True when no criterion holds a value."""
        return not any(self.get_criteria().values())


class QuestionSpecification(ValueObject):
    """Input describing a question to be added to a survey."""

    kind: QuestionKind = Field(..., description="Question kind")
    text: str = Field(..., min_length=1, max_length=1000, description="Question text")
    order: int = Field(..., ge=0, description="Ordering key within the survey")
    is_required: bool = Field(default=False, description="Whether an answer is required")
    repeat_policy: RepeatPolicy = Field(default_factory=RepeatPolicy.none, description="Repeat policy")

    @field_validator('text')
    @classmethod
    def validate_text(cls, v):
        """Validate question text."""
        if not v.strip():
            raise ValueError('Question text cannot be empty')
        return v.strip()


class NavigationCursor(ValueObject):
    """
    Position of a response within the ordered question list.

    A cursor is either unset (no question visited yet) or at a concrete
    ``(question_id, repeat_index)`` pair.
    """

    question_id: Optional[str] = Field(None, description="Current question id")
    repeat_index: int = Field(default=1, ge=1, description="Current repeat index")

    @classmethod
    def unset(cls) -> "NavigationCursor":
        return cls()

    @classmethod
    def at(cls, question_id: str, repeat_index: int = 1) -> "NavigationCursor":
        if not question_id:
            raise ValueError('Question ID cannot be empty')
        return cls(question_id=question_id, repeat_index=repeat_index)

    @property
    def is_set(self) -> bool:
        return self.question_id is not None

    def as_tuple(self) -> Tuple[Optional[str], int]:
        return self.question_id, self.repeat_index
