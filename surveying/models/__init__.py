# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Models package - survey aggregate, child entities, value objects and events.
"""

# Base models
from .base import AggregateRoot, BaseEntity, ensure_utc, generate_object_id, utc_now

# Enumerations
from .enums import (
    SurveyState,
    QuestionKind,
    RepeatPolicyKind,
    AttemptStatus,
    ResponseStatus
)

# Value objects
from .value_objects import (
    RepeatPolicy,
    ParticipationPolicy,
    ParticipantInfo,
    DemographySnapshot,
    AudienceFilter,
    QuestionSpecification,
    NavigationCursor
)

# Domain events
from .events import (
    DomainEvent,
    ResponseSubmittedEvent,
    SurveyStructureFrozenEvent,
    SurveyStructureUnfrozenEvent
)

# Entities
from .question import Question, QuestionOption
from .response import Response, QuestionAnswer, QuestionAnswerOption
from .survey import Survey, SurveyFeature, SurveyCapability, ParticipationDenial

__all__ = [
    # Base
    "AggregateRoot",
    "BaseEntity",
    "generate_object_id",
    "ensure_utc",
    "utc_now",

    # Enums
    "SurveyState",
    "QuestionKind",
    "RepeatPolicyKind",
    "AttemptStatus",
    "ResponseStatus",

    # Value objects
    "RepeatPolicy",
    "ParticipationPolicy",
    "ParticipantInfo",
    "DemographySnapshot",
    "AudienceFilter",
    "QuestionSpecification",
    "NavigationCursor",

    # Events
    "DomainEvent",
    "ResponseSubmittedEvent",
    "SurveyStructureFrozenEvent",
    "SurveyStructureUnfrozenEvent",

    # Entities
    "Question",
    "QuestionOption",
    "Response",
    "QuestionAnswer",
    "QuestionAnswerOption",
    "Survey",
    "SurveyFeature",
    "SurveyCapability",
    "ParticipationDenial"
]
