# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Enumeration types for the survey engine.
"""

from enum import Enum


class SurveyState(str, Enum):
    """Survey lifecycle state enumeration."""
    DRAFT = "draft"
    PUBLISHED = "published"
    COMPLETED = "completed"
    ARCHIVED = "archived"


class QuestionKind(str, Enum):
    """Question kinds with their option-count rules."""
    TEXTUAL = "textual"
    FIXED_FOUR_CHOICE = "fixed_four_choice"
    SINGLE_CHOICE = "single_choice"
    MULTI_CHOICE = "multi_choice"


class RepeatPolicyKind(str, Enum):
    """How many times a question may be answered within one response."""
    NONE = "none"
    FIXED = "fixed"
    UNBOUNDED = "unbounded"


class AttemptStatus(str, Enum):
    """Participation attempt status. Every value except ACTIVE is terminal."""
    ACTIVE = "active"
    SUBMITTED = "submitted"
    CANCELED = "canceled"
    EXPIRED = "expired"


class ResponseStatus(str, Enum):
    """Response workflow status."""
    ANSWERING = "answering"
    REVIEWING = "reviewing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


CHOICE_QUESTION_KINDS = (QuestionKind.SINGLE_CHOICE, QuestionKind.MULTI_CHOICE)

MODIFIABLE_RESPONSE_STATUSES = (ResponseStatus.ANSWERING, ResponseStatus.REVIEWING)
