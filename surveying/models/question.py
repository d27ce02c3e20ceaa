# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Question and QuestionOption entities owned by the survey aggregate.
"""

import logging
from typing import Dict, Iterable, List, Optional, Tuple
from pydantic import Field, field_validator

from .base import BaseEntity, is_blank
from .enums import QuestionKind, RepeatPolicyKind, CHOICE_QUESTION_KINDS
from .value_objects import QuestionSpecification, RepeatPolicy
from ..exceptions import InvalidStateException, ValidationException

logger = logging.getLogger(__name__)

FIXED_CHOICE_OPTION_COUNT = 4
MIN_CHOICE_OPTIONS = 2
MAX_CHOICE_OPTIONS = 25


class QuestionOption(BaseEntity):
    """A selectable choice of a question."""

    question_id: str = Field(..., description="Owning question identifier")
    text: str = Field(..., min_length=1, max_length=500, description="Option text")
    order: int = Field(..., ge=0, description="Display order")
    is_active: bool = Field(default=True, description="Whether the option can be selected")

    @field_validator('text')
    @classmethod
    def validate_text(cls, v):
        """Validate option text."""
        if not v.strip():
            raise ValueError('Option text cannot be empty')
        return v.strip()

    def update_text(self, text: str) -> None:
        if is_blank(text):
            raise ValidationException("Option text cannot be empty")

        self.text = text.strip()
        self.update_timestamp()

    def update_order(self, order: int) -> None:
        if order < 0:
            raise ValidationException("Order cannot be negative")

        self.order = order
        self.update_timestamp()

    def activate(self) -> None:
        self.is_active = True
        self.update_timestamp()

    def deactivate(self) -> None:
        self.is_active = False
        self.update_timestamp()


class Question(BaseEntity):
    """
    A survey question.

    Option-count bounds depend on the kind: textual questions take no
    options, fixed four-choice questions exactly four, and single/multi
    choice questions between 2 and 25. Editability is decided by the owning
    survey, which checks its own state before delegating here.
    """

    survey_id: str = Field(..., description="Owning survey identifier")
    kind: QuestionKind = Field(..., description="Question kind")
    text: str = Field(..., min_length=1, max_length=1000, description="Question text")
    order: int = Field(..., ge=0, description="Ordering key within the survey")
    is_required: bool = Field(default=False, description="Whether an answer is required")
    repeat_policy: RepeatPolicy = Field(default_factory=RepeatPolicy.none, description="Repeat policy")
    option_items: List[QuestionOption] = Field(default_factory=list, alias="options", description="Owned options")

    @field_validator('text')
    @classmethod
    def validate_text(cls, v):
        """Validate question text."""
        if not v.strip():
            raise ValueError('Question text cannot be empty')
        return v.strip()

    @classmethod
    def from_specification(cls, survey_id: str, specification: QuestionSpecification) -> "Question":
        """Build a question for ``survey_id`` from a specification."""
        if is_blank(survey_id):
            raise ValidationException("Survey ID cannot be empty")
        if specification is None:
            raise ValidationException("Question specification is required")

        return cls(
            survey_id=survey_id,
            kind=specification.kind,
            text=specification.text,
            order=specification.order,
            is_required=specification.is_required,
            repeat_policy=specification.repeat_policy
        )

    @property
    def options(self) -> Tuple[QuestionOption, ...]:
        """Read-only view of the options in insertion order."""
        return tuple(self.option_items)

    @property
    def is_repeatable(self) -> bool:
        return self.repeat_policy.kind != RepeatPolicyKind.NONE

    @property
    def is_choice(self) -> bool:
        return self.kind != QuestionKind.TEXTUAL

    def add_option(self, text: str, order: int) -> QuestionOption:
        """
        Append an option to this question.

        Raises:
            InvalidStateException: For textual questions or when the kind's
                option limit has been reached.
            ValidationException: For blank text or a negative order.
        """
        if self.kind == QuestionKind.TEXTUAL:
            raise InvalidStateException("Cannot add options to textual questions")

        if is_blank(text):
            raise ValidationException("Option text cannot be empty")

        if order is None or order < 0:
            raise ValidationException("Order cannot be negative")

        if self.kind == QuestionKind.FIXED_FOUR_CHOICE and len(self.option_items) >= FIXED_CHOICE_OPTION_COUNT:
            raise InvalidStateException("Fixed four-choice questions can only have 4 options")

        if self.kind in CHOICE_QUESTION_KINDS and len(self.option_items) >= MAX_CHOICE_OPTIONS:
            raise InvalidStateException(f"Choice questions cannot have more than {MAX_CHOICE_OPTIONS} options")

        option = QuestionOption(question_id=self.id, text=text, order=order)
        self.option_items.append(option)
        self.update_timestamp()

        logger.debug(
            "Option added to question",
            extra={"extra_fields": {"question_id": self.id, "option_id": option.id, "option_count": len(self.option_items)}}
        )
        return option

    def update_text(self, text: str) -> None:
        if is_blank(text):
            raise ValidationException("Question text cannot be empty")

        self.text = text.strip()
        self.update_timestamp()

    def update_order(self, order: int) -> None:
        if order is None or order < 0:
            raise ValidationException("Order cannot be negative")

        self.order = order
        self.update_timestamp()

    def update_required_status(self, is_required: bool) -> None:
        self.is_required = bool(is_required)
        self.update_timestamp()

    def update_repeat_policy(self, repeat_policy: RepeatPolicy) -> None:
        if repeat_policy is None:
            raise ValidationException("Repeat policy is required")

        self.repeat_policy = repeat_policy
        self.update_timestamp()

    def get_ordered_options(self) -> List[QuestionOption]:
        return sorted(self.option_items, key=lambda option: option.order)

    def get_option(self, option_id: str) -> Optional[QuestionOption]:
        return next((option for option in self.option_items if option.id == option_id), None)

    def get_option_texts(self) -> Dict[str, str]:
        return {option.id: option.text for option in self.option_items}

    def has_valid_options(self) -> bool:
        """Check the kind-dependent option count."""
        count = len(self.option_items)
        if self.kind == QuestionKind.TEXTUAL:
            return True
        if self.kind == QuestionKind.FIXED_FOUR_CHOICE:
            return count == FIXED_CHOICE_OPTION_COUNT
        return count >= MIN_CHOICE_OPTIONS

    def validate_selected_options(self, selected_option_ids: Iterable[str]) -> bool:
        """Check a selection against kind, ownership and required rules."""
        selected_ids = set(selected_option_ids or [])

        if self.kind == QuestionKind.TEXTUAL:
            return not selected_ids

        valid_ids = {option.id for option in self.option_items}
        if not selected_ids.issubset(valid_ids):
            return False

        if self.kind == QuestionKind.SINGLE_CHOICE and len(selected_ids) > 1:
            return False

        if self.is_required and not selected_ids:
            return False

        return True

    def validate_repeat_index(self, repeat_index: int) -> bool:
        return self.repeat_policy.is_valid_repeat_index(repeat_index)

    def can_add_more_repeats(self, current_answered_count: int) -> bool:
        return self.repeat_policy.can_add_more_repeats(current_answered_count)

    def get_max_repeat_index(self) -> Optional[int]:
        return self.repeat_policy.get_max_repeat_index()
