# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Response, QuestionAnswer and QuestionAnswerOption entities.

A response is one participation attempt. It records answers per
``(question_id, repeat_index)`` and keeps a navigation cursor over the
survey's ordered question list. The ordered list is always supplied by the
caller; the response never holds on to question objects.
"""

import logging
from datetime import datetime
from typing import Iterable, List, Mapping, Optional, Sequence, Tuple
from pydantic import Field

from .base import BaseEntity, is_blank, utc_now
from .enums import AttemptStatus, ResponseStatus, MODIFIABLE_RESPONSE_STATUSES
from .question import Question
from .value_objects import DemographySnapshot, NavigationCursor, ParticipantInfo
from ..exceptions import InvalidStateException, NotFoundException, ValidationException

logger = logging.getLogger(__name__)


class QuestionAnswerOption(BaseEntity):
    """A selected option with the option text captured at selection time."""

    question_answer_id: str = Field(..., description="Owning answer identifier")
    option_id: str = Field(..., min_length=1, description="Selected option identifier")
    option_text: str = Field(..., description="Option text snapshot")


class QuestionAnswer(BaseEntity):
    """Answer for one question at one repeat index."""

    response_id: str = Field(..., description="Owning response identifier")
    question_id: str = Field(..., min_length=1, description="Answered question identifier")
    repeat_index: int = Field(default=1, ge=1, description="Repeat instance, 1-based")
    text_answer: Optional[str] = Field(None, description="Free text answer")
    selected_option_items: List[QuestionAnswerOption] = Field(
        default_factory=list,
        alias="selected_options",
        description="Selected options"
    )

    @property
    def selected_options(self) -> Tuple[QuestionAnswerOption, ...]:
        return tuple(self.selected_option_items)

    def has_answer(self) -> bool:
        """True when there is non-blank text or at least one selected option."""
        return not is_blank(self.text_answer) or bool(self.selected_option_items)

    def set_text_answer(self, text: str) -> None:
        if is_blank(text):
            raise ValidationException("Text answer cannot be empty")

        self.text_answer = text.strip()
        self.update_timestamp()

    def clear_text_answer(self) -> None:
        self.text_answer = None
        self.update_timestamp()

    def add_selected_option(self, option_id: str, option_text: str) -> QuestionAnswerOption:
        """Select an option. Selecting an already selected option is a no-op."""
        if is_blank(option_id):
            raise ValidationException("Option ID cannot be empty")
        if is_blank(option_text):
            raise ValidationException("Option text cannot be empty")

        existing = self.get_selected_option(option_id)
        if existing is not None:
            return existing

        selected = QuestionAnswerOption(question_answer_id=self.id, option_id=option_id, option_text=option_text)
        self.selected_option_items.append(selected)
        self.update_timestamp()
        return selected

    def remove_selected_option(self, option_id: str) -> bool:
        existing = self.get_selected_option(option_id)
        if existing is None:
            return False

        self.selected_option_items.remove(existing)
        self.update_timestamp()
        return True

    def clear_selected_options(self) -> None:
        self.selected_option_items.clear()
        self.update_timestamp()

    def get_selected_option(self, option_id: str) -> Optional[QuestionAnswerOption]:
        return next((item for item in self.selected_option_items if item.option_id == option_id), None)

    def get_selected_option_ids(self) -> List[str]:
        return [item.option_id for item in self.selected_option_items]

    def is_option_selected(self, option_id: str) -> bool:
        return self.get_selected_option(option_id) is not None


class Response(BaseEntity):
    """
    One participation attempt by one participant.

    Attempt status ACTIVE holds exactly while the response status is
    ANSWERING or REVIEWING. Submit, cancel and expire each end the attempt
    once and cannot be repeated.
    """

    survey_id: str = Field(..., min_length=1, description="Owning survey identifier")
    participant: ParticipantInfo = Field(..., description="Participant reference")
    demography_snapshot: Optional[DemographySnapshot] = Field(None, description="Demography captured at start")
    attempt_number: int = Field(..., ge=1, description="Attempt number for the participant, 1-based")
    attempt_status: AttemptStatus = Field(default=AttemptStatus.ACTIVE, description="Attempt status")
    status: ResponseStatus = Field(default=ResponseStatus.ANSWERING, description="Response workflow status")
    submitted_at: Optional[datetime] = Field(None, description="Submission timestamp")
    canceled_at: Optional[datetime] = Field(None, description="Cancellation timestamp")
    expired_at: Optional[datetime] = Field(None, description="Expiry timestamp")
    cursor: NavigationCursor = Field(default_factory=NavigationCursor.unset, description="Navigation cursor")
    answer_items: List[QuestionAnswer] = Field(default_factory=list, alias="question_answers", description="Recorded answers")

    @property
    def question_answers(self) -> Tuple[QuestionAnswer, ...]:
        """Read-only view of the recorded answers."""
        return tuple(self.answer_items)

    @property
    def current_question_id(self) -> Optional[str]:
        return self.cursor.question_id

    @property
    def current_repeat_index(self) -> int:
        return self.cursor.repeat_index

    @property
    def is_active(self) -> bool:
        return self.attempt_status == AttemptStatus.ACTIVE

    @property
    def is_submitted(self) -> bool:
        return self.attempt_status == AttemptStatus.SUBMITTED

    @property
    def last_activity_at(self) -> Optional[datetime]:
        """Timestamp of the terminal transition, if any."""
        return self.submitted_at or self.canceled_at or self.expired_at

    def can_be_modified(self) -> bool:
        return self.status in MODIFIABLE_RESPONSE_STATUSES

    def _ensure_modifiable(self) -> None:
        if not self.can_be_modified():
            raise InvalidStateException(f"Response cannot be modified in status '{self.status}'")

    # Answer queries

    def _find_answer(self, question_id: str, repeat_index: Optional[int] = None) -> Optional[QuestionAnswer]:
        # Without a repeat index the first recorded answer for the question is used.
        for answer in self.answer_items:
            if answer.question_id != question_id:
                continue
            if repeat_index is None or answer.repeat_index == repeat_index:
                return answer
        return None

    def get_question_answer(self, question_id: str, repeat_index: Optional[int] = None) -> Optional[QuestionAnswer]:
        return self._find_answer(question_id, repeat_index)

    def get_question_answers(self, question_id: str) -> List[QuestionAnswer]:
        """All answers for a question ordered by repeat index."""
        answers = [answer for answer in self.answer_items if answer.question_id == question_id]
        return sorted(answers, key=lambda answer: answer.repeat_index)

    def get_selected_options_for_question(self, question_id: str, repeat_index: Optional[int] = None) -> List[str]:
        answer = self._find_answer(question_id, repeat_index)
        return answer.get_selected_option_ids() if answer else []

    def get_text_answer_for_question(self, question_id: str, repeat_index: Optional[int] = None) -> Optional[str]:
        answer = self._find_answer(question_id, repeat_index)
        return answer.text_answer if answer else None

    def get_answered_repeat_indices(self, question_id: str) -> List[int]:
        return sorted(
            answer.repeat_index
            for answer in self.answer_items
            if answer.question_id == question_id and answer.has_answer()
        )

    def get_answered_repeat_count(self, question_id: str) -> int:
        return len(self.get_answered_repeat_indices(question_id))

    def has_answer_for_question(self, question_id: str, repeat_index: Optional[int] = None) -> bool:
        """
        Check whether a question has an answer with content.

        Without ``repeat_index`` only the base answer (the first one recorded
        for the question) is inspected.
        """
        answer = self._find_answer(question_id, repeat_index)
        return answer is not None and answer.has_answer()

    def get_answered_question_ids(self) -> List[str]:
        """Distinct ids of questions with at least one answer with content."""
        seen = []
        for answer in self.answer_items:
            if answer.has_answer() and answer.question_id not in seen:
                seen.append(answer.question_id)
        return seen

    def get_max_answered_repeat_index(self, question_id: str) -> int:
        """Highest answered repeat index for a question, or 1 if none."""
        indices = self.get_answered_repeat_indices(question_id)
        return max(indices) if indices else 1

    # Answer mutation

    def _get_or_create_answer(self, question_id: str, repeat_index: int) -> QuestionAnswer:
        answer = self._find_answer(question_id, repeat_index)
        if answer is None:
            answer = QuestionAnswer(response_id=self.id, question_id=question_id, repeat_index=repeat_index)
            self.answer_items.append(answer)
        return answer

    def _validate_answer_key(self, question_id: str, repeat_index: int) -> None:
        if is_blank(question_id):
            raise ValidationException("Question ID cannot be empty")
        if repeat_index is None or repeat_index < 1:
            raise ValidationException("Repeat index must be at least 1")

    def set_question_answer(
        self,
        question_id: str,
        text_answer: Optional[str] = None,
        selected_options: Optional[Mapping[str, str]] = None,
        repeat_index: int = 1
    ) -> QuestionAnswer:
        """
        Upsert the answer for ``(question_id, repeat_index)``.

        Text is set only when non-blank. When ``selected_options`` (option id
        to option text) is given, previous selections are replaced. Calling
        this twice with the same arguments leaves the same recorded state.
        """
        self._ensure_modifiable()
        self._validate_answer_key(question_id, repeat_index)

        if selected_options is not None:
            for option_id, option_text in selected_options.items():
                if is_blank(option_id):
                    raise ValidationException("Option ID cannot be empty")
                if is_blank(option_text):
                    raise ValidationException(f"Option text for option {option_id} cannot be empty")

        answer = self._get_or_create_answer(question_id, repeat_index)

        if not is_blank(text_answer):
            answer.set_text_answer(text_answer)

        if selected_options is not None:
            answer.clear_selected_options()
            for option_id, option_text in selected_options.items():
                answer.add_selected_option(option_id, option_text)

        self.update_timestamp()
        return answer

    def add_selected_option_with_text(
        self,
        question_id: str,
        option_id: str,
        option_text: str,
        repeat_index: int = 1
    ) -> QuestionAnswer:
        """Add one selected option, keeping any existing selections."""
        self._ensure_modifiable()
        self._validate_answer_key(question_id, repeat_index)
        if is_blank(option_id):
            raise ValidationException("Option ID cannot be empty")
        if is_blank(option_text):
            raise ValidationException("Option text cannot be empty")

        answer = self._get_or_create_answer(question_id, repeat_index)
        answer.add_selected_option(option_id, option_text)
        self.update_timestamp()
        return answer

    def update_selected_options(
        self,
        question_id: str,
        selected_option_ids: Iterable[str],
        option_texts: Mapping[str, str],
        repeat_index: int = 1
    ) -> QuestionAnswer:
        """Replace the selection, taking option texts from ``option_texts``."""
        self._ensure_modifiable()
        self._validate_answer_key(question_id, repeat_index)

        option_ids = [option_id for option_id in (selected_option_ids or []) if not is_blank(option_id)]
        missing = [option_id for option_id in option_ids if is_blank(option_texts.get(option_id))]
        if missing:
            raise NotFoundException(f"Options {', '.join(missing)} not found for question {question_id}")

        answer = self._get_or_create_answer(question_id, repeat_index)
        answer.clear_selected_options()
        for option_id in option_ids:
            answer.add_selected_option(option_id, option_texts[option_id])

        self.update_timestamp()
        return answer

    def add_text_answer(self, question_id: str, text: str, repeat_index: int = 1) -> QuestionAnswer:
        self._ensure_modifiable()
        self._validate_answer_key(question_id, repeat_index)
        if is_blank(text):
            raise ValidationException("Text answer cannot be empty")

        answer = self._get_or_create_answer(question_id, repeat_index)
        answer.set_text_answer(text)
        self.update_timestamp()
        return answer

    def remove_question_answer(self, question_id: str, repeat_index: int = 1) -> bool:
        """Drop the answer for one repeat instance. Returns False when absent."""
        self._ensure_modifiable()
        self._validate_answer_key(question_id, repeat_index)

        answer = self._find_answer(question_id, repeat_index)
        if answer is None:
            return False

        self.answer_items.remove(answer)
        self.update_timestamp()
        return True

    def update_demography_snapshot(self, snapshot: DemographySnapshot) -> None:
        if snapshot is None:
            raise ValidationException("Demography snapshot is required")

        self.demography_snapshot = snapshot
        self.update_timestamp()

    # Lifecycle

    def _ensure_active(self, action: str) -> None:
        if self.attempt_status != AttemptStatus.ACTIVE:
            raise InvalidStateException(f"Only active attempts can be {action}")

    def submit(self) -> None:
        self._ensure_active("submitted")

        self.submitted_at = utc_now()
        self.attempt_status = AttemptStatus.SUBMITTED
        self.status = ResponseStatus.COMPLETED
        self.update_timestamp()

        logger.info(
            "Response submitted",
            extra={"extra_fields": {"response_id": self.id, "survey_id": self.survey_id, "attempt_number": self.attempt_number}}
        )

    def cancel(self) -> None:
        self._ensure_active("canceled")

        self.canceled_at = utc_now()
        self.attempt_status = AttemptStatus.CANCELED
        self.status = ResponseStatus.CANCELLED
        self.update_timestamp()

        logger.info(
            "Response canceled",
            extra={"extra_fields": {"response_id": self.id, "survey_id": self.survey_id}}
        )

    def expire(self) -> None:
        self._ensure_active("expired")

        self.expired_at = utc_now()
        self.attempt_status = AttemptStatus.EXPIRED
        self.status = ResponseStatus.EXPIRED
        self.update_timestamp()

        logger.info(
            "Response expired",
            extra={"extra_fields": {"response_id": self.id, "survey_id": self.survey_id}}
        )

    def start_reviewing(self) -> None:
        if self.status != ResponseStatus.ANSWERING:
            raise InvalidStateException(f"Can only start reviewing from answering status (current: '{self.status}')")

        self.status = ResponseStatus.REVIEWING
        self.update_timestamp()

    def resume_answering(self) -> None:
        if self.status != ResponseStatus.REVIEWING:
            raise InvalidStateException(f"Can only resume answering from reviewing status (current: '{self.status}')")

        self.status = ResponseStatus.ANSWERING
        self.update_timestamp()

    # Navigation

    def _require_navigable(self, ordered_questions: Sequence[Question]) -> List[Question]:
        questions = list(ordered_questions or [])
        if not questions:
            raise ValidationException("Ordered questions list cannot be empty")
        self._ensure_modifiable()
        return questions

    def _move_to(self, question: Question, repeat_index: int) -> None:
        self.cursor = NavigationCursor.at(question.id, repeat_index)
        logger.debug(
            "Response cursor moved",
            extra={"extra_fields": {"response_id": self.id, "question_id": question.id, "repeat_index": repeat_index}}
        )

    @staticmethod
    def _index_of(questions: List[Question], question_id: Optional[str]) -> Optional[int]:
        for position, question in enumerate(questions):
            if question.id == question_id:
                return position
        return None

    def determine_next_repeat_index(self, question: Question) -> int:
        """
        Resolve the repeat index a participant should land on for ``question``.

        Non-repeatable questions always use 1. Bounded policies return the
        first unanswered index up to the maximum, or the maximum when all are
        answered. Unbounded policies return the first gap in the answered
        indices, or one past the highest answered index.
        """
        if not question.is_repeatable:
            return 1

        answered = set(self.get_answered_repeat_indices(question.id))
        max_index = question.get_max_repeat_index()

        if max_index is not None:
            for index in range(1, max_index + 1):
                if index not in answered:
                    return index
            return max_index

        if not answered:
            return 1

        max_answered = max(answered)
        for index in range(1, max_answered + 2):
            if index not in answered:
                return index
        return max_answered + 1

    def navigate_to_question(
        self,
        ordered_questions: Sequence[Question],
        question_id: Optional[str] = None,
        repeat_index: Optional[int] = None,
        is_first: bool = True
    ) -> None:
        """
        Point the cursor at a question.

        A blank or unknown ``question_id`` falls back to the first question
        (``is_first``) or the last one. Without an explicit ``repeat_index``
        the next repeat index for the target is used; for a known question an
        index its repeat policy rejects is replaced by 1.
        """
        questions = self._require_navigable(ordered_questions)

        position = None if is_blank(question_id) else self._index_of(questions, question_id)

        if position is None:
            target = questions[0] if is_first else questions[-1]
            target_repeat = repeat_index if repeat_index is not None else self.determine_next_repeat_index(target)
            self._move_to(target, max(target_repeat, 1))
            return

        target = questions[position]
        target_repeat = repeat_index if repeat_index is not None else self.determine_next_repeat_index(target)
        if not target.validate_repeat_index(target_repeat):
            target_repeat = 1
        self._move_to(target, target_repeat)

    def navigate_to_next(self, ordered_questions: Sequence[Question]) -> bool:
        """
        Advance the cursor. Returns False when already at the end.

        A repeatable question with room for more repeats advances its repeat
        index in place before moving on to the next question.
        """
        questions = self._require_navigable(ordered_questions)

        if not self.cursor.is_set:
            self._move_to(questions[0], self.determine_next_repeat_index(questions[0]))
            return True

        position = self._index_of(questions, self.cursor.question_id)
        if position is None:
            self._move_to(questions[0], self.determine_next_repeat_index(questions[0]))
            return True

        current = questions[position]
        if current.is_repeatable and current.can_add_more_repeats(self.get_answered_repeat_count(current.id)):
            next_repeat = self.determine_next_repeat_index(current)
            # Strictly greater only: an earlier gap is not revisited from here.
            if next_repeat > self.cursor.repeat_index:
                self._move_to(current, next_repeat)
                return True

        if position < len(questions) - 1:
            following = questions[position + 1]
            self._move_to(following, self.determine_next_repeat_index(following))
            return True

        return False

    def navigate_to_previous(self, ordered_questions: Sequence[Question]) -> bool:
        """Move the cursor back. Returns False at the first repeat of the first question."""
        questions = self._require_navigable(ordered_questions)

        if not self.cursor.is_set:
            last = questions[-1]
            self._move_to(last, self.get_max_answered_repeat_index(last.id))
            return True

        position = self._index_of(questions, self.cursor.question_id)
        if position is None:
            last = questions[-1]
            self._move_to(last, self.get_max_answered_repeat_index(last.id))
            return True

        current = questions[position]
        previous_repeat = self.cursor.repeat_index - 1
        if current.is_repeatable and self.cursor.repeat_index > 1 and current.validate_repeat_index(previous_repeat):
            self._move_to(current, previous_repeat)
            return True

        if position > 0:
            previous = questions[position - 1]
            self._move_to(previous, self.get_max_answered_repeat_index(previous.id))
            return True

        return False

    def get_current_question(self, ordered_questions: Sequence[Question]) -> Optional[Question]:
        if not self.cursor.is_set:
            return None

        questions = list(ordered_questions or [])
        position = self._index_of(questions, self.cursor.question_id)
        return questions[position] if position is not None else None

    def get_current_navigation_state(self) -> Tuple[Optional[str], int]:
        return self.cursor.as_tuple()

    def reset_navigation(self, ordered_questions: Sequence[Question]) -> None:
        """Return the cursor to the first question at its next repeat index."""
        questions = self._require_navigable(ordered_questions)
        self._move_to(questions[0], self.determine_next_repeat_index(questions[0]))
