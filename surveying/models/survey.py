# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Survey aggregate root.

The survey owns its questions and responses. All mutation of children goes
through the methods below, which check survey-level rules (state, freeze,
participation policy) before delegating to the child entity.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Tuple
from pydantic import Field, field_validator, model_validator

from .base import AggregateRoot, BaseEntity, ensure_utc, is_blank, utc_now
from .enums import AttemptStatus, QuestionKind, SurveyState
from .events import ResponseSubmittedEvent, SurveyStructureFrozenEvent, SurveyStructureUnfrozenEvent
from .question import FIXED_CHOICE_OPTION_COUNT, Question, QuestionOption
from .response import QuestionAnswer, Response
from .value_objects import (
    AudienceFilter,
    DemographySnapshot,
    ParticipantInfo,
    ParticipationPolicy,
    QuestionSpecification,
    RepeatPolicy
)
from ..exceptions import InvalidStateException, NotFoundException, ValidationException

logger = logging.getLogger(__name__)

_EARLIEST = datetime.min.replace(tzinfo=timezone.utc)


class SurveyFeature(BaseEntity):
    """Link from a survey to a member feature, by stable code."""

    survey_id: str = Field(..., description="Owning survey identifier")
    feature_code: str = Field(..., min_length=1, description="Feature code")
    feature_title_snapshot: Optional[str] = Field(None, description="Feature title at link time")


class SurveyCapability(BaseEntity):
    """Link from a survey to a member capability, by stable code."""

    survey_id: str = Field(..., description="Owning survey identifier")
    capability_code: str = Field(..., min_length=1, description="Capability code")
    capability_title_snapshot: Optional[str] = Field(None, description="Capability title at link time")


class ParticipationDenial:
    """Reason codes returned by ``Survey.get_participation_denial_reason``."""
    NOT_ACCEPTING_RESPONSES = "survey_not_accepting_responses"
    MAX_ATTEMPTS_REACHED = "max_attempts_reached"
    ALREADY_PARTICIPATED = "already_participated"
    COOL_DOWN_ACTIVE = "cool_down_active"


class Survey(AggregateRoot):
    """
    Survey aggregate root.

    Questions may be added and edited only while the survey is a draft with
    an unfrozen structure. Responses may be started only while the survey is
    published and inside its time window.
    """

    title: str = Field(..., min_length=1, max_length=300, description="Survey title")
    description: Optional[str] = Field(None, max_length=2000, description="Survey description")
    state: SurveyState = Field(default=SurveyState.DRAFT, description="Lifecycle state")
    start_at: Optional[datetime] = Field(None, description="Start of the response window")
    end_at: Optional[datetime] = Field(None, description="End of the response window")
    is_anonymous: bool = Field(default=False, description="Whether responses are anonymous")
    participation_policy: ParticipationPolicy = Field(..., description="Participation policy")
    audience_filter: Optional[AudienceFilter] = Field(None, description="Audience filter")
    structure_version: int = Field(default=1, ge=1, description="Structure version")
    is_structure_frozen: bool = Field(default=False, description="Whether the structure is frozen")
    question_items: List[Question] = Field(default_factory=list, alias="questions", description="Owned questions")
    response_items: List[Response] = Field(default_factory=list, alias="responses", description="Owned responses")
    feature_items: List[SurveyFeature] = Field(default_factory=list, alias="features", description="Linked features")
    capability_items: List[SurveyCapability] = Field(default_factory=list, alias="capabilities", description="Linked capabilities")

    @field_validator('title')
    @classmethod
    def validate_title(cls, v):
        """Validate survey title."""
        if not v.strip():
            raise ValueError('Title cannot be empty')
        return v.strip()

    @field_validator('description')
    @classmethod
    def validate_description(cls, v):
        """Normalize description."""
        return v.strip() if v is not None else v

    @field_validator('start_at', 'end_at')
    @classmethod
    def validate_timezone(cls, v):
        """Treat naive datetimes as UTC."""
        return ensure_utc(v)

    @model_validator(mode='after')
    def validate_window(self):
        """Start must not be after end."""
        if self.start_at and self.end_at and self.start_at > self.end_at:
            raise ValueError('Start date cannot be after end date')
        return self

    # Read-only views

    @property
    def questions(self) -> Tuple[Question, ...]:
        return tuple(self.question_items)

    @property
    def responses(self) -> Tuple[Response, ...]:
        return tuple(self.response_items)

    @property
    def features(self) -> Tuple[SurveyFeature, ...]:
        return tuple(self.feature_items)

    @property
    def capabilities(self) -> Tuple[SurveyCapability, ...]:
        return tuple(self.capability_items)

    # Guards

    def _ensure_draft(self, action: str) -> None:
        if self.state != SurveyState.DRAFT:
            raise InvalidStateException(f"Can only {action} draft surveys")

    def _ensure_not_frozen(self) -> None:
        if self.is_structure_frozen:
            raise InvalidStateException("Survey structure is frozen and cannot be modified")

    def _ensure_structure_editable(self) -> None:
        self._ensure_not_frozen()
        self._ensure_draft("modify questions of")

    # Structure

    def add_question(self, specification: QuestionSpecification) -> Question:
        """Append a question. Option completeness is checked at publish time."""
        self._ensure_structure_editable()
        if specification is None:
            raise ValidationException("Question specification is required")

        question = Question.from_specification(self.id, specification)
        self.question_items.append(question)
        self.update_timestamp()

        logger.debug(
            "Question added to survey",
            extra={"extra_fields": {"survey_id": self.id, "question_id": question.id, "kind": question.kind}}
        )
        return question

    def add_question_option(self, question_id: str, text: str, order: int) -> QuestionOption:
        self._ensure_structure_editable()
        option = self._require_question(question_id).add_option(text, order)
        self.update_timestamp()
        return option

    def update_question(
        self,
        question_id: str,
        text: Optional[str] = None,
        order: Optional[int] = None,
        is_required: Optional[bool] = None,
        repeat_policy: Optional[RepeatPolicy] = None
    ) -> Question:
        """Edit question attributes. Only the arguments given are changed."""
        self._ensure_structure_editable()
        question = self._require_question(question_id)

        if text is not None and is_blank(text):
            raise ValidationException("Question text cannot be empty")
        if order is not None and order < 0:
            raise ValidationException("Order cannot be negative")

        if text is not None:
            question.update_text(text)
        if order is not None:
            question.update_order(order)
        if is_required is not None:
            question.update_required_status(is_required)
        if repeat_policy is not None:
            question.update_repeat_policy(repeat_policy)

        self.update_timestamp()
        return question

    def get_question(self, question_id: str) -> Optional[Question]:
        return next((question for question in self.question_items if question.id == question_id), None)

    def _require_question(self, question_id: str) -> Question:
        if is_blank(question_id):
            raise ValidationException("Question ID cannot be empty")

        question = self.get_question(question_id)
        if question is None:
            raise NotFoundException(f"Question {question_id} not found")
        return question

    def get_ordered_questions(self) -> List[Question]:
        """Questions by ``order``; ties keep insertion order."""
        return sorted(self.question_items, key=lambda question: question.order)

    def get_option_text(self, question_id: str, option_id: str) -> Optional[str]:
        question = self.get_question(question_id)
        if question is None:
            return None

        option = question.get_option(option_id)
        return option.text if option else None

    def get_question_option_texts(self, question_id: str) -> Dict[str, str]:
        question = self.get_question(question_id)
        return question.get_option_texts() if question else {}

    def add_feature(self, feature_code: str, feature_title_snapshot: Optional[str] = None) -> None:
        self._ensure_not_frozen()
        if is_blank(feature_code):
            raise ValidationException("Feature code cannot be empty")

        if any(link.feature_code == feature_code for link in self.feature_items):
            return

        self.feature_items.append(
            SurveyFeature(survey_id=self.id, feature_code=feature_code, feature_title_snapshot=feature_title_snapshot)
        )
        self.update_timestamp()

    def add_capability(self, capability_code: str, capability_title_snapshot: Optional[str] = None) -> None:
        self._ensure_not_frozen()
        if is_blank(capability_code):
            raise ValidationException("Capability code cannot be empty")

        if any(link.capability_code == capability_code for link in self.capability_items):
            return

        self.capability_items.append(
            SurveyCapability(
                survey_id=self.id,
                capability_code=capability_code,
                capability_title_snapshot=capability_title_snapshot
            )
        )
        self.update_timestamp()

    def get_feature_codes(self) -> List[str]:
        return [link.feature_code for link in self.feature_items]

    def get_capability_codes(self) -> List[str]:
        return [link.capability_code for link in self.capability_items]

    def update_title(self, title: str) -> None:
        self._ensure_not_frozen()
        self._ensure_draft("update title of")
        if is_blank(title):
            raise ValidationException("Title cannot be empty")

        self.title = title.strip()
        self.update_timestamp()

    def update_description(self, description: Optional[str]) -> None:
        self._ensure_not_frozen()
        self._ensure_draft("update description of")

        self.description = description.strip() if description is not None else None
        self.update_timestamp()

    def update_participation_policy(self, policy: ParticipationPolicy) -> None:
        self._ensure_draft("update participation policy of")
        if policy is None:
            raise ValidationException("Participation policy is required")

        self.participation_policy = policy
        self.update_timestamp()

    def update_audience_filter(self, audience_filter: Optional[AudienceFilter]) -> None:
        self._ensure_draft("update audience filter of")

        self.audience_filter = audience_filter
        self.update_timestamp()

    def freeze_structure(self) -> None:
        if self.is_structure_frozen:
            raise InvalidStateException("Survey structure is already frozen")
        self._ensure_draft("freeze")

        self.is_structure_frozen = True
        self.structure_version += 1
        self.update_timestamp()
        self.add_domain_event(SurveyStructureFrozenEvent(survey_id=self.id, structure_version=self.structure_version))

        logger.info(
            "Survey structure frozen",
            extra={"extra_fields": {"survey_id": self.id, "structure_version": self.structure_version}}
        )

    def unfreeze_structure(self) -> None:
        if not self.is_structure_frozen:
            raise InvalidStateException("Survey structure is not frozen")
        self._ensure_draft("unfreeze")

        self.is_structure_frozen = False
        self.structure_version += 1
        self.update_timestamp()
        self.add_domain_event(SurveyStructureUnfrozenEvent(survey_id=self.id, structure_version=self.structure_version))

        logger.info(
            "Survey structure unfrozen",
            extra={"extra_fields": {"survey_id": self.id, "structure_version": self.structure_version}}
        )

    # Lifecycle

    def enforce_invariants(self, target_state: Optional[SurveyState] = None) -> None:
        """
        Check structural invariants for ``target_state`` (default: current state).

        Raises:
            InvalidStateException: Naming the first offending question.
        """
        state = target_state or self.state
        if state == SurveyState.PUBLISHED and not self.question_items:
            raise InvalidStateException("Published survey must have questions")

        for question in self.get_ordered_questions():
            if question.kind != QuestionKind.TEXTUAL and not question.option_items:
                raise InvalidStateException(f"Question '{question.text}' must have options")

            if question.kind == QuestionKind.FIXED_FOUR_CHOICE and len(question.option_items) != FIXED_CHOICE_OPTION_COUNT:
                raise InvalidStateException(
                    f"Fixed four-choice question '{question.text}' must have exactly {FIXED_CHOICE_OPTION_COUNT} options"
                )

    def publish(self, now: Optional[datetime] = None) -> None:
        self._ensure_draft("publish")

        now = ensure_utc(now) or utc_now()
        if self.start_at and now < self.start_at:
            raise InvalidStateException(f"Survey cannot be published before start time: {self.start_at.isoformat()}")
        if self.end_at and now >= self.end_at:
            raise InvalidStateException(f"Survey cannot be published after end time: {self.end_at.isoformat()}")

        self.enforce_invariants(SurveyState.PUBLISHED)

        self.state = SurveyState.PUBLISHED
        self.update_timestamp()
        logger.info("Survey published", extra={"extra_fields": {"survey_id": self.id}})

    def complete(self) -> None:
        if self.state != SurveyState.PUBLISHED:
            raise InvalidStateException("Can only complete published surveys")

        self.state = SurveyState.COMPLETED
        self.update_timestamp()
        logger.info("Survey completed", extra={"extra_fields": {"survey_id": self.id}})

    def archive(self) -> None:
        if self.state != SurveyState.COMPLETED:
            raise InvalidStateException("Can only archive completed surveys")

        self.state = SurveyState.ARCHIVED
        self.update_timestamp()
        logger.info("Survey archived", extra={"extra_fields": {"survey_id": self.id}})

    def is_accepting_responses(self, now: Optional[datetime] = None) -> bool:
        if self.state != SurveyState.PUBLISHED:
            return False

        now = ensure_utc(now) or utc_now()
        if self.start_at and now < self.start_at:
            return False
        if self.end_at and now > self.end_at:
            return False
        return True

    # Participation

    def get_participant_responses(self, participant: ParticipantInfo) -> List[Response]:
        """Responses of a participant, most recent activity first."""
        responses = [response for response in self.response_items if response.participant == participant]
        return sorted(responses, key=lambda response: response.last_activity_at or response.created_at, reverse=True)

    def get_latest_response(self, participant: ParticipantInfo) -> Optional[Response]:
        responses = self.get_participant_responses(participant)
        return responses[0] if responses else None

    def get_latest_valid_response(self, participant: ParticipantInfo) -> Optional[Response]:
        """Most recently submitted response of a participant."""
        submitted = [
            response for response in self.response_items
            if response.participant == participant and response.attempt_status == AttemptStatus.SUBMITTED
        ]
        if not submitted:
            return None
        return max(submitted, key=lambda response: response.submitted_at or _EARLIEST)

    def has_participant_submitted_response(self, participant: ParticipantInfo) -> bool:
        return self.get_participant_submitted_response_count(participant) > 0

    def get_participant_submitted_response_count(self, participant: ParticipantInfo) -> int:
        return sum(
            1 for response in self.response_items
            if response.participant == participant and response.attempt_status == AttemptStatus.SUBMITTED
        )

    def get_next_attempt_number(self, participant: ParticipantInfo) -> int:
        return sum(1 for response in self.response_items if response.participant == participant) + 1

    def _last_attempt_at(self, participant: ParticipantInfo) -> Optional[datetime]:
        timestamps = [
            response.last_activity_at for response in self.response_items
            if response.participant == participant and response.last_activity_at is not None
        ]
        return max(timestamps) if timestamps else None

    def get_participation_denial_reason(self, participant: ParticipantInfo, now: Optional[datetime] = None) -> Optional[str]:
        """Return why ``participant`` may not start a response, or None."""
        now = ensure_utc(now) or utc_now()
        policy = self.participation_policy

        if not self.is_accepting_responses(now):
            return ParticipationDenial.NOT_ACCEPTING_RESPONSES

        if not policy.is_attempt_allowed(self.get_next_attempt_number(participant)):
            return ParticipationDenial.MAX_ATTEMPTS_REACHED

        if not policy.allow_multiple_submissions and self.has_participant_submitted_response(participant):
            return ParticipationDenial.ALREADY_PARTICIPATED

        if not policy.is_cool_down_passed(self._last_attempt_at(participant), now):
            return ParticipationDenial.COOL_DOWN_ACTIVE

        return None

    def can_participant_submit(self, participant: ParticipantInfo, now: Optional[datetime] = None) -> bool:
        return self.get_participation_denial_reason(participant, now) is None

    def start_response(
        self,
        participant: ParticipantInfo,
        demography_snapshot: Optional[DemographySnapshot] = None,
        now: Optional[datetime] = None
    ) -> Response:
        """
        Start a new attempt for ``participant`` and seed its cursor.

        Raises:
            ValidationException: If no participant is given.
            InvalidStateException: If the participant cannot submit a response.
        """
        if participant is None:
            raise ValidationException("Participant is required")

        reason = self.get_participation_denial_reason(participant, now)
        if reason is not None:
            logger.info(
                "Participant cannot start response",
                extra={"extra_fields": {"survey_id": self.id, "reason": reason}}
            )
            raise InvalidStateException(f"Participant cannot submit response: {reason}")

        response = Response(
            survey_id=self.id,
            participant=participant,
            attempt_number=self.get_next_attempt_number(participant),
            demography_snapshot=demography_snapshot
        )

        ordered_questions = self.get_ordered_questions()
        if ordered_questions:
            response.navigate_to_question(ordered_questions, None, None, True)

        self.response_items.append(response)
        self.update_timestamp()

        logger.info(
            "Response started",
            extra={"extra_fields": {"survey_id": self.id, "response_id": response.id, "attempt_number": response.attempt_number}}
        )
        return response

    def get_response(self, response_id: str) -> Optional[Response]:
        return next((response for response in self.response_items if response.id == response_id), None)

    def _require_response(self, response_id: str) -> Response:
        if is_blank(response_id):
            raise ValidationException("Response ID cannot be empty")

        response = self.get_response(response_id)
        if response is None:
            raise NotFoundException(f"Response {response_id} not found")
        if response.survey_id != self.id:
            raise InvalidStateException(f"Response {response_id} does not belong to survey {self.id}")
        return response

    def get_missing_required_questions(self, response: Response) -> List[Question]:
        """Required questions whose base answer has no content."""
        return [
            question for question in self.get_ordered_questions()
            if question.is_required and not response.has_answer_for_question(question.id)
        ]

    def is_response_complete(self, response: Response) -> bool:
        return not self.get_missing_required_questions(response)

    def submit_response(self, response_id: str) -> None:
        """Validate completeness, submit the response and raise ``ResponseSubmittedEvent``."""
        response = self._require_response(response_id)

        missing = self.get_missing_required_questions(response)
        if missing:
            raise InvalidStateException(
                f"Response is not complete: {len(missing)} required question(s) unanswered"
            )

        response.submit()
        self.update_timestamp()
        self.add_domain_event(
            ResponseSubmittedEvent(
                survey_id=self.id,
                response_id=response.id,
                participant=response.participant,
                attempt_number=response.attempt_number
            )
        )

    def cancel_response(self, response_id: str) -> None:
        self._require_response(response_id).cancel()
        self.update_timestamp()

    def expire_response(self, response_id: str) -> None:
        self._require_response(response_id).expire()
        self.update_timestamp()

    def start_reviewing_response(self, response_id: str) -> None:
        self._require_response(response_id).start_reviewing()
        self.update_timestamp()

    def resume_answering_response(self, response_id: str) -> None:
        self._require_response(response_id).resume_answering()
        self.update_timestamp()

    # Answers

    def _require_modifiable_answer(self, response: Response, question: Question, repeat_index: int) -> None:
        if not response.can_be_modified():
            raise InvalidStateException("Cannot modify a response that is no longer active")

        if not question.validate_repeat_index(repeat_index):
            raise ValidationException(f"Repeat index {repeat_index} is not valid for question {question.id}")

    def set_response_answer(
        self,
        response_id: str,
        question_id: str,
        text_answer: Optional[str] = None,
        selected_option_ids: Optional[Iterable[str]] = None,
        repeat_index: int = 1
    ) -> QuestionAnswer:
        """
        Record an answer, resolving option texts from the question.

        Raises:
            NotFoundException: For an unknown response or question.
            ValidationException: For a repeat index or selection the question rejects.
            InvalidStateException: If the response can no longer be modified.
        """
        response = self._require_response(response_id)
        question = self._require_question(question_id)
        self._require_modifiable_answer(response, question, repeat_index)

        selected_options = None
        if selected_option_ids is not None:
            option_ids = list(selected_option_ids)
            if not question.validate_selected_options(option_ids):
                raise ValidationException(f"Selected options are not valid for question {question_id}")
            option_texts = question.get_option_texts()
            selected_options = {option_id: option_texts[option_id] for option_id in option_ids}

        answer = response.set_question_answer(question_id, text_answer, selected_options, repeat_index)
        self.update_timestamp()
        return answer

    def add_selected_option_to_response(
        self,
        response_id: str,
        question_id: str,
        option_id: str,
        repeat_index: int = 1
    ) -> QuestionAnswer:
        """
        Add one option to the current selection of an answer.

        Raises:
            NotFoundException: For an unknown response, question or option.
            ValidationException: For a repeat index or resulting selection the question rejects.
            InvalidStateException: If the response can no longer be modified.
        """
        response = self._require_response(response_id)
        question = self._require_question(question_id)
        self._require_modifiable_answer(response, question, repeat_index)

        option_text = self.get_option_text(question_id, option_id)
        if is_blank(option_text):
            raise NotFoundException(f"Option {option_id} not found for question {question_id}")

        selection = response.get_selected_options_for_question(question_id, repeat_index) + [option_id]
        if not question.validate_selected_options(selection):
            raise ValidationException(f"Selected options are not valid for question {question_id}")

        answer = response.add_selected_option_with_text(question_id, option_id, option_text, repeat_index)
        self.update_timestamp()
        return answer

    def update_response_with_selected_options(
        self,
        response_id: str,
        question_id: str,
        selected_option_ids: Iterable[str],
        repeat_index: int = 1
    ) -> QuestionAnswer:
        """
        Replace the selection of an answer.

        Raises:
            NotFoundException: For an unknown response, question or option.
            ValidationException: For a repeat index or selection the question rejects.
            InvalidStateException: If the response can no longer be modified.
        """
        response = self._require_response(response_id)
        question = self._require_question(question_id)
        self._require_modifiable_answer(response, question, repeat_index)

        option_ids = list(selected_option_ids or [])
        option_texts = question.get_option_texts()
        missing = [option_id for option_id in option_ids if option_id not in option_texts]
        if missing:
            raise NotFoundException(f"Options not found for question {question_id}: {', '.join(missing)}")

        if not question.validate_selected_options(option_ids):
            raise ValidationException(f"Selected options are not valid for question {question_id}")

        answer = response.update_selected_options(question_id, option_ids, option_texts, repeat_index)
        self.update_timestamp()
        return answer

    # Navigation

    def navigate_response_to_next(self, response_id: str) -> bool:
        response = self._require_response(response_id)
        return response.navigate_to_next(self.get_ordered_questions())

    def navigate_response_to_previous(self, response_id: str) -> bool:
        response = self._require_response(response_id)
        if not self.participation_policy.allow_back_navigation:
            raise InvalidStateException("Back navigation is not allowed for this survey")
        return response.navigate_to_previous(self.get_ordered_questions())

    def navigate_response_to_question(
        self,
        response_id: str,
        question_id: Optional[str],
        repeat_index: Optional[int] = None,
        is_first: bool = True
    ) -> None:
        response = self._require_response(response_id)
        response.navigate_to_question(self.get_ordered_questions(), question_id, repeat_index, is_first)

    def get_current_question_for_response(self, response_id: str) -> Optional[Question]:
        response = self._require_response(response_id)
        return response.get_current_question(self.get_ordered_questions())

    def reset_response_navigation(self, response_id: str) -> None:
        response = self._require_response(response_id)
        response.reset_navigation(self.get_ordered_questions())
