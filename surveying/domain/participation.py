# SPDX-License-Identifier: Apache-2.0

"""
Participation rules domain logic.

Pure functions that evaluate participation, repeat and authorization rules
over an already-loaded survey. None of them mutate their arguments.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Set

from ..models.enums import AttemptStatus, RepeatPolicyKind
from ..models.response import Response
from ..models.survey import Survey
from ..models.value_objects import ParticipantInfo


@dataclass
class ValidationResult:
    """Result of a rule validation."""
    is_valid: bool
    errors: List[str] = field(default_factory=list)


@dataclass
class AuthorizationResult:
    """Result of a member authorization check."""
    is_authorized: bool
    error_message: Optional[str] = None
    validation_errors: List[str] = field(default_factory=list)


# Allowed attempt status transitions
ATTEMPT_STATUS_TRANSITIONS: Dict[AttemptStatus, Set[AttemptStatus]] = {
    AttemptStatus.ACTIVE: {AttemptStatus.SUBMITTED, AttemptStatus.CANCELED, AttemptStatus.EXPIRED},
    AttemptStatus.SUBMITTED: set(),
    AttemptStatus.CANCELED: set(),
    AttemptStatus.EXPIRED: set(),
}


def can_participant_participate(
    survey: Survey,
    participant: ParticipantInfo,
    attempt_number: int,
    last_attempt_at: Optional[datetime] = None,
    now: Optional[datetime] = None
) -> bool:
    """
    Check whether a participant may make the given attempt.

    Args:
        survey: Survey to participate in
        participant: Participant reference
        attempt_number: Attempt number the participant would make
        last_attempt_at: When the participant's previous attempt ended
        now: Evaluation time, defaults to the current time

    Returns:
        True when the survey accepts responses, the attempt number is within
        policy and the cooldown has passed
    """
    if participant is None:
        return False

    if not survey.is_accepting_responses(now):
        return False

    policy = survey.participation_policy
    if not policy.is_attempt_allowed(attempt_number):
        return False

    if last_attempt_at is not None and not policy.is_cool_down_passed(last_attempt_at, now):
        return False

    return True


def validate_no_interference_between_participants(
    existing_responses: Iterable[Response],
    participant: ParticipantInfo,
    attempt_number: int
) -> bool:
    """
    Check that a new attempt does not clash with existing responses.

    The same participant may not reuse an attempt number, and two different
    anonymous participants may not share a short identifier.
    """
    for response in existing_responses:
        if response.participant == participant:
            if response.attempt_number == attempt_number:
                return False
        elif response.participant.is_anonymous and participant.is_anonymous:
            if response.participant.get_short_identifier() == participant.get_short_identifier():
                return False

    return True


def validate_question_repeats(survey: Survey, response: Response) -> ValidationResult:
    """
    Check every recorded answer against its question's repeat policy.

    Args:
        survey: Survey owning the questions
        response: Response whose answers are checked

    Returns:
        ValidationResult listing each offending question
    """
    errors = []

    for question in survey.get_ordered_questions():
        answers = response.get_question_answers(question.id)
        policy = question.repeat_policy

        if policy.kind == RepeatPolicyKind.FIXED and len(answers) > policy.max_repeats:
            errors.append(
                f"Question {question.id} has {len(answers)} answers but allows at most {policy.max_repeats}"
            )
            continue

        invalid = [answer.repeat_index for answer in answers if not policy.is_valid_repeat_index(answer.repeat_index)]
        if invalid:
            errors.append(
                f"Question {question.id} has invalid repeat indices: {', '.join(str(index) for index in invalid)}"
            )

    return ValidationResult(is_valid=not errors, errors=errors)


def validate_multiple_responses_from_same_participant(
    survey: Survey,
    participant: ParticipantInfo,
    responses: Iterable[Response]
) -> bool:
    """
    Check a participant's responses against the participation policy.

    Attempt numbers must run 1..n without gaps, n must not exceed the
    maximum attempts, and at most one response may be submitted unless the
    policy allows multiple submissions.
    """
    participant_responses = [response for response in responses if response.participant == participant]
    policy = survey.participation_policy

    if len(participant_responses) > policy.max_attempts_per_member:
        return False

    attempt_numbers = sorted(response.attempt_number for response in participant_responses)
    if attempt_numbers != list(range(1, len(participant_responses) + 1)):
        return False

    submitted = sum(1 for response in participant_responses if response.attempt_status == AttemptStatus.SUBMITTED)
    if submitted > 1 and not policy.allow_multiple_submissions:
        return False

    return True


def calculate_unique_participants(responses: Iterable[Response]) -> int:
    """Count distinct participants, keeping anonymous and member identities apart."""
    unique: Set[str] = set()

    for response in responses:
        participant = response.participant
        if participant.is_anonymous:
            unique.add(f"anonymous_{participant.get_short_identifier()}")
        else:
            unique.add(f"member_{participant.member_id}")

    return len(unique)


def can_transition_response_state(response: Response, new_status: AttemptStatus) -> bool:
    """Check whether a response's attempt status may move to ``new_status``."""
    current = AttemptStatus(response.attempt_status)
    return AttemptStatus(new_status) in ATTEMPT_STATUS_TRANSITIONS.get(current, set())


def validate_member_authorization(
    survey: Survey,
    member_features: Optional[Iterable[str]],
    member_capabilities: Optional[Iterable[str]]
) -> AuthorizationResult:
    """
    Check a member against the survey's feature and capability links.

    A survey with no links admits everyone. When it links only features or
    only capabilities, holding any one of them is enough. When it links both,
    the member needs at least one of each.

    Args:
        survey: Survey with feature and capability links
        member_features: Feature codes held by the member
        member_capabilities: Capability codes held by the member

    Returns:
        AuthorizationResult with the first failure as ``error_message``
    """
    required_features = survey.get_feature_codes()
    required_capabilities = survey.get_capability_codes()

    if not required_features and not required_capabilities:
        return AuthorizationResult(is_authorized=True)

    features = set(member_features or [])
    capabilities = set(member_capabilities or [])

    has_feature = not required_features or any(code in features for code in required_features)
    has_capability = not required_capabilities or any(code in capabilities for code in required_capabilities)

    errors = []
    if required_features and required_capabilities:
        if not has_feature and not has_capability:
            errors.append(
                f"Member must hold one of the required features ({', '.join(required_features)}) "
                f"and one of the required capabilities ({', '.join(required_capabilities)})"
            )
        elif not has_feature:
            errors.append(f"Member must hold one of the required features: {', '.join(required_features)}")
        elif not has_capability:
            errors.append(f"Member must hold one of the required capabilities: {', '.join(required_capabilities)}")
    elif required_features and not has_feature:
        errors.append(f"Member must hold one of the required features: {', '.join(required_features)}")
    elif required_capabilities and not has_capability:
        errors.append(f"Member must hold one of the required capabilities: {', '.join(required_capabilities)}")

    return AuthorizationResult(
        is_authorized=not errors,
        error_message=errors[0] if errors else None,
        validation_errors=errors
    )
