# SPDX-License-Identifier: Apache-2.0

"""
Response progress and navigation state projections.
"""

from dataclasses import dataclass
from typing import Optional

from ..exceptions import NotFoundException
from ..models.response import Response
from ..models.survey import Survey


@dataclass
class ResponseProgress:
    """How far a response has progressed through the survey."""
    answered: int
    total: int
    completion_percentage: float


@dataclass
class NavigationState:
    """Snapshot of a response's cursor for presentation layers."""
    response_id: str
    current_question_id: Optional[str]
    current_repeat_index: int
    status: str
    progress: ResponseProgress
    is_first: bool
    is_last: bool
    can_add_more_repeats: bool


def calculate_progress(survey: Survey, response: Response) -> ResponseProgress:
    """
    Count distinct answered questions of a response.

    Repeats of the same question count once. Answers for questions that no
    longer exist in the survey are ignored.
    """
    question_ids = {question.id for question in survey.question_items}
    answered = len([question_id for question_id in response.get_answered_question_ids() if question_id in question_ids])
    total = len(question_ids)

    percentage = round(answered / total * 100, 2) if total else 0.0
    return ResponseProgress(answered=answered, total=total, completion_percentage=percentage)


def build_navigation_state(survey: Survey, response_id: str) -> NavigationState:
    """
    Build the navigation state for one response of ``survey``.

    Raises:
        NotFoundException: If the response does not exist
    """
    response = survey.get_response(response_id)
    if response is None:
        raise NotFoundException(f"Response {response_id} not found")

    ordered_questions = survey.get_ordered_questions()
    current = response.get_current_question(ordered_questions)

    is_first = is_last = False
    can_add_more_repeats = False
    if current is not None:
        position = ordered_questions.index(current)
        is_first = position == 0
        is_last = position == len(ordered_questions) - 1
        can_add_more_repeats = current.is_repeatable and current.can_add_more_repeats(
            response.get_answered_repeat_count(current.id)
        )

    return NavigationState(
        response_id=response.id,
        current_question_id=response.current_question_id,
        current_repeat_index=response.current_repeat_index,
        status=response.status,
        progress=calculate_progress(survey, response),
        is_first=is_first,
        is_last=is_last,
        can_add_more_repeats=can_add_more_repeats
    )
