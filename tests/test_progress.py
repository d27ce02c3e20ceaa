# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Unit tests for response progress and navigation state.
"""

import pytest

from surveying.domain.progress import build_navigation_state, calculate_progress
from surveying.exceptions import NotFoundException
from surveying.models import ResponseStatus


class TestCalculateProgress:
    """Test progress counting."""

    def test_no_answers(self, three_question_survey, member):
        """Test progress of a fresh response."""
        survey, _ = three_question_survey
        response = survey.start_response(member)

        progress = calculate_progress(survey, response)

        assert progress.answered == 0
        assert progress.total == 3
        assert progress.completion_percentage == 0.0

    def test_partial_answers(self, three_question_survey, member):
        """Test progress after one answer."""
        survey, (q1, _, _) = three_question_survey
        response = survey.start_response(member)
        survey.set_response_answer(response.id, q1.id, text_answer="Alice")

        progress = calculate_progress(survey, response)

        assert progress.answered == 1
        assert progress.completion_percentage == 33.33

    def test_repeats_count_once(self, repeat_survey, member):
        """Test that repeated answers count as one question."""
        survey, (repeated, _) = repeat_survey
        response = survey.start_response(member)
        for index in (1, 2, 3):
            survey.set_response_answer(response.id, repeated.id, text_answer=f"Name {index}", repeat_index=index)

        progress = calculate_progress(survey, response)

        assert progress.answered == 1
        assert progress.total == 2
        assert progress.completion_percentage == 50.0

    def test_unknown_questions_ignored(self, three_question_survey, member):
        """Test that answers for unknown questions are not counted."""
        survey, _ = three_question_survey
        response = survey.start_response(member)
        response.add_text_answer("removed-question", "Orphan")

        assert calculate_progress(survey, response).answered == 0


class TestNavigationState:
    """Test navigation state projection."""

    def test_state_at_first_question(self, three_question_survey, member):
        """Test state of a fresh response."""
        survey, (q1, _, _) = three_question_survey
        response = survey.start_response(member)

        state = build_navigation_state(survey, response.id)

        assert state.response_id == response.id
        assert state.current_question_id == q1.id
        assert state.current_repeat_index == 1
        assert state.status == ResponseStatus.ANSWERING
        assert state.is_first is True
        assert state.is_last is False
        assert state.can_add_more_repeats is False

    def test_state_at_last_question(self, three_question_survey, member):
        """Test state on the last question."""
        survey, (_, _, q3) = three_question_survey
        response = survey.start_response(member)
        survey.navigate_response_to_question(response.id, q3.id)

        state = build_navigation_state(survey, response.id)

        assert state.is_first is False
        assert state.is_last is True

    def test_state_on_repeatable_question(self, repeat_survey, member):
        """Test repeat headroom reporting."""
        survey, (repeated, _) = repeat_survey
        response = survey.start_response(member)

        assert build_navigation_state(survey, response.id).can_add_more_repeats is True

        for index in (1, 2, 3):
            survey.set_response_answer(response.id, repeated.id, text_answer=f"Name {index}", repeat_index=index)

        assert build_navigation_state(survey, response.id).can_add_more_repeats is False

    def test_unknown_response(self, three_question_survey):
        """Test state for an unknown response."""
        survey, _ = three_question_survey

        with pytest.raises(NotFoundException):
            build_navigation_state(survey, "missing")
