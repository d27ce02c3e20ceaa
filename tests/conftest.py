# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Pytest configuration and fixtures.
"""

import os
import pytest

from surveying.models import (
    ParticipantInfo,
    ParticipationPolicy,
    QuestionKind,
    QuestionSpecification,
    RepeatPolicy,
    Survey
)

# Set test environment
os.environ['ENVIRONMENT'] = 'test'
os.environ['MONGODB_DATABASE'] = 'surveys_test'


@pytest.fixture
def participation_policy():
    """Policy allowing three attempts with multiple submissions."""
    return ParticipationPolicy(max_attempts_per_member=3, allow_multiple_submissions=True)


@pytest.fixture
def member():
    """Member participant."""
    return ParticipantInfo.for_member("member-001")


@pytest.fixture
def other_member():
    """A second, distinct member participant."""
    return ParticipantInfo.for_member("member-002")


@pytest.fixture
def survey_factory(participation_policy):
    """Build draft surveys with sensible defaults."""
    def _build(**overrides):
        data = {
            "title": "Member Satisfaction Survey",
            "description": "Yearly satisfaction survey",
            "participation_policy": participation_policy,
        }
        data.update(overrides)
        return Survey(**data)

    return _build


@pytest.fixture
def draft_survey(survey_factory):
    """Empty draft survey."""
    return survey_factory()


def add_question(survey, kind, text, order, is_required=False, repeat_policy=None, options=()):
    """Add a question and its options to a draft survey."""
    question = survey.add_question(
        QuestionSpecification(
            kind=kind,
            text=text,
            order=order,
            is_required=is_required,
            repeat_policy=repeat_policy or RepeatPolicy.none()
        )
    )
    for position, option_text in enumerate(options):
        survey.add_question_option(question.id, option_text, position)
    return question


@pytest.fixture
def three_question_survey(survey_factory):
    """
    Published survey with Q1 textual required, Q2 single choice required with
    two options and Q3 textual optional.
    """
    survey = survey_factory()
    q1 = add_question(survey, QuestionKind.TEXTUAL, "What is your name?", 1, is_required=True)
    q2 = add_question(
        survey, QuestionKind.SINGLE_CHOICE, "Are you satisfied?", 2, is_required=True, options=("Yes", "No")
    )
    q3 = add_question(survey, QuestionKind.TEXTUAL, "Any comments?", 3)
    survey.publish()
    return survey, (q1, q2, q3)


@pytest.fixture
def repeat_survey(survey_factory):
    """Published survey whose first question repeats up to three times."""
    survey = survey_factory()
    repeated = add_question(
        survey, QuestionKind.TEXTUAL, "Name a family member", 1, repeat_policy=RepeatPolicy.fixed(3)
    )
    following = add_question(survey, QuestionKind.TEXTUAL, "Anything else?", 2)
    survey.publish()
    return survey, (repeated, following)
