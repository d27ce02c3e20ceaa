# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Unit tests for participation rules domain logic.
"""

import pytest
from datetime import timedelta

from surveying.domain.participation import (
    calculate_unique_participants,
    can_participant_participate,
    can_transition_response_state,
    validate_member_authorization,
    validate_multiple_responses_from_same_participant,
    validate_no_interference_between_participants,
    validate_question_repeats
)
from surveying.models import (
    AttemptStatus,
    ParticipantInfo,
    ParticipationPolicy,
    QuestionAnswer,
    QuestionKind,
    Response,
    utc_now
)

from conftest import add_question


def build_response(participant, attempt_number=1, survey_id="survey-1"):
    return Response(survey_id=survey_id, participant=participant, attempt_number=attempt_number)


class TestCanParticipantParticipate:
    """Test participation eligibility."""

    def test_published_survey_within_policy(self, three_question_survey, member):
        """Test eligible participant."""
        survey, _ = three_question_survey

        assert can_participant_participate(survey, member, 1) is True
        assert can_participant_participate(survey, member, 3) is True

    def test_attempt_over_maximum(self, three_question_survey, member):
        """Test attempt above the policy maximum."""
        survey, _ = three_question_survey

        assert can_participant_participate(survey, member, 4) is False

    def test_draft_survey(self, draft_survey, member):
        """Test that drafts do not accept responses."""
        assert can_participant_participate(draft_survey, member, 1) is False

    def test_missing_participant(self, three_question_survey):
        """Test missing participant."""
        survey, _ = three_question_survey

        assert can_participant_participate(survey, None, 1) is False

    def test_cool_down(self, survey_factory, member):
        """Test cooldown since the previous attempt."""
        survey = survey_factory(
            participation_policy=ParticipationPolicy(max_attempts_per_member=3, cool_down_seconds=600)
        )
        add_question(survey, QuestionKind.TEXTUAL, "Name", 1)
        survey.publish()
        now = utc_now()

        assert can_participant_participate(survey, member, 2, now - timedelta(minutes=5), now) is False
        assert can_participant_participate(survey, member, 2, now - timedelta(minutes=15), now) is True


class TestNoInterference:
    """Test attempt clashes between participants."""

    def test_same_participant_new_attempt(self, member):
        """Test that a new attempt number is accepted."""
        existing = [build_response(member, 1)]

        assert validate_no_interference_between_participants(existing, member, 2) is True

    def test_same_participant_reused_attempt(self, member):
        """Test that an attempt number cannot be reused."""
        existing = [build_response(member, 1)]

        assert validate_no_interference_between_participants(existing, member, 1) is False

    def test_other_member_does_not_interfere(self, member, other_member):
        """Test that members never clash with each other."""
        existing = [build_response(other_member, 1)]

        assert validate_no_interference_between_participants(existing, member, 1) is True

    def test_anonymous_short_identifier_collision(self):
        """Test that anonymous participants sharing a short id clash."""
        existing = [build_response(ParticipantInfo.for_anonymous("abcdef01-first"), 1)]
        newcomer = ParticipantInfo.for_anonymous("abcdef01-second")

        assert validate_no_interference_between_participants(existing, newcomer, 1) is False
        assert validate_no_interference_between_participants(
            existing, ParticipantInfo.for_anonymous("12345678-other"), 1
        ) is True


class TestQuestionRepeats:
    """Test answers against repeat policies."""

    def test_valid_repeats(self, repeat_survey, member):
        """Test answers within the fixed maximum."""
        survey, (repeated, following) = repeat_survey
        response = survey.start_response(member)
        response.add_text_answer(repeated.id, "Alice", 1)
        response.add_text_answer(repeated.id, "Bob", 2)
        response.add_text_answer(following.id, "Nothing")

        result = validate_question_repeats(survey, response)

        assert result.is_valid is True
        assert result.errors == []

    def test_invalid_repeat_index(self, repeat_survey, member):
        """Test answers outside the policy are reported."""
        survey, (_, following) = repeat_survey
        response = survey.start_response(member)
        response.add_text_answer(following.id, "Second instance", 2)

        result = validate_question_repeats(survey, response)

        assert result.is_valid is False
        assert following.id in result.errors[0]
        assert "2" in result.errors[0]

    def test_too_many_fixed_answers(self, repeat_survey, member):
        """Test answer count above the fixed maximum."""
        survey, (repeated, _) = repeat_survey
        response = survey.start_response(member)
        for index in range(1, 5):
            response.answer_items.append(
                QuestionAnswer(response_id=response.id, question_id=repeated.id, repeat_index=index, text_answer="x")
            )

        result = validate_question_repeats(survey, response)

        assert result.is_valid is False
        assert "at most 3" in result.errors[0]


class TestMultipleResponses:
    """Test a participant's response history against the policy."""

    def test_sequential_attempts(self, three_question_survey, member):
        """Test well-formed attempt history."""
        survey, _ = three_question_survey
        responses = [build_response(member, 1), build_response(member, 2)]

        assert validate_multiple_responses_from_same_participant(survey, member, responses) is True

    def test_attempt_gap(self, three_question_survey, member):
        """Test that attempt numbers must not skip."""
        survey, _ = three_question_survey
        responses = [build_response(member, 1), build_response(member, 3)]

        assert validate_multiple_responses_from_same_participant(survey, member, responses) is False

    def test_too_many_attempts(self, three_question_survey, member):
        """Test attempt count above the maximum."""
        survey, _ = three_question_survey
        responses = [build_response(member, number) for number in range(1, 5)]

        assert validate_multiple_responses_from_same_participant(survey, member, responses) is False

    def test_multiple_submissions_not_allowed(self, survey_factory, member):
        """Test submitted count under a single submission policy."""
        survey = survey_factory(participation_policy=ParticipationPolicy(max_attempts_per_member=3))
        responses = [build_response(member, 1), build_response(member, 2)]
        for response in responses:
            response.submit()

        assert validate_multiple_responses_from_same_participant(survey, member, responses) is False

    def test_other_participants_ignored(self, three_question_survey, member, other_member):
        """Test that only the participant's own responses are checked."""
        survey, _ = three_question_survey
        responses = [build_response(member, 1), build_response(other_member, 1)]

        assert validate_multiple_responses_from_same_participant(survey, member, responses) is True


class TestUniqueParticipants:
    """Test participant counting."""

    def test_counts_distinct_identities(self, member, other_member):
        """Test counting with repeats and anonymous participants."""
        responses = [
            build_response(member, 1),
            build_response(member, 2),
            build_response(other_member, 1),
            build_response(ParticipantInfo.for_anonymous("hash-aaaa-1"), 1),
            build_response(ParticipantInfo.for_anonymous("hash-bbbb-1"), 1),
        ]

        assert calculate_unique_participants(responses) == 4

    def test_empty(self):
        """Test counting with no responses."""
        assert calculate_unique_participants([]) == 0


class TestStateTransitions:
    """Test the attempt status transition table."""

    @pytest.mark.parametrize("target", [AttemptStatus.SUBMITTED, AttemptStatus.CANCELED, AttemptStatus.EXPIRED])
    def test_active_can_end(self, member, target):
        """Test transitions out of the active state."""
        assert can_transition_response_state(build_response(member), target) is True

    def test_active_to_active(self, member):
        """Test that active is not a target."""
        assert can_transition_response_state(build_response(member), AttemptStatus.ACTIVE) is False

    @pytest.mark.parametrize("action", ["submit", "cancel", "expire"])
    def test_terminal_states_are_final(self, member, action):
        """Test that terminal states allow no transitions."""
        response = build_response(member)
        getattr(response, action)()

        for target in AttemptStatus:
            assert can_transition_response_state(response, target) is False


class TestMemberAuthorization:
    """Test feature and capability authorization."""

    def test_no_links_admit_everyone(self, draft_survey):
        """Test open surveys."""
        result = validate_member_authorization(draft_survey, [], [])

        assert result.is_authorized is True
        assert result.error_message is None

    def test_any_feature_is_enough(self, draft_survey):
        """Test OR logic within features."""
        draft_survey.add_feature("LIC-A")
        draft_survey.add_feature("LIC-B")

        assert validate_member_authorization(draft_survey, ["LIC-B"], None).is_authorized is True

        result = validate_member_authorization(draft_survey, ["LIC-C"], None)
        assert result.is_authorized is False
        assert "required features" in result.error_message

    def test_capabilities_only(self, draft_survey):
        """Test capability-only surveys."""
        draft_survey.add_capability("CAP-1")

        assert validate_member_authorization(draft_survey, None, ["CAP-1"]).is_authorized is True
        assert validate_member_authorization(draft_survey, ["LIC-A"], []).is_authorized is False

    def test_both_required_when_both_linked(self, draft_survey):
        """Test that features and capabilities are both needed when both are linked."""
        draft_survey.add_feature("LIC-A")
        draft_survey.add_capability("CAP-1")

        assert validate_member_authorization(draft_survey, ["LIC-A"], ["CAP-1"]).is_authorized is True

        missing_capability = validate_member_authorization(draft_survey, ["LIC-A"], [])
        assert missing_capability.is_authorized is False
        assert "required capabilities" in missing_capability.error_message

        missing_both = validate_member_authorization(draft_survey, [], [])
        assert missing_both.is_authorized is False
        assert len(missing_both.validation_errors) == 1
