"""
Тесты Content Resolver: полнота обеих веток и персонализация.
"""

import itertools

import pytest

from src.content import (
    NOT_SPECIFIED,
    get_acknowledgement,
    get_completion_badge,
    get_copy,
    get_cta,
    get_emotional_validation,
    get_features,
    get_loading_message,
    get_offer_title,
    get_phase_heading,
    get_phase_text,
    get_question_options,
    get_situation_insight,
    get_situation_summary,
    get_title,
    get_total_value,
    get_value_breakdown,
    get_window_72_copy,
    has_unresolved_markers,
    pronouns_for,
    resolve_gender,
)
from src.models import CurrentSituation, Gender, Profile, TimeSeparation, WhoEnded
from src.questions import QUESTIONS, QUESTIONS_BY_KEY


def _gender_texts(gender):
    texts = [
        get_title(gender),
        get_loading_message(gender),
        get_offer_title(gender),
        get_cta(gender),
        get_window_72_copy(gender),
    ]
    texts.extend(get_completion_badge(gender).values())
    texts.extend(get_phase_text(gender, n) for n in (1, 2, 3))
    texts.extend(get_features(gender))
    texts.extend(item.label for item in get_value_breakdown(gender))
    return texts


def _profile_texts(profile):
    texts = [
        get_copy(profile),
        get_emotional_validation(profile),
        get_situation_insight(profile),
    ]
    texts.extend(value for _, value in get_situation_summary(profile))
    return texts


class TestCompleteness:
    """Каждый слот заполнен для обеих веток и любых ответов"""

    @pytest.mark.parametrize("gender", list(Gender))
    def test_gender_slots(self, gender):
        for text in _gender_texts(gender):
            assert text.strip()
            assert not has_unresolved_markers(text), text

    def test_every_answer_combination(self):
        combos = itertools.product(Gender, TimeSeparation, WhoEnded, CurrentSituation)
        for gender, time_sep, who_ended, situation in combos:
            profile = Profile(values={
                "gender": gender.value,
                "timeSeparation": time_sep.value,
                "whoEnded": who_ended.value,
                "currentSituation": situation.value,
            })
            for text in _profile_texts(profile):
                assert text.strip()
                assert not has_unresolved_markers(text), text

    def test_empty_profile(self):
        profile = Profile()
        for text in _profile_texts(profile):
            assert text.strip()
            assert not has_unresolved_markers(text)
        assert [value for _, value in get_situation_summary(profile)] == [NOT_SPECIFIED] * 4

    @pytest.mark.parametrize("question", QUESTIONS, ids=lambda q: q.data_key)
    def test_acknowledgements(self, question):
        for gender in (None, Gender.MALE, Gender.FEMALE):
            text = get_acknowledgement(question, gender)
            assert text.strip()
            assert not has_unresolved_markers(text)


class TestGenderBranches:
    """MALE говорит о ней, FEMALE о нём"""

    def test_male_headline(self):
        assert get_title(Gender.MALE) == "Why She Left"
        assert get_offer_title(Gender.MALE) == "Your Plan to Win Her Back"
        assert get_cta(Gender.MALE) == "YES, I WANT MY PLAN TO WIN HER BACK"

    def test_female_headline(self):
        assert get_title(Gender.FEMALE) == "Why He Left"
        assert get_cta(Gender.FEMALE) == "YES, I WANT MY PLAN TO WIN HIM BACK"

    def test_missing_gender_defaults_to_male(self):
        assert resolve_gender(None) == Gender.MALE
        assert resolve_gender(Profile()) == Gender.MALE
        assert resolve_gender("nonsense") == Gender.MALE
        assert get_title(None) == "Why She Left"

    def test_string_gender(self):
        assert pronouns_for("FEMALE").subject == "he"

    def test_phase_text_user_pronoun(self):
        assert "What's happening with him?" in get_phase_text(Gender.MALE, 1)
        assert "What's happening with her?" in get_phase_text(Gender.FEMALE, 1)

    def test_phase_text_bounds(self):
        with pytest.raises(ValueError):
            get_phase_text(Gender.MALE, 4)
        assert get_phase_heading(2) == "PHASE 2 (24-48h)"


class TestPersonalization:
    """Ветвление диагноза по ответам"""

    def test_recent_separation_urgency(self, fill_profile):
        copy = get_copy(fill_profile())
        assert "IDEAL time window" in copy
        assert copy.startswith("It wasn't because of lack of love.")

    def test_long_separation_mentions_elapsed(self, fill_profile, female_answers):
        copy = get_copy(fill_profile(female_answers))
        assert "Although time has passed (MORE THAN 6 MONTHS)" in copy
        assert "his dopamine system" in copy

    def test_no_contact_insight(self):
        profile = Profile(values={"gender": "MALE", "currentSituation": "BLOCKED"})
        assert "no contact is, ironically" in get_copy(profile)
        assert "Being blocked" in get_situation_insight(profile)

    def test_reason_block(self):
        profile = Profile(values={"gender": "FEMALE"}, reason="jealousy")
        assert "\"jealousy\"" in get_copy(profile)
        assert "in his subconscious" in get_copy(profile)

    def test_validation_for_user_ended(self):
        profile = Profile(values={"gender": "MALE", "whoEnded": "I ENDED IT",
                                  "timeSeparation": "LESS THAN 1 WEEK"})
        text = get_emotional_validation(profile)
        assert text.startswith("Your separation is recent.")
        assert "She might be waiting" in text

    def test_summary_uses_answers(self, fill_profile):
        summary = dict(get_situation_summary(fill_profile()))
        assert summary["Time"] == "1-4 WEEKS"
        assert summary["Who ended it"] == "SHE ENDED IT"


class TestOffer:

    def test_total_value(self):
        assert get_total_value(Gender.MALE) == 165

    def test_bonus_is_free(self):
        assert get_value_breakdown(Gender.FEMALE)[-1].price_label == "FREE"

    def test_features(self):
        features = get_features(Gender.FEMALE)
        assert len(features) == 7
        assert features[0] == "📱 MODULE 1: How to Talk to Him (Days 1-7)"


class TestQuestionOptions:

    def test_options_follow_stored_gender(self):
        profile = Profile(values={"gender": "FEMALE"})
        options = get_question_options(QUESTIONS_BY_KEY["whoEnded"], profile)
        assert options[0] == "HE ENDED IT"
