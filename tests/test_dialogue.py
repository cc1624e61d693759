"""
Тесты Dialogue Engine: порядок вопросов, гейты ввода, прогресс.
"""

import pytest

from src.dialogue import DialogueEngine, DialogueState
from src.feature_flags import flags
from src.questions import FINAL_MESSAGE, INTRO_MESSAGE, QUESTIONS, START_BUTTON


def _open_and_start(dialogue, wait_until):
    dialogue.open()
    wait_until(lambda: dialogue.view()["start_button"] is not None)
    assert dialogue.start() is True


def _answer_when_ready(dialogue, wait_until, option):
    wait_until(lambda: bool(dialogue.view()["options"]))
    assert dialogue.answer(option) is True


def _answer_all(dialogue, wait_until, answers):
    for question in QUESTIONS:
        _answer_when_ready(dialogue, wait_until, answers[question.data_key])


class TestDialogueOpen:
    """Вступление и кнопка START"""

    def test_open_tracks_chat_events(self, dialogue, sink):
        dialogue.open()
        assert sink.names() == ["page_view", "chat_started"]
        assert sink.of("page_view")[0]["page_path"] == "/chat"

    def test_intro_is_typed(self, dialogue, scheduler):
        dialogue.open()
        message = dialogue.view()["messages"][0]
        assert message == {"type": "bot", "text": "", "is_typing": True}

        scheduler.advance(0.21)
        assert dialogue.view()["messages"][0]["text"] == INTRO_MESSAGE[:4]

    def test_start_button_after_typing_and_settle(self, dialogue, scheduler):
        dialogue.open()
        typing = len(INTRO_MESSAGE) * 0.05
        scheduler.advance(typing + 0.1)
        assert dialogue.view()["messages"][0]["is_typing"] is False
        assert dialogue.view()["start_button"] is None

        scheduler.advance(0.3)
        assert dialogue.view()["start_button"] == START_BUTTON

    def test_start_rejected_while_typing(self, dialogue, scheduler):
        dialogue.open()
        scheduler.advance(1.0)
        assert dialogue.start() is False
        assert dialogue.state == DialogueState.IDLE

    def test_start_only_once(self, dialogue, wait_until):
        _open_and_start(dialogue, wait_until)
        assert dialogue.start() is False
        assert dialogue.state == DialogueState.ASKING
        assert dialogue.index == 0

    def test_start_resets_profile(self, dialogue, wait_until, fill_profile, store):
        fill_profile()
        _open_and_start(dialogue, wait_until)
        assert store.get().values == {}


class TestDialogueAnswers:
    """Ответы принимаются только в AWAITING_ANSWER"""

    def test_answer_while_question_typing_rejected(self, dialogue, wait_until, store):
        _open_and_start(dialogue, wait_until)
        assert dialogue.state == DialogueState.ASKING
        assert dialogue.answer("MALE") is False
        assert store.get().answers == []

    def test_double_click_records_once(self, dialogue, wait_until, store, sink):
        _open_and_start(dialogue, wait_until)
        _answer_when_ready(dialogue, wait_until, "MALE")
        assert dialogue.answer("MALE") is False
        assert dialogue.answer("FEMALE") is False
        assert len(store.get().answers) == 1
        assert sink.count("question_answered") == 1

    def test_unknown_option_rejected(self, dialogue, wait_until, store):
        _open_and_start(dialogue, wait_until)
        wait_until(lambda: bool(dialogue.view()["options"]))
        assert dialogue.answer("OTHER") is False
        assert dialogue.state == DialogueState.AWAITING_ANSWER
        assert store.get().gender is None

    def test_options_follow_gender(self, dialogue, wait_until):
        _open_and_start(dialogue, wait_until)
        _answer_when_ready(dialogue, wait_until, "FEMALE")
        _answer_when_ready(dialogue, wait_until, "1-4 WEEKS")
        wait_until(lambda: bool(dialogue.view()["options"]))
        assert dialogue.view()["options"] == ["HE ENDED IT", "I ENDED IT", "MUTUAL DECISION"]
        assert dialogue.answer("SHE ENDED IT") is False

    def test_processing_then_acknowledgement(self, dialogue, wait_until, scheduler):
        _open_and_start(dialogue, wait_until)
        _answer_when_ready(dialogue, wait_until, "MALE")
        assert dialogue.view()["processing"] is True
        assert dialogue.view()["options"] == []

        scheduler.advance(1.4)
        assert dialogue.processing is True
        scheduler.advance(0.2)
        assert dialogue.processing is False

        wait_until(lambda: not dialogue.messages[-1].is_typing)
        ack = dialogue.messages[-1].text
        assert "female behavior" in ack
        assert "with her" in ack

    def test_progress(self, dialogue, wait_until):
        _open_and_start(dialogue, wait_until)
        assert dialogue.view()["progress"] == 0
        _answer_when_ready(dialogue, wait_until, "MALE")
        assert dialogue.view()["progress"] == 14
        _answer_when_ready(dialogue, wait_until, "LESS THAN 1 WEEK")
        assert dialogue.view()["progress"] == 29


class TestDialogueCompletion:
    """Полный проход скрипта"""

    def test_full_script(self, dialogue, wait_until, store, sink, male_answers):
        _open_and_start(dialogue, wait_until)
        _answer_all(dialogue, wait_until, male_answers)

        wait_until(lambda: dialogue.cta_visible)
        profile = store.get()
        assert profile.values == male_answers
        assert [a.question_id for a in profile.answers] == [1, 2, 3, 4, 5, 6, 7]
        assert [p["question_id"] for p in sink.of("question_answered")] == [1, 2, 3, 4, 5, 6, 7]
        assert sink.count("chat_completed") == 1
        assert dialogue.progress == 1.0

        view = dialogue.view()
        assert view["state"] == "complete"
        assert view["completion"]["subtitle"].startswith("Discover exactly why she left")
        assert view["messages"][-1]["text"] == FINAL_MESSAGE
        assert len(view["messages"]) == 1 + 3 * len(QUESTIONS) + 1

    def test_progress_never_decreases(self, dialogue, wait_until, female_answers):
        _open_and_start(dialogue, wait_until)
        seen = []
        for question in QUESTIONS:
            _answer_when_ready(dialogue, wait_until, female_answers[question.data_key])
            seen.append(dialogue.progress)
        assert seen == sorted(seen)
        assert all(0 <= p <= 1 for p in seen)

    def test_view_plan(self, scheduler, store, tracker, sink, wait_until, male_answers):
        navigated = []
        dialogue = DialogueEngine(scheduler, store, tracker=tracker, on_navigate=navigated.append)
        assert dialogue.view_plan() is False

        _open_and_start(dialogue, wait_until)
        _answer_all(dialogue, wait_until, male_answers)
        wait_until(lambda: dialogue.cta_visible)

        assert dialogue.view_plan() is True
        assert navigated == ["result"]
        assert sink.of("cta_click")[-1]["button_location"] == "chat_complete"
        assert dialogue.closed is True

    def test_view_plan_double_click(self, scheduler, store, tracker, sink, wait_until, male_answers):
        navigated = []
        dialogue = DialogueEngine(scheduler, store, tracker=tracker, on_navigate=navigated.append)
        _open_and_start(dialogue, wait_until)
        _answer_all(dialogue, wait_until, male_answers)
        wait_until(lambda: dialogue.cta_visible)

        assert dialogue.view_plan() is True
        assert dialogue.view_plan() is False
        assert navigated == ["result"]
        assert sink.count("cta_click") == 1

    def test_cta_hidden_during_final_message(self, dialogue, wait_until, scheduler, male_answers):
        _open_and_start(dialogue, wait_until)
        _answer_all(dialogue, wait_until, male_answers)
        wait_until(lambda: dialogue.is_complete)
        assert dialogue.view()["completion"] is None
        assert dialogue.view_plan() is False


class TestDialogueClose:

    def test_close_cancels_timers(self, dialogue, wait_until, scheduler, store):
        _open_and_start(dialogue, wait_until)
        _answer_when_ready(dialogue, wait_until, "MALE")
        dialogue.close()
        messages = len(dialogue.messages)

        scheduler.advance(60)
        assert len(dialogue.messages) == messages
        assert dialogue.state == DialogueState.ACKNOWLEDGING
        assert scheduler.pending == 0
        assert dialogue.answer("1-4 WEEKS") is False

    def test_open_after_close_is_ignored(self, dialogue, sink):
        dialogue.close()
        dialogue.open()
        assert sink.events == []


class TestDialogueSound:

    @pytest.mark.parametrize("enabled,expected", [(True, 2), (False, 0)])
    def test_key_sound_on_clicks(self, scheduler, store, wait_until, enabled, expected):
        flags.set_override("sound_effects", enabled)
        clicks = []
        dialogue = DialogueEngine(scheduler, store, sound=lambda: clicks.append(1))
        _open_and_start(dialogue, wait_until)
        _answer_when_ready(dialogue, wait_until, "MALE")
        assert len(clicks) == expected
        dialogue.close()
