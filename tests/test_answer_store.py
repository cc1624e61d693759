"""
Тесты AnswerStore: запись ответов, персистентность и защита от мусора.
"""

import json

from src.answer_store import AnswerStore, get_answer_store, reset_answer_store
from src.models import Gender, Profile, QUESTION_KEYS
from src.questions import QUESTIONS, QUESTIONS_BY_KEY
from src.storage import MemoryStorage


class TestAnswerStoreSet:
    """Запись ответов"""

    def test_set_persists_before_return(self, store, storage):
        assert store.set("gender", "FEMALE") is True

        raw = json.loads(storage.get("quiz_data"))
        assert raw["gender"] == "FEMALE"
        assert raw["answers"] == [
            {"questionId": 1, "question": QUESTIONS[0].text, "answer": "FEMALE"}
        ]

    def test_invalid_gender_rejected(self, store, storage):
        assert store.set("gender", "OTHER") is False
        assert store.get().gender is None
        assert storage.get("quiz_data") is None

    def test_unknown_key_rejected(self, store):
        assert store.set("favouriteColor", "RED") is False

    def test_key_is_not_overwritten(self, store):
        store.set("timeSeparation", "1-4 WEEKS")
        assert store.set("timeSeparation", "MORE THAN 6 MONTHS") is False
        assert store.get().get("timeSeparation") == "1-4 WEEKS"
        assert len(store.get().answers) == 1

    def test_answers_keep_question_order(self, fill_profile):
        profile = fill_profile()
        assert [a.question_id for a in profile.answers] == [1, 2, 3, 4, 5, 6, 7]
        assert tuple(profile.values) == QUESTION_KEYS

    def test_reason_is_optional(self, store, storage):
        store.set_reason("distance")
        assert json.loads(storage.get("quiz_data"))["reason"] == "distance"


class TestAnswerStoreLoad:
    """Загрузка из storage"""

    def test_reload_returns_same_profile(self, fill_profile, storage):
        fill_profile()
        restored = AnswerStore(storage).get()
        assert restored.gender == Gender.MALE
        assert restored.get("commitmentLevel") == "4 - I WANT IT WITH ALL MY HEART"
        assert len(restored.answers) == 7

    def test_missing_blob_is_empty_profile(self, store):
        profile = store.get()
        assert profile.values == {}
        assert profile.answers == []

    def test_corrupt_json_is_empty_profile(self):
        store = AnswerStore(MemoryStorage(initial={"quiz_data": "{{{"}))
        assert store.get().values == {}

    def test_schema_violation_is_empty_profile(self):
        blob = json.dumps({"gender": "ROBOT", "answers": "nope"})
        store = AnswerStore(MemoryStorage(initial={"quiz_data": blob}))
        assert store.get().gender is None
        assert store.get().answers == []

    def test_unknown_fields_ignored(self):
        blob = json.dumps({"gender": "FEMALE", "legacyField": 1, "answers": []})
        store = AnswerStore(MemoryStorage(initial={"quiz_data": blob}))
        assert store.get().gender == Gender.FEMALE

    def test_reset_overwrites_previous_profile(self, fill_profile, store, storage):
        fill_profile()
        store.reset()
        assert AnswerStore(storage).get().values == {}


class TestProcessStore:

    def test_singleton_uses_factory_once(self):
        reset_answer_store()
        created = []

        def factory():
            created.append(1)
            return AnswerStore(MemoryStorage())

        first = get_answer_store(factory)
        second = get_answer_store(factory)
        assert first is second
        assert created == [1]


class TestProfileEnums:
    """Типизированный доступ к ответам"""

    def test_typed_properties(self, fill_profile):
        profile = fill_profile()
        assert profile.time_separation.is_recent is True
        assert profile.who_ended.ex_ended is True
        assert profile.current_situation.no_contact is True

    def test_unknown_value_is_none(self):
        profile = Profile(values={"currentSituation": "IT'S COMPLICATED"})
        assert profile.current_situation is None

    def test_every_question_writes_its_own_key(self):
        assert set(QUESTIONS_BY_KEY) == set(QUESTION_KEYS)
        assert len(QUESTIONS) == 7
