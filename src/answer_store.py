"""
Answer Store - профиль ответов, переживающий навигацию и перезагрузку.

Каждый set() синхронно пишет профиль в durable storage до возврата.
Недоступное хранилище не ломает вызывающего: SafeStorage деградирует
в память, повреждённый blob трактуется как отсутствующий.

Использование:
    from src.answer_store import AnswerStore

    store = AnswerStore(storage)
    store.set("gender", "MALE")
    profile = store.get()
"""

from typing import Callable, Dict, Optional

from pydantic import ValidationError

from src.logger import logger
from src.models import Profile, ProfileSnapshot, QuizAnswer
from src.questions import QUESTIONS_BY_KEY, Question
from src.storage import KeyValueStorage, create_storage


class AnswerStore:
    """
    Хранилище профиля одной сессии.

    Инварианты:
    - ключ, однажды записанный вопросом, не перезаписывается другим ответом
    - gender, если задан, всегда MALE или FEMALE
    - answers упорядочены по времени ответа (= порядку вопросов)
    """

    STORAGE_KEY = "quiz_data"

    def __init__(
        self,
        storage: KeyValueStorage,
        questions: Optional[Dict[str, Question]] = None,
    ):
        self._storage = storage
        self._questions = questions if questions is not None else QUESTIONS_BY_KEY
        self._profile: Optional[Profile] = None

    @property
    def storage(self) -> KeyValueStorage:
        return self._storage

    def get(self) -> Profile:
        """Текущий профиль (загружается из storage при первом обращении)"""
        if self._profile is None:
            self._profile = self.load()
        return self._profile

    def set(self, key: str, value: str) -> bool:
        """
        Записать ответ на вопрос с ключом key.

        Returns:
            True если значение записано, False если отклонено
            (неизвестный ключ, недопустимое значение, ключ уже занят)
        """
        question = self._questions.get(key)
        if question is None:
            logger.warning("Unknown profile key rejected", key=key)
            return False

        try:
            question.answer_type(value)
        except ValueError:
            logger.warning("Invalid answer rejected", key=key, value=value)
            return False

        profile = self.get()
        if profile.has(key):
            logger.debug("Profile key already set", key=key)
            return False

        profile.values[key] = value
        profile.answers.append(
            QuizAnswer(question_id=question.id, question=question.text, answer=value)
        )
        self.persist()
        return True

    def set_reason(self, reason: str) -> None:
        """Причина расставания (свободный текст, вне скрипта)"""
        profile = self.get()
        profile.reason = reason
        self.persist()

    def persist(self) -> None:
        if self._profile is None:
            return
        self._storage.set_json(self.STORAGE_KEY, self._profile.to_dict())

    def load(self) -> Profile:
        """Прочитать профиль из storage; отсутствие или мусор -> пустой профиль"""
        raw = self._storage.get_json(self.STORAGE_KEY)
        if raw is None:
            return Profile()
        try:
            snapshot = ProfileSnapshot.model_validate(raw)
        except ValidationError as exc:
            logger.warning("Stored profile is malformed, starting fresh", errors=exc.error_count())
            return Profile()
        return Profile.from_snapshot(snapshot)

    def reload(self) -> Profile:
        self._profile = None
        return self.get()

    def reset(self) -> None:
        """Новая сессия перезаписывает старый профиль"""
        self._profile = Profile()
        self.persist()


# =============================================================================
# Process-wide instance
# =============================================================================

_store: Optional[AnswerStore] = None


def get_answer_store(factory: Optional[Callable[[], AnswerStore]] = None) -> AnswerStore:
    """Единственный экземпляр на процесс (создаётся лениво)"""
    global _store
    if _store is None:
        _store = factory() if factory else AnswerStore(create_storage())
    return _store


def reset_answer_store() -> None:
    """Сбросить синглтон (для тестов)"""
    global _store
    _store = None
