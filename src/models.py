"""
Модели данных воронки: закрытые типы ответов и профиль.

Каждый вопрос скрипта имеет свой Enum допустимых ответов. Ветвление
контента идёт по членам Enum, а не по подстрокам текста кнопки:
переименование опции не может молча провалиться в ветку по умолчанию.

Profile хранится как JSON blob с camelCase ключами (формат quiz_data)
и валидируется через pydantic при загрузке.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field


E = TypeVar("E", bound=Enum)


class Gender(str, Enum):
    """Пол пользователя - управляет всеми ветками контента"""
    MALE = "MALE"
    FEMALE = "FEMALE"


class TimeSeparation(str, Enum):
    LESS_THAN_1_WEEK = "LESS THAN 1 WEEK"
    ONE_TO_4_WEEKS = "1-4 WEEKS"
    ONE_TO_6_MONTHS = "1-6 MONTHS"
    MORE_THAN_6_MONTHS = "MORE THAN 6 MONTHS"

    @property
    def is_recent(self) -> bool:
        """Окно до месяца после расставания"""
        return self in (TimeSeparation.LESS_THAN_1_WEEK, TimeSeparation.ONE_TO_4_WEEKS)


class WhoEnded(str, Enum):
    SHE_ENDED_IT = "SHE ENDED IT"
    HE_ENDED_IT = "HE ENDED IT"
    I_ENDED_IT = "I ENDED IT"
    MUTUAL_DECISION = "MUTUAL DECISION"

    @property
    def ex_ended(self) -> bool:
        return self in (WhoEnded.SHE_ENDED_IT, WhoEnded.HE_ENDED_IT)


class RelationshipDuration(str, Enum):
    LESS_THAN_6_MONTHS = "LESS THAN 6 MONTHS"
    SIX_MONTHS_TO_1_YEAR = "6 MONTHS-1 YEAR"
    ONE_TO_3_YEARS = "1-3 YEARS"
    MORE_THAN_3_YEARS = "MORE THAN 3 YEARS"


class CurrentSituation(str, Enum):
    NO_CONTACT = "NO CONTACT"
    IGNORING_ME = "IGNORING ME"
    BLOCKED = "BLOCKED"
    ONLY_NECESSARY_TOPICS = "ONLY NECESSARY TOPICS"
    WE_TALK_SOMETIMES = "WE TALK SOMETIMES"
    WE_ARE_FRIENDS = "WE ARE FRIENDS"
    INTIMATE_ENCOUNTERS = "INTIMATE ENCOUNTERS"

    @property
    def no_contact(self) -> bool:
        return self in (
            CurrentSituation.NO_CONTACT,
            CurrentSituation.IGNORING_ME,
            CurrentSituation.BLOCKED,
        )


class ExSituation(str, Enum):
    SHE_IS_SINGLE = "SHE'S SINGLE"
    HE_IS_SINGLE = "HE'S SINGLE"
    NOT_SURE = "I'M NOT SURE"
    CASUAL_DATING = "CASUAL DATING"
    SERIOUS_RELATIONSHIP = "SERIOUS RELATIONSHIP"
    MULTIPLE_PEOPLE = "MULTIPLE PEOPLE"


class CommitmentLevel(str, Enum):
    NOT_SURE = "1 - NOT SURE"
    CONSIDERING = "2 - CONSIDERING IT"
    WANT_A_LOT = "3 - I WANT IT A LOT"
    WITH_ALL_MY_HEART = "4 - I WANT IT WITH ALL MY HEART"


def coerce_answer(enum_cls: Type[E], value: Any) -> Optional[E]:
    """Привести строку ответа к члену Enum; неизвестное значение -> None"""
    if value is None or value == "":
        return None
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        return None


# Ключи профиля в порядке вопросов скрипта
QUESTION_KEYS = (
    "gender",
    "timeSeparation",
    "whoEnded",
    "relationshipDuration",
    "currentSituation",
    "exSituation",
    "commitmentLevel",
)


# =============================================================================
# Persisted snapshot schema
# =============================================================================

class AnswerRecord(BaseModel):
    """Одна запись в списке answers (порядок = порядок вопросов)"""
    questionId: int
    question: str
    answer: str


class ProfileSnapshot(BaseModel):
    """Схема blob'а quiz_data в хранилище"""
    model_config = ConfigDict(extra="ignore")

    gender: Optional[Literal["MALE", "FEMALE"]] = None
    timeSeparation: Optional[str] = None
    whoEnded: Optional[str] = None
    relationshipDuration: Optional[str] = None
    currentSituation: Optional[str] = None
    exSituation: Optional[str] = None
    commitmentLevel: Optional[str] = None
    reason: Optional[str] = None
    answers: List[AnswerRecord] = Field(default_factory=list)


# =============================================================================
# Runtime profile
# =============================================================================

@dataclass
class QuizAnswer:
    """Ответ на один вопрос скрипта"""
    question_id: int
    question: str
    answer: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "questionId": self.question_id,
            "question": self.question,
            "answer": self.answer,
        }


@dataclass
class Profile:
    """
    Профиль сессии: ответы по ключам вопросов + упорядоченный список answers.

    Attributes:
        values: {data_key: answer_text}
        answers: Записи в порядке ответов
        reason: Причина расставания (необязательное поле, в скрипте не спрашивается)
    """
    values: Dict[str, str] = field(default_factory=dict)
    answers: List[QuizAnswer] = field(default_factory=list)
    reason: Optional[str] = None

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        return self.values.get(key, default)

    def has(self, key: str) -> bool:
        return key in self.values

    @property
    def gender(self) -> Optional[Gender]:
        return coerce_answer(Gender, self.values.get("gender"))

    @property
    def time_separation(self) -> Optional[TimeSeparation]:
        return coerce_answer(TimeSeparation, self.values.get("timeSeparation"))

    @property
    def who_ended(self) -> Optional[WhoEnded]:
        return coerce_answer(WhoEnded, self.values.get("whoEnded"))

    @property
    def relationship_duration(self) -> Optional[RelationshipDuration]:
        return coerce_answer(RelationshipDuration, self.values.get("relationshipDuration"))

    @property
    def current_situation(self) -> Optional[CurrentSituation]:
        return coerce_answer(CurrentSituation, self.values.get("currentSituation"))

    @property
    def ex_situation(self) -> Optional[ExSituation]:
        return coerce_answer(ExSituation, self.values.get("exSituation"))

    @property
    def commitment_level(self) -> Optional[CommitmentLevel]:
        return coerce_answer(CommitmentLevel, self.values.get("commitmentLevel"))

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = dict(self.values)
        if self.reason:
            data["reason"] = self.reason
        data["answers"] = [a.to_dict() for a in self.answers]
        return data

    @classmethod
    def from_snapshot(cls, snapshot: ProfileSnapshot) -> "Profile":
        values = {
            key: getattr(snapshot, key)
            for key in QUESTION_KEYS
            if getattr(snapshot, key) is not None
        }
        answers = [
            QuizAnswer(question_id=a.questionId, question=a.question, answer=a.answer)
            for a in snapshot.answers
        ]
        return cls(values=values, answers=answers, reason=snapshot.reason)

    def copy(self) -> "Profile":
        return Profile(
            values=dict(self.values),
            answers=[QuizAnswer(a.question_id, a.question, a.answer) for a in self.answers],
            reason=self.reason,
        )
