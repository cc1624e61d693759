"""
Скрипт диалога: 7 вопросов анализа + вступительное и финальное сообщения.

Каждый вопрос пишет ровно один ключ профиля (data_key). Опции и
подтверждения бывают плоскими или с вариантами по полу - тогда выбор
зависит от уже сохранённого profile.gender.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Tuple, Type

from src.models import (
    CommitmentLevel,
    CurrentSituation,
    ExSituation,
    Gender,
    QUESTION_KEYS,
    RelationshipDuration,
    TimeSeparation,
    WhoEnded,
)


INTRO_MESSAGE = (
    "Hi. I'm Dr. Sarah Mitchell, specialist in relationship recovery through "
    "behavioral psychology. My system detected your search for answers. "
    "I'm here to analyze your case."
)

FINAL_MESSAGE = (
    "Analysis complete. Your personalized plan is ready to be revealed. "
    "Click below to access it."
)

START_BUTTON = "START ANALYSIS"
VIEW_PLAN_BUTTON = "SEE MY PERSONALIZED PLAN"
COMPLETION_COUNT = "+9,247 plans revealed"


@dataclass(frozen=True)
class Question:
    """
    Статическое определение вопроса.

    Attributes:
        id: Порядковый номер (1..7)
        text: Текст вопроса
        data_key: Ключ профиля, в который пишется ответ
        answer_type: Enum допустимых ответов
        response: Плоское подтверждение
        options: Плоский список опций
        options_by_gender: Опции по полу (если зависят от gender)
        response_by_gender: Подтверждение по полу
    """
    id: int
    text: str
    data_key: str
    answer_type: Type[Enum]
    response: str
    options: Tuple[str, ...] = ()
    options_by_gender: Dict[Gender, Tuple[str, ...]] = field(default_factory=dict)
    response_by_gender: Dict[Gender, str] = field(default_factory=dict)

    @property
    def has_gender_options(self) -> bool:
        return bool(self.options_by_gender)

    def options_for(self, gender: Optional[Gender]) -> Tuple[str, ...]:
        """Опции для текущего пола (плоский список, если пол не задан)"""
        if self.options_by_gender and gender is not None:
            return self.options_by_gender.get(gender, self.options)
        return self.options

    def response_for(self, gender: Optional[Gender]) -> str:
        if self.response_by_gender and gender is not None:
            return self.response_by_gender.get(gender) or self.response
        return self.response


def _by_gender(template: str, male: Dict[str, str], female: Dict[str, str]) -> Dict[Gender, str]:
    return {
        Gender.MALE: template.format(**male),
        Gender.FEMALE: template.format(**female),
    }


# Местоимения бывшего партнёра: MALE-пользователь говорит о ней
_EX_MALE = {"obj": "her", "subj": "she"}
_EX_FEMALE = {"obj": "him", "subj": "he"}

_COMMITMENT = tuple(level.value for level in CommitmentLevel)


QUESTIONS: Tuple[Question, ...] = (
    Question(
        id=1,
        text="To calibrate the analysis, I need to know: what is your gender?",
        data_key="gender",
        answer_type=Gender,
        options=(Gender.MALE.value, Gender.FEMALE.value),
        response="Got it.",
        response_by_gender=_by_gender(
            "Perfect. I'm going to calibrate the analysis based on the specific patterns "
            "of {kind} behavior after a breakup. Every answer you give will help me "
            "understand exactly what's happening with {obj}.",
            {"kind": "female", **_EX_MALE},
            {"kind": "male", **_EX_FEMALE},
        ),
    ),
    Question(
        id=2,
        text="Understood. Now, how long has it been since you separated?",
        data_key="timeSeparation",
        answer_type=TimeSeparation,
        options=tuple(t.value for t in TimeSeparation),
        response="Recorded.",
        response_by_gender=_by_gender(
            "Recorded. Time is crucial. During this period, {obj} brain goes through "
            "specific chemical phases. The more recent the separation, the more active "
            "{obj} emotional memory. We're going to use that strategically.",
            {"obj": "her"},
            {"obj": "his"},
        ),
    ),
    Question(
        id=3,
        text="Good. And how was the separation? Who took the initiative?",
        data_key="whoEnded",
        answer_type=WhoEnded,
        options_by_gender={
            Gender.MALE: (WhoEnded.SHE_ENDED_IT.value, WhoEnded.I_ENDED_IT.value,
                          WhoEnded.MUTUAL_DECISION.value),
            Gender.FEMALE: (WhoEnded.HE_ENDED_IT.value, WhoEnded.I_ENDED_IT.value,
                            WhoEnded.MUTUAL_DECISION.value),
        },
        response="Right.",
        response_by_gender=_by_gender(
            "I understand. When {subj} makes the decision to end things, it means "
            "something activated an emotional \"switch\" in {pos} brain. The good news: "
            "that switch can be reversed if you know exactly which buttons to press. "
            "And that's what we're going to discover.",
            {"subj": "she", "pos": "her"},
            {"subj": "he", "pos": "his"},
        ),
    ),
    Question(
        id=4,
        text="Recorded. How long were you together?",
        data_key="relationshipDuration",
        answer_type=RelationshipDuration,
        options=tuple(d.value for d in RelationshipDuration),
        response="Ok.",
        response_by_gender=_by_gender(
            "Perfect. The relationship time defines how many \"emotional anchors\" you "
            "created in {pos} memory. The longer together, the deeper the neural "
            "connections. That works in your favor if you use the right protocol.",
            {"pos": "her"},
            {"pos": "his"},
        ),
    ),
    Question(
        id=5,
        text="What is your current situation with your ex?",
        data_key="currentSituation",
        answer_type=CurrentSituation,
        options=tuple(s.value for s in CurrentSituation),
        response="Analyzing...",
        response_by_gender=_by_gender(
            "Key information. The current level of contact reveals exactly what "
            "emotional phase {subj}'s in. Each scenario requires a different protocol. "
            "If there's no contact, we use one strategy. If there's communication, we "
            "use a completely different one.",
            _EX_MALE,
            _EX_FEMALE,
        ),
    ),
    Question(
        id=6,
        text="Analyzing... Now, crucial information: is your ex already with someone else?",
        data_key="exSituation",
        answer_type=ExSituation,
        options_by_gender={
            Gender.MALE: (ExSituation.SHE_IS_SINGLE.value, ExSituation.NOT_SURE.value,
                          ExSituation.CASUAL_DATING.value,
                          ExSituation.SERIOUS_RELATIONSHIP.value,
                          ExSituation.MULTIPLE_PEOPLE.value),
            Gender.FEMALE: (ExSituation.HE_IS_SINGLE.value, ExSituation.NOT_SURE.value,
                            ExSituation.CASUAL_DATING.value,
                            ExSituation.SERIOUS_RELATIONSHIP.value,
                            ExSituation.MULTIPLE_PEOPLE.value),
        },
        response="Crucial.",
        response_by_gender=_by_gender(
            "Understood. This changes the map, but not the destination. Even if {subj}'s "
            "with someone, there are specific psychological protocols that work. In fact, "
            "in some cases, this can be used strategically in your favor.",
            _EX_MALE,
            _EX_FEMALE,
        ),
    ),
    Question(
        id=7,
        text=(
            "Last question to complete the analysis: on a scale of 1 to 4, how much do "
            "you want to get this relationship back?"
        ),
        data_key="commitmentLevel",
        answer_type=CommitmentLevel,
        options_by_gender={Gender.MALE: _COMMITMENT, Gender.FEMALE: _COMMITMENT},
        response="Analysis complete!",
        response_by_gender=_by_gender(
            "Analysis complete! Your commitment level defines the intensity of the "
            "protocol. The more committed you are, the more powerful the techniques I'll "
            "reveal to you. Now I have everything I need to show you the exact path to "
            "win {obj} back.",
            _EX_MALE,
            _EX_FEMALE,
        ),
    ),
)


QUESTIONS_BY_KEY: Dict[str, Question] = {q.data_key: q for q in QUESTIONS}


def _validate_script() -> None:
    keys = tuple(q.data_key for q in QUESTIONS)
    if keys != QUESTION_KEYS:
        raise ValueError(f"Question keys out of order: {keys}")
    for question in QUESTIONS:
        lists = [question.options] + list(question.options_by_gender.values())
        for options in lists:
            for option in options:
                question.answer_type(option)
        if question.options_by_gender and set(question.options_by_gender) != set(Gender):
            raise ValueError(f"Question {question.id} must cover both genders")
        if question.response_by_gender and set(question.response_by_gender) != set(Gender):
            raise ValueError(f"Question {question.id} must cover both genders")


_validate_script()
