"""
Content Resolver - персонализированные тексты для каждого слота воронки.

Чистые функции: профиль (или только gender) -> строка / список строк.
Две полные ветки текста (MALE говорит о ней, FEMALE о нём) задаются
через таблицы местоимений и таблицы по Enum ответов. Полнота каждой
таблицы проверяется при импорте, поэтому новая опция в скрипте без
текста для неё ломает импорт, а не молча уходит в ветку по умолчанию.

Отсутствующие поля профиля заменяются на NOT_SPECIFIED, отсутствующий
gender - на MALE.

Использование:
    from src.content import get_copy, get_title

    title = get_title(profile.gender)
    diagnosis = get_copy(profile)
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Mapping, Optional, Tuple, Type

from src.models import (
    CurrentSituation,
    Gender,
    Profile,
    TimeSeparation,
    WhoEnded,
)
from src.questions import Question


NOT_SPECIFIED = "Not specified"
DEFAULT_GENDER = Gender.MALE

# Маркеры шаблонов, которые не должны доходить до пользователя
UNRESOLVED_MARKER = re.compile(r"\{[^}]*\}|\$\{|\{\{")


@dataclass(frozen=True)
class Pronouns:
    """Местоимения бывшего партнёра для одной ветки"""
    subject: str        # she / he
    object: str         # her / him
    possessive: str     # her / his
    user_object: str    # him / her (о самом пользователе)

    @property
    def Subject(self) -> str:
        return self.subject.capitalize()

    @property
    def Object(self) -> str:
        return self.object.capitalize()


PRONOUNS: Dict[Gender, Pronouns] = {
    Gender.MALE: Pronouns(subject="she", object="her", possessive="her", user_object="him"),
    Gender.FEMALE: Pronouns(subject="he", object="him", possessive="his", user_object="her"),
}


def _require_exhaustive(table: Mapping, enum_cls: Type[Enum], name: str) -> None:
    missing = [member for member in enum_cls if member not in table]
    if missing:
        raise ValueError(f"{name}: no content for {[m.value for m in missing]}")


def resolve_gender(value) -> Gender:
    """Gender | Profile | str | None -> Gender (по умолчанию MALE)"""
    if isinstance(value, Profile):
        value = value.gender
    if isinstance(value, Gender):
        return value
    if isinstance(value, str):
        try:
            return Gender(value)
        except ValueError:
            return DEFAULT_GENDER
    return DEFAULT_GENDER


def pronouns_for(gender) -> Pronouns:
    return PRONOUNS[resolve_gender(gender)]


# =============================================================================
# Заголовки и CTA
# =============================================================================

def get_title(gender) -> str:
    return f"Why {pronouns_for(gender).Subject} Left"


def get_loading_message(gender) -> str:
    p = pronouns_for(gender)
    return f"Generating your specific protocol to win {p.object} back..."


def get_offer_title(gender) -> str:
    return f"Your Plan to Win {pronouns_for(gender).Object} Back"


def get_cta(gender) -> str:
    return f"YES, I WANT MY PLAN TO WIN {pronouns_for(gender).object.upper()} BACK"


def get_completion_badge(gender) -> Dict[str, str]:
    p = pronouns_for(gender)
    return {
        "title": "YOUR ANALYSIS IS READY!",
        "subtitle": (
            f"Discover exactly why {p.subject} left and the scientific step-by-step "
            f"so that {p.subject} WANTS to come back"
        ),
    }


# =============================================================================
# Phase 1: диагноз
# =============================================================================

_INTRO_BY_WHO_ENDED: Dict[WhoEnded, str] = {
    WhoEnded.SHE_ENDED_IT: (
        "Based on the fact that {Subject} decided to end the relationship, we understand "
        "there was a deterioration in the \"value switches\" that {object} perceived in you."
    ),
    WhoEnded.HE_ENDED_IT: (
        "Based on the fact that {Subject} decided to end the relationship, we understand "
        "there was a deterioration in the \"value switches\" that {object} perceived in you."
    ),
    WhoEnded.I_ENDED_IT: (
        "Considering that you were the one who ended it, the challenge now is to reverse "
        "the feeling of rejection that {object} processed, transforming it into a new "
        "opportunity."
    ),
    WhoEnded.MUTUAL_DECISION: (
        "Considering that the decision was mutual, the challenge now is to identify if "
        "there's still genuine interest from both sides and rebuild the attraction from "
        "scratch."
    ),
}

_INTRO_UNKNOWN = (
    "Considering the context of the breakup, the challenge now is to understand the "
    "emotional dynamics that led to this point and reverse them strategically."
)

_URGENCY_RECENT = (
    "You're in the **IDEAL time window**. {Subject}'s brain still has chemical traces of "
    "your presence, which makes reconnection easier if you act now."
)

_URGENCY_LATER = (
    "Although time has passed ({elapsed}), neuroscience explains that emotional memories "
    "can be reactivated through the right stimuli."
)

_URGENCY_BY_TIME: Dict[TimeSeparation, str] = {
    TimeSeparation.LESS_THAN_1_WEEK: _URGENCY_RECENT,
    TimeSeparation.ONE_TO_4_WEEKS: _URGENCY_RECENT,
    TimeSeparation.ONE_TO_6_MONTHS: _URGENCY_LATER,
    TimeSeparation.MORE_THAN_6_MONTHS: _URGENCY_LATER,
}

_INSIGHT_NO_CONTACT = (
    "The fact that there's no contact is, ironically, your biggest advantage. We're in the "
    "\"cortisol spike cleanup\" phase, preparing the ground for an impactful return."
)

_INSIGHT_CONTACT = (
    "The current contact indicates that the emotional thread hasn't been cut, but we need "
    "to be careful not to saturate {possessive} dopamine system with desperation."
)

_COPY_OPENING = "It wasn't because of lack of love."

_COPY_CLOSING = (
    "The key is not to beg, but to understand {possessive} psychology and act "
    "strategically. In the next step, I'm going to reveal EXACTLY the scientific "
    "step-by-step so that {object} feels that you ARE the right person."
)


def _fill(template: str, p: Pronouns, **extra: str) -> str:
    return template.format(
        subject=p.subject,
        Subject=p.Subject,
        object=p.object,
        Object=p.Object,
        possessive=p.possessive,
        user_object=p.user_object,
        **extra,
    )


def get_copy(profile: Profile) -> str:
    """
    Ультра-персонализированный диагноз для Phase 1.

    Блоки: вступление (кто закончил) -> срочность (сколько прошло) ->
    инсайт по контакту -> причина (если известна) -> закрытие.
    """
    p = pronouns_for(profile)
    blocks: List[str] = [_COPY_OPENING]

    who_ended = profile.who_ended
    blocks.append(_fill(_INTRO_BY_WHO_ENDED[who_ended], p) if who_ended else _INTRO_UNKNOWN)

    time_separation = profile.time_separation
    if time_separation is not None:
        blocks.append(_fill(_URGENCY_BY_TIME[time_separation], p, elapsed=time_separation.value))

    situation = profile.current_situation
    if situation is not None and situation.no_contact:
        blocks.append(_INSIGHT_NO_CONTACT)
    else:
        blocks.append(_fill(_INSIGHT_CONTACT, p))

    if profile.reason:
        blocks.append(
            f"Analyzing that the main reason was \"{profile.reason}\", the protocol will "
            f"focus on neutralizing that specific objection in {p.possessive} subconscious."
        )

    blocks.append(_fill(_COPY_CLOSING, p))
    return "\n\n".join(blocks)


def get_situation_summary(profile: Profile) -> List[Tuple[str, str]]:
    """Блок "YOUR SPECIFIC SITUATION" - 4 строки с fallback"""
    return [
        ("Time", profile.get("timeSeparation") or NOT_SPECIFIED),
        ("Who ended it", profile.get("whoEnded") or NOT_SPECIFIED),
        ("Contact", profile.get("currentSituation") or NOT_SPECIFIED),
        ("Commitment", profile.get("commitmentLevel") or NOT_SPECIFIED),
    ]


# =============================================================================
# Эмоциональная валидация
# =============================================================================

_VALIDATION_BY_TIME: Dict[TimeSeparation, str] = {
    TimeSeparation.LESS_THAN_1_WEEK: (
        "Your separation is recent. That means there's still a window of opportunity "
        "where {subject} thinks about you constantly."
    ),
    TimeSeparation.ONE_TO_4_WEEKS: (
        "The time that has passed is crucial. You're in a phase where {subject} still has "
        "fresh memories, but the patterns are changing."
    ),
    TimeSeparation.ONE_TO_6_MONTHS: (
        "The time that has passed is crucial. You're in a phase where {subject} still has "
        "fresh memories, but the patterns are changing."
    ),
    TimeSeparation.MORE_THAN_6_MONTHS: (
        "Time has passed, but that doesn't mean it's impossible. There are psychological "
        "patterns that work even after months."
    ),
}

_VALIDATION_TIME_UNKNOWN = _VALIDATION_BY_TIME[TimeSeparation.ONE_TO_4_WEEKS]

_VALIDATION_BY_WHO_ENDED: Dict[WhoEnded, str] = {
    WhoEnded.SHE_ENDED_IT: (
        "And the fact that {subject} ended it is actually an advantage, because it means "
        "{subject} had to make a difficult decision and that leaves an emotional imprint."
    ),
    WhoEnded.HE_ENDED_IT: (
        "And the fact that {subject} ended it is actually an advantage, because it means "
        "{subject} had to make a difficult decision and that leaves an emotional imprint."
    ),
    WhoEnded.I_ENDED_IT: (
        "And the fact that you ended it completely changes the dynamic. {Subject} might be "
        "waiting for you to make the first move."
    ),
    WhoEnded.MUTUAL_DECISION: "",
}


def get_emotional_validation(profile: Profile) -> str:
    p = pronouns_for(profile)
    time_separation = profile.time_separation
    text = _fill(
        _VALIDATION_BY_TIME[time_separation] if time_separation else _VALIDATION_TIME_UNKNOWN,
        p,
    )
    who_ended = profile.who_ended
    if who_ended is not None and _VALIDATION_BY_WHO_ENDED[who_ended]:
        text = f"{text} {_fill(_VALIDATION_BY_WHO_ENDED[who_ended], p)}"
    return text


_INSIGHT_BY_SITUATION: Dict[CurrentSituation, str] = {
    CurrentSituation.NO_CONTACT: (
        "No contact can be strategic, but it can also be creating distance. You need to "
        "know WHEN to break it."
    ),
    CurrentSituation.IGNORING_ME: (
        "If {subject} ignores you, there's a specific psychological reason. It's not "
        "personal, it's a defense mechanism we can reverse."
    ),
    CurrentSituation.BLOCKED: (
        "Being blocked seems definitive, but it's an extreme emotional reaction that "
        "indicates there are still strong feelings."
    ),
    CurrentSituation.ONLY_NECESSARY_TOPICS: (
        "Minimal communication is a sign that {subject} is building emotional barriers, "
        "but still keeps a channel open."
    ),
    CurrentSituation.WE_TALK_SOMETIMES: (
        "Occasional communication is a golden opportunity. You're in the perfect phase to "
        "apply the protocol."
    ),
    CurrentSituation.WE_ARE_FRIENDS: (
        "\"Friendship\" after a breakup is an emotional minefield. It can be your biggest "
        "advantage or your worst enemy."
    ),
    CurrentSituation.INTIMATE_ENCOUNTERS: (
        "Intimate encounters indicate that physical attraction is still alive, but the "
        "deep emotional connection is missing."
    ),
}

_INSIGHT_SITUATION_UNKNOWN = (
    "Every contact scenario requires a different protocol. Your answers define exactly "
    "which one applies to you."
)


def get_situation_insight(profile: Profile) -> str:
    situation = profile.current_situation
    if situation is None:
        return _INSIGHT_SITUATION_UNKNOWN
    return _fill(_INSIGHT_BY_SITUATION[situation], pronouns_for(profile))


# =============================================================================
# Phase 3: окно 72 часа
# =============================================================================

_WINDOW_72_COPY = """It doesn't matter if you separated 3 days ago or 3 months ago.

Here's the truth that behavioral psychologists discovered:

The human brain operates in 72-hour cycles.

Every time you take a STRATEGIC ACTION, {possessive} brain enters a new 72-hour cycle where everything can change.

—

Here's what's crucial:

In each of these 3 phases, there are CORRECT and INCORRECT actions.

✅ If you act correctly in each phase, {object} seeks you out.

❌ If you act incorrectly, {possessive} brain erases the attraction.

—

Your personalized plan reveals EXACTLY what to do in each phase."""


def get_window_72_copy(gender) -> str:
    return _fill(_WINDOW_72_COPY, pronouns_for(gender))


PHASE_WINDOWS: Dict[int, str] = {1: "0-24h", 2: "24-48h", 3: "48-72h"}

_PHASE_TEXTS: Dict[int, str] = {
    1: """{Subject} receives the first signal that something has changed in you.

{Subject}'s brain abandons "relief mode" and activates "curiosity mode".

{Subject} starts to wonder: "What's happening with {user_object}?"

⚠️ DANGER: If you act incorrectly here, you confirm that {subject} made the right decision.""",
    2: """{Subject} starts to re-evaluate the memories {subject} had "archived".

Oxytocin (the attachment hormone) is reactivated.

The good moments that {subject} had "forgotten" come back to {object_mind} mind.

⚠️ DANGER: If you push too hard, {subject} closes the cycle and blocks you permanently.""",
    3: """{Subject} feels the need to "close the cycle" definitively.

{Subject}'s brain seeks emotional resolution.

This is where you reappear strategically with the Reconnection Protocol.

⚠️ DANGER: 87% of people lose their ex in this phase for not knowing what to do.""",
}


def get_phase_text(gender, phase: int) -> str:
    """Текст одной из трёх фаз окна 72 часа (phase в 1..3)"""
    if phase not in _PHASE_TEXTS:
        raise ValueError(f"Unknown 72-hour phase: {phase}")
    p = pronouns_for(gender)
    return _fill(_PHASE_TEXTS[phase], p, object_mind=p.possessive)


def get_phase_heading(phase: int) -> str:
    if phase not in PHASE_WINDOWS:
        raise ValueError(f"Unknown 72-hour phase: {phase}")
    return f"PHASE {phase} ({PHASE_WINDOWS[phase]})"


# =============================================================================
# Offer
# =============================================================================

def get_features(gender) -> List[str]:
    p = pronouns_for(gender)
    return [
        f"📱 MODULE 1: How to Talk to {p.Object} (Days 1-7)",
        f"👥 MODULE 2: How to Meet {p.Object} (Days 8-14)",
        f"❤️ MODULE 3: How to Win {p.object} Back (Days 15-21)",
        f"🚨 MODULE 4: Emergency Protocol (If {p.subject} is with someone else)",
        "⚡ Special Guide: The 3 Phases of 72 Hours",
        "🎯 Bonuses: Conversation Scripts + Action Plans",
        "✅ Guarantee: 30 days or your money back",
    ]


@dataclass(frozen=True)
class ValueItem:
    label: str
    price: Optional[int]   # None = FREE

    @property
    def price_label(self) -> str:
        return "FREE" if self.price is None else f"${self.price}"


def get_value_breakdown(gender) -> List[ValueItem]:
    """Блок "WHAT YOU GET TODAY" с ценами модулей"""
    p = pronouns_for(gender)
    return [
        ValueItem(f"📱 Module 1: How To Talk To {p.Object}", 27),
        ValueItem("👥 Module 2: How To Meet Up", 27),
        ValueItem(f"❤️ Module 3: How To Win {p.Object} Back", 47),
        ValueItem("🚨 Module 4: Emergency Protocol", 37),
        ValueItem("⚡ 72-Hour Special Guide", 27),
        ValueItem("🎯 Bonus: Scripts + Action Plans", None),
    ]


def get_total_value(gender) -> int:
    return sum(item.price or 0 for item in get_value_breakdown(gender))


GUARANTEE_TITLE = "IRONCLAD 30-DAY GUARANTEE"
GUARANTEE_TEXT = (
    "If in 30 days you don't see concrete results in your reconnection, we refund 100% "
    "of your money, no questions asked, no hassle."
)
GUARANTEE_POINTS = ("ZERO risk for you", "Refund in 24-48 hours", "No complications")


# =============================================================================
# Dialogue helpers
# =============================================================================

def get_acknowledgement(question: Question, gender) -> str:
    """Подтверждение после ответа; вариант по полу, если пол уже известен"""
    if gender is None:
        return question.response
    return question.response_for(resolve_gender(gender))


def get_question_options(question: Question, profile: Profile) -> Tuple[str, ...]:
    """Опции вопроса на момент показа (вариант по полу, если пол задан)"""
    return question.options_for(profile.gender)


def has_unresolved_markers(text: str) -> bool:
    return bool(UNRESOLVED_MARKER.search(text))


_require_exhaustive(_INTRO_BY_WHO_ENDED, WhoEnded, "intro")
_require_exhaustive(_URGENCY_BY_TIME, TimeSeparation, "urgency")
_require_exhaustive(_VALIDATION_BY_TIME, TimeSeparation, "validation")
_require_exhaustive(_VALIDATION_BY_WHO_ENDED, WhoEnded, "validation")
_require_exhaustive(_INSIGHT_BY_SITUATION, CurrentSituation, "situation insight")
_require_exhaustive(PRONOUNS, Gender, "pronouns")
