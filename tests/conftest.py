"""
Shared pytest fixtures для тестов воронки.

Provides fixtures for:
- Виртуальные часы (ManualScheduler)
- In-memory storage и AnswerStore
- Аналитику с записью событий (RecordingSink + TrackingGuard + FunnelTracker)
- Сброс feature flag overrides после каждого теста
- Готовые движки диалога и result-воронки
"""

import random

import pytest

from src.analytics import FunnelTracker, RecordingSink, TrackingGuard
from src.answer_store import AnswerStore, reset_answer_store
from src.dialogue import DialogueEngine
from src.embeds import VideoEmbedRegistry
from src.feature_flags import flags
from src.funnel import FunnelPhaseController
from src.logger import logger
from src.models import Gender
from src.scheduler import ManualScheduler
from src.storage import MemoryStorage


# =============================================================================
# Isolation
# =============================================================================

@pytest.fixture(autouse=True)
def _isolate_global_state():
    """Overrides флагов и контекст логгера не протекают между тестами"""
    yield
    flags.clear_all_overrides()
    logger.clear_session()
    logger.clear_context()
    reset_answer_store()


# =============================================================================
# Core fixtures
# =============================================================================

@pytest.fixture
def scheduler():
    """Виртуальные часы, стартуют с 0"""
    return ManualScheduler()


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def store(storage):
    return AnswerStore(storage)


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def guard(sink):
    guard = TrackingGuard()
    guard.init(sink)
    yield guard
    guard.teardown()


@pytest.fixture
def tracker(guard):
    return FunnelTracker(guard)


@pytest.fixture
def mounts():
    """Список смонтированных media id (в порядке монтирования)"""
    return []


@pytest.fixture
def embeds(mounts):
    return VideoEmbedRegistry(mount=mounts.append)


# =============================================================================
# Engines
# =============================================================================

@pytest.fixture
def dialogue(scheduler, store, tracker):
    engine = DialogueEngine(scheduler, store, tracker=tracker)
    yield engine
    engine.close()


@pytest.fixture
def funnel_factory(scheduler, store, storage, tracker, embeds):
    """Фабрика FunnelPhaseController с общими зависимостями"""
    created = []

    def _create(**kwargs):
        params = dict(tracker=tracker, embeds=embeds, rng=random.Random(7))
        params.update(kwargs)
        controller = FunnelPhaseController(scheduler, store, storage, **params)
        created.append(controller)
        return controller

    yield _create
    for controller in created:
        controller.close()


@pytest.fixture
def funnel(funnel_factory):
    return funnel_factory()


# =============================================================================
# Profiles
# =============================================================================

MALE_ANSWERS = {
    "gender": Gender.MALE.value,
    "timeSeparation": "1-4 WEEKS",
    "whoEnded": "SHE ENDED IT",
    "relationshipDuration": "1-3 YEARS",
    "currentSituation": "NO CONTACT",
    "exSituation": "SHE'S SINGLE",
    "commitmentLevel": "4 - I WANT IT WITH ALL MY HEART",
}

FEMALE_ANSWERS = {
    "gender": Gender.FEMALE.value,
    "timeSeparation": "MORE THAN 6 MONTHS",
    "whoEnded": "HE ENDED IT",
    "relationshipDuration": "MORE THAN 3 YEARS",
    "currentSituation": "WE TALK SOMETIMES",
    "exSituation": "CASUAL DATING",
    "commitmentLevel": "3 - I WANT IT A LOT",
}


@pytest.fixture
def fill_profile(store):
    """Заполнить профиль ответами (по умолчанию MALE)"""
    def _fill(answers=None):
        for key, value in (answers or MALE_ANSWERS).items():
            store.set(key, value)
        return store.get()
    return _fill


@pytest.fixture
def male_answers():
    return dict(MALE_ANSWERS)


@pytest.fixture
def female_answers():
    return dict(FEMALE_ANSWERS)


@pytest.fixture
def wait_until(scheduler):
    """Двигать виртуальные часы шагами, пока predicate() не станет True"""
    def _wait(predicate, limit=120.0, step=0.05):
        waited = 0.0
        while not predicate():
            if waited >= limit:
                raise AssertionError(f"condition not reached in {limit} s")
            scheduler.advance(step)
            waited += step
        return waited
    return _wait
