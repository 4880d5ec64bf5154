"""
Pytest configuration and shared fixtures.
"""

import pytest
from datetime import date
from pathlib import Path
from typing import Any, Dict, List

from tgjobads.database import get_session, init_database
from tgjobads.models import Ad, PositionLevel, VectorizationModelParams


BASE_AD_TEXT = (
    "Senior Python developer wanted at Acme Fintech. Remote, full time. "
    "Stack: Django, PostgreSQL, Celery, Redis, Docker, Kubernetes. "
    "Salary: $4000-$5500 per month. Responsibilities: design and build "
    "payment services, review code, mentor junior engineers. "
    "Requirements: 5+ years of commercial Python experience, solid SQL, "
    "experience with message queues. #senior #python #remote"
)

OTHER_AD_TEXT = (
    "Ищем frontend разработчика в продуктовую команду. React, TypeScript, "
    "Next.js, офис в Алматы или удалённо. Зарплата от 300 000 тенге в месяц. "
    "Тестовое задание, два собеседования. #middle #frontend #react"
)

THIRD_AD_TEXT = (
    "QA automation engineer for a mobile banking app. Java, Selenium, "
    "Appium, REST Assured. Contract for 6 months, hourly rate $35/hour. "
    "Team of 12 engineers in Belgrade. #qa #automation #junior"
)


@pytest.fixture
def params() -> VectorizationModelParams:
    """Default vectorization parameters."""
    return VectorizationModelParams()


@pytest.fixture
def make_ad():
    """Factory for ads with sensible defaults."""
    def _make(ad_id: str, text: str, day: int = 1, month: int = 3, **kwargs) -> Ad:
        return Ad(id=ad_id, date=date(2025, month, day), text=text, **kwargs)
    return _make


@pytest.fixture
def duplicate_ads(make_ad) -> List[Ad]:
    """Two reposts of the same ad, differing only by a footer, plus two unrelated ads."""
    return [
        make_ad("ad-1", BASE_AD_TEXT, day=1),
        make_ad("ad-2", BASE_AD_TEXT + " apply now!", day=3),
        make_ad("ad-3", OTHER_AD_TEXT, day=2),
        make_ad("ad-4", THIRD_AD_TEXT, day=4),
    ]


@pytest.fixture
def valid_ad_data() -> Dict[str, Any]:
    """Valid ingestion payload."""
    return {
        "id": "ad-100",
        "date": "2025-03-01",
        "text": BASE_AD_TEXT,
        "message_ref": "-1001234567890:42",
    }


@pytest.fixture
def db_path(tmp_path) -> Path:
    """Initialized SQLite database path."""
    path = tmp_path / "data" / "ads.db"
    init_database(path)
    return path


@pytest.fixture
def db_session(db_path):
    """Session on a fresh database."""
    session = get_session(db_path)
    yield session
    session.close()


class FakeClassifier:
    """Classifier double: fixed answers per text fragment, optional failures."""

    def __init__(self, level: PositionLevel = PositionLevel.SENIOR, fail_on=(), error=TimeoutError):
        self.level = level
        self.fail_on = tuple(fail_on)
        self.error = error
        self.calls: List[str] = []

    def classify(self, text: str) -> PositionLevel:
        self.calls.append(text)
        if any(marker in text for marker in self.fail_on):
            raise self.error("upstream timed out")
        return self.level


@pytest.fixture
def fake_classifier() -> FakeClassifier:
    return FakeClassifier()


@pytest.fixture
def make_classifier():
    """Factory for classifier doubles."""
    return FakeClassifier
