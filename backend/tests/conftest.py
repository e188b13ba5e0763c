"""
Shared fixtures: row factories and an async session factory double.
"""

import uuid
from datetime import date, timedelta
from typing import Any, Dict
from unittest.mock import AsyncMock, MagicMock

import pytest

from job_recommender.schemas import ScoredJobPost, ScoredJobRow


def make_row(**overrides: Any) -> ScoredJobRow:
    """A search row that clears the quality floor unless overridden."""
    values: Dict[str, Any] = {
        "id": str(uuid.uuid4()),
        "title": "Software Engineer",
        "company_name": "Initech",
        "location": "London",
        "posted_at": date.today() - timedelta(days=20),
        "description_text": "Build services in Python.",
        "employment_type": "full-time",
        "title_similarity": 0.2,
        "relevance_score": 20.0,
    }
    values.update(overrides)
    return ScoredJobRow(**values)


def make_job(**overrides: Any) -> ScoredJobPost:
    values: Dict[str, Any] = {
        "id": str(uuid.uuid4()),
        "title": "Software Engineer",
        "company_name": "Initech",
        "description_text": "Build services in Python.",
        "relevance_score": 20.0,
        "match_reasons": ["General match"],
        "skill_match_count": 0,
        "title_similarity": 0.2,
    }
    values.update(overrides)
    return ScoredJobPost(**values)


class FakeSessionFactory:
    """Stands in for async_sessionmaker; every call yields the same session mock."""

    def __init__(self, session):
        self.session = session
        self.calls = 0

    def __call__(self):
        self.calls += 1
        return self

    async def __aenter__(self):
        return self.session

    async def __aexit__(self, exc_type, exc, tb):
        return False


@pytest.fixture
def session():
    session = AsyncMock()
    session.add = MagicMock()
    return session


@pytest.fixture
def session_factory(session):
    return FakeSessionFactory(session)
