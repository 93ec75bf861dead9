"""
Shared fixtures: a throwaway SQLite database per test, seed helpers,
and a mock generative-text provider.
"""
from __future__ import annotations

from datetime import date
from typing import Callable, Optional

import httpx
import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from app.models.renewal import Base, Product, UserProfile
from app.schemas.assessment import AssessmentSubmission
from app.workflow.roles import Caller, Role
from app.workflow.synthesis import SummaryClient

SUMMARY_TEXT = "Staff broadly support renewal; usage is daily across Grade 6-8 math."


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'renewals.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def sessionmaker(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def db(sessionmaker):
    async with sessionmaker() as session:
        yield session


@pytest.fixture
async def product(db) -> Product:
    return await make_product(db)


async def make_product(db, **overrides) -> Product:
    kwargs = {
        "product": "IXL Math",
        "vendor": "IXL Learning",
        "category": "Mathematics",
        "division": "Middle School",
        "renewal_date": date(2026, 8, 1),
        "annual_cost": 12_500.0,
        "licenses": 400,
        "status": "active",
    }
    kwargs.update(overrides)
    product = Product(**kwargs)
    db.add(product)
    await db.commit()
    return product


async def make_profile(db, email: str, roles: list[str], is_active: bool = True) -> UserProfile:
    profile = UserProfile(email=email, name=email.split("@")[0], roles=roles, is_active=is_active)
    db.add(profile)
    await db.commit()
    return profile


def make_submission(product_id: str, **overrides) -> AssessmentSubmission:
    """Baseline valid submission, then override specific fields."""
    kwargs = {
        "product_id": product_id,
        "submitter_email": "jlee@sas.edu.sg",
        "submitter_name": "Jordan Lee",
        "submitter_departments": ["Mathematics"],
        "submitter_division": "Middle School",
        "recommendation": "renew",
        "justification": "Students use it daily for differentiated practice.",
        "usage_frequency": "Daily",
        "primary_use_cases": "Homework and intervention",
    }
    kwargs.update(overrides)
    return AssessmentSubmission(**kwargs)


STAFF = Caller(email="staff@sas.edu.sg", role=Role.STAFF)
REVIEWER = Caller(email="tic@sas.edu.sg", role=Role.REVIEWER, name="Taylor TIC")
APPROVER = Caller(email="director@sas.edu.sg", role=Role.APPROVER, name="Dana Director")
ADMIN = Caller(email="admin@sas.edu.sg", role=Role.ADMIN, name="Ari Admin")


def make_summary_client(
    handler: Optional[Callable[[httpx.Request], httpx.Response]] = None,
    api_key: str = "test-key",
) -> SummaryClient:
    def ok(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"content": [{"type": "text", "text": SUMMARY_TEXT}]})

    return SummaryClient(
        api_key=api_key,
        api_url="https://llm.test/v1/messages",
        model="test-model",
        max_tokens=1000,
        timeout_seconds=5.0,
        transport=httpx.MockTransport(handler or ok),
    )
