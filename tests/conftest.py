"""
Pytest configuration and fixtures.
"""

import os

# Settings require a secret key; tests sign their own tokens with it.
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")

from typing import AsyncGenerator, Dict

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from backend.app.main import app
from backend.app.core.database import Base, build_engine, get_db, get_session_factory
from backend.app.core.resilience import llm_circuit_breaker
from backend.app.core.security import Role
from backend.app.models.user_orm import AppUserORM
from backend.app.services.analysis_service import get_analysis_service
from backend.app.services.auth_service import hash_password
from backend.app.services.promotion import CandidatePromotionManager
from backend.app.services.record_service import RecordService
from backend.app.services.workflow import WorkflowController
from tests.data.rcfa_test_data import FakeAnalysisService, actor_for, sample_intake


@pytest.fixture(scope="function")
async def engine(tmp_path):
    """
    File-backed SQLite per test. Each session gets its own connection so
    concurrent transactions really contend for the write lock.
    """
    test_engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'rcfa_test.db'}", poolclass=NullPool)
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    """Returns the session factory for testing."""
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture(scope="function")
async def users(session_factory) -> Dict[str, AppUserORM]:
    """Owner, a second user, an admin, and users that may not own anything."""
    rows = {
        "owner": AppUserORM(email="owner@plant.example", display_name="Olivia Owner", role=Role.USER, status="active"),
        "other": AppUserORM(email="other@plant.example", display_name="Oscar Other", role=Role.USER, status="active"),
        "admin": AppUserORM(
            email="admin@plant.example", display_name="Ada Admin", role=Role.ADMIN, status="active",
            hashed_password=hash_password("admin-pass"),
        ),
        "pending": AppUserORM(email="pending@plant.example", display_name="Pat Pending", role=Role.USER, status="pending_approval"),
        "inactive": AppUserORM(email="gone@plant.example", display_name="Ian Inactive", role=Role.USER, status="inactive"),
    }
    async with session_factory() as session, session.begin():
        session.add_all(rows.values())
    return rows


@pytest.fixture(scope="function")
def fake_analysis() -> FakeAnalysisService:
    return FakeAnalysisService()


@pytest.fixture(autouse=True)
def reset_circuit_breaker():
    llm_circuit_breaker.reset()
    yield
    llm_circuit_breaker.reset()


@pytest.fixture(scope="function")
def records(session_factory) -> RecordService:
    return RecordService(session_factory)


@pytest.fixture(scope="function")
def workflow(session_factory, fake_analysis) -> WorkflowController:
    return WorkflowController(session_factory, analysis_service=fake_analysis)


@pytest.fixture(scope="function")
def promotion(session_factory) -> CandidatePromotionManager:
    return CandidatePromotionManager(session_factory)


@pytest.fixture(scope="function")
async def draft_record(records, users):
    return await records.create_record(sample_intake(), actor_for(users["owner"]))


@pytest.fixture(scope="function")
async def investigating_record(workflow, draft_record, users):
    """A record moved to investigation by the AI start, with questions and candidates."""
    return await workflow.start_with_ai(draft_record.id, actor_for(users["owner"]))


@pytest.fixture(scope="function")
async def client(session_factory, fake_analysis) -> AsyncGenerator[AsyncClient, None]:
    """
    Test client with the session factory and analysis collaborator overridden.
    Authentication is real: tests send tokens signed by create_access_token.
    """
    async def override_get_db():
        async with session_factory() as session:
            yield session
            await session.commit()

    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_analysis_service] = lambda: fake_analysis

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()
