"""Pytest fixtures for scheduler, store and API tests."""

import os
from collections.abc import AsyncGenerator, Callable, Generator

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite://")

import httpx
import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, delete
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from vocab_srs.api.deps import get_db
from vocab_srs.core.security import create_access_token
from vocab_srs.db.base import Base
from vocab_srs.db.models import ProgressRecord, VocabularyItem
from vocab_srs.main import create_app
from vocab_srs.utils.cache import cache_backend


@pytest.fixture(scope="session")
def db_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(
        bind=engine,
        tables=[VocabularyItem.__table__, ProgressRecord.__table__],
    )
    try:
        yield engine
    finally:
        Base.metadata.drop_all(
            bind=engine,
            tables=[ProgressRecord.__table__, VocabularyItem.__table__],
        )


@pytest.fixture()
def db_session(db_engine) -> Generator[Session, None, None]:
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.rollback()
        db.execute(delete(ProgressRecord))
        db.execute(delete(VocabularyItem))
        db.commit()
        db.close()


@pytest.fixture(autouse=True)
def clear_cache() -> Generator[None, None, None]:
    cache_backend.clear()
    try:
        yield
    finally:
        cache_backend.clear()


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    app = create_app()

    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client


@pytest_asyncio.fixture()
async def async_client(db_session: Session) -> AsyncGenerator[httpx.AsyncClient, None]:
    app = create_app()

    async def override_get_db() -> AsyncGenerator[Session, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


@pytest.fixture()
def auth_headers() -> Callable[..., dict[str, str]]:
    def _headers(learner_id: str = "learner-1") -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(learner_id)}"}

    return _headers


@pytest.fixture()
def vocabulary(db_session: Session) -> list[VocabularyItem]:
    items = [
        VocabularyItem(id="v-inu", word="犬", reading="いぬ", romaji="inu", translation="dog", level=5),
        VocabularyItem(id="v-neko", word="猫", reading="ねこ", romaji="neko", translation="cat", level=5),
        VocabularyItem(id="v-mizu", word="水", reading="みず", romaji="mizu", translation="water", level=5),
        VocabularyItem(
            id="v-taberu", word="食べる", reading="たべる", romaji="taberu", translation="to eat", level=4
        ),
        VocabularyItem(
            id="v-benkyou",
            word="勉強",
            reading="べんきょう",
            romaji="benkyou",
            translation="study",
            level=3,
        ),
    ]
    db_session.add_all(items)
    db_session.commit()
    return items
