# tests/conftest.py
from __future__ import annotations

import os
from collections.abc import Callable, Generator, Iterator

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("DATABASE_URL", "sqlite://")

from murmur.core.security import create_access_token
from murmur.core.settings import Settings
from murmur.db.session import Base
from murmur.db.session import get_db as app_get_session
from murmur.main import app as fastapi_app
from murmur.models import Conversation, User
from murmur.services.conversations import ConversationService
from murmur.services.crypto import CryptoService
from murmur.services.presence import PresenceRegistry

TEST_DB_URL = "sqlite://"

_TEST_SETTINGS_INSTANCE = Settings()


@pytest.fixture(scope="session")
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def db_session(engine: Engine) -> Iterator[Session]:
    connection = engine.connect()
    transaction = connection.begin()
    SessionLocal = sessionmaker(
        bind=connection,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )
    session = SessionLocal()
    session.begin_nested()

    @event.listens_for(session, "after_transaction_end")
    def restart_savepoint(sess: Session, trans) -> None:  # pragma: no cover - SQLAlchemy internals
        if trans.nested and not getattr(trans._parent, "nested", False):
            session.begin_nested()

    try:
        yield session
    finally:
        event.remove(session, "after_transaction_end", restart_savepoint)
        session.close()

        if transaction.is_active:
            transaction.rollback()
        connection.close()

        # Ensure each test sees a clean database even if commits occurred.
        with engine.begin() as cleanup_conn:
            for table in reversed(Base.metadata.sorted_tables):
                cleanup_conn.execute(table.delete())


@pytest.fixture(scope="session")
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture(autouse=True)
def override_session_dependency(app: FastAPI, db_session: Session) -> Iterator[None]:
    def _get_session_override() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[app_get_session] = _get_session_override
    try:
        yield
    finally:
        app.dependency_overrides.pop(app_get_session, None)


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Provide a Settings instance aligned with runtime configuration."""
    return _TEST_SETTINGS_INSTANCE


@pytest.fixture(scope="session")
def rsa_keypair() -> tuple[str, str]:
    """A keypair shared across the session; generating RSA keys is slow."""
    return CryptoService.generate_identity_keypair()


@pytest.fixture(scope="session")
def other_rsa_keypair() -> tuple[str, str]:
    return CryptoService.generate_identity_keypair()


@pytest.fixture()
def make_user(db_session: Session) -> Callable[..., User]:
    """Return a factory persisting users with the given display name."""

    def _make_user(display_name: str, public_key: str | None = None) -> User:
        user = User(display_name=display_name, public_key=public_key)
        db_session.add(user)
        db_session.flush()
        db_session.refresh(user)
        return user

    return _make_user


@pytest.fixture()
def test_user(make_user: Callable[..., User], rsa_keypair: tuple[str, str]) -> User:
    """Create and return a persisted test user with a published key."""
    return make_user("Test User", public_key=rsa_keypair[0])


@pytest.fixture()
def other_user(make_user: Callable[..., User], other_rsa_keypair: tuple[str, str]) -> User:
    """Create and return a second persisted user with a published key."""
    return make_user("Other User", public_key=other_rsa_keypair[0])


@pytest.fixture()
def third_user(make_user: Callable[..., User]) -> User:
    """Create a user that has never published a key."""
    return make_user("Third User")


@pytest.fixture()
def auth_token(test_user: User) -> dict[str, str]:
    """Return authorization headers for the primary test user."""
    token = create_access_token(test_user.id)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def other_auth_token(other_user: User) -> dict[str, str]:
    """Return authorization headers for the secondary test user."""
    token = create_access_token(other_user.id)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def third_auth_token(third_user: User) -> dict[str, str]:
    token = create_access_token(third_user.id)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def private_chat(db_session: Session, test_user: User, other_user: User) -> Conversation:
    """Private conversation between the primary and secondary users."""
    conversation, _ = ConversationService(db_session).get_or_create_private(
        test_user.id, other_user.id
    )
    return conversation


@pytest.fixture()
def group_chat(
    db_session: Session,
    test_user: User,
    other_user: User,
    third_user: User,
) -> Conversation:
    """Group administered by the primary user with all three users as members."""
    return ConversationService(db_session).create_group(
        test_user.id,
        [other_user.id, third_user.id],
        name="Test Group",
        description="A group for tests",
    )


@pytest.fixture()
def registry() -> PresenceRegistry:
    """Isolated presence registry."""
    return PresenceRegistry()