"""Pytest configuration for all tests."""

from datetime import timedelta
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from systemrpg.core.config import Settings
from systemrpg.core.logging import get_logger
from systemrpg.infrastructure.auth.blacklist_store import BlacklistStore
from systemrpg.infrastructure.auth.signing_keys import (
    encode_key_pair,
    generate_rsa_private_key,
    load_signing_keys,
)
from systemrpg.infrastructure.auth.token_codec import TokenCodec
from systemrpg.infrastructure.auth.token_types import Role, TokenType
from systemrpg.infrastructure.auth.token_validator import TokenValidator
from systemrpg.infrastructure.persistence.database import DatabaseManager
from systemrpg.infrastructure.services.auth_service import AuthService

logger = get_logger(__name__)

TEST_JWT_SECRET = "test-secret-key-for-systemrpg-tests-0123456789"


def make_settings(**overrides) -> Settings:
    """Build settings for tests, ignoring any local .env file."""
    values = {
        "environment": "testing",
        "database_url": "sqlite+aiosqlite:///:memory:",
        "jwt_algorithm": "HS256",
        "jwt_secret": TEST_JWT_SECRET,
        "blacklist_prune_enabled": False,
        "blacklist_retry_backoff_seconds": 0,
        "log_level": "WARNING",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture(scope="session")
def rsa_key_pair() -> tuple[str, str]:
    """A base64 DER RSA key pair shared by the whole session."""
    return encode_key_pair(generate_rsa_private_key())


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def rs256_settings(rsa_key_pair) -> Settings:
    private_b64, public_b64 = rsa_key_pair
    return make_settings(
        jwt_algorithm="RS256",
        jwt_rsa_private_key=private_b64,
        jwt_rsa_public_key=public_b64,
    )


@pytest_asyncio.fixture
async def db_manager(settings: Settings) -> AsyncGenerator[DatabaseManager, None]:
    """Database manager over a fresh in-memory SQLite database."""
    db = DatabaseManager(settings)
    await db.create_tables()
    yield db
    await db.drop_tables()
    await db.disconnect()


@pytest.fixture
def codec(settings: Settings) -> TokenCodec:
    return TokenCodec(load_signing_keys(settings))


@pytest.fixture
def blacklist_store(db_manager: DatabaseManager, codec: TokenCodec, settings: Settings) -> BlacklistStore:
    return BlacklistStore(db_manager.session_factory, codec, settings)


@pytest.fixture
def validator(codec: TokenCodec, blacklist_store: BlacklistStore) -> TokenValidator:
    return TokenValidator(codec, blacklist_store)


@pytest.fixture
def auth_service(
    codec: TokenCodec,
    validator: TokenValidator,
    blacklist_store: BlacklistStore,
    settings: Settings,
) -> AuthService:
    return AuthService(codec, validator, blacklist_store, settings=settings)


@pytest.fixture
def issue_token(codec: TokenCodec):
    """Factory issuing tokens with sensible defaults."""

    def _issue(
        subject: str = "gm_alice",
        user_id: str = "user-001",
        token_type: TokenType = TokenType.ACCESS,
        roles: tuple[str, ...] = (Role.USER,),
        ttl: timedelta = timedelta(minutes=15),
    ) -> str:
        return codec.issue(subject, user_id, token_type, roles, ttl)

    return _issue


@pytest.fixture
def app(settings: Settings, db_manager: DatabaseManager):
    """Application wired to the test database and settings."""
    from systemrpg.infrastructure.api.app import create_app

    return create_app(settings=settings, db_manager=db_manager)


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client for the application."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
def access_token(issue_token) -> str:
    return issue_token()


@pytest.fixture
def admin_token(issue_token) -> str:
    return issue_token(subject="master_bob", user_id="admin-001", roles=(Role.ADMIN, Role.USER))


@pytest.fixture
def refresh_token(issue_token) -> str:
    return issue_token(token_type=TokenType.REFRESH, ttl=timedelta(days=7))


@pytest.fixture
def settings_factory():
    """Factory building test settings with overrides."""
    return make_settings
