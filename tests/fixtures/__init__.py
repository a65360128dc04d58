"""Test fixtures for the authorization service tests."""

from typing import Callable, Dict, List

import pytest
from fastapi.testclient import TestClient

from agriauth.audit.models import AuditEntry, AuditPage, AuditQuery
from agriauth.audit.recorder import AuditRecorder
from agriauth.audit.storage import AuditStorage, InMemoryAuditStorage
from agriauth.config import AuthzConfig
from agriauth.config.policy import PolicyDocument
from agriauth.core.actor import Actor
from agriauth.core.errors import AuditWriteFailure
from agriauth.core.policy_store import PolicyStore
from agriauth.main import create_app
from agriauth.middleware.actor import ActorTokenSettings, create_actor_token

TEST_JWT_SECRET = "test-secret-key-long-enough-for-hmac-sha256-signing"


class FailingAuditStorage(AuditStorage):
    """Storage whose writes always fail; reads return nothing."""

    def __init__(self, error: Exception = None):
        self.error = error or AuditWriteFailure("disk full")
        self.attempts: List[AuditEntry] = []

    async def append(self, entry: AuditEntry) -> AuditEntry:
        self.attempts.append(entry)
        raise self.error

    async def query(self, query: AuditQuery) -> AuditPage:
        return AuditPage(entries=[], total=0, page=query.page, limit=query.limit)

    async def count(self) -> int:
        return 0


@pytest.fixture
def policy_document() -> PolicyDocument:
    """The built-in marketplace policy."""
    return PolicyDocument.default()


@pytest.fixture
def policy_store(policy_document) -> PolicyStore:
    return PolicyStore.from_policy(policy_document)


@pytest.fixture
def engine(policy_store):
    return policy_store.engine


@pytest.fixture
def audit_storage() -> InMemoryAuditStorage:
    return InMemoryAuditStorage()


@pytest.fixture
def audit_recorder(audit_storage) -> AuditRecorder:
    return AuditRecorder(audit_storage, timeout_seconds=1.0)


@pytest.fixture
def admin_actor() -> Actor:
    return Actor(id="admin-1", role="admin", location="Nairobi")


@pytest.fixture
def token_settings() -> ActorTokenSettings:
    return ActorTokenSettings(secret_key=TEST_JWT_SECRET)


@pytest.fixture
def auth_headers(token_settings) -> Callable[..., Dict[str, str]]:
    """Build an Authorization header for an actor with the given role."""
    def _headers(role: str, actor_id: str = None) -> Dict[str, str]:
        actor = Actor(id=actor_id or f"{role}-1", role=role)
        token = create_actor_token(actor, token_settings)
        return {"Authorization": f"Bearer {token}", "User-Agent": "pytest-client"}

    return _headers


@pytest.fixture
def app_config() -> AuthzConfig:
    return AuthzConfig()


@pytest.fixture
def app(app_config, policy_store, audit_storage, token_settings):
    """Service app wired to in-memory collaborators."""
    return create_app(
        config=app_config,
        policy_store=policy_store,
        audit_storage=audit_storage,
        token_settings=token_settings,
        configure_logging=False,
    )


@pytest.fixture
def client(app):
    """Create a test client for the app (lifespan included)."""
    with TestClient(app) as test_client:
        yield test_client
