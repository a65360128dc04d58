"""
FastAPI application factory.

Wires configuration, logging, the policy store, the Gate and the audit
recorder together. A broken policy (cyclic hierarchy, invalid catalog) raises
ConfigurationFault from ``create_app`` so the process never starts serving
with it.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from agriauth import __version__
from agriauth.api.v1.router import api_router
from agriauth.audit.recorder import AuditRecorder
from agriauth.audit.storage import AuditStorage, InMemoryAuditStorage, JsonLinesAuditStorage
from agriauth.config import AuthzConfig, get_config
from agriauth.config.logging import setup_logging
from agriauth.core.errors import ConfigurationFault
from agriauth.core.policy_store import PolicyStore
from agriauth.middleware.actor import ActorMiddleware, ActorTokenSettings
from agriauth.middleware.gate import Gate, register_exception_handlers, verify_bindings

logger = logging.getLogger(__name__)


def build_policy_store(config: AuthzConfig) -> PolicyStore:
    """Load the configured policy file, or the built-in marketplace policy."""
    path = config.resolve_path(config.policy.path)
    if path is None:
        return PolicyStore.from_policy()
    return PolicyStore.from_file(path)


def build_audit_storage(config: AuthzConfig) -> AuditStorage:
    backend = config.audit.backend
    if backend == "memory":
        return InMemoryAuditStorage()
    if backend == "jsonl":
        return JsonLinesAuditStorage(config.resolve_path(config.audit.path))
    raise ConfigurationFault(f"Unknown audit backend '{backend}'")


def create_app(
    config: Optional[AuthzConfig] = None,
    policy_store: Optional[PolicyStore] = None,
    audit_storage: Optional[AuditStorage] = None,
    token_settings: Optional[ActorTokenSettings] = None,
    configure_logging: bool = True,
) -> FastAPI:
    """Build the service.

    Args:
        config: Service configuration; loaded from YAML when omitted.
        policy_store: Pre-built store (tests); built from config when omitted.
        audit_storage: Audit backend (tests); built from config when omitted.
        token_settings: Actor token verification settings.
        configure_logging: Apply the logging configuration at startup.
    """
    config = config or get_config()
    store = policy_store or build_policy_store(config)
    recorder = AuditRecorder(
        audit_storage or build_audit_storage(config),
        timeout_seconds=config.audit.timeout_seconds,
        retry_attempts=config.audit.retry_attempts,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if configure_logging:
            setup_logging(
                log_level=config.logging.level.upper(),
                log_format=config.logging.format,
                log_file=config.logging.file,
                enable_access_log=config.server.access_log,
            )

        snapshot = store.snapshot()
        logger.info(
            f"Authorization engine ready with {len(snapshot.graph.roles)} roles "
            f"and {len(snapshot.catalog)} permissions"
        )
        verify_bindings(app)

        yield

        await recorder.drain()

    app = FastAPI(
        title="AgriLink Authorization Service",
        description="Role/permission authorization and audit trail for marketplace operations",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.config = config
    app.state.policy_store = store
    app.state.gate = Gate(store)
    app.state.audit_recorder = recorder

    app.add_middleware(ActorMiddleware, settings=token_settings)
    register_exception_handlers(app)
    app.include_router(api_router)

    return app
