"""
Actor resolution middleware.

Authentication itself (credential checks, token issuance) belongs to an
external collaborator. This middleware is the seam where its result enters
the engine: it verifies the bearer token the collaborator issued and puts an
Actor on ``request.state.actor``. A missing or invalid token leaves the actor
unset; the Gate then answers "Authentication required".
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Request
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from starlette.middleware.base import BaseHTTPMiddleware

from agriauth.core.actor import Actor

logger = logging.getLogger(__name__)


class ActorTokenSettings(BaseSettings):
    """Verification settings for actor tokens."""
    model_config = SettingsConfigDict(env_prefix="AGRIAUTH_JWT_")

    secret_key: str = Field(
        default="agrilink-development-secret-change-me-in-production",
        description="Shared secret used to verify actor tokens"
    )
    algorithm: str = Field(default="HS256", description="JWT signing algorithm")
    issuer: str = Field(default="agrilink-auth", description="Expected token issuer")
    audience: str = Field(default="agrilink-admin", description="Expected token audience")
    role_claim: str = Field(default="role", description="Claim carrying the actor's role")


def create_actor_token(actor: Actor, settings: Optional[ActorTokenSettings] = None,
                       expires_minutes: int = 15) -> str:
    """Issue a token for ``actor`` (development and tests)."""
    settings = settings or ActorTokenSettings()
    now = datetime.now(timezone.utc)
    payload = {
        "sub": actor.id,
        settings.role_claim: actor.role,
        "iat": now,
        "exp": now + timedelta(minutes=expires_minutes),
        "iss": settings.issuer,
        "aud": settings.audience,
    }
    if actor.location:
        payload["location"] = actor.location
    return jwt.encode(payload, settings.secret_key, algorithm=settings.algorithm)


def decode_actor_token(token: str, settings: ActorTokenSettings) -> Optional[Actor]:
    """Verify ``token`` and build the Actor, or None if it is not acceptable."""
    try:
        payload = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.algorithm],
            audience=settings.audience,
            issuer=settings.issuer,
        )
    except jwt.ExpiredSignatureError:
        logger.info("Actor token expired")
        return None
    except jwt.InvalidTokenError as e:
        logger.warning(f"Actor token rejected: {e}")
        return None

    subject = payload.get("sub")
    role = payload.get(settings.role_claim)
    if not subject or not role:
        logger.warning("Actor token missing subject or role claim")
        return None

    location = payload.get("location")
    if location is not None and not isinstance(location, str):
        logger.warning("Ignoring non-string location claim in actor token")
        location = None

    return Actor(id=str(subject), role=str(role), location=location)


class ActorMiddleware(BaseHTTPMiddleware):
    """Attach the authenticated Actor (or None) to every request."""

    def __init__(self, app, settings: Optional[ActorTokenSettings] = None):
        super().__init__(app)
        self.settings = settings or ActorTokenSettings()

    async def dispatch(self, request: Request, call_next):
        request.state.actor = None

        auth_header = request.headers.get("Authorization")
        if auth_header and auth_header.startswith("Bearer "):
            request.state.actor = decode_actor_token(auth_header[7:], self.settings)

        return await call_next(request)


def get_request_actor(request: Request) -> Optional[Actor]:
    return getattr(request.state, "actor", None)


def get_client_ip(request: Request) -> str:
    """Extract client IP address from request."""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip

    if request.client:
        return request.client.host

    return "unknown"


def get_user_agent(request: Request) -> str:
    """Extract user agent from request."""
    return request.headers.get("User-Agent", "unknown")
