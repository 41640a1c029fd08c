"""Signed actor tokens - the identity/authorization provider

Callers prove identity and role with an HS256 token carrying the subject and
its capabilities. The core only ever receives the verified Actor.
"""

from datetime import datetime, timedelta, timezone
from typing import Iterable

from jose import JWTError, jwt

from welfare_gateway.config import settings
from welfare_gateway.domain.exceptions import Unauthorized
from welfare_gateway.domain.models import Actor, Capability


def issue_token(actor_id: str, capabilities: Iterable[Capability], ttl_minutes: int | None = None) -> str:
    """Create a signed token for an authenticated principal"""
    now = datetime.now(timezone.utc)
    ttl = ttl_minutes if ttl_minutes is not None else settings.token_ttl_minutes
    claims = {
        "sub": actor_id,
        "caps": sorted(Capability(c).value for c in capabilities),
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=ttl)).timestamp()),
    }
    return jwt.encode(claims, settings.token_secret_key, algorithm=settings.token_algorithm)


def verify_token(token: str) -> Actor:
    """
    Decode and verify a token.

    Raises:
        Unauthorized: bad signature, expired, or malformed claims
    """
    if not token:
        raise Unauthorized("Missing credentials")
    try:
        claims = jwt.decode(token, settings.token_secret_key, algorithms=[settings.token_algorithm])
    except JWTError as e:
        raise Unauthorized("Invalid or expired credentials") from e

    subject = claims.get("sub")
    if not subject:
        raise Unauthorized("Token carries no subject")
    capabilities = set()
    for raw in claims.get("caps", []):
        try:
            capabilities.add(Capability(raw))
        except ValueError:
            continue  # capabilities this service does not know about
    return Actor(actor_id=str(subject), capabilities=frozenset(capabilities))


def has_capability(actor: Actor, capability: Capability) -> bool:
    return actor.has_capability(capability)


def require_capability(actor: Actor, capability: Capability) -> Actor:
    if not has_capability(actor, capability):
        raise Unauthorized(f"Capability '{capability.value}' required")
    return actor
