"""Dependency injection for FastAPI endpoints"""

from fastapi import BackgroundTasks, Header, HTTPException, Request, status

from welfare_gateway.api.errors import to_http_exception
from welfare_gateway.domain.exceptions import Unauthorized
from welfare_gateway.domain.models import Actor
from welfare_gateway.infrastructure.auth.tokens import verify_token
from welfare_gateway.infrastructure.clients.notifier import BackgroundNotifier, NotifierClient


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_current_actor(authorization: str | None = Header(None)) -> Actor:
    """Resolve the caller from a signed bearer token; nothing else is accepted"""
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "Unauthorized", "remark": "Bearer token required"},
        )
    try:
        return verify_token(authorization[7:].strip())
    except Unauthorized as e:
        raise to_http_exception(e)


def get_notifier_client() -> NotifierClient:
    """Provide notifier webhook client instance"""
    return NotifierClient()


def get_notifier(background_tasks: BackgroundTasks) -> BackgroundNotifier:
    return BackgroundNotifier(background_tasks, get_notifier_client())
