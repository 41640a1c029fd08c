"""Notifier webhook client with exponential backoff retry logic"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Protocol

import httpx
from fastapi import BackgroundTasks

from welfare_gateway.config import settings
from welfare_gateway.infrastructure.observability.metrics import (
    notification_failure_counter,
    notification_latency_histogram,
)

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def notify(self, user_id: str, event: str, payload: Dict[str, Any]) -> None: ...


class NotifierClient:
    """Client for sending notification events to the delivery service"""

    def __init__(self, webhook_url: str | None = None):
        self.webhook_url = webhook_url or settings.notifier_webhook_url
        self.max_retries = settings.webhook_max_retries
        self.backoff_base = settings.webhook_backoff_base
        self.timeout = settings.http_timeout_seconds

    async def send_event(self, payload: Dict[str, Any]) -> None:
        """
        Send a notification event with retry logic.

        Retry strategy:
        - Exponential backoff: 1s, 2s, 4s, 8s (base * 2^(attempt-1))
        - Retries on 5xx errors and network failures
        - Raises after the last attempt
        """
        attempt = 0
        async with httpx.AsyncClient() as client:
            while attempt < self.max_retries:
                try:
                    with notification_latency_histogram.time():
                        response = await client.post(
                            self.webhook_url,
                            json=payload,
                            timeout=self.timeout,
                        )
                        response.raise_for_status()
                        return

                except (httpx.HTTPStatusError, httpx.RequestError):
                    attempt += 1
                    if attempt >= self.max_retries:
                        raise

                    backoff = self.backoff_base * (2 ** (attempt - 1))
                    await asyncio.sleep(backoff)

    async def deliver(self, payload: Dict[str, Any]) -> None:
        """Background-task entry point: failures are logged, never raised"""
        try:
            await self.send_event(payload)
        except Exception as e:
            notification_failure_counter.inc()
            logger.warning(
                f"Notification delivery failed: {e}",
                extra={"event": payload.get("event"), "user_id": payload.get("user_id")},
            )


class BackgroundNotifier:
    """Queues notifications to run after the HTTP response is sent"""

    def __init__(self, background_tasks: BackgroundTasks, client: Optional[NotifierClient] = None):
        self.background_tasks = background_tasks
        self.client = client or NotifierClient()

    def notify(self, user_id: str, event: str, payload: Dict[str, Any]) -> None:
        self.background_tasks.add_task(
            self.client.deliver,
            {
                "event": event,
                "user_id": user_id,
                "payload": payload,
                "created_at": datetime.now(timezone.utc).isoformat(),
            },
        )


class NullNotifier:
    """Used when no delivery channel is wired (scripts, reconciliation jobs)"""

    def notify(self, user_id: str, event: str, payload: Dict[str, Any]) -> None:
        logger.debug("Notification dropped", extra={"event": event, "user_id": user_id})
