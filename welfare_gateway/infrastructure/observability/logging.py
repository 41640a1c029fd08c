"""Structured JSON logging: one JSON object per line on stdout"""

import logging
import sys
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional
from pythonjsonlogger import jsonlogger

audit_logger = logging.getLogger("welfare_gateway.audit")

# Chatty third-party loggers kept at WARNING unless the root level is DEBUG
_QUIET_LOGGERS = ("sqlalchemy.engine", "httpx", "httpcore")


class WelfareJsonFormatter(jsonlogger.JsonFormatter):
    """Adds UTC timestamp, level and the emitting service to every record"""

    def __init__(self, *args, service_name: str = "welfare-gateway", **kwargs):
        super().__init__(*args, **kwargs)
        self.service_name = service_name

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = self.service_name


def setup_logging(level: str = "INFO", service_name: str = "welfare-gateway") -> None:
    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(WelfareJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s", service_name=service_name))
    root.addHandler(handler)

    if root.level > logging.DEBUG:
        for name in _QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)


def _money(amount: Optional[Decimal]) -> Optional[str]:
    return str(amount) if amount is not None else None


def log_transition(
    request_id: str,
    actor_id: str,
    previous_state: str,
    new_state: str,
    track: str,
    approved_amount: Optional[Decimal],
    duration_ms: float,
) -> None:
    """Audit line for a committed state change"""
    audit_logger.info(
        "Request transition committed",
        extra={
            "request_id": request_id,
            "actor_id": actor_id,
            "transition": f"{previous_state}->{new_state}",
            "previous_state": previous_state,
            "new_state": new_state,
            "track": track,
            "approved_amount": _money(approved_amount),
            "duration_ms": round(duration_ms, 2),
        },
    )


def log_ledger_entry(entry_id: str, direction: str, amount: Decimal, category: str, actor_id: str) -> None:
    audit_logger.info(
        "Ledger entry recorded",
        extra={
            "entry_id": entry_id,
            "direction": direction,
            "amount": _money(amount),
            "category": category,
            "actor_id": actor_id,
        },
    )
