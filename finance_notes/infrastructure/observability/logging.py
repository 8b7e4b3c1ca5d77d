"""Structured JSON logging for production observability"""

import logging
import sys
from typing import Any, Dict
from pythonjsonlogger import jsonlogger

from finance_notes.domain.validation import mask_identity
from finance_notes.utils.date_utils import utcnow


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def __init__(self, *args: Any, service_name: str = "finance-notes", **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.service_name = service_name

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = utcnow().isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = self.service_name


def setup_logging(level: str = "INFO", service_name: str = "finance-notes") -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    # JSON handler for stdout
    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s",
        service_name=service_name,
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_transaction_closed(transaction_id: str, mode: str, caller_identity: str) -> None:
    """Log a pending -> closed transition"""
    logging.info(
        "Transaction closed",
        extra={
            "transaction_id": transaction_id,
            "step": "transaction_closed",
            "close_mode": mode,
            "caller": mask_identity(caller_identity),
        },
    )


def log_otp_event(step: str, subject: str, purpose: str, provider: str, outcome: str, duration_ms: float) -> None:
    """Log an OTP generate/verify outcome without ever including the code"""
    logging.info(
        "OTP %s %s",
        step,
        outcome,
        extra={
            "step": f"otp_{step}",
            "subject": mask_identity(subject),
            "purpose": purpose,
            "provider": provider,
            "outcome": outcome,
            "duration_ms": duration_ms,
        },
    )
