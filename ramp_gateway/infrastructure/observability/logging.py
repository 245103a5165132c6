"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict
from pythonjsonlogger import jsonlogger


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def __init__(self, *args, service: str = "ramp-gateway", **kwargs):
        super().__init__(*args, **kwargs)
        self.service = service

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = self.service


def setup_logging(level: str = "INFO", service: str = "ramp-gateway") -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    # JSON handler for stdout
    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s",
        service=service,
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_transition(
    request_id: str,
    transaction_id: str,
    action: str,
    status: str,
    duration_ms: float,
) -> None:
    """Log structured lifecycle outcome for analysis"""
    logging.info(
        "Lifecycle action completed",
        extra={
            "request_id": request_id,
            "transaction_id": transaction_id,
            "step": action,
            "status": status,
            "duration_ms": duration_ms,
        },
    )


def log_validation(request_id: str, address: str, token: str, can_proceed: bool, failure: str | None) -> None:
    """Log wallet validation outcome; failure distinguishes outages from shortfalls"""
    logging.info(
        "Wallet validation completed",
        extra={
            "request_id": request_id,
            "address": address,
            "token": token,
            "step": "wallet_validation",
            "can_proceed": can_proceed,
            "failure": failure,
        },
    )
