"""structlog setup shared by the whole send core, plus one helper per domain event.

Repositories, the provider adapter and the orchestrator import from here rather than from
`sendcore.main`, so this module must not import models, services or the FastAPI app.
Request-scoped fields (request id, business id, provider) ride on contextvars and are merged
into every event.
"""
from __future__ import annotations

import logging
import contextvars
import os
import structlog
from typing import Any

# Request-scoped fields
_request_id_var = contextvars.ContextVar("request_id", default=None)
_business_id_var = contextvars.ContextVar("business_id", default=None)
_provider_var = contextvars.ContextVar("provider", default=None)

structlog_context = {
    "request_id": _request_id_var,
    "business_id": _business_id_var,
    "provider": _provider_var,
}


def _add_context(logger, method_name: str, event_dict: dict[str, Any]):  # noqa: D401
    # Explicit event kwargs win over the ambient request context
    for key, var in structlog_context.items():
        value = var.get()
        if value is not None:
            event_dict.setdefault(key, value)
    return event_dict


# One-time structlog configuration (idempotent)
if not getattr(structlog, "_SENDCORE_CONFIGURED", False):
    _level = getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO)
    logging_logger = logging.getLogger("sendcore")
    logging_logger.setLevel(_level)
    if not logging_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))
        logging_logger.addHandler(handler)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            _add_context,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(_level),
        cache_logger_on_first_use=True,
    )
    structlog._SENDCORE_CONFIGURED = True  # type: ignore[attr-defined]

slog = structlog.get_logger()


# Public helper functions
def set_log_request(request_id: str | None):
    _request_id_var.set(request_id)

def set_log_business(business_id: str | None):
    _business_id_var.set(business_id)

def set_log_provider(provider: str | None):
    _provider_var.set(provider)

# Event helpers reused across modules

def log_send_rejected(business_id: str, reason: str, detail: str | None = None, **extra):
    slog.info("send_rejected", business_id=business_id, reason=reason, detail=detail, **extra)

def log_message_created(message_id: str, business_id: str, cost: int, **extra):
    slog.info("message_created", message_id=message_id, business_id=business_id, cost=cost, **extra)

def log_provider_outcome(client_message_id: str, success: bool, category: str, error_code: str | None = None, **extra):
    slog.info("provider_outcome", client_message_id=client_message_id, success=success, category=category, error_code=error_code, **extra)

def log_message_finalized(message_id: str, status: str, charged: bool, applied: bool, **extra):
    slog.info("message_finalized", message_id=message_id, status=status, charged=charged, applied=applied, **extra)

def log_credits_posted(business_id: str, account_type: str, transaction_type: str, amount: int, balance: int, **extra):
    slog.info("credits_posted", business_id=business_id, account_type=account_type, transaction_type=transaction_type, amount=amount, balance=balance, **extra)

def log_ledger_inconsistency(message_id: str, business_id: str, status: str, cost: int, **extra):
    """Operational alert: message finalized but its charge could not be posted."""
    slog.error("ledger_inconsistency", message_id=message_id, business_id=business_id, status=status, cost=cost, **extra)

def log_otp_issued(otp_id: str, business_id: str, message_id: str, expires_at: str, **extra):
    slog.info("otp_issued", otp_id=otp_id, business_id=business_id, message_id=message_id, expires_at=expires_at, **extra)

def log_otp_verified(business_id: str, verified: bool, **extra):
    slog.info("otp_verified", business_id=business_id, verified=verified, **extra)
