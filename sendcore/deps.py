from __future__ import annotations
"""Common FastAPI dependency helpers.

Authentication lives in front of this service; by the time a request arrives the caller's
business has been resolved and is forwarded in the `X-Business-Id` header. Every handler
scopes its reads and writes to that business.
"""
from fastapi import Header, HTTPException, Request

from sendcore.logging import set_log_business
from sendcore.services.factory import Services


async def business_scope(x_business_id: str | None = Header(default=None)) -> str:
    """Return the calling business id, or 401 when the gateway did not supply one."""
    business_id = (x_business_id or "").strip()
    if not business_id:
        raise HTTPException(status_code=401, detail="Business context required")
    set_log_business(business_id)
    return business_id


def get_services(request: Request) -> Services:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Service not initialised")
    return services


__all__ = ["business_scope", "get_services"]
