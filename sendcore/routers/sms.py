from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID as UUID_t

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from sendcore.deps import business_scope, get_services
from sendcore.services.factory import Services
from sendcore.services.send_service import SendAccepted, SendFailed, SendRejected, SendResult

router = APIRouter(prefix="/sms", tags=["sms"])


class SendSmsIn(BaseModel):
    recipient: Optional[str] = None
    message: Optional[str] = None
    sender_id: Optional[str] = None
    template_id: Optional[str] = None


class BulkSendSmsIn(BaseModel):
    recipients: List[str] = Field(default_factory=list)
    message: Optional[str] = None
    sender_id: Optional[str] = None
    template_id: Optional[str] = None


class MessageDetailOut(BaseModel):
    id: UUID_t
    message_id: str
    recipient: str
    message: str
    status: str
    cost: int
    external_id: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    created_at: datetime
    finalized_at: Optional[datetime] = None
    delivery_status: Optional[str] = None
    delivery_error: Optional[str] = None
    segments: int
    characters: int
    encoding: str
    cost_per_segment: float


def result_payload(result: SendResult) -> Dict[str, Any]:
    if isinstance(result, SendAccepted):
        return {
            "success": True,
            "message": "SMS sent successfully",
            "data": {
                "id": str(result.id),
                "message_id": result.message_id,
                "external_id": result.external_id,
                "recipient": result.recipient,
                "status": result.status.value,
                "cost": result.cost,
            },
        }
    if isinstance(result, SendRejected):
        return {"success": False, "reason": result.reason.value, "message": result.message, "details": result.details}
    assert isinstance(result, SendFailed)
    return {
        "success": False,
        "message": result.error_message,
        "error_code": result.error_code,
        "data": {
            "id": str(result.id),
            "message_id": result.message_id,
            "recipient": result.recipient,
            "status": result.status.value,
            "category": result.category.value,
            "charged": result.charged,
        },
    }


@router.post("/send")
async def send_sms(
    payload: SendSmsIn,
    business_id: str = Depends(business_scope),
    services: Services = Depends(get_services),
):
    result = await services.orchestrator.send_message(
        business_id,
        payload.recipient or "",
        payload.message or "",
        payload.sender_id,
        payload.template_id,
    )
    return JSONResponse(status_code=result.http_status, content=result_payload(result))


@router.post("/bulk")
async def send_bulk_sms(
    payload: BulkSendSmsIn,
    business_id: str = Depends(business_scope),
    services: Services = Depends(get_services),
):
    bulk = await services.orchestrator.send_bulk(
        business_id, payload.recipients, payload.message or "", payload.sender_id, payload.template_id,
    )
    if bulk.rejection is not None:
        return JSONResponse(status_code=bulk.rejection.http_status, content=result_payload(bulk.rejection))
    return {
        "success": bulk.failed == 0 and bulk.rejected == 0,
        "summary": {
            "total": len(bulk.results),
            "sent": bulk.sent,
            "failed": bulk.failed,
            "rejected": bulk.rejected,
            "estimated_cost": bulk.estimated_cost,
        },
        "results": [result_payload(r) for r in bulk.results],
    }


@router.get("/provider-balance")
async def provider_balance(
    business_id: str = Depends(business_scope),
    services: Services = Depends(get_services),
):
    bal = await services.gateway.check_balance()
    return {"balance": bal.balance, "currency": bal.currency, "error": bal.error}


@router.get("/{id}", response_model=MessageDetailOut)
async def get_sms(
    id: UUID_t,
    business_id: str = Depends(business_scope),
    services: Services = Depends(get_services),
):
    details = await services.orchestrator.get_message_details(business_id, id)
    if details is None:
        raise HTTPException(status_code=404, detail="Message not found")
    m = details.message
    return MessageDetailOut(
        id=m.id,
        message_id=m.message_id,
        recipient=m.recipient,
        message=m.body,
        status=m.status.value,
        cost=m.cost,
        external_id=m.external_id,
        error_code=m.error_code,
        error_message=m.error_message,
        created_at=m.created_at,
        finalized_at=m.finalized_at,
        delivery_status=details.delivery_status.status if details.delivery_status else None,
        delivery_error=details.delivery_status.error if details.delivery_status else None,
        segments=details.segments,
        characters=details.characters,
        encoding=details.encoding,
        cost_per_segment=details.cost_per_segment,
    )
