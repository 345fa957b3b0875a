from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID as UUID_t

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from sendcore.deps import business_scope, get_services
from sendcore.routers.sms import result_payload
from sendcore.services.factory import Services
from sendcore.services.otp_service import OtpIssued

router = APIRouter(prefix="/otp", tags=["otp"])


class SendOtpIn(BaseModel):
    phone: Optional[str] = None
    sender_id: Optional[str] = None


class VerifyOtpIn(BaseModel):
    phone: Optional[str] = None
    code: Optional[str] = None


class OtpOut(BaseModel):
    id: UUID_t
    phone: str
    status: str
    sms_message_id: UUID_t
    expires_at: datetime
    used_at: Optional[datetime] = None
    created_at: datetime


class OtpListResponse(BaseModel):
    items: List[OtpOut]
    total: int
    limit: int
    offset: int


@router.post("/send")
async def send_otp(
    payload: SendOtpIn,
    business_id: str = Depends(business_scope),
    services: Services = Depends(get_services),
):
    result = await services.otp.send_otp(business_id, payload.phone or "", payload.sender_id)
    if isinstance(result, OtpIssued):
        content = {
            "success": True,
            "message": "OTP sent successfully",
            "data": {
                "id": str(result.id),
                "phone": result.phone,
                "expires_at": result.expires_at.isoformat(),
                "sms_id": str(result.send.id),
                "cost": result.send.cost,
            },
        }
    else:
        content = result_payload(result)
    return JSONResponse(status_code=result.http_status, content=content)


@router.post("/verify")
async def verify_otp(
    payload: VerifyOtpIn,
    business_id: str = Depends(business_scope),
    services: Services = Depends(get_services),
):
    if not payload.phone or not payload.code:
        raise HTTPException(status_code=400, detail="Phone number and code are required")
    if not await services.otp.verify_otp(business_id, payload.phone, payload.code):
        raise HTTPException(status_code=400, detail="Invalid or expired OTP")
    return {"success": True, "message": "OTP verified successfully"}


@router.get("/history", response_model=OtpListResponse)
async def otp_history(
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    business_id: str = Depends(business_scope),
    services: Services = Depends(get_services),
):
    rows, total = await services.otp.otps.list(business_id, limit=limit, offset=offset)
    items = [
        OtpOut(
            id=r.id,
            phone=r.phone,
            status=r.status.value,
            sms_message_id=r.sms_message_id,
            expires_at=r.expires_at,
            used_at=r.used_at,
            created_at=r.created_at,
        )
        for r in rows
    ]
    return OtpListResponse(items=items, total=total, limit=limit, offset=offset)
