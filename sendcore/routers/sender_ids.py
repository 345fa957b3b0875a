from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID as UUID_t

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from pydantic import BaseModel

from sendcore.deps import business_scope, get_services
from sendcore.models import SenderIdStatus, SenderIdentity
from sendcore.repositories.senders import SenderIdentityError
from sendcore.services.factory import Services

router = APIRouter(prefix="/sender-ids", tags=["sender-ids"])


class SenderIdIn(BaseModel):
    name: Optional[str] = None


class SenderIdOut(BaseModel):
    id: UUID_t
    name: str
    status: str
    whitelist_status: str
    created_at: datetime


def _out(identity: SenderIdentity) -> SenderIdOut:
    return SenderIdOut(
        id=identity.id,
        name=identity.name,
        status=identity.status.value,
        whitelist_status=identity.whitelist_status.value,
        created_at=identity.created_at,
    )


@router.get("/", response_model=List[SenderIdOut])
async def list_sender_ids(
    status: Optional[SenderIdStatus] = Query(default=None),
    business_id: str = Depends(business_scope),
    services: Services = Depends(get_services),
):
    return [_out(i) for i in await services.senders.list(business_id, status)]


@router.post("/", response_model=SenderIdOut, status_code=201)
async def register_sender_id(
    payload: SenderIdIn,
    business_id: str = Depends(business_scope),
    services: Services = Depends(get_services),
):
    try:
        identity = await services.senders.register(business_id, payload.name or "")
    except SenderIdentityError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return _out(identity)


@router.delete("/{id}", status_code=204)
async def delete_sender_id(
    id: UUID_t,
    business_id: str = Depends(business_scope),
    services: Services = Depends(get_services),
):
    try:
        await services.senders.delete(business_id, id)
    except SenderIdentityError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return Response(status_code=204)
