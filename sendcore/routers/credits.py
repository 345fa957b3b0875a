from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional
from uuid import UUID as UUID_t

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict, Field

from sendcore.deps import business_scope, get_services
from sendcore.models import AccountType
from sendcore.services.factory import Services

router = APIRouter(prefix="/credits", tags=["credits"])

PURCHASABLE_ACCOUNTS = {AccountType.SMS, AccountType.WALLET}


class BalancesOut(BaseModel):
    balances: Dict[str, int]


class PurchaseIn(BaseModel):
    account_type: AccountType
    amount: int = Field(gt=0)
    description: Optional[str] = None
    reference_id: Optional[str] = None


class TransferIn(BaseModel):
    from_account: AccountType
    to_account: AccountType
    amount: int = Field(gt=0)
    description: str = ""


class TransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID_t
    type: str
    amount: int
    balance: int
    description: str
    reference_id: Optional[str] = None
    created_at: datetime


class TransactionListResponse(BaseModel):
    items: List[TransactionOut]
    total: int
    limit: int
    offset: int


@router.get("/balances", response_model=BalancesOut)
async def get_balances(business_id: str = Depends(business_scope), services: Services = Depends(get_services)):
    return BalancesOut(balances=await services.ledger.get_all_balances(business_id))


@router.get("/transactions", response_model=TransactionListResponse)
async def list_transactions(
    account_type: Optional[AccountType] = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    business_id: str = Depends(business_scope),
    services: Services = Depends(get_services),
):
    rows, total = await services.ledger.list_transactions(business_id, account_type, limit=limit, offset=offset)
    items = [
        TransactionOut(
            id=r.id,
            type=r.type.value,
            amount=r.amount,
            balance=r.balance,
            description=r.description,
            reference_id=r.reference_id,
            created_at=r.created_at,
        )
        for r in rows
    ]
    return TransactionListResponse(items=items, total=total, limit=limit, offset=offset)


@router.post("/purchase", response_model=BalancesOut)
async def purchase_credits(
    payload: PurchaseIn,
    business_id: str = Depends(business_scope),
    services: Services = Depends(get_services),
):
    if payload.account_type not in PURCHASABLE_ACCOUNTS:
        raise HTTPException(status_code=400, detail="Credits can only be purchased for SMS or WALLET accounts")
    ok = await services.ledger.add(
        business_id,
        payload.account_type,
        payload.amount,
        payload.description or f"Purchased {payload.amount} {payload.account_type.value} credits",
        reference_id=payload.reference_id,
    )
    if not ok:
        raise HTTPException(status_code=500, detail="Failed to add credits")
    return BalancesOut(balances=await services.ledger.get_all_balances(business_id))


@router.post("/transfer", response_model=BalancesOut)
async def transfer_credits(
    payload: TransferIn,
    business_id: str = Depends(business_scope),
    services: Services = Depends(get_services),
):
    if payload.from_account == payload.to_account:
        raise HTTPException(status_code=400, detail="Cannot transfer to the same account type")
    ok = await services.ledger.transfer(
        business_id, payload.from_account, payload.to_account, payload.amount, payload.description,
    )
    if not ok:
        raise HTTPException(status_code=400, detail="Insufficient balance in source account")
    return BalancesOut(balances=await services.ledger.get_all_balances(business_id))
