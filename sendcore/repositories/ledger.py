"""Per-business credit ledger.

Design goals:
- One account per (business, account type), created lazily and safely under concurrency
  (uniqueness constraint + savepoint retry).
- Every balance mutation is a single transaction: a conditional UPDATE
  (`balance >= :amount` for debits) followed by an appended CreditTransaction whose
  `balance` snapshot is read back inside the same transaction. No find-then-update.
- Mutations report success with a bool; they never leave partial writes behind.

Each public method opens its own transaction from the injected session factory, so callers
never hold a ledger lock across a network call.
"""
from __future__ import annotations

import logging
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sendcore.models import AccountType, BusinessAccount, CreditTransaction, TransactionType
from sendcore.logging import log_credits_posted

logger = logging.getLogger(__name__)


def _check_amount(amount: int) -> None:
    if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
        raise ValueError(f"Ledger amounts must be positive integers, got {amount!r}")


class Ledger:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession], *, currency: str = "GHS"):
        self.session_factory = session_factory
        self.currency = currency

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------
    async def _get_or_create(self, session: AsyncSession, business_id: str, account_type: AccountType) -> BusinessAccount:
        stmt = select(BusinessAccount).where(
            BusinessAccount.business_id == business_id,
            BusinessAccount.type == account_type,
        )
        account = (await session.execute(stmt)).scalar_one_or_none()
        if account:
            return account
        try:
            async with session.begin_nested():
                account = BusinessAccount(business_id=business_id, type=account_type, balance=0, currency=self.currency)
                session.add(account)
        except IntegrityError:
            # Created by a concurrent caller between our SELECT and INSERT
            account = (await session.execute(stmt)).scalar_one()
        return account

    async def get_or_create(self, business_id: str, account_type: AccountType) -> BusinessAccount:
        async with self.session_factory() as session:
            async with session.begin():
                return await self._get_or_create(session, business_id, account_type)

    async def current_balance(self, business_id: str, account_type: AccountType) -> int:
        """Read the balance; any lookup failure degrades to 0 instead of raising."""
        try:
            account = await self.get_or_create(business_id, account_type)
            return account.balance
        except SQLAlchemyError as e:
            logger.warning("Balance lookup failed for business=%s type=%s: %s", business_id, account_type.value, e)
            return 0

    async def has_sufficient_credits(self, business_id: str, account_type: AccountType, amount: int) -> bool:
        return await self.current_balance(business_id, account_type) >= amount

    async def get_all_balances(self, business_id: str) -> Dict[str, int]:
        async with self.session_factory() as session:
            async with session.begin():
                out: Dict[str, int] = {}
                for account_type in AccountType:
                    account = await self._get_or_create(session, business_id, account_type)
                    out[account_type.value] = account.balance
                return out

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    async def _apply(
        self,
        session: AsyncSession,
        account: BusinessAccount,
        delta: int,
        transaction_type: TransactionType,
        description: str,
        reference_id: Optional[str],
    ) -> Optional[int]:
        """Apply `delta` to one account and append its ledger row. Returns the new balance,
        or None when a debit would take the balance below zero (nothing is written)."""
        stmt = update(BusinessAccount).where(BusinessAccount.id == account.id)
        if delta < 0:
            stmt = stmt.where(BusinessAccount.balance >= -delta)
        res = await session.execute(
            stmt.values(balance=BusinessAccount.balance + delta).execution_options(synchronize_session=False)
        )
        if res.rowcount != 1:
            return None
        new_balance = (await session.execute(
            select(BusinessAccount.balance).where(BusinessAccount.id == account.id)
        )).scalar_one()
        session.add(CreditTransaction(
            business_id=account.business_id,
            account_id=account.id,
            type=transaction_type,
            amount=delta,
            balance=new_balance,
            description=description,
            reference_id=reference_id,
        ))
        await session.flush()
        return new_balance

    async def deduct(
        self,
        business_id: str,
        account_type: AccountType,
        amount: int,
        description: str,
        reference_id: Optional[str] = None,
    ) -> bool:
        """Atomically debit `amount` as USAGE. False when the balance is short at commit time."""
        _check_amount(amount)
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    account = (await session.execute(
                        select(BusinessAccount).where(
                            BusinessAccount.business_id == business_id,
                            BusinessAccount.type == account_type,
                        )
                    )).scalar_one_or_none()
                    if account is None:
                        logger.info("Deduct refused: no %s account for business=%s", account_type.value, business_id)
                        return False
                    new_balance = await self._apply(session, account, -amount, TransactionType.USAGE, description, reference_id)
                    if new_balance is None:
                        logger.info("Deduct refused: insufficient %s credits for business=%s amount=%s", account_type.value, business_id, amount)
                        return False
        except SQLAlchemyError:
            logger.exception("Credit deduction failed for business=%s", business_id)
            return False
        log_credits_posted(business_id, account_type.value, TransactionType.USAGE.value, -amount, new_balance, reference_id=reference_id)
        return True

    async def add(
        self,
        business_id: str,
        account_type: AccountType,
        amount: int,
        description: str,
        reference_id: Optional[str] = None,
        transaction_type: TransactionType = TransactionType.PURCHASE,
    ) -> bool:
        """Atomically credit `amount` (PURCHASE by default, or TRANSFER_IN)."""
        _check_amount(amount)
        if transaction_type not in (TransactionType.PURCHASE, TransactionType.TRANSFER_IN):
            raise ValueError(f"add() cannot record {transaction_type.value} transactions")
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    account = await self._get_or_create(session, business_id, account_type)
                    new_balance = await self._apply(session, account, amount, transaction_type, description, reference_id)
        except SQLAlchemyError:
            logger.exception("Credit addition failed for business=%s", business_id)
            return False
        log_credits_posted(business_id, account_type.value, transaction_type.value, amount, new_balance, reference_id=reference_id)
        return True

    async def transfer(
        self,
        business_id: str,
        from_type: AccountType,
        to_type: AccountType,
        amount: int,
        description: str,
    ) -> bool:
        """Move credits between two accounts of one business as a TRANSFER_OUT/TRANSFER_IN pair."""
        _check_amount(amount)
        if from_type == to_type:
            logger.info("Transfer refused: source and destination are both %s", from_type.value)
            return False
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    accounts = {
                        t: await self._get_or_create(session, business_id, t)
                        for t in sorted((from_type, to_type), key=lambda t: t.value)
                    }
                    # Lock in a fixed order so opposite-direction transfers cannot deadlock
                    for t in sorted(accounts, key=lambda t: t.value):
                        await session.execute(
                            select(BusinessAccount.id).where(BusinessAccount.id == accounts[t].id).with_for_update()
                        )
                    from_balance = await self._apply(
                        session, accounts[from_type], -amount, TransactionType.TRANSFER_OUT,
                        f"Transfer to {to_type.value} account: {description}", None,
                    )
                    if from_balance is None:
                        logger.info("Transfer refused: insufficient %s credits for business=%s", from_type.value, business_id)
                        return False
                    to_balance = await self._apply(
                        session, accounts[to_type], amount, TransactionType.TRANSFER_IN,
                        f"Transfer from {from_type.value} account: {description}", None,
                    )
        except SQLAlchemyError:
            logger.exception("Credit transfer failed for business=%s", business_id)
            return False
        log_credits_posted(business_id, from_type.value, TransactionType.TRANSFER_OUT.value, -amount, from_balance)
        log_credits_posted(business_id, to_type.value, TransactionType.TRANSFER_IN.value, amount, to_balance)
        return True

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------
    async def list_transactions(
        self,
        business_id: str,
        account_type: Optional[AccountType] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[CreditTransaction], int]:
        filters = [CreditTransaction.business_id == business_id]
        if account_type is not None:
            filters.append(BusinessAccount.type == account_type)
        async with self.session_factory() as session:
            base = select(CreditTransaction).join(BusinessAccount, CreditTransaction.account_id == BusinessAccount.id).where(*filters)
            total = (await session.execute(select(func.count()).select_from(base.subquery()))).scalar_one()
            rows = (await session.execute(
                base.order_by(CreditTransaction.created_at.desc()).limit(limit).offset(offset)
            )).scalars().all()
            return list(rows), total


__all__ = ["Ledger"]
