import asyncio

import pytest
from sqlalchemy import select

from sendcore.models import AccountType, BusinessAccount, CreditTransaction, TransactionType

from factories import fund, transactions_for

BIZ = "biz_ledger"


async def _stored_balance(session_factory, business_id, account_type):
    async with session_factory() as session:
        return (await session.execute(
            select(BusinessAccount.balance).where(
                BusinessAccount.business_id == business_id, BusinessAccount.type == account_type,
            )
        )).scalar_one()


async def _sum_amounts(session_factory, business_id, account_type):
    async with session_factory() as session:
        rows = (await session.execute(
            select(CreditTransaction.amount)
            .join(BusinessAccount, CreditTransaction.account_id == BusinessAccount.id)
            .where(BusinessAccount.business_id == business_id, BusinessAccount.type == account_type)
        )).scalars().all()
    return sum(rows)


@pytest.mark.asyncio
async def test_accounts_are_created_lazily(ledger):
    account = await ledger.get_or_create(BIZ, AccountType.SMS)
    assert account.balance == 0
    assert account.currency == "GHS"
    again = await ledger.get_or_create(BIZ, AccountType.SMS)
    assert again.id == account.id


@pytest.mark.asyncio
async def test_concurrent_get_or_create_yields_one_account(ledger):
    accounts = await asyncio.gather(*(ledger.get_or_create("biz_race", AccountType.WALLET) for _ in range(6)))
    assert len({a.id for a in accounts}) == 1


@pytest.mark.asyncio
async def test_add_records_purchase_with_snapshot(ledger, session_factory):
    assert await ledger.add(BIZ, AccountType.SMS, 10, "Bought 10", reference_id="pay_1")
    assert await ledger.current_balance(BIZ, AccountType.SMS) == 10
    (tx,) = await transactions_for(session_factory, BIZ)
    assert tx.type is TransactionType.PURCHASE
    assert tx.amount == 10
    assert tx.balance == 10
    assert tx.reference_id == "pay_1"


@pytest.mark.asyncio
async def test_deduct_records_usage(ledger, session_factory):
    await fund(ledger, BIZ, 5)
    assert await ledger.deduct(BIZ, AccountType.SMS, 2, "SMS to 233241234567", reference_id="msg-1")
    assert await ledger.current_balance(BIZ, AccountType.SMS) == 3
    usage = [t for t in await transactions_for(session_factory, BIZ) if t.type is TransactionType.USAGE]
    assert len(usage) == 1
    assert usage[0].amount == -2
    assert usage[0].balance == 3
    assert usage[0].reference_id == "msg-1"


@pytest.mark.asyncio
async def test_deduct_insufficient_changes_nothing(ledger, session_factory):
    await fund(ledger, BIZ, 1)
    assert not await ledger.deduct(BIZ, AccountType.SMS, 2, "too much")
    assert await ledger.current_balance(BIZ, AccountType.SMS) == 1
    assert len(await transactions_for(session_factory, BIZ)) == 1


@pytest.mark.asyncio
async def test_deduct_without_account_fails(ledger):
    assert not await ledger.deduct("biz_nobody", AccountType.SMS, 1, "x")


@pytest.mark.asyncio
async def test_has_sufficient_credits(ledger):
    await fund(ledger, BIZ, 3)
    assert await ledger.has_sufficient_credits(BIZ, AccountType.SMS, 3)
    assert not await ledger.has_sufficient_credits(BIZ, AccountType.SMS, 4)


@pytest.mark.parametrize("amount", [0, -1, 1.5, True])
@pytest.mark.asyncio
async def test_non_positive_or_fractional_amounts_rejected(ledger, amount):
    with pytest.raises(ValueError):
        await ledger.add(BIZ, AccountType.SMS, amount, "bad")
    with pytest.raises(ValueError):
        await ledger.deduct(BIZ, AccountType.SMS, amount, "bad")


@pytest.mark.asyncio
async def test_add_refuses_debit_transaction_types(ledger):
    with pytest.raises(ValueError):
        await ledger.add(BIZ, AccountType.SMS, 1, "x", transaction_type=TransactionType.USAGE)


@pytest.mark.asyncio
async def test_transfer_moves_credits_as_a_pair(ledger, session_factory):
    await fund(ledger, BIZ, 10, AccountType.WALLET)
    assert await ledger.transfer(BIZ, AccountType.WALLET, AccountType.SMS, 4, "top up sms")
    balances = await ledger.get_all_balances(BIZ)
    assert balances == {"SMS": 4, "SERVICE": 0, "WALLET": 6}

    txs = await transactions_for(session_factory, BIZ)
    out = [t for t in txs if t.type is TransactionType.TRANSFER_OUT]
    into = [t for t in txs if t.type is TransactionType.TRANSFER_IN]
    assert len(out) == 1 and len(into) == 1
    assert out[0].amount == -4 and out[0].balance == 6
    assert into[0].amount == 4 and into[0].balance == 4
    assert out[0].description == "Transfer to SMS account: top up sms"
    assert into[0].description == "Transfer from WALLET account: top up sms"


@pytest.mark.asyncio
async def test_transfer_insufficient_is_all_or_nothing(ledger, session_factory):
    await fund(ledger, BIZ, 2, AccountType.WALLET)
    assert not await ledger.transfer(BIZ, AccountType.WALLET, AccountType.SMS, 3, "nope")
    assert await ledger.get_all_balances(BIZ) == {"SMS": 0, "SERVICE": 0, "WALLET": 2}
    assert len(await transactions_for(session_factory, BIZ)) == 1


@pytest.mark.asyncio
async def test_transfer_to_same_type_refused(ledger):
    await fund(ledger, BIZ, 2)
    assert not await ledger.transfer(BIZ, AccountType.SMS, AccountType.SMS, 1, "loop")
    assert await ledger.current_balance(BIZ, AccountType.SMS) == 2


@pytest.mark.asyncio
async def test_concurrent_deducts_never_overdraw(ledger):
    await fund(ledger, BIZ, 3)
    results = await asyncio.gather(*(
        ledger.deduct(BIZ, AccountType.SMS, 1, f"send {i}", reference_id=f"m{i}") for i in range(10)
    ))
    assert sum(results) == 3
    assert await ledger.current_balance(BIZ, AccountType.SMS) == 0


@pytest.mark.asyncio
async def test_concurrent_multi_credit_deducts(ledger):
    await fund(ledger, BIZ, 5)
    results = await asyncio.gather(*(ledger.deduct(BIZ, AccountType.SMS, 2, "two") for _ in range(6)))
    assert sum(results) == 2
    assert await ledger.current_balance(BIZ, AccountType.SMS) == 1


@pytest.mark.asyncio
async def test_balance_equals_sum_of_transactions(ledger, session_factory):
    await fund(ledger, BIZ, 20, AccountType.WALLET)
    await ledger.transfer(BIZ, AccountType.WALLET, AccountType.SMS, 7, "a")
    await ledger.deduct(BIZ, AccountType.SMS, 3, "b")
    await ledger.deduct(BIZ, AccountType.SMS, 9, "refused")
    await ledger.add(BIZ, AccountType.SMS, 2, "c")
    await ledger.transfer(BIZ, AccountType.SMS, AccountType.SERVICE, 1, "d")
    await asyncio.gather(*(ledger.deduct(BIZ, AccountType.SMS, 1, "e") for _ in range(8)))

    for account_type in AccountType:
        stored = await _stored_balance(session_factory, BIZ, account_type)
        assert stored >= 0
        assert stored == await _sum_amounts(session_factory, BIZ, account_type)


@pytest.mark.asyncio
async def test_list_transactions_newest_first_with_filter(ledger):
    await fund(ledger, BIZ, 5, AccountType.WALLET)
    await fund(ledger, BIZ, 3)
    await ledger.deduct(BIZ, AccountType.SMS, 1, "use")

    rows, total = await ledger.list_transactions(BIZ)
    assert total == 3
    assert [r.type for r in rows] == [TransactionType.USAGE, TransactionType.PURCHASE, TransactionType.PURCHASE]

    rows, total = await ledger.list_transactions(BIZ, AccountType.SMS, limit=1)
    assert total == 2
    assert len(rows) == 1 and rows[0].type is TransactionType.USAGE

    rows, total = await ledger.list_transactions(BIZ, AccountType.SMS, limit=1, offset=1)
    assert rows[0].type is TransactionType.PURCHASE


@pytest.mark.asyncio
async def test_businesses_are_isolated(ledger):
    await fund(ledger, "biz_a", 5)
    assert await ledger.current_balance("biz_b", AccountType.SMS) == 0
    assert not await ledger.deduct("biz_b", AccountType.SMS, 1, "x")
    assert await ledger.current_balance("biz_a", AccountType.SMS) == 5
