"""Send-core persistence models (SQLAlchemy 2.x style).

Every table is partitioned by `business_id`, an opaque reference to a business owned by the
surrounding platform (auth / team management live outside this package, so there is no FK).
Balances and transaction amounts are integer credits; one credit buys one message segment.
"""
from __future__ import annotations

import enum
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import (
    MetaData, Enum as SAEnum, ForeignKey, String, Text, Integer, DateTime, Uuid,
    func, text, Index, UniqueConstraint, CheckConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

# ---------------------------------------------------------------------------
# Naming conventions (important for Alembic autogenerate stability)
# ---------------------------------------------------------------------------
metadata = MetaData(
    naming_convention={
        "ix": "ix_%(column_0_label)s",
        "uq": "uq_%(table_name)s_%(column_0_name)s",
        "ck": "ck_%(table_name)s_%(constraint_name)s",
        "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
        "pk": "pk_%(table_name)s",
    }
)


class Base(DeclarativeBase):
    metadata = metadata


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class AccountType(str, enum.Enum):
    SMS = "SMS"
    SERVICE = "SERVICE"
    WALLET = "WALLET"


class TransactionType(str, enum.Enum):
    PURCHASE = "PURCHASE"
    USAGE = "USAGE"
    TRANSFER_IN = "TRANSFER_IN"
    TRANSFER_OUT = "TRANSFER_OUT"


class SenderIdStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class WhitelistStatus(str, enum.Enum):
    NOT_SUBMITTED = "NOT_SUBMITTED"
    SUBMITTED = "SUBMITTED"
    WHITELISTED = "WHITELISTED"
    DECLINED = "DECLINED"


class MessageStatus(str, enum.Enum):
    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"
    FAILED_INSUFFICIENT_PROVIDER_CREDIT = "FAILED_INSUFFICIENT_PROVIDER_CREDIT"
    FAILED_INVALID_PARAMETERS = "FAILED_INVALID_PARAMETERS"

    @property
    def is_terminal(self) -> bool:
        return self is not MessageStatus.PENDING


class OtpStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    USED = "USED"


AccountTypeEnum = SAEnum(AccountType, name="account_type", native_enum=False, length=16)
TransactionTypeEnum = SAEnum(TransactionType, name="credit_transaction_type", native_enum=False, length=16)
SenderIdStatusEnum = SAEnum(SenderIdStatus, name="sender_id_status", native_enum=False, length=16)
WhitelistStatusEnum = SAEnum(WhitelistStatus, name="whitelist_status", native_enum=False, length=16)
MessageStatusEnum = SAEnum(MessageStatus, name="message_status", native_enum=False, length=40)
OtpStatusEnum = SAEnum(OtpStatus, name="otp_status", native_enum=False, length=16)


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------

class BusinessAccount(Base):
    __tablename__ = "business_accounts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    business_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    type: Mapped[AccountType] = mapped_column(AccountTypeEnum, nullable=False)
    balance: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="GHS")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    transactions: Mapped[List["CreditTransaction"]] = relationship(back_populates="account")

    __table_args__ = (
        UniqueConstraint("business_id", "type", name="uq_business_accounts_business_type"),
        CheckConstraint("balance >= 0", name="balance_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<BusinessAccount business_id={self.business_id!r} type={self.type} balance={self.balance}>"


class CreditTransaction(Base):
    """Append-only ledger row. `balance` is the account balance right after this entry."""
    __tablename__ = "credit_transactions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    business_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    account_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("business_accounts.id"), nullable=False, index=True)
    type: Mapped[TransactionType] = mapped_column(TransactionTypeEnum, nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    balance: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    reference_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)

    account: Mapped[BusinessAccount] = relationship(back_populates="transactions")

    __table_args__ = (
        Index("ix_credit_transactions_account_created", "account_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<CreditTransaction type={self.type} amount={self.amount} balance={self.balance}>"


class SenderIdentity(Base):
    __tablename__ = "sender_identities"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    business_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(11), nullable=False)
    status: Mapped[SenderIdStatus] = mapped_column(SenderIdStatusEnum, nullable=False, default=SenderIdStatus.PENDING)
    whitelist_status: Mapped[WhitelistStatus] = mapped_column(WhitelistStatusEnum, nullable=False, default=WhitelistStatus.NOT_SUBMITTED)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False, index=True)

    messages: Mapped[List["Message"]] = relationship(back_populates="sender_identity")

    __table_args__ = (
        UniqueConstraint("business_id", "name", name="uq_sender_identities_business_name"),
        Index("ix_sender_identities_business_status", "business_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<SenderIdentity name={self.name!r} status={self.status}>"


class Message(Base):
    __tablename__ = "sms_messages"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    business_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    recipient: Mapped[str] = mapped_column(String(20), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    sender_identity_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("sender_identities.id"), nullable=False, index=True)
    template_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    status: Mapped[MessageStatus] = mapped_column(MessageStatusEnum, nullable=False, default=MessageStatus.PENDING, index=True)
    cost: Mapped[int] = mapped_column(Integer, nullable=False)
    message_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)  # client-side id sent upstream
    external_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True, index=True)
    error_code: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)
    finalized_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    sender_identity: Mapped[SenderIdentity] = relationship(back_populates="messages")

    __table_args__ = (
        Index("ix_sms_messages_business_created", "business_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Message id={self.id} status={self.status} cost={self.cost}>"


class OtpCode(Base):
    """One-time code delivered through a regular send; only a hash of the code is kept."""
    __tablename__ = "otp_codes"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    business_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    phone: Mapped[str] = mapped_column(String(20), nullable=False)
    code_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[OtpStatus] = mapped_column(OtpStatusEnum, nullable=False, default=OtpStatus.ACTIVE)
    sms_message_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("sms_messages.id"), nullable=False, index=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    used_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)

    message: Mapped[Message] = relationship()

    __table_args__ = (
        Index("ix_otp_codes_lookup", "business_id", "phone", "status"),
    )

    def __repr__(self) -> str:
        return f"<OtpCode id={self.id} phone={self.phone!r} status={self.status}>"


__all__ = [
    "Base", "metadata",
    "AccountType", "TransactionType", "SenderIdStatus", "WhitelistStatus", "MessageStatus", "OtpStatus",
    "BusinessAccount", "CreditTransaction", "SenderIdentity", "Message", "OtpCode",
]
