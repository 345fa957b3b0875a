"""One-time codes: stored hashed, consumed at most once, scoped to a business and phone."""
from __future__ import annotations

import hashlib
import secrets
import uuid
from datetime import datetime, timezone
from typing import List, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sendcore.models import OtpCode, OtpStatus


def generate_otp_code() -> str:
    """Six random digits with no leading zero."""
    return str(100000 + secrets.randbelow(900000))


def hash_otp_code(business_id: str, phone: str, code: str) -> str:
    return hashlib.sha256(f"{business_id}:{phone}:{code}".encode("utf-8")).hexdigest()


class OtpRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def create(
        self,
        *,
        business_id: str,
        phone: str,
        code: str,
        sms_message_id: uuid.UUID,
        expires_at: datetime,
    ) -> OtpCode:
        otp = OtpCode(
            business_id=business_id,
            phone=phone,
            code_hash=hash_otp_code(business_id, phone, code),
            status=OtpStatus.ACTIVE,
            sms_message_id=sms_message_id,
            expires_at=expires_at,
        )
        async with self.session_factory() as session:
            async with session.begin():
                session.add(otp)
        return otp

    async def consume(self, business_id: str, phone: str, code: str) -> bool:
        """Mark the matching unexpired ACTIVE code USED.

        A single guarded UPDATE, so of two concurrent verifications of one code only one wins.
        """
        now = datetime.now(timezone.utc)
        stmt = (
            update(OtpCode)
            .where(
                OtpCode.business_id == business_id,
                OtpCode.phone == phone,
                OtpCode.code_hash == hash_otp_code(business_id, phone, code),
                OtpCode.status == OtpStatus.ACTIVE,
                OtpCode.expires_at > now,
            )
            .values(status=OtpStatus.USED, used_at=now)
            .execution_options(synchronize_session=False)
        )
        async with self.session_factory() as session:
            async with session.begin():
                res = await session.execute(stmt)
        return res.rowcount > 0

    async def list(self, business_id: str, limit: int = 50, offset: int = 0) -> Tuple[List[OtpCode], int]:
        async with self.session_factory() as session:
            base = select(OtpCode).where(OtpCode.business_id == business_id)
            total = (await session.execute(select(func.count()).select_from(base.subquery()))).scalar_one()
            rows = (await session.execute(
                base.order_by(OtpCode.created_at.desc()).limit(limit).offset(offset)
            )).scalars().all()
            return list(rows), total


__all__ = ["OtpRepository", "generate_otp_code", "hash_otp_code"]
