"""Send records: created PENDING before the provider call, finalized exactly once after it."""
from __future__ import annotations

import secrets
import string
import time
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sendcore.models import Message, MessageStatus

_BASE36 = string.digits + string.ascii_lowercase


def generate_message_id(prefix: str = "sendcore") -> str:
    suffix = "".join(secrets.choice(_BASE36) for _ in range(9))
    return f"{prefix}_{int(time.time() * 1000)}_{suffix}"


class MessageRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def create_pending(
        self,
        *,
        business_id: str,
        recipient: str,
        body: str,
        sender_identity_id: uuid.UUID,
        cost: int,
        template_id: Optional[str] = None,
        message_id: Optional[str] = None,
    ) -> Message:
        message = Message(
            business_id=business_id,
            recipient=recipient,
            body=body,
            sender_identity_id=sender_identity_id,
            template_id=template_id,
            status=MessageStatus.PENDING,
            cost=cost,
            message_id=message_id or generate_message_id(),
        )
        async with self.session_factory() as session:
            async with session.begin():
                session.add(message)
        return message

    async def finalize(
        self,
        id: uuid.UUID,
        status: MessageStatus,
        *,
        external_id: Optional[str] = None,
        error_code: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> bool:
        """Move a PENDING record to its terminal state.

        Guarded on `status == PENDING`, so repeating the call is a no-op and the record stays
        exactly as the first call left it. Returns True only when this call applied the update.
        """
        if not status.is_terminal:
            raise ValueError("finalize() requires a terminal status")
        stmt = (
            update(Message)
            .where(Message.id == id, Message.status == MessageStatus.PENDING)
            .values(
                status=status,
                external_id=external_id,
                error_code=error_code,
                error_message=error_message,
                finalized_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        async with self.session_factory() as session:
            async with session.begin():
                res = await session.execute(stmt)
        return res.rowcount == 1

    async def get(self, business_id: str, id: uuid.UUID) -> Optional[Message]:
        async with self.session_factory() as session:
            stmt = select(Message).where(Message.id == id, Message.business_id == business_id)
            return (await session.execute(stmt)).scalar_one_or_none()


__all__ = ["MessageRepository", "generate_message_id"]
