"""Sender identity lookups and registration.

`validate` is the send-path gate: it only ever returns an APPROVED identity owned by the
requesting business. Approval itself happens outside this package.
"""
from __future__ import annotations

import logging
import re
import uuid
from typing import List, Optional

from sqlalchemy import select, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sendcore.clients.result import Result, success, failure
from sendcore.models import Message, SenderIdentity, SenderIdStatus, WhitelistStatus

logger = logging.getLogger(__name__)

# Registration accepts letters and spaces; the upstream itself only accepts [A-Za-z0-9]{3,11}.
SENDER_NAME_RE = re.compile(r"^[A-Za-z ]+$")
SENDER_NAME_MIN = 3
SENDER_NAME_MAX = 11


class SenderIdentityError(Exception):
    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def _as_uuid(value: str) -> Optional[uuid.UUID]:
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


def validate_sender_name(name: Optional[str]) -> Optional[str]:
    """Return a reason when `name` cannot be registered, else None."""
    if not name:
        return "Sender ID name is required"
    if len(name) < SENDER_NAME_MIN or len(name) > SENDER_NAME_MAX:
        return f"Sender ID must be {SENDER_NAME_MIN}-{SENDER_NAME_MAX} characters (including spaces)"
    if not SENDER_NAME_RE.match(name):
        return "Sender ID must contain only letters and spaces"
    return None


class SenderIdentityRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def validate(self, business_id: str, sender: Optional[str] = None) -> Result[SenderIdentity]:
        """Resolve the identity a send will use.

        `sender` may be the identity's display name or its id; both are tried. When omitted,
        the business's most recently created APPROVED identity is the default.
        """
        filters = [SenderIdentity.business_id == business_id, SenderIdentity.status == SenderIdStatus.APPROVED]
        if sender:
            sender = sender.strip()
            sender_uuid = _as_uuid(sender)
            if sender_uuid is not None:
                filters.append(or_(SenderIdentity.id == sender_uuid, SenderIdentity.name == sender))
            else:
                filters.append(SenderIdentity.name == sender)
        stmt = select(SenderIdentity).where(*filters).order_by(SenderIdentity.created_at.desc()).limit(1)
        async with self.session_factory() as session:
            identity = (await session.execute(stmt)).scalar_one_or_none()
        if identity is None:
            detail = f"No approved sender ID matching {sender!r}" if sender else "No approved sender ID for this business"
            return failure("sender_not_found", detail=detail, status_code=404)
        return success(identity)

    async def get(self, business_id: str, sender_identity_id: uuid.UUID) -> Optional[SenderIdentity]:
        async with self.session_factory() as session:
            stmt = select(SenderIdentity).where(
                SenderIdentity.id == sender_identity_id,
                SenderIdentity.business_id == business_id,
            )
            return (await session.execute(stmt)).scalar_one_or_none()

    async def list(self, business_id: str, status: Optional[SenderIdStatus] = None) -> List[SenderIdentity]:
        stmt = select(SenderIdentity).where(SenderIdentity.business_id == business_id)
        if status is not None:
            stmt = stmt.where(SenderIdentity.status == status)
        async with self.session_factory() as session:
            return list((await session.execute(stmt.order_by(SenderIdentity.created_at.desc()))).scalars().all())

    async def register(self, business_id: str, name: str) -> SenderIdentity:
        """Submit a new identity for approval (PENDING, not yet whitelisted upstream)."""
        reason = validate_sender_name(name)
        if reason:
            raise SenderIdentityError(reason)
        duplicate = SenderIdentityError("Sender ID already exists for this business", status_code=409)
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    existing = (await session.execute(
                        select(SenderIdentity.id).where(SenderIdentity.business_id == business_id, SenderIdentity.name == name)
                    )).scalar_one_or_none()
                    if existing is not None:
                        raise duplicate
                    identity = SenderIdentity(
                        business_id=business_id,
                        name=name,
                        status=SenderIdStatus.PENDING,
                        whitelist_status=WhitelistStatus.NOT_SUBMITTED,
                    )
                    session.add(identity)
        except IntegrityError:
            # Registered concurrently between our SELECT and INSERT
            raise duplicate from None
        logger.info("Sender ID %r registered for business=%s", name, business_id)
        return identity

    async def delete(self, business_id: str, sender_identity_id: uuid.UUID) -> None:
        """Delete an identity no message has used yet."""
        async with self.session_factory() as session:
            async with session.begin():
                identity = (await session.execute(
                    select(SenderIdentity).where(
                        SenderIdentity.id == sender_identity_id,
                        SenderIdentity.business_id == business_id,
                    )
                )).scalar_one_or_none()
                if identity is None:
                    raise SenderIdentityError("Sender ID not found", status_code=404)
                used = (await session.execute(
                    select(func.count()).select_from(Message).where(Message.sender_identity_id == identity.id)
                )).scalar_one()
                if used:
                    raise SenderIdentityError("Cannot delete sender ID that is in use")
                await session.delete(identity)
        logger.info("Sender ID %s deleted for business=%s", sender_identity_id, business_id)


__all__ = ["SenderIdentityRepository", "SenderIdentityError", "validate_sender_name"]
