"""One-time codes delivered as ordinary billed sends.

`send_otp` goes through `SendOrchestrator.send_message`, so an OTP is priced, pre-checked and
charged by the same ledger path as any other message. A code is stored only once the upstream
accepted the message; verification consumes it at most once.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Union

from sendcore.logging import log_otp_issued, log_otp_verified
from sendcore.phone import is_valid_recipient, normalize_recipient
from sendcore.repositories.otp import OtpRepository, generate_otp_code
from sendcore.services.send_service import SendAccepted, SendFailed, SendOrchestrator, SendRejected

DEFAULT_TEMPLATE = "Your verification code is {code}. It expires in {minutes} minutes."


@dataclass(frozen=True)
class OtpIssued:
    id: uuid.UUID
    phone: str
    expires_at: datetime
    send: SendAccepted

    success = True
    http_status = 201


OtpSendResult = Union[OtpIssued, SendRejected, SendFailed]


class OtpService:
    def __init__(
        self,
        orchestrator: SendOrchestrator,
        otps: OtpRepository,
        *,
        ttl_minutes: int = 10,
        template: str = DEFAULT_TEMPLATE,
        code_factory: Callable[[], str] = generate_otp_code,
    ):
        self.orchestrator = orchestrator
        self.otps = otps
        self.ttl_minutes = ttl_minutes
        self.template = template
        self.code_factory = code_factory

    async def send_otp(self, business_id: str, phone: str, sender: Optional[str] = None) -> OtpSendResult:
        code = self.code_factory()
        body = self.template.format(code=code, minutes=self.ttl_minutes)
        result = await self.orchestrator.send_message(business_id, phone, body, sender)
        if not isinstance(result, SendAccepted):
            return result

        expires_at = datetime.now(timezone.utc) + timedelta(minutes=self.ttl_minutes)
        otp = await self.otps.create(
            business_id=business_id,
            phone=result.recipient,
            code=code,
            sms_message_id=result.id,
            expires_at=expires_at,
        )
        log_otp_issued(str(otp.id), business_id, str(result.id), expires_at.isoformat())
        return OtpIssued(id=otp.id, phone=result.recipient, expires_at=expires_at, send=result)

    async def verify_otp(self, business_id: str, phone: str, code: str) -> bool:
        country_code = self.orchestrator.country_code
        if not code or not is_valid_recipient(phone, country_code):
            verified = False
        else:
            verified = await self.otps.consume(business_id, normalize_recipient(phone, country_code), code.strip())
        log_otp_verified(business_id, verified)
        return verified


__all__ = ["OtpService", "OtpIssued", "OtpSendResult"]
