from __future__ import annotations

from dataclasses import dataclass

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sendcore.clients.provider import ProviderGateway
from sendcore.core.settings import Settings, get_settings
from sendcore.repositories.ledger import Ledger
from sendcore.repositories.messages import MessageRepository
from sendcore.repositories.otp import OtpRepository
from sendcore.repositories.senders import SenderIdentityRepository
from sendcore.services.otp_service import OtpService
from sendcore.services.send_service import SendOrchestrator


@dataclass
class Services:
    ledger: Ledger
    senders: SenderIdentityRepository
    messages: MessageRepository
    gateway: ProviderGateway
    orchestrator: SendOrchestrator
    otp: OtpService


def build_services(
    session_factory: async_sessionmaker[AsyncSession],
    settings: Settings | None = None,
    http_client: httpx.AsyncClient | None = None,
    gateway: ProviderGateway | None = None,
) -> Services:
    """Wire the ledger, repositories, gateway, orchestrator and OTP service over one session factory."""
    settings = settings or get_settings()
    ledger = Ledger(session_factory, currency=settings.DEFAULT_CURRENCY)
    senders = SenderIdentityRepository(session_factory)
    messages = MessageRepository(session_factory)
    gateway = gateway or ProviderGateway.from_settings(settings, http_client=http_client)
    orchestrator = SendOrchestrator(
        ledger,
        senders,
        messages,
        gateway,
        country_code=settings.COUNTRY_CALLING_CODE,
        bulk_concurrency=settings.BULK_SEND_CONCURRENCY,
    )
    otp = OtpService(
        orchestrator,
        OtpRepository(session_factory),
        ttl_minutes=settings.OTP_TTL_MINUTES,
        template=settings.OTP_MESSAGE_TEMPLATE,
    )
    return Services(
        ledger=ledger, senders=senders, messages=messages, gateway=gateway, orchestrator=orchestrator, otp=otp,
    )


__all__ = ["Services", "build_services"]
