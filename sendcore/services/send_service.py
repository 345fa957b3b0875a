"""Send orchestration: validate, price, pre-check credits, dispatch, then reconcile.

State machine for a send record:

    PENDING -> SENT | FAILED | FAILED_INSUFFICIENT_PROVIDER_CREDIT | FAILED_INVALID_PARAMETERS

Precondition failures (fields, recipient format, sender identity, balance pre-check) return a
`SendRejected` before any record exists. Once the PENDING record is written the provider is
called and the rest of the transition runs to completion even if the caller goes away: the
upstream may already have accepted (and will bill for) the message.

The balance check before dispatch is advisory. The authoritative, atomic deduction happens
after the provider answered; if it then fails the message keeps its terminal status and a
`ledger_inconsistency` alert is logged for manual reconciliation.
"""
from __future__ import annotations

import asyncio
import enum
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from sendcore.clients.provider import (
    Failed, OutcomeCategory, ProviderGateway, ProviderOutcome, DeliveryStatus, INTERNAL_ERROR_CODE,
)
from sendcore.logging import (
    log_ledger_inconsistency, log_message_created, log_message_finalized, log_send_rejected, set_log_business,
)
from sendcore.models import AccountType, Message, MessageStatus, SenderIdentity
from sendcore.phone import is_valid_recipient, normalize_recipient
from sendcore.pricing import message_cost, requires_unicode
from sendcore.repositories.ledger import Ledger
from sendcore.repositories.messages import MessageRepository
from sendcore.repositories.senders import SenderIdentityRepository

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Charge policy
# ---------------------------------------------------------------------------
CHARGE_POLICY: Dict[OutcomeCategory, Tuple[MessageStatus, bool]] = {
    OutcomeCategory.SUBMITTED: (MessageStatus.SENT, True),
    OutcomeCategory.INSUFFICIENT_CREDIT: (MessageStatus.FAILED_INSUFFICIENT_PROVIDER_CREDIT, False),
    OutcomeCategory.INVALID_PARAMETERS: (MessageStatus.FAILED_INVALID_PARAMETERS, False),
    OutcomeCategory.INVALID_MESSAGE: (MessageStatus.FAILED_INVALID_PARAMETERS, False),
    OutcomeCategory.INVALID_DESTINATION: (MessageStatus.FAILED_INVALID_PARAMETERS, False),
    OutcomeCategory.INVALID_SENDER: (MessageStatus.FAILED_INVALID_PARAMETERS, False),
    OutcomeCategory.AUTHENTICATION_ERROR: (MessageStatus.FAILED_INVALID_PARAMETERS, False),
    OutcomeCategory.PROVIDER_ERROR: (MessageStatus.FAILED, True),
    OutcomeCategory.TIMEOUT: (MessageStatus.FAILED, True),
    OutcomeCategory.UNKNOWN: (MessageStatus.FAILED, True),
    OutcomeCategory.REJECTED: (MessageStatus.FAILED, True),
    OutcomeCategory.FAILED: (MessageStatus.FAILED, True),
}


def classify_outcome(outcome: ProviderOutcome) -> Tuple[MessageStatus, bool]:
    """Return `(final_status, should_deduct_credits)` for a provider outcome."""
    return CHARGE_POLICY.get(outcome.category, (MessageStatus.FAILED, True))


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------
class RejectionReason(str, enum.Enum):
    MISSING_FIELDS = "missing_fields"
    INVALID_RECIPIENT = "invalid_recipient"
    INVALID_SENDER = "invalid_sender"
    INSUFFICIENT_CREDITS = "insufficient_credits"


@dataclass(frozen=True)
class SendAccepted:
    id: uuid.UUID
    message_id: str
    external_id: Optional[str]
    status: MessageStatus
    cost: int
    recipient: str
    charged: bool = True

    success = True
    http_status = 200


@dataclass(frozen=True)
class SendRejected:
    reason: RejectionReason
    message: str
    details: Dict[str, Any] = field(default_factory=dict)

    success = False
    http_status = 400


@dataclass(frozen=True)
class SendFailed:
    id: uuid.UUID
    message_id: str
    status: MessageStatus
    cost: int
    recipient: str
    category: OutcomeCategory
    error_code: Optional[str]
    error_message: str
    charged: bool = False

    success = False

    @property
    def http_status(self) -> int:
        # Our request was fine but the upstream misbehaved
        return 502 if self.status is MessageStatus.FAILED else 400


SendResult = Union[SendAccepted, SendRejected, SendFailed]


@dataclass
class BulkSendResult:
    results: List[SendResult] = field(default_factory=list)
    estimated_cost: int = 0
    rejection: Optional[SendRejected] = None

    @property
    def sent(self) -> int:
        return sum(1 for r in self.results if isinstance(r, SendAccepted))

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if isinstance(r, SendFailed))

    @property
    def rejected(self) -> int:
        return sum(1 for r in self.results if isinstance(r, SendRejected))


@dataclass
class MessageDetails:
    message: Message
    delivery_status: Optional[DeliveryStatus]
    segments: int
    characters: int
    encoding: str

    @property
    def cost_per_segment(self) -> float:
        return self.message.cost / self.segments if self.segments else 0.0


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------
class SendOrchestrator:
    def __init__(
        self,
        ledger: Ledger,
        senders: SenderIdentityRepository,
        messages: MessageRepository,
        gateway: ProviderGateway,
        *,
        country_code: str = "233",
        account_type: AccountType = AccountType.SMS,
        bulk_concurrency: int = 5,
    ):
        self.ledger = ledger
        self.senders = senders
        self.messages = messages
        self.gateway = gateway
        self.country_code = country_code
        self.account_type = account_type
        self.bulk_concurrency = bulk_concurrency
        self._inflight: set[asyncio.Task] = set()

    def _reject(self, business_id: str, reason: RejectionReason, message: str, **details: Any) -> SendRejected:
        log_send_rejected(business_id, reason.value, message, **details)
        return SendRejected(reason=reason, message=message, details=details)

    async def send_message(
        self,
        business_id: str,
        recipient: str,
        body: str,
        sender: Optional[str] = None,
        template_id: Optional[str] = None,
    ) -> SendResult:
        set_log_business(business_id)

        if not recipient or not body:
            return self._reject(business_id, RejectionReason.MISSING_FIELDS, "Recipient and message are required")
        if not is_valid_recipient(recipient, self.country_code):
            return self._reject(
                business_id, RejectionReason.INVALID_RECIPIENT,
                f"Invalid phone number format. Use format: 0XXXXXXXXX or +{self.country_code}XXXXXXXXX",
            )

        sender_result = await self.senders.validate(business_id, sender)
        if not sender_result.ok:
            return self._reject(business_id, RejectionReason.INVALID_SENDER, "Invalid or unapproved sender ID", sender=sender)
        identity = sender_result.unwrap()

        cost = message_cost(body)

        if not await self.ledger.has_sufficient_credits(business_id, self.account_type, cost):
            balance = await self.ledger.current_balance(business_id, self.account_type)
            return self._reject(
                business_id, RejectionReason.INSUFFICIENT_CREDITS, "Insufficient SMS credits",
                required_credits=cost, current_balance=balance, additional_needed=max(cost - balance, 0),
            )

        normalized = normalize_recipient(recipient, self.country_code)
        message = await self.messages.create_pending(
            business_id=business_id,
            recipient=normalized,
            body=body,
            sender_identity_id=identity.id,
            cost=cost,
            template_id=template_id,
        )
        log_message_created(str(message.id), business_id, cost, sender=identity.name)

        # From here the transition must complete even if our caller is cancelled.
        task = asyncio.ensure_future(self._dispatch(business_id, message, identity))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return await asyncio.shield(task)

    async def drain(self) -> None:
        """Wait for dispatches that are still running, e.g. those whose caller went away."""
        if not self._inflight:
            return
        logger.info("Waiting for %d in-flight send(s) to finalize", len(self._inflight))
        await asyncio.gather(*list(self._inflight), return_exceptions=True)

    async def _dispatch(self, business_id: str, message: Message, identity: SenderIdentity) -> SendResult:
        try:
            outcome = await self.gateway.send(message.recipient, message.body, identity.name, message.message_id)
        except Exception as e:  # noqa: BLE001
            logger.exception("Provider adapter raised for message %s", message.id)
            outcome = Failed(OutcomeCategory.PROVIDER_ERROR, str(e) or "Provider adapter error", INTERNAL_ERROR_CODE)

        status, should_charge = classify_outcome(outcome)
        applied = await self.messages.finalize(
            message.id,
            status,
            external_id=outcome.external_id,
            error_code=outcome.error_code,
            error_message=None if outcome.success else outcome.message,
        )

        charged = False
        if should_charge and applied:
            charged = await self.ledger.deduct(
                business_id,
                self.account_type,
                message.cost,
                f"SMS to {message.recipient} using {identity.name}",
                reference_id=str(message.id),
            )
            if not charged:
                log_ledger_inconsistency(str(message.id), business_id, status.value, message.cost)
        log_message_finalized(str(message.id), status.value, charged, applied, category=outcome.category.value)

        if outcome.success:
            return SendAccepted(
                id=message.id,
                message_id=message.message_id,
                external_id=outcome.external_id,
                status=status,
                cost=message.cost,
                recipient=message.recipient,
                charged=charged,
            )
        return SendFailed(
            id=message.id,
            message_id=message.message_id,
            status=status,
            cost=message.cost,
            recipient=message.recipient,
            category=outcome.category,
            error_code=outcome.error_code,
            error_message=outcome.message or "Failed to send SMS",
            charged=charged,
        )

    async def send_bulk(
        self,
        business_id: str,
        recipients: Sequence[str],
        body: str,
        sender: Optional[str] = None,
        template_id: Optional[str] = None,
    ) -> BulkSendResult:
        """Send one body to many recipients; each recipient is billed independently."""
        set_log_business(business_id)
        if not recipients or not body:
            return BulkSendResult(rejection=self._reject(
                business_id, RejectionReason.MISSING_FIELDS, "Recipients array and message are required",
            ))

        sender_result = await self.senders.validate(business_id, sender)
        if not sender_result.ok:
            return BulkSendResult(rejection=self._reject(
                business_id, RejectionReason.INVALID_SENDER, "Invalid or unapproved sender ID", sender=sender,
            ))
        identity = sender_result.unwrap()

        estimated = message_cost(body) * len(recipients)
        if not await self.ledger.has_sufficient_credits(business_id, self.account_type, estimated):
            balance = await self.ledger.current_balance(business_id, self.account_type)
            return BulkSendResult(estimated_cost=estimated, rejection=self._reject(
                business_id, RejectionReason.INSUFFICIENT_CREDITS, "Insufficient credits for bulk send",
                required_credits=estimated, current_balance=balance, additional_needed=max(estimated - balance, 0),
            ))

        semaphore = asyncio.Semaphore(self.bulk_concurrency)

        async def _one(recipient: str) -> SendResult:
            async with semaphore:
                return await self.send_message(business_id, recipient, body, str(identity.id), template_id)

        results = await asyncio.gather(*(_one(r) for r in recipients))
        return BulkSendResult(results=list(results), estimated_cost=estimated)

    async def get_message_details(self, business_id: str, id: uuid.UUID) -> Optional[MessageDetails]:
        message = await self.messages.get(business_id, id)
        if message is None:
            return None
        delivery = None
        if message.external_id:
            delivery = await self.gateway.get_delivery_status(message.external_id)
        return MessageDetails(
            message=message,
            delivery_status=delivery,
            segments=message_cost(message.body),
            characters=len(message.body),
            encoding="UCS-2" if requires_unicode(message.body) else "GSM-7",
        )


__all__ = [
    "CHARGE_POLICY", "classify_outcome",
    "RejectionReason", "SendAccepted", "SendRejected", "SendFailed", "SendResult",
    "BulkSendResult", "MessageDetails", "SendOrchestrator",
]
