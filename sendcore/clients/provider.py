"""Upstream SMS gateway adapter.

The gateway answers either with a pipe-delimited string (`CODE|ID|DESTINATION|MESSAGE...`)
or a JSON object (`code|statusCode`, `status`, `message`, `message_id`). Both shapes are
normalized into a `ProviderOutcome`:

    Submitted(external_id, message)            -- accepted by the gateway
    Failed(category, message, error_code)      -- anything else

Nothing in this module raises for transport, HTTP or payload problems; the send orchestrator
always receives an outcome it can classify.
"""
from __future__ import annotations

import enum
import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional, Union

import httpx

from sendcore.core.settings import Settings
from sendcore.logging import log_provider_outcome
from sendcore.phone import is_wire_recipient

logger = logging.getLogger(__name__)

SUCCESS_CODE = "1701"
INVALID_PARAMETERS_CODE = "1702"
INTERNAL_ERROR_CODE = "1710"

SENDER_NAME_RE = re.compile(r"^[A-Za-z0-9]{3,11}$")


class OutcomeCategory(str, enum.Enum):
    SUBMITTED = "submitted"
    INVALID_PARAMETERS = "invalid_parameters"
    AUTHENTICATION_ERROR = "authentication_error"
    INVALID_MESSAGE = "invalid_message"
    INVALID_DESTINATION = "invalid_destination"
    INVALID_SENDER = "invalid_sender"
    PROVIDER_ERROR = "provider_error"
    INSUFFICIENT_CREDIT = "insufficient_credit"
    TIMEOUT = "timeout"
    REJECTED = "rejected"
    FAILED = "failed"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ErrorCodeInfo:
    category: OutcomeCategory
    message: str


PROVIDER_ERROR_CODES: dict[str, ErrorCodeInfo] = {
    "1702": ErrorCodeInfo(OutcomeCategory.INVALID_PARAMETERS, "Invalid URL Error - Missing or blank parameters"),
    "1703": ErrorCodeInfo(OutcomeCategory.AUTHENTICATION_ERROR, "Invalid value in username or password field"),
    "1704": ErrorCodeInfo(OutcomeCategory.INVALID_PARAMETERS, 'Invalid value in "type" field'),
    "1705": ErrorCodeInfo(OutcomeCategory.INVALID_MESSAGE, "Invalid Message"),
    "1706": ErrorCodeInfo(OutcomeCategory.INVALID_DESTINATION, "Invalid Destination"),
    "1707": ErrorCodeInfo(OutcomeCategory.INVALID_SENDER, "Invalid Source (Sender)"),
    "1708": ErrorCodeInfo(OutcomeCategory.INVALID_PARAMETERS, 'Invalid value for "dlr" field'),
    "1709": ErrorCodeInfo(OutcomeCategory.AUTHENTICATION_ERROR, "User validation failed"),
    "1710": ErrorCodeInfo(OutcomeCategory.PROVIDER_ERROR, "Internal Error"),
    "1025": ErrorCodeInfo(OutcomeCategory.INSUFFICIENT_CREDIT, "Insufficient Credit - User"),
    "1026": ErrorCodeInfo(OutcomeCategory.INSUFFICIENT_CREDIT, "Insufficient Credit - Reseller"),
}

DELIVERY_STATUS_CODES: dict[str, str] = {
    "DELIVRD": "delivered",
    "EXPIRED": "expired",
    "DELETED": "deleted",
    "UNDELIV": "undelivered",
    "ACCEPTD": "accepted",
    "UNKNOWN": "unknown",
    "REJECTD": "rejected",
}


def lookup_error_code(code: str) -> ErrorCodeInfo:
    """Map an upstream code to its category; unknown codes become `rejected`."""
    info = PROVIDER_ERROR_CODES.get(code)
    if info:
        return info
    return ErrorCodeInfo(OutcomeCategory.REJECTED, f"Unknown error from provider (Code: {code})")


# ---------------------------------------------------------------------------
# Outcome variants
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class Submitted:
    external_id: str
    message: str = "Message submitted successfully"

    @property
    def success(self) -> bool:
        return True

    @property
    def category(self) -> OutcomeCategory:
        return OutcomeCategory.SUBMITTED

    @property
    def error_code(self) -> None:
        return None


@dataclass(frozen=True)
class Failed:
    category: OutcomeCategory
    message: str
    error_code: Optional[str] = None

    @property
    def success(self) -> bool:
        return False

    @property
    def external_id(self) -> None:
        return None


ProviderOutcome = Union[Submitted, Failed]


@dataclass
class DeliveryStatus:
    status: str
    timestamp: Optional[datetime] = None
    error: Optional[str] = None


@dataclass
class ProviderBalance:
    balance: float
    currency: str
    error: Optional[str] = None


# ---------------------------------------------------------------------------
# Pure helpers (independently testable)
# ---------------------------------------------------------------------------
def validate_wire_parameters(recipient: str, body: str, sender_name: str, country_code: str = "233") -> Optional[str]:
    """Return a reason string when the request would be refused upstream, else None."""
    if not recipient or not body or not sender_name:
        return "Missing required parameters: recipient, message, or senderId"
    if not is_wire_recipient(recipient, country_code):
        return f"Invalid recipient format. Must be {country_code}XXXXXXXXX"
    if not SENDER_NAME_RE.match(sender_name):
        return "Invalid sender ID format. Must be 3-11 alphanumeric characters"
    return None


def _parse_delimited(payload: str, client_message_id: str) -> ProviderOutcome:
    parts = payload.strip().split("|")
    code = parts[0].strip()
    if not code.isdigit():
        return Failed(OutcomeCategory.FAILED, "Invalid response format from provider", INTERNAL_ERROR_CODE)
    if code == SUCCESS_CODE:
        external_id = parts[1].strip() if len(parts) > 1 and parts[1].strip() else client_message_id
        message = "|".join(parts[3:]).strip() or "Message submitted successfully"
        return Submitted(external_id=external_id, message=message)
    if code in PROVIDER_ERROR_CODES:
        info = PROVIDER_ERROR_CODES[code]
        return Failed(info.category, info.message, code)
    detail = "|".join(parts[1:]).strip()
    return Failed(OutcomeCategory.REJECTED, detail or lookup_error_code(code).message, code)


def _text(value: Any) -> Optional[str]:
    """Coerce a JSON field to text; objects and arrays are kept as compact JSON."""
    if value is None or value == "":
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"), default=str)
    return str(value)


def _parse_object(payload: dict[str, Any], client_message_id: str) -> ProviderOutcome:
    raw_code = payload.get("code", payload.get("statusCode"))
    code = str(raw_code).strip() if raw_code is not None else None
    status = str(payload.get("status") or "").lower()
    message = _text(payload.get("message"))
    if code == SUCCESS_CODE or status == "success":
        return Submitted(
            external_id=_text(payload.get("message_id")) or client_message_id,
            message=message or "Message submitted successfully",
        )
    message = message or _text(payload.get("error"))
    if code and code in PROVIDER_ERROR_CODES:
        info = PROVIDER_ERROR_CODES[code]
        return Failed(info.category, message or info.message, code)
    return Failed(OutcomeCategory.REJECTED, message or "Unknown error from provider", code)


def parse_send_response(payload: Any, client_message_id: str) -> ProviderOutcome:
    """Normalize an upstream send response. Never raises."""
    try:
        if isinstance(payload, str):
            return _parse_delimited(payload, client_message_id)
        if isinstance(payload, dict):
            return _parse_object(payload, client_message_id)
    except Exception as e:  # noqa: BLE001
        logger.warning("Failed to parse provider response %r: %s", payload, e)
        return Failed(OutcomeCategory.FAILED, "Failed to parse provider response", INTERNAL_ERROR_CODE)
    return Failed(OutcomeCategory.FAILED, "Invalid response format from provider", INTERNAL_ERROR_CODE)


def parse_delivery_status(code: Optional[str]) -> str:
    return DELIVERY_STATUS_CODES.get((code or "").strip().upper(), "unknown")


def _decode_body(resp: httpx.Response) -> Any:
    text = resp.text or ""
    stripped = text.strip()
    if stripped.startswith("{") or "json" in resp.headers.get("content-type", ""):
        try:
            return resp.json()
        except ValueError:
            return text
    return text


def _has_status_code(body: Any) -> bool:
    if isinstance(body, dict):
        return body.get("code", body.get("statusCode")) is not None
    if isinstance(body, str):
        head = body.strip().split("|", 1)[0].strip()
        return head.isdigit()
    return False


# ---------------------------------------------------------------------------
# Gateway client
# ---------------------------------------------------------------------------
class ProviderGateway:
    """Thin async client for the upstream gateway.

    `http_client` may be injected (tests, connection reuse); otherwise a short-lived
    `httpx.AsyncClient` is opened per call.
    """

    provider_name = "nalo"

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        timeout: float = 30.0,
        default_sender_id: str = "Sendexa",
        country_code: str = "233",
        currency: str = "GHS",
        http_client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.default_sender_id = default_sender_id
        self.country_code = country_code
        self.currency = currency
        self._http = http_client

    @classmethod
    def from_settings(cls, settings: Settings, http_client: httpx.AsyncClient | None = None) -> "ProviderGateway":
        return cls(
            settings.PROVIDER_BASE_URL,
            settings.PROVIDER_API_KEY,
            timeout=settings.PROVIDER_TIMEOUT_SECONDS,
            default_sender_id=settings.DEFAULT_SENDER_ID,
            country_code=settings.COUNTRY_CALLING_CODE,
            currency=settings.DEFAULT_CURRENCY,
            http_client=http_client,
        )

    async def _get(self, path: str, params: dict[str, str]) -> httpx.Response:
        url = f"{self.base_url}/{path}/"
        headers = {"Accept": "application/json"}
        if self._http is not None:
            return await self._http.get(url, params=params, headers=headers, timeout=self.timeout)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.get(url, params=params, headers=headers)

    async def send(self, recipient: str, body: str, sender_name: Optional[str], client_message_id: str) -> ProviderOutcome:
        sender = sender_name or self.default_sender_id
        reason = validate_wire_parameters(recipient, body, sender, self.country_code)
        if reason:
            outcome: ProviderOutcome = Failed(OutcomeCategory.INVALID_PARAMETERS, reason, INVALID_PARAMETERS_CODE)
            log_provider_outcome(client_message_id, False, outcome.category.value, outcome.error_code, local=True)
            return outcome

        params = {
            "key": self.api_key,
            "type": "0",  # plain text
            "destination": recipient,
            "dlr": "1",  # delivery report requested
            "source": sender,
            "message": body,
        }
        outcome = await self._send_request(params, client_message_id)
        log_provider_outcome(client_message_id, outcome.success, outcome.category.value, outcome.error_code)
        return outcome

    async def _send_request(self, params: dict[str, str], client_message_id: str) -> ProviderOutcome:
        try:
            resp = await self._get("send-message", params)
        except httpx.TimeoutException:
            logger.warning("Provider send timed out for %s", client_message_id)
            return Failed(OutcomeCategory.TIMEOUT, "Provider request timeout", INTERNAL_ERROR_CODE)
        except httpx.HTTPError as e:
            logger.warning("Provider send transport error for %s: %s", client_message_id, e)
            return Failed(OutcomeCategory.PROVIDER_ERROR, f"Provider connection error: {e}", INTERNAL_ERROR_CODE)
        except Exception as e:  # noqa: BLE001
            logger.exception("Unexpected provider adapter error for %s", client_message_id)
            return Failed(OutcomeCategory.FAILED, str(e) or "Unknown provider error", INTERNAL_ERROR_CODE)

        body = _decode_body(resp)
        if resp.status_code >= 400 and not _has_status_code(body):
            logger.warning("Provider send failed %s: %s", resp.status_code, resp.text[:200])
            return Failed(
                OutcomeCategory.PROVIDER_ERROR,
                f"HTTP {resp.status_code}: {resp.reason_phrase}",
                INTERNAL_ERROR_CODE,
            )
        return parse_send_response(body, client_message_id)

    async def get_delivery_status(self, external_id: str) -> DeliveryStatus:
        """Best-effort delivery report lookup; failures return status `unknown`."""
        try:
            resp = await self._get("delivery-status", {"key": self.api_key, "message_id": external_id})
            resp.raise_for_status()
            body = _decode_body(resp)
            if isinstance(body, str):
                parts = body.strip().split("|")
                if parts[0].strip() == SUCCESS_CODE:
                    return DeliveryStatus(
                        status=parse_delivery_status(parts[1] if len(parts) > 1 else None),
                        timestamp=datetime.now(timezone.utc),
                    )
                return DeliveryStatus(status="unknown", error=lookup_error_code(parts[0].strip()).message)
            if isinstance(body, dict):
                ts = body.get("timestamp")
                return DeliveryStatus(
                    status=str(body.get("status") or "unknown"),
                    timestamp=datetime.fromisoformat(ts) if ts else None,
                )
        except (httpx.HTTPError, ValueError, TypeError) as e:
            logger.warning("Delivery status check failed for %s: %s", external_id, e)
            return DeliveryStatus(status="unknown", error="Failed to get delivery status")
        return DeliveryStatus(status="unknown", error="Invalid response format from provider")

    async def check_balance(self) -> ProviderBalance:
        """Best-effort provider-side balance; failures return 0 with an error message."""
        try:
            resp = await self._get("check-balance", {"key": self.api_key, "action": "balance"})
            resp.raise_for_status()
            body = _decode_body(resp)
            if isinstance(body, str):
                parts = body.strip().split("|")
                if parts[0].strip() == SUCCESS_CODE:
                    return ProviderBalance(balance=float(parts[1] if len(parts) > 1 and parts[1] else 0), currency=self.currency)
                error = PROVIDER_ERROR_CODES.get(parts[0].strip())
                return ProviderBalance(balance=0, currency=self.currency, error=error.message if error else "Failed to check balance")
            if isinstance(body, dict):
                return ProviderBalance(
                    balance=float(body.get("balance") or 0),
                    currency=body.get("currency") or self.currency,
                )
        except (httpx.HTTPError, ValueError, TypeError) as e:
            logger.warning("Provider balance check failed: %s", e)
            return ProviderBalance(balance=0, currency=self.currency, error="Failed to check balance with provider")
        return ProviderBalance(balance=0, currency=self.currency, error="Invalid response format from provider")


__all__ = [
    "OutcomeCategory", "ErrorCodeInfo", "PROVIDER_ERROR_CODES", "lookup_error_code",
    "Submitted", "Failed", "ProviderOutcome", "DeliveryStatus", "ProviderBalance",
    "validate_wire_parameters", "parse_send_response", "parse_delivery_status",
    "ProviderGateway",
]
