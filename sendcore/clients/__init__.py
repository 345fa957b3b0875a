from .result import Result, success, failure
from .provider import (
    ProviderGateway, ProviderOutcome, Submitted, Failed, OutcomeCategory,
    DeliveryStatus, ProviderBalance, parse_send_response,
)

__all__ = [
    'Result', 'success', 'failure',
    'ProviderGateway', 'ProviderOutcome', 'Submitted', 'Failed', 'OutcomeCategory',
    'DeliveryStatus', 'ProviderBalance', 'parse_send_response',
]
