from .send_service import (
    SendOrchestrator,
    SendAccepted,
    SendRejected,
    SendFailed,
    SendResult,
    BulkSendResult,
    MessageDetails,
    RejectionReason,
    classify_outcome,
)
from .otp_service import OtpService, OtpIssued
from .factory import Services, build_services

__all__ = [
    'SendOrchestrator', 'SendAccepted', 'SendRejected', 'SendFailed', 'SendResult',
    'BulkSendResult', 'MessageDetails', 'RejectionReason', 'classify_outcome',
    'OtpService', 'OtpIssued',
    'Services', 'build_services',
]
