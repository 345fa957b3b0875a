from .ledger import Ledger
from .senders import SenderIdentityRepository, SenderIdentityError, validate_sender_name
from .messages import MessageRepository, generate_message_id
from .otp import OtpRepository, generate_otp_code, hash_otp_code

__all__ = [
    'Ledger',
    'SenderIdentityRepository', 'SenderIdentityError', 'validate_sender_name',
    'MessageRepository', 'generate_message_id',
    'OtpRepository', 'generate_otp_code', 'hash_otp_code',
]
