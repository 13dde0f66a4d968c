from dojo.mailer.sender import (
    EmailSender,
    EmailSendError,
    NoopEmailSender,
    ResendEmailSender,
    SendRequest,
    SendResult,
)

__all__ = [
    "EmailSender",
    "EmailSendError",
    "NoopEmailSender",
    "ResendEmailSender",
    "SendRequest",
    "SendResult",
]
