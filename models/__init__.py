"""Database models package.

This package contains the SQLAlchemy ORM model definitions for the application.
Each model lives in its own module and is re-exported here for convenience.
"""

# Re-export model classes from individual modules
from .user import User  # noqa: F401
from .switch import Switch, SwitchStatus  # noqa: F401
from .recipient import Recipient  # noqa: F401
from .message import Message  # noqa: F401
from .verifier import Verifier, VerifierStatus  # noqa: F401
from .verification import (  # noqa: F401
    VerificationRequest,
    VerificationResult,
    VerificationToken,
    VerificationVote,
    VoteRecord,
)
from .email_delivery import EmailDelivery, DeliveryStatus  # noqa: F401
from .check_in_token import CheckInToken  # noqa: F401
from .audit_log import AuditLog, AuditAction, EntityType  # noqa: F401

__all__ = [
    "User",
    "Switch",
    "SwitchStatus",
    "Recipient",
    "Message",
    "Verifier",
    "VerifierStatus",
    "VerificationRequest",
    "VerificationResult",
    "VerificationToken",
    "VerificationVote",
    "VoteRecord",
    "EmailDelivery",
    "DeliveryStatus",
    "CheckInToken",
    "AuditLog",
    "AuditAction",
    "EntityType",
]
