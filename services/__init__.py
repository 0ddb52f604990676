"""Business logic service layer.

This package groups the operations that coordinate multiple models: the
switch lifecycle, verification quorum, message encryption and delivery, and
the scheduler that drives them. Route handlers stay thin and delegate here.
"""

from services.user_service import create_user, get_user_by_email  # noqa: F401
from services.switch_service import (
    create_switch,
    update_switch,
    delete_switch,
    check_in,
    check_in_with_token,
    cancel_switch,
    reactivate_switch,
    pause_switch,
    resume_switch,
)  # noqa: F401
from services.recipient_service import add_recipient  # noqa: F401
from services.message_service import set_message  # noqa: F401
from services.message_delivery import deliver_message  # noqa: F401


__all__ = [
    "create_user",
    "get_user_by_email",
    "create_switch",
    "update_switch",
    "delete_switch",
    "check_in",
    "check_in_with_token",
    "cancel_switch",
    "reactivate_switch",
    "pause_switch",
    "resume_switch",
    "add_recipient",
    "set_message",
    "deliver_message",
]
