"""
Payment models.

- ConnectedAccount: seller payout destination
- WebhookEvent: audit log of inbound provider events
"""

from payments.models.connected_account import ConnectedAccount
from payments.models.webhook_event import WebhookEvent

__all__ = [
    "ConnectedAccount",
    "WebhookEvent",
]
