"""
Capability checks for escrow admin actions.

Admin actions ask "may this actor do X?" through a CapabilityChecker
rather than looking at identities themselves. The default checker maps
each capability onto a Django model permission declared on Order, so
operators are granted capabilities through groups or user permissions in
the Django admin. Superusers hold every capability.

A different policy can be plugged in with settings.ORDER_CAPABILITY_CHECKER
(dotted path to a class implementing the protocol).

Usage:
    from orders.capabilities import RELEASE_FUNDS, has_capability

    if not has_capability(request.user, RELEASE_FUNDS):
        raise ForbiddenError(...)
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from django.conf import settings
from django.utils.module_loading import import_string

RELEASE_FUNDS = "orders.release"
REFUND = "orders.refund"
VIEW_DASHBOARD = "orders.view_dashboard"

DEFAULT_CAPABILITY_CHECKER = "orders.capabilities.DjangoPermissionCapabilityChecker"


@runtime_checkable
class CapabilityChecker(Protocol):
    def has_capability(self, actor: Any, capability: str) -> bool: ...


class DjangoPermissionCapabilityChecker:
    """
    Resolve capabilities through ``User.has_perm``.

    Unknown capabilities are never granted. Anonymous and inactive actors
    hold no capabilities.
    """

    permission_map = {
        RELEASE_FUNDS: "orders.release_funds",
        REFUND: "orders.refund_order",
        VIEW_DASHBOARD: "orders.view_escrow_dashboard",
    }

    def has_capability(self, actor: Any, capability: str) -> bool:
        if actor is None or not getattr(actor, "is_authenticated", False):
            return False
        if not getattr(actor, "is_active", False):
            return False

        permission = self.permission_map.get(capability)
        if permission is None:
            return False
        return actor.has_perm(permission)


def get_capability_checker() -> CapabilityChecker:
    path = getattr(settings, "ORDER_CAPABILITY_CHECKER", DEFAULT_CAPABILITY_CHECKER)
    return import_string(path)()


def has_capability(actor: Any, capability: str) -> bool:
    return get_capability_checker().has_capability(actor, capability)
