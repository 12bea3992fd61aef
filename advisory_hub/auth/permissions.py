"""What each role may do.

Capabilities are looked up, never assembled at runtime: each role maps to a
frozenset and the mapping itself is read-only.
"""

import enum
from types import MappingProxyType

from advisory_hub.models.enums import UserRole


class Capability(str, enum.Enum):
    VIEW_OWN_DASHBOARD = "view_own_dashboard"
    BOOK_MEETINGS = "book_meetings"
    SEND_MESSAGES = "send_messages"
    VIEW_OWN_ROADMAPS = "view_own_roadmaps"
    UPDATE_OWN_TASKS = "update_own_tasks"
    MANAGE_USERS = "manage_users"
    MANAGE_SESSIONS = "manage_sessions"
    MANAGE_SERVICES = "manage_services"
    MANAGE_ENROLLMENTS = "manage_enrollments"
    MANAGE_MEETINGS = "manage_meetings"
    MANAGE_ROADMAPS = "manage_roadmaps"
    MANAGE_NEWSLETTER = "manage_newsletter"
    MANAGE_FEEDBACK = "manage_feedback"
    VIEW_ADMIN_DASHBOARD = "view_admin_dashboard"


_CLIENT_CAPABILITIES = frozenset({
    Capability.VIEW_OWN_DASHBOARD,
    Capability.BOOK_MEETINGS,
    Capability.SEND_MESSAGES,
    Capability.VIEW_OWN_ROADMAPS,
    Capability.UPDATE_OWN_TASKS,
})

ROLE_CAPABILITIES = MappingProxyType({
    UserRole.CLIENT: _CLIENT_CAPABILITIES,
    UserRole.ADMIN: frozenset(Capability),
})


def capabilities_for(role: UserRole | str | None) -> frozenset[Capability]:
    try:
        return ROLE_CAPABILITIES[UserRole(role)]
    except ValueError:
        return frozenset()


def has_capability(role: UserRole | str | None, capability: Capability) -> bool:
    return capability in capabilities_for(role)
