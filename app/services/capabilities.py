"""Capability checks injected into the lifecycle services.

Role and subscription-plan policy lives behind a single
``can_perform(action, actor_id, organisation_id)`` call so lifecycle code
never consults plan or role helpers directly.
"""

import logging
import uuid
from typing import Protocol

logger = logging.getLogger(__name__)

ISSUE_DOCUMENT = "document.issue"
CREATE_VERSION = "document.create_version"
SUPERSEDE_DOCUMENT = "document.supersede"
APPROVE_DOCUMENT = "document.approve"
LOCK_PDF = "document.lock_pdf"
REOPEN_ACTION = "action.reopen"

ALL_CAPABILITIES = frozenset(
    {
        ISSUE_DOCUMENT,
        CREATE_VERSION,
        SUPERSEDE_DOCUMENT,
        APPROVE_DOCUMENT,
        LOCK_PDF,
        REOPEN_ACTION,
    }
)


class CapabilityChecker(Protocol):
    def can_perform(
        self,
        action: str,
        actor_id: uuid.UUID | str | None,
        organisation_id: uuid.UUID | str | None,
    ) -> bool: ...


class AllowAll:
    def can_perform(self, action, actor_id, organisation_id) -> bool:
        return True


class RoleCapabilities:
    """Maps each actor to a role and each role to its allowed actions."""

    DEFAULT_ROLES = {
        "admin": ALL_CAPABILITIES,
        "assessor": frozenset({ISSUE_DOCUMENT, CREATE_VERSION, LOCK_PDF}),
        "approver": frozenset({APPROVE_DOCUMENT}),
        "viewer": frozenset(),
    }

    def __init__(
        self,
        actor_roles: dict[str, str],
        roles: dict[str, frozenset[str]] | None = None,
    ):
        self.actor_roles = {str(k): v for k, v in actor_roles.items()}
        self.roles = roles or self.DEFAULT_ROLES

    def can_perform(self, action, actor_id, organisation_id) -> bool:
        role = self.actor_roles.get(str(actor_id))
        allowed = action in self.roles.get(role, frozenset())
        if not allowed:
            logger.info(
                "Capability %s denied for actor %s (role=%s)", action, actor_id, role
            )
        return allowed


allow_all = AllowAll()
