from app.models.person import Person  # noqa: F401
from app.models.assessment import (  # noqa: F401
    Action,
    ActionStatus,
    ApprovalStatus,
    Attachment,
    Document,
    DocumentChangeSummary,
    DocumentType,
    IssueStatus,
    ModuleInstance,
    Organisation,
    OrganisationSettings,
)
