"""Error kinds surfaced at the service boundary.

Every rejected operation raises a ComplianceError subclass carrying a stable
machine-readable code and an HTTP-equivalent status.
"""

from __future__ import annotations

from typing import Optional


class ComplianceError(Exception):
    code: str = "INTERNAL_ERROR"
    status_code: int = 500
    default_message: str = "Operation failed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code}


class ValidationError(ComplianceError):
    code = "VALIDATION_ERROR"
    status_code = 400
    default_message = "Invalid input"


class NotFoundError(ComplianceError):
    code = "NOT_FOUND"
    status_code = 404
    default_message = "Not found"


class InvalidStatusError(ComplianceError):
    code = "INVALID_STATUS"
    status_code = 400
    default_message = "Operation not allowed in the current status"


class AssessmentLockedError(ComplianceError):
    code = "ASSESSMENT_LOCKED"
    status_code = 400
    default_message = "Assessment is not editable"


class InvalidTransitionError(ComplianceError):
    code = "INVALID_TRANSITION"
    status_code = 422
    default_message = "Invalid status transition"


class MandatoryControlError(ComplianceError):
    code = "MANDATORY_CONTROL"
    status_code = 400
    default_message = (
        "This control is mandatory for healthcare organizations and cannot be marked as N/A"
    )


class NotesRequiredError(ComplianceError):
    code = "NOTES_REQUIRED"
    status_code = 400
    default_message = "Notes or evidence upload required before submitting for review"


class EvidenceRequiredError(ComplianceError):
    code = "EVIDENCE_REQUIRED"
    status_code = 400
    default_message = "Evidence upload required to close CRITICAL/HIGH tasks"


class JustificationRequiredError(ComplianceError):
    code = "JUSTIFICATION_REQUIRED"
    status_code = 400
    default_message = "Written justification required for deferral"


class RejectionNoteRequiredError(ComplianceError):
    code = "REJECTION_NOTE_REQUIRED"
    status_code = 400
    default_message = "Rejection note required"


class ForbiddenError(ComplianceError):
    code = "FORBIDDEN"
    status_code = 403
    default_message = "Insufficient permissions"


class OnboardingIncompleteError(ComplianceError):
    code = "ONBOARDING_REQUIRED"
    status_code = 400
    default_message = "Organization onboarding must be completed first"


class InvalidUserError(ComplianceError):
    code = "INVALID_USER"
    status_code = 400
    default_message = "User not found in organization"


class ServiceUnavailableError(ComplianceError):
    code = "SERVICE_UNAVAILABLE"
    status_code = 503
    default_message = "Text generation service unavailable"


class CatalogError(Exception):
    """Malformed control catalog. Raised at load time, never per request."""
