"""
Application errors.

Every error that can reach a client carries an HTTP status and a stable code.
`posted.main` registers a single handler that renders them as
`{"error": <message>, "code": <code>}`.
"""


class AppError(Exception):
    """Base class for all errors surfaced to API callers."""

    status_code = 500
    code = "INTERNAL_ERROR"
    message = "Internal server error"

    def __init__(self, message: str | None = None, details: dict | None = None):
        self.message = message or self.message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict:
        body = {"error": self.message, "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


# --- Caller problems ---

class AuthenticationRequired(AppError):
    status_code = 401
    code = "AUTHENTICATION_REQUIRED"
    message = "Unauthorized"


class Forbidden(AppError):
    status_code = 403
    code = "FORBIDDEN"
    message = "Not a member of this organization"


class ValidationFailed(AppError):
    status_code = 400
    code = "VALIDATION_FAILED"
    message = "Invalid request"


# --- Business rules ---

class PreconditionFailed(AppError):
    status_code = 400
    code = "PRECONDITION_FAILED"
    message = "Precondition failed"


class SubscriptionAlreadyActive(PreconditionFailed):
    code = "SUBSCRIPTION_ALREADY_ACTIVE"
    message = "Organization already has an active subscription"


class NoBillingAccount(PreconditionFailed):
    code = "NO_BILLING_ACCOUNT"
    message = "No billing account found"


class InactiveSubscription(PreconditionFailed):
    code = "INACTIVE_SUBSCRIPTION"
    message = "This organization does not have an active subscription"


class SeatLimitReached(PreconditionFailed):
    code = "SEAT_LIMIT_REACHED"
    message = "This organization has reached its seat limit"


class AlreadyMember(PreconditionFailed):
    code = "ALREADY_MEMBER"
    message = "You are already a member of this organization"


class InsufficientCredits(PreconditionFailed):
    status_code = 402
    code = "INSUFFICIENT_CREDITS"
    message = "Insufficient credits"


# --- Lookups ---

class NotFound(AppError):
    status_code = 404
    code = "NOT_FOUND"
    message = "Not found"


class InvalidInviteCode(NotFound):
    code = "INVALID_INVITE_CODE"
    message = "Invalid invite code"


class OrganizationNotFound(NotFound):
    code = "ORGANIZATION_NOT_FOUND"
    message = "Organization not found"


# --- Upstream services ---

class UpstreamFailure(AppError):
    status_code = 500
    code = "UPSTREAM_FAILURE"
    message = "An upstream service failed"


class SubmissionFailed(UpstreamFailure):
    code = "SUBMISSION_FAILED"
    message = "Failed to start generation"


class GenerationFailed(UpstreamFailure):
    code = "GENERATION_FAILED"
    message = "Generation failed"


class GenerationTimeout(UpstreamFailure):
    code = "GENERATION_TIMEOUT"
    message = "Generation timed out"


# --- Webhooks ---

class SignatureInvalid(AppError):
    status_code = 400
    code = "INVALID_SIGNATURE"
    message = "Invalid signature"


class MissingOrganizationReference(AppError):
    status_code = 400
    code = "MISSING_ORGANIZATION_REFERENCE"
    message = "Event carries no organization reference"


class InternalWriteFailure(AppError):
    status_code = 500
    code = "INTERNAL_WRITE_FAILURE"
    message = "Failed to persist changes"
