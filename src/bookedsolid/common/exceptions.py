"""BookedSolid exception hierarchy."""


class BookedSolidError(Exception):
    """Base exception for all BookedSolid errors."""

    status_code = 500

    def __init__(self, message: str = "", code: str = "BOOKEDSOLID_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class AuthenticationError(BookedSolidError):
    """Raised when a request carries no valid actor."""

    status_code = 401

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message, code="UNAUTHORIZED")


class PermissionDeniedError(BookedSolidError):
    """Raised when an actor lacks the capability for an action."""

    status_code = 403

    def __init__(self, message: str = "Forbidden"):
        super().__init__(message, code="FORBIDDEN")


class NotFoundError(BookedSolidError):
    """Raised when a record cannot be found."""

    status_code = 404

    def __init__(self, message: str = "Not found"):
        super().__init__(message, code="NOT_FOUND")


class ConflictError(BookedSolidError):
    """Raised on duplicate email, existing pending invitation and similar clashes."""

    status_code = 409

    def __init__(self, message: str = "Conflict"):
        super().__init__(message, code="CONFLICT")


class ValidationError(BookedSolidError):
    """Raised when input is malformed or fails a business rule."""

    status_code = 400

    def __init__(self, message: str = "Invalid request", code: str = "INVALID"):
        super().__init__(message, code=code)


class InvalidPermissionError(ValidationError):
    """Raised when a permission override map contains unknown keys or non-bool values."""

    def __init__(self, message: str = "Invalid permission overrides"):
        super().__init__(message, code="INVALID_PERMISSION")


class InvalidTokenError(ValidationError):
    """Raised for unknown, used or cancelled invitation / reset tokens."""

    def __init__(self, message: str = "Invalid token"):
        super().__init__(message, code="INVALID_TOKEN")


class InvitationExpiredError(ValidationError):
    """Raised when an invitation is used after its expiry."""

    def __init__(self, message: str = "This invitation has expired"):
        super().__init__(message, code="EXPIRED")


class WeakPasswordError(ValidationError):
    """Raised when a password does not meet the policy."""

    def __init__(self, message: str = "Password does not meet requirements"):
        super().__init__(message, code="WEAK_PASSWORD")


class WebhookPayloadError(ValidationError):
    """Raised when a webhook body cannot be parsed into a known shape."""

    def __init__(self, message: str = "Invalid payload"):
        super().__init__(message, code="INVALID_PAYLOAD")


class BillingConfigError(BookedSolidError):
    """Raised when Stripe keys or price ids are missing."""

    status_code = 503

    def __init__(self, message: str = "Billing system is not configured"):
        super().__init__(message, code="BILLING_NOT_CONFIGURED")


class PaymentProviderError(BookedSolidError):
    """Raised when a call to the payment provider fails."""

    status_code = 502

    def __init__(self, message: str = "Payment provider request failed"):
        super().__init__(message, code="PAYMENT_PROVIDER_ERROR")
