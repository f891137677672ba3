class AppException(Exception):
    """Base application exception."""

    status_code: int = 500

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__doc__ or self.__class__.__name__

    @property
    def code(self) -> str:
        return self.__class__.__name__


class NotFoundError(AppException):
    """Resource not found exception."""

    status_code = 404


class ValidationError(AppException):
    """Validation error exception."""

    status_code = 400


class InvalidStateTransition(AppException):
    """Illegal subscription lifecycle move."""

    status_code = 409


class QuotaExceeded(AppException):
    """Plan limit reached."""

    status_code = 429


class UntrustedRedirect(AppException):
    """Checkout URL is not on the trusted host allowlist."""

    status_code = 502


class PaymentVerificationFailed(AppException):
    """Inbound payment notification could not be authenticated."""

    status_code = 401


class PaymentProviderError(AppException):
    """Payment provider request failed."""

    status_code = 502


class OrganizationBlocked(AppException):
    """Organization is locked out until billing is resolved."""

    status_code = 402


class WebhookNotConfigured(AppException):
    """Inbound webhook credentials are missing on the server."""

    status_code = 500
