"""
Error taxonomy shared by the cache, the store adapters and the outer services.
"""
from typing import Optional

# Codes that mean "the row is already gone"; deletes treat them as success.
NOT_FOUND_CODES = {"PGRST116", "not_found"}


class GymDeskError(Exception):
    """Base class for every error raised by this project."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(GymDeskError):
    """A required field is missing or invalid. Rejected locally, nothing is sent."""


class InvalidQRTokenError(ValidationError):
    """A scanned token does not follow the member QR convention."""


class AuthRequiredError(GymDeskError):
    """An operation needs a signed-in account and there is none."""

    def __init__(self, message: str = "Please log in first."):
        super().__init__(message)


class RemoteError(GymDeskError):
    """
    A store call failed (constraint violation, network error, authorization denial).

    Attributes:
        code (str): Store error code, e.g. '23505' or 'network'.
        message (str): Human readable message from the store.
    """

    def __init__(self, code: Optional[str], message: str):
        super().__init__(message)
        self.code = str(code) if code is not None else "unknown"

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class RemoteWriteError(RemoteError):
    """The store rejected an insert, update or delete."""


class RemoteReadError(RemoteError):
    """A snapshot fetch failed."""


class ServiceError(GymDeskError):
    """An outer collaborator (payment links, recommendations) returned an error."""


class PaymentLinkError(ServiceError):
    pass


class RecommendationError(ServiceError):
    pass


def is_not_found(exc: BaseException) -> bool:
    return isinstance(exc, RemoteError) and exc.code in NOT_FOUND_CODES
