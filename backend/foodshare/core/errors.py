"""
Domain error taxonomy.

Services raise these; the API layer renders them as
{"error": code, "detail": message} with the matching HTTP status so the
UI can tell "already claimed" apart from "no longer available".
"""

from fastapi import status


class FoodShareError(Exception):
    """Base class for all engine errors."""

    code: str = "error"
    status_code: int = status.HTTP_400_BAD_REQUEST
    default_detail: str = "Request failed"

    def __init__(self, detail: str | None = None) -> None:
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class NotFound(FoodShareError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found"


class Forbidden(FoodShareError):
    code = "forbidden"
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Not allowed"


class Conflict(FoodShareError):
    code = "conflict"
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Conflicting request"


class DuplicateClaim(Conflict):
    code = "duplicate_claim"
    default_detail = "You have already claimed this resource"


class Exhausted(FoodShareError):
    code = "exhausted"
    status_code = status.HTTP_409_CONFLICT
    default_detail = "No portions left"


class Expired(FoodShareError):
    code = "expired"
    status_code = status.HTTP_410_GONE
    default_detail = "This resource is no longer available"


class InvalidInput(FoodShareError):
    code = "invalid_input"
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid input"
