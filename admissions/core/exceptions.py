"""Domain errors raised by the enrollment workflow."""

from typing import Any


class AdmissionsError(Exception):
    """Base class for admissions desk errors."""

    default_message = "Request failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ReservationValidationError(AdmissionsError):
    """Client-side validation rejected a reservation draft."""

    default_message = "Please fix the highlighted fields"

    def __init__(self, errors: dict[str, str], message: str | None = None) -> None:
        self.errors = errors
        super().__init__(message)


class BackendError(AdmissionsError):
    """The ERP backend rejected a request or could not be reached."""

    def __init__(
        self,
        message: str | None = None,
        *,
        status_code: int | None = None,
        payload: Any = None,
    ) -> None:
        self.status_code = status_code
        self.payload = payload
        super().__init__(message)


class ResponseShapeError(AdmissionsError):
    """The ERP answered successfully but with an unusable body."""

    default_message = "Unexpected response from server"


class PanelStateError(AdmissionsError):
    """Operation not allowed in the panel's current state."""

    default_message = "Operation not allowed in the current state"


class PanelClosedError(PanelStateError):
    """The panel was closed before the operation finished."""

    default_message = "Panel was closed"
