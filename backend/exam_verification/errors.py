"""
Exception taxonomy for the verification service.

Services raise these; main.py turns them into JSON responses of the form
``{"error": ..., "message": ..., "details": ...}`` with the status code held
by each class.
"""

from typing import Any, Dict, Optional


class VerificationError(Exception):
    """Base class for every error the API reports to clients."""

    status_code = 500
    error = "Internal error"

    def __init__(self, message: str, details: Optional[str] = None,
                 payload: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details
        self.payload = payload or {}

    def to_dict(self) -> Dict[str, Any]:
        body = {"error": self.error, "message": self.message}
        if self.details:
            body["details"] = self.details
        body.update(self.payload)
        return body


class ConfigurationError(VerificationError):
    """Invalid settings. Raised at startup."""
    error = "Invalid configuration"


class ValidationError(VerificationError):
    status_code = 400
    error = "Invalid request"


class StudentNotFoundError(VerificationError):
    status_code = 404
    error = "Student not found"

    def __init__(self, mobile_no: str):
        super().__init__("Student not found.", payload={"found": False})
        self.mobile_no = mobile_no


class RetakeCooldownError(VerificationError):
    status_code = 409
    error = "Retake cooldown"

    def __init__(self, remaining_hours: int, cooldown_hours: int = 12):
        super().__init__(
            f"Retake not allowed within {cooldown_hours} hours of last approval.",
            details=f"Try again in {remaining_hours} hour(s).",
            payload={"remainingHours": remaining_hours},
        )
        self.remaining_hours = remaining_hours


class CredentialsError(VerificationError):
    """The service-account file is missing or unusable."""
    error = "Invalid credentials"

    def __init__(self, message: str):
        super().__init__(
            message,
            details=(
                "Google Sheets credentials are missing or invalid. Place the service account "
                "JSON at the path in GOOGLE_APPLICATION_CREDENTIALS (or credentials.json in the "
                "backend folder) and restart the server."
            ),
        )


class SheetPermissionError(VerificationError):
    status_code = 403
    error = "Permission denied"

    def __init__(self, details: Optional[str] = None):
        super().__init__(
            "Could not access Google Sheets. Please ensure the sheet is shared with the "
            "service account email.",
            details=details,
        )


class SheetNotFoundError(VerificationError):
    status_code = 404
    error = "Sheet not found"

    def __init__(self, details: Optional[str] = None):
        super().__init__(
            "The Google Sheet could not be found. Please check the Sheet ID and sheet name.",
            details=details,
        )


class SheetAccessError(VerificationError):
    error = "Google Sheets request failed"

    def __init__(self, details: Optional[str] = None):
        super().__init__(
            "Could not connect to Google Sheets. Please check your connection and credentials.",
            details=details,
        )


class RowLayoutError(VerificationError):
    """A row about to be written does not have the fixed width."""
    error = "Row layout violation"
