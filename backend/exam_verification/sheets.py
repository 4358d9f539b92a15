"""
Google Sheets access.

The worksheet is used as a row-oriented table: ``SheetStore`` reads the whole
configured range and writes whole rows, either in place or appended. It is
created once at startup from ``Settings`` and shared by every request via the
``get_store`` dependency.

Credential problems found at startup do not stop the server. They are kept
on the store and raised on every request until the file is fixed and the
process restarted.
"""

import json
import time
from contextlib import contextmanager
from typing import Iterator, List, Optional, Sequence, Tuple

import gspread
import gspread.exceptions
import requests
from fastapi import Request
from google.auth.exceptions import GoogleAuthError, TransportError
from google.oauth2.service_account import Credentials

from exam_verification.config import Settings
from exam_verification.errors import (
    CredentialsError, SheetAccessError, SheetNotFoundError, SheetPermissionError,
)
from exam_verification.logging_config import get_logger, log_with_context
from exam_verification.models.student import check_row_width

SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]
# RAW keeps digit strings such as "0987654321" as text.
VALUE_INPUT_OPTION = "RAW"

logger = get_logger("sheets")

Row = List[str]


def load_service_account_info(path) -> dict:
    """Read and sanity-check a service-account JSON file."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            content = f.read().strip()
    except FileNotFoundError:
        raise CredentialsError(
            f"Google service account credentials not found at {path}. Ensure the "
            "credentials.json file exists or set GOOGLE_APPLICATION_CREDENTIALS."
        )
    except OSError as e:
        raise CredentialsError(f"Failed to read credentials file: {e}")

    if not content:
        raise CredentialsError("Credentials file is empty.")
    try:
        info = json.loads(content)
    except json.JSONDecodeError as e:
        raise CredentialsError(f"Invalid JSON in credentials file: {e}")
    if not isinstance(info, dict):
        raise CredentialsError("Invalid credentials file: not a valid JSON object.")
    if not info.get("client_email") or not info.get("private_key"):
        raise CredentialsError("Invalid credentials file: missing client_email or private_key.")
    return info


def api_error_status(error: gspread.exceptions.APIError) -> Optional[int]:
    code = getattr(error, "code", None)
    if isinstance(code, int) and code > 0:
        return code
    response = getattr(error, "response", None)
    return getattr(response, "status_code", None)


@contextmanager
def translate_errors(action: str) -> Iterator[None]:
    """Re-raise gspread/google-auth failures as the service's own errors."""
    try:
        yield
    except (gspread.exceptions.SpreadsheetNotFound, gspread.exceptions.WorksheetNotFound) as e:
        log_with_context(logger, "ERROR", "Sheet not found while trying to {}".format(action),
                         extra_data={"error": repr(e)})
        raise SheetNotFoundError(str(e) or type(e).__name__) from e
    except gspread.exceptions.APIError as e:
        status = api_error_status(e)
        log_with_context(logger, "ERROR", "Sheets API error while trying to {}".format(action),
                         extra_data={"status": status, "error": str(e)})
        if status == 403:
            raise SheetPermissionError(
                "Permission denied. Ensure the Google Sheet is shared with the service account email."
            ) from e
        if status == 404:
            raise SheetNotFoundError(
                "Google Sheet not found. Check the Sheet ID in your configuration."
            ) from e
        if status == 400:
            raise SheetAccessError(
                "Invalid request. Check the sheet range and data format."
            ) from e
        raise SheetAccessError(str(e)) from e
    except gspread.exceptions.GSpreadException as e:
        log_with_context(logger, "ERROR", "Google Sheets failure while trying to {}".format(action),
                         extra_data={"error": repr(e)})
        raise SheetAccessError(str(e) or type(e).__name__) from e
    except TransportError as e:
        log_with_context(logger, "ERROR", "Network error during authentication while trying to {}".format(action),
                         extra_data={"error": str(e)})
        raise SheetAccessError(str(e)) from e
    except GoogleAuthError as e:
        log_with_context(logger, "ERROR", "Google authentication failed while trying to {}".format(action),
                         extra_data={"error": str(e)})
        raise CredentialsError(f"Google Sheets authentication failed: {e}") from e
    except requests.exceptions.RequestException as e:
        log_with_context(logger, "ERROR", "Network error while trying to {}".format(action),
                         extra_data={"error": str(e)})
        raise SheetAccessError(str(e)) from e


class SheetStore:
    """Whole-range reads and whole-row writes against one worksheet."""

    def __init__(self, settings: Settings, client: Optional[gspread.Client] = None):
        self.settings = settings
        self.service_account_email = ""
        self.init_error: Optional[CredentialsError] = None
        self._client = client
        self._worksheet: Optional[gspread.Worksheet] = None

        if self._client is None:
            try:
                self._client = self._authorize()
            except CredentialsError as e:
                self.init_error = e
                log_with_context(logger, "ERROR", e.message,
                                 extra_data={"candidates": [str(p) for p in settings.credentials_candidates]})
                log_with_context(logger, "WARNING",
                                 "Google Sheets integration is not initialized. API responses will "
                                 "report invalid credentials until this is resolved.")

    def _authorize(self) -> gspread.Client:
        path = self.settings.credentials_path
        info = load_service_account_info(path)
        try:
            creds = Credentials.from_service_account_info(info, scopes=SCOPES)
        except (ValueError, GoogleAuthError) as e:
            raise CredentialsError(f"Invalid service account credentials: {e}")
        self.service_account_email = info["client_email"]
        log_with_context(logger, "INFO", "Credentials loaded from {}".format(path),
                         extra_data={
                             "service_account": self.service_account_email,
                             "sheet_id": self.settings.sheet_id,
                             "sheet_name": self.settings.sheet_name,
                             "sheet_range": self.settings.sheet_range.a1(),
                         })
        return gspread.authorize(creds)

    def worksheet(self) -> gspread.Worksheet:
        if self.init_error is not None:
            raise self.init_error
        if self._worksheet is None:
            with translate_errors("open worksheet"):
                spreadsheet = self._client.open_by_key(self.settings.sheet_id)
                self._worksheet = spreadsheet.worksheet(self.settings.sheet_name)
        return self._worksheet

    def fetch_rows(self) -> List[Tuple[int, Row]]:
        """
        Every data row of the configured range as ``(row_number, cells)``.

        The header row is skipped when the range starts at row 1. Row numbers
        are 1-indexed sheet rows.
        """
        sheet_range = self.settings.sheet_range
        start_time = time.time()
        with translate_errors("read rows"):
            values = self.worksheet().get(sheet_range.a1())
        rows = [list(row) for row in (values or [])]
        if sheet_range.has_header and rows:
            rows = rows[1:]

        duration_ms = (time.time() - start_time) * 1000
        log_with_context(logger, "DEBUG", "Fetched {} rows".format(len(rows)),
                         extra_data={"duration_ms": round(duration_ms, 2), "range": sheet_range.a1()})
        first = sheet_range.first_data_row
        return [(first + offset, row) for offset, row in enumerate(rows)]

    def update_row(self, row_number: int, values: Sequence[str]) -> None:
        check_row_width(values)
        target = self.settings.sheet_range.row_a1(row_number)
        with translate_errors("update row"):
            self.worksheet().update(
                values=[list(values)],
                range_name=target,
                value_input_option=VALUE_INPUT_OPTION,
            )
        log_with_context(logger, "INFO", "Row {} rewritten".format(row_number),
                         context={"row_number": row_number}, extra_data={"range": target})

    def append_row(self, values: Sequence[str]) -> None:
        check_row_width(values)
        with translate_errors("append row"):
            self.worksheet().append_row(
                list(values),
                value_input_option=VALUE_INPUT_OPTION,
                table_range=self.settings.sheet_range.a1(),
            )
        log_with_context(logger, "INFO", "Row appended")

    def probe(self) -> bool:
        """
        Startup connectivity check: open the spreadsheet and read the header
        row. Failures are logged with troubleshooting steps, never raised.
        """
        log_with_context(logger, "INFO", "Testing Google Sheets connection")
        try:
            worksheet = self.worksheet()
        except (CredentialsError, SheetAccessError, SheetNotFoundError, SheetPermissionError) as e:
            log_with_context(logger, "ERROR", "Failed to connect to Google Sheets on startup: {}".format(e.message),
                             extra_data={
                                 "details": e.details,
                                 "troubleshooting": [
                                     "Ensure credentials.json is in the backend folder or GOOGLE_APPLICATION_CREDENTIALS points to it",
                                     "Verify the Google Sheet ID: {}".format(self.settings.sheet_id),
                                     "Share the Google Sheet with the service account email",
                                     "Give the service account Editor access",
                                 ],
                             })
            return False

        header_range = self.settings.sheet_range.row_a1(self.settings.sheet_range.start_row)
        try:
            with translate_errors("read header row"):
                worksheet.get(header_range)
        except (CredentialsError, SheetAccessError, SheetNotFoundError, SheetPermissionError) as e:
            log_with_context(logger, "WARNING", "Could not read sheet range. Check the sheet name and range.",
                             extra_data={"range": header_range, "error": e.details or e.message})
            return False

        log_with_context(logger, "INFO", "Connected to Google Sheets and verified range access",
                         extra_data={"range": header_range})
        return True


def get_store(request: Request) -> SheetStore:
    """FastAPI dependency returning the store created at startup."""
    return request.app.state.store


def get_settings(request: Request) -> Settings:
    return request.app.state.settings
