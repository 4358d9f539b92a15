"""
Application settings.

Settings are read once at startup (after loading ``.env``) into a ``Settings``
instance that is handed to the sheet store. Nothing else reads the
environment.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from exam_verification.errors import ConfigurationError
from exam_verification.models.student import ROW_WIDTH

DEFAULT_SHEET_ID = "1w6K6K4zMiSkMGlXswOdka3GuqzcpZzh0YBai8zl26kE"
DEFAULT_SHEET_NAME = "student_exam_data"
DEFAULT_SHEET_RANGE = "A1:L"
DEFAULT_SECRETS_DIR = "/etc/secrets"
CREDENTIALS_FILENAMES = ("credentials.json", "service_account.json")

BACKEND_DIR = Path(__file__).resolve().parent.parent

_RANGE_RE = re.compile(r"^([A-Za-z]+)(\d*):([A-Za-z]+)(\d*)$")


def column_index(letters: str) -> int:
    """1-based index of a column label: A -> 1, L -> 12, AA -> 27."""
    index = 0
    for char in letters.upper():
        index = index * 26 + (ord(char) - ord("A") + 1)
    return index


@dataclass(frozen=True)
class SheetRange:
    """A parsed ``A1:L`` style range inside one worksheet."""
    start_column: str
    start_row: int
    end_column: str
    end_row: Optional[int] = None

    @classmethod
    def parse(cls, text: str) -> "SheetRange":
        match = _RANGE_RE.match(text.strip())
        if not match:
            raise ConfigurationError(f"Invalid sheet range: {text!r}. Expected a form like 'A1:L'.")
        start_col, start_row, end_col, end_row = match.groups()
        return cls(
            start_column=start_col.upper(),
            start_row=int(start_row) if start_row else 1,
            end_column=end_col.upper(),
            end_row=int(end_row) if end_row else None,
        )

    @property
    def width(self) -> int:
        return column_index(self.end_column) - column_index(self.start_column) + 1

    @property
    def has_header(self) -> bool:
        """A range starting at row 1 includes the header row."""
        return self.start_row == 1

    @property
    def first_data_row(self) -> int:
        return self.start_row + 1 if self.has_header else self.start_row

    def a1(self) -> str:
        end_row = self.end_row if self.end_row is not None else ""
        return f"{self.start_column}{self.start_row}:{self.end_column}{end_row}"

    def row_a1(self, row_number: int) -> str:
        """A1 range covering every column of one sheet row."""
        return f"{self.start_column}{row_number}:{self.end_column}{row_number}"


@dataclass(frozen=True)
class Settings:
    sheet_id: str
    sheet_name: str
    sheet_range: SheetRange
    credentials_path: Path
    credentials_candidates: List[Path] = field(default_factory=list)
    retake_cooldown_hours: int = 12
    duplicate_rechecks: int = 2
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    log_level: str = "INFO"


def credential_candidates(env_path: Optional[str], secrets_dir: str,
                          cwd: Optional[Path] = None) -> List[Path]:
    """
    Ordered list of places the service-account file may live: the
    ``GOOGLE_APPLICATION_CREDENTIALS`` path, the platform secret-file
    directory, then local files in the working directory and the backend
    directory.
    """
    cwd = cwd or Path.cwd()
    candidates: List[Path] = []
    if env_path:
        candidates.append(Path(env_path).expanduser().resolve())
    candidates.append(Path(secrets_dir) / "credentials.json")
    for base in (cwd, BACKEND_DIR):
        for name in CREDENTIALS_FILENAMES:
            path = base / name
            if path not in candidates:
                candidates.append(path)
    return candidates


def resolve_credentials_path(candidates: List[Path]) -> Path:
    """First existing candidate, else the first candidate (reported in errors later)."""
    for path in candidates:
        if path.is_file():
            return path
    return candidates[0]


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")


def load_settings() -> Settings:
    load_dotenv()

    sheet_id = os.getenv("SHEET_ID", DEFAULT_SHEET_ID).strip()
    if not sheet_id:
        raise ConfigurationError("SHEET_ID is empty (check .env).")

    sheet_name = os.getenv("SHEET_NAME", DEFAULT_SHEET_NAME).strip() or DEFAULT_SHEET_NAME
    range_text = os.getenv("SHEET_RANGE", DEFAULT_SHEET_RANGE).strip() or DEFAULT_SHEET_RANGE
    # Accept the "student_exam_data!A1:L" form as well.
    if "!" in range_text:
        name_part, range_text = range_text.split("!", 1)
        sheet_name = name_part.strip("'") or sheet_name

    sheet_range = SheetRange.parse(range_text)
    if sheet_range.width != ROW_WIDTH:
        raise ConfigurationError(
            f"SHEET_RANGE {sheet_range.a1()} spans {sheet_range.width} columns; "
            f"student rows are exactly {ROW_WIDTH} columns wide."
        )

    candidates = credential_candidates(
        os.getenv("GOOGLE_APPLICATION_CREDENTIALS"),
        os.getenv("SECRETS_DIR", DEFAULT_SECRETS_DIR),
    )

    cooldown = _int_env("RETAKE_COOLDOWN_HOURS", 12)
    rechecks = _int_env("DUPLICATE_RECHECKS", 2)
    if cooldown < 1:
        raise ConfigurationError("RETAKE_COOLDOWN_HOURS must be at least 1.")
    if rechecks < 1:
        raise ConfigurationError("DUPLICATE_RECHECKS must be at least 1.")

    origins = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

    return Settings(
        sheet_id=sheet_id,
        sheet_name=sheet_name,
        sheet_range=sheet_range,
        credentials_path=resolve_credentials_path(candidates),
        credentials_candidates=candidates,
        retake_cooldown_hours=cooldown,
        duplicate_rechecks=rechecks,
        cors_origins=origins or ["*"],
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
