from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

import pytest
from fastapi.testclient import TestClient

from exam_verification.config import Settings, SheetRange
from exam_verification.main import create_app
from exam_verification.models.student import ROW_LAYOUT, check_row_width
from exam_verification.services.normalization import IST

HEADER = [name or "" for name in ROW_LAYOUT]


def make_row(name="Asha", mobile="9876543210", district="Pune", state="Maharashtra",
             paid="Yes", fee="500", attempted="Yes", retake="No",
             last_approved="2025-01-15T09:00:00+05:30", reserved=("", ""),
             created="2025-01-10T10:00:00+05:30"):
    return [name, mobile, district, state, paid, fee, attempted, retake,
            last_approved, reserved[0], reserved[1], created]


class FakeSheetStore:
    """In-memory stand-in for SheetStore: data rows start at sheet row 2."""

    first_data_row = 2

    def __init__(self, rows=None):
        self.rows = [list(r) for r in (rows or [])]
        self.reads = 0
        self.writes = []
        # Called before each read with (store, read_number).
        self.on_read: Optional[Callable[["FakeSheetStore", int], None]] = None

    def fetch_rows(self):
        self.reads += 1
        if self.on_read is not None:
            self.on_read(self, self.reads)
        return [(self.first_data_row + i, list(row)) for i, row in enumerate(self.rows)]

    def update_row(self, row_number, values):
        check_row_width(values)
        self.rows[row_number - self.first_data_row] = list(values)
        self.writes.append(("update", row_number, list(values)))

    def append_row(self, values):
        check_row_width(values)
        self.rows.append(list(values))
        self.writes.append(("append", len(self.rows) + 1, list(values)))

    def rows_for(self, mobile):
        return [r for r in self.rows if r[1] == mobile]


@pytest.fixture
def fixed_now():
    return datetime(2025, 1, 15, 14, 30, 0, tzinfo=IST)


@pytest.fixture
def store():
    return FakeSheetStore([
        make_row(),
        make_row(name="Ravi", mobile="91234 56789", attempted="No", paid="No", fee="",
                 last_approved="", created="2025-01-12T11:00:00+05:30"),
    ])


@pytest.fixture
def settings(tmp_path: Path):
    return Settings(
        sheet_id="test-sheet",
        sheet_name="student_exam_data",
        sheet_range=SheetRange.parse("A1:L"),
        credentials_path=tmp_path / "credentials.json",
        credentials_candidates=[tmp_path / "credentials.json"],
    )


@pytest.fixture
def client(settings, store):
    app = create_app(settings=settings, store=store, probe_on_startup=False)
    return TestClient(app)
