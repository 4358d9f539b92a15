from datetime import timedelta

import gspread.exceptions
from fastapi.testclient import TestClient

from conftest import FakeSheetStore, make_row
from exam_verification.errors import SheetNotFoundError, SheetPermissionError
from exam_verification.main import create_app
from exam_verification.services.normalization import format_timestamp, now_ist
from exam_verification.sheets import SheetStore

NEW_STUDENT = {
    "Name": "A",
    "MobileNo": "98765 43210",
    "District": "X",
    "State": "Y",
    "Paid": "Yes",
    "FeeAmount": "500",
}


class FailingStore(FakeSheetStore):
    def __init__(self, error):
        super().__init__()
        self.error = error

    def fetch_rows(self):
        raise self.error


class BrokenClient:
    def __init__(self, error):
        self.error = error

    def open_by_key(self, key):
        raise self.error


def app_with(settings, store):
    return TestClient(create_app(settings=settings, store=store, probe_on_startup=False))


# ── GET /student ─────────────────────────────────────────────

def test_lookup_found(client):
    resp = client.get("/student", params={"mobileNo": "98765-43210"})
    assert resp.status_code == 200
    student = resp.json()["student"]
    assert student["Name"] == "Asha"
    assert student["rowNumber"] == 2
    assert "X-Request-ID" in resp.headers


def test_lookup_not_found(client):
    resp = client.get("/student", params={"mobileNo": "1111111111"})
    assert resp.status_code == 404
    assert resp.json()["found"] is False


def test_lookup_requires_mobile(client):
    assert client.get("/student").status_code == 400
    assert client.get("/student", params={"mobileNo": "  "}).status_code == 400


# ── GET /students ────────────────────────────────────────────

def test_list_students(client):
    resp = client.get("/students")
    assert resp.status_code == 200
    assert [s["Name"] for s in resp.json()["students"]] == ["Asha", "Ravi"]


def test_stats(client):
    resp = client.get("/students/stats")
    assert resp.status_code == 200
    body = resp.json()
    assert body["stats"]["total"] == 1
    assert body["students"][0]["MobileNo"] == "98******10"


def test_stats_rejects_bad_date(client):
    resp = client.get("/students/stats", params={"dateFrom": "yesterday"})
    assert resp.status_code == 400


# ── POST /student ────────────────────────────────────────────

def test_create_new_student(settings):
    store = FakeSheetStore()
    client = app_with(settings, store)
    resp = client.post("/student", json=NEW_STUDENT)
    assert resp.status_code == 201
    body = resp.json()
    assert body["created"] is True
    assert body["student"]["MobileNo"] == "9876543210"
    assert body["student"]["Attempted"] == "Yes"
    assert body["student"]["RetakeAllowed"] == "No"
    assert body["student"]["CreatedAt"] == body["student"]["LastApprovedAt"]

    lookup = client.get("/student", params={"mobileNo": "9876543210"}).json()["student"]
    assert lookup["CreatedAt"] == body["student"]["CreatedAt"]


def test_create_existing_number_updates_instead(client, store):
    resp = client.post("/student", json={**NEW_STUDENT, "Name": "Asha Renamed"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["updated"] is True
    assert body["student"]["CreatedAt"] == "2025-01-10T10:00:00+05:30"
    assert len(store.rows_for("9876543210")) == 1


def test_create_accepts_boolean_paid_and_numeric_fee(settings):
    client = app_with(settings, FakeSheetStore())
    resp = client.post("/student", json={**NEW_STUDENT, "Paid": True, "FeeAmount": 500})
    assert resp.status_code == 201
    assert resp.json()["student"]["Paid"] == "Yes"
    assert resp.json()["student"]["FeeAmount"] == "500"


def test_create_missing_fee_amount(client, store):
    payload = dict(NEW_STUDENT)
    del payload["FeeAmount"]
    resp = client.post("/student", json=payload)
    assert resp.status_code == 400
    assert resp.json()["message"] == "FeeAmount is required."
    assert store.writes == []


def test_create_missing_name(client):
    resp = client.post("/student", json={**NEW_STUDENT, "Name": ""})
    assert resp.status_code == 400
    assert "Name" in resp.json()["details"]


# ── POST /student/update ─────────────────────────────────────

def test_approve_refreshes_last_approved(client, store):
    resp = client.post("/student/update",
                       json={"mobileNo": "9123456789", "updates": {"Paid": "Yes", "Attempted": True}})
    assert resp.status_code == 200
    student = resp.json()["student"]
    assert student["Attempted"] == "Yes"
    assert student["LastApprovedAt"] != ""
    assert student["CreatedAt"] == "2025-01-12T11:00:00+05:30"


def test_update_strips_created_at(client):
    resp = client.post("/student/update", json={
        "mobileNo": "9876543210",
        "updates": {"CreatedAt": "2000-01-01T00:00:00+05:30", "State": "Goa"},
    })
    assert resp.status_code == 200
    assert resp.json()["student"]["CreatedAt"] == "2025-01-10T10:00:00+05:30"
    assert resp.json()["student"]["State"] == "Goa"


def test_retake_within_cooldown_conflicts(settings):
    recent = format_timestamp(now_ist() - timedelta(hours=2))
    store = FakeSheetStore([make_row(last_approved=recent)])
    client = app_with(settings, store)
    resp = client.post("/student/update",
                       json={"mobileNo": "9876543210", "updates": {"RetakeAllowed": "Yes"}})
    assert resp.status_code == 409
    body = resp.json()
    assert 1 <= body["remainingHours"] <= 12
    assert "retake not allowed within 12 hours" in body["message"].lower()
    assert store.writes == []


def test_retake_after_cooldown_is_granted(settings):
    old = format_timestamp(now_ist() - timedelta(hours=13))
    store = FakeSheetStore([make_row(last_approved=old)])
    client = app_with(settings, store)
    resp = client.post("/student/update",
                       json={"mobileNo": "9876543210", "updates": {"RetakeAllowed": "Yes"}})
    assert resp.status_code == 200
    student = resp.json()["student"]
    assert student["RetakeAllowed"] == "Yes"
    assert student["LastApprovedAt"] != old


def test_update_unknown_student(client):
    resp = client.post("/student/update", json={"mobileNo": "1111111111", "updates": {"Attempted": "Yes"}})
    assert resp.status_code == 404
    assert resp.json()["found"] is False


def test_update_requires_mobile_and_updates(client):
    assert client.post("/student/update", json={"updates": {"Attempted": "Yes"}}).status_code == 400
    assert client.post("/student/update", json={"mobileNo": "9876543210"}).status_code == 400


def test_update_with_malformed_updates_is_400(client):
    resp = client.post("/student/update", json={"mobileNo": "9876543210", "updates": ["Attempted"]})
    assert resp.status_code == 400


# ── store failures ───────────────────────────────────────────

def test_permission_error_maps_to_403(settings):
    client = app_with(settings, FailingStore(SheetPermissionError("denied")))
    resp = client.get("/student", params={"mobileNo": "9876543210"})
    assert resp.status_code == 403
    assert resp.json()["details"] == "denied"


def test_missing_sheet_maps_to_404(settings):
    client = app_with(settings, FailingStore(SheetNotFoundError("no such sheet")))
    resp = client.get("/students")
    assert resp.status_code == 404
    assert resp.json()["error"] == "Sheet not found"


def test_unexpected_sheets_failure_is_json_500(settings):
    store = SheetStore(settings, client=BrokenClient(gspread.exceptions.GSpreadException("boom")))
    resp = app_with(settings, store).get("/student", params={"mobileNo": "98"})
    assert resp.status_code == 500
    body = resp.json()
    assert body["error"] == "Google Sheets request failed"
    assert "check your connection" in body["message"]
    assert body["details"] == "boom"


def test_unhandled_error_is_json_500(settings):
    app = create_app(settings=settings, store=FailingStore(RuntimeError("kaput")), probe_on_startup=False)
    resp = TestClient(app, raise_server_exceptions=False).get("/students")
    assert resp.status_code == 500
    assert resp.headers["content-type"].startswith("application/json")
    assert resp.json()["error"] == "Google Sheets request failed"
    assert resp.json()["details"] == "RuntimeError"


def test_missing_credentials_reported_on_every_request(settings):
    client = app_with(settings, SheetStore(settings))
    for _ in range(2):
        resp = client.get("/student", params={"mobileNo": "9876543210"})
        assert resp.status_code == 500
        assert resp.json()["error"] == "Invalid credentials"
        assert "GOOGLE_APPLICATION_CREDENTIALS" in resp.json()["details"]
    assert client.get("/health").json()["credentials_loaded"] is False


def test_health(client):
    body = client.get("/health").json()
    assert body["status"] == "healthy"
    assert body["credentials_loaded"] is True
