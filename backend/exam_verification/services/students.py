"""
Student Service - lookup, create-or-update and flag updates.

The worksheet has no uniqueness constraint and no conditional write, so
MobileNo uniqueness is kept by reading before every write:

1. Lookup is a linear scan of the whole range on the normalized phone number
   (first match wins).
2. Create re-reads the sheet ``rechecks`` more times right before appending,
   and switches to an in-place update if the number shows up.
3. Updates rewrite all twelve cells of the one matched row.

This holds for sequential requests only. Two simultaneous creates of the
same new number can both pass every re-check and both append.
"""

import math
import time
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from exam_verification.errors import (
    RetakeCooldownError, StudentNotFoundError, ValidationError,
)
from exam_verification.logging_config import get_logger, log_with_context
from exam_verification.models.student import FIELD_NAMES, YES_NO_FIELDS, StudentRecord
from exam_verification.services.normalization import (
    IST, format_timestamp, normalize_phone, normalize_yes_no, now_ist, parse_timestamp,
)

logger = get_logger("students")

RETAKE_COOLDOWN_HOURS = 12
DUPLICATE_RECHECKS = 2

REQUIRED_TEXT_FIELDS = ("Name", "MobileNo", "District", "State")
# Never taken from an update payload.
PROTECTED_FIELDS = ("CreatedAt", "MobileNo")


@dataclass
class UpsertResult:
    student: StudentRecord
    created: bool


def _current_time(now: Optional[datetime]) -> datetime:
    if now is None:
        return now_ist()
    if now.tzinfo is None:
        return now.replace(tzinfo=IST)
    return now


def _require_phone(mobile_no: Any) -> str:
    normalized = normalize_phone(mobile_no)
    if not normalized:
        raise ValidationError(
            "mobileNo is required.",
            details="Please provide a mobile number containing digits.",
        )
    return normalized


def find_student(store, mobile_no: Any) -> Optional[StudentRecord]:
    """
    Scan the sheet for ``mobile_no`` (compared digits-only).

    Returns the first matching record with its row number, or None.
    """
    normalized = _require_phone(mobile_no)
    for row_number, row in store.fetch_rows():
        stored = row[1] if len(row) > 1 else ""
        if normalize_phone(stored) == normalized:
            return StudentRecord.from_row(row, row_number)
    return None


def list_students(store) -> List[StudentRecord]:
    """Every non-blank row, in sheet order."""
    records = [StudentRecord.from_row(row, row_number) for row_number, row in store.fetch_rows()]
    return [r for r in records if not r.is_blank()]


def _clean_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def validate_new_student(payload: Dict[str, Any]) -> Dict[str, str]:
    """
    Check a create payload and return the cleaned field values.

    Paid and FeeAmount get their own messages so the form can point at the
    right input.
    """
    missing = [name for name in REQUIRED_TEXT_FIELDS if not _clean_text(payload.get(name))]
    if missing:
        raise ValidationError(
            "Name, MobileNo, District, State, Paid and FeeAmount are required.",
            details="Missing fields: {}".format(", ".join(missing)),
        )
    if payload.get("Paid") is None:
        raise ValidationError("Paid is required.", details="Please fill in all required fields.")
    fee_amount = _clean_text(payload.get("FeeAmount"))
    if not fee_amount:
        raise ValidationError("FeeAmount is required.", details="Enter the amount paid by the student.")

    mobile_no = normalize_phone(payload.get("MobileNo"))
    if not mobile_no:
        raise ValidationError("MobileNo must contain digits.", details="Please enter a valid mobile number.")

    return {
        "Name": _clean_text(payload.get("Name")),
        "MobileNo": mobile_no,
        "District": _clean_text(payload.get("District")),
        "State": _clean_text(payload.get("State")),
        "Paid": normalize_yes_no(payload.get("Paid")),
        "FeeAmount": fee_amount,
    }


def _update_existing(store, existing: StudentRecord, fields: Dict[str, str]) -> StudentRecord:
    """Overwrite the profile fields of a found row; everything else is kept."""
    updated = existing.merged(fields)
    store.update_row(existing.row_number, updated.to_row())
    log_with_context(logger, "INFO", "Existing student updated instead of creating a duplicate",
                     context={"mobile_no": updated.mobile_no, "row_number": existing.row_number})
    return updated


def upsert_student(store, payload: Dict[str, Any], rechecks: int = DUPLICATE_RECHECKS,
                   now: Optional[datetime] = None) -> UpsertResult:
    """
    Create a student, or update the existing row for the same number.

    A new row gets CreatedAt and LastApprovedAt set to the same instant,
    Attempted forced to Yes and RetakeAllowed set to No.
    """
    start_time = time.time()
    fields = validate_new_student(payload)
    mobile_no = fields["MobileNo"]

    existing = find_student(store, mobile_no)
    if existing is not None:
        return UpsertResult(student=_update_existing(store, existing, fields), created=False)

    for attempt in range(1, rechecks + 1):
        existing = find_student(store, mobile_no)
        if existing is not None:
            log_with_context(logger, "WARNING",
                             "Student appeared on re-check {} of {}; switching to update".format(attempt, rechecks),
                             context={"mobile_no": mobile_no, "row_number": existing.row_number})
            return UpsertResult(student=_update_existing(store, existing, fields), created=False)

    stamp = format_timestamp(_current_time(now))
    record = StudentRecord(
        name=fields["Name"],
        mobile_no=mobile_no,
        district=fields["District"],
        state=fields["State"],
        paid=fields["Paid"],
        fee_amount=fields["FeeAmount"],
        attempted="Yes",
        retake_allowed="No",
        last_approved_at=stamp,
        created_at=stamp,
    )
    store.append_row(record.to_row())

    written = find_student(store, mobile_no)
    if written is not None and written.created_at == stamp:
        record.row_number = written.row_number
    else:
        log_with_context(logger, "WARNING",
                         "Appended row is not the first match for its number; possible concurrent duplicate",
                         context={"mobile_no": mobile_no},
                         extra_data={"first_match_row": written.row_number if written else None})

    duration_ms = (time.time() - start_time) * 1000
    log_with_context(logger, "INFO", "Student created",
                     context={"mobile_no": mobile_no, "row_number": record.row_number},
                     extra_data={"duration_ms": round(duration_ms, 2), "rechecks": rechecks})
    return UpsertResult(student=record, created=True)


def retake_remaining_hours(last_approved_at: Optional[str], now: datetime,
                           cooldown_hours: int = RETAKE_COOLDOWN_HOURS) -> int:
    """
    Whole hours (rounded up) until a retake may be granted; 0 if it may be
    granted now. A missing or unreadable LastApprovedAt never blocks.
    """
    approved = parse_timestamp(last_approved_at)
    if approved is None:
        return 0
    remaining = timedelta(hours=cooldown_hours) - (_current_time(now) - approved)
    if remaining <= timedelta(0):
        return 0
    hours = math.ceil(remaining.total_seconds() / 3600)
    return min(max(hours, 1), cooldown_hours)


def _clean_updates(updates: Dict[str, Any]) -> Dict[str, str]:
    changes = {}
    for name, value in updates.items():
        if name in PROTECTED_FIELDS:
            log_with_context(logger, "DEBUG", "Ignoring protected field in update: {}".format(name))
            continue
        if name not in FIELD_NAMES:
            log_with_context(logger, "DEBUG", "Ignoring unknown field in update: {}".format(name))
            continue
        if name in YES_NO_FIELDS:
            changes[name] = normalize_yes_no(value)
        else:
            changes[name] = _clean_text(value)
    return changes


def update_student(store, mobile_no: Any, updates: Dict[str, Any],
                   cooldown_hours: int = RETAKE_COOLDOWN_HOURS,
                   now: Optional[datetime] = None) -> StudentRecord:
    """
    Apply a partial update ("approve" or "retake") to an existing student.

    - Raises StudentNotFoundError if the number is unknown; never creates.
    - Granting a retake inside the cooldown raises RetakeCooldownError and
      writes nothing.
    - LastApprovedAt is refreshed when Attempted flips to Yes or a retake is
      granted.
    - CreatedAt always comes from the stored row.
    """
    if not isinstance(updates, dict):
        raise ValidationError("updates must be an object of field values.")

    student = find_student(store, mobile_no)
    if student is None:
        raise StudentNotFoundError(normalize_phone(mobile_no))

    current = _current_time(now)
    changes = _clean_updates(updates)
    context = {"mobile_no": student.mobile_no, "row_number": student.row_number}

    retake_granted = False
    if changes.get("RetakeAllowed") == "Yes":
        remaining = retake_remaining_hours(student.last_approved_at, current, cooldown_hours)
        if remaining:
            log_with_context(logger, "INFO", "Retake rejected: cooldown not elapsed",
                             context=context,
                             extra_data={"remaining_hours": remaining,
                                         "last_approved_at": student.last_approved_at})
            raise RetakeCooldownError(remaining, cooldown_hours)
        retake_granted = True

    newly_attempted = (
        changes.get("Attempted") == "Yes" and normalize_yes_no(student.attempted) != "Yes"
    )
    if retake_granted or newly_attempted:
        changes["LastApprovedAt"] = format_timestamp(current)

    updated = replace(student.merged(changes), created_at=student.created_at)
    store.update_row(student.row_number, updated.to_row())

    log_with_context(logger, "INFO", "Student updated",
                     context=context,
                     extra_data={"fields": sorted(changes), "retake_granted": retake_granted,
                                 "approval_refreshed": "LastApprovedAt" in changes})
    return updated
