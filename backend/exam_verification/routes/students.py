"""
Student API routes - lookup, listing, create-or-update and flag updates.

Endpoints:
- GET  /student?mobileNo=   look up one student
- GET  /students            every student (analytics view)
- POST /student             create, or update the existing row for that number
- POST /student/update      approve / retake toggles on an existing student

Errors raised by the services are rendered by the handlers in main.py.
"""

import time
from typing import Any, Dict, Optional, Union

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from exam_verification.config import Settings
from exam_verification.errors import StudentNotFoundError, ValidationError
from exam_verification.logging_config import get_logger, log_with_context
from exam_verification.services.normalization import normalize_phone
from exam_verification.services.students import (
    find_student, list_students, update_student, upsert_student,
)
from exam_verification.sheets import SheetStore, get_settings, get_store

router = APIRouter()
logger = get_logger("http")


# ── Pydantic schemas ─────────────────────────────────────────
# Fields are optional here so that a missing value is reported by the
# service as a 400 with a field-specific message.

class StudentCreate(BaseModel):
    """Body of POST /student."""
    Name: Optional[str] = None
    MobileNo: Optional[Union[str, int]] = None
    District: Optional[str] = None
    State: Optional[str] = None
    Paid: Optional[Union[bool, str]] = None
    FeeAmount: Optional[Union[str, int, float]] = None


class StudentUpdateRequest(BaseModel):
    """Body of POST /student/update."""
    mobileNo: Optional[Union[str, int]] = None
    updates: Optional[Dict[str, Any]] = Field(None, description="Partial field values")


@router.get("/student")
def get_student(
    mobileNo: Optional[str] = Query(None, description="Mobile number, any formatting"),
    store: SheetStore = Depends(get_store),
):
    """Look up one student by mobile number."""
    if not mobileNo or not mobileNo.strip():
        raise ValidationError(
            "mobileNo query parameter is required.",
            details="Please provide a mobile number to search.",
        )

    student = find_student(store, mobileNo)
    if student is None:
        log_with_context(logger, "INFO", "Student lookup: not found",
                         context={"mobile_no": normalize_phone(mobileNo)})
        raise StudentNotFoundError(normalize_phone(mobileNo))

    return {"student": student.to_dict()}


@router.get("/students")
def get_students(store: SheetStore = Depends(get_store)):
    """Every student row, in sheet order."""
    start_time = time.time()
    students = list_students(store)

    duration_ms = (time.time() - start_time) * 1000
    log_with_context(logger, "INFO", "Listed {} students".format(len(students)),
                     extra_data={"duration_ms": round(duration_ms, 2)})
    return {"students": [s.to_dict() for s in students]}


@router.post("/student")
def create_student(
    request: StudentCreate,
    store: SheetStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    """
    Add a student.

    Returns 201 with ``created: true`` for a new row, or 200 with
    ``updated: true`` when the number already existed and its row was
    updated instead.
    """
    result = upsert_student(store, request.model_dump(), rechecks=settings.duplicate_rechecks)

    if result.created:
        return JSONResponse(status_code=201,
                            content={"student": result.student.to_dict(), "created": True})
    return JSONResponse(status_code=200,
                        content={"student": result.student.to_dict(), "updated": True})


@router.post("/student/update")
def update_student_fields(
    request: StudentUpdateRequest,
    store: SheetStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    """Approve or allow a retake for an existing student."""
    mobile_no = request.mobileNo
    if mobile_no is None or not str(mobile_no).strip() or request.updates is None:
        raise ValidationError(
            "mobileNo and updates are required in the request body.",
            details="Please provide mobile number and update fields.",
        )

    student = update_student(store, str(mobile_no), request.updates,
                             cooldown_hours=settings.retake_cooldown_hours)
    return {"student": student.to_dict()}
