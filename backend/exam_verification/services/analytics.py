"""
Analytics Service - attempted-student statistics for the dashboard.

Only students with Attempted = Yes are counted. A date window, when given,
applies to LastApprovedAt; CreatedAt then decides whether a student is new
(created inside the window), existing (created before it) or retaken
(created before it and RetakeAllowed = Yes).
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Dict, List, Optional

from exam_verification.errors import ValidationError
from exam_verification.logging_config import get_logger, log_with_context
from exam_verification.models.student import StudentRecord
from exam_verification.services.normalization import IST, normalize_yes_no, parse_timestamp

logger = get_logger("analytics")

CATEGORIES = ("all", "new", "existing", "retaken")


@dataclass
class DateWindow:
    start: Optional[datetime] = None
    end: Optional[datetime] = None

    @classmethod
    def from_strings(cls, date_from: Optional[str], date_to: Optional[str]) -> "DateWindow":
        """``date_to`` is inclusive: the window ends at 23:59:59.999 that day."""
        start = end = None
        if date_from:
            start = datetime.combine(_parse_date(date_from, "dateFrom"), time.min, tzinfo=IST)
        if date_to:
            end = datetime.combine(_parse_date(date_to, "dateTo"), time.min, tzinfo=IST)
            end += timedelta(days=1) - timedelta(milliseconds=1)
        if start and end and start > end:
            raise ValidationError("dateFrom must not be after dateTo.")
        return cls(start=start, end=end)

    @property
    def is_set(self) -> bool:
        return self.start is not None or self.end is not None

    def contains(self, moment: Optional[datetime]) -> bool:
        if moment is None:
            return False
        if self.start is not None and moment < self.start:
            return False
        if self.end is not None and moment > self.end:
            return False
        return True


def _parse_date(value: str, name: str) -> date:
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        raise ValidationError(f"{name} must be a date in YYYY-MM-DD format.", details=f"Got {value!r}.")


def mask_mobile(mobile: str) -> str:
    """98******10 style masking; numbers shorter than 4 digits are returned as-is."""
    if not mobile or len(mobile) < 4:
        return mobile
    return f"{mobile[:2]}******{mobile[-2:]}"


def _is_yes(value: str) -> bool:
    return normalize_yes_no(value) == "Yes"


def _approved_in(student: StudentRecord, window: DateWindow) -> bool:
    return window.contains(parse_timestamp(student.last_approved_at))


def classify(students: List[StudentRecord], window: DateWindow) -> Dict[str, int]:
    """
    Count new / existing / retaken among already-filtered students.

    Students without a CreatedAt are part of ``total`` but of no category.
    Without a start date, "new" cannot be told apart from "existing", so
    non-retaken students count as existing.
    """
    new_users = existing = retaken = 0
    for student in students:
        created = parse_timestamp(student.created_at)
        if created is None:
            continue

        if window.start is not None and window.end is not None:
            if window.start <= created <= window.end:
                new_users += 1
            elif created < window.start:
                if _is_yes(student.retake_allowed):
                    retaken += 1
                else:
                    existing += 1
        elif window.start is not None:
            if created < window.start:
                if _is_yes(student.retake_allowed):
                    retaken += 1
                else:
                    existing += 1
            else:
                new_users += 1
        else:
            if _is_yes(student.retake_allowed):
                retaken += 1
            else:
                existing += 1

    return {"total": len(students), "newUsers": new_users, "existing": existing, "retaken": retaken}


def _in_category(student: StudentRecord, category: str, window: DateWindow) -> bool:
    if category == "all":
        return True
    created = parse_timestamp(student.created_at)
    if created is None:
        return False

    if category == "new":
        if window.start is None or window.end is None:
            return False
        return window.start <= created <= window.end and _approved_in(student, window)

    # existing/retaken need a start date; a missing end date means "that day only".
    if window.start is None:
        return False
    approval_window = window if window.end is not None else DateWindow.from_strings(
        window.start.date().isoformat(), window.start.date().isoformat()
    )
    if not (created < window.start and _approved_in(student, approval_window)):
        return False
    if category == "retaken":
        return _is_yes(student.retake_allowed)
    return True


def student_stats(students: List[StudentRecord], date_from: Optional[str] = None,
                  date_to: Optional[str] = None, category: str = "all",
                  name: Optional[str] = None) -> dict:
    """Statistics plus the filtered student list (mobile numbers masked)."""
    category = (category or "all").lower()
    if category not in CATEGORIES:
        raise ValidationError(
            "category must be one of: {}.".format(", ".join(CATEGORIES)),
            details=f"Got {category!r}.",
        )
    window = DateWindow.from_strings(date_from, date_to)

    attempted = [s for s in students if _is_yes(s.attempted)]
    if window.is_set:
        attempted = [s for s in attempted if _approved_in(s, window)]

    filtered = [s for s in attempted if _in_category(s, category, window)]
    if name and name.strip():
        term = name.strip().lower()
        filtered = [s for s in filtered if term in s.name.lower()]

    stats = classify(filtered, window)

    log_with_context(logger, "INFO",
        "Stats computed: {} attempted, {} listed".format(len(attempted), stats["total"]),
        extra_data={"category": category, "date_from": date_from, "date_to": date_to})

    listed = []
    for student in filtered:
        data = student.to_dict()
        data["MobileNo"] = mask_mobile(student.mobile_no)
        listed.append(data)

    return {"stats": stats, "students": listed}
