"""
Analytics API route - attempted-student statistics.

Counts and lists students who attempted the test, optionally restricted to
an approval date window, a category and a name search.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from exam_verification.services.analytics import student_stats
from exam_verification.services.students import list_students
from exam_verification.sheets import SheetStore, get_store

router = APIRouter()


@router.get("/students/stats")
def get_student_stats(
    dateFrom: Optional[str] = Query(None, description="Start date, YYYY-MM-DD (IST)"),
    dateTo: Optional[str] = Query(None, description="End date, YYYY-MM-DD (IST), inclusive"),
    category: str = Query("all", description="all, new, existing or retaken"),
    name: Optional[str] = Query(None, description="Case-insensitive name search"),
    store: SheetStore = Depends(get_store),
):
    return student_stats(list_students(store), date_from=dateFrom, date_to=dateTo,
                         category=category, name=name)
