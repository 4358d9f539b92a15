from exam_verification.models.student import (
    FIELD_NAMES, ROW_LAYOUT, ROW_WIDTH, YES_NO_FIELDS, StudentRecord
)

__all__ = ["FIELD_NAMES", "ROW_LAYOUT", "ROW_WIDTH", "YES_NO_FIELDS", "StudentRecord"]
