"""
Student record and its spreadsheet row layout.

Each student is one row of exactly twelve positional cells (columns A-L):

    A Name           E Paid            I LastApprovedAt
    B MobileNo       F FeeAmount       J (reserved)
    C District       G Attempted       K (reserved)
    D State          H RetakeAllowed   L CreatedAt

The two reserved cells have no field name. Whatever they hold is carried
through every rewrite untouched. A partial update still writes all twelve
cells so that no column shifts.
"""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Sequence, Tuple

from exam_verification.errors import RowLayoutError

RESERVED = None

ROW_LAYOUT: Tuple[Optional[str], ...] = (
    "Name",
    "MobileNo",
    "District",
    "State",
    "Paid",
    "FeeAmount",
    "Attempted",
    "RetakeAllowed",
    "LastApprovedAt",
    RESERVED,
    RESERVED,
    "CreatedAt",
)
ROW_WIDTH = len(ROW_LAYOUT)

FIELD_NAMES: Tuple[str, ...] = tuple(name for name in ROW_LAYOUT if name is not RESERVED)
YES_NO_FIELDS = ("Paid", "Attempted", "RetakeAllowed")

# API field name -> dataclass attribute
_ATTRIBUTES = {
    "Name": "name",
    "MobileNo": "mobile_no",
    "District": "district",
    "State": "state",
    "Paid": "paid",
    "FeeAmount": "fee_amount",
    "Attempted": "attempted",
    "RetakeAllowed": "retake_allowed",
    "LastApprovedAt": "last_approved_at",
    "CreatedAt": "created_at",
}


def check_row_width(values: Sequence[Any]) -> None:
    if len(values) != ROW_WIDTH:
        raise RowLayoutError(
            f"Student row must have exactly {ROW_WIDTH} cells, got {len(values)}."
        )


@dataclass
class StudentRecord:
    """
    One student row.

    ``row_number`` is the 1-indexed sheet row the record was read from; it
    is None for a record that has not been written yet.
    """
    name: str = ""
    mobile_no: str = ""
    district: str = ""
    state: str = ""
    paid: str = "No"
    fee_amount: str = ""
    attempted: str = "No"
    retake_allowed: str = "No"
    last_approved_at: str = ""
    created_at: str = ""
    reserved: Tuple[str, str] = ("", "")
    row_number: Optional[int] = field(default=None, compare=False)

    @classmethod
    def from_row(cls, row: Sequence[Any], row_number: Optional[int] = None) -> "StudentRecord":
        # The Sheets API drops trailing empty cells.
        cells = [("" if cell is None else str(cell)) for cell in row[:ROW_WIDTH]]
        cells += [""] * (ROW_WIDTH - len(cells))

        values = {}
        reserved = []
        for name, cell in zip(ROW_LAYOUT, cells):
            if name is RESERVED:
                reserved.append(cell)
            else:
                values[_ATTRIBUTES[name]] = cell
        return cls(reserved=(reserved[0], reserved[1]), row_number=row_number, **values)

    def to_row(self) -> List[str]:
        reserved = iter(self.reserved)
        row = [
            next(reserved, "") if name is RESERVED else self.get(name)
            for name in ROW_LAYOUT
        ]
        check_row_width(row)
        return row

    def get(self, field_name: str) -> str:
        return getattr(self, _ATTRIBUTES[field_name])

    def merged(self, updates: Dict[str, str]) -> "StudentRecord":
        """Copy with the named fields replaced; unknown names are ignored."""
        changes = {
            _ATTRIBUTES[name]: value
            for name, value in updates.items()
            if name in _ATTRIBUTES
        }
        return replace(self, **changes)

    def is_blank(self) -> bool:
        return not any(self.get(name).strip() for name in FIELD_NAMES)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {name: self.get(name) for name in FIELD_NAMES}
        data["rowNumber"] = self.row_number
        return data
