"""Exception classes for the sheet engine.

Exception Hierarchy:
    SpreadsheetError (base)
    ├── SheetNotExistError
    ├── InvalidCoordinateError
    │   ├── InvalidColumnNameError
    │   ├── InvalidColumnNumberError
    │   ├── InvalidRowNumberError
    │   └── InvalidCellNameError
    ├── OutlineLevelExceededError
    ├── ColumnWidthExceededError
    ├── RowHeightExceededError
    ├── InvalidStyleIdError
    └── PackageError

The string form of every error is a stable message that callers may compare
against, e.g. ``sheet Sheet9 is not exist`` or ``invalid column name "*"``.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class SpreadsheetError(Exception):
    """Base class for all sheet engine errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        """Convert the error to a dictionary for API responses."""
        result: Dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


class SheetNotExistError(SpreadsheetError):
    """Raised when a sheet name does not resolve to a worksheet part."""

    def __init__(self, sheet: str) -> None:
        super().__init__(f"sheet {sheet} is not exist", {"sheet": sheet})
        self.sheet = sheet


class PackageError(SpreadsheetError):
    """Raised for a corrupt or incomplete zip package."""


# =============================================================================
# ADDRESS ERRORS
# =============================================================================

class InvalidCoordinateError(SpreadsheetError, ValueError):
    """A cell, column or row address could not be decoded."""


class InvalidColumnNameError(InvalidCoordinateError):
    def __init__(self, name: str) -> None:
        super().__init__(f'invalid column name "{name}"', {"column": name})
        self.name = name


class InvalidColumnNumberError(InvalidCoordinateError):
    def __init__(self, number: int) -> None:
        super().__init__(f"invalid column number {number}", {"column": number})
        self.number = number


class InvalidRowNumberError(InvalidCoordinateError):
    def __init__(self, row: Any) -> None:
        if isinstance(row, int):
            message = f"invalid row number {row}"
        else:
            message = f'invalid row number "{row}"'
        super().__init__(message, {"row": row})
        self.row = row


class InvalidCellNameError(InvalidCoordinateError):
    def __init__(self, cell: str, converting: bool = False) -> None:
        message = f'invalid cell name "{cell}"'
        if converting:
            message = f'cannot convert cell "{cell}" to coordinates: {message}'
        super().__init__(message, {"cell": cell})
        self.cell = cell


# =============================================================================
# LIMIT ERRORS
# =============================================================================

class OutlineLevelExceededError(SpreadsheetError, ValueError):
    def __init__(self, level: int) -> None:
        super().__init__("invalid outline level", {"level": level})
        self.level = level


class ColumnWidthExceededError(SpreadsheetError, ValueError):
    def __init__(self, width: float) -> None:
        super().__init__(
            "the width of the column must be smaller than or equal to 255 characters",
            {"width": width},
        )
        self.width = width


class RowHeightExceededError(SpreadsheetError, ValueError):
    def __init__(self, height: float) -> None:
        super().__init__(
            "the height of the row must be smaller than or equal to 409 points",
            {"height": height},
        )
        self.height = height


class InvalidStyleIdError(SpreadsheetError, ValueError):
    def __init__(self, style_id: int) -> None:
        super().__init__(f"invalid style ID {style_id}", {"style_id": style_id})
        self.style_id = style_id
