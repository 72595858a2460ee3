"""
Result types and exception hierarchy for od2duck.

The exporter never raises: every failure is reported through an ExportResult.
The zone resolver raises the exceptions below directly to its caller.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Literal, Optional


@dataclass(frozen=True)
class ExportResult:
    """Outcome of a filtered export.

    On success `db_path` points at the output DuckDB file and `rows` holds the
    number of filtered rows; on error `message` carries the failure text.
    """
    status: Literal["success", "error"]
    db_path: Optional[str] = None
    message: Optional[str] = None
    rows: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.status == "success"

    @classmethod
    def success(cls, db_path: str, rows: int) -> ExportResult:
        return cls(status="success", db_path=db_path, rows=rows)

    @classmethod
    def error(cls, message: str) -> ExportResult:
        return cls(status="error", message=message)

    def to_dict(self) -> dict[str, Any]:
        if self.ok:
            return {"status": self.status, "db_path": self.db_path}
        return {"status": self.status, "message": self.message}


class Od2DuckError(Exception):
    """Base exception for od2duck operations."""
    pass


class FilterColumnError(Od2DuckError):
    """A filter specification names a column the dataset does not have."""
    def __init__(self, column: str, available: Optional[list[str]] = None):
        self.column = column
        self.available = available or []
        super().__init__(f"Parameter {column} is not a valid column value.")


class NoZoneCodesError(Od2DuckError):
    """No reference zone intersected any of the requested regions."""
    def __init__(self, names: Optional[list[str]] = None):
        self.names = names or []
        super().__init__("No id codes available!")


class DownloadSizeError(Od2DuckError):
    """The files to download exceed the configured size ceiling."""
    def __init__(self, size_gb: float, limit_gb: float):
        self.size_gb = size_gb
        self.limit_gb = limit_gb
        super().__init__(
            f"Download size {size_gb:.2f}GB exceeds the maximum of {limit_gb:.2f}GB. "
            f"Raise max_download_gb or shorten the date range."
        )


class SourceDataError(Od2DuckError):
    """Remote data is missing, unreachable or empty."""
    pass
