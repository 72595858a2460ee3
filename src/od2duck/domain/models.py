"""
Pipeline Domain Models

Pydantic models for validated download and zone-resolution requests.
"""

from datetime import date, timedelta

from pydantic import BaseModel, Field, field_validator, model_validator

from .enums import DatasetVersion, DataType, ZoneCategory


class DownloadParams(BaseModel):
    """Parameters for downloading and converting one mobility dataset."""
    zones: ZoneCategory = Field(..., description="Zone granularity (aliases accepted)")
    start_date: date = Field(..., description="First day of data, inclusive")
    end_date: date = Field(..., description="Last day of data, inclusive")
    data_type: DataType = Field(..., description="Dataset type: od, nt or os")

    # Resource limits handed to DuckDB
    max_mem_gb: float = Field(..., gt=0, description="DuckDB memory budget in GB")
    max_cpu: int = Field(..., ge=1, description="DuckDB thread count")
    max_download_gb: float = Field(..., gt=0, description="Maximum total download size in GB")

    class Config:
        """Pydantic configuration."""
        frozen = True

    @field_validator("zones", mode="before")
    @classmethod
    def _parse_zones(cls, value):
        return ZoneCategory.parse(value)

    @field_validator("data_type", mode="before")
    @classmethod
    def _parse_type(cls, value):
        return DataType.parse(value)

    @model_validator(mode="after")
    def _check_range(self) -> "DownloadParams":
        if self.start_date > self.end_date:
            raise ValueError(
                f"start_date ({self.start_date}) must not be after end_date ({self.end_date})"
            )
        version = DatasetVersion.for_dates(self.start_date, self.end_date)
        if self.zones not in version.zones:
            raise ValueError(f"Zones '{self.zones.value}' are not available in v{version.value} data")
        if self.data_type not in version.data_types:
            raise ValueError(f"Type '{self.data_type.value}' is not available in v{version.value} data")
        return self

    @property
    def version(self) -> DatasetVersion:
        return DatasetVersion.for_dates(self.start_date, self.end_date)

    def dates(self) -> list[date]:
        """Every calendar day between start and end, inclusive."""
        n_days = (self.end_date - self.start_date).days
        return [self.start_date + timedelta(days=i) for i in range(n_days + 1)]


class ZoneRequest(BaseModel):
    """Named regions to resolve into zone codes of one dataset version."""
    zones: ZoneCategory = Field(..., description="Zone granularity (aliases accepted)")
    version: DatasetVersion = Field(default=DatasetVersion.V2, description="Dataset version, 1 or 2")
    names: list[str] = Field(..., min_length=1, description="Human-readable region names")
    split_compound: bool = Field(default=False, description="Split '; '-joined compound ids")

    class Config:
        """Pydantic configuration."""
        frozen = True

    @field_validator("zones", mode="before")
    @classmethod
    def _parse_zones(cls, value):
        return ZoneCategory.parse(value)

    @field_validator("version", mode="before")
    @classmethod
    def _parse_version(cls, value):
        return DatasetVersion.parse(value)

    @model_validator(mode="after")
    def _check_zones(self) -> "ZoneRequest":
        if self.zones not in self.version.zones:
            raise ValueError(f"Zones '{self.zones.value}' are not available in v{self.version.value} data")
        return self
