"""
Pipeline Enumerations

Core enums for zone granularity, data types, dataset versions and filter combination.
"""

from datetime import date
from enum import Enum


class ZoneCategory(str, Enum):
    """Administrative zone granularity of the MITMA data."""
    DISTRICTS = "districts"
    MUNICIPALITIES = "municipalities"
    LARGE_URBAN_AREAS = "large_urban_areas"

    @classmethod
    def parse(cls, value: "str | ZoneCategory") -> "ZoneCategory":
        """Resolve an alias (English or Spanish, long or short) to a category."""
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower()
        if key not in _ZONE_ALIASES:
            raise ValueError(
                f"Unknown zones '{value}'. Use one of: {', '.join(_ZONE_ALIASES)}"
            )
        return _ZONE_ALIASES[key]

    @property
    def file_suffix(self) -> str:
        """Suffix used in MITMA v2 file and folder names."""
        return {
            ZoneCategory.DISTRICTS: "distritos",
            ZoneCategory.MUNICIPALITIES: "municipios",
            ZoneCategory.LARGE_URBAN_AREAS: "GAU",
        }[self]


_ZONE_ALIASES = {
    "districts": ZoneCategory.DISTRICTS,
    "dist": ZoneCategory.DISTRICTS,
    "distr": ZoneCategory.DISTRICTS,
    "distritos": ZoneCategory.DISTRICTS,
    "municipalities": ZoneCategory.MUNICIPALITIES,
    "muni": ZoneCategory.MUNICIPALITIES,
    "municip": ZoneCategory.MUNICIPALITIES,
    "municipios": ZoneCategory.MUNICIPALITIES,
    "lua": ZoneCategory.LARGE_URBAN_AREAS,
    "large_urban_areas": ZoneCategory.LARGE_URBAN_AREAS,
    "gau": ZoneCategory.LARGE_URBAN_AREAS,
    "grandes_areas_urbanas": ZoneCategory.LARGE_URBAN_AREAS,
}


class DataType(str, Enum):
    """Mobility dataset types."""
    OD = "od"   # Origin-destination trips
    NT = "nt"   # Number of trips per person
    OS = "os"   # Overnight stays (v2 only)

    @classmethod
    def parse(cls, value: "str | DataType") -> "DataType":
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower()
        if key not in _TYPE_ALIASES:
            raise ValueError(
                f"Unknown type '{value}'. Use one of: {', '.join(_TYPE_ALIASES)}"
            )
        return _TYPE_ALIASES[key]


_TYPE_ALIASES = {
    "od": DataType.OD,
    "origin-destination": DataType.OD,
    "viajes": DataType.OD,
    "nt": DataType.NT,
    "number_of_trips": DataType.NT,
    "personas": DataType.NT,
    "os": DataType.OS,
    "overnight_stays": DataType.OS,
    "pernoctaciones": DataType.OS,
}


# Publication windows of each study
V1_START = date(2020, 2, 14)
V1_END = date(2021, 5, 9)
V2_START = date(2022, 1, 1)


class DatasetVersion(int, Enum):
    """Major revision of the MITMA study. Versions are not interchangeable."""
    V1 = 1
    V2 = 2

    @classmethod
    def parse(cls, value: "int | str | DatasetVersion") -> "DatasetVersion":
        if isinstance(value, cls):
            return value
        try:
            return cls(int(value))
        except (TypeError, ValueError):
            raise ValueError(f"Dataset version must be 1 or 2, got {value!r}") from None

    @classmethod
    def for_dates(cls, start: date, end: date) -> "DatasetVersion":
        """Infer the dataset version from a date range."""
        if V1_START <= start and end <= V1_END:
            return cls.V1
        if start >= V2_START:
            return cls.V2
        raise ValueError(
            f"Dates {start}..{end} are not covered by a single dataset version "
            f"(v1: {V1_START}..{V1_END}, v2: from {V2_START})"
        )

    @property
    def zones(self) -> tuple[ZoneCategory, ...]:
        if self is DatasetVersion.V1:
            return (ZoneCategory.DISTRICTS, ZoneCategory.MUNICIPALITIES)
        return tuple(ZoneCategory)

    @property
    def data_types(self) -> tuple[DataType, ...]:
        if self is DatasetVersion.V1:
            return (DataType.OD, DataType.NT)
        return tuple(DataType)


class FilterMode(str, Enum):
    """How per-column membership predicates are combined."""
    OR = "or"     # A row passes if it matches any column's value set
    AND = "and"   # A row passes only if it matches every column's value set
