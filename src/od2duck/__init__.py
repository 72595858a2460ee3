"""
od2duck - MITMA origin-destination data to DuckDB.

Entry points:
    export_filtered: download, filter and persist a mobility dataset
    get_zone_codes: resolve region names to MITMA zone codes
"""

__version__ = "0.1.0"

from .domain.enums import FilterMode
from .pipeline.export import export_filtered
from .pipeline.zones import get_zone_codes
from .types import ExportResult

__all__ = ["__version__", "export_filtered", "get_zone_codes", "ExportResult", "FilterMode"]
