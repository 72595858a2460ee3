"""
od2duck Pipeline Components

Components:
- source: MobilitySource for MITMA download and conversion into DuckDB
- export: export_filtered, the filtered dataset exporter
- zones: get_zone_codes, region names to zone identifiers
"""

from .export import export_filtered, generate_output_path
from .source import MobilitySource
from .zones import ZoneSource, get_zone_codes

__all__ = ["MobilitySource", "ZoneSource", "export_filtered", "generate_output_path", "get_zone_codes"]
