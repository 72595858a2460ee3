"""
Domain Models and Types

Models:
- DownloadParams: validated download/convert parameters
- ZoneRequest: validated zone-code resolution request

Enums:
- ZoneCategory: districts, municipalities, large urban areas
- DataType: od, nt, os
- DatasetVersion: MITMA study version (1 or 2)
- FilterMode: combinator between per-column filters (or, and)
"""

from .enums import DatasetVersion, DataType, FilterMode, ZoneCategory
from .models import DownloadParams, ZoneRequest

__all__ = [
    "DownloadParams", "ZoneRequest",
    "ZoneCategory", "DataType", "DatasetVersion", "FilterMode"
]
