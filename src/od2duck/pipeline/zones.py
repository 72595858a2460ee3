"""
Zone code resolution for MITMA zoning.

Turns human-readable region names ("Tenerife", "Gran Canaria", ...) into the
zone identifiers used by the mobility datasets, by intersecting the MITMA
reference zones with each region's boundary.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Optional, Union

import geopandas as gpd
from shapely.geometry.base import BaseGeometry

from ..config import Config
from ..domain.enums import DatasetVersion, ZoneCategory
from ..domain.models import ZoneRequest
from ..types import NoZoneCodesError, SourceDataError

logger = logging.getLogger(__name__)

CRS_WGS84 = "EPSG:4326"
CRS_MITMA = "EPSG:25830"  # ETRS89 / UTM zone 30N, used by the MITMA shapefiles
COMPOUND_DELIMITER = "; "


def zone_file_path(version: DatasetVersion, zones: ZoneCategory) -> str:
    """Path of the zoning file relative to the data root of its version."""
    if version is DatasetVersion.V1:
        plural = "distritos" if zones is ZoneCategory.DISTRICTS else "municipios"
        return f"zonificacion/zonificacion-{plural}.zip"
    suffix = zones.file_suffix
    return f"zonificacion/zonificacion_{suffix}/zonificacion_{suffix}.shp"


class ZoneSource:
    """
    Reference zone geometries and named-region boundaries.

    Zone files are read with geopandas straight from the MITMA open data
    server; region names are resolved to boundary polygons through
    OpenStreetMap (osmnx / Nominatim). Both are cached per instance.
    """

    def __init__(self, config: Optional[Config] = None):
        self.config = config or Config()
        self._zone_cache: dict[tuple[DatasetVersion, ZoneCategory], gpd.GeoDataFrame] = {}
        self._region_cache: dict[str, BaseGeometry] = {}

    def get_zones(self, zones: ZoneCategory, version: DatasetVersion) -> gpd.GeoDataFrame:
        """Reference zones with an `id` column, in their source CRS."""
        key = (version, zones)
        if key in self._zone_cache:
            logger.debug(f"Using cached zones for {zones.value} v{version.value}")
            return self._zone_cache[key]

        location = f"{self.config.source.base_url(version.value)}/{zone_file_path(version, zones)}"
        logger.info(f"Reading {zones.value} v{version.value} zones from {location}")
        gdf = gpd.read_file(location)
        gdf = normalise_id_column(gdf)

        self._zone_cache[key] = gdf
        return gdf

    def geocode(self, name: str) -> BaseGeometry:
        """Boundary polygon of a named region, in WGS84."""
        if name in self._region_cache:
            return self._region_cache[name]

        import osmnx as ox

        region = ox.geocode_to_gdf(name)
        geometry = region.to_crs(CRS_WGS84).geometry.union_all()
        self._region_cache[name] = geometry
        return geometry


def normalise_id_column(gdf: gpd.GeoDataFrame) -> gpd.GeoDataFrame:
    """Rename the identifier column (ID, Id, id) to `id` and make it text."""
    candidates = [c for c in gdf.columns if str(c).lower() == "id"]
    if not candidates:
        raise SourceDataError(f"Zone data has no id column: {list(gdf.columns)}")
    gdf = gdf.rename(columns={candidates[0]: "id"})
    gdf["id"] = gdf["id"].astype(str)
    return gdf


def prepare_zones(zones: gpd.GeoDataFrame, tolerance: float = 200.0) -> gpd.GeoDataFrame:
    """
    Simplify zone geometries and reproject them to WGS84.

    Precision is traded for speed: the tolerance is in source CRS units
    (metres for the MITMA files).
    """
    if zones.crs is None:
        logger.warning(f"Zone data has no CRS, assuming {CRS_MITMA}")
        zones = zones.set_crs(CRS_MITMA)
    simplified = zones.copy()
    if tolerance > 0:
        simplified["geometry"] = simplified.geometry.simplify(tolerance)
    return simplified.to_crs(CRS_WGS84)


def split_compound_ids(ids: Iterable[str], delimiter: str = COMPOUND_DELIMITER) -> list[str]:
    """Flatten compound identifiers such as '01001; 01002' into single codes."""
    out = []
    for value in ids:
        out.extend(part.strip() for part in str(value).split(delimiter) if part.strip())
    return out


def get_zone_codes(
    zone_category: Union[str, ZoneCategory],
    zone_names: Union[str, Iterable[str]],
    version: Union[int, DatasetVersion] = DatasetVersion.V2,
    *,
    split_compound: bool = False,
    config: Optional[Config] = None,
    source: Optional[ZoneSource] = None,
) -> set[str]:
    """
    Resolve region names to the zone codes of a MITMA zoning.

    Args:
        zone_category: "districts", "municipalities" or "large_urban_areas" (aliases accepted)
        zone_names: Region names, e.g. ["El Hierro", "La Gomera", "Tenerife"]
        version: Dataset version, 1 or 2
        split_compound: Split '; '-joined compound ids into single codes
        config: Configuration, loaded from the environment when None
        source: Provider of get_zones/geocode, a ZoneSource when None

    Returns:
        Unique zone identifiers of every zone intersecting any of the regions

    Raises:
        NoZoneCodesError: If no zone intersects any region
    """
    if isinstance(zone_names, str):
        zone_names = [zone_names]
    request = ZoneRequest(
        zones=zone_category,
        version=version,
        names=list(zone_names),
        split_compound=split_compound,
    )
    config = config or (source.config if isinstance(source, ZoneSource) else Config())
    source = source or ZoneSource(config)

    zones = source.get_zones(request.zones, request.version)
    zones_wgs84 = prepare_zones(zones, config.source.simplify_tolerance)

    codes: set[str] = set()
    for name in request.names:
        region = source.geocode(name)
        selected = zones_wgs84[zones_wgs84.intersects(region)]
        ids = selected["id"].astype(str).tolist()
        if request.split_compound:
            ids = split_compound_ids(ids)
        logger.info(f"{name}: {len(ids)} {request.zones.value} zone(s)")
        codes.update(ids)

    if not codes:
        raise NoZoneCodesError(request.names)
    return codes
