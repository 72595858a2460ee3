"""
Filtered Export - Download, Filter, Persist

Downloads one MITMA dataset into a private workspace, keeps the rows matching
a column -> values filter and writes them to a uniquely named DuckDB file.
"""

import gc
import getpass
import logging
import uuid
from collections.abc import Iterable, Mapping
from datetime import date
from pathlib import Path
from typing import Any, Optional, Union

from ..cleanup import create_workspace, release_all, remove_workspace
from ..config import Config
from ..domain.enums import DataType, FilterMode, ZoneCategory
from ..domain.models import DownloadParams
from ..duck import close_connection, close_orphan_connections, open_connection, write_table
from ..filters import build_filter, validate_filter_columns
from ..types import ExportResult
from ..utils import clean_filename, ensure_directory, timer
from .source import MobilitySource

logger = logging.getLogger(__name__)

OUTPUT_TABLE = "filtered_table"


def current_user() -> str:
    """OS login name, sanitised for use in file names."""
    try:
        user = getpass.getuser()
    except (KeyError, OSError):
        logger.debug("Could not determine OS user, using 'unknown'")
        user = "unknown"
    return clean_filename(user) or "unknown"


def generate_output_path(output_dir: Path, user: Optional[str] = None) -> Path:
    """
    Unique output location: <output_dir>/<user>_<uuid>_filtered_data.duckdb

    A fresh UUID per call keeps repeated and concurrent exports from colliding.
    """
    user = clean_filename(user) if user else current_user()
    return Path(output_dir) / f"{user}_{uuid.uuid4()}_filtered_data.duckdb"


def _normalise_filters(filters: Optional[Mapping[str, Any]]) -> dict[str, list[Any]]:
    normalised = {}
    for column, values in (filters or {}).items():
        if isinstance(values, (str, bytes)) or not isinstance(values, Iterable):
            values = [values]
        normalised[str(column)] = list(values)
    return normalised


@timer
def export_filtered(
    zones: Union[str, ZoneCategory],
    start_date: Union[str, date],
    end_date: Union[str, date],
    data_type: Union[str, DataType],
    filters: Optional[Mapping[str, Iterable[Any]]],
    *,
    max_mem_gb: Optional[float] = None,
    max_cpu: Optional[int] = None,
    max_download_gb: Optional[float] = None,
    filter_mode: Union[str, FilterMode] = FilterMode.OR,
    config: Optional[Config] = None,
    source=None,
    user: Optional[str] = None,
) -> ExportResult:
    """
    Download a mobility dataset and export the rows matching `filters`.

    Args:
        zones: Zone granularity, e.g. "muni", "districts", "gau"
        start_date: First day, "YYYY-MM-DD"
        end_date: Last day, same format as start_date
        data_type: "od", "nt" or "os" (os only for v2 dates)
        filters: Column name -> accepted values, e.g.
            {"id_origin": ["01059", "02003"], "id_destination": ["02003"]}.
            Columns are checked against the translated schema of the dataset
            type before anything is downloaded, so only translated (English)
            column names can be filtered on; extra raw columns that a source
            file happens to carry are kept in the output but are rejected as
            filter keys.
        max_mem_gb: DuckDB memory budget (default from config)
        max_cpu: DuckDB threads (default from config)
        max_download_gb: Download ceiling (default from config)
        filter_mode: Combine columns with OR (any column matches) or AND (all match)
        config: Configuration, loaded from the environment when None
        source: Object providing convert/connect/disconnect/expected_columns,
            a MobilitySource when None
        user: Name used in the output file, the OS user when None

    Returns:
        ExportResult with status "success" and db_path, or status "error" and message.
        Never raises.
    """
    close_orphan_connections()

    workspace: Optional[Path] = None
    source_con = None
    out_con = None
    owns_source = source is None

    try:
        config = config or Config()
        if owns_source:
            source = MobilitySource(config)

        params = DownloadParams(
            zones=zones,
            start_date=start_date,
            end_date=end_date,
            data_type=data_type,
            max_mem_gb=max_mem_gb if max_mem_gb is not None else config.processing.max_mem_gb,
            max_cpu=max_cpu if max_cpu is not None else config.processing.max_cpu,
            max_download_gb=(max_download_gb if max_download_gb is not None
                             else config.processing.max_download_gb),
        )
        filter_spec = _normalise_filters(filters)

        # Reject unknown columns before downloading anything
        validate_filter_columns(filter_spec, source.expected_columns(params.data_type, params.version))
        predicate = build_filter(filter_spec, filter_mode)

        workspace = create_workspace(config.storage.temp_root)
        dataset = source.convert(params, workspace, overwrite=True)
        source_con = source.connect(dataset)

        validate_filter_columns(filter_spec, source_con.columns)

        relation = source_con.relation()
        if predicate is not None:
            logger.debug(f"Filter: {predicate.to_sql()}")
            relation = relation.filter(predicate.to_sql())
        filtered = relation.df()
        logger.info(f"{len(filtered):,} rows match the filter")

        output_path = generate_output_path(config.storage.output_dir, user)
        ensure_directory(output_path.parent)
        out_con = open_connection(output_path)
        rows = write_table(out_con, OUTPUT_TABLE, filtered, schema=source_con.schema)
        logger.debug(f"Preview of {OUTPUT_TABLE}:\n{filtered.head()}")

        logger.info(f"Filtered data saved to {output_path}")
        return ExportResult.success(str(output_path), rows)

    except Exception as e:
        logger.error(f"Export failed: {e}")
        return ExportResult.error(str(e))

    finally:
        release_all([
            ("close output database", lambda: close_connection(out_con)),
            ("disconnect source", lambda: source.disconnect(source_con) if source_con is not None else None),
            ("close source", lambda: source.close() if owns_source and source is not None else None),
            ("garbage collection", gc.collect),
            ("remove workspace", lambda: remove_workspace(workspace) if workspace is not None else None),
        ])
