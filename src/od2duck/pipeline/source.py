"""
MobilitySource - MITMA Download and Conversion

Locates the daily MITMA open data files for a date range and lets DuckDB
download and convert them into a local database. Mirrors the three calls the
exporter needs: convert, connect and disconnect.
"""

import logging
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Optional

import duckdb
import requests

from ..config import Config
from ..domain.enums import DatasetVersion, DataType, ZoneCategory
from ..domain.models import DownloadParams
from ..duck import close_connection, open_connection, quote_identifier, table_schema
from ..types import DownloadSizeError, SourceDataError
from ..utils import retry_with_backoff, timer

logger = logging.getLogger(__name__)

# Spanish source columns -> (English column, DuckDB type).
# Columns not listed here are kept as VARCHAR under their original name.
COLUMN_TRANSLATIONS = {
    (DataType.OD, DatasetVersion.V2): {
        'fecha': ('date', 'DATE'),
        'periodo': ('hour', 'INTEGER'),
        'origen': ('id_origin', 'VARCHAR'),
        'destino': ('id_destination', 'VARCHAR'),
        'distancia': ('distance', 'VARCHAR'),
        'actividad_origen': ('activity_origin', 'VARCHAR'),
        'actividad_destino': ('activity_destination', 'VARCHAR'),
        'estudio_origen_posible': ('study_possible_origin', 'VARCHAR'),
        'estudio_destino_posible': ('study_possible_destination', 'VARCHAR'),
        'residencia': ('residence_province', 'VARCHAR'),
        'renta': ('income', 'VARCHAR'),
        'edad': ('age', 'VARCHAR'),
        'sexo': ('sex', 'VARCHAR'),
        'viajes': ('n_trips', 'DOUBLE'),
        'viajes_km': ('trips_total_length_km', 'DOUBLE'),
    },
    (DataType.NT, DatasetVersion.V2): {
        'fecha': ('date', 'DATE'),
        'zona_pernoctacion': ('id', 'VARCHAR'),
        'edad': ('age', 'VARCHAR'),
        'sexo': ('sex', 'VARCHAR'),
        'numero_viajes': ('n_trips', 'VARCHAR'),
        'personas': ('n_persons', 'DOUBLE'),
    },
    (DataType.OS, DatasetVersion.V2): {
        'fecha': ('date', 'DATE'),
        'zona_residencia': ('id_residence', 'VARCHAR'),
        'zona_pernoctacion': ('id_overnight_stay', 'VARCHAR'),
        'personas': ('n_persons', 'DOUBLE'),
    },
    (DataType.OD, DatasetVersion.V1): {
        'fecha': ('date', 'DATE'),
        'origen': ('id_origin', 'VARCHAR'),
        'destino': ('id_destination', 'VARCHAR'),
        'actividad_origen': ('activity_origin', 'VARCHAR'),
        'actividad_destino': ('activity_destination', 'VARCHAR'),
        'residencia': ('residence_province', 'VARCHAR'),
        'periodo': ('hour', 'INTEGER'),
        'distancia': ('distance', 'VARCHAR'),
        'viajes': ('n_trips', 'DOUBLE'),
        'viajes_km': ('trips_total_length_km', 'DOUBLE'),
    },
    (DataType.NT, DatasetVersion.V1): {
        'fecha': ('date', 'DATE'),
        'zona_residencia': ('id', 'VARCHAR'),
        'numero_viajes': ('n_trips', 'VARCHAR'),
        'personas': ('n_persons', 'DOUBLE'),
    },
}

RAW_DB_NAME = "raw_data.duckdb"


def expected_columns(data_type: DataType, version: DatasetVersion) -> list[str]:
    """English column names a converted dataset of this type is expected to have."""
    return [name for name, _ in COLUMN_TRANSLATIONS[(data_type, version)].values()]


def is_remote(location: str) -> bool:
    return location.startswith(("http://", "https://", "s3://"))


def daily_file_path(version: DatasetVersion, data_type: DataType, zones: ZoneCategory, day: date) -> str:
    """Path of one daily file relative to the data root of its version."""
    month = day.strftime("%Y-%m")
    stamp = day.strftime("%Y%m%d")

    if version is DatasetVersion.V1:
        # v1 uses singular zone names in file names
        plural = "distritos" if zones is ZoneCategory.DISTRICTS else "municipios"
        singular = plural[:-1]
        table = {DataType.OD: 1, DataType.NT: 2}[data_type]
        return (f"maestra{table}-mitma-{plural}/ficheros-diarios/{month}/"
                f"{stamp}_maestra_{table}_mitma_{singular}.txt.gz")

    suffix = zones.file_suffix
    folder, prefix = {
        DataType.OD: ("viajes", "Viajes"),
        DataType.NT: ("personas", "Personas_dia"),
        DataType.OS: ("pernoctaciones", "Pernoctaciones"),
    }[data_type]
    return (f"estudios_basicos/por-{suffix}/{folder}/ficheros-diarios/{month}/"
            f"{stamp}_{prefix}_{suffix}.csv.gz")


@dataclass(frozen=True)
class ConvertedDataset:
    """Handle to a converted on-disk dataset."""
    db_path: Path
    table: str
    data_type: DataType
    version: DatasetVersion


class SourceConnection:
    """Read-only, queryable connection to a converted dataset."""

    def __init__(self, con: duckdb.DuckDBPyConnection, dataset: ConvertedDataset):
        self.con = con
        self.dataset = dataset

    @property
    def schema(self) -> list[tuple[str, str]]:
        """(column, DuckDB type) pairs of the dataset table."""
        return table_schema(self.con, self.dataset.table)

    @property
    def columns(self) -> list[str]:
        return [name for name, _ in self.schema]

    def relation(self) -> duckdb.DuckDBPyRelation:
        """Lazy relation over the whole dataset table."""
        return self.con.table(self.dataset.table)


class MobilitySource:
    """
    DuckDB-backed access to the MITMA open mobility data.

    Download and CSV conversion are done by DuckDB itself (httpfs + read_csv);
    this class only decides which files to read, enforces the download
    ceiling and translates column names.
    """

    def __init__(self, config: Optional[Config] = None):
        self.config = config or Config()
        self._session: Optional[requests.Session] = None

    def _get_session(self) -> requests.Session:
        if self._session is None:
            self._session = requests.Session()
            self._session.headers.update({"User-Agent": "od2duck (size probe)"})
        return self._session

    def expected_columns(self, data_type: DataType, version: DatasetVersion) -> list[str]:
        return expected_columns(data_type, version)

    def file_locations(self, params: DownloadParams) -> list[str]:
        """Full location (URL or local path) of every daily file for the request."""
        base = self.config.source.base_url(params.version.value)
        locations = []
        for day in params.dates():
            relative = daily_file_path(params.version, params.data_type, params.zones, day)
            if is_remote(base):
                locations.append(f"{base}/{relative}")
            else:
                locations.append((Path(base) / relative).as_posix())
        return locations

    @retry_with_backoff(max_retries=3, base_delay=1.0, exceptions=(requests.ConnectionError, requests.Timeout))
    def _remote_size(self, url: str) -> int:
        response = self._get_session().head(
            url, allow_redirects=True, timeout=self.config.source.http_timeout
        )
        if response.status_code == 404:
            raise SourceDataError(f"Data file not published: {url}")
        response.raise_for_status()
        length = response.headers.get("Content-Length")
        if length is None:
            logger.debug(f"No Content-Length for {url}, counting as 0 bytes")
            return 0
        return int(length)

    def _file_size(self, location: str) -> int:
        if is_remote(location):
            return self._remote_size(location)
        path = Path(location)
        if not path.exists():
            raise SourceDataError(f"Data file not found: {location}")
        return path.stat().st_size

    def check_download_size(self, locations: list[str], max_download_gb: float) -> int:
        """
        Sum the size of the files to download and enforce the ceiling.

        Returns:
            Total size in bytes

        Raises:
            DownloadSizeError: If the total exceeds max_download_gb
            SourceDataError: If a file is missing
        """
        total = sum(self._file_size(location) for location in locations)
        size_gb = total / (1024 ** 3)
        logger.info(f"{len(locations)} file(s) to download, {size_gb:.3f}GB in total")
        if size_gb > max_download_gb:
            raise DownloadSizeError(size_gb, max_download_gb)
        return total

    def _select_list(self, raw_columns: list[str], translations: dict) -> str:
        parts = []
        for raw in raw_columns:
            key = raw.strip().lower()
            if key not in translations:
                parts.append(f"{quote_identifier(raw)} AS {quote_identifier(key)}")
                continue
            name, sql_type = translations[key]
            if sql_type == 'DATE':
                expr = f"CAST(strptime({quote_identifier(raw)}, '%Y%m%d') AS DATE)"
            elif sql_type == 'VARCHAR':
                expr = quote_identifier(raw)
            else:
                expr = f"TRY_CAST({quote_identifier(raw)} AS {sql_type})"
            parts.append(f"{expr} AS {quote_identifier(name)}")
        return ", ".join(parts)

    @timer
    def convert(self, params: DownloadParams, data_dir: Path, overwrite: bool = True) -> ConvertedDataset:
        """
        Download the daily files for `params` and convert them into a DuckDB database.

        Args:
            params: Validated download parameters
            data_dir: Directory that receives the database and DuckDB spill files
            overwrite: Replace an existing database in data_dir

        Returns:
            Handle to the converted dataset
        """
        data_dir = Path(data_dir)
        data_dir.mkdir(parents=True, exist_ok=True)
        dataset = ConvertedDataset(
            db_path=data_dir / RAW_DB_NAME,
            table=f"{params.data_type.value}_data",
            data_type=params.data_type,
            version=params.version,
        )

        if dataset.db_path.exists():
            if not overwrite:
                logger.info(f"Reusing existing database {dataset.db_path}")
                return dataset
            dataset.db_path.unlink()
            wal = dataset.db_path.with_name(dataset.db_path.name + ".wal")
            if wal.exists():
                wal.unlink()

        locations = self.file_locations(params)
        self.check_download_size(locations, params.max_download_gb)

        con = open_connection(
            dataset.db_path,
            memory_gb=params.max_mem_gb,
            threads=params.max_cpu,
            temp_dir=data_dir / "duckdb_tmp",
            remote=any(is_remote(location) for location in locations),
        )
        try:
            file_list = ", ".join("'" + location.replace("'", "''") + "'" for location in locations)
            reader = f"read_csv([{file_list}], delim='|', header=true, all_varchar=true, union_by_name=true)"

            raw_columns = [row[0] for row in con.execute(f"DESCRIBE SELECT * FROM {reader}").fetchall()]
            translations = COLUMN_TRANSLATIONS[(params.data_type, params.version)]
            select = self._select_list(raw_columns, translations)

            logger.info(f"Converting {params.data_type.value} v{params.version.value} "
                        f"{params.zones.value} {params.start_date}..{params.end_date}")
            con.execute(f"CREATE OR REPLACE TABLE {quote_identifier(dataset.table)} AS SELECT {select} FROM {reader}")
            count = con.execute(f"SELECT COUNT(*) FROM {quote_identifier(dataset.table)}").fetchone()[0]
        finally:
            close_connection(con)

        if count == 0:
            raise SourceDataError(f"No rows found for {params.start_date}..{params.end_date}")
        logger.info(f"Converted {count:,} rows into {dataset.db_path}")
        return dataset

    def connect(self, dataset: ConvertedDataset) -> SourceConnection:
        """Open a read-only connection to a converted dataset."""
        con = open_connection(dataset.db_path, read_only=True)
        return SourceConnection(con, dataset)

    def disconnect(self, connection: Optional[SourceConnection]) -> None:
        """Release a connection returned by connect()."""
        if connection is not None:
            close_connection(connection.con)

    def close(self) -> None:
        """Close the HTTP session used for size probes."""
        if self._session is not None:
            self._session.close()
            self._session = None
