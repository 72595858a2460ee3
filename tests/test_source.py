from __future__ import annotations

from datetime import date
from pathlib import Path

import duckdb
import pytest
import requests

from od2duck.domain import DownloadParams
from od2duck.domain.enums import DatasetVersion, DataType, ZoneCategory
from od2duck.pipeline.source import MobilitySource, daily_file_path
from od2duck.types import DownloadSizeError, SourceDataError

from conftest import write_daily_file


class StubResponse:
    def __init__(self, status_code=200, headers=None):
        self.status_code = status_code
        self.headers = headers or {}

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")


class StubSession:
    """Answers HEAD requests from a url -> response mapping."""

    def __init__(self, responses):
        self.responses = responses
        self.urls = []

    def head(self, url, **kwargs):
        self.urls.append(url)
        return self.responses[url]

    def close(self):
        pass


def _params(**overrides) -> DownloadParams:
    values = dict(zones="muni", start_date="2022-01-01", end_date="2022-01-02", data_type="od",
                  max_mem_gb=1, max_cpu=1, max_download_gb=1)
    values.update(overrides)
    return DownloadParams(**values)


def test_daily_file_path_v2() -> None:
    path = daily_file_path(DatasetVersion.V2, DataType.NT, ZoneCategory.DISTRICTS, date(2023, 4, 7))

    assert path == ("estudios_basicos/por-distritos/personas/ficheros-diarios/2023-04/"
                    "20230407_Personas_dia_distritos.csv.gz")


def test_daily_file_path_v1() -> None:
    path = daily_file_path(DatasetVersion.V1, DataType.OD, ZoneCategory.MUNICIPALITIES, date(2020, 3, 1))

    assert path == ("maestra1-mitma-municipios/ficheros-diarios/2020-03/"
                    "20200301_maestra_1_mitma_municipio.txt.gz")


def test_remote_file_locations(config) -> None:
    config.source.v2_base_url = "https://example.org/mitma"
    source = MobilitySource(config)

    locations = source.file_locations(_params())

    assert locations == [
        "https://example.org/mitma/estudios_basicos/por-municipios/viajes/ficheros-diarios/2022-01/"
        "20220101_Viajes_municipios.csv.gz",
        "https://example.org/mitma/estudios_basicos/por-municipios/viajes/ficheros-diarios/2022-01/"
        "20220102_Viajes_municipios.csv.gz",
    ]


def test_remote_size_probe(config) -> None:
    source = MobilitySource(config)
    source._session = StubSession({
        "https://x/a.gz": StubResponse(headers={"Content-Length": str(512 * 1024 ** 2)}),
        "https://x/b.gz": StubResponse(),
    })

    total = source.check_download_size(["https://x/a.gz", "https://x/b.gz"], max_download_gb=1)

    assert total == 512 * 1024 ** 2
    with pytest.raises(DownloadSizeError, match="exceeds"):
        source.check_download_size(["https://x/a.gz"], max_download_gb=0.25)


def test_remote_file_not_published(config) -> None:
    source = MobilitySource(config)
    source._session = StubSession({"https://x/missing.gz": StubResponse(status_code=404)})

    with pytest.raises(SourceDataError, match="missing.gz"):
        source.check_download_size(["https://x/missing.gz"], max_download_gb=1)


def test_convert_translates_and_types_columns(config, od_day) -> None:
    source = MobilitySource(config)
    workspace = config.storage.temp_root / "ws"

    dataset = source.convert(_params(end_date="2022-01-01"), workspace)

    assert dataset.db_path == workspace / "raw_data.duckdb"
    assert dataset.table == "od_data"
    con = duckdb.connect(str(dataset.db_path), read_only=True)
    try:
        types = dict((row[0], row[1]) for row in con.execute("DESCRIBE od_data").fetchall())
        count = con.execute("SELECT COUNT(*) FROM od_data").fetchone()[0]
    finally:
        con.close()
    assert types["date"] == "DATE"
    assert types["hour"] == "INTEGER"
    assert types["id_origin"] == "VARCHAR"
    assert types["n_trips"] == "DOUBLE"
    assert count == 5


def test_convert_overwrites_previous_database(config, od_day) -> None:
    source = MobilitySource(config)
    workspace = config.storage.temp_root / "ws"
    params = _params(end_date="2022-01-01")

    source.convert(params, workspace)
    dataset = source.convert(params, workspace)

    connection = source.connect(dataset)
    try:
        assert len(connection.relation().df()) == 5
        assert "id_destination" in connection.columns
    finally:
        source.disconnect(connection)


def test_convert_keeps_unknown_columns(config, tmp_path: Path) -> None:
    write_daily_file(
        tmp_path / "mitma_v2", date(2022, 1, 1),
        ["fecha", "zona_pernoctacion", "personas", "Extra"],
        [["20220101", "28079", "12.0", "x"]],
        data_type=DataType.NT,
    )
    source = MobilitySource(config)

    dataset = source.convert(_params(data_type="nt", end_date="2022-01-01"), tmp_path / "ws")
    connection = source.connect(dataset)
    try:
        assert connection.columns == ["date", "id", "n_persons", "extra"]
    finally:
        source.disconnect(connection)
