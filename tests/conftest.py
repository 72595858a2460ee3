from __future__ import annotations

import gzip
from datetime import date
from pathlib import Path

import pytest

from od2duck.config import Config
from od2duck.domain.enums import DatasetVersion, DataType, ZoneCategory
from od2duck.pipeline.source import daily_file_path

OD_HEADER = ["fecha", "periodo", "origen", "destino", "distancia", "viajes", "viajes_km"]

OD_ROWS = [
    ["20220101", "00", "A", "B", "2-10", "10.5", "52.0"],
    ["20220101", "01", "A", "C", "10-50", "3.0", "90.1"],
    ["20220101", "02", "X", "B", "0.5-2", "7.25", "8.0"],
    ["20220101", "03", "X", "Y", ">50", "1.0", "75.0"],
    ["20220101", "04", "01059", "02003", "2-10", "4.0", "20.0"],
]


@pytest.fixture
def config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Config:
    monkeypatch.setenv("OD2DUCK_OUTPUT_DIR", str(tmp_path / "out"))
    monkeypatch.setenv("OD2DUCK_TEMP_DIR", str(tmp_path / "tmp"))
    monkeypatch.setenv("OD2DUCK_MAX_MEM_GB", "1")
    monkeypatch.setenv("OD2DUCK_MAX_CPU", "1")
    monkeypatch.setenv("OD2DUCK_MAX_DOWNLOAD_GB", "1")
    monkeypatch.setenv("OD2DUCK_V1_BASE_URL", str(tmp_path / "mitma_v1"))
    monkeypatch.setenv("OD2DUCK_V2_BASE_URL", str(tmp_path / "mitma_v2"))
    return Config()


def write_daily_file(
    base: Path,
    day: date,
    header: list[str],
    rows: list[list[str]],
    *,
    version: DatasetVersion = DatasetVersion.V2,
    data_type: DataType = DataType.OD,
    zones: ZoneCategory = ZoneCategory.MUNICIPALITIES,
) -> Path:
    """Write a gzipped, pipe-delimited daily file in the MITMA open data layout."""
    path = Path(base) / daily_file_path(version, data_type, zones, day)
    path.parent.mkdir(parents=True, exist_ok=True)
    lines = ["|".join(header)] + ["|".join(row) for row in rows]
    with gzip.open(path, "wt", encoding="utf-8") as f:
        f.write("\n".join(lines) + "\n")
    return path


@pytest.fixture
def od_day(tmp_path: Path) -> Path:
    """One day of v2 municipality OD data under the configured v2 base."""
    return write_daily_file(tmp_path / "mitma_v2", date(2022, 1, 1), OD_HEADER, OD_ROWS)
