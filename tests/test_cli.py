from __future__ import annotations

import json
from pathlib import Path

import pytest
import typer
from typer.testing import CliRunner

from od2duck import __version__, cli
from od2duck.domain.enums import FilterMode
from od2duck.types import ExportResult, NoZoneCodesError

runner = CliRunner()


def _last_json(result):
    return json.loads(result.stdout.strip().splitlines()[-1])


def test_parse_filter_options() -> None:
    spec = cli.parse_filter_options(["id_origin=01059, 02003", "id_destination=02003", "id_origin=28079"])

    assert spec == {"id_origin": ["01059", "02003", "28079"], "id_destination": ["02003"]}


@pytest.mark.parametrize("option", ["id_origin", "=01059"])
def test_parse_filter_options_rejects_malformed(option) -> None:
    with pytest.raises(typer.BadParameter):
        cli.parse_filter_options([option])


def test_export_command(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    captured = {}

    def fake_export(zones, start_date, end_date, data_type, filters, **kwargs):
        captured.update(zones=zones, filters=filters, **kwargs)
        return ExportResult.success(str(tmp_path / "x.duckdb"), 3)

    filters_file = tmp_path / "filters.yml"
    filters_file.write_text("id_destination:\n  - '02003'\nhour: 7\n")
    monkeypatch.setattr(cli, "export_filtered", fake_export)

    result = runner.invoke(cli.app, [
        "export", "muni", "2022-01-01", "2022-01-02", "od",
        "-f", "id_origin=01059,02003", "--filters-file", str(filters_file), "--mode", "and",
    ])

    assert result.exit_code == 0, result.output
    assert _last_json(result) == {"status": "success", "db_path": str(tmp_path / "x.duckdb")}
    assert captured["filters"] == {"id_destination": ["02003"], "hour": [7], "id_origin": ["01059", "02003"]}
    assert captured["filter_mode"] is FilterMode.AND


def test_export_command_error_exit_code(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli, "export_filtered", lambda *a, **k: ExportResult.error("boom"))

    result = runner.invoke(cli.app, ["export", "muni", "2022-01-01", "2022-01-01"])

    assert result.exit_code == 1
    assert _last_json(result) == {"status": "error", "message": "boom"}


def test_zone_codes_command(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli, "get_zone_codes", lambda zones, names, version, split_compound: {"38001", "35002"})

    result = runner.invoke(cli.app, ["zone-codes", "gau", "Tenerife", "Gran Canaria", "--json"])

    assert result.exit_code == 0, result.output
    assert _last_json(result) == ["35002", "38001"]


def test_zone_codes_command_without_matches(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake(zones, names, version, split_compound):
        raise NoZoneCodesError(names)

    monkeypatch.setattr(cli, "get_zone_codes", fake)

    result = runner.invoke(cli.app, ["zone-codes", "muni", "Atlantis"])

    assert result.exit_code == 1


def test_clean_temp_command(config) -> None:
    result = runner.invoke(cli.app, ["clean-temp", "--retention-hours", "1"])

    assert result.exit_code == 0, result.output
    assert "Removed 0 stale workspace(s)" in result.output


def test_version_command() -> None:
    result = runner.invoke(cli.app, ["version"])

    assert result.exit_code == 0
    assert __version__ in result.output
