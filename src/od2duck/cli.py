import json
from typing import Annotated, Any, Optional

import typer
from dotenv import load_dotenv

# Load environment variables BEFORE importing local modules that use them
load_dotenv()

from .cleanup import cleanup_stale_workspaces
from .config.settings import Config, ConfigurationError
from .domain.enums import FilterMode
from .pipeline.export import export_filtered
from .pipeline.zones import get_zone_codes
from .types import NoZoneCodesError
from .utils import load_yaml_file, setup_logging

app = typer.Typer(help="MITMA mobility data: filtered DuckDB exports and zone code lookup")


def parse_filter_options(options: Optional[list[str]]) -> dict[str, list[str]]:
    """
    Parse repeated `column=value1,value2` options into a filter specification.

    Repeating a column extends its value list.
    """
    spec: dict[str, list[str]] = {}
    for option in options or []:
        if "=" not in option:
            raise typer.BadParameter(f"Filter '{option}' must look like column=value1,value2")
        column, raw_values = option.split("=", 1)
        column = column.strip()
        if not column:
            raise typer.BadParameter(f"Filter '{option}' has an empty column name")
        values = [v.strip() for v in raw_values.split(",") if v.strip()]
        spec.setdefault(column, []).extend(values)
    return spec


def load_filters_file(path: str) -> dict[str, list[Any]]:
    """Read a YAML mapping of column -> list of values."""
    content = load_yaml_file(path) or {}
    if not isinstance(content, dict):
        raise typer.BadParameter(f"Filters file {path} must contain a mapping of column -> values")
    spec = {}
    for column, values in content.items():
        spec[str(column)] = values if isinstance(values, list) else [values]
    return spec


@app.command("export")
def export_command(
    zones: Annotated[str, typer.Argument(help="Zones: districts, municipalities, lua (aliases such as muni, gau accepted)")],
    start_date: Annotated[str, typer.Argument(help="Start date, YYYY-MM-DD")],
    end_date: Annotated[str, typer.Argument(help="End date, YYYY-MM-DD")],
    data_type: Annotated[str, typer.Argument(help="Data type: od, nt, os (os only for v2 dates)")] = "od",
    filter_options: Annotated[Optional[list[str]], typer.Option("--filter", "-f", help="Filter as column=value1,value2 (repeatable)")] = None,
    filters_file: Annotated[Optional[str], typer.Option("--filters-file", help="YAML file with column -> values mapping")] = None,
    mode: Annotated[FilterMode, typer.Option("--mode", "-m", help="Combine filter columns with 'or' or 'and'")] = FilterMode.OR,
    max_mem_gb: Annotated[Optional[float], typer.Option("--max-mem-gb", help="DuckDB memory budget in GB")] = None,
    max_cpu: Annotated[Optional[int], typer.Option("--max-cpu", help="DuckDB threads")] = None,
    max_download_gb: Annotated[Optional[float], typer.Option("--max-download-gb", help="Maximum download size in GB")] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable detailed logging output")] = False,
    log_to_file: Annotated[bool, typer.Option("--log-to-file", help="Create timestamped log files")] = False,
):
    """
    Download a MITMA dataset and save the filtered rows to a new DuckDB file.

    Examples:
        od2duck export muni 2022-01-01 2022-01-02 od -f id_origin=01059,02003 -f id_destination=02003
        od2duck export districts 2022-03-01 2022-03-01 od --filters-file filters.yml --mode and
    """
    setup_logging(verbose, "export", log_to_file)

    filters = load_filters_file(filters_file) if filters_file else {}
    for column, values in parse_filter_options(filter_options).items():
        filters.setdefault(column, []).extend(values)

    result = export_filtered(
        zones,
        start_date,
        end_date,
        data_type,
        filters,
        max_mem_gb=max_mem_gb,
        max_cpu=max_cpu,
        max_download_gb=max_download_gb,
        filter_mode=mode,
    )
    typer.echo(json.dumps(result.to_dict()))
    if not result.ok:
        raise typer.Exit(1)


@app.command("zone-codes")
def zone_codes_command(
    zones: Annotated[str, typer.Argument(help="Zones: districts, municipalities, lua (aliases accepted)")],
    names: Annotated[list[str], typer.Argument(help="Region names, e.g. 'Tenerife' 'Gran Canaria'")],
    version: Annotated[int, typer.Option("--version", help="Dataset version, 1 or 2")] = 2,
    split_compound: Annotated[bool, typer.Option("--split-compound", help="Split '; '-joined compound ids")] = False,
    as_json: Annotated[bool, typer.Option("--json", help="Print a JSON list instead of one code per line")] = False,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable detailed logging output")] = False,
):
    """
    Print the MITMA zone codes intersecting the named regions.

    Example:
        od2duck zone-codes gau "El Hierro" "La Gomera" "Tenerife" --version 2
    """
    setup_logging(verbose)
    try:
        codes = sorted(get_zone_codes(zones, names, version, split_compound=split_compound))
    except NoZoneCodesError as e:
        typer.echo(f"ERROR: {e}", err=True)
        raise typer.Exit(1)
    except ValueError as e:
        typer.echo(f"ERROR: {e}", err=True)
        raise typer.Exit(2)

    if as_json:
        typer.echo(json.dumps(codes))
    else:
        for code in codes:
            typer.echo(code)


@app.command("clean-temp")
def clean_temp(
    retention_hours: Annotated[Optional[int], typer.Option("--retention-hours", help="Remove workspaces older than this")] = None,
):
    """Remove workspaces left behind by interrupted exports."""
    setup_logging(False)
    try:
        config = Config()
    except ConfigurationError as e:
        typer.echo(f"ERROR: {e}", err=True)
        raise typer.Exit(1)

    hours = retention_hours if retention_hours is not None else config.storage.retention_hours
    removed = cleanup_stale_workspaces(config.storage.temp_root, hours)
    typer.echo(f"Removed {removed} stale workspace(s) from {config.storage.temp_root}")


@app.command("version")
def version():
    """Display version information."""
    from . import __version__
    typer.echo(f"od2duck version: {__version__}")


if __name__ == "__main__":
    app()
