from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Optional

import duckdb
import pandas as pd

logger = logging.getLogger(__name__)

# Connections opened through this module and not closed yet, per thread
_registry = threading.local()


def _tracked() -> list[duckdb.DuckDBPyConnection]:
    if not hasattr(_registry, "connections"):
        _registry.connections = []
    return _registry.connections


def open_connection(
    path: Optional[Path] = None,
    read_only: bool = False,
    memory_gb: Optional[float] = None,
    threads: Optional[int] = None,
    temp_dir: Optional[Path] = None,
    remote: bool = False,
) -> duckdb.DuckDBPyConnection:
    """
    Open a tracked DuckDB connection with optional resource limits.

    Args:
        path: Database file, in-memory when None
        read_only: Open the database read-only
        memory_gb: Value for SET memory_limit
        threads: Value for SET threads
        temp_dir: Spill directory for out-of-core operators
        remote: Load httpfs for http(s) reads
    """
    database = str(path) if path is not None else ":memory:"
    con = duckdb.connect(database=database, read_only=read_only)
    _tracked().append(con)

    try:
        if remote:
            con.execute("INSTALL httpfs; LOAD httpfs;")
            con.execute("SET http_timeout=1800000;")  # 30 minutes for large transfers
            con.execute("SET http_retries=3;")
        if memory_gb is not None:
            con.execute(f"SET memory_limit='{memory_gb:g}GB';")
        if threads is not None:
            con.execute(f"SET threads={int(threads)};")
        if temp_dir is not None:
            temp_dir_str = str(temp_dir).replace('\\', '/')
            con.execute(f"SET temp_directory='{temp_dir_str}';")
        con.execute("SET preserve_insertion_order=false;")
    except Exception:
        close_connection(con)
        raise

    logger.debug(f"DuckDB connection opened: {database} (read_only={read_only}, "
                 f"memory={memory_gb}GB, threads={threads})")
    return con


def close_connection(con: Optional[duckdb.DuckDBPyConnection]) -> None:
    """Close a connection and forget it. Safe to call twice."""
    if con is None:
        return
    try:
        con.close()
    finally:
        if con in _tracked():
            _tracked().remove(con)


def open_connection_count() -> int:
    """Tracked connections still open in the calling thread."""
    return len(_tracked())


def close_orphan_connections() -> int:
    """
    Close every connection this thread opened and left open, e.g. after an
    interrupted call. Connections owned by other threads are not touched.

    Returns:
        Number of connections closed
    """
    closed = 0
    for con in list(_tracked()):
        try:
            close_connection(con)
            closed += 1
        except Exception as e:
            logger.warning(f"Could not close orphan DuckDB connection: {e}")
            if con in _tracked():
                _tracked().remove(con)
    if closed:
        logger.info(f"Closed {closed} orphan DuckDB connection(s)")
    return closed


def quote_identifier(name: str) -> str:
    """Quote a column or table name for DuckDB SQL."""
    return '"' + str(name).replace('"', '""') + '"'


def table_schema(con: duckdb.DuckDBPyConnection, table: str) -> list[tuple[str, str]]:
    """(column, DuckDB type) pairs of a table, in order."""
    rows = con.execute(f"DESCRIBE {quote_identifier(table)}").fetchall()
    return [(row[0], row[1]) for row in rows]


def write_table(
    con: duckdb.DuckDBPyConnection,
    table: str,
    df: pd.DataFrame,
    schema: Optional[list[tuple[str, str]]] = None,
) -> int:
    """
    Persist a DataFrame as a single table, replacing any table of the same name.

    pandas widens some DuckDB types (DATE comes back as datetime64, nullable
    INTEGER as float64). When `schema` is given, each listed column is cast
    back to its DuckDB type so the table matches the relation `df` came from.

    Returns:
        Row count of the written table
    """
    if schema:
        select = ", ".join(
            f"CAST({quote_identifier(name)} AS {sql_type}) AS {quote_identifier(name)}"
            for name, sql_type in schema
        )
    else:
        select = "*"

    con.register("_od2_frame", df)
    try:
        con.execute(f"CREATE OR REPLACE TABLE {quote_identifier(table)} AS SELECT {select} FROM _od2_frame")
    finally:
        con.unregister("_od2_frame")
    count = con.execute(f"SELECT COUNT(*) FROM {quote_identifier(table)}").fetchone()[0]
    return int(count)
