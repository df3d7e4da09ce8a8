from pathlib import Path

import duckdb

from ..settings import settings

def get_duckdb_path() -> str:
    return str(settings.ddb_path)

def open_connection(db_path: Path | str | None = None, read_only: bool = False) -> duckdb.DuckDBPyConnection:
    path = str(db_path) if db_path is not None else get_duckdb_path()
    if path != ":memory:":
        Path(path).parent.mkdir(parents=True, exist_ok=True)
    return duckdb.connect(path, read_only=read_only)
