from __future__ import annotations

from collections.abc import Iterable

from sqlalchemy.engine import Engine


_SQLITE_COMPAT_COLUMNS: dict[str, dict[str, str]] = {
    "events": {"description": "TEXT"},
    "prompts": {
        "max_uploads": "INTEGER",
        "is_active": "BOOLEAN",
    },
    "uploads": {
        "original_name": "VARCHAR(255)",
        "mime_type": "VARCHAR(100)",
        "caption": "TEXT",
    },
}

# Backfill values for columns that are NOT NULL on freshly created tables.
_SQLITE_COLUMN_DEFAULTS: dict[tuple[str, str], str] = {
    ("prompts", "is_active"): "1",
}


def _existing_columns(conn, table_name: str) -> set[str]:
    rows = conn.exec_driver_sql(f"PRAGMA table_info({table_name})").all()
    return {row[1] for row in rows}


def _add_missing_columns(
    conn,
    table_name: str,
    missing_columns: Iterable[str],
    column_types: dict[str, str],
) -> None:
    for column_name in missing_columns:
        column_type = column_types[column_name]
        conn.exec_driver_sql(
            f"ALTER TABLE {table_name} ADD COLUMN {column_name} {column_type}"
        )
        default = _SQLITE_COLUMN_DEFAULTS.get((table_name, column_name))
        if default is not None:
            conn.exec_driver_sql(
                f"UPDATE {table_name} SET {column_name} = {default} WHERE {column_name} IS NULL"
            )


def run_startup_migrations(engine: Engine, db_url: str) -> None:
    if not db_url.startswith("sqlite"):
        return

    with engine.begin() as conn:
        for table_name, column_types in _SQLITE_COMPAT_COLUMNS.items():
            existing = _existing_columns(conn, table_name)
            if not existing:
                continue
            missing = [column for column in column_types if column not in existing]
            if missing:
                _add_missing_columns(conn, table_name, missing, column_types)
