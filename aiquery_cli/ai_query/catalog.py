"""SQLite schema catalog used to ground prompts and explain queries."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Sequence

from aiquery_cli.shared.exceptions import CatalogError

from .types import ColumnInfo, DatabaseSchema, TableDetails, TableInfo

DEFAULT_SCHEMA = "main"


class SQLiteCatalog:
    """Read-only metadata access for a SQLite database file."""

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = Path(db_path).expanduser()

    def get_database_tables(self, schema_name: str = DEFAULT_SCHEMA) -> DatabaseSchema:
        """List user tables and views with a row count for tables."""
        with self._connection() as connection:
            rows = connection.execute(
                f"SELECT name, type FROM {_quote(schema_name)}.sqlite_schema "
                "WHERE type IN ('table', 'view') AND name NOT LIKE 'sqlite_%' ORDER BY name"
            ).fetchall()
            tables = [
                TableInfo(
                    table_name=row["name"],
                    schema_name=schema_name,
                    table_type=row["type"].upper(),
                    estimated_rows=_count_rows(connection, schema_name, row["name"]) if row["type"] == "table" else 0,
                )
                for row in rows
            ]
        return DatabaseSchema(tables=tuple(tables))

    def get_table_details(self, table_name: str, schema_name: str = DEFAULT_SCHEMA) -> TableDetails:
        """Return columns, key relationships and index names for one table."""
        with self._connection() as connection:
            schema = _quote(schema_name)
            table = _quote(table_name)
            column_rows = connection.execute(f"PRAGMA {schema}.table_info({table})").fetchall()
            if not column_rows:
                raise CatalogError(f"Table '{schema_name}.{table_name}' does not exist in the database.")
            foreign_keys = {
                row["from"]: (row["table"], row["to"] or "")
                for row in connection.execute(f"PRAGMA {schema}.foreign_key_list({table})").fetchall()
            }
            indexes = [row["name"] for row in connection.execute(f"PRAGMA {schema}.index_list({table})").fetchall()]

        columns = [_column_from_row(row, foreign_keys) for row in column_rows]
        return TableDetails(
            table_name=table_name,
            schema_name=schema_name,
            columns=tuple(columns),
            indexes=tuple(indexes),
        )

    def explain(self, query: str) -> str:
        """Return the ``EXPLAIN QUERY PLAN`` output as an indented tree."""
        with self._connection() as connection:
            rows = connection.execute(f"EXPLAIN QUERY PLAN {query}").fetchall()
        return _format_plan(rows)

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        if not self.db_path.is_file():
            raise CatalogError(f"Database path not found: {self.db_path}")
        try:
            connection = sqlite3.connect(f"file:{self.db_path}?mode=ro", uri=True)
        except sqlite3.Error as exc:
            raise CatalogError(f"Unable to open database {self.db_path}: {exc}") from exc
        connection.row_factory = sqlite3.Row
        try:
            yield connection
        except sqlite3.OperationalError as exc:
            raise CatalogError(f"SQLite error: {exc}") from exc
        except sqlite3.DatabaseError as exc:
            raise CatalogError(f"Database error while reading the catalog: {exc}") from exc
        finally:
            connection.close()


def _quote(identifier: str) -> str:
    return '"' + identifier.replace('"', '""') + '"'


def _count_rows(connection: sqlite3.Connection, schema_name: str, table_name: str) -> int:
    cursor = connection.execute(f"SELECT COUNT(*) FROM {_quote(schema_name)}.{_quote(table_name)}")
    return int(cursor.fetchone()[0])


def _column_from_row(row: sqlite3.Row, foreign_keys: dict[str, tuple[str, str]]) -> ColumnInfo:
    reference = foreign_keys.get(row["name"])
    default = row["dflt_value"]
    return ColumnInfo(
        column_name=row["name"],
        data_type=row["type"] or "",
        # SQLite reports primary key columns as nullable unless declared NOT NULL.
        is_nullable=not (row["notnull"] or row["pk"]),
        column_default="" if default is None else str(default),
        is_primary_key=bool(row["pk"]),
        is_foreign_key=reference is not None,
        foreign_table=reference[0] if reference else "",
        foreign_column=reference[1] if reference else "",
    )


def _format_plan(rows: Sequence[sqlite3.Row]) -> str:
    depths: dict[int, int] = {}
    lines: list[str] = []
    for row in rows:
        node_id, parent_id, detail = row[0], row[1], row[3]
        depth = depths.get(parent_id, -1) + 1
        depths[node_id] = depth
        lines.append(f"{'  ' * depth}{detail}")
    return "\n".join(lines)
