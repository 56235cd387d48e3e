"""Per-plugin SQLite row store with additive schema migrations."""

from __future__ import annotations

import re
import sqlite3
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from loguru import logger

from ircbot.core.errors import StorageError

Schema = Mapping[str, Mapping[str, str]]

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

MEMORY = ":memory:"


def _check_identifier(name: str) -> str:
    if not _IDENTIFIER_RE.match(name):
        raise StorageError(f"Invalid identifier: {name!r}", code="invalid_identifier", details={"name": name})
    return name


def _column_type(definition: str) -> str:
    """Declared type of a column definition (first token, upper-cased)."""
    parts = definition.split()
    return parts[0].upper() if parts else ""


class Database:
    """SQLite database synchronized with a declared schema on open.

    Schema maps table name to {column name: column definition}. Missing tables are
    created, new columns added and tables no longer declared dropped. Changing the
    type of an existing column or removing a column raises StorageError.
    """

    def __init__(self, path: str | Path, schema: Schema) -> None:
        self._path = str(path)
        self._schema = schema
        try:
            self._conn = sqlite3.connect(self._path)
        except sqlite3.Error as exc:
            raise StorageError(
                f"Unable to open database {self._path}: {exc}",
                code="open_failed",
                original_error=exc,
            ) from exc
        self._conn.row_factory = sqlite3.Row
        self._migrate()

    @property
    def path(self) -> str:
        return self._path

    def close(self) -> None:
        self._conn.close()

    def _existing_tables(self) -> dict[str, dict[str, str]]:
        rows = self._conn.execute(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name NOT LIKE 'sqlite_%'"
        ).fetchall()
        tables: dict[str, dict[str, str]] = {}
        for row in rows:
            name = row["name"]
            info = self._conn.execute(f'PRAGMA table_info("{name}")').fetchall()
            tables[name] = {col["name"]: str(col["type"]).upper() for col in info}
        return tables

    def _migrate(self) -> None:
        existing = self._existing_tables()
        statements: list[str] = []

        for table, columns in self._schema.items():
            _check_identifier(table)
            current = existing.get(table)
            if current is None:
                cols = ", ".join(f"{_check_identifier(c)} {d}" for c, d in columns.items())
                statements.append(f"CREATE TABLE {table} ({cols})")
                continue
            for column, definition in columns.items():
                if column not in current:
                    statements.append(f"ALTER TABLE {table} ADD COLUMN {_check_identifier(column)} {definition}")
                elif current[column] != _column_type(definition):
                    raise StorageError(
                        f"Type of column {table}.{column} changed, which is not supported",
                        code="column_changed",
                        details={"table": table, "column": column, "old": current[column], "new": definition},
                    )
            removed = set(current) - set(columns)
            if removed:
                raise StorageError(
                    f"Columns removed from {table}, which is not supported",
                    code="column_removed",
                    details={"table": table, "columns": sorted(removed)},
                )

        for table in existing:
            if table not in self._schema:
                statements.append(f'DROP TABLE "{table}"')

        with self._conn:
            for statement in statements:
                logger.debug("Migrating {}: {}", self._path, statement)
                self._conn.execute(statement)

    def _execute(self, sql: str, params: tuple[Any, ...] = ()) -> sqlite3.Cursor:
        try:
            with self._conn:
                return self._conn.execute(sql, params)
        except sqlite3.Error as exc:
            raise StorageError(f"Query failed: {exc}", code="query_failed", details={"sql": sql}, original_error=exc) from exc

    def _query(self, sql: str, params: tuple[Any, ...] = ()) -> list[sqlite3.Row]:
        try:
            return self._conn.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            raise StorageError(f"Query failed: {exc}", code="query_failed", details={"sql": sql}, original_error=exc) from exc

    @staticmethod
    def _where(where: Mapping[str, Any] | None) -> tuple[str, tuple[Any, ...]]:
        if not where:
            return "", ()
        clause = " AND ".join(f"{_check_identifier(k)} = ?" for k in where)
        return f" WHERE {clause}", tuple(where.values())

    def insert(self, table: str, row: Mapping[str, Any]) -> int:
        """Insert a row and return its rowid."""
        cols = ", ".join(_check_identifier(c) for c in row)
        marks = ", ".join("?" for _ in row)
        cursor = self._execute(f"INSERT INTO {_check_identifier(table)} ({cols}) VALUES ({marks})", tuple(row.values()))
        return int(cursor.lastrowid or 0)

    def update(self, table: str, values: Mapping[str, Any], where: Mapping[str, Any] | None = None) -> int:
        """Update matching rows; returns the number of rows changed."""
        assignments = ", ".join(f"{_check_identifier(c)} = ?" for c in values)
        clause, params = self._where(where)
        cursor = self._execute(
            f"UPDATE {_check_identifier(table)} SET {assignments}{clause}",
            tuple(values.values()) + params,
        )
        return cursor.rowcount

    def delete(self, table: str, where: Mapping[str, Any] | None = None) -> int:
        clause, params = self._where(where)
        cursor = self._execute(f"DELETE FROM {_check_identifier(table)}{clause}", params)
        return cursor.rowcount

    def fetch_one(self, table: str, where: Mapping[str, Any] | None = None) -> dict[str, Any] | None:
        clause, params = self._where(where)
        rows = self._query(f"SELECT * FROM {_check_identifier(table)}{clause} LIMIT 1", params)
        return dict(rows[0]) if rows else None

    def fetch_all(self, table: str, where: Mapping[str, Any] | None = None) -> list[dict[str, Any]]:
        clause, params = self._where(where)
        rows = self._query(f"SELECT * FROM {_check_identifier(table)}{clause}", params)
        return [dict(r) for r in rows]
