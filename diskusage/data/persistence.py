"""SQLite cache of hosts and disk usage.

Two tables are kept:
- disk_hosts: one row per hostname with the last SNMP outcome
- disk_df: one row per physical path with the last known usage

Timestamps are maintained by triggers. Rows are only ever inserted or
updated in place; retention is handled outside the collector.
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from .models import DISK_USAGE_FIELDS, SNMP_EMPTY, SNMP_ERROR, SNMP_OK, DiskUsageRecord
from .retry import RetryExhausted, log_retry, retry_call

CONNECT_DELAY = 1.0
STATEMENT_ATTEMPTS = 3
STATEMENT_DELAY = 0.01

DISK_DF_COLUMNS = (
    "df_id",
    "mount_path",
    "physical_path",
    "total_kb",
    "used_kb",
    "group_name",
    "created",
    "last_modified",
)

_NOW = "STRFTIME('%Y-%m-%d %H:%M:%f', 'NOW')"

SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS disk_df (
        df_id INTEGER PRIMARY KEY AUTOINCREMENT,
        mount_path VARCHAR(255),
        physical_path VARCHAR(255) NOT NULL UNIQUE,
        total_kb UNSIGNED INTEGER NOT NULL DEFAULT 0,
        used_kb UNSIGNED INTEGER NOT NULL DEFAULT 0,
        group_name VARCHAR(255),
        created DATE,
        last_modified DATE
    )
    """,
    f"""
    CREATE TRIGGER IF NOT EXISTS disk_df_insert_created AFTER INSERT ON disk_df
    BEGIN
        UPDATE disk_df SET created = {_NOW}, last_modified = {_NOW} WHERE rowid = new.rowid;
    END
    """,
    f"""
    CREATE TRIGGER IF NOT EXISTS disk_df_update_last_modified AFTER UPDATE ON disk_df
    BEGIN
        UPDATE disk_df SET last_modified = {_NOW} WHERE rowid = new.rowid;
    END
    """,
    """
    CREATE TABLE IF NOT EXISTS disk_hosts (
        host_id INTEGER PRIMARY KEY AUTOINCREMENT,
        hostname VARCHAR(255) NOT NULL UNIQUE,
        snmp_ok INTEGER NOT NULL DEFAULT 0,
        created DATE,
        last_modified DATE
    )
    """,
    f"""
    CREATE TRIGGER IF NOT EXISTS disk_hosts_insert_created AFTER INSERT ON disk_hosts
    BEGIN
        UPDATE disk_hosts SET created = {_NOW} WHERE rowid = new.rowid;
    END
    """,
    # last_modified only moves when the host actually returned data
    f"""
    CREATE TRIGGER IF NOT EXISTS disk_hosts_insert_last_modified AFTER INSERT ON disk_hosts
    WHEN new.snmp_ok = 1
    BEGIN
        UPDATE disk_hosts SET last_modified = {_NOW} WHERE rowid = new.rowid;
    END
    """,
    f"""
    CREATE TRIGGER IF NOT EXISTS disk_hosts_update_last_modified AFTER UPDATE OF snmp_ok ON disk_hosts
    WHEN new.snmp_ok = 1
    BEGIN
        UPDATE disk_hosts SET last_modified = {_NOW} WHERE rowid = new.rowid;
    END
    """,
]


class CacheError(Exception):
    """Base class for cache failures."""


class CacheUnavailableError(CacheError):
    """The cache cannot be opened. Nothing else can run without it."""


class StatementError(CacheError):
    """A statement could not be prepared, or failed on every attempt."""

    def __init__(self, sql: str, message: str):
        self.sql = " ".join(sql.split())
        super().__init__(f"{message} [{self.sql}]")


class ValidationError(CacheError, ValueError):
    """Input that no amount of retrying would make acceptable."""


def _terminated(sql: str) -> str:
    sql = sql.strip()
    return sql if sql.endswith(";") else sql + ";"


class CacheStore:
    """SQLite-backed cache with retrying statement execution."""

    def __init__(self, path: Union[str, Path], db_tries: int = 3, logger: Optional[logging.Logger] = None):
        self.path = Path(path).expanduser()
        self.db_tries = db_tries
        self.log = logger or logging.getLogger(__name__)
        self._conn: Optional[sqlite3.Connection] = None

    def __enter__(self) -> "CacheStore":
        self.prepare()
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # --- Connection ---

    def prepare(self) -> None:
        """Open (creating if needed) the cache and bootstrap the schema.

        Raises:
            CacheUnavailableError: If the file cannot be created, the
                connection fails `db_tries` times, or the schema cannot be
                set up (for example when the file is not an SQLite database).
        """
        if self._conn is not None:
            return

        if self.path.is_file():
            self.log.info("using existing cache %s", self.path)
        else:
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                self.path.touch()
            except OSError as e:
                raise CacheUnavailableError(f"failed to create new cache {self.path}: {e}") from e
            self.log.info("creating new cache %s", self.path)

        def _connect() -> sqlite3.Connection:
            self.log.debug("connecting to %s", self.path)
            return sqlite3.connect(str(self.path), isolation_level=None)

        try:
            conn = retry_call(
                _connect,
                attempts=max(1, self.db_tries),
                delay=CONNECT_DELAY,
                retry_on=sqlite3.Error,
                on_retry=log_retry(self.log, f"connect to {self.path}"),
            )
        except RetryExhausted as e:
            raise CacheUnavailableError(
                f"can't connect to {self.path} after {e.attempts} tries, giving up: {e.last_error}"
            ) from e.last_error

        conn.row_factory = sqlite3.Row
        self._conn = conn
        self.log.debug("connected to %s", self.path)

        try:
            for statement in SCHEMA:
                self.execute(statement)
        except StatementError as e:
            self.close()
            raise CacheUnavailableError(f"cache {self.path} is unusable: {e}") from e

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    # --- Statement execution ---

    def _prepare_statement(self, sql: str, args: Tuple[Any, ...]) -> sqlite3.Cursor:
        if not sqlite3.complete_statement(_terminated(sql)):
            raise sqlite3.ProgrammingError("incomplete SQL statement")
        # EXPLAIN compiles the statement and binds its arguments without running it.
        self._conn.execute("EXPLAIN " + sql, args).close()
        return self._conn.cursor()

    def execute(self, sql: str, *args: Any) -> List[sqlite3.Row]:
        """Run one statement, retrying transient execution failures.

        Preparation errors are not retried. Execution is attempted up to
        three times with a 10ms pause.

        Raises:
            StatementError: If there is no connection, the statement cannot
                be prepared, or every execution attempt failed.
        """
        if self._conn is None:
            raise StatementError(sql or "", "no database handle, run prepare()")
        if not sql or not sql.strip():
            raise StatementError("", "no SQL provided")

        self.log.debug("execute(%s) with args %r", " ".join(sql.split()), args)

        try:
            cursor = self._prepare_statement(sql, args)
        except (sqlite3.Error, sqlite3.Warning) as e:
            raise StatementError(sql, f"could not prepare sql: {e}") from e

        def _run() -> List[sqlite3.Row]:
            cursor.execute(sql, args)
            return cursor.fetchall()

        try:
            rows = retry_call(
                _run,
                attempts=STATEMENT_ATTEMPTS,
                delay=STATEMENT_DELAY,
                retry_on=sqlite3.Error,
                on_retry=log_retry(self.log, "execute"),
            )
        except RetryExhausted as e:
            raise StatementError(
                sql, f"failed during execute {e.attempts} times, giving up: {e.last_error}"
            ) from e.last_error

        self.log.debug("success: %d row(s)", len(rows))
        return rows

    # --- Hosts ---

    def upsert_host(self, hostname: str, result: Optional[Mapping] = None, error: bool = False) -> int:
        """Record the outcome of collecting from `hostname`.

        An existing row is always updated, even with identical values, so
        that the last_modified trigger fires again.

        Returns:
            The snmp_ok value stored: -1 on error, 1 if `result` holds
            data, 0 otherwise.
        """
        if not hostname:
            raise ValidationError("hostname is required")

        if error:
            snmp_ok = SNMP_ERROR
        else:
            snmp_ok = SNMP_OK if result else SNMP_EMPTY

        rows = self.execute("SELECT host_id FROM disk_hosts WHERE hostname = ?", hostname)
        if not rows:
            self.execute("INSERT INTO disk_hosts (hostname, snmp_ok) VALUES (?, ?)", hostname, snmp_ok)
        else:
            self.execute(
                "UPDATE disk_hosts SET hostname = ?, snmp_ok = ? WHERE hostname = ?",
                hostname,
                snmp_ok,
                hostname,
            )
        return snmp_ok

    def fetch_host(self, hostname: str) -> Optional[Dict[str, Any]]:
        rows = self.execute("SELECT * FROM disk_hosts WHERE hostname = ?", hostname)
        return dict(rows[0]) if rows else None

    # --- Disk usage ---

    def _validate_usage(self, record: Union[DiskUsageRecord, Mapping[str, Any]]) -> Dict[str, Any]:
        if isinstance(record, DiskUsageRecord):
            params = record.to_dict()
        elif isinstance(record, Mapping):
            params = dict(record)
        else:
            raise ValidationError(f"expected a mapping of usage fields, got {type(record).__name__}")

        for key in DISK_USAGE_FIELDS:
            if params.get(key) is None:
                raise ValidationError(f"params is missing key: {key}")

        for key in ("total_kb", "used_kb"):
            value = params[key]
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ValidationError(f"{key} must be a non-negative integer, got {value!r}")
        return params

    def upsert_disk_usage(self, record: Union[DiskUsageRecord, Mapping[str, Any]]) -> bool:
        """Insert or update the row for a physical path.

        Returns:
            True if a new row was inserted, False if one was updated.

        Raises:
            ValidationError: If a required field is missing or invalid.
                No statement is issued in that case.
        """
        params = self._validate_usage(record)

        rows = self.execute("SELECT df_id FROM disk_df WHERE physical_path = ?", params["physical_path"])
        if not rows:
            self.execute(
                "INSERT INTO disk_df (mount_path, physical_path, group_name, total_kb, used_kb) "
                "VALUES (?, ?, ?, ?, ?)",
                params["mount_path"],
                params["physical_path"],
                params["group_name"],
                params["total_kb"],
                params["used_kb"],
            )
            return True

        self.execute(
            "UPDATE disk_df SET mount_path = ?, group_name = ?, total_kb = ?, used_kb = ? "
            "WHERE physical_path = ?",
            params["mount_path"],
            params["group_name"],
            params["total_kb"],
            params["used_kb"],
            params["physical_path"],
        )
        return False

    def fetch(self, key: str, value: Any) -> List[Dict[str, Any]]:
        """Return disk_df rows where column `key` equals `value`."""
        if key not in DISK_DF_COLUMNS:
            raise ValidationError(f"unknown disk_df column: {key}")
        rows = self.execute(f"SELECT * FROM disk_df WHERE {key} = ?", value)
        return [dict(row) for row in rows]
