"""Tests for the SQLite cache."""

import sqlite3
import time

import pytest
from unittest.mock import patch, MagicMock, call

from diskusage.data.models import DiskUsageRecord
from diskusage.data.persistence import (
    CacheStore,
    CacheUnavailableError,
    StatementError,
    ValidationError,
)


REAL_CONNECT = sqlite3.connect


def _count(store, table):
    return store.execute(f"SELECT COUNT(*) FROM {table}")[0][0]


def _usage(physical_path, used_kb=900, **overrides):
    params = {
        "physical_path": physical_path,
        "mount_path": physical_path.replace("/vol/", "/gscmnt/"),
        "total_kb": 1000,
        "used_kb": used_kb,
        "group_name": "PRODUCTION",
    }
    params.update(overrides)
    return params


class TestPrepare:
    def test_creates_cache_file(self, temp_data_dir):
        path = temp_data_dir / "nested" / "cache.db"
        with CacheStore(path) as store:
            assert path.exists()
            tables = {row[0] for row in store.execute("SELECT name FROM sqlite_master WHERE type = 'table'")}
            assert {"disk_df", "disk_hosts"} <= tables

    def test_schema_bootstrap_is_idempotent(self, temp_data_dir):
        path = temp_data_dir / "cache.db"
        with CacheStore(path) as store:
            store.upsert_disk_usage(_usage("/vol/sata800"))

        with CacheStore(path) as store:
            assert _count(store, "disk_df") == 1
            triggers = store.execute("SELECT name FROM sqlite_master WHERE type = 'trigger'")
            assert len(triggers) == 5

    @patch("time.sleep")
    @patch("sqlite3.connect")
    def test_connect_retries_then_gives_up(self, mock_connect, mock_sleep, temp_data_dir):
        mock_connect.side_effect = sqlite3.OperationalError("unable to open database file")
        store = CacheStore(temp_data_dir / "cache.db", db_tries=3)

        with pytest.raises(CacheUnavailableError) as excinfo:
            store.prepare()

        assert mock_connect.call_count == 3
        assert mock_sleep.call_args_list == [call(1.0), call(1.0)]
        assert "unable to open database file" in str(excinfo.value)

    @patch("time.sleep")
    @patch("sqlite3.connect")
    def test_connect_recovers(self, mock_connect, mock_sleep, temp_data_dir):
        conn = REAL_CONNECT(str(temp_data_dir / "cache.db"), isolation_level=None)
        mock_connect.side_effect = [sqlite3.OperationalError("database is locked"), conn]

        store = CacheStore(temp_data_dir / "cache.db", db_tries=3)
        store.prepare()

        assert mock_connect.call_count == 2
        assert _count(store, "disk_hosts") == 0
        store.close()

    def test_uncreatable_cache(self, temp_data_dir):
        blocker = temp_data_dir / "not_a_dir"
        blocker.write_text("x")
        with pytest.raises(CacheUnavailableError):
            CacheStore(blocker / "cache.db").prepare()

    def test_file_that_is_not_a_database(self, temp_data_dir):
        path = temp_data_dir / "cache.db"
        path.write_bytes(b"this is not an sqlite database" * 100)
        store = CacheStore(path)

        with patch("time.sleep") as mock_sleep:
            with pytest.raises(CacheUnavailableError) as excinfo:
                store.prepare()
            with pytest.raises(CacheUnavailableError):
                store.prepare()

        assert "not a database" in str(excinfo.value)
        assert store._conn is None
        mock_sleep.assert_not_called()


class TestExecute:
    def test_requires_prepare(self, temp_data_dir):
        with pytest.raises(StatementError) as excinfo:
            CacheStore(temp_data_dir / "cache.db").execute("SELECT 1")
        assert "run prepare()" in str(excinfo.value)

    def test_succeeds_on_third_attempt(self, cache):
        real_conn = cache._conn
        cache._conn = MagicMock()
        cursor = cache._conn.cursor.return_value
        locked = sqlite3.OperationalError("database is locked")
        cursor.execute.side_effect = [locked, locked, None]
        cursor.fetchall.return_value = [(1,)]
        try:
            with patch("time.sleep") as mock_sleep:
                rows = cache.execute("SELECT 1")
        finally:
            cache._conn = real_conn

        assert rows == [(1,)]
        assert cursor.execute.call_count == 3
        assert mock_sleep.call_args_list == [call(0.01), call(0.01)]

    def test_fails_after_three_attempts(self, cache):
        real_conn = cache._conn
        cache._conn = MagicMock()
        cursor = cache._conn.cursor.return_value
        cursor.execute.side_effect = [
            sqlite3.OperationalError("database is locked"),
            sqlite3.OperationalError("database is locked"),
            sqlite3.OperationalError("disk I/O error"),
        ]
        try:
            with patch("time.sleep"):
                with pytest.raises(StatementError) as excinfo:
                    cache.execute("SELECT 1")
        finally:
            cache._conn = real_conn

        assert cursor.execute.call_count == 3
        assert "disk I/O error" in str(excinfo.value)

    @pytest.mark.parametrize("sql", [
        "SELECT 'unterminated",
        "SELEC * FROM disk_df",
        "SELECT * FROM no_such_table",
        "SELECT no_such_column FROM disk_hosts",
    ])
    def test_prepare_failure_is_not_retried(self, cache, sql, caplog):
        with patch("time.sleep") as mock_sleep:
            with pytest.raises(StatementError) as excinfo:
                cache.execute(sql)

        assert "could not prepare" in str(excinfo.value)
        assert excinfo.value.sql == sql
        mock_sleep.assert_not_called()
        assert "retrying" not in caplog.text

    def test_prepare_does_not_run_statement(self, cache):
        cache.execute("INSERT INTO disk_hosts (hostname, snmp_ok) VALUES (?, ?)", "ntap1", 0)
        assert _count(cache, "disk_hosts") == 1

    def test_returns_rows(self, cache):
        cache.upsert_disk_usage(_usage("/vol/sata800"))
        rows = cache.execute("SELECT physical_path, used_kb FROM disk_df")
        assert rows[0]["physical_path"] == "/vol/sata800"
        assert rows[0]["used_kb"] == 900


class TestHosts:
    def test_snmp_ok_values(self, cache):
        assert cache.upsert_host("linuscs107", {"/dev/sda1": {}}) == 1
        assert cache.upsert_host("linuscs108", {}) == 0
        assert cache.upsert_host("linuscs109", error=True) == -1

        assert cache.fetch_host("linuscs107")["snmp_ok"] == 1
        assert cache.fetch_host("linuscs108")["snmp_ok"] == 0
        assert cache.fetch_host("linuscs109")["snmp_ok"] == -1

    def test_repeated_upsert_keeps_one_row(self, cache):
        result = {"/vol/sata800": _usage("/vol/sata800")}
        cache.upsert_host("ntap1", result)
        first = cache.fetch_host("ntap1")
        time.sleep(0.02)
        cache.upsert_host("ntap1", result)
        second = cache.fetch_host("ntap1")

        assert _count(cache, "disk_hosts") == 1
        assert second["host_id"] == first["host_id"]
        assert second["created"] == first["created"]
        assert second["last_modified"] > first["last_modified"]

    def test_last_modified_only_on_success(self, cache):
        cache.upsert_host("flaky", {"/dev/sda1": {}})
        good = cache.fetch_host("flaky")
        time.sleep(0.02)
        cache.upsert_host("flaky", error=True)
        failed = cache.fetch_host("flaky")

        assert failed["snmp_ok"] == -1
        assert failed["last_modified"] == good["last_modified"]

    def test_new_failed_host_has_no_last_modified(self, cache):
        cache.upsert_host("deadhost", error=True)
        row = cache.fetch_host("deadhost")
        assert row["created"] is not None
        assert row["last_modified"] is None

    def test_fetch_missing_host(self, cache):
        assert cache.fetch_host("nope") is None


class TestDiskUsage:
    def test_insert_then_update(self, cache):
        assert cache.upsert_disk_usage(_usage("/vol/sata800")) is True
        assert cache.upsert_disk_usage(_usage("/vol/sata900")) is True
        before = cache.fetch("physical_path", "/vol/sata800")[0]
        time.sleep(0.02)
        assert cache.upsert_disk_usage(_usage("/vol/sata800", used_kb=950)) is False

        assert _count(cache, "disk_df") == 2
        after = cache.fetch("physical_path", "/vol/sata800")[0]
        assert after["used_kb"] == 950
        assert after["df_id"] == before["df_id"]
        assert after["created"] == before["created"]
        assert after["last_modified"] > before["last_modified"]

    def test_insert_sets_timestamps(self, cache):
        cache.upsert_disk_usage(_usage("/vol/sata800"))
        row = cache.fetch("physical_path", "/vol/sata800")[0]
        assert row["created"] is not None
        assert row["last_modified"] is not None

    def test_accepts_record_objects(self, cache):
        cache.upsert_disk_usage(DiskUsageRecord("/", "/dev/sda1", 41943040, 20971520, "SYSTEMS"))
        row = cache.fetch("mount_path", "/")[0]
        assert row["physical_path"] == "/dev/sda1"
        assert row["group_name"] == "SYSTEMS"

    def test_missing_field_fails_before_any_statement(self, cache):
        params = _usage("/vol/sata800")
        del params["group_name"]

        with patch.object(cache, "execute", wraps=cache.execute) as spy:
            with pytest.raises(ValidationError) as excinfo:
                cache.upsert_disk_usage(params)
            spy.assert_not_called()

        assert "group_name" in str(excinfo.value)
        assert _count(cache, "disk_df") == 0

    def test_negative_size_rejected(self, cache):
        with pytest.raises(ValidationError):
            cache.upsert_disk_usage(_usage("/vol/sata800", used_kb=-5))

    def test_fetch_unknown_column(self, cache):
        with pytest.raises(ValidationError):
            cache.fetch("physical_path; DROP TABLE disk_df", "x")

    def test_fetch_no_match(self, cache):
        assert cache.fetch("physical_path", "/vol/none") == []
