"""Pytest configuration and shared fixtures."""

import pytest
from pathlib import Path
from tempfile import TemporaryDirectory

from diskusage.collectors.base import HostConnectionError, SnmpQueryError
from diskusage.data.persistence import CacheStore


class FakeSession:
    """Stands in for SnmpSession, serving canned walk results per OID."""

    def __init__(self, hostname="host1", sys_descr="Linux host1 5.14.0-362.el9.x86_64", tables=None, failing=()):
        self.hostname = hostname
        self.sys_descr = sys_descr
        self.tables = tables or {}
        self.failing = set(failing)
        self.closed = False
        self.walked = []

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def close(self):
        self.closed = True

    def get(self, oid):
        return None

    def walk(self, oid):
        self.walked.append(oid)
        if oid in self.failing:
            raise SnmpQueryError(self.hostname, oid, "Timeout: No Response from " + self.hostname)
        return dict(self.tables.get(oid, {}))


class FakeConnector:
    """Hands out FakeSessions, or raises HostConnectionError for unknown hosts."""

    def __init__(self, sessions):
        self.sessions = sessions
        self.connected = []

    def connect(self, hostname):
        self.connected.append(hostname)
        session = self.sessions.get(hostname)
        if session is None:
            raise HostConnectionError(hostname, "connect failed: Timeout: No Response from " + hostname)
        return session


@pytest.fixture
def temp_data_dir():
    """Create a temporary data directory for tests."""
    with TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def cache(temp_data_dir):
    """A prepared cache in a temporary directory."""
    store = CacheStore(temp_data_dir / "diskusage.db", db_tries=3)
    store.prepare()
    yield store
    store.close()


@pytest.fixture
def make_session():
    return FakeSession


@pytest.fixture
def make_connector():
    return FakeConnector


@pytest.fixture
def linux_dsk_tables():
    """UCD-SNMP dskTable columns for a Linux host."""
    return {
        "1.3.6.1.4.1.2021.9.1.2": {"1": "/", "2": "/gscmnt/sata800", "3": "/dev/shm", "4": "/mnt/nfs"},
        "1.3.6.1.4.1.2021.9.1.3": {"1": "/dev/sda1", "2": "/dev/mapper/vg-sata800", "3": "tmpfs", "4": "filer1:/vol/home"},
        "1.3.6.1.4.1.2021.9.1.6": {"1": "41943040", "2": "1000000", "3": "8000000", "4": "5000000"},
        "1.3.6.1.4.1.2021.9.1.8": {"1": "20971520", "2": "900000", "3": "0", "4": "100"},
    }


@pytest.fixture
def netapp_df_tables():
    """NETAPP-MIB dfTable columns for a filer."""
    return {
        "1.3.6.1.4.1.789.1.5.4.1.2": {
            "1": "/vol/sata800/",
            "2": "/vol/sata800/.snapshot",
            "3": "/vol/sata900/",
            "4": "/vol/empty/",
        },
        "1.3.6.1.4.1.789.1.5.4.1.10": {
            "1": "/gscmnt/sata800",
            "2": "/gscmnt/sata800/.snapshot",
            "3": "/gscmnt/sata900",
            "4": "/gscmnt/empty",
        },
        "1.3.6.1.4.1.789.1.5.4.1.3": {"1": "1000", "2": "250", "3": "2000", "4": "0"},
        "1.3.6.1.4.1.789.1.5.4.1.4": {"1": "900", "2": "10", "3": "150", "4": "0"},
    }


@pytest.fixture
def sample_walk_output():
    """Sample `snmpbulkwalk -On -Oq` output for dskPath."""
    return '''.1.3.6.1.4.1.2021.9.1.2.1 "/"
.1.3.6.1.4.1.2021.9.1.2.2 "/gscmnt/sata800"
.1.3.6.1.4.1.2021.9.1.2.3 "/home"
'''
