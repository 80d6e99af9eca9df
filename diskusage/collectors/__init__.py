"""SNMP collection - sessions, host classification, and disk usage fetchers."""

from .base import HostError, HostConnectionError, SnmpQueryError, UnrecognizedHostError
from .snmp import SnmpConnector, SnmpSession, SYS_DESCR_OID
from .classifier import HostClassifier
from .disk_usage import (
    DiskUsageFetcher,
    EmptyStrategy,
    GroupResolver,
    HostStrategy,
    LinuxStrategy,
    NetAppStrategy,
    default_strategies,
)

__all__ = [
    "HostError",
    "HostConnectionError",
    "SnmpQueryError",
    "UnrecognizedHostError",
    "SnmpConnector",
    "SnmpSession",
    "SYS_DESCR_OID",
    "HostClassifier",
    "DiskUsageFetcher",
    "EmptyStrategy",
    "GroupResolver",
    "HostStrategy",
    "LinuxStrategy",
    "NetAppStrategy",
    "default_strategies",
]
