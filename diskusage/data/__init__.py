"""Data layer - models, retry helpers, and the SQLite cache."""

from .models import (
    DISK_USAGE_FIELDS,
    SNMP_EMPTY,
    SNMP_ERROR,
    SNMP_OK,
    DiskUsageRecord,
    HostOutcome,
    HostStatus,
    HostType,
    RunSummary,
)
from .persistence import (
    CacheError,
    CacheStore,
    CacheUnavailableError,
    StatementError,
    ValidationError,
)
from .retry import RetryExhausted, retry_call

__all__ = [
    "DISK_USAGE_FIELDS",
    "SNMP_EMPTY",
    "SNMP_ERROR",
    "SNMP_OK",
    "DiskUsageRecord",
    "HostOutcome",
    "HostStatus",
    "HostType",
    "RunSummary",
    "CacheError",
    "CacheStore",
    "CacheUnavailableError",
    "StatementError",
    "ValidationError",
    "RetryExhausted",
    "retry_call",
]
