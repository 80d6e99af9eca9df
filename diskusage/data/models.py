"""Data models for the disk usage cache.

Capacities are always kilobytes (unsigned integers). Host results use the
tri-state SNMP status stored in the cache:

- SNMP_ERROR (-1): the query failed
- SNMP_EMPTY (0): the host answered but returned no usage data
- SNMP_OK (1): usage data was collected
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


SNMP_ERROR = -1
SNMP_EMPTY = 0
SNMP_OK = 1

DISK_USAGE_FIELDS = ("mount_path", "physical_path", "total_kb", "used_kb", "group_name")


class HostType(str, Enum):
    """Kind of host, used only to pick a fetch strategy. Never persisted."""

    LINUX = "linux"
    NETAPP = "netapp"
    GPFS = "gpfs"
    GPFS_EXTENDED = "gpfs-extended"
    UNKNOWN = "unknown"


class HostStatus(str, Enum):
    """Per-host outcome of a collection run."""

    OK = "ok"  # usage rows were collected
    EMPTY = "empty"  # no error, but nothing to store
    ERROR = "error"  # connection, classification or query failure


@dataclass
class DiskUsageRecord:
    """Usage of one filesystem, keyed by physical path."""

    mount_path: str
    physical_path: str
    total_kb: int
    used_kb: int
    group_name: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mount_path": self.mount_path,
            "physical_path": self.physical_path,
            "total_kb": self.total_kb,
            "used_kb": self.used_kb,
            "group_name": self.group_name,
        }


@dataclass
class HostOutcome:
    """What happened to one host during a run."""

    hostname: str
    host_type: HostType = HostType.UNKNOWN
    status: HostStatus = HostStatus.EMPTY
    records: List[DiskUsageRecord] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class RunSummary:
    """Result of one collection run across all hosts."""

    hosts: Dict[str, HostOutcome] = field(default_factory=dict)
    usage: Dict[str, DiskUsageRecord] = field(default_factory=dict)

    def count(self, status: HostStatus) -> int:
        return sum(1 for outcome in self.hosts.values() if outcome.status == status)

    @property
    def failed_hosts(self) -> List[str]:
        return [name for name, outcome in self.hosts.items() if outcome.status == HostStatus.ERROR]
