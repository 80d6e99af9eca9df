"""Disk usage fetch strategies, one per host type.

Linux hosts are read through the UCD-SNMP dskTable, NetApp filers through
the NETAPP-MIB dfTable. Both are walked column by column and joined on the
shared row index. GPFS gateways do not expose per-volume entries, so their
strategies contribute nothing.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional, Tuple

from .base import SnmpQueryError
from .snmp import SnmpSession
from ..data.models import DiskUsageRecord, HostType

MAX_KB = 2**64 - 1

# Devices that never back a real local filesystem.
PSEUDO_DEVICES = {
    "none", "tmpfs", "devtmpfs", "proc", "sysfs", "udev", "shm",
    "devpts", "cgroup", "cgroup2", "overlay", "rootfs",
}


class GroupResolver:
    """Maps a physical path to a group name by longest configured prefix."""

    def __init__(self, groups: Optional[Dict[str, str]] = None, default_group: str = "unknown"):
        self.default_group = default_group
        self._prefixes = sorted((groups or {}).items(), key=lambda item: len(item[0]), reverse=True)

    def resolve(self, physical_path: str) -> str:
        for prefix, group in self._prefixes:
            if physical_path.startswith(prefix):
                return group
        return self.default_group


class HostStrategy(ABC):
    """How to recognize one kind of host and read its disk usage.

    Adding a host type means adding one subclass and registering it in
    `default_strategies()`.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.log = logger or logging.getLogger(__name__)

    @property
    @abstractmethod
    def host_type(self) -> HostType:
        pass

    def matches(self, sys_descr: str) -> bool:
        """Whether a sysDescr string identifies this host type."""
        return False

    @abstractmethod
    def fetch_usage(
        self,
        session: SnmpSession,
        target: Dict[str, DiskUsageRecord],
        groups: GroupResolver,
    ) -> int:
        """Add this host's usage records to `target`.

        Returns:
            Number of records added or overwritten.
        """
        pass


class EmptyStrategy(HostStrategy):
    """Host types whose usage is not enumerated per volume."""

    def __init__(self, host_type: HostType, logger: Optional[logging.Logger] = None):
        super().__init__(logger)
        self._host_type = host_type

    @property
    def host_type(self) -> HostType:
        return self._host_type

    def fetch_usage(self, session, target, groups) -> int:
        self.log.debug("%s: %s hosts contribute no volume entries", session.hostname, self._host_type.value)
        return 0


class FilesystemTableStrategy(HostStrategy):
    """Joins parallel filesystem-table columns on their shared index."""

    mount_oid: str = ""
    device_oid: str = ""
    total_oid: str = ""
    used_oid: str = ""
    # 64-bit sizes split into (high, low) 32-bit halves, preferred when present
    total_pair_oids: Tuple[str, str] = ("", "")
    used_pair_oids: Tuple[str, str] = ("", "")

    def _walk_column(self, session: SnmpSession, name: str, oid: str) -> Dict[str, str]:
        try:
            return session.walk(oid)
        except SnmpQueryError as e:
            self.log.warning("%s: walk of %s (%s) failed: %s", session.hostname, name, oid, e.message)
            return {}

    def _to_kb(self, hostname: str, label: str, raw: Optional[str]) -> int:
        try:
            value = int(str(raw).strip())
        except (TypeError, ValueError):
            self.log.warning("%s: non-numeric size %r for %s, using 0", hostname, raw, label)
            return 0
        if value < 0 or value > MAX_KB:
            self.log.warning("%s: out-of-range size %d for %s, using 0", hostname, value, label)
            return 0
        return value

    def _walk_pair(
        self, session: SnmpSession, name: str, oids: Tuple[str, str]
    ) -> Tuple[Dict[str, str], Dict[str, str]]:
        high_oid, low_oid = oids
        if not high_oid or not low_oid:
            return {}, {}
        return (
            self._walk_column(session, name + " high", high_oid),
            self._walk_column(session, name + " low", low_oid),
        )

    def _size_kb(
        self,
        hostname: str,
        label: str,
        index: str,
        column: Dict[str, str],
        pair: Tuple[Dict[str, str], Dict[str, str]],
    ) -> int:
        """Size for one row, joining the high/low halves when both exist.

        The low half may be reported as a signed 32-bit integer, so only its
        bit pattern is used.
        """
        high, low = pair
        if index in high and index in low:
            try:
                high_value = int(str(high[index]).strip())
                low_value = int(str(low[index]).strip())
            except ValueError:
                self.log.warning(
                    "%s: non-numeric 64-bit size %r/%r for %s, using 32-bit value",
                    hostname, high[index], low[index], label,
                )
            else:
                if high_value < 0:
                    return self._to_kb(hostname, label, high_value)
                return self._to_kb(hostname, label, (high_value << 32) | (low_value & 0xFFFFFFFF))
        return self._to_kb(hostname, label, column.get(index))

    def normalize_physical_path(self, device: str) -> str:
        return device.strip()

    def should_skip(self, physical_path: str, mount_path: str, total_kb: int) -> bool:
        if not physical_path or total_kb == 0:
            return True
        if physical_path in PSEUDO_DEVICES:
            return True
        # remote mounts ("server:/export") are counted on the server itself
        return ":" in physical_path

    def fetch_usage(self, session, target, groups) -> int:
        devices = self._walk_column(session, "device", self.device_oid)
        if not devices:
            return 0
        mounts = self._walk_column(session, "mount", self.mount_oid)
        totals = self._walk_column(session, "total", self.total_oid)
        used = self._walk_column(session, "used", self.used_oid)
        total_pair = self._walk_pair(session, "total", self.total_pair_oids)
        used_pair = self._walk_pair(session, "used", self.used_pair_oids)

        added = 0
        for index, device in devices.items():
            physical_path = self.normalize_physical_path(device)
            mount_path = mounts.get(index, "").strip()
            if index not in totals and not (index in total_pair[0] and index in total_pair[1]):
                self.log.warning("%s: no size reported for %s, skipping", session.hostname, physical_path)
                continue
            total_kb = self._size_kb(session.hostname, physical_path, index, totals, total_pair)
            used_kb = self._size_kb(session.hostname, physical_path, index, used, used_pair)
            if self.should_skip(physical_path, mount_path, total_kb):
                continue
            target[physical_path] = DiskUsageRecord(
                mount_path=mount_path,
                physical_path=physical_path,
                total_kb=total_kb,
                used_kb=used_kb,
                group_name=groups.resolve(physical_path),
            )
            added += 1
        return added


class LinuxStrategy(FilesystemTableStrategy):
    """UCD-SNMP-MIB::dskTable (requires `disk` or `includeAllDisks` in snmpd.conf)."""

    mount_oid = "1.3.6.1.4.1.2021.9.1.2"  # dskPath
    device_oid = "1.3.6.1.4.1.2021.9.1.3"  # dskDevice
    total_oid = "1.3.6.1.4.1.2021.9.1.6"  # dskTotal (kB)
    used_oid = "1.3.6.1.4.1.2021.9.1.8"  # dskUsed (kB)
    total_pair_oids = ("1.3.6.1.4.1.2021.9.1.12", "1.3.6.1.4.1.2021.9.1.11")  # dskTotalHigh, dskTotalLow
    used_pair_oids = ("1.3.6.1.4.1.2021.9.1.16", "1.3.6.1.4.1.2021.9.1.15")  # dskUsedHigh, dskUsedLow

    @property
    def host_type(self) -> HostType:
        return HostType.LINUX

    def matches(self, sys_descr: str) -> bool:
        return "Linux" in sys_descr


class NetAppStrategy(FilesystemTableStrategy):
    """NETAPP-MIB::dfTable."""

    mount_oid = "1.3.6.1.4.1.789.1.5.4.1.10"  # dfMountedOn
    device_oid = "1.3.6.1.4.1.789.1.5.4.1.2"  # dfFileSys
    total_oid = "1.3.6.1.4.1.789.1.5.4.1.3"  # dfKBytesTotal
    used_oid = "1.3.6.1.4.1.789.1.5.4.1.4"  # dfKBytesUsed
    total_pair_oids = ("1.3.6.1.4.1.789.1.5.4.1.14", "1.3.6.1.4.1.789.1.5.4.1.15")  # dfHighTotalKBytes, dfLowTotalKBytes
    used_pair_oids = ("1.3.6.1.4.1.789.1.5.4.1.16", "1.3.6.1.4.1.789.1.5.4.1.17")  # dfHighUsedKBytes, dfLowUsedKBytes

    @property
    def host_type(self) -> HostType:
        return HostType.NETAPP

    def matches(self, sys_descr: str) -> bool:
        return "NetApp Release" in sys_descr

    def normalize_physical_path(self, device: str) -> str:
        path = device.strip()
        if len(path) > 1:
            path = path.rstrip("/")
        return path

    def should_skip(self, physical_path, mount_path, total_kb) -> bool:
        if "/.snapshot" in physical_path:
            return True
        return super().should_skip(physical_path, mount_path, total_kb)


def default_strategies(logger: Optional[logging.Logger] = None) -> List[HostStrategy]:
    """All known strategies, in sysDescr matching order."""
    return [
        NetAppStrategy(logger),
        LinuxStrategy(logger),
        EmptyStrategy(HostType.GPFS, logger),
        EmptyStrategy(HostType.GPFS_EXTENDED, logger),
        EmptyStrategy(HostType.UNKNOWN, logger),
    ]


class DiskUsageFetcher:
    """Dispatches usage collection to the strategy for a host type."""

    def __init__(
        self,
        groups: Optional[Dict[str, str]] = None,
        default_group: str = "unknown",
        strategies: Optional[Iterable[HostStrategy]] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.log = logger or logging.getLogger(__name__)
        self.groups = GroupResolver(groups, default_group)
        if strategies is None:
            strategies = default_strategies(self.log)
        self._strategies: Dict[HostType, HostStrategy] = {s.host_type: s for s in strategies}

    def strategy_for(self, host_type: HostType) -> HostStrategy:
        try:
            return self._strategies[host_type]
        except KeyError:
            raise ValueError(f"no fetch strategy registered for host type {host_type!r}")

    def fetch(
        self,
        session: SnmpSession,
        host_type: HostType,
        target_map: Dict[str, DiskUsageRecord],
    ) -> int:
        """Collect usage for one host into `target_map`, in place.

        Existing entries for other physical paths are left untouched, so
        one map can accumulate results across hosts.
        """
        added = self.strategy_for(host_type).fetch_usage(session, target_map, self.groups)
        self.log.info("%s: %d usage records (%s)", session.hostname, added, host_type.value)
        return added
