"""Host type classification.

The sysDescr string tells Linux servers from NetApp filers. GPFS gateways
usually report a plain Linux sysDescr, so cluster membership is probed
separately and always takes precedence over the description.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from .base import SnmpQueryError, UnrecognizedHostError
from .disk_usage import HostStrategy, default_strategies
from .snmp import SnmpSession
from ..data.models import HostType

# UCD-SNMP-MIB::prNames, the process table configured via `proc` in snmpd.conf
GPFS_PROCESS_OID = "1.3.6.1.4.1.2021.2.1.2"
GPFS_DAEMON_NAME = "mmfs"

# IBM GPFS MIB, only present when the GPFS SNMP subagent runs on the host
GPFS_EXTENDED_OID = "1.3.6.1.4.1.2.6.212"


class HostClassifier:
    """Maps a host to a HostType."""

    def __init__(
        self,
        strategies: Optional[Iterable[HostStrategy]] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.log = logger or logging.getLogger(__name__)
        if strategies is None:
            strategies = default_strategies(self.log)
        self._strategies: List[HostStrategy] = list(strategies)

    def classify(self, sys_descr: str, hostname: Optional[str] = None) -> HostType:
        """Match a sysDescr string against the known host types, in order.

        Raises:
            UnrecognizedHostError: If no host type matches.
        """
        for strategy in self._strategies:
            if strategy.matches(sys_descr or ""):
                return strategy.host_type
        raise UnrecognizedHostError(sys_descr, hostname)

    def _probe(self, session: SnmpSession, oid: str) -> dict:
        try:
            return session.walk(oid)
        except SnmpQueryError as e:
            self.log.debug("%s: probe of %s failed, treating as absent: %s", session.hostname, oid, e.message)
            return {}

    def is_cluster_member(self, session: SnmpSession) -> bool:
        """True if the host's process table watches the GPFS daemon."""
        names = self._probe(session, GPFS_PROCESS_OID)
        return any(GPFS_DAEMON_NAME in name for name in names.values())

    def is_cluster_extended(self, session: SnmpSession) -> bool:
        """True if the host exposes the GPFS MIB sub-tree."""
        return bool(self._probe(session, GPFS_EXTENDED_OID))

    def resolve(self, session: SnmpSession) -> HostType:
        """Full host type resolution for an open session.

        Raises:
            UnrecognizedHostError: If the host is not a cluster member and
                its sysDescr matches no known host type.
        """
        if self.is_cluster_member(session):
            if self.is_cluster_extended(session):
                return HostType.GPFS_EXTENDED
            return HostType.GPFS
        return self.classify(session.sys_descr or "", session.hostname)
