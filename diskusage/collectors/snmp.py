"""SNMP connection management.

Sessions are driven through the net-snmp command line tools (`snmpget`,
`snmpbulkwalk`/`snmpwalk`) with numeric OID output, one host at a time.
"""

from __future__ import annotations

import logging
import subprocess
from typing import Dict, List, Optional

from .base import HostConnectionError, SnmpQueryError

SYS_DESCR_OID = "1.3.6.1.2.1.1.1.0"

# Values net-snmp prints in place of data when nothing lives at an OID.
_EMPTY_MARKERS = (
    "No Such Object",
    "No Such Instance",
    "No more variables left",
)


def _normalize_oid(oid: str) -> str:
    return oid.strip().lstrip(".")


def _unquote(value: str) -> str:
    value = value.strip()
    if len(value) >= 2 and value[0] == '"' and value[-1] == '"':
        return value[1:-1]
    return value


def parse_snmp_output(output: str) -> List[tuple]:
    """Parse `-On -Oq` output into (oid, value) pairs.

    Lines that do not start with a numeric OID are continuations of a
    multi-line string value and are folded into the previous entry.
    """
    pairs: List[list] = []
    for line in output.splitlines():
        if not line.strip():
            continue
        if line.startswith("."):
            parts = line.split(None, 1)
            oid = _normalize_oid(parts[0])
            value = parts[1] if len(parts) > 1 else ""
            pairs.append([oid, value])
        elif pairs:
            pairs[-1][1] += "\n" + line
    return [(oid, _unquote(value)) for oid, value in pairs]


def _is_empty_marker(value: str) -> bool:
    return any(value.startswith(marker) for marker in _EMPTY_MARKERS)


class SnmpSession:
    """An SNMP session bound to one host for one round of queries."""

    def __init__(
        self,
        hostname: str,
        base_args: List[str],
        walk_command: str,
        timeout: int,
        logger: Optional[logging.Logger] = None,
    ):
        self.hostname = hostname
        self.sys_descr: Optional[str] = None
        self._base_args = base_args
        self._walk_command = walk_command
        # subprocess guard, on top of net-snmp's own per-request timeout
        self._process_timeout = timeout + 10
        self._closed = False
        self.log = logger or logging.getLogger(__name__)

    def __enter__(self) -> "SnmpSession":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        self._closed = True

    def _run(self, command: str, oid: str) -> str:
        if self._closed:
            raise SnmpQueryError(self.hostname, oid, "session is closed")

        cmd = [command] + self._base_args + [self.hostname, oid]
        self.log.debug("snmp: %s", " ".join(cmd))
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self._process_timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise SnmpQueryError(self.hostname, oid, "timed out", e)
        except OSError as e:
            raise SnmpQueryError(self.hostname, oid, f"cannot run {command}: {e}", e)

        if result.returncode != 0:
            message = (result.stderr or result.stdout or "").strip() or f"exit status {result.returncode}"
            raise SnmpQueryError(self.hostname, oid, message)
        return result.stdout

    def get(self, oid: str) -> Optional[str]:
        """Read a scalar. Returns None when the agent has no such object."""
        oid = _normalize_oid(oid)
        for got_oid, value in parse_snmp_output(self._run("snmpget", oid)):
            if got_oid == oid:
                return None if _is_empty_marker(value) else value
        return None

    def walk(self, oid: str) -> Dict[str, str]:
        """Walk a sub-tree.

        Returns:
            Mapping of the index suffix below `oid` (e.g. "1" or "2.7")
            to the value. Empty when the sub-tree is absent.
        """
        oid = _normalize_oid(oid)
        prefix = oid + "."
        table: Dict[str, str] = {}
        for got_oid, value in parse_snmp_output(self._run(self._walk_command, oid)):
            if not got_oid.startswith(prefix) or _is_empty_marker(value):
                continue
            table[got_oid[len(prefix):]] = value
        return table


class SnmpConnector:
    """Opens SNMP sessions, one host at a time.

    There is no retry here: a failed connect surfaces immediately as a
    HostConnectionError and the orchestrator moves on to the next host.
    """

    SUPPORTED_VERSIONS = ("1", "2c")

    def __init__(
        self,
        community: str = "public",
        version: str = "2c",
        timeout: int = 5,
        retries: int = 0,
        logger: Optional[logging.Logger] = None,
    ):
        version = str(version)
        if version not in self.SUPPORTED_VERSIONS:
            raise ValueError(f"unsupported SNMP version: {version}")
        self.community = community
        self.version = version
        self.timeout = timeout
        self.retries = retries
        self.log = logger or logging.getLogger(__name__)

    @property
    def walk_command(self) -> str:
        # GETBULK does not exist in SNMPv1
        return "snmpwalk" if self.version == "1" else "snmpbulkwalk"

    def _base_args(self) -> List[str]:
        return [
            "-v", self.version,
            "-c", self.community,
            "-t", str(self.timeout),
            "-r", str(self.retries),
            "-On", "-Oq", "-Ot", "-Oe",
        ]

    def connect(self, hostname: str) -> SnmpSession:
        """Open a session and read the host's sysDescr.

        Raises:
            HostConnectionError: If the host is unreachable, does not
                answer, or does not expose a system description.
        """
        if not hostname or not hostname.strip():
            raise HostConnectionError(str(hostname), "empty hostname")
        hostname = hostname.strip()

        session = SnmpSession(
            hostname,
            self._base_args(),
            self.walk_command,
            self.timeout,
            logger=self.log,
        )
        try:
            sys_descr = session.get(SYS_DESCR_OID)
        except SnmpQueryError as e:
            session.close()
            raise HostConnectionError(hostname, f"connect failed: {e.message}", e)

        if sys_descr is None:
            session.close()
            raise HostConnectionError(hostname, "connect failed: no sysDescr returned")

        session.sys_descr = sys_descr
        self.log.debug("connected to %s: %s", hostname, sys_descr)
        return session
