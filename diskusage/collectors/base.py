"""Host-scoped errors raised while talking to a remote host."""

from typing import Optional


class HostError(Exception):
    """Base class for failures that only affect a single host.

    The orchestrator catches these at the host boundary and records the
    host as failed instead of aborting the run.
    """

    def __init__(self, hostname: Optional[str], message: str, cause: Optional[Exception] = None):
        self.hostname = hostname
        self.message = message
        self.cause = cause
        super().__init__(f"[{hostname}] {message}" if hostname else message)


class HostConnectionError(HostError, ConnectionError):
    """Raised when an SNMP session to a host cannot be established."""


class SnmpQueryError(HostError):
    """Raised when a get or walk against an open session fails."""

    def __init__(self, hostname: str, oid: str, message: str, cause: Optional[Exception] = None):
        self.oid = oid
        super().__init__(hostname, f"{oid}: {message}", cause)


class UnrecognizedHostError(HostError):
    """Raised when a sysDescr string matches no known host type."""

    def __init__(self, sys_descr: str, hostname: Optional[str] = None):
        self.sys_descr = sys_descr
        super().__init__(hostname, f"no such host type known: {sys_descr!r}")
