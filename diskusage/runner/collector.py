"""Collection run: connect, classify, fetch and cache, one host at a time."""

from __future__ import annotations

import logging
from typing import Dict, Iterable, Optional

from ..collectors.base import HostError
from ..collectors.classifier import HostClassifier
from ..collectors.disk_usage import DiskUsageFetcher
from ..collectors.snmp import SnmpConnector
from ..data.models import DiskUsageRecord, HostOutcome, HostStatus, RunSummary
from ..data.persistence import CacheStore, StatementError, ValidationError
from .config import Config


class DiskUsageCollector:
    """Runs a collection over a list of hosts and writes the cache.

    A failure on one host is recorded against that host (snmp_ok = -1)
    and never stops the run. Only an unusable cache does.
    """

    def __init__(
        self,
        cache: CacheStore,
        connector: Optional[SnmpConnector] = None,
        classifier: Optional[HostClassifier] = None,
        fetcher: Optional[DiskUsageFetcher] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.log = logger or logging.getLogger(__name__)
        self.cache = cache
        self.connector = connector or SnmpConnector(logger=self.log)
        self.classifier = classifier or HostClassifier(logger=self.log)
        self.fetcher = fetcher or DiskUsageFetcher(logger=self.log)

    @classmethod
    def from_config(cls, config: Config, logger: Optional[logging.Logger] = None) -> "DiskUsageCollector":
        log = logger or logging.getLogger(__name__)
        return cls(
            cache=CacheStore(config.cache_file, db_tries=config.db_tries, logger=log),
            connector=SnmpConnector(
                community=config.snmp.community,
                version=config.snmp.version,
                timeout=config.snmp.timeout,
                retries=config.snmp.retries,
                logger=log,
            ),
            classifier=HostClassifier(logger=log),
            fetcher=DiskUsageFetcher(groups=config.groups, default_group=config.default_group, logger=log),
            logger=log,
        )

    def collect_host(self, hostname: str) -> HostOutcome:
        """Query one host. Does not touch the cache."""
        outcome = HostOutcome(hostname=hostname)
        host_usage: Dict[str, DiskUsageRecord] = {}
        try:
            with self.connector.connect(hostname) as session:
                outcome.host_type = self.classifier.resolve(session)
                self.fetcher.fetch(session, outcome.host_type, host_usage)
        except HostError as e:
            self.log.warning("%s: %s", hostname, e.message)
            outcome.status = HostStatus.ERROR
            outcome.error = str(e)
            return outcome

        outcome.records = list(host_usage.values())
        outcome.status = HostStatus.OK if outcome.records else HostStatus.EMPTY
        return outcome

    def store_outcome(self, outcome: HostOutcome) -> None:
        """Write a host's usage rows, then its host row."""
        for record in outcome.records:
            try:
                self.cache.upsert_disk_usage(record)
            except (ValidationError, StatementError) as e:
                self.log.warning("%s: skipping %s: %s", outcome.hostname, record.physical_path, e)

        try:
            self.cache.upsert_host(
                outcome.hostname,
                {r.physical_path: r for r in outcome.records},
                error=outcome.status == HostStatus.ERROR,
            )
        except StatementError as e:
            self.log.error("%s: could not record host: %s", outcome.hostname, e)

    def run(self, hostnames: Iterable[str]) -> RunSummary:
        """Collect from every host exactly once.

        Raises:
            CacheUnavailableError: If the cache cannot be opened.
        """
        self.cache.prepare()
        summary = RunSummary()

        for hostname in hostnames:
            hostname = (hostname or "").strip()
            if not hostname or hostname in summary.hosts:
                continue

            self.log.info("%s: collecting", hostname)
            try:
                outcome = self.collect_host(hostname)
            except Exception as e:
                self.log.exception("%s: unexpected error", hostname)
                outcome = HostOutcome(hostname=hostname, status=HostStatus.ERROR, error=str(e))

            self.store_outcome(outcome)
            summary.hosts[hostname] = outcome
            for record in outcome.records:
                summary.usage[record.physical_path] = record

        self.log.info(
            "run complete: %d ok, %d empty, %d failed",
            summary.count(HostStatus.OK),
            summary.count(HostStatus.EMPTY),
            summary.count(HostStatus.ERROR),
        )
        return summary
