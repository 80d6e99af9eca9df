"""Configuration for the disk usage collector.

Supports YAML-based configuration; every key is optional.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

DEFAULT_CACHE_FILE = "~/.diskusage/diskusage.db"


@dataclass
class SnmpConfig:
    """SNMP settings shared by all hosts."""

    version: str = "2c"
    community: str = "public"
    timeout: int = 5  # seconds, per request
    retries: int = 0


@dataclass
class Config:
    """Main configuration container."""

    hosts: List[str] = field(default_factory=list)
    cache_file: str = DEFAULT_CACHE_FILE
    db_tries: int = 3

    snmp: SnmpConfig = field(default_factory=SnmpConfig)

    # physical path prefix -> group name
    groups: Dict[str, str] = field(default_factory=dict)
    default_group: str = "unknown"

    log_level: str = "INFO"
    log_file: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        """Create config from dictionary."""
        snmp_data = data.get("snmp", {}) or {}
        snmp = SnmpConfig(
            version=str(snmp_data.get("version", "2c")),
            community=snmp_data.get("community", "public"),
            timeout=int(snmp_data.get("timeout", 5)),
            retries=int(snmp_data.get("retries", 0)),
        )

        hosts = data.get("hosts", []) or []
        if isinstance(hosts, str):
            hosts = hosts.split()

        return cls(
            hosts=[str(h).strip() for h in hosts if str(h).strip()],
            cache_file=data.get("cache_file", DEFAULT_CACHE_FILE),
            db_tries=int(data.get("db_tries", 3)),
            snmp=snmp,
            groups=dict(data.get("groups", {}) or {}),
            default_group=data.get("default_group", "unknown"),
            log_level=data.get("log_level", "INFO"),
            log_file=data.get("log_file"),
        )

    @classmethod
    def from_yaml(cls, path: Path) -> "Config":
        """Load config from YAML file."""
        if not path.exists():
            return cls()
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        return cls.from_dict(data)

    @classmethod
    def load(cls, config_path: Optional[str] = None) -> "Config":
        """Load config from path or defaults.

        Checks in order:
        1. Provided path
        2. DISKUSAGE_CONFIG env var
        3. ./configs/config.yaml
        4. ./config.yaml
        5. ~/.diskusage/config.yaml
        6. Default config
        """
        paths_to_try = []

        if config_path:
            paths_to_try.append(Path(config_path))

        if env_path := os.environ.get("DISKUSAGE_CONFIG"):
            paths_to_try.append(Path(env_path))

        paths_to_try.extend([
            Path("./configs/config.yaml"),
            Path("./config.yaml"),
            Path.home() / ".diskusage" / "config.yaml",
        ])

        for path in paths_to_try:
            if path.exists():
                return cls.from_yaml(path)

        return cls()

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary."""
        return {
            "hosts": list(self.hosts),
            "cache_file": self.cache_file,
            "db_tries": self.db_tries,
            "snmp": {
                "version": self.snmp.version,
                "community": self.snmp.community,
                "timeout": self.snmp.timeout,
                "retries": self.snmp.retries,
            },
            "groups": dict(self.groups),
            "default_group": self.default_group,
            "log_level": self.log_level,
            "log_file": self.log_file,
        }
