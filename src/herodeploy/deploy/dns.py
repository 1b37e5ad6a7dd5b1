"""DNS records the application domain needs, and a resolution check."""

from __future__ import annotations

import socket
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from herodeploy.lib.logging_config import get_logger

logger = get_logger(__name__)

SUBDOMAINS = ("", "api", "files", "ws")
RECORD_TTL = 300


@dataclass(frozen=True)
class DnsRecord:
    """An A record pointing a name at the VM public address."""

    name: str
    value: str
    type: str = "A"
    ttl: int = RECORD_TTL


@dataclass(frozen=True)
class DnsCheck:
    """Resolution outcome for one record."""

    record: DnsRecord
    resolved: str | None

    @property
    def ok(self) -> bool:
        return self.resolved == self.record.value


def dns_records(domain: str, ip: str) -> list[DnsRecord]:
    """A records for the apex domain and the api, files and ws subdomains."""
    return [
        DnsRecord(name=f"{prefix}.{domain}" if prefix else domain, value=ip)
        for prefix in SUBDOMAINS
    ]


def _resolve_a(name: str) -> str | None:
    try:
        return socket.gethostbyname(name)
    except OSError:
        return None


def check_dns(
    records: Iterable[DnsRecord],
    resolve: Callable[[str], str | None] = _resolve_a,
) -> list[DnsCheck]:
    """Resolve each record name and compare it with the expected address."""
    checks = []
    for record in records:
        resolved = resolve(record.name)
        check = DnsCheck(record=record, resolved=resolved)
        if check.ok:
            logger.info(f"{record.name} correctly resolves to {record.value}")
        elif resolved is None:
            logger.warning(f"{record.name} does not resolve to any IP")
        else:
            logger.warning(
                f"{record.name} resolves to {resolved} (expected {record.value})"
            )
        checks.append(check)
    return checks
