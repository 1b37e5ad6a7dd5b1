"""Models for provisioning backend results."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Output names exposed by the infrastructure/ module
OUTPUT_PUBLIC_IP = "vm_public_ip"
OUTPUT_WIREGUARD_IP = "vm_wireguard_ip"
OUTPUT_MYCELIUM_IP = "vm_mycelium_ip"
OUTPUT_WG_CONFIG = "wg_config"

REQUIRED_OUTPUTS = (OUTPUT_PUBLIC_IP, OUTPUT_WIREGUARD_IP)


def strip_prefix_length(address: str) -> str:
    """Strip a CIDR prefix length (``185.206.122.150/24`` -> ``185.206.122.150``)."""
    return address.split("/", 1)[0].strip()


class InfrastructureOutputs(BaseModel):
    """Addresses and tunnel config produced by a successful apply.

    Attributes:
        public_ip: Public IPv4 address of the VM
        wireguard_ip: VM address inside the WireGuard network
        mycelium_ip: Optional Mycelium overlay IPv6 address
        wg_config: Optional WireGuard client configuration text
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    public_ip: str = Field(..., description="Public IPv4 address")
    wireguard_ip: str = Field(..., description="WireGuard address")
    mycelium_ip: str | None = Field(default=None, description="Mycelium address")
    wg_config: str | None = Field(default=None, description="WireGuard config")

    @field_validator("public_ip")
    @classmethod
    def normalize_public_ip(cls, v: str) -> str:
        """Drop the prefix length reported by the grid provider."""
        return strip_prefix_length(v)

    @classmethod
    def from_raw(cls, raw: dict[str, str | None]) -> InfrastructureOutputs:
        """Build outputs from a mapping of backend output names to values."""
        return cls(
            public_ip=raw.get(OUTPUT_PUBLIC_IP) or "",
            wireguard_ip=raw.get(OUTPUT_WIREGUARD_IP) or "",
            mycelium_ip=raw.get(OUTPUT_MYCELIUM_IP) or None,
            wg_config=raw.get(OUTPUT_WG_CONFIG) or None,
        )


@dataclass
class PlanHandle:
    """A saved provisioning plan ready to be applied.

    Attributes:
        path: Location of the saved plan file
        summary: Human-readable lines describing planned resources
    """

    path: Path
    summary: list[str] = field(default_factory=list)
