"""Pydantic models for the per-run configuration snapshot and project layout.

This module defines ``RunConfiguration``, the immutable value threaded through
every pipeline stage, and ``ProjectPaths``, which derives every file location
from the project directory.
"""

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, model_validator


class MainNetwork(str, Enum):
    """Address family used to connect to the VM."""

    WIREGUARD = "wireguard"
    MYCELIUM = "mycelium"
    IPV4 = "ipv4"


class RunConfiguration(BaseModel):
    """Immutable snapshot of all settings for one invocation.

    Attributes:
        network_mode: Networks enabled on the VM (passed through to roles)
        main_network: Address family used for the Ansible connection
        gateway_type: Gateway mode passed through to the gateway role
        enable_ssl: Explicit SSL flag; a domain alone never enables SSL
        domain_name: Public domain for the application
        ssl_email: Contact address for certificate issuance
        ssl_staging: Use the ACME staging endpoint
        enable_monitoring: Deploy and verify monitoring endpoints
        cpu: vCPU count for the VM
        memory: Memory in MB for the VM
        dns_records_set: Whether DNS records were confirmed by set-dns
        postgres_password: Database password
        redis_password: Cache password
        jwt_secret: Token signing secret
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    network_mode: str = Field(default="both", description="Enabled networks")
    main_network: MainNetwork = Field(
        default=MainNetwork.WIREGUARD, description="Connection address family"
    )
    gateway_type: str = Field(default="proxy", description="Gateway mode")
    enable_ssl: bool = Field(default=False, description="Enable SSL certificates")
    domain_name: str | None = Field(default=None, description="Application domain")
    ssl_email: str | None = Field(default=None, description="ACME contact email")
    ssl_staging: bool = Field(default=False, description="Use ACME staging")
    enable_monitoring: bool = Field(default=True, description="Enable monitoring")
    cpu: int = Field(default=2, ge=1, description="vCPU count")
    memory: int = Field(default=4096, ge=256, description="Memory in MB")
    dns_records_set: bool = Field(default=False, description="DNS confirmed")
    postgres_password: str = Field(default="", description="Database password")
    redis_password: str = Field(default="", description="Cache password")
    jwt_secret: str = Field(default="", description="Token signing secret")

    @model_validator(mode="after")
    def validate_ssl_domain(self) -> "RunConfiguration":
        """Require a domain whenever the SSL flag is set."""
        if self.enable_ssl and not self.domain_name:
            raise ValueError("DOMAIN_NAME is required when ENABLE_SSL is true")
        return self

    @property
    def ssl_active(self) -> bool:
        """Whether SSL-specific configuration applies to this run."""
        return self.enable_ssl and bool(self.domain_name)

    @property
    def effective_ssl_email(self) -> str | None:
        """Configured SSL email, or ``admin@<domain>`` when a domain is set."""
        if self.ssl_email:
            return self.ssl_email
        if self.domain_name:
            return f"admin@{self.domain_name}"
        return None

    def public_summary(self) -> dict[str, object]:
        """Return the configuration without secret fields."""
        return self.model_dump(
            mode="json",
            exclude={"postgres_password", "redis_password", "jwt_secret"},
        )


class ProjectPaths(BaseModel):
    """File locations derived from the project directory."""

    model_config = ConfigDict(frozen=True)

    root: Path

    @property
    def env_file(self) -> Path:
        return self.root / ".env"

    @property
    def infrastructure_dir(self) -> Path:
        return self.root / "infrastructure"

    @property
    def platform_dir(self) -> Path:
        return self.root / "platform"

    @property
    def credentials_file(self) -> Path:
        return self.infrastructure_dir / "credentials.auto.tfvars"

    @property
    def inventory_file(self) -> Path:
        return self.platform_dir / "inventory.yml"

    @property
    def playbook_file(self) -> Path:
        return self.platform_dir / "site.yml"

    @property
    def wireguard_config(self) -> Path:
        return self.root / "wg-hero.conf"

    @property
    def deployment_record(self) -> Path:
        return self.root / "deployment-info.json"

    def generated_artifacts(self) -> list[Path]:
        """Files and directories produced by a deployment run."""
        infra = self.infrastructure_dir
        return [
            infra / "state.json",
            infra / "terraform.tfstate",
            infra / "terraform.tfstate.backup",
            infra / "tfplan",
            infra / "hero.tfplan",
            infra / ".terraform.lock.hcl",
            infra / ".terraform",
            self.inventory_file,
            self.wireguard_config,
            self.deployment_record,
        ]
