"""Models for the generated Ansible inventory."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from herodeploy.models.config import MainNetwork

ROLES = ("gateway", "database", "storage", "app")

SSH_COMMON_ARGS = "-o StrictHostKeyChecking=no -o UserKnownHostsFile=/dev/null"


class InventoryHost(BaseModel):
    """A single managed host and the roles it carries.

    Only ``ansible_host`` is used to connect; the three address fields are
    retained as metadata for roles and display.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str
    ansible_host: str
    ansible_user: str = "root"
    public_ip: str
    wireguard_ip: str
    mycelium_ip: str | None = None
    roles: tuple[str, ...] = ROLES

    def host_vars(self) -> dict[str, Any]:
        """Per-host variables written into the inventory."""
        return {
            "ansible_host": self.ansible_host,
            "ansible_user": self.ansible_user,
            "ansible_ssh_common_args": SSH_COMMON_ARGS,
            "public_ip": self.public_ip,
            "wireguard_ip": self.wireguard_ip,
            "mycelium_ip": self.mycelium_ip or "",
        }


class Inventory(BaseModel):
    """Derived mapping of logical roles to connection parameters.

    Attributes:
        group: Top-level inventory group containing every host
        main_network: Address family chosen for connections
        hosts: Managed hosts keyed by name
        variables: Group variables merged from the run configuration
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    group: str = "hero"
    main_network: MainNetwork
    hosts: dict[str, InventoryHost] = Field(default_factory=dict)
    variables: dict[str, Any] = Field(default_factory=dict)

    def roles(self) -> dict[str, list[str]]:
        """Return host names per logical role."""
        mapping: dict[str, list[str]] = {role: [] for role in ROLES}
        for host in self.hosts.values():
            for role in host.roles:
                mapping.setdefault(role, []).append(host.name)
        return mapping

    def hosts_for(self, role: str | None = None) -> list[InventoryHost]:
        """Return the hosts tagged with ``role`` (all hosts when None)."""
        if role is None:
            return list(self.hosts.values())
        return [host for host in self.hosts.values() if role in host.roles]

    @classmethod
    def from_ansible(cls, data: dict[str, Any]) -> Inventory:
        """Rebuild an Inventory from the structure produced by ``to_ansible``.

        Raises:
            ValueError: If the structure does not contain exactly one group
        """
        if not isinstance(data, dict) or len(data) != 1:
            raise ValueError("Inventory must contain exactly one top-level group")

        group, body = next(iter(data.items()))
        body = body or {}
        variables = dict(body.get("vars") or {})
        children = body.get("children") or {}

        hosts: dict[str, InventoryHost] = {}
        for name, host_vars in (body.get("hosts") or {}).items():
            host_vars = host_vars or {}
            found = [
                role
                for role, child in children.items()
                if name in ((child or {}).get("hosts") or {})
            ]
            roles = tuple(r for r in ROLES if r in found) + tuple(
                r for r in found if r not in ROLES
            )
            hosts[name] = InventoryHost(
                name=name,
                ansible_host=host_vars["ansible_host"],
                ansible_user=host_vars.get("ansible_user", "root"),
                public_ip=host_vars.get("public_ip", ""),
                wireguard_ip=host_vars.get("wireguard_ip", ""),
                mycelium_ip=host_vars.get("mycelium_ip") or None,
                roles=roles,
            )

        return cls(
            group=group,
            main_network=MainNetwork(variables.get("main_network", "wireguard")),
            hosts=hosts,
            variables=variables,
        )

    def to_ansible(self) -> dict[str, Any]:
        """Return the YAML inventory structure understood by Ansible."""
        children = {
            role: {"hosts": {name: None for name in names}}
            for role, names in self.roles().items()
        }
        return {
            self.group: {
                "hosts": {
                    name: host.host_vars() for name, host in self.hosts.items()
                },
                "vars": dict(self.variables),
                "children": children,
            }
        }
