"""Network bootstrapper wrapping WireGuard (``wg-quick``).

Bring-up is idempotent: any tunnel with the same name is torn down and stale
routes for the claimed ranges are removed before the new tunnel starts, since
a leftover interface with the same name silently blocks ``wg-quick up``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path

from herodeploy.config.defaults import TUNNEL_CONFIG_DIR, TUNNEL_NAME, TUNNEL_ROUTES
from herodeploy.deploy.process import CommandResult, CommandRunner, run_command
from herodeploy.lib.errors import TunnelError
from herodeploy.lib.logging_config import get_logger

logger = get_logger(__name__)

_NOT_FOUND_MARKERS = ("cannot find device", "does not exist", "no such device")


class BaseNetworkBootstrapper(ABC):
    """Abstract interface to the overlay-network utility."""

    @abstractmethod
    def bring_up(self, tunnel_config: str) -> None:
        """Establish the tunnel, replacing any existing one with the same name.

        Raises:
            TunnelError: If the tunnel cannot be established.
        """

    @abstractmethod
    def teardown(self) -> None:
        """Remove the tunnel; an absent tunnel is success.

        Raises:
            TunnelError: If an existing tunnel cannot be removed.
        """

    @abstractmethod
    def is_up(self) -> bool:
        """Return True if the tunnel is currently active."""


class WireGuardBootstrapper(BaseNetworkBootstrapper):
    """Manage the ``hero`` WireGuard interface with wg-quick."""

    def __init__(
        self,
        name: str = TUNNEL_NAME,
        config_dir: Path = Path(TUNNEL_CONFIG_DIR),
        routes: tuple[str, ...] = TUNNEL_ROUTES,
        runner: CommandRunner = run_command,
        sudo: bool = True,
    ) -> None:
        """Initialize the bootstrapper.

        Args:
            name: Logical tunnel (interface) name
            config_dir: Directory wg-quick reads configurations from
            routes: Address ranges claimed by the tunnel
            runner: Command runner (injectable for tests)
            sudo: Prefix privileged commands with sudo
        """
        self.name = name
        self.config_path = config_dir / f"{name}.conf"
        self.routes = routes
        self._run = runner
        self._sudo = sudo

    def _privileged(self, *args: str, input_text: str | None = None) -> CommandResult:
        argv = ["sudo", *args] if self._sudo else list(args)
        return self._run(argv, input_text=input_text)

    def bring_up(self, tunnel_config: str) -> None:
        if not tunnel_config.strip():
            raise TunnelError("WireGuard configuration is empty")

        self._write_config(tunnel_config)
        self.teardown()
        self._remove_stale_routes()

        logger.info(f"Bringing up WireGuard interface {self.name}...")
        result = self._privileged("wg-quick", "up", self.name)
        if not result.ok:
            raise TunnelError(f"wg-quick up {self.name} failed: {result.output}")
        logger.info(f"WireGuard interface {self.name} is up")

    def teardown(self) -> None:
        down = self._privileged("wg-quick", "down", self.name)
        if not down.ok:
            logger.debug(f"wg-quick down {self.name} ignored: {down.output}")

        result = self._privileged("ip", "link", "delete", self.name)
        if result.ok:
            logger.info(f"Removed existing interface {self.name}")
            return
        if _is_not_found(result):
            logger.debug(f"Interface {self.name} already absent")
            return
        raise TunnelError(f"Failed to remove interface {self.name}: {result.output}")

    def is_up(self) -> bool:
        return self._privileged("wg", "show", self.name).ok

    def _write_config(self, tunnel_config: str) -> None:
        content = tunnel_config if tunnel_config.endswith("\n") else tunnel_config + "\n"
        result = self._privileged(
            "tee", str(self.config_path), input_text=content
        )
        if not result.ok:
            raise TunnelError(
                f"Failed to write {self.config_path}: {result.stderr.strip()}"
            )
        self._privileged("chmod", "600", str(self.config_path))

    def _remove_stale_routes(self) -> None:
        for route in self.routes:
            result = self._privileged("ip", "route", "del", route)
            if result.ok:
                logger.debug(f"Removed stale route {route}")


def _is_not_found(result: CommandResult) -> bool:
    text = result.output.lower()
    return any(marker in text for marker in _NOT_FOUND_MARKERS)
