"""Custom exception hierarchy for herodeploy configuration and pipeline stages."""

from __future__ import annotations

EXIT_CONFIG = 2
EXIT_PREREQUISITE = 3
EXIT_INFRASTRUCTURE = 4
EXIT_TUNNEL = 5
EXIT_CONNECTIVITY = 6
EXIT_CONFIGURATION = 7
EXIT_VERIFICATION = 8
EXIT_CANCELLED = 10
EXIT_INTERRUPTED = 130


class HeroDeployError(Exception):
    """Base exception for all herodeploy errors.

    All herodeploy-specific exceptions inherit from this class, enabling
    centralized exception handling in the CLI.
    """

    exit_code = 1


class ConfigError(HeroDeployError):
    """Exception raised for configuration errors.

    Raised when the env file cannot be read or written, or when a value in it
    cannot be coerced to the type the run configuration expects.

    Attributes:
        field: The configuration key that caused the error
        message: Human-readable error message describing the issue
    """

    exit_code = EXIT_CONFIG

    def __init__(self, field: str, message: str) -> None:
        """Initialize ConfigError with field and message.

        Args:
            field: Configuration key where the error occurred
            message: Descriptive error message
        """
        self.field = field
        self.message = message
        super().__init__(f"Configuration error in '{field}': {message}")


class SecretGenerationError(HeroDeployError):
    """Exception raised when a random secret cannot be generated."""

    exit_code = EXIT_CONFIG

    def __init__(self, name: str, message: str) -> None:
        """Create a secret generation error for the named secret."""
        self.name = name
        self.message = message
        super().__init__(f"Failed to generate secret '{name}': {message}")


class DeploymentError(HeroDeployError):
    """Exception raised when a pipeline stage fails.

    Attributes:
        operation: Stage or operation that failed (e.g. "plan", "tunnel")
        message: Human-readable error message
        remediation: Command or action the operator should run next
    """

    exit_code = EXIT_INFRASTRUCTURE

    def __init__(
        self,
        operation: str,
        message: str,
        remediation: str | None = None,
    ) -> None:
        """Initialize DeploymentError with operation context.

        Args:
            operation: Name of the failing operation
            message: Descriptive error message
            remediation: Optional hint printed to the operator
        """
        self.operation = operation
        self.message = message
        self.remediation = remediation
        super().__init__(f"{operation} failed: {message}")


class PrerequisiteMissingError(DeploymentError):
    """A required tool, credential or state file is absent."""

    exit_code = EXIT_PREREQUISITE

    def __init__(self, requirement: str, message: str, remediation: str) -> None:
        """Create an error naming the missing requirement."""
        self.requirement = requirement
        super().__init__(
            operation="prerequisites", message=message, remediation=remediation
        )


class PlanError(DeploymentError):
    """The provisioning backend rejected the configuration."""

    def __init__(self, message: str) -> None:
        """Create a plan error."""
        super().__init__(
            operation="plan",
            message=message,
            remediation="Check infrastructure/credentials.auto.tfvars and rerun: "
            "herodeploy infrastructure",
        )


class ApplyError(DeploymentError):
    """Provisioning failed partially or completely."""

    def __init__(self, message: str) -> None:
        """Create an apply error."""
        super().__init__(
            operation="apply",
            message=message,
            remediation="Inspect the provider output and rerun: "
            "herodeploy infrastructure",
        )


class DestroyError(DeploymentError):
    """Some resources could not be torn down.

    Attributes:
        remaining: Resource addresses still present in the state
    """

    def __init__(self, message: str, remaining: list[str] | None = None) -> None:
        """Create a destroy error listing the resources left behind."""
        self.remaining = list(remaining or [])
        super().__init__(
            operation="destroy",
            message=message,
            remediation="Rerun: herodeploy clean --yes",
        )


class MissingOutputError(DeploymentError):
    """Required infrastructure outputs are absent.

    Attributes:
        keys: Output names that were missing or empty
    """

    def __init__(self, keys: list[str]) -> None:
        """Create an error naming the missing outputs."""
        self.keys = list(keys)
        super().__init__(
            operation="inventory",
            message=f"Missing infrastructure outputs: {', '.join(self.keys)}",
            remediation="Provision the VM first: herodeploy infrastructure",
        )


class TunnelError(DeploymentError):
    """The WireGuard tunnel could not be established."""

    exit_code = EXIT_TUNNEL

    def __init__(self, message: str) -> None:
        """Create a tunnel error."""
        super().__init__(
            operation="tunnel",
            message=message,
            remediation="Rerun: herodeploy network",
        )


class ConnectivityError(DeploymentError):
    """One or more hosts were unreachable before configuration.

    Attributes:
        unreachable: Mapping of host name to failure detail
    """

    exit_code = EXIT_CONNECTIVITY

    def __init__(self, unreachable: dict[str, str]) -> None:
        """Create a connectivity error with per-host detail."""
        self.unreachable = dict(unreachable)
        details = "; ".join(f"{host}: {detail}" for host, detail in unreachable.items())
        super().__init__(
            operation="connectivity",
            message=f"{len(unreachable)} host(s) unreachable ({details})",
            remediation="Ensure the tunnel is up (herodeploy network) and wait "
            "2-3 minutes for the VM to boot, then rerun: herodeploy services",
        )


class ConfigurationApplyError(DeploymentError):
    """Role execution failed on a subset of hosts.

    Attributes:
        host: Host on which the playbook failed, when known
        role: Role filter in effect, when one was given
    """

    exit_code = EXIT_CONFIGURATION

    def __init__(
        self, message: str, host: str | None = None, role: str | None = None
    ) -> None:
        """Create a configuration apply error."""
        self.host = host
        self.role = role
        rerun = f"herodeploy services --role {role}" if role else "herodeploy services"
        super().__init__(
            operation="configure",
            message=message,
            remediation=f"Check connectivity (herodeploy ping) and rerun: {rerun}",
        )


class VerificationFailure(DeploymentError):
    """Required endpoints did not report healthy.

    Attributes:
        failed: Names of the failing required endpoints
    """

    exit_code = EXIT_VERIFICATION

    def __init__(self, failed: list[str]) -> None:
        """Create a verification failure naming the failing endpoints."""
        self.failed = list(failed)
        super().__init__(
            operation="verify",
            message=f"Unhealthy endpoints: {', '.join(self.failed)}",
            remediation="Check service status on the VM and rerun: herodeploy verify",
        )


class PipelineCancelled(HeroDeployError):
    """The operator declined a confirmation gate."""

    exit_code = EXIT_CANCELLED

    def __init__(self, stage: str) -> None:
        """Create a cancellation for the gate at ``stage``."""
        self.stage = stage
        super().__init__(f"Cancelled by operator at {stage}")
