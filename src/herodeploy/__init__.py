"""herodeploy - Deploy the Hero App to a single VM.

herodeploy provisions a VM with OpenTofu, joins it over a WireGuard tunnel
and configures its services with Ansible, as one resumable pipeline.

Main features:
- Configuration resolved from an env file, the environment and defaults
- Stable generated secrets persisted across runs
- Fail-fast stages with a remediation command for every failure
- Partial runs per role for iterating on a single service group
"""

from herodeploy.config.resolver import resolve
from herodeploy.lib.errors import ConfigError, DeploymentError, HeroDeployError

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "ConfigError",
    "DeploymentError",
    "HeroDeployError",
    "resolve",
]
