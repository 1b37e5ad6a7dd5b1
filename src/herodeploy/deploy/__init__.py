"""herodeploy deployment engine.

This package drives the provisioning backend, the WireGuard tunnel and
Ansible, and sequences them through the deployment pipeline.
"""

from herodeploy.deploy.configuration import AnsibleDriver, BaseConfigurationDriver
from herodeploy.deploy.infrastructure import BaseInfrastructureDriver, TofuDriver
from herodeploy.deploy.network import BaseNetworkBootstrapper, WireGuardBootstrapper
from herodeploy.deploy.orchestrator import Orchestrator, PipelineRun, Stage
from herodeploy.deploy.verify import Verifier

__all__ = [
    "AnsibleDriver",
    "BaseConfigurationDriver",
    "BaseInfrastructureDriver",
    "BaseNetworkBootstrapper",
    "Orchestrator",
    "PipelineRun",
    "Stage",
    "TofuDriver",
    "Verifier",
    "WireGuardBootstrapper",
]
