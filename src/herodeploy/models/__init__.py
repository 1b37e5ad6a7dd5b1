"""Data models for herodeploy runs, infrastructure outputs and inventory."""

from herodeploy.models.config import MainNetwork, ProjectPaths, RunConfiguration
from herodeploy.models.deployment_state import DeploymentRecord
from herodeploy.models.infrastructure import InfrastructureOutputs, PlanHandle
from herodeploy.models.inventory import ROLES, Inventory, InventoryHost

__all__ = [
    "DeploymentRecord",
    "InfrastructureOutputs",
    "Inventory",
    "InventoryHost",
    "MainNetwork",
    "PlanHandle",
    "ProjectPaths",
    "ROLES",
    "RunConfiguration",
]
