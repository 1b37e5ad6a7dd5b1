"""Deployment record model persisted after a successful service deployment."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class DeploymentRecord(BaseModel):
    """Summary of the last successful deployment, kept for display only."""

    model_config = ConfigDict(extra="forbid")

    version: str = Field(default="1.0", description="Record format version")
    deployed_at: datetime = Field(..., description="Deployment timestamp (UTC)")
    configuration: dict[str, Any] = Field(
        ..., description="Resolved run configuration without secrets"
    )
    addresses: dict[str, str | None] = Field(
        ..., description="Resolved VM addresses"
    )
    access_url: str = Field(..., description="Primary application URL")
    role_filter: str | None = Field(
        default=None, description="Role subset deployed, None for all roles"
    )
    services: dict[str, str] = Field(
        default_factory=dict, description="Service groups per role"
    )
