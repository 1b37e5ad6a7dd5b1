"""Pytest configuration and shared fixtures for herodeploy tests."""

from __future__ import annotations

from collections.abc import Collection, Sequence
from pathlib import Path

import pytest

from herodeploy.deploy.process import CommandResult
from herodeploy.models.config import ProjectPaths, RunConfiguration
from herodeploy.models.infrastructure import InfrastructureOutputs


class FakeRunner:
    """Scripted stand-in for ``run_command``.

    Responses are matched on an argv prefix; the most recently registered
    match wins and unmatched commands succeed with no output.
    """

    def __init__(self) -> None:
        self.calls: list[list[str]] = []
        self.inputs: list[str | None] = []
        self.streamed: list[bool] = []
        self.redacted: list[list[str]] = []
        self._responses: list[tuple[tuple[str, ...], int, str, str]] = []

    def on(
        self, *prefix: str, returncode: int = 0, stdout: str = "", stderr: str = ""
    ) -> FakeRunner:
        self._responses.append((prefix, returncode, stdout, stderr))
        return self

    def __call__(
        self,
        args: Sequence[str],
        *,
        cwd: Path | None = None,
        input_text: str | None = None,
        stream: bool = False,
        redact: Collection[str] = (),
    ) -> CommandResult:
        argv = [str(arg) for arg in args]
        self.calls.append(argv)
        self.inputs.append(input_text)
        self.streamed.append(stream)
        self.redacted.append(list(redact))
        for prefix, returncode, stdout, stderr in reversed(self._responses):
            if tuple(argv[: len(prefix)]) == prefix:
                return CommandResult(argv, returncode, stdout, stderr)
        return CommandResult(argv, 0)

    def called(self, *prefix: str) -> bool:
        return self.index(*prefix) >= 0

    def index(self, *prefix: str) -> int:
        """Position of the first call starting with ``prefix``, or -1."""
        for position, argv in enumerate(self.calls):
            if tuple(argv[: len(prefix)]) == prefix:
                return position
        return -1


@pytest.fixture
def fake_runner() -> FakeRunner:
    """Provide a fresh scripted command runner."""
    return FakeRunner()


@pytest.fixture
def project(tmp_path: Path) -> ProjectPaths:
    """Create a minimal project tree with infrastructure and platform dirs."""
    paths = ProjectPaths(root=tmp_path)
    paths.infrastructure_dir.mkdir()
    paths.platform_dir.mkdir()
    paths.credentials_file.write_text('node_ids = ["1"]\n', encoding="utf-8")
    paths.playbook_file.write_text("- hosts: all\n", encoding="utf-8")
    return paths


@pytest.fixture
def run_config() -> RunConfiguration:
    """Run configuration with fixed secrets and SSL disabled."""
    return RunConfiguration(
        postgres_password="pg-secret",
        redis_password="redis-secret",
        jwt_secret="jwt-secret",
    )


@pytest.fixture
def ssl_config() -> RunConfiguration:
    """Run configuration with SSL enabled for example.com."""
    return RunConfiguration(
        enable_ssl=True,
        domain_name="example.com",
        postgres_password="pg-secret",
        redis_password="redis-secret",
        jwt_secret="jwt-secret",
    )


@pytest.fixture
def outputs() -> InfrastructureOutputs:
    """Complete infrastructure outputs for one VM."""
    return InfrastructureOutputs(
        public_ip="185.206.122.150/24",
        wireguard_ip="10.1.3.2",
        mycelium_ip="5a4:1b2::1",
        wg_config="[Interface]\nPrivateKey = abc\n",
    )
