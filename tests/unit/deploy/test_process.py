"""Unit tests for subprocess execution."""

from __future__ import annotations

import logging
import subprocess
from unittest.mock import MagicMock, patch

import pytest

from herodeploy.deploy.process import CommandResult, run_command


class TestRunCommand:
    """Tests for run_command."""

    def test_captures_output(self) -> None:
        """Captured stdout, stderr and exit status are returned."""
        completed = subprocess.CompletedProcess(["tofu"], 1, stdout="out", stderr="err")
        with patch(
            "herodeploy.deploy.process.subprocess.run", return_value=completed
        ) as mock_run:
            result = run_command(["tofu", "output"], input_text="x")

        assert result == CommandResult(["tofu", "output"], 1, "out", "err")
        assert result.ok is False
        assert result.output == "out\nerr"
        assert mock_run.call_args.kwargs["input"] == "x"

    def test_missing_executable(self) -> None:
        """A missing executable is reported as exit status 127."""
        with patch(
            "herodeploy.deploy.process.subprocess.run",
            side_effect=FileNotFoundError("No such file: 'tofu'"),
        ):
            result = run_command(["tofu", "version"])

        assert result.returncode == 127
        assert "tofu" in result.stderr

    def test_streaming_merges_output(self) -> None:
        """Streamed commands collect every output line."""
        process = MagicMock()
        process.stdout.__iter__.return_value = iter(["line one\n", "line two\n"])
        process.wait.return_value = 0
        with patch("herodeploy.deploy.process.subprocess.Popen", return_value=process):
            result = run_command(["ansible-playbook", "site.yml"], stream=True)

        assert result.ok is True
        assert result.stdout == "line one\nline two"

    def test_streaming_interrupted_kills_child(self) -> None:
        """An interrupt while reading output kills and reaps the child."""
        process = MagicMock()
        process.stdout.__iter__.side_effect = KeyboardInterrupt
        with patch("herodeploy.deploy.process.subprocess.Popen", return_value=process):
            with pytest.raises(KeyboardInterrupt):
                run_command(["tofu", "apply"], stream=True)

        process.kill.assert_called_once()
        process.wait.assert_called_once()

    def test_redacted_values_masked_in_log(self, caplog: pytest.LogCaptureFixture) -> None:
        """Redacted values are replaced in the logged command line."""
        caplog.set_level(logging.DEBUG, logger="herodeploy")
        completed = subprocess.CompletedProcess(["ansible-playbook"], 0)
        with patch("herodeploy.deploy.process.subprocess.run", return_value=completed):
            run_command(
                ["ansible-playbook", "--extra-vars", '{"jwt_secret": "s3cr3t"}'],
                redact=["s3cr3t", ""],
            )

        assert "s3cr3t" not in caplog.text
        assert '"jwt_secret": "***"' in caplog.text
