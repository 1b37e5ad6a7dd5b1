"""Subprocess execution for the external tools wrapped by the drivers."""

from __future__ import annotations

import subprocess  # nosec B404
from collections.abc import Callable, Collection, Sequence
from dataclasses import dataclass
from pathlib import Path

from herodeploy.lib.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class CommandResult:
    """Outcome of an external command.

    Attributes:
        args: Command line that was executed
        returncode: Process exit status (127 when the executable is missing)
        stdout: Captured standard output (merged with stderr when streamed)
        stderr: Captured standard error
    """

    args: list[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        """Combined stdout and stderr, stripped."""
        return "\n".join(part for part in (self.stdout, self.stderr) if part).strip()


CommandRunner = Callable[..., CommandResult]


def run_command(
    args: Sequence[str],
    *,
    cwd: Path | None = None,
    input_text: str | None = None,
    stream: bool = False,
    redact: Collection[str] = (),
) -> CommandResult:
    """Run a command and wait for it to finish.

    Args:
        args: Executable and arguments
        cwd: Working directory
        input_text: Text written to the process stdin
        stream: Log output lines as they arrive instead of buffering
        redact: Secret values masked wherever the command line or its
            streamed output is logged

    Returns:
        CommandResult; a missing executable is reported as returncode 127
    """
    argv = [str(arg) for arg in args]
    logger.debug(f"Running: {_mask(' '.join(argv), redact)}")

    if stream and input_text is None:
        return _run_streaming(argv, cwd, redact)

    try:
        completed = subprocess.run(  # noqa: S603  # nosec B603
            argv,
            cwd=cwd,
            input=input_text,
            capture_output=True,
            text=True,
        )
    except FileNotFoundError as exc:
        return CommandResult(args=argv, returncode=127, stderr=str(exc))

    return CommandResult(
        args=argv,
        returncode=completed.returncode,
        stdout=completed.stdout or "",
        stderr=completed.stderr or "",
    )


def _mask(text: str, secrets: Collection[str]) -> str:
    for secret in secrets:
        if secret:
            text = text.replace(secret, "***")
    return text


def _run_streaming(
    argv: list[str], cwd: Path | None, redact: Collection[str] = ()
) -> CommandResult:
    """Run a long command, logging each output line as it is produced."""
    try:
        process = subprocess.Popen(  # noqa: S603  # nosec B603
            argv,
            cwd=cwd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
        )
    except FileNotFoundError as exc:
        return CommandResult(args=argv, returncode=127, stderr=str(exc))

    lines: list[str] = []
    assert process.stdout is not None  # nosec B101
    try:
        with process.stdout:
            for line in process.stdout:
                stripped = line.rstrip("\n")
                lines.append(stripped)
                logger.info(_mask(stripped, redact))
    except BaseException:
        process.kill()
        process.wait()
        raise
    returncode = process.wait()
    return CommandResult(args=argv, returncode=returncode, stdout="\n".join(lines))
