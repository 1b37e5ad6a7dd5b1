"""Logging configuration for herodeploy.

All modules obtain their logger through ``get_logger`` so that the CLI can
configure verbosity once through ``setup_logging``.
"""

import logging
import sys

LOGGER_NAMESPACE = "herodeploy"
LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
DATE_FORMAT = "%H:%M:%S"


def get_logger(name: str) -> logging.Logger:
    """Return a logger for a module.

    Args:
        name: Module name, usually ``__name__``

    Returns:
        Logger inside the herodeploy namespace
    """
    if name == LOGGER_NAMESPACE or name.startswith(f"{LOGGER_NAMESPACE}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{LOGGER_NAMESPACE}.{name}")


def setup_logging(verbose: bool = False, quiet: bool = False) -> None:
    """Configure the herodeploy logger hierarchy.

    Args:
        verbose: Emit DEBUG records
        quiet: Only emit WARNING and above (takes precedence over verbose)
    """
    if quiet:
        level = logging.WARNING
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO

    root = logging.getLogger(LOGGER_NAMESPACE)
    root.setLevel(level)

    # Replace handlers so repeated CLI invocations in one process don't stack
    for handler in list(root.handlers):
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    root.addHandler(handler)
