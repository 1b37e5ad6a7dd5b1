"""Configuration resolution for herodeploy runs.

Main components:
- resolve: Build the immutable RunConfiguration for one invocation
- resolve_secret: Fill a missing credential with a random value
- read_env_file / update_env_file: Persisted KEY=value configuration
"""

from herodeploy.config.env_file import read_env_file, update_env_file
from herodeploy.config.resolver import resolve
from herodeploy.config.secret_store import resolve_secret

__all__ = [
    "read_env_file",
    "resolve",
    "resolve_secret",
    "update_env_file",
]
