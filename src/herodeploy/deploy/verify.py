"""Endpoint verification for deployed services.

``Verifier.check`` is a generator: it probes endpoints one at a time as the
caller iterates, reports failures as results instead of raising, and every
call starts a fresh pass over all endpoints.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass

import requests

from herodeploy.config.defaults import (
    DEFAULT_REQUIRED_ENDPOINTS,
    HTTP_RETRIES,
    HTTP_RETRY_DELAY,
    HTTP_TIMEOUT,
)
from herodeploy.lib.logging_config import get_logger
from herodeploy.models.config import RunConfiguration
from herodeploy.models.infrastructure import InfrastructureOutputs

logger = get_logger(__name__)


@dataclass(frozen=True)
class Endpoint:
    """An HTTP endpoint to probe.

    Attributes:
        name: Logical endpoint name (e.g. "app", "health")
        url: Absolute URL
        verify_tls: Validate the TLS certificate
    """

    name: str
    url: str
    verify_tls: bool = True


@dataclass(frozen=True)
class HealthResult:
    """Outcome of probing one endpoint."""

    name: str
    healthy: bool
    detail: str


def base_url(cfg: RunConfiguration, outputs: InfrastructureOutputs) -> str:
    """Primary application URL: HTTPS on the domain when SSL is active."""
    if cfg.ssl_active:
        return f"https://{cfg.domain_name}"
    return f"http://{outputs.public_ip}"


def build_endpoints(
    cfg: RunConfiguration, outputs: InfrastructureOutputs
) -> list[Endpoint]:
    """Derive the endpoints exposed by the deployed services."""
    verify_tls = not cfg.ssl_staging
    public = f"http://{outputs.public_ip}"

    if cfg.ssl_active:
        domain = cfg.domain_name
        endpoints = [
            Endpoint("app", f"https://{domain}", verify_tls),
            Endpoint("api", f"https://api.{domain}", verify_tls),
            Endpoint("files", f"https://files.{domain}", verify_tls),
        ]
    else:
        endpoints = [
            Endpoint("app", public),
            Endpoint("api", f"{public}/api"),
            Endpoint("files", f"{public}/ipfs"),
        ]

    endpoints.append(Endpoint("health", f"{public}/health"))
    if cfg.enable_monitoring:
        endpoints.append(Endpoint("grafana", f"{public}/grafana"))
        endpoints.append(Endpoint("prometheus", f"{public}/prometheus"))
    return endpoints


class Verifier:
    """Probe HTTP endpoints with retries.

    Example:
        >>> verifier = Verifier()
        >>> for result in verifier.check(build_endpoints(cfg, outputs)):
        ...     print(result.name, result.healthy)
    """

    def __init__(
        self,
        session: requests.Session | None = None,
        timeout: float = HTTP_TIMEOUT,
        retries: int = HTTP_RETRIES,
        retry_delay: float = HTTP_RETRY_DELAY,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize the verifier.

        Args:
            session: HTTP session (a new one when None)
            timeout: Per-request timeout in seconds
            retries: Attempts per endpoint
            retry_delay: Seconds between attempts
            sleep: Sleep function (injectable for tests)
        """
        self._session = session or requests.Session()
        self._timeout = timeout
        self._retries = max(1, retries)
        self._retry_delay = retry_delay
        self._sleep = sleep

    def check(self, endpoints: Iterable[Endpoint]) -> Iterator[HealthResult]:
        """Yield one result per endpoint, probing lazily."""
        for endpoint in endpoints:
            result = self._probe(endpoint)
            level = "healthy" if result.healthy else "unhealthy"
            logger.info(f"{endpoint.name} ({endpoint.url}) {level}: {result.detail}")
            yield result

    def _probe(self, endpoint: Endpoint) -> HealthResult:
        detail = ""
        for attempt in range(1, self._retries + 1):
            try:
                response = self._session.get(
                    endpoint.url,
                    timeout=self._timeout,
                    verify=endpoint.verify_tls,
                )
            except requests.RequestException as exc:
                detail = f"{type(exc).__name__}: {exc}"
            else:
                if response.status_code < 500:
                    return HealthResult(
                        endpoint.name, True, f"HTTP {response.status_code}"
                    )
                detail = f"HTTP {response.status_code}"

            if attempt < self._retries:
                logger.debug(
                    f"{endpoint.name} attempt {attempt}/{self._retries} failed "
                    f"({detail}), retrying in {self._retry_delay}s"
                )
                self._sleep(self._retry_delay)

        return HealthResult(endpoint.name, False, detail)


def summarize(
    results: Iterable[HealthResult],
    required: Iterable[str] = DEFAULT_REQUIRED_ENDPOINTS,
) -> tuple[bool, list[str]]:
    """Decide overall health from probe results.

    Returns:
        Whether every required endpoint is healthy, and the names of the
        failing required endpoints (a required endpoint with no result
        counts as failing)
    """
    outcome = {result.name: result.healthy for result in results}
    failed = [name for name in required if not outcome.get(name, False)]
    return not failed, failed
