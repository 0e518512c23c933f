"""
============================================================================
Ads Safety Pipeline - Landing Page Health Probe
============================================================================

Reliability Level: L5 Standard
Traceability: Probe results are logged with url and status

Landing page health is consumed by the guardrail validator as a capability.
HttpLandingPageProbe performs a single GET with a bounded timeout and
reports status and timing. It never raises for HTTP status codes; transport
failures are reported as reachable=False.

StaticLandingPageProbe returns canned results for tests and offline runs.

ERROR CODES:
    - LP-001: Landing page unreachable
============================================================================
"""

from typing import Optional, Dict
from dataclasses import dataclass
from abc import ABC, abstractmethod
from urllib.parse import urlparse
import logging
import time

import requests

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

DEFAULT_PROBE_TIMEOUT_SECONDS = 10.0
MAX_REDIRECTS = 5
PROBE_USER_AGENT = "ads-safety-landing-page-probe/1.0"


class ProbeErrorCode:
    UNREACHABLE = "LP-001"


# =============================================================================
# Data Classes
# =============================================================================

@dataclass
class LandingPageHealth:
    url: str
    reachable: bool
    http_status: Optional[int] = None
    is_https: bool = False
    load_time_ms: Optional[int] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, object]:
        return {
            "url": self.url,
            "reachable": self.reachable,
            "http_status": self.http_status,
            "is_https": self.is_https,
            "load_time_ms": self.load_time_ms,
            "error": self.error,
        }


# =============================================================================
# Probe Interface
# =============================================================================

class LandingPageHealthProbe(ABC):
    """Abstract landing page health capability."""

    @abstractmethod
    def check(self, url: str) -> LandingPageHealth:
        """Probe one URL. Must not raise for unhealthy pages."""
        pass


class HttpLandingPageProbe(LandingPageHealthProbe):
    """
    requests-based probe.

    Follows up to MAX_REDIRECTS redirects. A final URL on https counts as
    is_https even when the submitted URL was http.
    """

    def __init__(
        self,
        timeout_seconds: float = DEFAULT_PROBE_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._timeout = timeout_seconds
        self._session = session or requests.Session()
        self._session.max_redirects = MAX_REDIRECTS
        self._session.headers.update({"User-Agent": PROBE_USER_AGENT})

    def check(self, url: str) -> LandingPageHealth:
        started = time.monotonic()
        try:
            response = self._session.get(url, timeout=self._timeout, allow_redirects=True)
        except requests.RequestException as e:
            elapsed_ms = int((time.monotonic() - started) * 1000)
            logger.warning(
                f"[{ProbeErrorCode.UNREACHABLE}] Landing page unreachable | "
                f"url={url} | elapsed_ms={elapsed_ms} | error={e}"
            )
            return LandingPageHealth(
                url=url,
                reachable=False,
                is_https=urlparse(url).scheme == "https",
                load_time_ms=elapsed_ms,
                error=str(e),
            )

        elapsed_ms = int((time.monotonic() - started) * 1000)
        health = LandingPageHealth(
            url=url,
            reachable=True,
            http_status=response.status_code,
            is_https=urlparse(response.url or url).scheme == "https",
            load_time_ms=elapsed_ms,
        )
        logger.debug(
            f"[LP-PROBE] Landing page checked | "
            f"url={url} | status={response.status_code} | load_time_ms={elapsed_ms}"
        )
        return health


class StaticLandingPageProbe(LandingPageHealthProbe):
    """
    Canned probe results keyed by URL.

    Unknown URLs return the default (a healthy 200 in 100 ms) so tests only
    describe the pages they care about.
    """

    def __init__(
        self,
        results: Optional[Dict[str, LandingPageHealth]] = None,
        default_status: int = 200,
        default_load_time_ms: int = 100,
    ) -> None:
        self._results: Dict[str, LandingPageHealth] = dict(results or {})
        self._default_status = default_status
        self._default_load_time_ms = default_load_time_ms
        self.checked_urls = []

    def set_result(self, url: str, health: LandingPageHealth) -> None:
        self._results[url] = health

    def check(self, url: str) -> LandingPageHealth:
        self.checked_urls.append(url)
        if url in self._results:
            return self._results[url]
        return LandingPageHealth(
            url=url,
            reachable=True,
            http_status=self._default_status,
            is_https=urlparse(url).scheme == "https",
            load_time_ms=self._default_load_time_ms,
        )


__all__ = [
    "LandingPageHealth",
    "LandingPageHealthProbe",
    "HttpLandingPageProbe",
    "StaticLandingPageProbe",
]
