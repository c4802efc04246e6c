"""
Per-request failures of the composition core.

None of these reach the client: the fetch pipeline and the asset router turn
them into a decline and the next layer produces the response.
"""

from typing import Optional


class ProxyError(Exception):
    """Base class for upstream and attribution failures."""

    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(message)
        self.url = url


class UpstreamUnreachable(ProxyError):
    """DNS, connection or transport failure."""


class UpstreamTimeout(ProxyError):
    """The upstream call exceeded the configured bound and was cancelled."""


class UpstreamError(ProxyError):
    """The upstream answered with a non-success status."""

    def __init__(self, status_code: int, url: Optional[str] = None):
        super().__init__(f"Upstream returned {status_code}", url=url)
        self.status_code = status_code


class UpstreamNotFound(UpstreamError):
    """A 404, eligible for the fragment root fallback."""

    def __init__(self, url: Optional[str] = None):
        super().__init__(404, url=url)


class NoAttribution(ProxyError):
    """No referer signal identifies the fragment owning the request."""
