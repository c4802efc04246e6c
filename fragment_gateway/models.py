import re
from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncIterator, Dict, Optional, Tuple, Union
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, field_validator, model_validator
from starlette.requests import Request
from starlette.responses import Response, StreamingResponse

from fragment_gateway.routing.paths import path_has_prefix

HTML_CONTENT_TYPE = "text/html; charset=utf-8"
HTML_CACHE_CONTROL = "public, s-maxage=60, stale-while-revalidate=300"
ASSET_CACHE_CONTROL = "public, max-age=31536000, immutable"
ASSET_CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, OPTIONS",
}


class PathTransform(str, Enum):
    """How a request path is turned into the fragment's upstream path."""

    STRIP = "strip"
    KEEP = "keep"
    REMAP = "remap"


class AssetPolicy(str, Enum):
    """
    How root-relative static asset URLs in a fragment's HTML are rewritten.

    ABSOLUTE points them straight at the fragment origin. RELATIVE leaves them
    root-relative so the browser requests them from the composing origin, where
    the asset router attributes them to the fragment by referer.
    """

    ABSOLUTE = "absolute"
    RELATIVE = "relative"


class RouteKind(str, Enum):
    PAGE = "page"
    ASSET = "asset"


class BootstrapTransform(BaseModel):
    """A regex substitution applied to inline ``<script>`` bodies of a fragment."""

    model_config = ConfigDict(frozen=True)

    pattern: str
    replacement: str

    @field_validator("pattern")
    @classmethod
    def _pattern_compiles(cls, value: str) -> str:
        try:
            re.compile(value)
        except re.error as e:
            raise ValueError(f"Invalid bootstrap pattern {value!r}: {e}") from e
        return value

    def apply(self, text: str) -> str:
        return re.sub(self.pattern, self.replacement, text)


class FragmentBinding(BaseModel):
    """
    Binds a path prefix of the composing origin to a fragment origin.

    Attributes:
        name: Identifier used in logs and traces.
        path_prefix: Mount prefix, e.g. ``/author``. Must start with ``/`` and
            must not end with one.
        origin_url: Base URL of the fragment deployment.
        path_transform: STRIP removes the prefix, KEEP forwards the path as is,
            REMAP replaces the prefix with ``remap_prefix``.
        priority: Priority fragments are matched before the static asset rules
            because their content paths may collide with asset-like names.
        asset_policy: See :class:`AssetPolicy`.
        adopted_routes: Unprefixed routes that belong to the fragment's own
            client router (``/work``, ``/about``). They are only routed to the
            fragment when the referer points at it.
        bootstrap_transforms: Substitutions applied to inline scripts holding
            client router bootstrap data.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    path_prefix: str
    origin_url: str
    path_transform: PathTransform = PathTransform.STRIP
    remap_prefix: Optional[str] = None
    priority: bool = False
    asset_policy: AssetPolicy = AssetPolicy.ABSOLUTE
    adopted_routes: Tuple[str, ...] = ()
    bootstrap_transforms: Tuple[BootstrapTransform, ...] = ()

    @field_validator("path_prefix")
    @classmethod
    def _valid_prefix(cls, value: str) -> str:
        if not value.startswith("/") or value == "/" or value.endswith("/"):
            raise ValueError(
                f"path_prefix must start with '/' and must not end with '/': {value!r}"
            )
        return value

    @field_validator("origin_url")
    @classmethod
    def _valid_origin(cls, value: str) -> str:
        parsed = urlparse(value)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"origin_url must be an absolute http(s) URL: {value!r}")
        return value.rstrip("/")

    @field_validator("adopted_routes")
    @classmethod
    def _valid_adopted_routes(cls, value: Tuple[str, ...]) -> Tuple[str, ...]:
        for route in value:
            if not route.startswith("/"):
                raise ValueError(f"adopted route must start with '/': {route!r}")
        return value

    @model_validator(mode="after")
    def _remap_needs_prefix(self):
        if self.path_transform is PathTransform.REMAP and self.remap_prefix is None:
            raise ValueError(f"Fragment {self.name!r} uses REMAP without remap_prefix")
        return self

    def matches(self, path: str) -> bool:
        return path_has_prefix(path, self.path_prefix)

    def adopts(self, path: str) -> bool:
        return any(path_has_prefix(path, route) for route in self.adopted_routes)

    def upstream_path(self, path: str) -> str:
        """Translate a composing-origin path into this fragment's upstream path."""
        if self.path_transform is PathTransform.KEEP or not self.matches(path):
            return path
        rest = path[len(self.path_prefix) :]
        if self.path_transform is PathTransform.STRIP:
            return rest or "/"
        return f"{self.remap_prefix.rstrip('/')}{rest}" or "/"

    @property
    def root_path(self) -> str:
        """Upstream path of the fragment's root page."""
        return self.upstream_path(self.path_prefix)


@dataclass(frozen=True)
class RouteDecision:
    fragment: FragmentBinding
    upstream_path: str
    kind: RouteKind = RouteKind.PAGE
    upstream_query: Dict[str, str] = field(default_factory=dict)
    # Raw query string, forwarded verbatim for asset requests
    query_string: str = ""

    @property
    def upstream_url(self) -> str:
        return f"{self.fragment.origin_url}{self.upstream_path}"


@dataclass(frozen=True)
class ProxyRequest:
    """The parts of an inbound request the composition core looks at."""

    path: str
    method: str = "GET"
    query: Dict[str, str] = field(default_factory=dict)
    query_string: str = ""
    user_agent: Optional[str] = None
    accept: Optional[str] = None
    accept_language: Optional[str] = None
    referer: Optional[str] = None

    @classmethod
    def from_request(cls, request: Request) -> "ProxyRequest":
        # Duplicate keys: the last value wins
        query = {key: value for key, value in request.query_params.multi_items()}
        headers = request.headers
        return cls(
            path=request.url.path,
            method=request.method,
            query=query,
            query_string=request.url.query,
            user_agent=headers.get("user-agent"),
            accept=headers.get("accept"),
            accept_language=headers.get("accept-language"),
            referer=headers.get("referer"),
        )


@dataclass(frozen=True)
class RewriteContext:
    fragment: FragmentBinding
    request_path: str

    @property
    def fragment_origin(self) -> str:
        return self.fragment.origin_url

    @property
    def asset_policy(self) -> AssetPolicy:
        return self.fragment.asset_policy


@dataclass
class ProxyResponse:
    status_code: int
    content_type: str
    body: Union[str, bytes, AsyncIterator[bytes]]
    headers: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def html(cls, status_code: int, body: str) -> "ProxyResponse":
        return cls(
            status_code=status_code,
            content_type=HTML_CONTENT_TYPE,
            body=body,
            headers={"Cache-Control": HTML_CACHE_CONTROL},
        )

    @classmethod
    def asset(
        cls,
        status_code: int,
        content_type: str,
        body: Union[bytes, AsyncIterator[bytes]],
    ) -> "ProxyResponse":
        return cls(
            status_code=status_code,
            content_type=content_type,
            body=body,
            headers={**ASSET_CORS_HEADERS, "Cache-Control": ASSET_CACHE_CONTROL},
        )

    def to_response(self) -> Response:
        headers = dict(self.headers)
        if self.content_type:
            headers["Content-Type"] = self.content_type
        if isinstance(self.body, (str, bytes)):
            return Response(
                content=self.body, status_code=self.status_code, headers=headers
            )
        return StreamingResponse(
            self.body, status_code=self.status_code, headers=headers
        )
