import logging
import re
from dataclasses import dataclass, field
from typing import AsyncIterator, Dict, Optional, Pattern, Sequence, Tuple

import httpx
from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import HTMLResponse, Response, StreamingResponse
from opentelemetry import trace

from fragment_gateway.models import ASSET_CORS_HEADERS
from fragment_gateway.settings import GatewaySettings
from fragment_gateway.utils import loggable_url

tracer = trace.get_tracer(__name__)
logger = logging.getLogger("uvicorn.error")

# Hop-by-hop headers that should NOT be forwarded (RFC 2616)
HOP_BY_HOP_HEADERS = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailers",
    "transfer-encoding",
    "upgrade",
}

# Request headers that describe the inbound connection, not the upstream one
NOT_FORWARDED_REQUEST_HEADERS = HOP_BY_HOP_HEADERS | {"host", "content-length"}

NOT_FOUND_PAGE = (
    "<!DOCTYPE html><html lang=\"es\"><head><meta charset=\"utf-8\">"
    "<title>404 - No encontrado</title></head>"
    "<body><h1>404</h1><p>La página que buscas no existe.</p></body></html>"
)

_PARAM_RE = re.compile(r"/:([A-Za-z_]\w*)(\*)?")


def _compile_source(source: str) -> Pattern[str]:
    """
    Compile a source pattern. ``/:name`` matches one segment, ``/:name*``
    matches zero or more segments (so ``/a/:path*`` also matches ``/a``).
    """
    pattern = ""
    pos = 0
    for match in _PARAM_RE.finditer(source):
        pattern += re.escape(source[pos : match.start()])
        name, star = match.group(1), match.group(2)
        if star:
            pattern += f"(?:/(?P<{name}>.*))?"
        else:
            pattern += f"/(?P<{name}>[^/]+)"
        pos = match.end()
    pattern += re.escape(source[pos:])
    return re.compile(f"^{pattern}$")


@dataclass(frozen=True)
class StaticRewrite:
    """A logic-free ``source -> destination`` mapping; no referer, no rewriting."""

    source: str
    destination: str
    _pattern: Pattern[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "_pattern", _compile_source(self.source))

    def match(self, path: str) -> Optional[str]:
        found = self._pattern.match(path)
        if found is None:
            return None
        params = {k: v or "" for k, v in found.groupdict().items()}
        return _PARAM_RE.sub(lambda m: "/" + params.get(m.group(1), ""), self.destination)


@dataclass(frozen=True)
class HeaderRule:
    source: str
    headers: Tuple[Tuple[str, str], ...]
    _pattern: Pattern[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "_pattern", _compile_source(self.source))

    def applies_to(self, path: str) -> bool:
        return self._pattern.match(path) is not None


def default_rewrites(settings: GatewaySettings) -> Tuple[StaticRewrite, ...]:
    """
    Declarative routing used when the composition middleware declines.
    Static assets without an attributable referer fall back to the simulator.
    """
    if not settings.enabled:
        return ()

    simulator = settings.simulator_url
    onboarding = settings.onboarding_url
    rewrites = [
        StaticRewrite("/_next/static/:path*", f"{simulator}/_next/static/:path*"),
        StaticRewrite("/_next/image", f"{simulator}/_next/image"),
        StaticRewrite("/_next/webpack-hmr", f"{simulator}/_next/webpack-hmr"),
    ]
    for prefix in ("static", "images", "img", "assets", "public"):
        rewrites.append(StaticRewrite(f"/{prefix}/:path*", f"{simulator}/{prefix}/:path*"))
    for name in ("favicon.ico", "robots.txt", "sitemap.xml"):
        rewrites.append(StaticRewrite(f"/{name}", f"{simulator}/{name}"))
    rewrites += [
        StaticRewrite("/nuevo", f"{simulator}/"),
        StaticRewrite("/nuevo/:path*", f"{simulator}/:path*"),
        StaticRewrite("/simulator/:path*", f"{simulator}/:path*"),
        StaticRewrite("/onboarding", f"{onboarding}/onboarding"),
        StaticRewrite("/onboarding/:path*", f"{onboarding}/onboarding/:path*"),
    ]
    return tuple(rewrites)


def default_header_rules() -> Tuple[HeaderRule, ...]:
    cors = tuple(ASSET_CORS_HEADERS.items())
    return tuple(
        HeaderRule(source, cors)
        for source in (
            "/_next/static/:path*",
            "/images/:path*",
            "/img/:path*",
            "/assets/:path*",
            "/static/:path*",
        )
    )


def find_destination(
    rewrites: Sequence[StaticRewrite], path: str, query: str = ""
) -> Optional[str]:
    """First matching rewrite wins; the inbound query string is appended."""
    for rewrite in rewrites:
        destination = rewrite.match(path)
        if destination is not None:
            return f"{destination}?{query}" if query else destination
    return None


def prepare_headers(request: Request, settings: GatewaySettings) -> Dict[str, str]:
    """
    Prepare headers for forwarding to the fragment origin.
    Removes hop-by-hop headers and adds the public forwarded host/proto.
    """
    headers = {}

    for name, value in request.headers.items():
        if name.lower() not in NOT_FORWARDED_REQUEST_HEADERS:
            headers[name] = value

    client_ip = request.client.host if request.client else "unknown"
    existing_xff = headers.pop("x-forwarded-for", "")
    headers["x-forwarded-for"] = f"{existing_xff}, {client_ip}".strip(", ")
    headers["x-forwarded-host"] = settings.public_host
    headers["x-forwarded-proto"] = settings.public_proto

    return headers


async def stream_response(response: httpx.Response) -> AsyncIterator[bytes]:
    """Stream the upstream body untouched and close the upstream response."""
    try:
        async for chunk in response.aiter_raw():
            yield chunk
    finally:
        await response.aclose()


async def forward_to_target(
    request: Request,
    target_url: str,
    client: httpx.AsyncClient,
    settings: GatewaySettings,
    header_rules: Sequence[HeaderRule] = (),
) -> Response:
    """Forward a request to the destination of a static rewrite."""
    with tracer.start_as_current_span("static_rewrite") as span:
        span.set_attribute("proxy.target_url", loggable_url(target_url))
        span.set_attribute("proxy.method", request.method)

        logger.debug(
            f"[Rewrites] {request.method} {request.url.path} -> {loggable_url(target_url)}"
        )

        try:
            upstream = await client.send(
                client.build_request(
                    request.method, target_url, headers=prepare_headers(request, settings)
                ),
                stream=True,
            )
        except httpx.TimeoutException as e:
            logger.error(f"[Rewrites] Timeout for {loggable_url(target_url)}: {e}")
            span.set_attribute("proxy.error", "timeout")
            raise HTTPException(status_code=504, detail="Gateway timeout")
        except httpx.HTTPError as e:
            logger.error(
                f"[Rewrites] Failed to reach {loggable_url(target_url)}: {e}"
            )
            span.set_attribute("proxy.error", "connection_failed")
            raise HTTPException(status_code=502, detail="Bad gateway")

        span.set_attribute("proxy.status_code", upstream.status_code)

        response_headers = {
            name: value
            for name, value in upstream.headers.items()
            if name.lower() not in HOP_BY_HOP_HEADERS
        }
        for rule in header_rules:
            if rule.applies_to(request.url.path):
                response_headers.update(rule.headers)

        return StreamingResponse(
            stream_response(upstream),
            status_code=upstream.status_code,
            headers=response_headers,
        )


def build_router(
    settings: GatewaySettings,
    client: httpx.AsyncClient,
    rewrites: Optional[Sequence[StaticRewrite]] = None,
    header_rules: Optional[Sequence[HeaderRule]] = None,
) -> APIRouter:
    """Catch-all router: declarative rewrites, else a plain not-found page."""
    router = APIRouter()
    table = tuple(default_rewrites(settings) if rewrites is None else rewrites)
    rules = tuple(default_header_rules() if header_rules is None else header_rules)

    @router.api_route("/{path:path}", methods=["GET", "HEAD"], include_in_schema=False)
    async def static_rewrite(request: Request, path: str):
        target_url = find_destination(table, request.url.path, request.url.query)
        if target_url is None:
            return HTMLResponse(NOT_FOUND_PAGE, status_code=404)
        return await forward_to_target(request, target_url, client, settings, rules)

    return router
