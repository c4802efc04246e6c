import asyncio
import logging
from typing import AsyncIterator, Callable, Dict, Optional

import httpx
from opentelemetry import trace

from fragment_gateway.models import (
    HTML_CACHE_CONTROL,
    FragmentBinding,
    ProxyRequest,
    ProxyResponse,
    RewriteContext,
    RouteDecision,
)
from fragment_gateway.proxy.errors import (
    ProxyError,
    UpstreamError,
    UpstreamNotFound,
    UpstreamTimeout,
    UpstreamUnreachable,
)
from fragment_gateway.proxy.rewriter import rewrite
from fragment_gateway.utils import loggable_url
from fragment_gateway.utils.exception_logging import (
    format_exception_message,
    log_exception_with_details,
)
from fragment_gateway.utils.traced_requests import traced_request

logger = logging.getLogger("uvicorn.error")
tracer = trace.get_tracer(__name__)

PAGE_ACCEPT = "text/html"
ASSET_ACCEPT = "*/*"


async def iter_and_close(response: httpx.Response) -> AsyncIterator[bytes]:
    """Yield the upstream body and release the connection afterwards."""
    try:
        async for chunk in response.aiter_bytes():
            yield chunk
    finally:
        await response.aclose()


class FetchPipeline:
    """
    Fetches fragment output from its origin.

    Every upstream call is bounded by ``timeout`` seconds; an expired call is
    cancelled and counts as a failure. A 404 for a non-root page is retried
    once at the fragment root. Every failure ends in a decline (None) and is
    never raised to the caller.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        timeout: float = 10.0,
        default_accept_language: str = "es",
        rewriter: Callable[[str, RewriteContext], str] = rewrite,
    ):
        self._client = client
        self._timeout = timeout
        self._default_accept_language = default_accept_language
        self._rewriter = rewriter

    def upstream_headers(
        self, request: ProxyRequest, default_accept: str = PAGE_ACCEPT
    ) -> Dict[str, str]:
        """Only User-Agent, Accept and Accept-Language are forwarded."""
        return {
            "User-Agent": request.user_agent or "",
            "Accept": request.accept or default_accept,
            "Accept-Language": request.accept_language
            or self._default_accept_language,
        }

    async def send(
        self,
        url: str,
        headers: Dict[str, str],
        params: Optional[Dict[str, str]] = None,
        stream: bool = False,
    ) -> httpx.Response:
        """
        Perform one bounded GET against a fragment origin.

        Raises:
            UpstreamTimeout: the call did not finish within the bound.
            UpstreamUnreachable: DNS, connection or transport failure.
            UpstreamNotFound / UpstreamError: non-success status.
        """
        try:
            upstream_request = self._client.build_request(
                "GET", url, headers=headers, params=params or None
            )
            response = await asyncio.wait_for(
                self._client.send(upstream_request, stream=stream),
                timeout=self._timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise UpstreamTimeout(
                f"No response within {self._timeout}s", url=url
            ) from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise UpstreamUnreachable(format_exception_message(e), url=url) from e

        if not response.is_success:
            if stream:
                await response.aclose()
            if response.status_code == 404:
                raise UpstreamNotFound(url=url)
            raise UpstreamError(response.status_code, url=url)
        return response

    async def fetch_and_render(
        self, decision: RouteDecision, request: ProxyRequest
    ) -> Optional[ProxyResponse]:
        """Fetch a fragment page and rewrite it, or return None to decline."""
        fragment = decision.fragment
        headers = self.upstream_headers(request, PAGE_ACCEPT)

        with traced_request(
            tracer,
            operation="fragment_page",
            fragment=fragment.name,
            target_url=decision.upstream_url,
            start_message=f"[Fetch] {request.path} -> {fragment.name} {decision.upstream_path}",
        ) as span:
            try:
                try:
                    response = await self.send(
                        decision.upstream_url, headers, params=decision.upstream_query
                    )
                except UpstreamNotFound:
                    if decision.upstream_path == fragment.root_path:
                        raise
                    logger.info(
                        f"[Fetch] {fragment.name}: 404 for {decision.upstream_path}, "
                        f"retrying fragment root {fragment.root_path}"
                    )
                    span.set_attribute("proxy.root_fallback", True)
                    response = await self.send(self._root_url(fragment), headers)
                span.set_attribute("proxy.status_code", response.status_code)
                return self._render(response, decision, request)
            except ProxyError as e:
                span.set_attribute("proxy.error", type(e).__name__)
                logger.warning(
                    f"[Fetch] Declining {request.path} ({fragment.name}): "
                    f"{type(e).__name__} {e} [{loggable_url(e.url or '')}]"
                )
                return None
            except Exception as e:
                span.set_attribute("proxy.error", type(e).__name__)
                log_exception_with_details(
                    logger, f"[Fetch] Declining {request.path} ({fragment.name})", e
                )
                return None

    async def fetch_asset(
        self,
        fragment: FragmentBinding,
        path: str,
        query_string: str,
        request: ProxyRequest,
    ) -> httpx.Response:
        """
        Open a streaming GET for an asset of ``fragment``. The query string is
        appended verbatim. Errors are raised as :class:`ProxyError`; the caller
        owns the returned response and must close it.
        """
        url = f"{fragment.origin_url}{path}"
        if query_string:
            url = f"{url}?{query_string}"
        return await self.send(
            url, self.upstream_headers(request, ASSET_ACCEPT), stream=True
        )

    @staticmethod
    def _root_url(fragment: FragmentBinding) -> str:
        return f"{fragment.origin_url}{fragment.root_path}"

    def _render(
        self,
        response: httpx.Response,
        decision: RouteDecision,
        request: ProxyRequest,
    ) -> ProxyResponse:
        content_type = response.headers.get("content-type", "")
        if content_type and "html" not in content_type.lower():
            # Not markup: nothing to rewrite
            return ProxyResponse(
                status_code=response.status_code,
                content_type=content_type,
                body=response.content,
                headers={"Cache-Control": HTML_CACHE_CONTROL},
            )

        ctx = RewriteContext(fragment=decision.fragment, request_path=request.path)
        return ProxyResponse.html(response.status_code, self._rewriter(response.text, ctx))
