import logging
from typing import Optional

from opentelemetry import trace

from fragment_gateway.models import FragmentBinding, ProxyRequest, ProxyResponse
from fragment_gateway.proxy.errors import NoAttribution, ProxyError
from fragment_gateway.proxy.fetch import FetchPipeline, iter_and_close
from fragment_gateway.routing.paths import is_image_optimization_path
from fragment_gateway.routing.route_table import RouteTable
from fragment_gateway.utils.exception_logging import log_exception_with_details
from fragment_gateway.utils.traced_requests import traced_request

logger = logging.getLogger("uvicorn.error")
tracer = trace.get_tracer(__name__)


class AssetRouter:
    """
    Serves static assets requested without a fragment prefix.

    The browser resolves root-relative asset URLs against the composing origin,
    so ``/_next/static/chunk.js`` no longer says which fragment it came from.
    The referer of the requesting page is the only signal left; without it the
    request is declined and handled by the declarative rewrite table.
    """

    def __init__(self, route_table: RouteTable, pipeline: FetchPipeline):
        self._route_table = route_table
        self._pipeline = pipeline

    def resolve(self, referer: Optional[str]) -> FragmentBinding:
        fragment = self._route_table.attribute(referer)
        if fragment is None:
            raise NoAttribution(
                "Referer does not identify a fragment"
                if referer
                else "Request has no referer"
            )
        return fragment

    async def route_asset(
        self,
        path: str,
        referer: Optional[str],
        query_string: str = "",
        request: Optional[ProxyRequest] = None,
        fragment: Optional[FragmentBinding] = None,
    ) -> Optional[ProxyResponse]:
        """Proxy the asset bytes unmodified, or return None to decline.

        ``fragment`` is the owner already attributed by the classifier; when it
        is missing the owner is resolved from ``referer``.
        """
        if fragment is None:
            try:
                fragment = self.resolve(referer)
            except NoAttribution as e:
                logger.debug(f"[Assets] Declining {path}: {e}")
                return None

        if request is None:
            request = ProxyRequest(path=path, query_string=query_string, referer=referer)

        with traced_request(
            tracer,
            operation="fragment_asset",
            fragment=fragment.name,
            target_url=f"{fragment.origin_url}{path}",
            start_message=f"[Assets] {path} -> {fragment.name}",
            extra_attrs={"proxy.image_optimization": is_image_optimization_path(path)},
        ) as span:
            try:
                response = await self._pipeline.fetch_asset(
                    fragment, path, query_string, request
                )
            except ProxyError as e:
                span.set_attribute("proxy.error", type(e).__name__)
                logger.warning(
                    f"[Assets] Declining {path} ({fragment.name}): {type(e).__name__} {e}"
                )
                return None
            except Exception as e:
                span.set_attribute("proxy.error", type(e).__name__)
                log_exception_with_details(
                    logger, f"[Assets] Declining {path} ({fragment.name})", e
                )
                return None

            span.set_attribute("proxy.status_code", response.status_code)
            return ProxyResponse.asset(
                status_code=response.status_code,
                content_type=response.headers.get(
                    "content-type", "application/octet-stream"
                ),
                body=iter_and_close(response),
            )
