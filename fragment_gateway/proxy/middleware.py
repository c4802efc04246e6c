import logging

import httpx
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from fragment_gateway.models import ProxyRequest, RouteKind
from fragment_gateway.proxy.assets import AssetRouter
from fragment_gateway.proxy.classifier import RequestClassifier
from fragment_gateway.proxy.fetch import FetchPipeline
from fragment_gateway.settings import GatewaySettings

logger = logging.getLogger("uvicorn.error")


class FragmentCompositionMiddleware(BaseHTTPMiddleware):
    """
    Serves fragment pages and referer-attributed assets in front of the app.

    Only GET requests are composed. Every decline, and every request while
    composition is disabled, is handed to the next layer unchanged.
    """

    def __init__(self, app, settings: GatewaySettings, client: httpx.AsyncClient):
        super().__init__(app)
        self.enabled = settings.enabled
        self.classifier = RequestClassifier(settings.route_table)
        self.pipeline = FetchPipeline(
            client,
            timeout=settings.timeout,
            default_accept_language=settings.default_accept_language,
        )
        self.asset_router = AssetRouter(settings.route_table, self.pipeline)

    async def dispatch(self, request: Request, call_next):
        if not self.enabled or request.method != "GET":
            return await call_next(request)

        proxy_request = ProxyRequest.from_request(request)
        decision = self.classifier.classify(proxy_request)
        if decision is None:
            return await call_next(request)

        if decision.kind is RouteKind.ASSET:
            result = await self.asset_router.route_asset(
                decision.upstream_path,
                proxy_request.referer,
                decision.query_string,
                request=proxy_request,
                fragment=decision.fragment,
            )
        else:
            result = await self.pipeline.fetch_and_render(decision, proxy_request)

        if result is None:
            return await call_next(request)
        return result.to_response()
