import logging
from typing import Optional

from fragment_gateway.models import (
    FragmentBinding,
    ProxyRequest,
    RouteDecision,
    RouteKind,
)
from fragment_gateway.routing.paths import is_static_asset_path
from fragment_gateway.routing.route_table import RouteTable

logger = logging.getLogger("uvicorn.error")


class RequestClassifier:
    """
    Decides who serves an inbound request. The first matching rule wins and
    the order of the rules is part of the contract:

    1. priority fragment prefix -> page
    2. static asset path attributable by referer -> asset
    3. static asset path without attribution -> decline
    4. other fragment prefixes, in table order -> page
    5. adopted fragment route with a referer from that fragment -> page
    6. anything else -> decline

    A decline is ``None``; the request then goes to the next layer.
    """

    def __init__(self, route_table: RouteTable):
        self._route_table = route_table

    def classify(self, request: ProxyRequest) -> Optional[RouteDecision]:
        path = request.path

        fragment = self._route_table.match(path, priority=True)
        if fragment is not None:
            return self._page(fragment, fragment.upstream_path(path), request)

        if is_static_asset_path(path):
            owner = self._route_table.attribute(request.referer)
            if owner is None:
                logger.debug(f"[Classifier] Unattributed asset {path}, declining")
                return None
            return RouteDecision(
                fragment=owner,
                upstream_path=path,
                kind=RouteKind.ASSET,
                upstream_query=dict(request.query),
                query_string=request.query_string,
            )

        fragment = self._route_table.match(path, priority=False)
        if fragment is not None:
            return self._page(fragment, fragment.upstream_path(path), request)

        owner = self._route_table.owner_of_adopted(path)
        if owner is not None and self._route_table.attribute(request.referer) is owner:
            # Fragment-native route: the fragment serves it at the same path
            return self._page(owner, path, request)

        return None

    @staticmethod
    def _page(
        fragment: FragmentBinding, upstream_path: str, request: ProxyRequest
    ) -> RouteDecision:
        logger.debug(
            f"[Classifier] {request.path} -> {fragment.name} {upstream_path}"
        )
        return RouteDecision(
            fragment=fragment,
            upstream_path=upstream_path,
            kind=RouteKind.PAGE,
            upstream_query=dict(request.query),
            query_string=request.query_string,
        )
