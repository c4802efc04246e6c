import json
import logging
from pathlib import Path
from typing import Iterable, List, Optional, Tuple
from urllib.parse import urlparse

from pydantic import TypeAdapter, ValidationError

from fragment_gateway.models import AssetPolicy, FragmentBinding, PathTransform
from fragment_gateway.routing.bootstrap import next_router_mount
from fragment_gateway.vars import (
    MICROFRONTEND_AUTHOR_URL,
    MICROFRONTEND_ONBOARDING_URL,
    MICROFRONTEND_SIMULATOR_URL,
)

logger = logging.getLogger("uvicorn.error")

_BINDINGS_ADAPTER = TypeAdapter(List[FragmentBinding])


class RouteTableError(ValueError):
    """Raised when a route table configuration is invalid."""


class RouteTable:
    """
    Ordered, immutable set of fragment bindings.

    Declaration order is priority order: when two bindings could own a path the
    earlier one wins. Prefixes are matched case-sensitively on whole segments.
    """

    def __init__(self, bindings: Iterable[FragmentBinding]):
        self._bindings: Tuple[FragmentBinding, ...] = tuple(bindings)
        seen = set()
        for binding in self._bindings:
            if binding.path_prefix in seen:
                raise RouteTableError(
                    f"Duplicate fragment prefix {binding.path_prefix!r}"
                )
            seen.add(binding.path_prefix)

    def __iter__(self):
        return iter(self._bindings)

    def __len__(self) -> int:
        return len(self._bindings)

    def match(
        self, path: str, priority: Optional[bool] = None
    ) -> Optional[FragmentBinding]:
        """Return the first binding whose prefix owns ``path``.

        ``priority`` restricts the search to priority (True) or non-priority
        (False) bindings; None searches all of them.
        """
        for binding in self._bindings:
            if priority is not None and binding.priority != priority:
                continue
            if binding.matches(path):
                return binding
        return None

    def attribute(self, referer: Optional[str]) -> Optional[FragmentBinding]:
        """
        Best-effort attribution of a request to a fragment from its referer.

        The referer can be missing, stripped by privacy settings or spoofed, so
        a None result is a normal outcome and callers must decline in that case.
        """
        if not referer:
            return None
        try:
            referer_path = urlparse(referer).path
        except ValueError:
            logger.debug(f"[Routes] Unparseable referer ignored: {referer!r}")
            return None
        if not referer_path:
            return None
        return self.match(referer_path)

    def owner_of_adopted(self, path: str) -> Optional[FragmentBinding]:
        for binding in self._bindings:
            if binding.adopts(path):
                return binding
        return None


def default_route_table() -> RouteTable:
    """The fragments composed by the production deployment."""
    return RouteTable(
        [
            FragmentBinding(
                name="author",
                path_prefix="/author",
                origin_url=MICROFRONTEND_AUTHOR_URL,
                path_transform=PathTransform.STRIP,
                priority=True,
                asset_policy=AssetPolicy.ABSOLUTE,
                adopted_routes=("/work", "/about"),
            ),
            FragmentBinding(
                name="simulator",
                path_prefix="/simulator",
                origin_url=MICROFRONTEND_SIMULATOR_URL,
                path_transform=PathTransform.STRIP,
                asset_policy=AssetPolicy.RELATIVE,
                bootstrap_transforms=next_router_mount("/simulator"),
            ),
            FragmentBinding(
                name="onboarding",
                path_prefix="/onboarding",
                origin_url=MICROFRONTEND_ONBOARDING_URL,
                path_transform=PathTransform.KEEP,
                asset_policy=AssetPolicy.RELATIVE,
            ),
            # Legacy alias of the simulator
            FragmentBinding(
                name="nuevo",
                path_prefix="/nuevo",
                origin_url=MICROFRONTEND_SIMULATOR_URL,
                path_transform=PathTransform.STRIP,
                asset_policy=AssetPolicy.RELATIVE,
                bootstrap_transforms=next_router_mount("/nuevo"),
            ),
        ]
    )


def parse_route_table(raw: str) -> RouteTable:
    try:
        bindings = _BINDINGS_ADAPTER.validate_json(raw)
    except ValidationError as e:
        raise RouteTableError(f"Invalid route table: {e}") from e
    return RouteTable(bindings)


def load_route_table(path: str) -> RouteTable:
    """Load a route table from a JSON file holding a list of bindings."""
    try:
        raw = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise RouteTableError(f"Cannot read route table {path}: {e}") from e
    table = parse_route_table(raw)
    logger.info(
        f"[Routes] Loaded {len(table)} fragment bindings from {path}: "
        + json.dumps([b.path_prefix for b in table])
    )
    return table
