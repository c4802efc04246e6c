import pytest

from fragment_gateway.models import AssetPolicy, FragmentBinding, PathTransform
from fragment_gateway.routing.bootstrap import next_router_mount
from fragment_gateway.routing.route_table import RouteTable
from fragment_gateway.settings import GatewaySettings
from fragment_gateway.utils_tests.fake_origins import FakeOrigins

AUTHOR_ORIGIN = "https://author.example.com"
SIMULATOR_ORIGIN = "https://simulator.example.com"
ONBOARDING_ORIGIN = "https://onboarding.example.com"


@pytest.fixture
def author_binding():
    return FragmentBinding(
        name="author",
        path_prefix="/author",
        origin_url=AUTHOR_ORIGIN,
        path_transform=PathTransform.STRIP,
        priority=True,
        asset_policy=AssetPolicy.ABSOLUTE,
        adopted_routes=("/work", "/about"),
    )


@pytest.fixture
def simulator_binding():
    return FragmentBinding(
        name="simulator",
        path_prefix="/simulator",
        origin_url=SIMULATOR_ORIGIN,
        path_transform=PathTransform.STRIP,
        asset_policy=AssetPolicy.RELATIVE,
        bootstrap_transforms=next_router_mount("/simulator"),
    )


@pytest.fixture
def onboarding_binding():
    return FragmentBinding(
        name="onboarding",
        path_prefix="/onboarding",
        origin_url=ONBOARDING_ORIGIN,
        path_transform=PathTransform.KEEP,
        asset_policy=AssetPolicy.RELATIVE,
    )


@pytest.fixture
def route_table(author_binding, simulator_binding, onboarding_binding):
    return RouteTable([author_binding, simulator_binding, onboarding_binding])


@pytest.fixture
def settings(route_table):
    return GatewaySettings(
        route_table=route_table,
        enabled=True,
        timeout=1.0,
        default_accept_language="es",
        simulator_url=SIMULATOR_ORIGIN,
        onboarding_url=ONBOARDING_ORIGIN,
        public_host="www.example.com",
        public_proto="https",
    )


@pytest.fixture
def origins():
    return FakeOrigins()
