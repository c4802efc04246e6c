from dataclasses import dataclass, field

from fragment_gateway import vars as env
from fragment_gateway.routing.route_table import (
    RouteTable,
    default_route_table,
    load_route_table,
)


@dataclass(frozen=True)
class GatewaySettings:
    """
    Process-wide configuration, built once at startup and injected into the
    middleware, the pipeline and the rewrite router. Request handling code
    never reads the environment.
    """

    route_table: RouteTable
    enabled: bool = True
    timeout: float = 10.0
    default_accept_language: str = "es"
    simulator_url: str = ""
    onboarding_url: str = ""
    public_host: str = "localhost:3000"
    public_proto: str = "http"
    service_name: str = field(default="fragment-gateway")


def load_settings() -> GatewaySettings:
    route_table = (
        load_route_table(env.FRAGMENT_ROUTES_FILE)
        if env.FRAGMENT_ROUTES_FILE
        else default_route_table()
    )
    return GatewaySettings(
        route_table=route_table,
        enabled=env.MICROFRONTEND_ENABLED,
        timeout=env.PROXY_TIMEOUT,
        default_accept_language=env.DEFAULT_ACCEPT_LANGUAGE,
        simulator_url=env.MICROFRONTEND_SIMULATOR_URL,
        onboarding_url=env.MICROFRONTEND_ONBOARDING_URL,
        public_host=env.PUBLIC_HOST,
        public_proto=env.PUBLIC_PROTO,
        service_name=env.SERVICE_NAME,
    )
