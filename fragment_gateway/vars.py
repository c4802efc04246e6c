import os

SERVICE_NAME = os.getenv("SERVICE_NAME", "fragment-gateway")
ENVIRONMENT = os.getenv("ENVIRONMENT", "development").lower()

# Composition can be switched off entirely; the middleware and the
# declarative rewrite table are both bypassed in that case.
MICROFRONTEND_ENABLED = (
    os.getenv("MICROFRONTEND_ENABLED", "true").strip().lower() != "false"
)

MICROFRONTEND_SIMULATOR_URL = os.getenv(
    "MICROFRONTEND_SIMULATOR_URL", "https://simulador-ahorro-front.vercel.app"
).rstrip("/")
MICROFRONTEND_ONBOARDING_URL = os.getenv(
    "MICROFRONTEND_ONBOARDING_URL", MICROFRONTEND_SIMULATOR_URL
).rstrip("/")
MICROFRONTEND_AUTHOR_URL = os.getenv(
    "MICROFRONTEND_AUTHOR_URL", "https://elizabeth-velasquez.vercel.app"
).rstrip("/")

# Optional JSON file replacing the built-in fragment route table
FRAGMENT_ROUTES_FILE = os.getenv("FRAGMENT_ROUTES_FILE", "")

PROXY_TIMEOUT = float(os.getenv("PROXY_TIMEOUT", "10"))
DEFAULT_ACCEPT_LANGUAGE = os.getenv("DEFAULT_ACCEPT_LANGUAGE", "es")

# Externally visible host/protocol, used for X-Forwarded-* headers
PUBLIC_HOST = os.getenv("APP_URL", "localhost:3000")
PUBLIC_PROTO = os.getenv(
    "PUBLIC_PROTO", "https" if ENVIRONMENT == "production" else "http"
)

OTLP_ENDPOINT = os.getenv("OTLP_ENDPOINT")
OTLP_HEADERS = os.getenv("OTLP_HEADERS", "")
