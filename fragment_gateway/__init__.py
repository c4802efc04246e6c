"""
Fragment gateway: composes independently deployed frontend applications
("fragments") under one public origin.

Every inbound request is classified, the owning fragment's output is fetched
from its own origin and, for HTML, root-relative URLs are rewritten so they
resolve from the composing origin.

Run locally with:
    uvicorn fragment_gateway.server:app --port 3000
"""
