#!/usr/bin/env python3
"""
Show how the composition middleware classifies a request.

Usage:
    python bin/explain-route.py /author/about
    python bin/explain-route.py /_next/static/chunk.js --referer https://example.com/author/
    python bin/explain-route.py /simulator/page --routes routes.json
"""

import argparse
import json
import os
import sys
from urllib.parse import parse_qsl, urlsplit

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from fragment_gateway.models import ProxyRequest  # noqa: E402
from fragment_gateway.proxy.classifier import RequestClassifier  # noqa: E402
from fragment_gateway.routing.route_table import (  # noqa: E402
    RouteTableError,
    default_route_table,
    load_route_table,
)


def parse_args():
    parser = argparse.ArgumentParser(description="Explain a routing decision")
    parser.add_argument("path", help="Request path, optionally with a query string")
    parser.add_argument("-r", "--referer", help="Referer header of the request")
    parser.add_argument(
        "--routes", help="JSON route table (default: built-in fragment table)"
    )
    parser.add_argument(
        "--json", action="store_true", help="Print the decision as JSON"
    )
    return parser.parse_args()


def explain(args) -> dict:
    table = load_route_table(args.routes) if args.routes else default_route_table()
    parts = urlsplit(args.path)
    # Duplicate keys: the last value wins, as for live requests
    query = dict(parse_qsl(parts.query, keep_blank_values=True))

    request = ProxyRequest(
        path=parts.path or "/",
        query=query,
        query_string=parts.query,
        referer=args.referer,
    )
    decision = RequestClassifier(table).classify(request)
    if decision is None:
        return {"path": request.path, "decision": "decline"}

    upstream = decision.upstream_url
    if decision.query_string:
        upstream = f"{upstream}?{decision.query_string}"
    return {
        "path": request.path,
        "decision": decision.kind.value,
        "fragment": decision.fragment.name,
        "upstream": upstream,
        "query": decision.upstream_query,
        "asset_policy": decision.fragment.asset_policy.value,
    }


def main():
    args = parse_args()
    try:
        result = explain(args)
    except RouteTableError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    if args.json:
        print(json.dumps(result, indent=2))
        return
    for key, value in result.items():
        print(f"{key:>13}: {value}")


if __name__ == "__main__":
    main()
