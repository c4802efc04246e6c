"""
Declarative, logic-free routing layer behind the composition middleware.

It serves whatever the middleware declines: unattributed static assets and
whole-path prefix mappings. When nothing matches it answers with a plain 404
page, so every request gets a response.
"""

from .route import (
    HeaderRule,
    StaticRewrite,
    build_router,
    default_header_rules,
    default_rewrites,
)

__all__ = [
    "HeaderRule",
    "StaticRewrite",
    "build_router",
    "default_header_rules",
    "default_rewrites",
]
