"""Path shape helpers shared by the classifier and the URL rewriter."""

STATIC_ASSET_PREFIXES = (
    "/_next",
    "/static",
    "/images",
    "/img",
    "/assets",
    "/public",
)

# The image optimisation endpoint encodes the source image and transform
# parameters in its query string, so the query must be forwarded untouched.
IMAGE_OPTIMIZATION_PATH = "/_next/image"


def path_has_prefix(path: str, prefix: str) -> bool:
    """Case-sensitive, segment-exact prefix match.

    ``/author`` matches ``/author`` and ``/author/x`` but not ``/authors``.
    """
    return path == prefix or path.startswith(prefix + "/")


def strip_query(url: str) -> str:
    """Drop the query string and fragment from a URL or path."""
    for sep in ("?", "#"):
        url = url.split(sep, 1)[0]
    return url


def is_static_asset_path(path: str) -> bool:
    path = strip_query(path)
    if path == IMAGE_OPTIMIZATION_PATH:
        return True
    return any(path_has_prefix(path, prefix) for prefix in STATIC_ASSET_PREFIXES)


def is_image_optimization_path(path: str) -> bool:
    return strip_query(path) == IMAGE_OPTIMIZATION_PATH
