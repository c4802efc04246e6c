from urllib.parse import urlsplit, urlunsplit


def loggable_url(url: str) -> str:
    """Drop query string and fragment so logs do not carry request parameters."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return "<unparseable url>"
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))
