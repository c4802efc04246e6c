"""
Bootstrap data transforms for fragments built with the Next.js app router.

The inline flight data of an app router page carries the canonical URL of the
initial tree as a list of segments (``"c":["","about"]``). A fragment served
under ``/simulator`` otherwise believes it is mounted at the root and the
client router replaces the URL on hydration, so the mount segments are
inserted after the leading empty segment.
"""

import re
from typing import Tuple

from fragment_gateway.models import BootstrapTransform


def _segments(prefix: str) -> list:
    segments = [s for s in prefix.strip("/").split("/") if s]
    if not segments:
        raise ValueError(f"Mount prefix must name at least one segment: {prefix!r}")
    for segment in segments:
        if '"' in segment or "\\" in segment:
            raise ValueError(f"Unsupported character in mount segment {segment!r}")
    return segments


def next_router_mount(prefix: str) -> Tuple[BootstrapTransform, ...]:
    """Transforms that mount the initial router tree under ``prefix``.

    Both the plain JSON form and the form escaped inside a JS string literal
    (``self.__next_f.push([1,"..."])``) are handled. Already mounted trees are
    left alone.
    """
    segments = _segments(prefix)

    plain = ",".join(f'"{s}"' for s in segments)
    escaped = ",".join(f'\\"{s}\\"' for s in segments)

    return (
        BootstrapTransform(
            pattern=r'("c":\["")' + f"(?!,{re.escape(plain)}[,\\]])",
            replacement=r"\1," + plain,
        ),
        BootstrapTransform(
            pattern=r'(\\"c\\":\[\\"\\")' + f"(?!,{re.escape(escaped)}[,\\]])",
            replacement=r"\1," + escaped.replace("\\", "\\\\"),
        ),
    )
