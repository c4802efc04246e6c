"""
URL rewriting for fragment HTML.

The rewriter does targeted text substitution, not DOM parsing. It is an ordered
sequence of small ``PatternTransform`` units, each matching one construct:

* ``url_attribute``    href / src / action / formaction / poster
* ``srcset_attribute`` srcset / imagesrcset candidate lists
* ``data_attribute``   data-* values that look like a path or URL
* ``inline_style``     url(...) inside style="..."
* ``style_block``      url(...) and @import inside <style> elements
* ``meta_content``     og:image / og:url / twitter:image meta tags
* ``bootstrap_data``   per-fragment transforms of inline <script> bodies

The units match disjoint constructs and every unit is idempotent, so the
output of one pass is never corrupted by another and rewriting a rewritten
document changes nothing.

Document-relative URLs (``img/logo.png``) are left as they are: resolving them
would need the fragment's base URL and they are rare in framework output.
"""

import re
from dataclasses import dataclass
from typing import Callable, List, Match, Optional, Pattern, Sequence, Tuple

from fragment_gateway.models import AssetPolicy, RewriteContext
from fragment_gateway.routing.paths import is_static_asset_path

_UNTOUCHED_PREFIXES = ("http://", "https://", "//", "data:", "#")

_META_URL_PROPERTIES = (
    "og:image",
    "og:image:url",
    "og:image:secure_url",
    "og:url",
    "og:video",
    "twitter:image",
)


def rewrite_url(url: str, ctx: RewriteContext) -> str:
    """Rewrite a single URL found in fragment markup."""
    if url.lower().startswith(_UNTOUCHED_PREFIXES):
        return url
    if not url.startswith("/"):
        return url
    if ctx.asset_policy is AssetPolicy.RELATIVE and is_static_asset_path(url):
        # Left for the asset router, which attributes it by referer
        return url
    return f"{ctx.fragment_origin}{url}"


def split_srcset(value: str) -> List[Tuple[str, str]]:
    """Split a srcset value into (url, descriptor) candidates.

    URLs end at whitespace, so commas inside a URL (data: URIs) are kept;
    descriptors end at the next comma outside parentheses.
    """
    candidates = []
    pos, end = 0, len(value)
    while pos < end:
        while pos < end and (value[pos].isspace() or value[pos] == ","):
            pos += 1
        if pos >= end:
            break

        start = pos
        while pos < end and not value[pos].isspace():
            pos += 1
        url = value[start:pos]

        descriptor = ""
        if url.endswith(","):
            url = url.rstrip(",")
        else:
            start = pos
            depth = 0
            while pos < end:
                char = value[pos]
                if char == "(":
                    depth += 1
                elif char == ")" and depth:
                    depth -= 1
                elif char == "," and depth == 0:
                    break
                pos += 1
            descriptor = value[start:pos].strip()
        candidates.append((url, descriptor))
    return candidates


def rewrite_srcset(value: str, ctx: RewriteContext) -> str:
    return ", ".join(
        f"{rewrite_url(url, ctx)} {descriptor}"
        if descriptor
        else rewrite_url(url, ctx)
        for url, descriptor in split_srcset(value)
    )


_CSS_URL_RE = re.compile(
    r"""url\(\s*(?:"(?P<dq>[^"]*)"|'(?P<sq>[^']*)'|(?P<bare>[^"')\s]*))\s*\)""",
    re.IGNORECASE,
)
_CSS_IMPORT_RE = re.compile(
    r"""@import\s+(?:"(?P<dq>[^"]*)"|'(?P<sq>[^']*)')""", re.IGNORECASE
)


def rewrite_css_urls(css: str, ctx: RewriteContext) -> str:
    """Rewrite url(...) references and quoted @import targets in CSS text."""

    def _url(match: Match) -> str:
        if match.group("dq") is not None:
            return f'url("{rewrite_url(match.group("dq"), ctx)}")'
        if match.group("sq") is not None:
            return f"url('{rewrite_url(match.group('sq'), ctx)}')"
        return f"url({rewrite_url(match.group('bare'), ctx)})"

    def _import(match: Match) -> str:
        if match.group("dq") is not None:
            return f'@import "{rewrite_url(match.group("dq"), ctx)}"'
        return f"@import '{rewrite_url(match.group('sq'), ctx)}'"

    css = _CSS_URL_RE.sub(_url, css)
    return _CSS_IMPORT_RE.sub(_import, css)


def _attribute_re(names: str) -> Pattern[str]:
    # The lookbehind keeps "src" from matching inside "data-src"
    return re.compile(
        r"(?<![\w-])(?P<attr>" + names + r")(?P<eq>\s*=\s*)"
        r"""(?:"(?P<dq>[^"]*)"|'(?P<sq>[^']*)')""",
        re.IGNORECASE,
    )


def _attribute_value(match: Match) -> str:
    if match.group("dq") is not None:
        return match.group("dq")
    return match.group("sq")


def _with_value(match: Match, value: str) -> str:
    quote = '"' if match.group("dq") is not None else "'"
    return f"{match.group('attr')}{match.group('eq')}{quote}{value}{quote}"


@dataclass(frozen=True)
class PatternTransform:
    """One independently testable substitution over the document text."""

    name: str
    pattern: Pattern[str]
    handler: Callable[[Match, RewriteContext], str]

    def apply(self, html: str, ctx: RewriteContext) -> str:
        return self.pattern.sub(lambda match: self.handler(match, ctx), html)


def _url_attribute(match: Match, ctx: RewriteContext) -> str:
    return _with_value(match, rewrite_url(_attribute_value(match), ctx))


def _srcset_attribute(match: Match, ctx: RewriteContext) -> str:
    return _with_value(match, rewrite_srcset(_attribute_value(match), ctx))


def _data_attribute(match: Match, ctx: RewriteContext) -> str:
    value = _attribute_value(match)
    if not (value.startswith("/") or value.lower().startswith("http")):
        return match.group(0)
    if match.group("attr").lower().endswith("srcset"):
        return _with_value(match, rewrite_srcset(value, ctx))
    return _with_value(match, rewrite_url(value, ctx))


def _inline_style(match: Match, ctx: RewriteContext) -> str:
    return _with_value(match, rewrite_css_urls(_attribute_value(match), ctx))


def _style_block(match: Match, ctx: RewriteContext) -> str:
    return f"{match.group('open')}{rewrite_css_urls(match.group('body'), ctx)}{match.group('close')}"


_META_PROPERTY_RE = re.compile(
    r"""(?<![\w-])(?:property|name)\s*=\s*["']("""
    + "|".join(re.escape(p) for p in _META_URL_PROPERTIES)
    + r""")["']""",
    re.IGNORECASE,
)
_CONTENT_ATTRIBUTE_RE = _attribute_re("content")


def _meta_content(match: Match, ctx: RewriteContext) -> str:
    tag = match.group(0)
    if not _META_PROPERTY_RE.search(tag):
        return tag
    return _CONTENT_ATTRIBUTE_RE.sub(
        lambda m: _with_value(m, rewrite_url(_attribute_value(m), ctx)), tag
    )


def _bootstrap_data(match: Match, ctx: RewriteContext) -> str:
    body = match.group("body")
    for transform in ctx.fragment.bootstrap_transforms:
        body = transform.apply(body)
    return f"{match.group('open')}{body}{match.group('close')}"


URL_ATTRIBUTE = PatternTransform(
    "url_attribute",
    _attribute_re(r"href|src|action|formaction|poster"),
    _url_attribute,
)
SRCSET_ATTRIBUTE = PatternTransform(
    "srcset_attribute", _attribute_re(r"srcset|imagesrcset"), _srcset_attribute
)
DATA_ATTRIBUTE = PatternTransform(
    "data_attribute", _attribute_re(r"data-[\w.:-]+"), _data_attribute
)
INLINE_STYLE = PatternTransform("inline_style", _attribute_re(r"style"), _inline_style)
STYLE_BLOCK = PatternTransform(
    "style_block",
    re.compile(
        r"(?P<open><style\b[^>]*>)(?P<body>.*?)(?P<close></style\s*>)",
        re.IGNORECASE | re.DOTALL,
    ),
    _style_block,
)
META_CONTENT = PatternTransform(
    "meta_content", re.compile(r"<meta\b[^>]*>", re.IGNORECASE), _meta_content
)
BOOTSTRAP_DATA = PatternTransform(
    "bootstrap_data",
    re.compile(
        r"(?P<open><script\b[^>]*>)(?P<body>.*?)(?P<close></script\s*>)",
        re.IGNORECASE | re.DOTALL,
    ),
    _bootstrap_data,
)

DEFAULT_TRANSFORMS: Tuple[PatternTransform, ...] = (
    URL_ATTRIBUTE,
    SRCSET_ATTRIBUTE,
    DATA_ATTRIBUTE,
    INLINE_STYLE,
    STYLE_BLOCK,
    META_CONTENT,
    BOOTSTRAP_DATA,
)


def rewrite(
    html: str,
    ctx: RewriteContext,
    transforms: Optional[Sequence[PatternTransform]] = None,
) -> str:
    """Rewrite fragment-relative URLs in ``html`` so they resolve from the composing origin."""
    for transform in DEFAULT_TRANSFORMS if transforms is None else transforms:
        if transform is BOOTSTRAP_DATA and not ctx.fragment.bootstrap_transforms:
            continue
        html = transform.apply(html, ctx)
    return html
