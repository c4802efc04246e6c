import pytest
from pydantic import ValidationError
from starlette.requests import Request

from fragment_gateway.models import (
    ASSET_CACHE_CONTROL,
    HTML_CACHE_CONTROL,
    BootstrapTransform,
    FragmentBinding,
    PathTransform,
    ProxyRequest,
    ProxyResponse,
    RouteDecision,
)


def _binding(**overrides):
    values = {
        "name": "frag",
        "path_prefix": "/frag",
        "origin_url": "https://frag.example.com",
    }
    values.update(overrides)
    return FragmentBinding(**values)


class TestFragmentBinding:
    def test_origin_trailing_slash_is_removed(self):
        binding = _binding(origin_url="https://frag.example.com/")
        assert binding.origin_url == "https://frag.example.com"

    @pytest.mark.parametrize("prefix", ["frag", "/", "/frag/", ""])
    def test_invalid_prefix_rejected(self, prefix):
        with pytest.raises(ValidationError):
            _binding(path_prefix=prefix)

    @pytest.mark.parametrize("origin", ["frag.example.com", "ftp://frag.example.com", "/x"])
    def test_invalid_origin_rejected(self, origin):
        with pytest.raises(ValidationError):
            _binding(origin_url=origin)

    def test_remap_requires_prefix(self):
        with pytest.raises(ValidationError):
            _binding(path_transform=PathTransform.REMAP)

    def test_adopted_routes_must_be_root_relative(self):
        with pytest.raises(ValidationError):
            _binding(adopted_routes=("work",))

    def test_binding_is_immutable(self):
        binding = _binding()
        with pytest.raises(ValidationError):
            binding.path_prefix = "/other"

    def test_matches_whole_segments_only(self):
        binding = _binding(path_prefix="/author")
        assert binding.matches("/author")
        assert binding.matches("/author/about")
        assert not binding.matches("/authors")
        assert not binding.matches("/Author/about")
        assert not binding.matches("/x/author")

    def test_strip_transform(self):
        binding = _binding(path_prefix="/simulator")
        assert binding.upstream_path("/simulator/page") == "/page"
        assert binding.upstream_path("/simulator") == "/"
        assert binding.root_path == "/"

    def test_keep_transform(self):
        binding = _binding(path_prefix="/onboarding", path_transform=PathTransform.KEEP)
        assert binding.upstream_path("/onboarding/step-2") == "/onboarding/step-2"
        assert binding.root_path == "/onboarding"

    def test_remap_transform(self):
        binding = _binding(
            path_prefix="/nuevo",
            path_transform=PathTransform.REMAP,
            remap_prefix="/app/",
        )
        assert binding.upstream_path("/nuevo/plan") == "/app/plan"
        assert binding.upstream_path("/nuevo") == "/app"
        assert binding.root_path == "/app"

    def test_remap_to_root(self):
        binding = _binding(
            path_prefix="/nuevo", path_transform=PathTransform.REMAP, remap_prefix="/"
        )
        assert binding.upstream_path("/nuevo") == "/"
        assert binding.upstream_path("/nuevo/plan") == "/plan"

    def test_adopts(self):
        binding = _binding(adopted_routes=("/work", "/about"))
        assert binding.adopts("/work")
        assert binding.adopts("/work/case-study")
        assert not binding.adopts("/workshop")

    def test_enum_values_from_strings(self):
        binding = FragmentBinding.model_validate(
            {
                "name": "x",
                "path_prefix": "/x",
                "origin_url": "http://x.local",
                "path_transform": "keep",
                "asset_policy": "relative",
                "adopted_routes": ["/a"],
            }
        )
        assert binding.path_transform is PathTransform.KEEP
        assert binding.adopted_routes == ("/a",)


class TestBootstrapTransform:
    def test_invalid_pattern_rejected(self):
        with pytest.raises(ValidationError):
            BootstrapTransform(pattern="(", replacement="")

    def test_apply(self):
        transform = BootstrapTransform(pattern=r'"page":"/', replacement='"page":"/x/')
        assert transform.apply('{"page":"/a"}') == '{"page":"/x/a"}'


def _starlette_request(path="/", query_string=b"", headers=None):
    scope = {
        "type": "http",
        "method": "GET",
        "path": path,
        "query_string": query_string,
        "headers": [
            (k.lower().encode("latin-1"), v.encode("latin-1"))
            for k, v in (headers or {}).items()
        ],
    }
    return Request(scope)


class TestProxyRequest:
    def test_from_request_selects_headers(self):
        request = _starlette_request(
            "/author/about",
            b"a=1",
            {
                "User-Agent": "ua",
                "Accept": "text/html",
                "Accept-Language": "en",
                "Referer": "https://www.example.com/author",
                "Cookie": "secret=1",
            },
        )
        proxy_request = ProxyRequest.from_request(request)
        assert proxy_request.path == "/author/about"
        assert proxy_request.user_agent == "ua"
        assert proxy_request.accept == "text/html"
        assert proxy_request.accept_language == "en"
        assert proxy_request.referer == "https://www.example.com/author"
        assert proxy_request.query == {"a": "1"}
        assert proxy_request.query_string == "a=1"

    def test_duplicate_query_keys_last_wins(self):
        request = _starlette_request("/x", b"a=1&b=2&a=3")
        proxy_request = ProxyRequest.from_request(request)
        assert proxy_request.query == {"a": "3", "b": "2"}
        assert proxy_request.query_string == "a=1&b=2&a=3"


class TestProxyResponse:
    def test_html_response_headers(self):
        response = ProxyResponse.html(200, "<p>hi</p>").to_response()
        assert response.status_code == 200
        assert response.headers["content-type"] == "text/html; charset=utf-8"
        assert response.headers["cache-control"] == HTML_CACHE_CONTROL
        assert response.body == b"<p>hi</p>"

    def test_asset_response_headers(self):
        response = ProxyResponse.asset(200, "image/png", b"\x89PNG").to_response()
        assert response.headers["content-type"] == "image/png"
        assert response.headers["cache-control"] == ASSET_CACHE_CONTROL
        assert response.headers["access-control-allow-origin"] == "*"
        assert response.headers["access-control-allow-methods"] == "GET, OPTIONS"


def test_route_decision_upstream_url():
    decision = RouteDecision(fragment=_binding(), upstream_path="/about")
    assert decision.upstream_url == "https://frag.example.com/about"
