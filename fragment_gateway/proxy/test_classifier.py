import pytest

from fragment_gateway.models import FragmentBinding, ProxyRequest, RouteKind
from fragment_gateway.proxy.classifier import RequestClassifier
from fragment_gateway.routing.route_table import RouteTable

AUTHOR_PAGE = "https://www.example.com/author/about"
SIMULATOR_PAGE = "https://www.example.com/simulator/page"


@pytest.fixture
def classifier(route_table):
    return RequestClassifier(route_table)


def _request(path, referer=None, query=None, query_string=""):
    return ProxyRequest(
        path=path, referer=referer, query=query or {}, query_string=query_string
    )


def test_priority_fragment_page(classifier):
    decision = classifier.classify(_request("/author/about"))
    assert decision.kind is RouteKind.PAGE
    assert decision.fragment.name == "author"
    assert decision.upstream_path == "/about"


def test_priority_fragment_root(classifier):
    decision = classifier.classify(_request("/author"))
    assert decision.upstream_path == "/"


def test_priority_fragment_wins_over_asset_rule():
    # Prefix whose content paths look like static assets
    images = FragmentBinding(
        name="gallery",
        path_prefix="/images",
        origin_url="https://gallery.test",
        priority=True,
    )
    classifier = RequestClassifier(RouteTable([images]))
    decision = classifier.classify(_request("/images/cat.png"))
    assert decision.kind is RouteKind.PAGE
    assert decision.upstream_path == "/cat.png"


def test_non_priority_fragment_does_not_win_over_asset_rule():
    images = FragmentBinding(
        name="gallery", path_prefix="/images", origin_url="https://gallery.test"
    )
    classifier = RequestClassifier(RouteTable([images]))
    assert classifier.classify(_request("/images/cat.png")) is None


def test_asset_attributed_by_referer(classifier):
    decision = classifier.classify(
        _request("/_next/static/chunks/main.js", referer=SIMULATOR_PAGE)
    )
    assert decision.kind is RouteKind.ASSET
    assert decision.fragment.name == "simulator"
    assert decision.upstream_path == "/_next/static/chunks/main.js"


def test_asset_keeps_raw_query_string(classifier):
    decision = classifier.classify(
        _request(
            "/_next/image",
            referer=AUTHOR_PAGE,
            query={"url": "/a.png", "w": "640"},
            query_string="url=%2Fa.png&w=640&q=75",
        )
    )
    assert decision.kind is RouteKind.ASSET
    assert decision.fragment.name == "author"
    assert decision.query_string == "url=%2Fa.png&w=640&q=75"


@pytest.mark.parametrize(
    "referer", [None, "", "https://www.example.com/", "https://www.example.com/pricing"]
)
def test_unattributed_asset_declines(classifier, referer):
    assert classifier.classify(_request("/_next/static/x.js", referer=referer)) is None


def test_non_priority_fragment_page(classifier):
    decision = classifier.classify(_request("/simulator/page"))
    assert decision.fragment.name == "simulator"
    assert decision.upstream_path == "/page"


def test_keep_transform_page(classifier):
    decision = classifier.classify(_request("/onboarding/step-2"))
    assert decision.fragment.name == "onboarding"
    assert decision.upstream_path == "/onboarding/step-2"


def test_prefix_must_match_whole_segment(classifier):
    assert classifier.classify(_request("/simulators")) is None


def test_adopted_route_with_fragment_referer(classifier):
    decision = classifier.classify(_request("/work", referer=AUTHOR_PAGE))
    assert decision.kind is RouteKind.PAGE
    assert decision.fragment.name == "author"
    assert decision.upstream_path == "/work"


def test_adopted_subroute_with_fragment_referer(classifier):
    decision = classifier.classify(_request("/work/project-1", referer=AUTHOR_PAGE))
    assert decision.upstream_path == "/work/project-1"


@pytest.mark.parametrize("referer", [None, SIMULATOR_PAGE, "https://www.example.com/"])
def test_adopted_route_needs_owner_referer(classifier, referer):
    assert classifier.classify(_request("/work", referer=referer)) is None


def test_unknown_path_declines(classifier):
    assert classifier.classify(_request("/unknown/path")) is None
    assert classifier.classify(_request("/")) is None


def test_page_query_is_forwarded(classifier):
    decision = classifier.classify(
        _request("/simulator/page", query={"plan": "b"}, query_string="plan=a&plan=b")
    )
    assert decision.upstream_query == {"plan": "b"}
    assert decision.upstream_url == "https://simulator.example.com/page"


def test_classification_is_stable(classifier):
    request = _request("/_next/static/x.js", referer=AUTHOR_PAGE)
    assert classifier.classify(request) == classifier.classify(request)
