from unittest.mock import MagicMock

from fragment_gateway.utils import loggable_url
from fragment_gateway.utils.traced_requests import traced_request


def test_loggable_url_drops_query_and_fragment():
    assert (
        loggable_url("https://a.test/_next/image?url=%2Fa.png&w=64#x")
        == "https://a.test/_next/image"
    )


def test_traced_request_sets_attributes():
    tracer = MagicMock()
    span = tracer.start_as_current_span.return_value.__enter__.return_value

    with traced_request(
        tracer,
        operation="fragment_page",
        fragment="author",
        target_url="https://author.test/about?token=secret",
        start_message="[Fetch] start",
        extra_attrs={"proxy.image_optimization": False},
    ) as yielded:
        assert yielded is span

    tracer.start_as_current_span.assert_called_once_with("fragment_page")
    span.set_attribute.assert_any_call("fragment.name", "author")
    span.set_attribute.assert_any_call("proxy.target_url", "https://author.test/about")
    span.set_attribute.assert_any_call("proxy.image_optimization", False)
