import pytest

from fragment_gateway.routing.bootstrap import next_router_mount


def _apply(text, prefix="/simulator"):
    for transform in next_router_mount(prefix):
        text = transform.apply(text)
    return text


def test_plain_json_tree_is_mounted():
    assert _apply('{"c":["","page"]}') == '{"c":["","simulator","page"]}'


def test_root_tree_is_mounted():
    assert _apply('{"c":[""]}') == '{"c":["","simulator"]}'


def test_escaped_flight_data_is_mounted():
    text = r'self.__next_f.push([1,"0:{\"c\":[\"\",\"page\"]}"])'
    expected = r'self.__next_f.push([1,"0:{\"c\":[\"\",\"simulator\",\"page\"]}"])'
    assert _apply(text) == expected


def test_nested_prefix():
    assert _apply('{"c":["","x"]}', "/apps/sim") == '{"c":["","apps","sim","x"]}'


def test_mount_is_idempotent():
    once = _apply(r'{"c":["","page"]} {\"c\":[\"\",\"page\"]}')
    assert _apply(once) == once


def test_segment_named_like_prefix_is_not_confused():
    # A tree whose first segment merely starts with the mount name still gets mounted
    assert _apply('{"c":["","simulator-v2"]}') == '{"c":["","simulator","simulator-v2"]}'


def test_unrelated_text_untouched():
    text = '{"children":["","page"],"c":"x"}'
    assert _apply(text) == text


@pytest.mark.parametrize("prefix", ["/", "", '/a"b'])
def test_invalid_prefix(prefix):
    with pytest.raises(ValueError):
        next_router_mount(prefix)
