import copy

from render_api.app.services.safe_values import ContentKind, SafeValue
from render_api.app.services.sanitizer import is_url_like, sanitize


def _url(text: str) -> SafeValue:
    return SafeValue(text, ContentKind.URL)


def test_tags_url_like_strings_only():
    data = {"img": "https://x/y.png", "n": 3, "list": ["data:abc", "plain"]}

    result = sanitize(data)

    assert result == {
        "img": _url("https://x/y.png"),
        "n": 3,
        "list": [_url("data:abc"), "plain"],
    }


def test_is_idempotent():
    data = {"img": "https://x/y.png", "n": 3, "list": ["data:abc", "plain"]}

    once = sanitize(data)
    assert sanitize(once) == once


def test_does_not_mutate_input():
    data = {"a": {"b": ["file:///etc/hosts", {"c": "http://c"}]}}
    snapshot = copy.deepcopy(data)

    sanitize(data)

    assert data == snapshot


def test_preserves_keys_and_order():
    data = {"z": "1", "a": "http://a", "m": None}

    result = sanitize(data)

    assert list(result) == ["z", "a", "m"]
    assert result["m"] is None


def test_prefix_match_is_case_sensitive():
    assert is_url_like("https://x")
    assert is_url_like("file:///tmp/a.png")
    assert not is_url_like("HTTPS://x")
    assert not is_url_like(" https://x")
    assert not is_url_like("ftp://x")


def test_scalars_pass_through():
    assert sanitize("http://x") == _url("http://x")
    assert sanitize(1.5) == 1.5
    assert sanitize(None) is None
    assert sanitize(True) is True


def test_deep_nesting_does_not_hit_recursion_limit():
    depth = 50_000
    data = "http://deep"
    for _ in range(depth):
        data = [data]

    result = sanitize(data)

    for _ in range(depth):
        assert isinstance(result, list) and len(result) == 1
        result = result[0]
    assert result == _url("http://deep")
