import pytest

from indexer.url_keys import (
    build_targets, extract_keys, guess_category, match_any, path_key, sanitize_key, url_key,
)


class TestUrlKey:
    def test_sorts_query_and_strips_fragment(self):
        assert url_key("https://Site.test/Foo/?b=2&a=1#frag") == "site.test/Foo?a=1&b=2"

    def test_scheme_and_trailing_slash_are_ignored(self):
        assert url_key("http://site.test/a/") == url_key("https://site.test/a")

    def test_relative_input_has_no_key(self):
        assert url_key("/just/a/path") == ""
        assert url_key("") == ""


class TestPathKey:
    @pytest.mark.parametrize("value,expected", [
        ("https://site.test/Nieuws/Item/", "/nieuws/item"),
        ("/Nieuws/Item?x=1", "/nieuws/item"),
        ("nieuws/item#top", "/nieuws/item"),
        ("https://site.test/", ""),
        ("", ""),
    ])
    def test_normalization(self, value, expected):
        assert path_key(value) == expected


def test_extract_keys_for_page_and_root():
    assert extract_keys("https://site.test/a/b/") == ["u|site.test/a/b", "p|/a/b"]
    assert extract_keys("https://site.test/") == ["u|site.test"]


def test_build_targets_and_match():
    targets = build_targets(["https://site.test/a/"], ["/B/"])
    assert set(targets) == {"u|site.test/a", "p|/a", "p|/b"}

    assert match_any(extract_keys("https://other.test/b"), targets)
    assert match_any(extract_keys("http://site.test/a#x"), targets)
    assert not match_any(extract_keys("https://site.test/c"), targets)


def test_sanitize_and_guess_category():
    assert sanitize_key("Vacatures!") == "vacatures"
    assert guess_category("https://site.test/Vacatures/dev") == "vacatures"
    assert guess_category("https://site.test/") == "page"
