from unittest.mock import MagicMock

import pytest
import requests

from pipelines.fetcher import HttpFetcher, should_verify_tls


def _session(status=200, text="<html></html>", url="https://site.test/final"):
    session = MagicMock()
    response = MagicMock(status_code=status, text=text, url=url)
    session.get.return_value = response
    return session


@pytest.mark.parametrize("url,verify,expected", [
    ("https://site.test/x", None, False),
    ("https://intranet.local/x", None, False),
    ("http://localhost:8080/x", None, False),
    ("https://example.com/x", None, True),
    ("https://site.test/x", True, True),
    ("https://example.com/x", False, False),
])
def test_should_verify_tls(url, verify, expected):
    assert should_verify_tls(url, verify) is expected


def test_fetch_success():
    session = _session()
    fetcher = HttpFetcher(timeout=5, user_agent="agent/1", session=session)

    result = fetcher.fetch("https://example.com/page", headers={"Accept": "text/html"})

    assert result.ok
    assert result.content == "<html></html>"
    assert result.final_url == "https://site.test/final"
    _, kwargs = session.get.call_args
    assert kwargs["timeout"] == 5
    assert kwargs["verify"] is True
    assert kwargs["allow_redirects"] is True
    session.headers.update.assert_called_with({"User-Agent": "agent/1"})


def test_http_errors_are_soft_failures():
    result = HttpFetcher(session=_session(status=503)).fetch("https://example.com/page")
    assert not result.ok
    assert result.status_code == 503
    assert result.error == "HTTP 503"


def test_transport_errors_are_soft_failures():
    session = _session()
    session.get.side_effect = requests.Timeout("slow")
    result = HttpFetcher(session=session).fetch("https://example.com/page")
    assert not result.ok
    assert result.status_code == 0
    assert "slow" in result.error
