import json

from pipelines.html_extract import extract_page, json_ld_dates, normalize_date
from conftest import article_html


def test_extracts_title_and_article_text():
    html = article_html("Nieuwe vestiging", "We openen een kantoor in Utrecht.")
    page = extract_page("https://site.test/nieuws/vestiging", html)

    assert page.title == "Nieuwe vestiging"
    assert "kantoor in Utrecht" in page.content
    assert "Menu" not in page.content
    assert "Footer" not in page.content
    assert page.category == "nieuws"


def test_og_title_and_url_fallbacks():
    html = '<html><head><meta property="og:title" content="OG titel"></head><body><main>Tekst</main></body></html>'
    assert extract_page("https://site.test/x", html).title == "OG titel"

    bare = "<html><body><main>Tekst</main></body></html>"
    assert extract_page("https://site.test/x", bare).title == "https://site.test/x"


def test_scripts_are_not_content():
    html = "<html><body><main><script>var secret = 1;</script><p>Zichtbaar</p></main></body></html>"
    page = extract_page("https://site.test/p", html)
    assert page.content == "Zichtbaar"


def test_json_ld_graph_dates_and_malformed_blocks():
    graph = {
        "@context": "https://schema.org",
        "@graph": [
            {"@type": "Organization", "name": "Acme"},
            {"@type": "NewsArticle", "datePublished": "2024-03-01T09:30:00+01:00",
             "dateModified": "2024-03-02T10:00:00Z"},
        ],
    }
    html = (
        '<html><head><title>T</title>'
        '<script type="application/ld+json">{not json</script>'
        f'<script type="application/ld+json">{json.dumps(graph)}</script>'
        '</head><body><article>Inhoud</article></body></html>'
    )
    page = extract_page("https://site.test/nieuws/a", html)

    assert len(page.structured_metadata) == 1
    assert page.published_at == "2024-03-01 08:30:00"
    assert page.modified_at == "2024-03-02 10:00:00"


def test_meta_and_lastmod_date_fallbacks():
    meta = ('<html><head><meta property="article:published_time" content="2023-12-24">'
            '</head><body><article>X</article></body></html>')
    assert extract_page("https://site.test/a", meta).published_at == "2023-12-24 00:00:00"

    plain = "<html><body><article>X</article></body></html>"
    page = extract_page("https://site.test/a", plain, lastmod="2022-01-05T12:00:00Z")
    assert page.published_at == "2022-01-05 12:00:00"
    assert page.modified_at is None


def test_typed_nodes_win_over_untyped():
    blocks = [{"datePublished": "2020-01-01"}, {"@type": "BlogPosting", "datePublished": "2021-06-01"}]
    assert json_ld_dates(blocks)["published"] == "2021-06-01"


def test_normalize_date_rejects_garbage():
    assert normalize_date("gisteren") is None
    assert normalize_date("") is None
