from pipelines.sitemap import SitemapReader, SitemapEntry, parse_sitemap_index, parse_urlset
from pipelines.sitemap import scan_urlset, scan_sitemap_index
from conftest import FakeFetcher

INDEX = "\ufeff" + """<?xml version="1.0" encoding="UTF-8"?>
<sitemapindex xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">
  <sitemap><loc>https://site.test/post-sitemap.xml</loc></sitemap>
  <sitemap><loc>https://site.test/page-sitemap.xml</loc></sitemap>
  <sitemap><loc>https://site.test/post-sitemap.xml</loc></sitemap>
</sitemapindex>"""

URLSET = """<?xml version="1.0" encoding="UTF-8"?>
<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">
  <url><loc>https://site.test/nieuws/a</loc><lastmod>2024-05-01T10:00:00+00:00</lastmod></url>
  <url><loc>https://site.test/nieuws/b</loc></url>
  <url><lastmod>2024-05-01</lastmod></url>
</urlset>"""


def test_parse_sitemap_index_dedupes_and_strips_bom():
    assert parse_sitemap_index(INDEX) == [
        "https://site.test/post-sitemap.xml",
        "https://site.test/page-sitemap.xml",
    ]


def test_parse_sitemap_index_recovers_from_truncated_body():
    truncated = (
        "<sitemapindex><sitemap><loc>https://site.test/post-sitemap2.xml</loc></sitemap>"
        "<sitemap><loc>https://site.test/page-sitemap.xml</loc></sitemap>"
    )
    assert parse_sitemap_index(truncated) == [
        "https://site.test/post-sitemap2.xml",
        "https://site.test/page-sitemap.xml",
    ]


def test_scan_sitemap_index_keeps_child_sitemaps_only():
    body = (
        "<sitemapindex><loc>https://site.test/post-sitemap2.xml</loc>"
        "<loc>https://site.test/feed.xml</loc>"
    )
    assert scan_sitemap_index(body) == ["https://site.test/post-sitemap2.xml"]


def test_parse_sitemap_index_of_garbage_is_empty():
    assert parse_sitemap_index("<html>not a sitemap</html>") == []
    assert parse_sitemap_index("") == []


def test_parse_urlset():
    assert parse_urlset(URLSET) == [
        SitemapEntry("https://site.test/nieuws/a", "2024-05-01T10:00:00+00:00"),
        SitemapEntry("https://site.test/nieuws/b", None),
    ]


def test_parse_urlset_recovers_from_truncated_body():
    broken = "<urlset><url><loc> https://site.test/x </loc><lastmod>2024-01-01</lastmod></url><url>"
    assert parse_urlset(broken) == [SitemapEntry("https://site.test/x", "2024-01-01")]


def test_reader_treats_http_errors_as_empty():
    fetcher = FakeFetcher({
        "https://site.test/sitemap_index.xml": INDEX,
        "https://site.test/post-sitemap.xml": (500, "oops"),
        "https://site.test/page-sitemap.xml": URLSET,
    })
    reader = SitemapReader(fetcher)

    assert len(reader.child_sitemaps("https://site.test/sitemap_index.xml")) == 2
    assert reader.page_entries("https://site.test/post-sitemap.xml") == []
    assert len(reader.page_entries("https://site.test/page-sitemap.xml")) == 2
    assert reader.child_sitemaps("https://site.test/missing.xml") == []


def test_parse_urlset_decodes_entities():
    body = (
        '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">'
        "<url><loc>https://site.test/zoek?a=1&amp;b=2</loc></url>"
        "</urlset>"
    )
    assert parse_urlset(body) == [SitemapEntry("https://site.test/zoek?a=1&b=2", None)]


def test_scan_urlset_decodes_entities():
    body = (
        "<urlset><url><loc>https://site.test/zoek?a=1&amp;b=2</loc>"
        "<lastmod> 2024-01-01 </lastmod></url><url><loc> </loc></url>"
    )
    assert scan_urlset(body) == [SitemapEntry("https://site.test/zoek?a=1&b=2", "2024-01-01")]
