"""URL identity helpers shared by the chunk store and the answer cache.

Two URLs that differ only in scheme, trailing slash, fragment or query
parameter order map to the same key.
"""

import re
from typing import Dict, Iterable, List
from urllib.parse import urlparse, parse_qsl, urlencode, quote


def sanitize_key(value: str) -> str:
    """Lower-case slug limited to ``[a-z0-9_-]``."""
    return re.sub(r"[^a-z0-9_\-]", "", (value or "").lower())


def _strip_fragment(value: str) -> str:
    return value.split("#", 1)[0]


def normalize_path(path: str) -> str:
    """``/a/b/`` -> ``/a/b``; the root path maps to an empty string."""
    path = "/" + (path or "").lstrip("/")
    path = path.rstrip("/")
    return path


def url_key(url: str) -> str:
    """``host/path?sorted-query`` or an empty string for relative input."""
    url = _strip_fragment((url or "").strip())
    if not url:
        return ""

    parsed = urlparse(url.rstrip("/"))
    if not parsed.netloc:
        return ""

    host = (parsed.hostname or "").lower()
    path = normalize_path(parsed.path)

    query = ""
    if parsed.query:
        pairs = sorted(parse_qsl(parsed.query, keep_blank_values=True))
        if pairs:
            query = "?" + urlencode(pairs, quote_via=quote)

    return host + path + query


def path_key(value: str) -> str:
    """Lower-cased normalized path of a URL or a bare path."""
    value = _strip_fragment((value or "").strip())
    if not value:
        return ""

    parsed = urlparse(value)
    path = parsed.path if (parsed.netloc or parsed.scheme) else value.split("?", 1)[0]
    return normalize_path(path).lower()


def extract_keys(url: str) -> List[str]:
    """Prefixed identity keys (``u|...`` and ``p|...``) for matching."""
    keys: List[str] = []

    ukey = url_key(url)
    if ukey:
        keys.append("u|" + ukey)

    pkey = path_key(url)
    if pkey:
        keys.append("p|" + pkey)

    return list(dict.fromkeys(keys))


def build_targets(urls: Iterable[str], paths: Iterable[str] = ()) -> Dict[str, bool]:
    targets: Dict[str, bool] = {}

    for url in urls:
        for key in extract_keys(str(url)):
            targets[key] = True

    for path in paths:
        pkey = path_key(str(path))
        if pkey:
            targets["p|" + pkey] = True

    return targets


def match_any(keys: Iterable[str], targets: Dict[str, bool]) -> bool:
    return any(key in targets for key in keys)


def guess_category(url: str) -> str:
    """First path segment of the URL as a category slug (``page`` if none)."""
    path = (urlparse(url).path or "/").strip("/")
    if not path:
        return "page"
    first = path.split("/")[0]
    return sanitize_key(first) or "page"
