# ABOUTME: URL helpers for headline discovery
# ABOUTME: Resolves relative article links and compares registrable domains using the public suffix list

from urllib.parse import urljoin, urlsplit, urlunsplit

import tldextract

# Bundled public suffix snapshot, no network fetch or cache writes at runtime
_extract = tldextract.TLDExtract(cache_dir=None, suffix_list_urls=())


def registrable_domain(url: str) -> str:
    """Return the registrable domain of ``url``.

    ``https://www.bbc.co.uk/sport`` and ``https://news.bbc.co.uk/x`` both give
    ``bbc.co.uk``. Hosts without a public suffix (``localhost``, IP
    addresses) are returned as they are. An empty string means the URL has no
    host.
    """
    host = (urlsplit(url).hostname or "").lower().rstrip(".")
    if not host:
        return ""

    return _extract(host).top_domain_under_public_suffix or host.removeprefix("www.")


def resolve_article_url(source_url: str, href: str) -> str | None:
    """Resolve ``href`` against the source page, dropping fragments.

    Returns None for links that are not http(s) once resolved.
    """
    href = href.strip()
    if not href:
        return None

    parts = urlsplit(urljoin(source_url, href))
    if parts.scheme not in ("http", "https") or not parts.netloc:
        return None
    return urlunsplit((parts.scheme, parts.netloc, parts.path or "/", parts.query, ""))


def same_site(source_url: str, article_url: str) -> bool:
    """Whether both URLs share a registrable domain."""
    source_domain = registrable_domain(source_url)
    return bool(source_domain) and source_domain == registrable_domain(article_url)
