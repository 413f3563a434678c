"""URL normalisation and validation helpers shared by discovery, extraction and the cache.

:func:`normalize_url` is idempotent: ``normalize_url(normalize_url(u)) ==
normalize_url(u)`` for every input, because each step either removes
something or lower-cases something and never introduces new material that a
second pass would change.
"""

from __future__ import annotations

from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

# ---------------------------------------------------------------------------
# Tracking parameters
# ---------------------------------------------------------------------------

#: Exact query-parameter names stripped during normalisation.
TRACKING_PARAMS: frozenset[str] = frozenset(
    {
        "fbclid",
        "gclid",
        "msclkid",
        "igshid",
        "ref",
        "source",
        "_ga",
        "_gid",
        "_gac",
        "mc_cid",
        "mc_eid",
    }
)

#: Query-parameter prefixes stripped during normalisation.
TRACKING_PREFIXES: tuple[str, ...] = ("utm_",)

_ALLOWED_SCHEMES: frozenset[str] = frozenset({"http", "https"})


def _is_tracking_param(name: str) -> bool:
    lowered = name.lower()
    return lowered in TRACKING_PARAMS or lowered.startswith(TRACKING_PREFIXES)


def _strip_www(host: str) -> str:
    while host.startswith("www."):
        host = host[4:]
    return host


# ---------------------------------------------------------------------------
# Public helpers
# ---------------------------------------------------------------------------


def is_valid_url(url: str) -> bool:
    """Return ``True`` if ``url`` is an absolute http(s) URL with a host.

    Args:
        url: Candidate URL string.

    Returns:
        Whether the URL parses and names an http/https scheme and a host.
    """
    if not url or not isinstance(url, str):
        return False
    try:
        parts = urlsplit(url.strip())
        host = parts.hostname
    except ValueError:
        return False
    return parts.scheme.lower() in _ALLOWED_SCHEMES and bool(host)


def extract_domain(url: str) -> str:
    """Return the lower-cased host of ``url`` without leading ``www.`` labels.

    Args:
        url: An absolute URL.

    Returns:
        The bare host name, or an empty string if none can be parsed.
    """
    try:
        host = urlsplit(url.strip()).hostname or ""
    except ValueError:
        return ""
    return _strip_www(host.lower())


def normalize_domain(value: str) -> str:
    """Normalise a user-entered domain (``"https://www.Example.com/news"`` -> ``"example.com"``).

    Args:
        value: A bare domain or a URL.

    Returns:
        The lower-cased host without scheme, ``www.``, port or path.
    """
    candidate = value.strip()
    if "://" not in candidate:
        candidate = f"http://{candidate}"
    return extract_domain(candidate)


def normalize_url(url: str) -> str:
    """Return the canonical form of ``url`` used for storage and deduplication.

    Steps:

    1. Drop known tracking query parameters (``utm_*``, ``fbclid``, ...).
    2. Drop the fragment.
    3. Lower-case the scheme and host and strip every leading ``www.``.
    4. Collapse a bare root path ``"/"`` to the empty path.

    The query string is only re-encoded when a parameter was removed, so
    URLs without tracking parameters keep their original query verbatim.

    Args:
        url: An absolute URL.

    Returns:
        The normalised URL.  Unparseable input is returned stripped but
        otherwise unchanged.
    """
    raw = url.strip()
    try:
        parts = urlsplit(raw)
    except ValueError:
        return raw

    netloc = parts.netloc.lower()
    userinfo, at, hostport = netloc.rpartition("@")
    netloc = f"{userinfo}{at}{_strip_www(hostport)}"

    query = parts.query
    if query:
        pairs = parse_qsl(query, keep_blank_values=True)
        kept = [(k, v) for k, v in pairs if not _is_tracking_param(k)]
        if len(kept) != len(pairs):
            query = urlencode(kept)

    path = "" if parts.path == "/" else parts.path

    return urlunsplit((parts.scheme.lower(), netloc, path, query, ""))
