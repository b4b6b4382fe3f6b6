"""
Link canonicalization and the same-domain, document-only filter.

Everything here is pure: no I/O, no shared state.
"""
from __future__ import annotations

import re
from urllib.parse import urldefrag, urljoin, urlsplit, urlunsplit

from shotcrawler.errors import InvalidSeedUrl

# Paths that look like a rendered document rather than an asset or an API
DOCUMENT_SUFFIX = re.compile(r"\.(html?|php|aspx?|jsp)$", re.IGNORECASE)

HTTP_SCHEMES = ("http", "https")
DEFAULT_PORTS = {"http": 80, "https": 443}


def _remove_dot_segments(path: str) -> str:
    """Collapse ``.`` and ``..`` segments in an absolute path."""
    output: list[str] = []
    for segment in path.split("/"):
        if segment == "..":
            if len(output) > 1:
                output.pop()
        elif segment != ".":
            output.append(segment)
    if path.endswith(("/.", "/..")):
        output.append("")
    return "/".join(output) or "/"


def normalize_url(raw: str, base: str) -> str | None:
    """
    Resolve ``raw`` against ``base`` and drop the fragment.

    HTTP(S) results get a lowercase scheme and host, no default port, and
    a path with dot segments collapsed (``/`` when empty). Anything
    malformed returns ``None`` so callers can drop it silently.
    """
    if not raw or not raw.strip():
        return None

    try:
        joined, _ = urldefrag(urljoin(base, raw.strip()))
        parts = urlsplit(joined)
        scheme = parts.scheme.lower()
        if scheme not in HTTP_SCHEMES:
            return joined or None

        # Raises ValueError on a non-numeric or out-of-range port
        port = parts.port
        if not parts.hostname:
            return None

        userinfo, _, hostport = parts.netloc.rpartition("@")
        hostport = hostport.lower()
        if port == DEFAULT_PORTS[scheme]:
            hostport = hostport.rpartition(":")[0]
        netloc = f"{userinfo}@{hostport}" if userinfo else hostport
        path = _remove_dot_segments(parts.path or "/")
        return urlunsplit((scheme, netloc, path, parts.query, ""))
    except ValueError:
        return None


def is_admissible(url: str, domain: str) -> bool:
    """True for same-host URLs whose path is a directory or a document."""
    try:
        parts = urlsplit(url)
        hostname = parts.hostname
    except ValueError:
        return False

    path = parts.path or "/"
    if not (path.endswith("/") or DOCUMENT_SUFFIX.search(path)):
        return False
    return hostname is not None and hostname == domain.lower()


def parse_seed(seed_url: str) -> tuple[str, str]:
    """
    Validate a crawl seed.

    Returns ``(canonical_url, hostname)``; raises ``InvalidSeedUrl`` unless
    the seed is an absolute HTTP(S) URL with a host.
    """
    candidate = (seed_url or "").strip()
    try:
        parts = urlsplit(candidate)
        hostname = parts.hostname
        parts.port
    except ValueError as exc:
        raise InvalidSeedUrl(f"{seed_url!r} is not a valid URL ({exc})") from exc

    if parts.scheme.lower() not in HTTP_SCHEMES or not hostname:
        raise InvalidSeedUrl(
            f"{seed_url!r} is not a valid URL; it must start with http:// or https://"
        )

    canonical = normalize_url(candidate, candidate)
    if canonical is None:
        raise InvalidSeedUrl(f"{seed_url!r} is not a valid URL")
    return canonical, hostname
