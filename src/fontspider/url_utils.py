"""URL helpers for stylesheet and font source references.

All functions are pure. URLs reached through ``@import`` rules or ``src``
descriptors pass through :func:`resolve`, then the ignore filter, then the map
rules, then :func:`normalize`.
"""

import logging
import os
import posixpath
import re
import urllib.parse
from typing import Callable, Iterable, Sequence

logger = logging.getLogger(__name__)

REMOTE_SCHEMES = ("http", "https")

_QUOTE_PAIRS = ('"', "'")
_URL_PATTERN = re.compile(r"url\(\s*(['\"]?)(.*?)\1\s*\)", re.IGNORECASE)
_ESCAPE_PATTERN = re.compile(r"\\(?:([0-9a-fA-F]{1,6})[ \t\n\r\f]?|(.))", re.DOTALL)

UrlFilter = Callable[[str | None], str | None]


def unquote(value: str | None) -> str:
    """Strip whitespace and one pair of matching surrounding quotes.

    Example:
        >>> unquote(' "Noto Sans" ')
        'Noto Sans'
    """
    if not value:
        return ""
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in _QUOTE_PAIRS:
        value = value[1:-1].strip()
    return value


def split_commas(value: str | None) -> list[str]:
    """Split a comma-separated list, trimming items and dropping empty ones.

    Commas inside quotes are kept, so ``'"A, B", C'`` yields two items.
    """
    if not value:
        return []
    items = []
    current: list[str] = []
    quote = None
    for char in value:
        if quote:
            if char == quote:
                quote = None
        elif char in _QUOTE_PAIRS:
            quote = char
        elif char == ",":
            items.append("".join(current))
            current = []
            continue
        current.append(char)
    items.append("".join(current))
    return [item.strip() for item in items if item.strip()]


def decode_escapes(value: str) -> str:
    """Decode CSS backslash escapes, e.g. ``\\e600`` to U+E600."""

    def replace(match: re.Match) -> str:
        hex_digits, literal = match.groups()
        if hex_digits is None:
            return literal
        codepoint = int(hex_digits, 16)
        if codepoint == 0 or codepoint > 0x10FFFF or 0xD800 <= codepoint <= 0xDFFF:
            return "\ufffd"
        return chr(codepoint)

    return _ESCAPE_PATTERN.sub(replace, value)


def urls_from_src(value: str | None) -> list[str]:
    """Extract ``url()`` references from a ``src`` descriptor.

    ``local()`` sources and ``data:`` URIs are skipped since they have no font
    file behind them.

    Example:
        >>> urls_from_src('local("Foo"), url(foo.woff2) format("woff2")')
        ['foo.woff2']
    """
    if not value:
        return []
    urls = []
    for match in _URL_PATTERN.finditer(value):
        url = match.group(2).strip()
        if url and not url.lower().startswith("data:"):
            urls.append(url)
    return urls


def is_remote(url: str | None) -> bool:
    """Check if the URL is fetched over HTTP(S)."""
    if not url:
        return False
    if url.startswith("//"):
        return True
    return urllib.parse.urlparse(url).scheme.lower() in REMOTE_SCHEMES


def has_scheme(url: str) -> bool:
    """Check if the URL carries a scheme other than a Windows drive letter."""
    scheme = urllib.parse.urlparse(url).scheme
    return len(scheme) > 1


def dirname(file: str) -> str:
    """Return the directory of a stylesheet path or URL."""
    if is_remote(file):
        parsed = urllib.parse.urlparse(file)
        path = posixpath.dirname(parsed.path) or "/"
        return urllib.parse.urlunparse(parsed._replace(path=path, query="", fragment=""))
    return os.path.dirname(file)


def resolve(base: str, url: str) -> str:
    """Resolve ``url`` against the directory ``base``.

    Remote bases follow RFC 3986 reference resolution; local bases use file
    system path joining. URLs that already carry a scheme are returned as-is.

    Args:
        base: Directory of the referencing stylesheet.
        url: Possibly relative reference.

    Returns:
        Absolute path or URL.
    """
    url = url.strip()
    if not url:
        return url
    if is_remote(base):
        return urllib.parse.urljoin(base.rstrip("/") + "/", url)
    if url.startswith("//") or has_scheme(url):
        return url
    return os.path.join(base, url)


def normalize(url: str | None) -> str | None:
    """Return the canonical form of a path or URL.

    Remote URLs lose their fragment and a trailing bare ``?``. Local paths lose
    query string and fragment (``font.eot?#iefix``) and are normalized.
    """
    if not url:
        return url
    if is_remote(url):
        url = url.split("#", 1)[0]
        return url[:-1] if url.endswith("?") else url
    if has_scheme(url):
        return url
    url = re.split(r"[?#]", url, maxsplit=1)[0]
    if not url:
        return url
    return os.path.normpath(url)


def make_filter(patterns: Sequence[str]) -> UrlFilter:
    """Create an ignore filter from regular expression sources.

    The returned function maps a URL to ``None`` when any pattern matches it,
    and returns it unchanged otherwise.

    Raises:
        ValueError: If a pattern is not a valid regular expression.
    """
    compiled = [_compile(pattern) for pattern in patterns]

    def apply(url: str | None) -> str | None:
        if not url:
            return None
        for pattern in compiled:
            if pattern.search(url):
                logger.debug(f"Ignoring {url} (matched {pattern.pattern!r})")
                return None
        return url

    return apply


def make_mapper(rules: Sequence[tuple[str, str]]) -> UrlFilter:
    """Create a URL rewriter from ordered ``(pattern, replacement)`` rules.

    The first rule whose pattern matches rewrites the URL; later rules are not
    consulted.

    Raises:
        ValueError: If a rule is malformed or its pattern is invalid.
    """
    compiled = []
    for rule in rules:
        try:
            pattern, replacement = rule
        except (TypeError, ValueError) as e:
            raise ValueError(
                f"Map rule {rule!r} must be a (pattern, replacement) pair"
            ) from e
        compiled.append((_compile(pattern), replacement))

    def apply(url: str | None) -> str | None:
        if not url:
            return None
        for pattern, replacement in compiled:
            if pattern.search(url):
                mapped = pattern.sub(replacement, url)
                logger.debug(f"Mapped {url} to {mapped}")
                return mapped
        return url

    return apply


def apply_all(urls: Iterable[str], *steps: UrlFilter) -> list[str]:
    """Run each URL through ``steps`` in order, dropping emptied results."""
    result = []
    for url in urls:
        value: str | None = url
        for step in steps:
            value = step(value)
        if value:
            result.append(value)
    return result


def _compile(pattern: str) -> re.Pattern:
    try:
        return re.compile(pattern)
    except (re.error, TypeError) as e:
        raise ValueError(f"Invalid URL pattern {pattern!r}: {e}") from e
