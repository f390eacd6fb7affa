"""Stylesheet fetching from the local file system and HTTP(S)."""

import asyncio
import codecs
import logging
import os
import urllib.parse
from typing import Protocol
from urllib.error import URLError
from urllib.request import Request, urlopen

from fontspider import url_utils
from fontspider.config import CrawlOptions
from fontspider.errors import FetchError
from fontspider.models import Stylesheet
from fontspider.timeout_utils import with_timeout
from fontspider.version import __version__

logger = logging.getLogger(__name__)

USER_AGENT = f"fontspider/{__version__}"


class Fetcher(Protocol):
    """Loads stylesheet resources for the resolver."""

    async def fetch(self, url: str, options: CrawlOptions) -> Stylesheet:
        """Fetch the stylesheet at ``url``.

        Raises:
            FetchError: If the stylesheet cannot be read.
        """
        ...


def get_storage(url: str) -> "_BaseStorage":
    """Return the storage able to read ``url``."""
    if url_utils.is_remote(url):
        return UrlStorage()
    return FileSystemStorage()


def decode_content(data: bytes, charset: str | None = None) -> str:
    """Decode stylesheet bytes, honoring a byte order mark."""
    if data.startswith(codecs.BOM_UTF8):
        return data[len(codecs.BOM_UTF8) :].decode("utf-8", errors="replace")
    try:
        return data.decode(charset or "utf-8", errors="replace")
    except LookupError:
        logger.debug(f"Unknown charset {charset!r}, decoding as UTF-8")
        return data.decode("utf-8", errors="replace")


class _BaseStorage:
    def get(self, url: str, timeout: float | None = None) -> str:
        raise NotImplementedError


class FileSystemStorage(_BaseStorage):
    def path(self, url: str) -> str:
        parsed = urllib.parse.urlparse(url)
        if parsed.scheme == "file":
            return urllib.parse.unquote(parsed.path)
        return url

    def get(self, url: str, timeout: float | None = None) -> str:
        with open(self.path(url), "rb") as f:
            return decode_content(f.read())


class UrlStorage(_BaseStorage):
    def get(self, url: str, timeout: float | None = None) -> str:
        if url.startswith("//"):
            url = "https:" + url
        request = Request(url, headers={"User-Agent": USER_AGENT})
        with urlopen(request, timeout=timeout or None) as response:
            charset = response.headers.get_content_charset()
            return decode_content(response.read(), charset)


class StorageFetcher:
    """Default fetcher reading local files and HTTP(S) URLs.

    Blocking reads run in a worker thread so that imports of one stylesheet
    are fetched concurrently.
    """

    async def fetch(self, url: str, options: CrawlOptions) -> Stylesheet:
        storage = get_storage(url)
        logger.debug(f"Fetching {url}")
        try:
            content = await with_timeout(
                asyncio.to_thread(storage.get, url, options.timeout),
                options.timeout,
                url,
            )
        except (OSError, URLError, ValueError) as e:
            raise FetchError(f'cannot read "{url}": {e}') from e
        file = url if url_utils.is_remote(url) else os.path.abspath(storage.path(url))
        return Stylesheet(file=file, content=content)
