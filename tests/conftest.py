import asyncio
import os

from fontspider.errors import FetchError
from fontspider.models import Stylesheet


def get_fixture(name: str) -> str:
    """Get a fixture by name."""
    return os.path.join(os.path.dirname(__file__), "fixtures", name)


class MemoryFetcher:
    """Fetcher serving stylesheets from a dictionary.

    Args:
        files: Mapping from absolute path to stylesheet text.
        delays: Optional mapping from path to seconds to wait before serving.
    """

    def __init__(
        self, files: dict[str, str], delays: dict[str, float] | None = None
    ) -> None:
        self.files = files
        self.delays = delays or {}
        self.requests: list[str] = []
        self.completed: list[str] = []

    async def fetch(self, url, options) -> Stylesheet:
        self.requests.append(url)
        delay = self.delays.get(url, 0)
        if delay:
            await asyncio.sleep(delay)
        if url not in self.files:
            raise FetchError(f'cannot read "{url}": not found')
        self.completed.append(url)
        return Stylesheet(file=url, content=self.files[url])
