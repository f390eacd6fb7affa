"""Resolution of a stylesheet's ``@import`` graph into font records.

A :class:`Resolver` is one crawl session. It owns the resolution cache, which
lives as long as the session. Each entry stylesheet is resolved with its own
import counter, shared by every branch of that stylesheet's import graph, so
the import ceiling bounds the whole graph rather than a single path.

Imports of a stylesheet are fetched concurrently as asyncio tasks. Their
results are merged in declaration order, regardless of completion order.
"""

import asyncio
import collections
import copy
import dataclasses
import inspect
import logging
import os
from typing import Any, Awaitable, Callable, Iterable

from fontspider import css_ast, url_utils
from fontspider.config import CrawlOptions
from fontspider.errors import (
    FetchError,
    ImportLimitError,
    ResolutionError,
    RuleExtractionError,
)
from fontspider.extractor import FontRuleExtractor
from fontspider.models import (
    FontFaceRecord,
    FontUsageRecord,
    Record,
    RuleKind,
    Stylesheet,
)
from fontspider.storage import Fetcher, StorageFetcher

logger = logging.getLogger(__name__)

RECORD_TYPES = (FontFaceRecord, FontUsageRecord)


class ImportCounter:
    """Number of ``@import`` rules followed from one entry stylesheet."""

    def __init__(self, limit: int) -> None:
        self.limit = limit
        self.count = 0

    def increment(self) -> bool:
        """Count one more import and check it is within the limit."""
        self.count += 1
        return self.count <= self.limit


class ResolutionCache:
    """Results of resolved stylesheets, keyed by absolute path.

    Entries hold the shared future of a resolution, registered before the
    resolution starts, so concurrent requests for the same stylesheet share a
    single fetch and parse. The cache also records which stylesheet waits on
    which, so that an import cycle never awaits its own pending result.
    """

    def __init__(self) -> None:
        self._entries: dict[str, asyncio.Future] = {}
        self._waits: collections.defaultdict[str, set[str]] = collections.defaultdict(
            set
        )

    def __contains__(self, file: str) -> bool:
        return file in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, file: str) -> asyncio.Future | None:
        return self._entries.get(file)

    def register(self, file: str, future: asyncio.Future) -> None:
        self._entries.setdefault(file, future)

    def discard(self, file: str) -> None:
        """Forget the entry of ``file`` and what it was waiting on."""
        self._entries.pop(file, None)
        self._waits.pop(file, None)

    def add_wait(self, waiter: str, target: str) -> None:
        """Record that ``waiter`` awaits the result of ``target``."""
        self._waits[waiter].add(target)

    def would_deadlock(self, waiter: str, target: str) -> bool:
        """Check if ``target`` is, directly or transitively, waiting on ``waiter``."""
        seen = set()
        pending = [target]
        while pending:
            file = pending.pop()
            if file == waiter:
                return True
            if file in seen:
                continue
            seen.add(file)
            pending.extend(self._waits.get(file, ()))
        return False

    def clear(self) -> None:
        self._entries.clear()
        self._waits.clear()


@dataclasses.dataclass
class ResolutionContext:
    """State shared by every branch of one entry stylesheet's resolution."""

    options: CrawlOptions
    fetcher: Fetcher
    counter: ImportCounter
    url_filter: url_utils.UrlFilter
    url_mapper: url_utils.UrlFilter
    cache: ResolutionCache | None = None


class Resolver:
    """Crawl session resolving entry stylesheets into font records.

    Args:
        options: Crawl options. Defaults to ``CrawlOptions()``.
        fetcher: Loader for imported stylesheets. Defaults to
            :class:`~fontspider.storage.StorageFetcher`.

    Raises:
        ValueError: If an ignore pattern or map rule is invalid.

    Example:
        >>> resolver = Resolver(CrawlOptions(ignore=[r"\\.eot$"]))
        >>> records = asyncio.run(resolver.resolve_url("css/site.css"))
    """

    def __init__(
        self,
        options: CrawlOptions | None = None,
        fetcher: Fetcher | None = None,
    ) -> None:
        self.options = options or CrawlOptions()
        self.fetcher = fetcher or StorageFetcher()
        self.cache = ResolutionCache()
        self._url_filter = url_utils.make_filter(self.options.ignore)
        self._url_mapper = url_utils.make_mapper(self.options.map)

    def new_context(self) -> ResolutionContext:
        """Create the context for resolving one entry stylesheet."""
        return ResolutionContext(
            options=self.options,
            fetcher=self.fetcher,
            counter=ImportCounter(self.options.max_imports),
            url_filter=self._url_filter,
            url_mapper=self._url_mapper,
            cache=self.cache if self.options.cache else None,
        )

    async def resolve(self, resource: Stylesheet | Awaitable[Stylesheet]) -> list[Record]:
        """Resolve an entry stylesheet into its ordered font records.

        Args:
            resource: Stylesheet, or an awaitable producing one.

        Returns:
            Font-face and font-usage records in declaration order, imported
            stylesheets expanded in place.

        Raises:
            ResolutionError: If the stylesheet or one of its imports fails.
        """
        if inspect.isawaitable(resource):
            resource = await resource
        file = absolute_path(resource.file)
        if file != resource.file:
            resource = dataclasses.replace(resource, file=file)
        return await resolve_stylesheet(resource, self.new_context())

    async def resolve_url(self, url: str) -> list[Record]:
        """Fetch and resolve the entry stylesheet at ``url``."""
        return await self.resolve(self.fetcher.fetch(absolute_path(url), self.options))


def absolute_path(file: str) -> str:
    """Make a local stylesheet path absolute against the working directory."""
    if url_utils.is_remote(file) or url_utils.has_scheme(file):
        return file
    return url_utils.normalize(url_utils.resolve(os.getcwd(), file)) or file


async def resolve(
    resource: Stylesheet | Awaitable[Stylesheet],
    options: CrawlOptions | None = None,
    fetcher: Fetcher | None = None,
) -> list[Record]:
    """Resolve one stylesheet in a fresh crawl session."""
    return await Resolver(options, fetcher).resolve(resource)


def crawl(
    url: str,
    options: CrawlOptions | None = None,
    fetcher: Fetcher | None = None,
) -> list[Record]:
    """Fetch and resolve the stylesheet at ``url`` synchronously."""
    return asyncio.run(Resolver(options, fetcher).resolve_url(url))


async def resolve_stylesheet(
    resource: Stylesheet,
    context: ResolutionContext,
    parent: str | None = None,
) -> list[Record]:
    """Resolve a stylesheet, going through the cache when enabled.

    Args:
        resource: Stylesheet to resolve.
        context: Resolution context of the entry stylesheet.
        parent: Stylesheet importing this one, if any.
    """
    return await _resolve_cached(
        resource.file, lambda: _resolve_content(resource, context), context, parent
    )


async def _resolve_cached(
    file: str,
    load: Callable[[], Awaitable[list[Record]]],
    context: ResolutionContext,
    parent: str | None,
) -> list[Record]:
    cache = context.cache
    if cache is None:
        return await load()

    cached = cache.get(file)
    if cached is not None and not _is_reusable(cached):
        logger.debug(f"Dropping stale cache entry for {file}")
        cache.discard(file)
        cached = None

    if cached is not None:
        if parent is not None and not cached.done() and cache.would_deadlock(parent, file):
            logger.debug(f"Import cycle through {file}, bypassing cache")
            cache.add_wait(parent, file)
            return await load()
        logger.debug(f"Cache hit for {file}")
    else:
        logger.debug(f"Cache miss for {file}")
        cached = asyncio.ensure_future(load())
        cached.add_done_callback(_consume_outcome)
        cache.register(file, cached)

    if parent is not None:
        cache.add_wait(parent, file)
    # Each caller gets its own copy of the shared result.
    return copy.deepcopy(await asyncio.shield(cached))


async def _resolve_content(resource: Stylesheet, context: ResolutionContext) -> list[Record]:
    rules = css_ast.parse_stylesheet(
        resource.content, resource.file, strict=context.options.strict
    )
    return await resolve_rules(rules, resource.file, context)


async def resolve_rules(
    rules: Iterable[Any], file: str, context: ResolutionContext
) -> list[Record]:
    """Dispatch the rules of a stylesheet and merge their records.

    ``@media`` rules are transparent: their nested rules are resolved with the
    same file and context.

    Raises:
        ResolutionError: If an import or nested rule list fails. Failures of a
            single font-face or style rule are logged and the rule is skipped.
    """
    extractor = FontRuleExtractor(file, context.url_filter, context.url_mapper)
    results: list[Any] = []
    tasks: list[asyncio.Future] = []

    try:
        for rule in rules:
            kind = css_ast.rule_kind(rule)
            if kind is RuleKind.OTHER:
                continue
            try:
                if kind is RuleKind.IMPORT:
                    item = _dispatch_import(rule, extractor.base, file, context)
                elif kind is RuleKind.MEDIA:
                    item = asyncio.ensure_future(
                        resolve_rules(css_ast.child_rules(rule), file, context)
                    )
                elif kind is RuleKind.FONT_FACE:
                    item = extractor.font_face(rule)
                else:
                    item = extractor.style(rule)
            except ResolutionError:
                raise
            except Exception as e:
                error = e if isinstance(e, RuleExtractionError) else RuleExtractionError(str(e))
                logger.warning(f"Skipping {kind.value} rule in {file}: {error}")
                logger.debug(f"Rule extraction failure in {file}", exc_info=e)
                continue

            if item is None:
                continue
            if isinstance(item, asyncio.Future):
                tasks.append(item)
            results.append(item)

        if tasks:
            await asyncio.gather(*tasks)
    except BaseException:
        _discard(tasks)
        raise

    return _merge(results)


def _dispatch_import(
    rule: Any, base: str, file: str, context: ResolutionContext
) -> asyncio.Future | None:
    href = url_utils.unquote(rule.href)
    if not href:
        return None

    url = url_utils.apply_all(
        [url_utils.resolve(base, href)],
        context.url_filter,
        context.url_mapper,
        url_utils.normalize,
    )
    if not url:
        return None

    if not context.counter.increment():
        raise ImportLimitError(
            "the number of files imported exceeds the maximum limit "
            f"({context.counter.limit})",
            (file,),
        )

    logger.debug(f"Following import of {url[0]} from {file}")
    return asyncio.ensure_future(_resolve_import(url[0], file, context))


async def _resolve_import(url: str, file: str, context: ResolutionContext) -> list[Record]:
    async def load() -> list[Record]:
        resource = await _fetch(url, context)
        return await _resolve_content(resource, context)

    try:
        return await _resolve_cached(url, load, context, parent=file)
    except ResolutionError as e:
        raise e.wrap(file) from e


async def _fetch(url: str, context: ResolutionContext) -> Stylesheet:
    try:
        return await context.fetcher.fetch(url, context.options)
    except ResolutionError:
        raise
    except Exception as e:
        raise FetchError(f'cannot read "{url}": {e}') from e


def _merge(results: list[Any]) -> list[Record]:
    records: list[Record] = []
    for item in results:
        if isinstance(item, asyncio.Future):
            item = item.result()
        if isinstance(item, list):
            records.extend(record for record in item if isinstance(record, RECORD_TYPES))
        elif isinstance(item, RECORD_TYPES):
            records.append(item)
    return records


def _is_reusable(future: asyncio.Future) -> bool:
    # Entries left pending or cancelled by an earlier event loop never settle.
    if future.cancelled():
        return False
    return future.done() or future.get_loop() is asyncio.get_running_loop()


def _consume_outcome(future: asyncio.Future) -> None:
    # Outcomes of discarded siblings are never observed.
    if not future.cancelled():
        future.exception()


def _discard(tasks: list[asyncio.Future]) -> None:
    for task in tasks:
        if task.done():
            _consume_outcome(task)
        else:
            task.add_done_callback(_consume_outcome)
