from logging import getLogger

from fontspider.config import CrawlOptions
from fontspider.errors import (
    FetchError,
    ImportLimitError,
    ParseError,
    ResolutionError,
    RuleExtractionError,
)
from fontspider.font_identity import font_id
from fontspider.font_usage import FontMatch, match_font_usage
from fontspider.models import (
    DescriptorSet,
    FontFaceRecord,
    FontUsageRecord,
    Record,
    Stylesheet,
)
from fontspider.resolver import Resolver, crawl, resolve
from fontspider.storage import Fetcher, StorageFetcher
from fontspider.version import __version__ as __version__

logger = getLogger(__name__)

__all__ = [
    "CrawlOptions",
    "DescriptorSet",
    "FetchError",
    "Fetcher",
    "FontFaceRecord",
    "FontMatch",
    "FontUsageRecord",
    "ImportLimitError",
    "ParseError",
    "Record",
    "ResolutionError",
    "Resolver",
    "RuleExtractionError",
    "StorageFetcher",
    "Stylesheet",
    "crawl",
    "font_id",
    "match_font_usage",
    "resolve",
]
