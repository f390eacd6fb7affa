"""Crawl options.

This module provides the configuration surface of the resolver: caching,
URL ignore and map rules, the import ceiling, and the fetch timeout.
"""

import dataclasses
import logging
import os

logger = logging.getLogger(__name__)

DEFAULT_MAX_IMPORTS = 15
DEFAULT_TIMEOUT = 30.0

_FALSE_VALUES = ("0", "false", "no", "off")


@dataclasses.dataclass
class CrawlOptions:
    """Options for one crawl session.

    The import ceiling bounds the total number of ``@import`` rules followed
    from one entry stylesheet, across all branches of its import graph. This
    stops both import cycles and import bombs.

    Environment variables:
        FONTSPIDER_CACHE: Set to 0, false, no or off to disable caching.
        FONTSPIDER_MAX_IMPORTS: Maximum number of followed imports (default: 15)
        FONTSPIDER_TIMEOUT: Fetch timeout in seconds (default: 30)

    Example:
        >>> options = CrawlOptions(
        ...     ignore=[r"\\.eot$"],
        ...     map=[(r"^https://cdn\\.example\\.com/", "/var/www/")],
        ...     max_imports=5,
        ... )
    """

    cache: bool = True
    ignore: list[str] = dataclasses.field(default_factory=list)
    map: list[tuple[str, str]] = dataclasses.field(default_factory=list)
    max_imports: int = DEFAULT_MAX_IMPORTS
    timeout: float = DEFAULT_TIMEOUT
    strict: bool = False

    @classmethod
    def default(cls) -> "CrawlOptions":
        """Create options from environment variables.

        Returns:
            CrawlOptions instance with values from environment variables,
            falling back to hardcoded defaults if not set.

        Raises:
            ValueError: If an environment variable holds an invalid number.

        Note:
            Negative numbers are treated as 0 with a warning logged.
        """

        def parse_env_number(key: str, default: float, kind: type) -> float:
            value_str = os.environ.get(key)
            if value_str is None:
                return default

            try:
                value = kind(value_str)
            except ValueError as e:
                raise ValueError(
                    f"Environment variable {key}={value_str!r} is not a valid "
                    f"{kind.__name__}"
                ) from e

            if value < 0:
                logger.warning(
                    f"Environment variable {key}={value} is negative, "
                    f"treating as 0."
                )
                return kind(0)

            return value

        cache_str = os.environ.get("FONTSPIDER_CACHE")
        return cls(
            cache=cache_str is None or cache_str.strip().lower() not in _FALSE_VALUES,
            max_imports=int(
                parse_env_number("FONTSPIDER_MAX_IMPORTS", DEFAULT_MAX_IMPORTS, int)
            ),
            timeout=parse_env_number("FONTSPIDER_TIMEOUT", DEFAULT_TIMEOUT, float),
        )

    def is_timeout_enabled(self) -> bool:
        """Check if fetches are bounded by a timeout."""
        return self.timeout > 0
