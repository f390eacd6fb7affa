"""Error taxonomy for stylesheet resolution.

Resolution-level failures (:class:`ParseError`, :class:`ImportLimitError`,
:class:`FetchError`) propagate to the caller. Every ancestor stylesheet adds
its own path to the error, so the caller sees a single error carrying the
chain from the deepest failing file up to the entry stylesheet.

:class:`RuleExtractionError` is confined to a single rule: the resolver logs it
and drops the rule.
"""

from typing import Iterable


class ResolutionError(Exception):
    """Base class for failures that abort resolution of a stylesheet.

    Attributes:
        reason: Description of the underlying failure.
        files: Stylesheets involved, deepest failing file first.
    """

    def __init__(self, reason: str, files: Iterable[str] = ()) -> None:
        self.reason = reason
        self.files = tuple(files)
        super().__init__(self._format())

    def _format(self) -> str:
        prefix = "".join(f'parse "{file}" failed: ' for file in reversed(self.files))
        return f"{prefix}{self.reason}"

    @property
    def file(self) -> str | None:
        """Stylesheet where the failure originated."""
        return self.files[0] if self.files else None

    def wrap(self, file: str) -> "ResolutionError":
        """Return a copy of this error with ``file`` added to the chain."""
        return type(self)(self.reason, self.files + (file,))


class ParseError(ResolutionError):
    """Stylesheet text could not be parsed."""


class ImportLimitError(ResolutionError):
    """The number of followed ``@import`` rules exceeded the configured limit."""


class FetchError(ResolutionError):
    """An imported stylesheet could not be fetched."""


class RuleExtractionError(Exception):
    """A single rule could not be converted into a record."""
