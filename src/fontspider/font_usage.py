"""Matching of declared fonts against the rules that use them.

The subsetting stage needs, for every ``@font-face`` declaration, the set of
characters rendered with it. Declarations and usages are joined on their font
identity.
"""

import dataclasses
import logging
from typing import Iterable

from fontspider.models import FontFaceRecord, FontUsageRecord, Record

logger = logging.getLogger(__name__)


@dataclasses.dataclass
class FontMatch:
    """A declared font together with where and how it is used.

    Attributes:
        face: The ``@font-face`` declaration.
        selectors: Selectors of the style rules using the font.
        chars: Characters rendered with the font, in order of first use.
    """

    face: FontFaceRecord
    selectors: list[str] = dataclasses.field(default_factory=list)
    chars: list[str] = dataclasses.field(default_factory=list)

    def unicodes(self) -> list[int]:
        """Return the code points of the used characters, sorted."""
        return _chars_to_unicode_list(self.chars)


def match_font_usage(records: Iterable[Record]) -> list[FontMatch]:
    """Join font-face declarations with the usages referencing them.

    A usage references a declaration when the declaration's identity is one of
    the usage's identities. Each declaration yields one match, in declaration
    order; declarations sharing an identity are matched independently.

    Args:
        records: Records produced by the resolver.

    Returns:
        One match per font-face record.

    Example:
        >>> matches = match_font_usage(records)
        >>> {m.face.family: "".join(m.chars) for m in matches}
        {'Foo': 'Hi'}
    """
    records = list(records)
    faces = [record for record in records if isinstance(record, FontFaceRecord)]
    usages = [record for record in records if isinstance(record, FontUsageRecord)]

    matches = []
    for face in faces:
        match = FontMatch(face=face)
        for usage in usages:
            if face.id not in usage.ids:
                continue
            _extend_unique(match.selectors, usage.selectors)
            _extend_unique(match.chars, _filter_control_chars(usage.chars))
        matches.append(match)

    logger.debug(
        f"Matched {len(faces)} font face(s) against {len(usages)} usage(s), "
        f"{sum(1 for match in matches if match.selectors)} in use"
    )
    return matches


def _extend_unique(target: list[str], values: Iterable[str]) -> None:
    seen = set(target)
    for value in values:
        if value not in seen:
            seen.add(value)
            target.append(value)


def _filter_control_chars(chars: Iterable[str]) -> list[str]:
    """Drop control characters (C0, DEL, C1), which are never rendered."""
    return [
        char
        for char in chars
        if ord(char) >= 32 and not (127 <= ord(char) <= 159)
    ]


def _chars_to_unicode_list(chars: Iterable[str]) -> list[int]:
    """Convert characters to sorted, unique Unicode code points.

    Note:
        - Handles multi-codepoint characters (emoji, combining marks)
    """
    codepoints = set()

    for char in chars:
        for code_point in char:
            codepoints.add(ord(code_point))

    return sorted(codepoints)
