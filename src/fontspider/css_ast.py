"""Adapter over the cssutils rule tree."""

import logging
import re
from typing import Any, Iterable

import cssutils
import tinycss2
from cssutils import css

from fontspider.errors import ParseError
from fontspider.models import RuleKind

logger = logging.getLogger(__name__)

# Diagnostics are surfaced as ParseError instead.
cssutils.log.setLevel(logging.CRITICAL)

_CHARSET_PATTERN = re.compile(r"@charset\b[^;]*;", re.IGNORECASE)

_RULE_KINDS: dict[int, RuleKind] = {
    css.CSSRule.IMPORT_RULE: RuleKind.IMPORT,
    css.CSSRule.MEDIA_RULE: RuleKind.MEDIA,
    css.CSSRule.FONT_FACE_RULE: RuleKind.FONT_FACE,
    css.CSSRule.STYLE_RULE: RuleKind.STYLE,
}


def _no_fetch(url: str) -> None:
    # Imports are followed by the resolver, never by cssutils itself.
    return None


def strip_charset(content: str) -> str:
    """Remove ``@charset`` declarations."""
    return _CHARSET_PATTERN.sub("", content)


def parse_stylesheet(content: str, file: str, strict: bool = False) -> list[Any]:
    """Parse stylesheet text into its top-level rules.

    Args:
        content: Stylesheet text.
        file: Path or URL of the stylesheet, used in diagnostics.
        strict: Raise on any syntax error instead of recovering.

    Returns:
        List of cssutils rule objects.

    Raises:
        ParseError: If the text cannot be parsed.
    """
    parser = cssutils.CSSParser(
        raiseExceptions=strict,
        validate=False,
        fetcher=_no_fetch,
    )
    rules = []
    try:
        for segment in split_late_imports(strip_charset(content)):
            rules.extend(parser.parseString(segment).cssRules)
    except Exception as e:
        raise ParseError(f"{type(e).__name__}: {e}", (file,)) from e
    logger.debug(f"Parsed {len(rules)} rule(s) from {file}")
    return rules


def split_late_imports(content: str) -> list[str]:
    """Split stylesheet text so that every ``@import`` starts a segment.

    cssutils drops an ``@import`` that follows any other rule. Parsing each
    such import in a segment of its own keeps it in its source position.

    Example:
        >>> split_late_imports('.a { color: red } @import "b.css";')
        ['.a { color: red }', '@import "b.css";']
    """
    nodes = tinycss2.parse_stylesheet(content, skip_comments=True, skip_whitespace=True)
    segments: list[list[Any]] = [[]]
    seen_rule = False
    late = False
    for node in nodes:
        is_import = node.type == "at-rule" and node.lower_at_keyword == "import"
        if is_import and seen_rule:
            late = True
            segments.append([node])
            segments.append([])
            continue
        seen_rule = seen_rule or not is_import
        segments[-1].append(node)
    if not late:
        return [content]
    # Unparseable nodes are dropped, as cssutils would drop them.
    return [
        " ".join(node.serialize() for node in nodes if node.type != "error")
        for nodes in segments
        if nodes
    ]


def rule_kind(rule: Any) -> RuleKind:
    """Return the kind of a cssutils rule."""
    return _RULE_KINDS.get(getattr(rule, "type", None), RuleKind.OTHER)


def child_rules(rule: Any) -> Iterable[Any]:
    """Return the rules nested in a grouping rule."""
    return list(rule.cssRules)


def style_value(rule: Any, name: str) -> str:
    """Return the value of property ``name`` of a rule, or an empty string."""
    return rule.style.getPropertyValue(name)


def style_values(rule: Any, names: Iterable[str]) -> dict[str, str]:
    """Return the values of several properties, omitting missing ones."""
    values = {}
    for name in names:
        value = style_value(rule, name)
        if value:
            values[name] = value
    return values
