"""Conversion of ``@font-face`` and style rules into font records."""

import logging
from typing import Any

from fontspider import css_ast, url_utils
from fontspider.errors import RuleExtractionError
from fontspider.font_identity import (
    DESCRIPTOR_PROPERTIES,
    descriptors_from_style,
    font_id,
)
from fontspider.models import FontFaceRecord, FontUsageRecord

logger = logging.getLogger(__name__)


class FontRuleExtractor:
    """Extract font records from the rules of one stylesheet.

    Args:
        file: Path or URL of the stylesheet the rules belong to.
        url_filter: Ignore filter applied to font source URLs.
        url_mapper: Map rules applied to font source URLs.
    """

    def __init__(
        self,
        file: str,
        url_filter: url_utils.UrlFilter,
        url_mapper: url_utils.UrlFilter,
    ) -> None:
        self.file = file
        self.base = url_utils.dirname(file)
        self.url_filter = url_filter
        self.url_mapper = url_mapper

    def font_face(self, rule: Any) -> FontFaceRecord:
        """Convert an ``@font-face`` rule into a declaration record.

        Raises:
            RuleExtractionError: If the rule has no usable ``font-family``.
        """
        try:
            family = url_utils.unquote(css_ast.style_value(rule, "font-family"))
            style = css_ast.style_values(rule, DESCRIPTOR_PROPERTIES.values())
            src = css_ast.style_value(rule, "src")
        except Exception as e:
            raise RuleExtractionError(f"Unreadable @font-face rule: {e}") from e
        if not family:
            raise RuleExtractionError("@font-face rule without font-family")

        descriptors = descriptors_from_style(style)
        files = url_utils.apply_all(
            (
                url_utils.resolve(self.base, url)
                for url in url_utils.urls_from_src(src)
            ),
            self.url_filter,
            self.url_mapper,
            url_utils.normalize,
        )
        logger.debug(f"Font face {family!r} in {self.file}: {len(files)} file(s)")
        return FontFaceRecord(
            id=font_id(family, descriptors),
            family=family,
            files=files,
            selectors=[],
            chars=[],
            descriptors=descriptors,
        )

    def style(self, rule: Any) -> FontUsageRecord | None:
        """Convert a style rule into a usage record.

        Returns:
            Usage record, or None if the rule declares no ``font-family``.
        """
        try:
            font_family = css_ast.style_value(rule, "font-family")
            if not font_family:
                return None
            selector_text = rule.selectorText
            content = css_ast.style_value(rule, "content")
            style = css_ast.style_values(rule, DESCRIPTOR_PROPERTIES.values())
        except Exception as e:
            raise RuleExtractionError(f"Unreadable style rule: {e}") from e

        families = [
            family
            for family in map(url_utils.unquote, url_utils.split_commas(font_family))
            if family
        ]
        descriptors = descriptors_from_style(style)
        return FontUsageRecord(
            ids=[font_id(family, descriptors) for family in families],
            families=families,
            selectors=url_utils.split_commas(selector_text),
            chars=list(url_utils.decode_escapes(url_utils.unquote(content))),
            descriptors=descriptors,
        )
