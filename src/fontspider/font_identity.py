"""Stable identifiers for fonts.

A font is identified by its family together with its selection descriptors.
The identity is the join key between ``@font-face`` declarations and the
style rules that use them, so it must not depend on how a descriptor happens
to be spelled when the spellings are equivalent (``font-weight: 400`` and
``font-weight: normal``).
"""

import hashlib
from typing import Any, Mapping

from fontspider.models import DEFAULT_DESCRIPTOR, DescriptorSet

# CSS property name for each descriptor, in hashing order.
DESCRIPTOR_PROPERTIES: dict[str, str] = {
    "variant": "font-variant",
    "stretch": "font-stretch",
    "weight": "font-weight",
    "style": "font-style",
}

DESCRIPTOR_ALIASES: dict[str, dict[str, str]] = {
    "weight": {"400": "normal"},
}


def normalize_descriptor(name: str, value: Any) -> str:
    """Return the canonical value of a single descriptor.

    Missing, empty and non-string values become ``"normal"``.
    """
    if not isinstance(value, str) or not value.strip():
        return DEFAULT_DESCRIPTOR
    value = value.strip()
    return DESCRIPTOR_ALIASES.get(name, {}).get(value, value)


def descriptors_from_style(style: Mapping[str, Any]) -> DescriptorSet:
    """Read the descriptor set from CSS property values.

    Args:
        style: Mapping from CSS property names (``font-weight``) to values.

    Returns:
        Descriptor set with missing values defaulted and aliases normalized.
    """
    return DescriptorSet(
        **{
            name: normalize_descriptor(name, style.get(prop))
            for name, prop in DESCRIPTOR_PROPERTIES.items()
        }
    )


def font_id(family: str, descriptors: DescriptorSet) -> str:
    """Compute the identity of a font.

    Example:
        >>> font_id("Foo", DescriptorSet(weight="400")) == font_id("Foo", DescriptorSet())
        True
    """
    values = [family]
    values.extend(
        normalize_descriptor(name, getattr(descriptors, name, None))
        for name in DESCRIPTOR_PROPERTIES
    )
    return hashlib.md5("-".join(values).encode("utf-8")).hexdigest()
