"""Records and resources exchanged between the resolver and its callers."""

import dataclasses
import enum

DEFAULT_DESCRIPTOR = "normal"


class RuleKind(enum.Enum):
    """Kinds of CSS rules the resolver dispatches on."""

    IMPORT = "import"
    MEDIA = "media"
    FONT_FACE = "font-face"
    STYLE = "style"
    OTHER = "other"


@dataclasses.dataclass
class DescriptorSet:
    """Font selection descriptors disambiguating fonts of the same family."""

    variant: str = DEFAULT_DESCRIPTOR
    stretch: str = DEFAULT_DESCRIPTOR
    weight: str = DEFAULT_DESCRIPTOR
    style: str = DEFAULT_DESCRIPTOR


@dataclasses.dataclass
class FontFaceRecord:
    """One declared ``@font-face`` source.

    Attributes:
        id: Font identity of the declaration.
        family: Unquoted family name.
        files: Absolute, filtered and mapped URLs of the font files.
        selectors: Always empty for declarations.
        chars: Always empty for declarations.
        descriptors: Font selection descriptors of the declaration.
    """

    id: str
    family: str
    files: list[str] = dataclasses.field(default_factory=list)
    selectors: list[str] = dataclasses.field(default_factory=list)
    chars: list[str] = dataclasses.field(default_factory=list)
    descriptors: DescriptorSet = dataclasses.field(default_factory=DescriptorSet)


@dataclasses.dataclass
class FontUsageRecord:
    """One style rule referencing fonts.

    Attributes:
        ids: Font identity per family alternative, in fallback order.
        families: Unquoted family names, in fallback order.
        selectors: Selectors of the rule.
        chars: Characters of the ``content`` property, duplicates kept.
        descriptors: Font selection descriptors of the rule.
    """

    ids: list[str] = dataclasses.field(default_factory=list)
    families: list[str] = dataclasses.field(default_factory=list)
    selectors: list[str] = dataclasses.field(default_factory=list)
    chars: list[str] = dataclasses.field(default_factory=list)
    descriptors: DescriptorSet = dataclasses.field(default_factory=DescriptorSet)


Record = FontFaceRecord | FontUsageRecord


@dataclasses.dataclass
class Stylesheet:
    """Stylesheet text together with the path or URL it was read from."""

    file: str
    content: str
