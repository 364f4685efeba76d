"""Target-class keyword table.

A label counts as the target class when it contains any keyword for its
source, compared case-insensitively. Substring matching is intended:
classifier labels such as ``"Egyptian cat"`` or ``"Cat purring"`` match.
"""

from typing import Dict, Tuple

from mewt.types import Source

TARGET_KEYWORDS: Dict[Source, Tuple[str, ...]] = {
    Source.VISUAL: (
        "cat",
        "cats",
        "domestic_cat",
        "persian_cat",
        "siamese_cat",
        "tabby_cat",
        "kitten",
        "feline",
    ),
    Source.ACOUSTIC: (
        "cat",
        "meow",
        "purr",
        "purring",
        "mew",
        "mewing",
        "feline",
        "cat_vocalization",
    ),
}


def is_target_class(label: str, source: Source) -> bool:
    """Return True if ``label`` names the target class for ``source``."""
    lowered = label.lower()
    return any(keyword in lowered for keyword in TARGET_KEYWORDS[Source(source)])


__all__ = ["TARGET_KEYWORDS", "is_target_class"]
