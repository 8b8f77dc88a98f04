from __future__ import annotations

"""
Text normalisation for RFQ item descriptions.

Buyers type lines like ``100 - feet of 1" LT conduit`` or ``50 - 2 gang
bell boxes``. The quantity prefix means nothing to the catalog search, so it
is removed before the description reaches the search or correction stores.

Public helpers:

* basic_clean(text) -> str
    Unicode + whitespace clean shared by every other helper.

* normalize_description(text) -> str
    Strips the leading quantity/unit token and stray punctuation.
    Idempotent: normalize_description(normalize_description(x)) == normalize_description(x).

* casefold_key(text) -> str
    Comparison key used by the correction tiers.
"""

import re
import unicodedata

from . import config

# Sizes such as "gallon", "inch" or "AWG" are never treated as units here:
# "5 gallon bucket" and "12 AWG" describe the item, not the quantity.
_COUNT_UNITS = ("pcs", "pc", "pieces", "piece", "ea", "each", "units")
# Only stripped when followed by "of" ("4 - rolls of duct tape"), since
# "box connectors" or "set screws" are products in their own right.
_CONTAINER_UNITS = (
    "rolls", "roll", "boxes", "box", "bags", "bag", "cases", "case",
    "packs", "pack", "pkgs", "pkg", "spools", "spool", "reels", "reel",
    "lengths", "length", "sticks", "stick", "pairs", "pair", "sets", "set",
    "feet", "foot", "ft", "lf",
)
_COUNT_RX = r"(?:" + "|".join(_COUNT_UNITS) + r")\.?"
_CONTAINER_RX = r"(?:" + "|".join(_CONTAINER_UNITS) + r")\.?"
_UNIT_CLAUSE = (
    r"(?:" + _COUNT_RX + r"\s+(?:of\s+)?"
    r"|" + _CONTAINER_RX + r"\s+of\s+)"
)

_QTY_NUMBER = r"(?:qty\s*[:.]?\s*)?\d+(?:[.,]\d+)?"
# Whitespace on at least one side keeps "2-hole strap" intact
_SEPARATOR = r"(?:\s+[-–—:]\s*|\s*[-–—:]\s+)"

# "100 - feet of ...", "4 - rolls of ...", "50: ..."
_QTY_WITH_SEPARATOR = re.compile(
    r"^" + _QTY_NUMBER + _SEPARATOR + _UNIT_CLAUSE + r"?(?:of\s+)?",
    flags=re.IGNORECASE,
)
# "100 feet of ...", "50 pcs ...", "25 ea - ..."
_QTY_WITH_UNIT = re.compile(
    r"^" + _QTY_NUMBER + r"\s*" + _UNIT_CLAUSE + r"(?:[-–—:]\s*)?",
    flags=re.IGNORECASE,
)
# "(12) connectors"
_QTY_PARENTHESISED = re.compile(r"^\(\s*\d+\s*\)\s*")

_LEADING_STRAY = re.compile(r"^(?:[\s\-–—*•·,;:!?_~|]|\.(?!\d))+")
_TRAILING_STRAY = re.compile(r"(?:[\s\-–—*•·,;:!?_~|.])+$")


def _normalise_unicode(text: str) -> str:
    # Normalise quotes, accents etc. into a consistent representation.
    text = unicodedata.normalize("NFKC", text)
    # Fancy quotes become ASCII; dashes are kept as-is so the prefix regexes see them
    text = text.replace("‘", "'").replace("’", "'")
    text = text.replace("“", '"').replace("”", '"')
    return text


def basic_clean(text: str | None) -> str:
    """Light-weight clean.

    * normalises unicode and whitespace
    * truncates excessively long inputs
    """
    if text is None:
        return ""
    if not isinstance(text, str):
        text = str(text)

    # NFKC can lengthen text ("…" -> "..."), so clamp only after it
    text = _normalise_unicode(text)
    text = text.replace("\r", " ").replace("\n", " ").replace("\t", " ")
    text = re.sub(r"\s+", " ", text).strip()

    if len(text) > config.MAX_INPUT_CHARS:
        text = text[: config.MAX_INPUT_CHARS].rstrip()
    return text


def strip_quantity_prefix(text: str) -> str:
    for rx in (_QTY_WITH_SEPARATOR, _QTY_WITH_UNIT, _QTY_PARENTHESISED):
        stripped = rx.sub("", text, count=1)
        if stripped != text:
            return stripped
    return text


def strip_stray_punctuation(text: str) -> str:
    text = _LEADING_STRAY.sub("", text)
    return _TRAILING_STRAY.sub("", text)


def normalize_description(text: str | None) -> str:
    """Strip quantity/unit prefixes and stray punctuation.

    The steps are repeated until nothing changes, so the result is a fixed
    point (``100 - 50 - x`` ends up as ``x`` in one call).
    """
    out = basic_clean(text)
    while True:
        step = strip_stray_punctuation(strip_quantity_prefix(out))
        step = re.sub(r"\s+", " ", step).strip()
        if step == out:
            return out
        out = step


def casefold_key(text: str | None) -> str:
    return basic_clean(text).casefold()
