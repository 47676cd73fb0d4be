"""Text normalization shared by every matcher."""

from __future__ import annotations

import re
import unicodedata

_LEADING_MARKS_RE = re.compile(r"^[\s¿¡]+")
_TRAILING_MARKS_RE = re.compile(r"[\s?!]+$")
_MULTISPACE_RE = re.compile(r"\s+")
_WORD_RE = re.compile(r"[0-9a-z]+")


def _fold_char(ch: str) -> str:
    base = "".join(c for c in unicodedata.normalize("NFD", ch) if not unicodedata.combining(c))
    return base if len(base) == 1 else ch


def fold_text(text: str) -> str:
    """Lower-case and strip accents without changing the string length.

    Positions in the folded string line up with the raw string, so a match found on the folded
    text can be sliced back out of the raw text with the user's original casing.
    """

    return "".join(_fold_char(ch) for ch in (text or "").lower())


def normalize_text(text: str) -> str:
    """Normalize an utterance for rules-based matching.

        - Lowercase, fold accented characters (`á` -> `a`, `ñ` -> `n`).
        - Drop leading `¿`/`¡` and trailing `?`/`!`.
        - Collapse whitespace.

    `normalize_text(normalize_text(x)) == normalize_text(x)` for every input.
    """

    value = fold_text(text)
    value = _MULTISPACE_RE.sub(" ", value).strip()
    value = _LEADING_MARKS_RE.sub("", value)
    value = _TRAILING_MARKS_RE.sub("", value)
    return value


def tokenize(text: str) -> list[str]:
    """Split text into normalized word tokens (punctuation dropped)."""

    return _WORD_RE.findall(normalize_text(text))
