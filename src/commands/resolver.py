"""Free-text reference resolution against snapshot records.

Precedence is fixed; a weaker strategy is consulted only when every stronger one failed:
    exact (1.0) > partial substring (0.75) > keyword overlap (0.5 * ratio, floor 0.25)
    > fallback to the first record (0.1).

The fallback is a guess; callers that must not act on a guess pass `allow_fallback=False`.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence

from src.intent.dictionaries import STOP_WORDS
from src.intent.normalize import normalize_text, tokenize
from src.intent.schema import EntityKind, MatchStrategy, Project, ResolvedReference, Task

logger = logging.getLogger(__name__)

EXACT_CONFIDENCE = 1.0
PARTIAL_CONFIDENCE = 0.75
KEYWORD_CONFIDENCE = 0.5
KEYWORD_CONFIDENCE_FLOOR = 0.25
FALLBACK_CONFIDENCE = 0.1

Record = Project | Task


def _keywords(text: str) -> set[str]:
    return {token for token in tokenize(text) if token not in STOP_WORDS}


def _reference(kind: EntityKind, record: Record, strategy: MatchStrategy, confidence: float) -> ResolvedReference:
    return ResolvedReference(
        kind=kind,
        id=record.id,
        title=record.title,
        match_strategy=strategy,
        confidence=confidence,
    )


class EntityResolver:
    """Stateless resolver; safe to share between requests."""

    def resolve(
            self,
            reference_text: str | None,
            candidates: Sequence[Record],
            *,
            kind: EntityKind,
            allow_fallback: bool = True,
    ) -> ResolvedReference | None:
        """Bind `reference_text` to one of `candidates`, or return `None` (not found)."""

        if not candidates:
            return None

        needle = normalize_text(reference_text or "")
        if needle:
            matched = self._match(needle, candidates, kind)
            if matched is not None:
                return matched
            logger.debug("unresolved kind=%s reference=%r", kind, reference_text)

        if not allow_fallback:
            return None
        logger.info("resolved kind=%s strategy=fallback id=%s", kind, candidates[0].id)
        return _reference(kind, candidates[0], MatchStrategy.fallback, FALLBACK_CONFIDENCE)

    @staticmethod
    def _match(needle: str, candidates: Sequence[Record], kind: EntityKind) -> ResolvedReference | None:
        titles = [normalize_text(record.title) for record in candidates]

        for record, title in zip(candidates, titles):
            if title == needle or (needle.isdigit() and int(needle) == record.id):
                return _reference(kind, record, MatchStrategy.exact, EXACT_CONFIDENCE)

        for record, title in zip(candidates, titles):
            if title and (needle in title or title in needle):
                return _reference(kind, record, MatchStrategy.partial, PARTIAL_CONFIDENCE)

        wanted = _keywords(needle)
        if wanted:
            best: Record | None = None
            best_overlap = 0
            for record in candidates:
                overlap = len(wanted & _keywords(record.title))
                if overlap > best_overlap:
                    best, best_overlap = record, overlap
            if best is not None:
                confidence = max(KEYWORD_CONFIDENCE_FLOOR, KEYWORD_CONFIDENCE * best_overlap / len(wanted))
                return _reference(kind, best, MatchStrategy.keyword, round(confidence, 4))
        return None

    def find_mentioned(
            self,
            text: str,
            candidates: Sequence[Record],
            *,
            kind: EntityKind = "project",
    ) -> ResolvedReference | None:
        """Record whose full title appears in `text` as whole words; the longest title wins."""

        haystack = normalize_text(text)
        best: Record | None = None
        best_length = 0
        for record in candidates:
            title = normalize_text(record.title)
            if not title or len(title) <= best_length:
                continue
            if re.search(rf"(?<![0-9a-z]){re.escape(title)}(?![0-9a-z])", haystack):
                best, best_length = record, len(title)

        if best is None:
            return None
        return _reference(kind, best, MatchStrategy.partial, PARTIAL_CONFIDENCE)
