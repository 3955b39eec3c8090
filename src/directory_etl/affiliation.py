"""directory_etl.affiliation

Match a member's free-text chapter answer against the known chapter names.

Hard-coded overrides run first and always win; they cover abbreviations and
schools that fuzzy scoring resolves to the wrong chapter.  Each override keeps
its own match kind (substring or exact), so "lm" only fires on the exact
answer while "mitty" fires anywhere in it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Sequence

from rapidfuzz import fuzz, process, utils

log = logging.getLogger(__name__)

DEFAULT_MATCH_THRESHOLD = 65.0

BestMatch = Callable[[str, Sequence[str]], str | None]


@dataclass(frozen=True)
class AffiliationOverride:
    kind: str  # "contains" | "equals"
    pattern: str
    target: str

    def applies(self, lowered: str) -> bool:
        if self.kind == "contains":
            return self.pattern in lowered
        return lowered == self.pattern


DEFAULT_OVERRIDES: tuple[AffiliationOverride, ...] = (
    AffiliationOverride("contains", "mitty", "Food4TheBay"),
    AffiliationOverride("contains", "seneca valley", "Food4Pitt"),
    AffiliationOverride("equals", "ais", "The Agnes Irwin School"),
    AffiliationOverride("equals", "lm", "Lower Merion High School"),
)


def rapidfuzz_best_match(threshold: float = DEFAULT_MATCH_THRESHOLD) -> BestMatch:
    """Return a best-match function backed by rapidfuzz WRatio.

    Candidates scoring below ``threshold`` (0-100) are not considered a match.
    """

    def best_match(query: str, candidates: Sequence[str]) -> str | None:
        if not candidates:
            return None
        result = process.extractOne(
            query,
            candidates,
            scorer=fuzz.WRatio,
            processor=utils.default_process,
            score_cutoff=threshold,
        )
        if result is None:
            return None
        choice, score, _idx = result
        log.debug("fuzzy chapter match %r -> %r (%.1f)", query, choice, score)
        return choice

    return best_match


class AffiliationMatcher:
    """Resolve free-text chapter answers to a canonical chapter name."""

    def __init__(
        self,
        vocabulary: Sequence[str],
        best_match: BestMatch | None = None,
        overrides: Sequence[AffiliationOverride] = DEFAULT_OVERRIDES,
    ) -> None:
        self._vocabulary = list(vocabulary)
        self._best_match = best_match or rapidfuzz_best_match()
        self._overrides = tuple(overrides)

    @property
    def vocabulary(self) -> list[str]:
        return list(self._vocabulary)

    def match(self, text: str | None) -> str:
        """Return the matching chapter name, or "" when nothing is confident.

        Examples:
          "Haverford"      -> "The Haverford School"
          "Wissahickon HS" -> "Wissahickon High School"
        """
        if not text or not text.strip():
            return ""
        lowered = text.lower().strip()
        for override in self._overrides:
            if override.applies(lowered):
                return override.target

        found = self._best_match(text, self._vocabulary)
        if found is None:
            log.info("no chapter match for %r", text)
            return ""
        return found
