"""Edit-distance tolerance checks for approximate matching."""

import math
from functools import lru_cache
from typing import Iterable, List, Optional
import Levenshtein
import regex as re


class ToleranceValidator:
    """Decides whether a query occurs in corpus values within an edit distance."""

    # Share of the query length tolerated when no explicit fuzziness is set
    DEFAULT_FUZZINESS_RATIO = 0.1

    def __init__(self, fuzziness: Optional[int] = None):
        """
        Initialize validator.

        Args:
            fuzziness: Maximum edit distance, or None to scale with the query length
        """
        self.fuzziness = fuzziness

    def tolerance(self, query: str) -> int:
        """Maximum edit distance allowed for a query."""
        if self.fuzziness is not None:
            return self.fuzziness
        return math.ceil(len(query) * self.DEFAULT_FUZZINESS_RATIO)

    @staticmethod
    @lru_cache(maxsize=10000)
    def _distance(query: str, value: str, cutoff: int) -> int:
        """Cached case-folded edit distance, capped at ``cutoff + 1``."""
        return Levenshtein.distance(query, value, score_cutoff=cutoff)

    @staticmethod
    @lru_cache(maxsize=1000)
    def _pattern(query: str, limit: int):
        """Fuzzy pattern finding the query anywhere with at most ``limit`` edits."""
        return re.compile(rf'(?:{re.escape(query)}){{e<={limit}}}', re.IGNORECASE)

    def within_tolerance(self, query: str, value: str) -> bool:
        """
        Check whether the query occurs approximately inside a value, ignoring case.

        Args:
            query: Search string
            value: Candidate corpus value

        Returns:
            bool: Whether some span of the value is within tolerance of the query
        """
        if not isinstance(query, str) or not isinstance(value, str):
            return False

        query = query.lower()
        value = value.lower()
        limit = self.tolerance(query)

        if len(value) < len(query) - limit:
            return False
        if abs(len(query) - len(value)) <= limit and self._distance(query, value, limit) <= limit:
            return True
        return self._pattern(query, limit).search(value) is not None

    def filter(self, query: str, values: Iterable[str]) -> List[str]:
        """
        Return the distinct values within tolerance, in corpus order.

        Args:
            query: Search string
            values: Corpus values

        Returns:
            List[str]: Matching values
        """
        matches = []
        seen = set()
        for value in values:
            if value in seen:
                continue
            seen.add(value)
            if self.within_tolerance(query, value):
                matches.append(value)
        return matches
