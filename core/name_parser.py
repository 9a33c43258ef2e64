"""Splitting of free text into first and last name components."""

from dataclasses import dataclass
from typing import FrozenSet, List, Optional, Protocol
import regex as re

REVERSED_NAME_PATTERN = re.compile(r'^(.+),\s*([^,]+)$')
TOKEN_PATTERN = re.compile(r"[\p{L}][\p{L}'\-]*\.?")


@dataclass(frozen=True)
class ParsedName:
    """First and last name taken from a search value."""
    first: str
    last: str


class NameParser(Protocol):
    """Capability interface for splitting a value into name components."""
    def parse(self, value: str) -> Optional[ParsedName]:
        """Return the parsed name, or None when the value is not a name."""
        ...


class SimpleNameParser:
    """
    Token-based parser for ``First [Middle] Last`` values.

    Titles and generational suffixes are dropped. Values that do not reduce
    to two or three alphabetic tokens are not treated as names. An initial
    stands in for the first name when no given name is present.
    """

    TITLES: FrozenSet[str] = frozenset({
        'mr', 'mrs', 'ms', 'miss', 'mx', 'dr', 'prof', 'rev', 'sir',
    })
    SUFFIXES: FrozenSet[str] = frozenset({
        'jr', 'sr', 'ii', 'iii', 'iv', 'v', 'esq', 'phd', 'md',
    })

    def parse(self, value: str) -> Optional[ParsedName]:
        if not value or not value.strip():
            return None

        tokens = self._tokenize(value)
        if tokens is None:
            return None

        while tokens and tokens[0].rstrip('.') in self.TITLES:
            tokens.pop(0)
        while tokens and tokens[-1].rstrip('.') in self.SUFFIXES:
            tokens.pop()

        if len(tokens) not in (2, 3):
            return None

        first = tokens[0].rstrip('.')
        last = tokens[-1].rstrip('.')
        if len(last) < 2:
            return None
        return ParsedName(first=first, last=last)

    def _tokenize(self, value: str) -> Optional[List[str]]:
        """Lower-cased name tokens, or None if anything else is present."""
        words = value.lower().split()
        for word in words:
            if not TOKEN_PATTERN.fullmatch(word):
                return None
        return words


def split_name(value: str, parser: NameParser) -> Optional[ParsedName]:
    """
    Split a lower-cased search value into first and last names.

    ``Last, First`` is recognised literally; anything else goes to the parser.

    Args:
        value: Trimmed, lower-cased search value
        parser: Fallback name parser

    Returns:
        Optional[ParsedName]: Both components, or None if either is missing
    """
    found = REVERSED_NAME_PATTERN.match(value)
    if found:
        last, first = found.group(1).strip(), found.group(2).strip()
        return ParsedName(first=first, last=last) if first and last else None

    parsed = parser.parse(value)
    if parsed is None or not parsed.first or not parsed.last:
        return None
    return ParsedName(first=parsed.first.lower(), last=parsed.last.lower())
