"""Identifier shape rules for the record search system."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional
import regex as re

from config.models import IdentifierFormat, SearchConfig


class IdentifierRule(ABC):
    """Base class for rules recognising an identifier in raw input."""

    @abstractmethod
    def match(self, search: str) -> Optional[str]:
        """
        Extract the identifier span from a search string.

        Args:
            search: Raw search string

        Returns:
            Optional[str]: The identifier span, or None if the rule does not apply
        """
        pass


class PatternRule(IdentifierRule):
    """Capture the first group of a regex pattern."""

    def __init__(self, pattern: str):
        self.pattern = re.compile(pattern)

    def match(self, search: str) -> Optional[str]:
        found = self.pattern.match(search)
        return found.group(1) if found else None

    def __repr__(self) -> str:
        return f"PatternRule({self.pattern.pattern!r})"


DIGITS_RULE = PatternRule(r'^\s*(\d+)\s*$')
LETTER_PREFIXED_RULE = PatternRule(r'^\s*(\w\w?\d+)\s*$')
DIGITS_HYPHEN_LETTER_RULE = PatternRule(r'^\s*(\d+-\w)\s*$')
# special prefixes never contain digits, so the alphabetic part is dropped
SPECIAL_PREFIX_RULE = PatternRule(r'^\s*[[:alpha:]]*(\d+)\s*$')
# street numbers such as 1234A or 9432-D
ADDRESS_PREFIX_RULE = PatternRule(r'^\s*(\d+\-?\w*)\s*$')


@dataclass
class IdentifierRules:
    """Ordered identifier rules; the first one that matches wins."""

    include_rules: List[IdentifierRule]

    @classmethod
    def from_config(cls, config: SearchConfig) -> 'IdentifierRules':
        """Build the rule chain enabled by a search configuration."""
        rules: List[IdentifierRule] = [DIGITS_RULE]
        if config.identifier_format == IdentifierFormat.LETTER_PREFIXED:
            rules.append(LETTER_PREFIXED_RULE)
        elif config.identifier_format == IdentifierFormat.DIGITS_HYPHEN_LETTER:
            rules.append(DIGITS_HYPHEN_LETTER_RULE)
        if config.special_identifier_prefix:
            rules.append(SPECIAL_PREFIX_RULE)
        if config.address_search:
            rules.append(ADDRESS_PREFIX_RULE)
        return cls(rules)

    def match(self, search: str) -> Optional[str]:
        """
        Return the identifier span captured by the first matching rule.

        Args:
            search: Raw search string

        Returns:
            Optional[str]: Identifier span, or None when no rule applies
        """
        for rule in self.include_rules:
            span = rule.match(search)
            if span is not None:
                return span
        return None
