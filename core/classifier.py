"""Classification of raw search input into query shapes."""

import logging
from dataclasses import dataclass
from typing import List, Optional
import regex as re

from config.models import QueryShape, SearchConfig
from config.rules import IdentifierRules
from core.preprocessor import PhoneNumber, registry

logger = logging.getLogger(__name__)

STRUCTURED_NAME_PATTERN = re.compile(r'^\s*(\S.*\S)\s+\((.+), ([^,]+)\)\s*$')


@dataclass(frozen=True)
class StructuredName:
    """A ``Company (Last, First)`` value, as browsers tend to remember it."""
    company: str
    last: str
    first: str


@dataclass(frozen=True)
class Classification:
    """Every interpretation of a search string that a strategy can use."""
    search: str
    phone: Optional[PhoneNumber] = None
    email: Optional[str] = None
    identifier: Optional[str] = None
    structured_name: Optional[StructuredName] = None
    free_text: Optional[str] = None
    card: Optional[str] = None

    @property
    def shapes(self) -> List[QueryShape]:
        """Recognised shapes, in strategy order."""
        present = {
            QueryShape.PHONE: self.phone,
            QueryShape.EMAIL: self.email,
            QueryShape.IDENTIFIER: self.identifier,
            QueryShape.STRUCTURED_NAME: self.structured_name,
            QueryShape.FREE_TEXT: self.free_text,
            QueryShape.CARD: self.card,
        }
        return [shape for shape, value in present.items() if value]

    @property
    def rejected(self) -> bool:
        return not self.shapes


class QueryClassifier:
    """
    Decides which strategies apply to a search string.

    Phone and card shapes are tested independently. Email, identifier,
    structured name and free text form a chain in that order, so only the
    first of them that matches is reported.
    """

    def __init__(self, config: SearchConfig, rules: Optional[IdentifierRules] = None):
        self.config = config
        self.rules = rules or IdentifierRules.from_config(config)
        self._phone = registry.create('phone')
        self._card = registry.create('card')
        self._value = registry.create('value')

    def classify(self, search: Optional[str]) -> Classification:
        """
        Classify a raw search string.

        Args:
            search: Raw search input

        Returns:
            Classification: All applicable interpretations; ``rejected`` when none
        """
        search = search or ''
        shapes = {
            'phone': self._phone.parse(search),
            'card': self._card.process(search) or None,
        }
        shapes.update(self._classify_chain(search))

        classification = Classification(search=search, **shapes)
        if classification.rejected:
            logger.debug(f"No query shape recognised for {search!r}")
        return classification

    def _classify_chain(self, search: str) -> dict:
        if '@' in search:
            return {'email': search.strip()}

        identifier = self.rules.match(search)
        if identifier is not None:
            return {'identifier': identifier}

        found = STRUCTURED_NAME_PATTERN.match(search)
        if found:
            company, last, first = found.groups()
            return {'structured_name': StructuredName(company, last, first)}

        value = self._value.process(search)
        if value:
            return {'free_text': value}
        return {}
