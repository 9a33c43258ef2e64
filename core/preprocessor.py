"""Normalization of raw search input into matchable forms."""

from typing import Any, Dict, Optional, Type
from abc import ABC, abstractmethod
from dataclasses import dataclass
import pandas as pd
import re

PHONE_PATTERN = re.compile(r'^1?(\d{3})(\d{3})(\d{4})(\d*)$')
CARD_PATTERN = re.compile(r'^[\dx]{15,16}$', re.IGNORECASE)
VALUE_PATTERN = re.compile(r'^\s*(\S.*\S)\s*$')
MASK_METHOD_PATTERN = re.compile(r'^first(\d+)last(\d+)$')


@dataclass(frozen=True)
class PhoneNumber:
    """A North American phone number split into its parts."""
    area: str
    exchange: str
    subscriber: str
    extension: str = ''

    @property
    def canonical(self) -> str:
        """``AAA-EEE-SSSS`` with an optional `` xEXT`` suffix."""
        number = f"{self.area}-{self.exchange}-{self.subscriber}"
        if self.extension:
            number += f" x{self.extension}"
        return number

    @property
    def digits(self) -> str:
        return f"{self.area}{self.exchange}{self.subscriber}"


class BasePreprocessor(ABC):
    """Base class for preprocessors with common functionality."""

    @abstractmethod
    def process(self, value: Any) -> str:
        """Process a value into a standardized string format."""
        pass

    def _handle_null(self, value: Any) -> bool:
        """Check if value is null/empty."""
        return value is None or (not isinstance(value, str) and pd.isna(value))


class AlphanumericPreprocessor(BasePreprocessor):
    """Drops every non-word character."""

    def process(self, value: Any) -> str:
        if self._handle_null(value):
            return ''
        return re.sub(r'\W', '', str(value))


class PhonePreprocessor(BasePreprocessor):
    """Canonicalizes phone numbers to ``AAA-EEE-SSSS[ xEXT]``."""

    def __init__(self):
        self._alphanumeric = AlphanumericPreprocessor()

    def parse(self, value: Any) -> Optional[PhoneNumber]:
        """
        Split a phone number typed with any punctuation.

        A leading country code ``1`` is dropped and trailing digits beyond
        the ten-digit number become the extension.

        Args:
            value: Raw input

        Returns:
            Optional[PhoneNumber]: Parsed number, or None if the input is not phone-shaped
        """
        found = PHONE_PATTERN.match(self._alphanumeric.process(value))
        if not found:
            return None
        return PhoneNumber(*found.groups())

    def process(self, value: Any) -> str:
        phone = self.parse(value)
        return phone.canonical if phone else ''


class CardPreprocessor(BasePreprocessor):
    """Folds card numbers typed with separators and mask characters."""

    WILDCARD = 'x'

    def process(self, value: Any) -> str:
        if self._handle_null(value):
            return ''
        text = re.sub(r'\s', '', str(value)).replace('-', '')
        text = re.sub(r'[x*._]', self.WILDCARD, text, flags=re.IGNORECASE)
        return text if CARD_PATTERN.match(text) else ''


class ValuePreprocessor(BasePreprocessor):
    """Trims and lower-cases free text; needs two non-space characters."""

    def process(self, value: Any) -> str:
        if self._handle_null(value):
            return ''
        found = VALUE_PATTERN.match(str(value))
        return found.group(1).lower() if found else ''


def mask_card(card: str, method: str = 'first6last4') -> str:
    """
    Produce the stored mask form of a card number.

    Args:
        card: Folded card number (digits and wildcards)
        method: Masking method of the form ``firstNlastM``

    Returns:
        str: Masked representation

    Raises:
        ValueError: If the masking method is not understood
    """
    found = MASK_METHOD_PATTERN.match(method)
    if not found:
        raise ValueError(f"Unknown card masking method: {method}")
    first, last = int(found.group(1)), int(found.group(2))
    if first + last >= len(card):
        return card
    hidden = CardPreprocessor.WILDCARD * (len(card) - first - last)
    return card[:first] + hidden + card[len(card) - last:]


def card_like_pattern(card: str) -> str:
    """Translate folded wildcards into single-character LIKE wildcards."""
    return card.replace(CardPreprocessor.WILDCARD, '_')


class PreprocessorRegistry:
    """Registry for preprocessor types and instances."""

    def __init__(self):
        self._preprocessors: Dict[str, Type[BasePreprocessor]] = {}
        self._register_defaults()

    def _register_defaults(self) -> None:
        """Register default preprocessors."""
        self.register('phone', PhonePreprocessor)
        self.register('card', CardPreprocessor)
        self.register('value', ValuePreprocessor)

    def register(self, name: str, preprocessor_class: Type[BasePreprocessor]) -> None:
        """
        Register a new preprocessor type.

        Args:
            name: Name to register the preprocessor under
            preprocessor_class: Preprocessor class to register
        """
        self._preprocessors[name] = preprocessor_class

    def create(
        self,
        name: str,
        **kwargs: Any
    ) -> BasePreprocessor:
        """
        Create a preprocessor instance.

        Args:
            name: Name of the preprocessor type
            **kwargs: Configuration parameters for the preprocessor

        Returns:
            BasePreprocessor: Configured preprocessor instance

        Raises:
            ValueError: If preprocessor type not found
        """
        preprocessor_class = self._preprocessors.get(name)
        if not preprocessor_class:
            raise ValueError(f"Unknown preprocessor type: {name}")

        return preprocessor_class(**kwargs)


# Global registry instance
registry = PreprocessorRegistry()

