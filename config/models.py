"""Configuration models for the record search system."""

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import regex as re

MAX_RECORD_ID = 2147483647

CARD_FAMILY = ('CARD', 'DCRD')


class IdentifierFormat(str, Enum):
    """Accepted shapes for caller-facing identifiers."""
    PLAIN_DIGITS = "d+"
    LETTER_PREFIXED = "ww?d+"
    DIGITS_HYPHEN_LETTER = "d+-w"


class QueryShape(str, Enum):
    """Query shapes recognised by the classifier, in strategy order."""
    PHONE = "phone"
    EMAIL = "email"
    IDENTIFIER = "identifier"
    STRUCTURED_NAME = "structured_name"
    FREE_TEXT = "free_text"
    CARD = "card"


@dataclass(frozen=True)
class IndexedField:
    """A (table, column) pair eligible for fuzzy indexing."""
    table: str
    field: str

    @classmethod
    def parse(cls, value: str) -> 'IndexedField':
        """Parse ``table.field``; a bare column belongs to ``customer``."""
        if isinstance(value, IndexedField):
            return value
        table, _, name = value.rpartition('.')
        return cls(table or 'customer', name)

    @property
    def name(self) -> str:
        return f"{self.table}.{self.field}"

    def __str__(self) -> str:
        return self.name


DEFAULT_FUZZY_FIELDS: Tuple[IndexedField, ...] = (
    IndexedField('customer', 'first'),
    IndexedField('customer', 'last'),
    IndexedField('customer', 'company'),
    IndexedField('customer', 'ship_company'),
    IndexedField('location', 'address1'),
    IndexedField('contact', 'first'),
    IndexedField('contact', 'last'),
)

_PREFIX_PATTERN = re.compile(r'^\w+$')


@dataclass(frozen=True)
class SearchConfig:
    """Options that shape classification and strategy behaviour."""
    identifier_format: IdentifierFormat = IdentifierFormat.PLAIN_DIGITS
    special_identifier_prefix: bool = False
    address_search: bool = False
    partition_prefixes: Mapping[int, str] = field(default_factory=dict)
    fuzziness: Optional[int] = None  # None means 10% of the query length
    disable_fuzzy: bool = False
    default_identifier_sentinel: bool = False
    card_masking_method: str = 'first6last4'
    index_dir: Path = Path('cache')
    fuzzy_fields: Tuple[IndexedField, ...] = DEFAULT_FUZZY_FIELDS
    max_workers: int = 4
    lock_timeout: Optional[float] = None

    def __post_init__(self):
        """Coerce loose values and reject unusable ones."""
        object.__setattr__(
            self,
            'identifier_format',
            IdentifierFormat(self.identifier_format)
        )
        object.__setattr__(self, 'index_dir', Path(self.index_dir))
        object.__setattr__(
            self,
            'fuzzy_fields',
            tuple(IndexedField.parse(f) for f in self.fuzzy_fields)
        )
        if self.fuzziness is not None and self.fuzziness < 0:
            raise ValueError(f"fuzziness must be >= 0, got {self.fuzziness}")
        if self.max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {self.max_workers}")
        if not re.fullmatch(r'first\d+last\d+', self.card_masking_method):
            raise ValueError(
                f"Unknown card masking method: {self.card_masking_method}"
            )

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> 'SearchConfig':
        """
        Build a config from loosely typed settings.

        Partition prefixes that are empty or not alphanumeric, or whose
        partition is not an integer, are dropped with a warning.

        Args:
            values: Settings keyed by ``SearchConfig`` field name

        Returns:
            SearchConfig: Validated configuration
        """
        options = dict(values)
        prefixes: Dict[int, str] = {}
        for partition, prefix in dict(options.pop('partition_prefixes', {}) or {}).items():
            try:
                partition_id = int(partition)
            except (TypeError, ValueError):
                logging.warning(f"Ignoring prefix for non-numeric partition {partition!r}")
                continue
            prefix = str(prefix or '').strip()
            if not _PREFIX_PATTERN.match(prefix):
                logging.warning(
                    f"Ignoring invalid identifier prefix {prefix!r} for partition {partition_id}"
                )
                continue
            prefixes[partition_id] = prefix

        fuzziness = options.pop('fuzziness', None)
        if fuzziness in ('', None):
            fuzziness = None
        else:
            fuzziness = int(fuzziness)

        lock_timeout = options.pop('lock_timeout', None)
        if lock_timeout is not None:
            lock_timeout = float(lock_timeout)

        return cls(
            partition_prefixes=prefixes,
            fuzziness=fuzziness,
            lock_timeout=lock_timeout,
            **options
        )


@dataclass(frozen=True)
class MatchQuery:
    """A single search request."""
    search: str
    predicate: Any = None  # opaque scoping filter handed to the store
    suppress_fuzzy_on_exact: bool = False
    elevated: bool = False

    @property
    def min_substring_length(self) -> int:
        return 3 if self.elevated else 4


@dataclass
class StrategyResult:
    """Records produced by one strategy."""
    strategy: str
    record_ids: List[int] = field(default_factory=list)
    hit_counts: Dict[int, int] = field(default_factory=dict)
    errors: Dict[str, Exception] = field(default_factory=dict)

    def extend(self, record_ids) -> None:
        """Append record ids, skipping ones already present."""
        seen = set(self.record_ids)
        for record_id in record_ids:
            if record_id not in seen:
                seen.add(record_id)
                self.record_ids.append(record_id)

    def __bool__(self) -> bool:
        return bool(self.record_ids)


@dataclass
class SearchResult:
    """Combined, de-duplicated output of a search."""
    record_ids: List[int] = field(default_factory=list)
    results: List[StrategyResult] = field(default_factory=list)
    failures: Dict[str, Exception] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failures

    def __iter__(self):
        return iter(self.record_ids)

    def __len__(self) -> int:
        return len(self.record_ids)
