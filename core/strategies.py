"""Match strategies, one per recognised query shape."""

import logging
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional

from config.models import (
    CARD_FAMILY,
    MAX_RECORD_ID,
    IndexedField,
    MatchQuery,
    QueryShape,
    SearchConfig,
    StrategyResult
)
from core.classifier import Classification
from core.exceptions import SearchError
from core.fuzzy_index import FuzzyIndex
from core.name_parser import NameParser, ParsedName, SimpleNameParser, split_name
from core.preprocessor import card_like_pattern, mask_card
from core.store import RecordStore

logger = logging.getLogger(__name__)

PHONE_FIELDS = ('daytime', 'night', 'mobile', 'fax')
PHONE_PREFIX_FIELDS = ('daytime', 'night')


def parse_record_id(value: str) -> Optional[int]:
    """Integer form of a digit string, or None if it is not a valid record id."""
    if not (value.isascii() and value.isdigit()):
        return None
    number = int(value)
    return number if number <= MAX_RECORD_ID else None


class Strategy(ABC):
    """Base class for a matching algorithm tied to one query shape."""

    shape: QueryShape

    def __init__(self, store: RecordStore, config: SearchConfig):
        self.store = store
        self.config = config

    @property
    def name(self) -> str:
        return self.shape.value

    def applies(self, classification: Classification) -> bool:
        return self.shape in classification.shapes

    @abstractmethod
    def match(self, query: MatchQuery, classification: Classification) -> StrategyResult:
        """
        Find the records matching a classified query.

        Args:
            query: Search request, including the caller's scoping predicate
            classification: Interpretations produced by the classifier

        Returns:
            StrategyResult: Matching records in first-seen order
        """
        pass


class PhoneStrategy(Strategy):
    """Exact phone match, falling back to numbers stored with an extension."""

    shape = QueryShape.PHONE

    def match(self, query: MatchQuery, classification: Classification) -> StrategyResult:
        phone = classification.phone
        result = StrategyResult(self.name)

        for field in PHONE_FIELDS:
            result.extend(self.store.find_exact(
                'customer', {field: phone.canonical}, query.predicate
            ))
        result.extend(self.store.find_exact(
            'contact_phone', {'phonenum': phone.digits}, query.predicate
        ))

        if not result and not phone.extension:
            for field in PHONE_PREFIX_FIELDS:
                result.extend(self.store.find_prefix(
                    'customer', field, phone.canonical, query.predicate
                ))
        return result


class EmailStrategy(Strategy):
    """Invoice destinations, contact emails and service accounts."""

    shape = QueryShape.EMAIL

    def match(self, query: MatchQuery, classification: Classification) -> StrategyResult:
        email = classification.email
        result = StrategyResult(self.name)

        result.extend(self.store.find_exact(
            'invoice_dest', {'dest': email}, query.predicate
        ))
        result.extend(self.store.find_exact(
            'contact_email', {'emailaddress': email}, query.predicate
        ))

        username, _, domain = email.rpartition('@')
        if username and domain:
            result.extend(self.store.find_service_accounts(
                username, domain, query.predicate
            ))
        return result


class IdentifierStrategy(Strategy):
    """Record id, partition-prefixed id, external id and street number."""

    shape = QueryShape.IDENTIFIER

    def match(self, query: MatchQuery, classification: Classification) -> StrategyResult:
        identifier = classification.identifier
        result = StrategyResult(self.name)

        record_id = parse_record_id(identifier)
        if record_id is not None:
            criteria = {'id': record_id}
            if self.config.default_identifier_sentinel:
                criteria['external_id'] = None
            result.extend(self.store.find_exact('customer', criteria, query.predicate))

        for partition, prefix in self.config.partition_prefixes.items():
            if not identifier.startswith(prefix):
                continue
            stripped = parse_record_id(identifier[len(prefix):])
            if stripped is None:
                continue
            result.extend(self.store.find_exact(
                'customer',
                {'id': stripped, 'partition': partition},
                query.predicate
            ))

        result.extend(self.store.find_exact(
            'customer', {'external_id': identifier}, query.predicate
        ))

        if self.config.address_search:
            result.extend(self.store.find_prefix(
                'location', 'address1', identifier.lower(), query.predicate,
                ignore_case=True
            ))
        return result


class StructuredNameStrategy(Strategy):
    """Case-insensitive exact ``Company (Last, First)`` match."""

    shape = QueryShape.STRUCTURED_NAME

    def match(self, query: MatchQuery, classification: Classification) -> StrategyResult:
        name = classification.structured_name
        result = StrategyResult(self.name)
        result.extend(self.store.find_exact(
            'customer',
            {'first': name.first, 'last': name.last, 'company': name.company},
            query.predicate,
            ignore_case=True
        ))
        return result


class CardStrategy(Strategy):
    """Card number by wildcard pattern or stored mask."""

    shape = QueryShape.CARD

    def match(self, query: MatchQuery, classification: Classification) -> StrategyResult:
        card = classification.card
        result = StrategyResult(self.name)
        family = {'payby': CARD_FAMILY}

        result.extend(self.store.find_like(
            'payment', 'payinfo', card_like_pattern(card), query.predicate,
            criteria=family
        ))
        mask = mask_card(card, self.config.card_masking_method)
        result.extend(self.store.find_exact(
            'payment', {'paymask': mask, **family}, query.predicate
        ))
        return result


class FreeTextStrategy(Strategy):
    """
    Name, company and address search in three tiers.

    The exact tier always runs. The substring and fuzzy tiers follow unless
    fuzzy matching is disabled, or the caller asked to skip them once the
    exact tier found something. A failing tier is recorded in the result,
    keeps the records it found before failing and does not stop the tiers
    after it.
    """

    shape = QueryShape.FREE_TEXT

    NAME_FIELDS = (
        ('customer', 'first'),
        ('customer', 'last'),
        ('customer', 'company'),
        ('customer', 'ship_company'),
        ('contact', 'first'),
        ('contact', 'last'),
    )

    def __init__(
        self,
        store: RecordStore,
        config: SearchConfig,
        fuzzy_index: FuzzyIndex,
        name_parser: Optional[NameParser] = None
    ):
        super().__init__(store, config)
        self.fuzzy_index = fuzzy_index
        self.name_parser = name_parser or SimpleNameParser()

    def match(self, query: MatchQuery, classification: Classification) -> StrategyResult:
        value = classification.free_text
        name = split_name(value, self.name_parser)
        result = StrategyResult(self.name)

        exact = self._run_tier(
            result, 'exact', lambda found: self._exact(found, query, value, name)
        )
        if exact and query.suppress_fuzzy_on_exact:
            return result
        if self.config.disable_fuzzy:
            return result

        self._run_tier(
            result, 'substring', lambda found: self._substring(found, query, value, name)
        )
        self._run_tier(
            result, 'fuzzy', lambda found: self._fuzzy(found, query, value, name)
        )
        return result

    def _run_tier(
        self,
        result: StrategyResult,
        tier: str,
        lookup: Callable[[StrategyResult], None]
    ) -> List[int]:
        """Run one tier; records found before a failure are kept."""
        found = StrategyResult(self.name)
        try:
            lookup(found)
        except SearchError as e:
            logger.warning(
                f"{self.name} {tier} tier failed after {len(found.record_ids)} records: {e}"
            )
            result.errors[f"{self.name}.{tier}"] = e
        else:
            logger.debug(f"{self.name} {tier} tier matched {len(found.record_ids)} records")
        result.extend(found.record_ids)
        return found.record_ids

    def _exact(
        self,
        found: StrategyResult,
        query: MatchQuery,
        value: str,
        name: Optional[ParsedName]
    ) -> None:
        if name:
            pair = {'first': name.first, 'last': name.last}
            for table in ('customer', 'contact'):
                found.extend(self.store.find_exact(
                    table, pair, query.predicate, ignore_case=True
                ))

        for table, field in self.NAME_FIELDS:
            found.extend(self.store.find_exact(
                table, {field: value}, query.predicate, ignore_case=True
            ))
        if self.config.address_search:
            found.extend(self.store.find_exact(
                'location', {'address1': value}, query.predicate, ignore_case=True
            ))

    def _substring(
        self,
        found: StrategyResult,
        query: MatchQuery,
        value: str,
        name: Optional[ParsedName]
    ) -> None:
        long_enough = len(value) >= query.min_substring_length

        name_criteria: List[Dict[str, str]] = []
        if name:
            name_criteria = [{'first': name.first, 'last': name.last}]
        elif long_enough:
            name_criteria = [{'first': value}, {'last': value}]

        customer_criteria = list(name_criteria)
        if long_enough:
            customer_criteria = [{'company': value}, {'ship_company': value}] + customer_criteria

        for criteria in customer_criteria:
            found.extend(self.store.find_substring('customer', criteria, query.predicate))

        if self.config.address_search and long_enough:
            found.extend(self.store.find_substring(
                'location', {'address1': value}, query.predicate
            ))

        for criteria in name_criteria:
            found.extend(self.store.find_substring('contact', criteria, query.predicate))

    def _fuzzy(
        self,
        found: StrategyResult,
        query: MatchQuery,
        value: str,
        name: Optional[ParsedName]
    ) -> None:
        searches: List[Dict[IndexedField, str]] = []
        if name:
            for table in ('customer', 'contact'):
                searches.append({
                    IndexedField(table, 'last'): name.last,
                    IndexedField(table, 'first'): name.first,
                })

        for table, field in self.NAME_FIELDS:
            searches.append({IndexedField(table, field): value})
        if self.config.address_search:
            searches.append({IndexedField('location', 'address1'): value})

        for criteria in searches:
            if all(f in self.fuzzy_index.fields for f in criteria):
                found.extend(self.fuzzy_index.search(criteria, query.predicate).record_ids)


def build_strategies(
    store: RecordStore,
    config: SearchConfig,
    fuzzy_index: FuzzyIndex,
    name_parser: Optional[NameParser] = None
) -> List[Strategy]:
    """All strategies, in the order their results are merged."""
    return [
        PhoneStrategy(store, config),
        EmailStrategy(store, config),
        IdentifierStrategy(store, config),
        StructuredNameStrategy(store, config),
        FreeTextStrategy(store, config, fuzzy_index, name_parser),
        CardStrategy(store, config),
    ]
