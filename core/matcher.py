"""Main record search implementation."""

from typing import Any, Dict, List, Mapping, Optional
from concurrent.futures import ThreadPoolExecutor
import logging
import time

from config.models import MatchQuery, SearchConfig, SearchResult, StrategyResult
from config.rules import IdentifierRules
from core.classifier import Classification, QueryClassifier
from core.exceptions import SearchError
from core.fuzzy_index import FieldRef, FuzzyIndex
from core.name_parser import NameParser
from core.store import RecordStore
from core.strategies import EmailStrategy, Strategy, build_strategies


class RecordSearcher:
    """
    Resolves search strings into customer records.

    Applicable strategies run concurrently; their results are merged in a
    fixed strategy order and de-duplicated by record id, keeping the first
    occurrence.
    """

    def __init__(
        self,
        store: RecordStore,
        config: Optional[SearchConfig] = None,
        name_parser: Optional[NameParser] = None,
        fuzzy_index: Optional[FuzzyIndex] = None,
        rules: Optional[IdentifierRules] = None
    ):
        """
        Initialize the searcher.

        Args:
            store: Record store to search
            config: Search configuration, defaults when omitted
            name_parser: Parser used to split free text into names
            fuzzy_index: Prebuilt fuzzy index; one is created from the config otherwise
            rules: Identifier rules; derived from the config otherwise
        """
        self.store = store
        self.config = config or SearchConfig()
        self.classifier = QueryClassifier(self.config, rules)
        self.fuzzy_index = fuzzy_index or FuzzyIndex(
            store,
            self.config.index_dir,
            fields=self.config.fuzzy_fields,
            fuzziness=self.config.fuzziness,
            lock_timeout=self.config.lock_timeout
        )
        self.strategies: List[Strategy] = build_strategies(
            store, self.config, self.fuzzy_index, name_parser
        )

        self._initialize_logging()

    def _initialize_logging(self) -> None:
        """Setup logging configuration."""
        self.logger = logging.getLogger(__name__)
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(
                logging.Formatter(
                    '%(asctime)s - %(levelname)s - %(message)s'
                )
            )
            self.logger.addHandler(handler)
            self.logger.setLevel(logging.INFO)

    def smart_search(
        self,
        search: str,
        predicate: Any = None,
        suppress_fuzzy_on_exact: bool = False,
        elevated: bool = False
    ) -> SearchResult:
        """
        Search by phone, email, identifier, name, company, address or card.

        Args:
            search: Raw search string
            predicate: Caller scoping filter passed to every lookup
            suppress_fuzzy_on_exact: Skip substring and fuzzy matching after an exact name hit
            elevated: Whether the caller may run substring searches on 3 characters

        Returns:
            SearchResult: De-duplicated records and any per-strategy failures
        """
        query = MatchQuery(
            search=search,
            predicate=predicate,
            suppress_fuzzy_on_exact=suppress_fuzzy_on_exact,
            elevated=elevated
        )
        return self.run(query)

    def run(self, query: MatchQuery) -> SearchResult:
        """Classify a query, run every applicable strategy and merge the results."""
        start_time = time.time()
        classification = self.classifier.classify(query.search)
        applicable = [s for s in self.strategies if s.applies(classification)]

        if not applicable:
            self.logger.debug(f"Rejected search {query.search!r}")
            return SearchResult()

        if len(applicable) == 1:
            outcomes = [self._run_strategy(applicable[0], query, classification)]
        else:
            workers = min(self.config.max_workers, len(applicable))
            with ThreadPoolExecutor(max_workers=workers) as executor:
                futures = [
                    executor.submit(self._run_strategy, strategy, query, classification)
                    for strategy in applicable
                ]
                outcomes = [future.result() for future in futures]

        result = self._aggregate(outcomes)
        self.logger.debug(
            f"Search {query.search!r} matched {len(result)} records "
            f"in {time.time() - start_time:.2f} seconds"
        )
        return result

    def _run_strategy(
        self,
        strategy: Strategy,
        query: MatchQuery,
        classification: Classification
    ) -> StrategyResult:
        """Run one strategy, turning its failure into a recorded error."""
        try:
            return strategy.match(query, classification)
        except SearchError as e:
            self.logger.warning(f"Strategy {strategy.name} failed: {e}")
            return StrategyResult(strategy.name, errors={strategy.name: e})

    def _aggregate(self, outcomes: List[StrategyResult]) -> SearchResult:
        result = SearchResult(results=outcomes)
        seen = set()
        for outcome in outcomes:
            for record_id in outcome.record_ids:
                if record_id not in seen:
                    seen.add(record_id)
                    result.record_ids.append(record_id)
            result.failures.update(outcome.errors)
        return result

    def email_search(self, email: str, predicate: Any = None) -> SearchResult:
        """
        Search invoice destinations, contact emails and service accounts.

        Args:
            email: Email address
            predicate: Caller scoping filter

        Returns:
            SearchResult: Matching records, usually none or one
        """
        strategy = next(s for s in self.strategies if isinstance(s, EmailStrategy))
        if '@' not in (email or ''):
            return SearchResult()
        classification = Classification(search=email, email=email.strip())
        outcome = self._run_strategy(strategy, MatchQuery(email, predicate), classification)
        return self._aggregate([outcome])

    def fuzzy_search(
        self,
        criteria: Mapping[FieldRef, str],
        predicate: Any = None
    ) -> SearchResult:
        """
        Approximate search over indexed fields, ANDed across fields.

        Args:
            criteria: Query value per field, e.g. ``{'first': 'jon', 'last': 'smth'}``
            predicate: Caller scoping filter

        Returns:
            SearchResult: Records matching every field
        """
        try:
            outcome = self.fuzzy_index.search(criteria, predicate)
        except SearchError as e:
            self.logger.warning(f"Fuzzy search failed: {e}")
            outcome = StrategyResult('fuzzy', errors={'fuzzy': e})
        return self._aggregate([outcome])

    def rebuild_index(self) -> None:
        """Rebuild every fuzzy corpus from the record store."""
        self.fuzzy_index.rebuild()

    def append_record(self, **values: Optional[str]) -> None:
        """Append a changed record's indexed values to the fuzzy corpora."""
        self.fuzzy_index.append_record(**values)

    def summary(self, result: SearchResult) -> Dict[str, int]:
        """Record counts per strategy, for diagnostics."""
        return {outcome.strategy: len(outcome.record_ids) for outcome in result.results}
