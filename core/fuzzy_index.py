"""Durable per-field corpora for approximate matching.

Each indexed field is materialized as a newline-delimited UTF-8 file named
``<table>.<field>`` inside the index directory. Rebuilds write a shadow
``.tmp`` file and atomically replace the live one; appends write in place.
Both take an advisory exclusive lock on ``<table>.<field>.lock`` so only one
writer touches a field at a time. Readers never lock: they always see either
the previous or the new complete corpus (an append in flight may only add a
trailing partial line).
"""

import fcntl
import logging
import os
import time
from collections import defaultdict
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

import xxhash

from config.models import DEFAULT_FUZZY_FIELDS, IndexedField, StrategyResult
from core.exceptions import IndexUnavailable, LockContention, SearchError
from core.store import RecordStore
from core.validator import ToleranceValidator

logger = logging.getLogger(__name__)

FieldRef = Union[str, IndexedField]


class FuzzyIndex:
    """
    Approximate-match corpora for a fixed set of indexed fields.

    Instances hold no mutable state besides configuration and may be shared
    between threads; coordination between writers happens through file locks
    and therefore also holds across processes.
    """

    LOCK_POLL_INTERVAL = 0.05

    def __init__(
        self,
        store: RecordStore,
        index_dir: Union[str, Path],
        fields: Iterable[FieldRef] = DEFAULT_FUZZY_FIELDS,
        fuzziness: Optional[int] = None,
        lock_timeout: Optional[float] = None
    ):
        """
        Initialize the index.

        Args:
            store: Record store scanned on rebuild and used to resolve owners
            index_dir: Directory holding the corpus files
            fields: Indexed fields, as ``IndexedField`` or ``table.field``
            fuzziness: Edit distance tolerance, None for 10% of the query length
            lock_timeout: Seconds to wait for a field lock, None to block
        """
        self.store = store
        self.index_dir = Path(index_dir)
        self.fields = tuple(IndexedField.parse(f) for f in fields)
        self.validator = ToleranceValidator(fuzziness)
        self.lock_timeout = lock_timeout

    def _field(self, field: FieldRef) -> IndexedField:
        indexed = IndexedField.parse(field)
        if indexed not in self.fields:
            raise ValueError(f"{indexed} is not an indexed field")
        return indexed

    def blob_path(self, field: FieldRef) -> Path:
        """Location of the corpus file for a field."""
        return self.index_dir / self._field(field).name

    @contextmanager
    def _exclusive(self, field: IndexedField):
        """Hold the advisory write lock of a field."""
        self.index_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
        lock_path = self.index_dir / f"{field.name}.lock"
        with open(lock_path, 'a') as lock_file:
            self._acquire(lock_file, field)
            try:
                yield
            finally:
                fcntl.flock(lock_file, fcntl.LOCK_UN)

    def _acquire(self, lock_file, field: IndexedField) -> None:
        if self.lock_timeout is None:
            try:
                fcntl.flock(lock_file, fcntl.LOCK_EX)
            except OSError as e:
                raise LockContention(f"can't lock {field}: {e}") from e
            return

        deadline = time.monotonic() + self.lock_timeout
        while True:
            try:
                fcntl.flock(lock_file, fcntl.LOCK_EX | fcntl.LOCK_NB)
                return
            except BlockingIOError:
                if time.monotonic() >= deadline:
                    raise LockContention(
                        f"can't lock {field} within {self.lock_timeout}s"
                    ) from None
                time.sleep(self.LOCK_POLL_INTERVAL)
            except OSError as e:
                raise LockContention(f"can't lock {field}: {e}") from e

    def is_stale(self) -> bool:
        """True when any configured corpus file is missing."""
        return any(not self.blob_path(f).exists() for f in self.fields)

    def check_and_rebuild(self) -> None:
        """Rebuild every corpus if any of them is missing."""
        if self.is_stale():
            logger.info("Fuzzy index missing or incomplete, rebuilding")
            self.rebuild()

    def rebuild(self, fields: Optional[Iterable[FieldRef]] = None) -> None:
        """
        Rebuild corpora from the record store.

        Args:
            fields: Fields to rebuild, all configured fields by default
        """
        for field in (fields if fields is not None else self.fields):
            self.rebuild_field(field)

    def rebuild_field(self, field: FieldRef) -> int:
        """
        Rewrite one corpus from the store and swap it in atomically.

        Args:
            field: Field to rebuild

        Returns:
            int: Number of values written

        Raises:
            LockContention: If the field lock cannot be taken
        """
        indexed = self._field(field)
        start_time = time.time()
        path = self.blob_path(indexed)
        shadow = path.with_name(f"{path.name}.tmp")

        with self._exclusive(indexed):
            count = 0
            try:
                with open(shadow, 'w', encoding='utf-8', newline='\n') as corpus:
                    for value in self.store.scan_values(indexed.table, indexed.field):
                        if '\n' in value or '\r' in value:
                            logger.debug(f"Skipping multi-line value in {indexed}")
                            continue
                        corpus.write(f"{value}\n")
                        count += 1
                    corpus.flush()
                    os.fsync(corpus.fileno())
                os.replace(shadow, path)
            except Exception:
                shadow.unlink(missing_ok=True)
                raise

        logger.info(
            f"Rebuilt {indexed}: {count} values, digest {self.digest(indexed)}, "
            f"{time.time() - start_time:.2f} seconds"
        )
        return count

    def append(self, field: FieldRef, value: Optional[str]) -> bool:
        """
        Add a single value to a corpus without rebuilding it.

        Args:
            field: Field the value belongs to
            value: New value; empty values are ignored

        Returns:
            bool: Whether the value was written

        Raises:
            LockContention: If the field lock cannot be taken
        """
        indexed = self._field(field)
        if value is None or not str(value):
            return False
        value = str(value)
        if '\n' in value or '\r' in value:
            logger.warning(f"Refusing to append multi-line value to {indexed}")
            return False

        self.check_and_rebuild()
        with self._exclusive(indexed):
            with open(self.blob_path(indexed), 'a', encoding='utf-8', newline='\n') as corpus:
                corpus.write(f"{value}\n")
        return True

    def append_record(
        self,
        first: Optional[str] = None,
        last: Optional[str] = None,
        company: Optional[str] = None,
        address1: Optional[str] = None,
        ship_company: Optional[str] = None
    ) -> None:
        """Append the indexed values of a newly created or changed customer."""
        values = {
            IndexedField('customer', 'first'): first,
            IndexedField('customer', 'last'): last,
            IndexedField('customer', 'company'): company,
            IndexedField('location', 'address1'): address1,
            IndexedField('customer', 'ship_company'): ship_company,
        }
        for field, value in values.items():
            if field in self.fields:
                self.append(field, value)

    def values(self, field: FieldRef) -> List[str]:
        """
        Read a corpus.

        Raises:
            IndexUnavailable: If the corpus file does not exist
        """
        path = self.blob_path(field)
        try:
            with open(path, encoding='utf-8') as corpus:
                return [line.rstrip('\n') for line in corpus if line.rstrip('\n')]
        except FileNotFoundError as e:
            raise IndexUnavailable(f"can't open {path}: {e}") from e

    def digest(self, field: FieldRef) -> str:
        """xxh64 digest of a corpus file."""
        hasher = xxhash.xxh64()
        path = self.blob_path(field)
        try:
            with open(path, 'rb') as corpus:
                for chunk in iter(lambda: corpus.read(65536), b''):
                    hasher.update(chunk)
        except FileNotFoundError as e:
            raise IndexUnavailable(f"can't open {path}: {e}") from e
        return hasher.hexdigest()

    def approximate(self, field: FieldRef, query: str) -> List[str]:
        """Distinct corpus values within tolerance of the query."""
        return self.validator.filter(query, self.values(field))

    def lookup(self, field: FieldRef, query: str, predicate: Any = None) -> List[int]:
        """
        Owners of every corpus value within tolerance of the query.

        Args:
            field: Field to search
            query: Search string
            predicate: Caller scoping filter

        Returns:
            List[int]: Distinct owning record ids
        """
        indexed = self._field(field)
        matches = self.approximate(indexed, query)
        if not matches:
            return []
        return self.store.find_exact(
            indexed.table,
            {indexed.field: tuple(matches)},
            predicate
        )

    def search(
        self,
        criteria: Mapping[FieldRef, str],
        predicate: Any = None,
        name: str = 'fuzzy'
    ) -> StrategyResult:
        """
        Fuzzy search across several fields with AND semantics.

        A record qualifies only when every field of ``criteria`` matched it.
        Missing corpora are rebuilt first.

        Args:
            criteria: Query value per field
            predicate: Caller scoping filter
            name: Label of the returned result

        Returns:
            StrategyResult: Qualifying records and their per-field hit counts

        Raises:
            IndexUnavailable: If a missing corpus could not be rebuilt
        """
        try:
            self.check_and_rebuild()
        except IndexUnavailable:
            raise
        except (SearchError, OSError) as e:
            raise IndexUnavailable(f"fuzzy index rebuild failed: {e}") from e

        hits: Dict[int, int] = defaultdict(int)
        order: List[int] = []
        for field, query in criteria.items():
            for record_id in self.lookup(field, query, predicate):
                if record_id not in hits:
                    order.append(record_id)
                hits[record_id] += 1

        result = StrategyResult(strategy=name, hit_counts=dict(hits))
        result.extend(r for r in order if hits[r] == len(criteria))
        return result
