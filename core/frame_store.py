"""In-memory record store backed by pandas DataFrames."""

import logging
import re
from collections import abc
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Union

import pandas as pd

from core.exceptions import StoreFailure
from core.store import Criteria

logger = logging.getLogger(__name__)

ID_COLUMNS = ('id', 'customer_id', 'contact_id', 'domain_id', 'partition')


def like_to_regex(pattern: str) -> str:
    """Translate a LIKE pattern into an anchored-by-fullmatch regex."""
    parts = []
    for char in pattern:
        if char == '_':
            parts.append('.')
        elif char == '%':
            parts.append('.*')
        else:
            parts.append(re.escape(char))
    return ''.join(parts)


class DataFrameRecordStore:
    """
    Record store over one DataFrame per table.

    The ``customer`` table holds the records themselves, keyed by ``id``.
    Every other table links to its owner through ``customer_id``; service
    accounts reference the ``domain`` table through ``domain_id``.

    Predicates are either a mapping of customer columns to required values
    or a callable receiving a customer row and returning a bool.
    """

    OWNER_COLUMN = 'customer_id'

    def __init__(self, tables: Mapping[str, pd.DataFrame]):
        if 'customer' not in tables:
            raise ValueError("A 'customer' table is required")
        self._tables: Dict[str, pd.DataFrame] = {
            name: frame.reset_index(drop=True)
            for name, frame in tables.items()
        }

    @classmethod
    def from_records(cls, **tables: Iterable[Mapping[str, Any]]) -> 'DataFrameRecordStore':
        """Build a store from lists of row dictionaries, one per table."""
        return cls({
            name: pd.DataFrame(list(rows))
            for name, rows in tables.items()
        })

    @classmethod
    def from_csv_dir(cls, directory: Union[str, Path]) -> 'DataFrameRecordStore':
        """
        Load every ``<table>.csv`` file of a directory.

        Values are read as text; identity columns are converted to integers.

        Args:
            directory: Directory holding the CSV files

        Returns:
            DataFrameRecordStore: Store over the loaded tables
        """
        tables = {}
        for path in sorted(Path(directory).glob('*.csv')):
            frame = pd.read_csv(path, dtype=str, keep_default_na=False)
            for column in ID_COLUMNS:
                if column in frame.columns:
                    frame[column] = pd.to_numeric(frame[column], errors='coerce').astype('Int64')
            tables[path.stem] = frame
            logger.debug(f"Loaded {len(frame)} rows into {path.stem}")
        return cls(tables)

    @contextmanager
    def _lookup(self, description: str):
        try:
            yield
        except StoreFailure:
            raise
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise StoreFailure(f"{description} failed: {e}") from e

    def _frame(self, table: str) -> pd.DataFrame:
        try:
            return self._tables[table]
        except KeyError:
            raise StoreFailure(f"Unknown table: {table}") from None

    @staticmethod
    def _column(frame: pd.DataFrame, table: str, field: str) -> pd.Series:
        if field not in frame.columns:
            raise StoreFailure(f"Unknown column: {table}.{field}")
        return frame[field]

    @staticmethod
    def _text(column: pd.Series, ignore_case: bool = False) -> pd.Series:
        text = column.astype('string').fillna('')
        return text.str.lower() if ignore_case else text

    def _criteria_mask(
        self,
        frame: pd.DataFrame,
        table: str,
        criteria: Criteria,
        ignore_case: bool = False
    ) -> pd.Series:
        mask = pd.Series(True, index=frame.index)
        for field, value in criteria.items():
            column = self._column(frame, table, field)
            if value is None:
                mask &= self._text(column) == ''
            elif isinstance(value, (list, tuple, set, frozenset)):
                if ignore_case:
                    wanted = {str(v).lower() for v in value}
                    mask &= self._text(column, True).isin(wanted)
                else:
                    mask &= column.isin(list(value))
            elif isinstance(value, str):
                text = self._text(column, ignore_case)
                mask &= text == (value.lower() if ignore_case else value)
            else:
                mask &= (column == value).fillna(False).astype(bool)
        return mask

    def _owners(
        self,
        table: str,
        frame: pd.DataFrame,
        mask: pd.Series,
        predicate: Any
    ) -> List[int]:
        owner = 'id' if table == 'customer' else self.OWNER_COLUMN
        record_ids = []
        seen = set()
        for value in self._column(frame, table, owner)[mask].tolist():
            if pd.isna(value):
                continue
            record_id = int(value)
            if record_id not in seen:
                seen.add(record_id)
                record_ids.append(record_id)
        return self._scope(record_ids, predicate)

    def _scope(self, record_ids: List[int], predicate: Any) -> List[int]:
        """Keep ids of existing customers that satisfy the predicate."""
        if not record_ids:
            return []
        customers = self._tables['customer']
        rows = customers[customers['id'].isin(record_ids)]

        if isinstance(predicate, abc.Mapping):
            for field, value in predicate.items():
                rows = rows[self._column(rows, 'customer', field) == value]
        elif callable(predicate):
            keep = [bool(predicate(row)) for _, row in rows.iterrows()]
            rows = rows[keep] if keep else rows
        elif predicate is not None:
            raise StoreFailure(f"Unsupported predicate: {predicate!r}")

        allowed = {int(value) for value in rows['id'].tolist()}
        return [record_id for record_id in record_ids if record_id in allowed]

    def find_exact(
        self,
        table: str,
        criteria: Criteria,
        predicate: Any = None,
        ignore_case: bool = False
    ) -> List[int]:
        with self._lookup(f"exact lookup on {table}"):
            frame = self._frame(table)
            mask = self._criteria_mask(frame, table, criteria, ignore_case)
            return self._owners(table, frame, mask, predicate)

    def find_prefix(
        self,
        table: str,
        field: str,
        prefix: str,
        predicate: Any = None,
        ignore_case: bool = False,
        criteria: Optional[Criteria] = None
    ) -> List[int]:
        with self._lookup(f"prefix lookup on {table}.{field}"):
            frame = self._frame(table)
            text = self._text(self._column(frame, table, field), ignore_case)
            mask = text.str.startswith(prefix.lower() if ignore_case else prefix)
            mask &= self._criteria_mask(frame, table, criteria or {})
            return self._owners(table, frame, mask, predicate)

    def find_substring(
        self,
        table: str,
        criteria: Mapping[str, str],
        predicate: Any = None
    ) -> List[int]:
        with self._lookup(f"substring lookup on {table}"):
            frame = self._frame(table)
            mask = pd.Series(True, index=frame.index)
            for field, value in criteria.items():
                text = self._text(self._column(frame, table, field), True)
                mask &= text.str.contains(value.lower(), regex=False)
            return self._owners(table, frame, mask, predicate)

    def find_like(
        self,
        table: str,
        field: str,
        pattern: str,
        predicate: Any = None,
        criteria: Optional[Criteria] = None
    ) -> List[int]:
        with self._lookup(f"pattern lookup on {table}.{field}"):
            frame = self._frame(table)
            text = self._text(self._column(frame, table, field))
            mask = text.str.fullmatch(like_to_regex(pattern)).fillna(False).astype(bool)
            mask &= self._criteria_mask(frame, table, criteria or {})
            return self._owners(table, frame, mask, predicate)

    def find_service_accounts(
        self,
        username: str,
        domain: str,
        predicate: Any = None
    ) -> List[int]:
        with self._lookup("service account lookup"):
            accounts = self._frame('service_account')
            domains = self._frame('domain')
            joined = accounts.merge(domains, on='domain_id', how='inner')
            mask = (
                (self._text(joined['username']) == username)
                & (self._text(joined['domain']) == domain)
            )
            return self._owners('service_account', joined, mask, predicate)

    def scan_values(self, table: str, field: str) -> Iterator[str]:
        with self._lookup(f"scan of {table}.{field}"):
            values = self._column(self._frame(table), table, field).tolist()
        for value in values:
            if value is None or (not isinstance(value, str) and pd.isna(value)):
                continue
            text = str(value)
            if text:
                yield text
