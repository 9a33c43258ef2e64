"""Contract of the record store consulted by the search strategies.

Every lookup returns the identities of owning customer records in the order
the store found them, without duplicates. ``criteria`` mappings are ANDed;
a scalar criterion means equality, a list/tuple/set means membership and
``None`` means the column is null or empty. ``predicate`` is the caller's
scoping filter and is passed through uninterpreted.
"""

from typing import Any, Iterator, List, Mapping, Optional, Protocol

Criteria = Mapping[str, Any]


class RecordStore(Protocol):
    """Lookups over customer records and their related sub-records."""

    def find_exact(
        self,
        table: str,
        criteria: Criteria,
        predicate: Any = None,
        ignore_case: bool = False
    ) -> List[int]:
        """Records with rows in ``table`` equal to every criterion."""
        ...

    def find_prefix(
        self,
        table: str,
        field: str,
        prefix: str,
        predicate: Any = None,
        ignore_case: bool = False,
        criteria: Optional[Criteria] = None
    ) -> List[int]:
        """Records with a ``table.field`` value starting with ``prefix``."""
        ...

    def find_substring(
        self,
        table: str,
        criteria: Mapping[str, str],
        predicate: Any = None
    ) -> List[int]:
        """Records whose row contains every criterion, ignoring case."""
        ...

    def find_like(
        self,
        table: str,
        field: str,
        pattern: str,
        predicate: Any = None,
        criteria: Optional[Criteria] = None
    ) -> List[int]:
        """Records matching a LIKE pattern (``_`` one character, ``%`` any run)."""
        ...

    def find_service_accounts(
        self,
        username: str,
        domain: str,
        predicate: Any = None
    ) -> List[int]:
        """Records owning a service account ``username`` on domain ``domain``."""
        ...

    def scan_values(self, table: str, field: str) -> Iterator[str]:
        """Every non-empty value of ``table.field``, unscoped."""
        ...
