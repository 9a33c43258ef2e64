"""Errors raised by the record search system."""


class SearchError(Exception):
    """Base class for search failures."""


class IndexUnavailable(SearchError):
    """A fuzzy corpus is missing and could not be rebuilt."""


class LockContention(SearchError):
    """An index rebuild or append could not take its exclusive lock."""


class StoreFailure(SearchError):
    """The record store rejected or failed a lookup."""
