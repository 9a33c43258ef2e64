"""
Record Search
=============

Resolves free-text or structured search strings into customer records using
a cascade of matching strategies backed by a maintainable fuzzy-match index.

Key Features:
- Phone, email, identifier, structured name, free text and card strategies
- Exact, substring and fuzzy tiers for names, companies and addresses
- Durable per-field fuzzy corpora with lock-guarded rebuild and append
- Multi-field fuzzy matching with AND semantics
- Concurrent strategy execution with per-strategy failure isolation
"""

from core.matcher import RecordSearcher
from core.fuzzy_index import FuzzyIndex
from core.frame_store import DataFrameRecordStore

from config.models import (
    IdentifierFormat,
    IndexedField,
    SearchConfig,
    SearchResult
)

__version__ = "1.0.0"
