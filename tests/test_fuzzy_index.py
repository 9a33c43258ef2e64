"""Tests for the durable fuzzy-match index."""

import fcntl

import pytest

from config.models import DEFAULT_FUZZY_FIELDS, IndexedField
from conftest import build_store, customer
from core.exceptions import IndexUnavailable, LockContention, StoreFailure
from core.fuzzy_index import FuzzyIndex


class BrokenScanStore:
    """Delegates to a real store but cannot scan."""

    def __init__(self, store):
        self.store = store

    def scan_values(self, table, field):
        raise StoreFailure(f"scan of {table}.{field} timed out")

    def __getattr__(self, name):
        return getattr(self.store, name)


@pytest.fixture
def index(sample_store, index_dir):
    return FuzzyIndex(sample_store, index_dir)


class TestRebuild:
    def test_creates_every_corpus(self, index, index_dir):
        assert index.is_stale()
        index.rebuild()
        assert not index.is_stale()
        for field in DEFAULT_FUZZY_FIELDS:
            assert (index_dir / field.name).exists()
        assert not list(index_dir.glob('*.tmp'))

    def test_corpus_holds_raw_values(self, index):
        index.rebuild()
        assert index.values('customer.last') == [
            'Smith', 'Doe', 'Roe', 'Walker', 'Smith', 'Smyth', 'Builder',
        ]
        assert index.values('customer.ship_company') == ['Smyth Logistics']
        assert index.values('location.address1') == ['1234A Elm Street', '77 Harbour Road']

    def test_rebuild_is_deterministic(self, index):
        index.rebuild()
        first_digest = index.digest('customer.company')
        first_bytes = index.blob_path('customer.company').read_bytes()
        index.rebuild()
        assert index.digest('customer.company') == first_digest
        assert index.blob_path('customer.company').read_bytes() == first_bytes

    def test_rebuild_field_returns_count(self, index):
        assert index.rebuild_field('customer.company') == 4

    def test_skips_multi_line_values(self, index_dir):
        store = build_store([
            customer(1, 'Ann', 'Lee', company='Lee\nCo'),
            customer(2, 'Bo', 'Kim', company='Kim Ltd'),
        ])
        index = FuzzyIndex(store, index_dir, fields=['customer.company'])
        assert index.rebuild_field('company') == 1
        assert index.values('company') == ['Kim Ltd']

    def test_failed_scan_leaves_no_shadow(self, sample_store, index_dir):
        index = FuzzyIndex(BrokenScanStore(sample_store), index_dir)
        with pytest.raises(StoreFailure):
            index.rebuild_field('customer.last')
        assert not index.blob_path('customer.last').exists()
        assert not (index_dir / 'customer.last.tmp').exists()

    def test_check_and_rebuild_only_when_missing(self, index):
        index.rebuild()
        index.append('customer.first', 'Zed')
        index.check_and_rebuild()
        assert 'Zed' in index.values('customer.first')

        index.blob_path('contact.last').unlink()
        index.check_and_rebuild()
        assert 'Zed' not in index.values('customer.first')
        assert index.values('contact.last') == ['Gibbons', 'Contact']


class TestAppend:
    def test_append_value(self, index):
        index.rebuild()
        assert index.append('customer.last', 'Smithers')
        assert index.values('customer.last')[-1] == 'Smithers'

    @pytest.mark.parametrize("value", ['', None, 'two\nlines'])
    def test_ignored_values(self, index, value):
        index.rebuild()
        before = index.values('customer.last')
        assert not index.append('customer.last', value)
        assert index.values('customer.last') == before

    def test_append_rebuilds_stale_index_first(self, index):
        assert index.append('customer.first', 'Zed')
        assert not index.is_stale()
        assert index.values('customer.first')[-1] == 'Zed'
        assert 'Bob' in index.values('customer.first')

    def test_append_record(self, index):
        index.rebuild()
        index.append_record(first='Zed', last='Zulu', address1='1 Pier Lane')
        assert index.values('customer.first')[-1] == 'Zed'
        assert index.values('location.address1')[-1] == '1 Pier Lane'
        assert 'Zulu' not in index.values('customer.company')

    def test_append_record_skips_unindexed_fields(self, sample_store, index_dir):
        index = FuzzyIndex(sample_store, index_dir, fields=['customer.first'])
        index.append_record(first='Zed', company='Zulu Inc')
        assert index.values('customer.first')[-1] == 'Zed'


class TestLookup:
    def test_missing_corpus(self, index):
        with pytest.raises(IndexUnavailable):
            index.values('customer.first')

    def test_non_indexed_field(self, index):
        with pytest.raises(ValueError):
            index.blob_path('customer.fax')

    def test_lookup_returns_distinct_owners(self, index):
        index.rebuild()
        assert index.lookup('customer.last', 'smith') == [1, 8, 9]
        assert index.lookup('customer.first', 'jon') == [1, 2, 3, 8]

    def test_lookup_respects_predicate(self, index):
        index.rebuild()
        assert index.lookup('customer.last', 'smith', {'company': 'Acme Corp'}) == [1]

    def test_approximate_is_case_insensitive(self, index):
        index.rebuild()
        assert index.approximate('customer.company', 'GLOBEX') == ['Globex']

    def test_approximate_finds_query_inside_values(self, index_dir):
        store = build_store([
            customer(1, 'Ann', 'Smithers'),
            customer(2, 'Bo', 'Smith'),
            customer(3, 'Cy', 'Jones'),
        ])
        index = FuzzyIndex(store, index_dir, fields=['customer.last'], fuzziness=1)
        index.rebuild()
        assert index.approximate('customer.last', 'smth') == ['Smithers', 'Smith']
        assert index.lookup('customer.last', 'smth') == [1, 2]


class TestSearch:
    def test_fields_are_anded(self, index_dir):
        store = build_store([
            customer(1, 'John', 'Smith'),
            customer(2, 'John', 'Doe'),
        ])
        index = FuzzyIndex(store, index_dir, fields=['customer.first', 'customer.last'])
        result = index.search({'customer.first': 'john', 'customer.last': 'smith'})
        assert result.record_ids == [1]
        assert result.hit_counts == {1: 2, 2: 1}

    def test_explicit_fuzziness(self, sample_store, index_dir):
        index = FuzzyIndex(sample_store, index_dir, fuzziness=2)
        result = index.search({
            IndexedField('customer', 'first'): 'jon',
            IndexedField('customer', 'last'): 'smth',
        })
        assert 1 in result.record_ids
        assert 8 in result.record_ids

    def test_search_builds_missing_corpora(self, index):
        assert index.is_stale()
        assert index.search({'customer.company': 'globx'}).record_ids == [3]
        assert not index.is_stale()

    def test_unbuildable_index(self, sample_store, index_dir):
        index = FuzzyIndex(BrokenScanStore(sample_store), index_dir)
        with pytest.raises(IndexUnavailable):
            index.search({'customer.last': 'smith'})


class TestLocking:
    @pytest.fixture
    def held_lock(self, index_dir):
        index_dir.mkdir(parents=True)
        with open(index_dir / 'customer.last.lock', 'a') as lock_file:
            fcntl.flock(lock_file, fcntl.LOCK_EX)
            yield
            fcntl.flock(lock_file, fcntl.LOCK_UN)

    def test_rebuild_times_out(self, sample_store, index_dir, held_lock):
        index = FuzzyIndex(sample_store, index_dir, lock_timeout=0.1)
        with pytest.raises(LockContention):
            index.rebuild_field('customer.last')

    def test_other_fields_are_not_blocked(self, sample_store, index_dir, held_lock):
        index = FuzzyIndex(sample_store, index_dir, lock_timeout=0.1)
        assert index.rebuild_field('customer.first') == 7

    def test_readers_ignore_the_lock(self, sample_store, index_dir):
        index = FuzzyIndex(sample_store, index_dir, lock_timeout=0.1)
        index.rebuild()
        with open(index_dir / 'customer.last.lock', 'a') as lock_file:
            fcntl.flock(lock_file, fcntl.LOCK_EX)
            try:
                assert index.lookup('customer.last', 'smyth') == [1, 8, 9]
                with pytest.raises(LockContention):
                    index.append('customer.last', 'Smithers')
            finally:
                fcntl.flock(lock_file, fcntl.LOCK_UN)
