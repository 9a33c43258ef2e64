"""Shared fixtures for record search tests."""

import pandas as pd
import pytest

from config.models import SearchConfig
from core.frame_store import DataFrameRecordStore
from core.matcher import RecordSearcher

CUSTOMER_COLUMNS = [
    'id', 'partition', 'first', 'last', 'company', 'ship_company',
    'daytime', 'night', 'mobile', 'fax', 'external_id',
]

TABLE_COLUMNS = {
    'contact': ['customer_id', 'first', 'last'],
    'contact_phone': ['customer_id', 'phonenum'],
    'contact_email': ['customer_id', 'emailaddress'],
    'invoice_dest': ['customer_id', 'dest'],
    'location': ['customer_id', 'address1'],
    'payment': ['customer_id', 'payby', 'payinfo', 'paymask'],
    'service_account': ['customer_id', 'username', 'domain_id'],
    'domain': ['domain_id', 'domain'],
}


def customer(record_id, first='', last='', partition=1, **fields):
    """A customer row with every column present."""
    row = dict.fromkeys(CUSTOMER_COLUMNS, '')
    row.update(id=record_id, partition=partition, first=first, last=last, **fields)
    return row


def build_store(customers, **tables):
    frames = {'customer': pd.DataFrame(customers, columns=CUSTOMER_COLUMNS)}
    for name, columns in TABLE_COLUMNS.items():
        frames[name] = pd.DataFrame(tables.get(name, []), columns=columns)
    return DataFrameRecordStore(frames)


@pytest.fixture
def index_dir(tmp_path):
    return tmp_path / 'cache'


@pytest.fixture
def sample_store():
    """A small customer base touching every table."""
    return build_store(
        [
            customer(1, 'John', 'Smith', company='Acme Corp',
                     daytime='555-123-4567', external_id='5551234567'),
            customer(2, 'John', 'Doe', company='Initech'),
            customer(3, 'Jane', 'Roe', company='Globex',
                     night='555-987-6543 x12'),
            customer(4, 'Alice', 'Walker', partition=2, external_id='42'),
            customer(8, 'John', 'Smith', company='Acme Corporation'),
            customer(9, 'Mary', 'Smyth', ship_company='Smyth Logistics'),
            customer(42, 'Bob', 'Builder'),
        ],
        contact=[
            {'customer_id': 2, 'first': 'Peter', 'last': 'Gibbons'},
            {'customer_id': 99, 'first': 'Orphan', 'last': 'Contact'},
        ],
        contact_phone=[{'customer_id': 42, 'phonenum': '5550001111'}],
        contact_email=[{'customer_id': 3, 'emailaddress': 'jane@globex.example'}],
        invoice_dest=[{'customer_id': 2, 'dest': 'billing@initech.example'}],
        location=[
            {'customer_id': 4, 'address1': '1234A Elm Street'},
            {'customer_id': 9, 'address1': '77 Harbour Road'},
        ],
        payment=[
            {'customer_id': 1, 'payby': 'CARD', 'payinfo': '4111111111111111',
             'paymask': '411111xxxxxx1111'},
            {'customer_id': 2, 'payby': 'CHEK', 'payinfo': '4111111111111111',
             'paymask': '411111xxxxxx1111'},
            {'customer_id': 3, 'payby': 'DCRD', 'payinfo': 'tok_93af',
             'paymask': '411111xxxxxx1111'},
        ],
        service_account=[
            {'customer_id': 8, 'username': 'jsmith', 'domain_id': 10},
            {'customer_id': 9, 'username': 'jsmith', 'domain_id': 11},
        ],
        domain=[
            {'domain_id': 10, 'domain': 'acme.example'},
            {'domain_id': 11, 'domain': 'smyth.example'},
        ],
    )


@pytest.fixture
def make_searcher(sample_store, index_dir):
    """Build a searcher over the sample store with config overrides."""
    def factory(store=None, **options):
        options.setdefault('index_dir', index_dir)
        return RecordSearcher(store or sample_store, SearchConfig(**options))
    return factory
