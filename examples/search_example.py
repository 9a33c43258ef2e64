"""Example usage of the record search system with CSV exports."""

import logging
import sys
from pathlib import Path
from typing import Optional

import pandas as pd

from config.models import IdentifierFormat, SearchConfig
from core.frame_store import DataFrameRecordStore
from core.matcher import RecordSearcher


def create_customer_searcher(
    data_dir: Path,
    index_dir: Path,
    address_search: bool = True,
    fuzziness: Optional[int] = 2
) -> RecordSearcher:
    """
    Create a searcher over a directory of ``<table>.csv`` exports.

    Args:
        data_dir: Directory with customer.csv, contact.csv, location.csv, ...
        index_dir: Directory for the fuzzy corpora
        address_search: Whether street addresses are searched as well
        fuzziness: Edit distance tolerated by fuzzy matching

    Returns:
        RecordSearcher: Configured searcher
    """
    config = SearchConfig.from_mapping({
        'identifier_format': IdentifierFormat.LETTER_PREFIXED,
        'address_search': address_search,
        'fuzziness': fuzziness,
        'index_dir': index_dir,
        'partition_prefixes': {1: '10', 2: '20'},
    })
    store = DataFrameRecordStore.from_csv_dir(data_dir)
    return RecordSearcher(store, config)


def search_customers(
    searcher: RecordSearcher,
    searches: list,
    output_file: Optional[Path] = None
) -> pd.DataFrame:
    """
    Run a batch of searches and tabulate the matches.

    Args:
        searcher: Configured searcher
        searches: Search strings
        output_file: Optional CSV file for the results

    Returns:
        pd.DataFrame: One row per (search, record) match
    """
    rows = []
    for search in searches:
        result = searcher.smart_search(search, suppress_fuzzy_on_exact=True)
        logging.info(f"{search!r}: {len(result)} records {searcher.summary(result)}")
        for failure, error in result.failures.items():
            logging.warning(f"{search!r}: {failure} failed: {error}")
        for rank, record_id in enumerate(result.record_ids, start=1):
            rows.append({'search': search, 'rank': rank, 'record_id': record_id})

    results = pd.DataFrame(rows, columns=['search', 'rank', 'record_id'])
    if output_file:
        logging.info(f"Saving results to: {output_file}")
        results.to_csv(output_file, index=False)
    return results


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )

    data_dir = Path('data')
    searcher = create_customer_searcher(data_dir, index_dir=data_dir / 'cache')
    searcher.rebuild_index()

    search_customers(
        searcher,
        sys.argv[1:] or ['(555) 123-4567', 'jon smth', '4111-11xx-xxxx-1111'],
        output_file=data_dir / 'search_results.csv'
    )
