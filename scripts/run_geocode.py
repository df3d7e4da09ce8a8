# Script that geocodes stored jobs still missing coordinates
from argparse import ArgumentParser
import logging
import sys

from jobmap.geocoding import DuckDBJobStore, GeocodeRunner, GeocodingConfig, get_geocoder
from jobmap.settings import settings
from jobmap.utils.errors import GeocodingConfigError, PersistenceError

from pathlib import Path

if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    parser = ArgumentParser()
    parser.add_argument('--db', type=Path, default=settings.ddb_path)
    parser.add_argument('--limit', '-l', type=int, default=settings.run_default_limit)
    parser.add_argument('--include-failed', action='store_true')
    parser.add_argument('--until-done', action='store_true', help='Repeat runs until nothing remains')
    args = parser.parse_args()

    store = DuckDBJobStore(args.db)
    runner = GeocodeRunner(store, get_geocoder(), GeocodingConfig.from_settings())
    try:
        while True:
            summary = runner.run(limit=args.limit, include_failed=args.include_failed)
            print(summary.to_dict())
            if not args.until_done or summary.remaining == 0 or summary.success == 0:
                break
    except (GeocodingConfigError, PersistenceError) as e:
        print(e)
        sys.exit(1)
    finally:
        store.close()
