# Script that imports a CSV/Excel job export into the job store and geocodes it
from argparse import ArgumentParser
import logging
import sys

import pandas as pd

from jobmap.geocoding import DuckDBJobStore, get_geocoder
from jobmap.ingestion import missing_mappings, suggest_mapping
from jobmap.ingestion.upload import UploadPipeline
from jobmap.settings import settings
from jobmap.utils.errors import DataValidationError, PersistenceError

from pathlib import Path


def read_rows(path: Path) -> list[dict]:
    """Read every cell as text; blank cells become None."""
    if path.suffix.lower() in ('.xlsx', '.xls'):
        df = pd.read_excel(path, dtype=str)
    else:
        df = pd.read_csv(path, dtype=str)
    df = df.dropna(how='all')
    return df.astype(object).where(df.notna(), None).to_dict(orient='records')


if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    parser = ArgumentParser()
    parser.add_argument('path', type=Path)
    parser.add_argument('--db', type=Path, default=settings.ddb_path)
    parser.add_argument('--no-geocode', action='store_true')
    parser.add_argument('--strict', action='store_true', help='Exit non-zero if any row fails validation')
    parser.add_argument('--max-rows', type=int, default=settings.max_import_rows)
    parser.add_argument('--concurrency', '-c', type=int, default=settings.geocode_concurrency)
    args = parser.parse_args()

    rows = read_rows(args.path)
    headers = list(rows[0].keys()) if rows else []
    mapping = suggest_mapping(headers)
    missing = missing_mappings(mapping)
    if missing:
        print(f'Could not map required columns: {", ".join(missing)}')
        sys.exit(2)
    print(f'Column mapping: {mapping}')

    store = DuckDBJobStore(args.db)
    try:
        def show_progress(done: int, total: int) -> None:
            if done == total or done % 25 == 0:
                print(f'Geocoded {done}/{total}')

        pipeline = UploadPipeline(
            store,
            None if args.no_geocode else get_geocoder(),
            mapping=mapping,
            geocode=not args.no_geocode,
            concurrency=args.concurrency,
            pacing_s=settings.geocode_pacing_s,
            max_rows=args.max_rows,
            on_progress=show_progress,
        )
        report = pipeline.run(rows)
        print(report.to_dict())
        if args.strict:
            report.raise_for_errors(source=str(args.path))
    except DataValidationError as e:
        print(f'{e}\n{e.summary()}')
        sys.exit(1)
    except PersistenceError as e:
        print(e)
        sys.exit(1)
    finally:
        store.close()
