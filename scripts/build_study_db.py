#!/usr/bin/env python3
"""Load a directory of study tables (TSV/CSV) into a study-view DuckDB database.

Each file is named after its target table, for example ``sample.tsv`` or
``clinical_data_sample.csv``. Files that do not match a known table are
skipped with a warning.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from pathlib import Path

import pandas as pd

REPO_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(REPO_ROOT / "src"))

from studyview.storage import TABLE_SCHEMAS, DuckDBStudyViewRepository  # noqa: E402

_DELIMITERS = {".tsv": "\t", ".txt": "\t", ".csv": ","}


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Build a study-view DuckDB database from table files")
    parser.add_argument("--input-dir", required=True, help="Directory containing <table>.tsv/.csv files.")
    parser.add_argument("--db-path", required=True, help="DuckDB database path.")
    parser.add_argument(
        "--parquet-dir",
        default=None,
        help="Optional directory to export every table as Parquet after loading.",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level.",
    )
    return parser.parse_args()


def read_table(path: Path, table_name: str) -> pd.DataFrame:
    """Read one table file; text columns stay strings (``NA`` included) and only blank cells become NULL."""

    text_columns = {name: str for name, sql_type in TABLE_SCHEMAS[table_name] if sql_type == "VARCHAR"}
    frame = pd.read_csv(
        path,
        sep=_DELIMITERS[path.suffix.lower()],
        dtype=text_columns,
        keep_default_na=False,
        na_values=[""],
    )
    for column in frame.select_dtypes(include="object").columns:
        frame[column] = frame[column].where(frame[column].notna(), None)
    return frame


def discover_tables(input_dir: Path, logger: logging.Logger) -> dict[str, Path]:
    tables: dict[str, Path] = {}
    for path in sorted(input_dir.iterdir()):
        if path.suffix.lower() not in _DELIMITERS:
            continue
        if path.stem not in TABLE_SCHEMAS:
            logger.warning("Skipping %s: unknown table '%s'", path.name, path.stem)
            continue
        if path.stem in tables:
            logger.warning("Skipping %s: table '%s' already provided", path.name, path.stem)
            continue
        tables[path.stem] = path
    return tables


def main() -> int:
    args = parse_args()
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    logger = logging.getLogger("studyview.build_db")

    input_dir = Path(args.input_dir)
    if not input_dir.is_dir():
        raise FileNotFoundError(f"Input directory not found: {input_dir}")

    started = time.perf_counter()
    tables = discover_tables(input_dir, logger)
    if not tables:
        raise ValueError(f"No table files found in {input_dir}. Known tables: {', '.join(TABLE_SCHEMAS)}")

    repository = DuckDBStudyViewRepository(db_path=args.db_path)
    try:
        frames = {table_name: read_table(path, table_name) for table_name, path in tables.items()}
        inserted = repository.load_frames(frames)
        exported: list[str] = []
        if args.parquet_dir:
            exported = [str(path) for path in repository.export_parquet(args.parquet_dir)]
    finally:
        repository.close()

    logger.info(
        "Study database built: tables=%d rows=%d elapsed=%.2fs db=%s",
        len(inserted),
        sum(inserted.values()),
        time.perf_counter() - started,
        args.db_path,
    )
    print(json.dumps({"db_path": args.db_path, "tables": inserted, "parquet_files": exported}, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
