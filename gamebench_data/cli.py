"""Command-line access to a benchmark data directory.

Usage::

    gamebench-data --data-dir /data ingest --id 7 run1.csv run2.hml
    gamebench-data --data-dir /data info --id 7
    gamebench-data --data-dir /data json --id 7 --out 7.json
    gamebench-data --data-dir /data export --id 7 --out benchmark_7.zip
    gamebench-data --data-dir /data stats --id 7 --method overlay
    gamebench-data --config engine.yaml migrate
    gamebench-data --data-dir /data delete --id 7

Without ``--data-dir`` or ``--config`` the directory comes from
``FS_DATA_DIR`` (default ``/data``).
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from gamebench_data.config import EngineConfig
from gamebench_data.errors import BenchmarkDataError
from gamebench_data.export.archive import export_zip
from gamebench_data.export.json_stream import stream_json
from gamebench_data.export.sink import FileSink
from gamebench_data.modeling.stats import QUANTILE_METHODS, precompute, stats_table
from gamebench_data.raw.capture_parser import ingest_files
from gamebench_data.storage.edits import commit_benchmark
from gamebench_data.storage.migration import migrate_storage
from gamebench_data.storage.store import BenchmarkStore

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gamebench-data",
        description="Ingest, inspect and export gaming benchmark captures",
    )
    source = parser.add_mutually_exclusive_group()
    source.add_argument("--data-dir", type=str, default=None, help="Root data directory")
    source.add_argument("--config", type=str, default=None, help="YAML config file with data_dir")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("ingest", help="Parse capture files and store them as one benchmark")
    p.add_argument("--id", type=int, required=True, help="Benchmark id")
    p.add_argument("files", nargs="+", help="Capture files (.csv or .hml)")

    p = sub.add_parser("info", help="Show run count and labels")
    p.add_argument("--id", type=int, required=True, help="Benchmark id")

    p = sub.add_parser("json", help="Write the benchmark as JSON")
    p.add_argument("--id", type=int, required=True, help="Benchmark id")
    p.add_argument("--out", type=str, default=None, help="Output file (default: stdout)")

    p = sub.add_parser("export", help="Write the benchmark as a ZIP of CSV files")
    p.add_argument("--id", type=int, required=True, help="Benchmark id")
    p.add_argument("--out", type=str, required=True, help="Output ZIP path")

    p = sub.add_parser("stats", help="Print per-run, per-metric statistics")
    p.add_argument("--id", type=int, required=True, help="Benchmark id")
    p.add_argument("--method", choices=QUANTILE_METHODS, default="linear", help="Percentile method")
    p.add_argument("--csv", type=str, default=None, help="Also write the table to this CSV file")

    sub.add_parser("migrate", help="Rewrite legacy benchmark files in the current format")

    p = sub.add_parser("delete", help="Remove a benchmark's files")
    p.add_argument("--id", type=int, required=True, help="Benchmark id")
    return parser


def _load_config(args: argparse.Namespace) -> EngineConfig:
    if args.data_dir:
        return EngineConfig(data_dir=Path(args.data_dir))
    if args.config:
        return EngineConfig.from_yaml(args.config)
    return EngineConfig.from_env()


def _run(args: argparse.Namespace) -> int:
    config = _load_config(args).init()
    store = BenchmarkStore(config)

    if args.command == "ingest":
        runs = ingest_files(args.files)
        search = commit_benchmark(store, args.id, runs)
        print(f"labels: {search.labels}")
        print(f"specs: {search.specs}")
    elif args.command == "info":
        meta = store.metadata(args.id)
        print(f"runs: {meta.run_count}")
        for i, label in enumerate(meta.run_labels):
            print(f"  [{i}] {label}")
    elif args.command == "json":
        if args.out:
            with open(args.out, "wb") as fh:
                stream_json(store, args.id, FileSink(fh))
            logger.info("Wrote %s", args.out)
        else:
            stream_json(store, args.id, FileSink(sys.stdout.buffer))
            sys.stdout.flush()
    elif args.command == "export":
        with open(args.out, "wb") as fh:
            export_zip(store, args.id, FileSink(fh))
        logger.info("Wrote %s", args.out)
    elif args.command == "stats":
        table = stats_table(precompute(store.iter_runs(args.id)), args.method)
        print(table.to_string(index=False))
        if args.csv:
            table.to_csv(args.csv, index=False)
            logger.info("Wrote %s (%d rows)", args.csv, len(table))
    elif args.command == "migrate":
        report = migrate_storage(config, store)
        print(
            f"found: {report.found}, migrated: {report.migrated}, "
            f"skipped: {report.skipped}, failed: {report.failed}"
        )
        if not report.ok:
            return 1
    elif args.command == "delete":
        store.delete(args.id)
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    try:
        return _run(args)
    except BenchmarkDataError as e:
        logger.error("%s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
