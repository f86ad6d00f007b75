"""One-shot rewrite of legacy benchmark files into the current format."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from gamebench_data.config import STORAGE_FORMAT_VERSION, EngineConfig
from gamebench_data.errors import BenchmarkDataError
from gamebench_data.storage.store import MAX_BENCHMARK_ID, BenchmarkStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MigrationReport:
    """Outcome counts of `migrate_storage`.

    Attributes:
        found: `.bin` files examined.
        migrated: Files rewritten in the current format.
        skipped: Files already current or not named by a benchmark id.
        failed: Files that could not be read or rewritten.
    """

    found: int = 0
    migrated: int = 0
    skipped: int = 0
    failed: int = 0

    @property
    def ok(self) -> bool:
        return self.failed == 0


def migrate_storage(config: EngineConfig, store: BenchmarkStore | None = None) -> MigrationReport:
    """Rewrite every legacy benchmark under `config.benchmarks_dir` in place.

    Failures are logged and counted; the scan continues past them.
    """
    directory = config.benchmarks_dir
    if not directory.is_dir():
        logger.info("No benchmarks directory at %s, nothing to migrate", directory)
        return MigrationReport()
    store = store or BenchmarkStore(config)

    files = sorted(directory.glob("*.bin"))
    logger.info("Found %d benchmark file(s) to check", len(files))
    migrated = skipped = failed = 0
    for path in files:
        stem = path.stem
        if not stem.isdigit() or int(stem) > MAX_BENCHMARK_ID:
            logger.info("Skipping file with invalid name: %s", path.name)
            skipped += 1
            continue
        benchmark_id = int(stem)
        try:
            with store.lock(benchmark_id):
                if store.format_version(benchmark_id) == STORAGE_FORMAT_VERSION:
                    logger.debug("Benchmark %d already current, skipped", benchmark_id)
                    skipped += 1
                    continue
                runs = store.load(benchmark_id)
                store.store(benchmark_id, runs)
        except BenchmarkDataError:
            logger.exception("Benchmark %d: migration failed", benchmark_id)
            failed += 1
            continue
        logger.info("Benchmark %d: migrated to version %d (%d runs)", benchmark_id, STORAGE_FORMAT_VERSION, len(runs))
        migrated += 1

    report = MigrationReport(found=len(files), migrated=migrated, skipped=skipped, failed=failed)
    logger.info(
        "Storage migration done: %d found, %d migrated, %d skipped, %d failed",
        report.found,
        report.migrated,
        report.skipped,
        report.failed,
    )
    return report
