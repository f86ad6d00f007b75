"""Engine configuration and fixed format constants."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

STORAGE_FORMAT_VERSION = 2
MAX_PER_RUN_LINES = 500_000
MAX_STRING_LENGTH = 100
DOWNSAMPLE_THRESHOLD = 2000
GC_HINT_EVERY_JSON = 10
GC_HINT_EVERY_EXPORT = 5

WRITE_BUFFER_SIZE = 256 * 1024
ZSTD_THREADS = 2

DATA_DIR_ENV = "FS_DATA_DIR"
DEFAULT_DATA_DIR = "/data"


@dataclass(frozen=True)
class EngineConfig:
    """Process-wide settings for the benchmark data engine.

    Built once at startup and handed to `BenchmarkStore`.

    Attributes:
        data_dir: Root data directory. Benchmark files live under
            `{data_dir}/benchmarks/`.
    """

    data_dir: Path

    def __post_init__(self) -> None:
        object.__setattr__(self, "data_dir", Path(self.data_dir))

    @property
    def benchmarks_dir(self) -> Path:
        return self.data_dir / "benchmarks"

    def init(self) -> EngineConfig:
        """Create the benchmarks directory (mode 0750) and return self."""
        self.benchmarks_dir.mkdir(mode=0o750, parents=True, exist_ok=True)
        logger.debug("Benchmarks directory ready: %s", self.benchmarks_dir)
        return self

    @classmethod
    def from_yaml(cls, path: str | Path) -> EngineConfig:
        """Load configuration from a YAML file.

        The document must be a mapping with a `data_dir` (or `data-dir`) key.

        Args:
            path: YAML file path.

        Raises:
            ValueError: If the document is not a mapping or has no data dir.
        """
        raw = yaml.safe_load(Path(path).read_text())
        if not isinstance(raw, dict):
            raise ValueError(f"Invalid config file (not a mapping): {path}")
        data_dir = raw.get("data_dir", raw.get("data-dir"))
        if not data_dir:
            raise ValueError(f"Missing required data_dir in config file: {path}")
        return cls(data_dir=Path(str(data_dir)))

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> EngineConfig:
        """Build configuration from `FS_DATA_DIR` (default `/data`)."""
        env = os.environ if environ is None else environ
        return cls(data_dir=Path(env.get(DATA_DIR_ENV) or DEFAULT_DATA_DIR))
