"""Typed errors raised by the benchmark data engine."""

from __future__ import annotations


class BenchmarkDataError(Exception):
    """Base class for engine errors.

    Attributes:
        filename: Upload file name the error refers to, if any.
        benchmark_id: Benchmark the error refers to, if any.
    """

    def __init__(
        self,
        message: str,
        *,
        filename: str | None = None,
        benchmark_id: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.filename = filename
        self.benchmark_id = benchmark_id

    def __str__(self) -> str:
        if self.filename is not None:
            return f"file '{self.filename}': {self.message}"
        if self.benchmark_id is not None:
            return f"benchmark {self.benchmark_id}: {self.message}"
        return self.message


class UnsupportedFormat(BenchmarkDataError):
    """First line matches no known capture dialect."""


class InvalidSpecs(BenchmarkDataError):
    """Specs line missing or too short for the dialect."""


class EmptyCapture(BenchmarkDataError):
    """No numeric samples were parsed from a capture."""


class TooManyLines(BenchmarkDataError):
    """A run exceeds the per-run data line limit."""


class ReadError(BenchmarkDataError):
    """Underlying I/O, decode or short-read failure."""


class WriteError(BenchmarkDataError):
    """I/O failure while persisting a benchmark."""


class UnsupportedVersion(BenchmarkDataError):
    """Stored header carries an unknown format version."""


class NotFound(BenchmarkDataError):
    """Benchmark file is absent."""


class IndexOutOfRange(BenchmarkDataError):
    """Run index outside `[0, run_count)`."""


class EmptyBenchmark(BenchmarkDataError):
    """Export requested for a benchmark without runs."""


class SinkClosed(BenchmarkDataError):
    """Downstream consumer went away while streaming."""


class LastRunDeletion(BenchmarkDataError):
    """Deleting the only run of a benchmark; delete the benchmark instead."""
