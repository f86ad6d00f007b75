"""Uncompressed `{id}.meta` sidecar holding run count and labels."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

import msgpack

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BenchmarkMetadata:
    """Cheap listing information for one benchmark.

    Attributes:
        run_count: Number of runs stored.
        run_labels: Run labels in storage order.
    """

    run_count: int
    run_labels: list[str] = field(default_factory=list)


def encode_metadata(meta: BenchmarkMetadata) -> bytes:
    return msgpack.packb(
        {"run_count": meta.run_count, "run_labels": list(meta.run_labels)},
        use_bin_type=True,
    )


def decode_metadata(data: bytes) -> BenchmarkMetadata:
    """Decode a sidecar payload.

    Raises:
        ValueError: If the payload is not a well-formed sidecar.
    """
    obj = msgpack.unpackb(data, raw=False)
    if not isinstance(obj, dict):
        raise ValueError("sidecar is not a map")
    labels = obj.get("run_labels") or []
    if not isinstance(labels, list):
        raise ValueError("sidecar run_labels is not a list")
    return BenchmarkMetadata(run_count=int(obj.get("run_count", 0)), run_labels=[str(x) for x in labels])


def read_metadata(path: Path) -> BenchmarkMetadata:
    """Read a sidecar file.

    Raises:
        OSError: If the file cannot be read.
        ValueError: If the content is corrupt.
    """
    return decode_metadata(path.read_bytes())
