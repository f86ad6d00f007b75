"""Search strings derived from a benchmark's runs."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from gamebench_data.records.runs import SPEC_FIELDS, Run


@dataclass(frozen=True)
class SearchMetadata:
    """Flattened labels and specs persisted by the metadata store for LIKE search.

    Attributes:
        labels: Run labels, deduplicated in first-seen order, joined by `", "`.
        specs: Non-empty spec values across all runs, deduplicated and sorted,
            joined by `", "`.
    """

    labels: str
    specs: str


def extract_search_metadata(runs: Iterable[Run]) -> SearchMetadata:
    labels: list[str] = []
    seen_labels: set[str] = set()
    specs: set[str] = set()
    for run in runs:
        if run.label not in seen_labels:
            seen_labels.add(run.label)
            labels.append(run.label)
        for name in SPEC_FIELDS:
            value = getattr(run, name)
            if value:
                specs.add(value)
    return SearchMetadata(labels=", ".join(labels), specs=", ".join(sorted(specs)))
