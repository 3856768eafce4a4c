"""Tallying and cross-study merging of count records."""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from studyview.config import NA_VALUE
from studyview.models import ClinicalDataCount, EntityKey, GenomicDataCount
from studyview.values import canonical_label, order_labels


def merge_sample_counts(counts: Iterable[GenomicDataCount]) -> list[GenomicDataCount]:
    """Merge per-study counts that share a value.

    Counts are summed per value and the lexicographically smallest label is
    kept, so the result does not depend on the order studies were read in.
    Output follows the first appearance of each value.
    """

    totals: dict[str, int] = {}
    labels: dict[str, str] = {}
    for item in counts:
        totals[item.value] = totals.get(item.value, 0) + item.count
        current = labels.get(item.value)
        if current is None or item.label < current:
            labels[item.value] = item.label
    return [GenomicDataCount(label=labels[value], value=value, count=total) for value, total in totals.items()]


def tally_labels(
    values: Mapping[EntityKey, str],
    universe: Iterable[EntityKey] = (),
) -> list[ClinicalDataCount]:
    """Count entities per value label.

    Labels group case-insensitively under their first-seen spelling. Entities
    in ``universe`` without a value are counted as NA.
    """

    display: dict[str, str] = {}
    totals: dict[str, int] = {}
    for raw in values.values():
        label = display.setdefault(canonical_label(raw).upper(), canonical_label(raw))
        totals[label] = totals.get(label, 0) + 1

    missing = sum(1 for key in universe if key not in values)
    if missing:
        label = display.setdefault(NA_VALUE.upper(), NA_VALUE)
        totals[label] = totals.get(label, 0) + missing

    return [ClinicalDataCount(value=label, count=totals[label]) for label in order_labels(totals)]
