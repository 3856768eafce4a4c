"""Static and dynamic data binning.

Numeric bins are half-open ranges ``[start, end)``. A bin whose start equals
its end holds exactly one value. Values that cannot be parsed as numbers,
sentinels and operator-prefixed values (``">80"``) land in labelled special
buckets, ordered after the numeric bins with NA last.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

import pandas as pd

from studyview.config import BinMethod, BinningConfig, BinningMethod, ValueKind
from studyview.models import Binnable, DataBin, DataBinFilter, EntityKey
from studyview.values import canonical_label, order_labels, parse_numeric

logger = logging.getLogger("studyview.binning")

LESS_THAN = "<"
GREATER_THAN = ">"
GREATER_OR_EQUAL = ">="

_NICE_MULTIPLIERS = (1, 2, 5)

BinKey = tuple[float | None, float | None, str | None]


def _clean(value: float) -> float:
    return float(f"{value:.12g}")


@dataclass(frozen=True)
class BinLayout:
    """Bin boundaries established from a reference set of values."""

    ranges: tuple[tuple[float, float | None], ...] = ()
    below: float | None = None
    above: float | None = None
    labels: tuple[str, ...] = ()
    outliers: tuple[BinKey, ...] = ()

    @property
    def is_point(self) -> bool:
        return len(self.ranges) == 1 and self.ranges[0][0] == self.ranges[0][1]

    def locate(self, number: float) -> BinKey:
        """Return the bin key ``number`` falls into, creating outlier keys as needed."""

        if self.is_point:
            point = self.ranges[0][0]
            if number == point:
                return (point, point, None)
            if number < point:
                return (None, point, LESS_THAN)
            return (point, None, GREATER_THAN)

        if self.below is not None and number < self.below:
            return (None, self.below, LESS_THAN)
        if self.above is not None and number >= self.above:
            return (self.above, None, GREATER_OR_EQUAL)
        for start, end in self.ranges:
            if number >= start and (end is None or number < end):
                return (start, end, None)
        # Gaps only exist when ranges are empty and no clamp applies.
        return (number, number, None)


def _split_values(values: Iterable[str], kind: ValueKind) -> tuple[list[float], list[str]]:
    numbers: list[float] = []
    labels: list[str] = []
    for raw in values:
        number = parse_numeric(raw) if kind is ValueKind.NUMERICAL else None
        if number is None:
            labels.append(canonical_label(raw))
        else:
            numbers.append(number)
    return numbers, labels


class _LabelIndex:
    """Case-insensitive label grouping that keeps the first-seen spelling."""

    def __init__(self) -> None:
        self._display: dict[str, str] = {}

    def add(self, label: str) -> str:
        return self._display.setdefault(label.upper(), label)

    def labels(self) -> list[str]:
        return list(self._display.values())


def nice_edges(minimum: float, maximum: float, target_bin_count: int, integral: bool = False) -> list[float]:
    """Edges at multiples of a 1/2/5 x 10^k step covering ``[minimum, maximum]``.

    The step is the smallest such value giving at most ``target_bin_count``
    bins. Integral data never gets a step below 1.
    """

    span = maximum - minimum
    if span <= 0:
        return [minimum, minimum]

    exponent = math.floor(math.log10(span / target_bin_count))
    while True:
        for multiplier in _NICE_MULTIPLIERS:
            step = multiplier * 10.0 ** exponent
            if integral and step < 1:
                continue
            first = math.floor(_clean(minimum / step))
            last = math.floor(_clean(maximum / step))
            if last - first + 1 <= target_bin_count:
                return [_clean(index * step) for index in range(first, last + 2)]
        exponent += 1


def log_edges(minimum: float, maximum: float, target_bin_count: int) -> list[float]:
    """Powers of ten covering ``[minimum, maximum]`` for strictly positive data."""

    first = math.floor(math.log10(minimum))
    last = math.floor(math.log10(maximum))
    stride = max(1, math.ceil((last - first + 1) / target_bin_count))
    edges = [_clean(10.0 ** power) for power in range(first, last + 1, stride)]
    edges.append(_clean(10.0 ** (first + len(edges) * stride)))
    return edges


def generated_edges(minimum: float, maximum: float, bin_size: float, anchor: float) -> list[float]:
    first = math.floor(_clean((minimum - anchor) / bin_size))
    last = math.floor(_clean((maximum - anchor) / bin_size))
    return [_clean(anchor + index * bin_size) for index in range(first, last + 2)]


class BinningEngine:
    """Computes ordered DataBin lists for one attribute at a time."""

    def __init__(self, config: BinningConfig | None = None) -> None:
        self.config = config or BinningConfig()

    def bin(
        self,
        bin_filter: DataBinFilter,
        filtered: Sequence[Binnable],
        baseline: Sequence[Binnable] | None,
        method: BinningMethod,
        kind: ValueKind,
    ) -> list[DataBin]:
        """Bin ``filtered`` values of ``bin_filter.key``.

        Static binning takes boundaries from ``baseline``; dynamic binning
        takes them from ``filtered``. An empty reference yields no bins.
        """

        attribute_id = bin_filter.key.unique_key
        filtered_values = self._values_for(filtered, attribute_id)
        if method is BinningMethod.STATIC:
            if baseline is None:
                raise ValueError("Static binning requires baseline values")
            reference = self._values_for(baseline, attribute_id)
        else:
            reference = filtered_values

        if not reference:
            logger.debug("No reference values for %s; emitting no bins", attribute_id)
            return []

        labels = _LabelIndex()
        layout = self.layout(bin_filter, reference, kind, labels)
        counts = self._count(layout, filtered_values, kind, labels)
        return self._emit(bin_filter, layout, counts, labels)

    # ------------------------------------------------------------------
    # Boundaries
    # ------------------------------------------------------------------

    def layout(
        self,
        bin_filter: DataBinFilter,
        reference: Sequence[str],
        kind: ValueKind,
        labels: _LabelIndex | None = None,
    ) -> BinLayout:
        labels = labels or _LabelIndex()
        numbers, raw_labels = _split_values(reference, kind)
        for label in raw_labels:
            labels.add(label)

        if kind is ValueKind.CATEGORICAL:
            return BinLayout(labels=tuple(labels.labels()))

        lower, upper = bin_filter.start, bin_filter.end
        inside = [
            number
            for number in numbers
            if (lower is None or number >= lower) and (upper is None or number < upper)
        ]
        edges, open_end = self._edges(bin_filter, inside)

        if edges:
            if lower is not None and edges[0] < lower:
                edges = [lower] + [edge for edge in edges if edge > lower]
            if upper is not None:
                if open_end and upper > edges[-1]:
                    edges = edges + [upper]
                    open_end = False
                elif edges[-1] > upper:
                    edges = [edge for edge in edges if edge < upper] + [upper]
                    open_end = False

        ranges: list[tuple[float, float | None]] = [
            (start, end) for start, end in zip(edges, edges[1:])
        ]
        if open_end and edges:
            ranges.append((edges[-1], None))

        if ranges:
            below = ranges[0][0] if ranges[0][0] != ranges[0][1] else None
            above = ranges[-1][1]
        elif edges:
            below = above = edges[0]
        else:
            below, above = lower, upper

        layout = BinLayout(ranges=tuple(ranges), below=below, above=above, labels=tuple(labels.labels()))
        outliers = tuple(dict.fromkeys(key for key in map(layout.locate, numbers) if key[2] is not None))
        return BinLayout(
            ranges=layout.ranges,
            below=layout.below,
            above=layout.above,
            labels=layout.labels,
            outliers=outliers,
        )

    def _edges(self, bin_filter: DataBinFilter, numbers: Sequence[float]) -> tuple[list[float], bool]:
        """Return ``(edges, open_end)`` for the in-range numeric values."""

        if bin_filter.custom_bins and bin_filter.bin_method in (BinMethod.AUTO, BinMethod.CUSTOM):
            return sorted(set(float(edge) for edge in bin_filter.custom_bins)), False
        if not numbers:
            return [], False

        minimum, maximum = min(numbers), max(numbers)
        if minimum == maximum:
            return [minimum, minimum], False

        method = bin_filter.bin_method
        if method is BinMethod.GENERATE and bin_filter.bin_size and bin_filter.bin_size > 0:
            anchor = bin_filter.anchor_value if bin_filter.anchor_value is not None else 0.0
            return generated_edges(minimum, maximum, bin_filter.bin_size, anchor), False
        if method is BinMethod.MEDIAN:
            median = float(pd.Series(numbers).median())
            return sorted({minimum, _clean(median)}), True
        if method is BinMethod.QUARTILE:
            quartiles = pd.Series(numbers).quantile([0.25, 0.5, 0.75]).tolist()
            return sorted({minimum, *(_clean(float(item)) for item in quartiles)}), True

        target = self.config.target_bin_count
        if (
            not bin_filter.disable_log_scale
            and minimum > 0
            and maximum / minimum >= self.config.log_scale_min_span
        ):
            return log_edges(minimum, maximum, target), False
        integral = all(float(number).is_integer() for number in numbers)
        return nice_edges(minimum, maximum, target, integral=integral), False

    # ------------------------------------------------------------------
    # Counting
    # ------------------------------------------------------------------

    @staticmethod
    def _values_for(rows: Sequence[Binnable], attribute_id: str) -> list[str]:
        seen: dict[EntityKey, str] = {}
        for row in rows:
            if row.attribute_id == attribute_id:
                seen.setdefault(row.entity_key, row.value)
        return list(seen.values())

    @staticmethod
    def _count(
        layout: BinLayout,
        values: Sequence[str],
        kind: ValueKind,
        labels: _LabelIndex,
    ) -> dict[BinKey, int]:
        counts: dict[BinKey, int] = {}
        numbers, raw_labels = _split_values(values, kind)
        for number in numbers:
            key = layout.locate(number)
            counts[key] = counts.get(key, 0) + 1
        for label in raw_labels:
            key = (None, None, labels.add(label))
            counts[key] = counts.get(key, 0) + 1
        return counts

    @staticmethod
    def _emit(
        bin_filter: DataBinFilter,
        layout: BinLayout,
        counts: dict[BinKey, int],
        labels: _LabelIndex,
    ) -> list[DataBin]:
        range_keys: list[BinKey] = [(start, end, None) for start, end in layout.ranges]
        extra = [key for key in counts if key[2] is None and key not in range_keys]
        numeric_keys = sorted(
            set(range_keys + extra),
            key=lambda key: (key[0], key[1] is None, key[1] or 0.0),
        )

        outlier_keys = list(layout.outliers)
        for key in counts:
            is_outlier = key[2] in (LESS_THAN, GREATER_THAN, GREATER_OR_EQUAL) and key[:2] != (None, None)
            if is_outlier and key not in outlier_keys:
                outlier_keys.append(key)
        below_keys = [key for key in outlier_keys if key[2] == LESS_THAN]
        above_keys = [key for key in outlier_keys if key[2] != LESS_THAN]

        label_keys: list[BinKey] = [(None, None, label) for label in order_labels(labels.labels())]
        ordered = below_keys + numeric_keys + above_keys + label_keys

        return [
            DataBin(
                attribute_key=bin_filter.key,
                count=counts.get(key, 0),
                start=key[0],
                end=key[1],
                special_value=key[2],
            )
            for key in ordered
        ]
