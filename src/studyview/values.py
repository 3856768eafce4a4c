"""Parsing and matching of raw attribute values."""

from __future__ import annotations

import math
from collections.abc import Iterable

from studyview.config import NA_VALUE, NOT_PROFILED_VALUE, ValueKind, normalize_special_value
from studyview.models import DataFilterValue

_OPERATOR_PREFIXES = ("<=", ">=", "<", ">")


def has_operator_prefix(raw: str) -> bool:
    return str(raw).strip().startswith(_OPERATOR_PREFIXES)


def parse_numeric(raw: str | None) -> float | None:
    """Return the finite number encoded by ``raw`` or ``None``.

    Values carrying a comparison operator (``">80"``) are not numbers here;
    they are kept as labelled special values.
    """

    if raw is None:
        return None
    text = str(raw).strip()
    if not text or has_operator_prefix(text):
        return None
    try:
        number = float(text)
    except ValueError:
        return None
    if not math.isfinite(number):
        return None
    return number


def canonical_label(raw: str | None) -> str:
    """Label used for a non-numeric value: sentinel name or the trimmed raw text."""

    special = normalize_special_value(raw)
    if special is not None:
        return special
    return str(raw).strip()


def wants_missing(values: Iterable[DataFilterValue]) -> bool:
    """True when a filter explicitly asks for NA, which also selects entities with no record."""

    return any(
        item.value is not None and normalize_special_value(item.value) == NA_VALUE for item in values
    )


def value_matches(raw: str, values: Iterable[DataFilterValue], kind: ValueKind) -> bool:
    """Whether a recorded value satisfies any of the alternative filter values."""

    alternatives = tuple(values)
    if kind is ValueKind.NUMERICAL:
        number = parse_numeric(raw)
        if number is not None:
            return any(item.matches_number(number) for item in alternatives)

    label = canonical_label(raw)
    for item in alternatives:
        if item.value is None:
            continue
        if item.matches_text(label) or item.matches_text(str(raw)):
            return True
        if canonical_label(item.value) == label and normalize_special_value(item.value) is not None:
            return True
    return False


def order_labels(labels: Iterable[str]) -> list[str]:
    """Order special-value labels: first-seen categories, then NotProfiled, then NA."""

    seen = list(dict.fromkeys(labels))
    ordinary = [label for label in seen if label not in (NOT_PROFILED_VALUE, NA_VALUE)]
    trailing = [label for label in (NOT_PROFILED_VALUE, NA_VALUE) if label in seen]
    return ordinary + trailing
