"""Configuration contracts for study-view filtering and binning."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class BinningMethod(str, Enum):
    """Whether bin boundaries come from the baseline or the filtered population."""

    STATIC = "STATIC"
    DYNAMIC = "DYNAMIC"


class ClinicalDataType(str, Enum):
    """Entity level an attribute is recorded at."""

    SAMPLE = "SAMPLE"
    PATIENT = "PATIENT"


class ValueKind(str, Enum):
    """How values of an attribute are compared and binned."""

    CATEGORICAL = "CATEGORICAL"
    NUMERICAL = "NUMERICAL"


class BinMethod(str, Enum):
    """Per-attribute boundary policy requested by a data bin filter."""

    AUTO = "AUTO"
    CUSTOM = "CUSTOM"
    GENERATE = "GENERATE"
    MEDIAN = "MEDIAN"
    QUARTILE = "QUARTILE"


NA_VALUE = "NA"
NOT_PROFILED_VALUE = "NotProfiled"

NA_ALIASES: tuple[str, ...] = (
    "NA",
    "N/A",
    "NAN",
    "NULL",
    "NONE",
    "UNKNOWN",
    "[NOT AVAILABLE]",
    "[NOT APPLICABLE]",
    "[UNKNOWN]",
    "[NOT EVALUATED]",
)

NOT_PROFILED_ALIASES: tuple[str, ...] = (
    "NOTPROFILED",
    "NOT PROFILED",
    "NOT_PROFILED",
)


@dataclass(frozen=True)
class DatatypePolicy:
    """Declared catalog datatypes mapped onto categorical/numerical handling."""

    categorical: tuple[str, ...] = ("STRING", "CATEGORICAL", "BINARY")
    numerical: tuple[str, ...] = ("NUMBER", "LIMIT-VALUE")

    def kind_for(self, datatype: str | None) -> ValueKind | None:
        """Return the value kind for a declared datatype, or ``None`` if unbinnable."""

        normalized = (datatype or "").strip().upper()
        if normalized in self.categorical:
            return ValueKind.CATEGORICAL
        if normalized in self.numerical:
            return ValueKind.NUMERICAL
        return None


@dataclass(frozen=True)
class BinningConfig:
    """Tunables for the binning engine and the request orchestrator."""

    target_bin_count: int = 10
    log_scale_min_span: float = 1000.0
    max_workers: int = 4
    categorical_profile_types: tuple[str, ...] = ("cna", "gistic")
    datatype_policy: DatatypePolicy = field(default_factory=DatatypePolicy)

    def __post_init__(self) -> None:
        if self.target_bin_count < 1:
            raise ValueError("target_bin_count must be at least 1")
        if self.max_workers < 1:
            raise ValueError("max_workers must be at least 1")


def normalize_special_value(raw: str | None) -> str | None:
    """Map sentinel spellings onto their canonical bucket label.

    Returns ``None`` when the value is not a recognised sentinel.
    """

    if raw is None:
        return NA_VALUE

    text = str(raw).strip()
    upper = text.upper()
    if not text or upper in NA_ALIASES:
        return NA_VALUE
    if upper in NOT_PROFILED_ALIASES:
        return NOT_PROFILED_VALUE
    return None
