"""Canonical in-memory data models used by the study-view engine.

Request-side models (filters, attribute keys, bin filters) are frozen so a
request can be shared across worker threads and used as a cache key source.
Result records expose ``to_payload`` for serialization.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import Any, NamedTuple

from studyview.config import BinMethod


class EntityKey(NamedTuple):
    """Cross-source key for a sample or patient: ``(study_id, case_id)``."""

    study_id: str
    case_id: str


@dataclass(frozen=True)
class SampleIdentifier:
    study_id: str
    sample_id: str

    def key(self) -> EntityKey:
        return EntityKey(self.study_id, self.sample_id)

    def to_payload(self) -> dict[str, str]:
        return {"studyId": self.study_id, "sampleId": self.sample_id}


# ---------------------------------------------------------------------------
# Attribute keys
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AttributeKey(ABC):
    """Identifies one filterable/binnable quantity.

    Equality is field-wise within one concrete kind, which is also what
    self-exclusion matches on.
    """

    kind = "ABSTRACT"

    @property
    @abstractmethod
    def unique_key(self) -> str:
        """Identifier unique across studies for this quantity."""

    @abstractmethod
    def to_payload(self) -> dict[str, str]:
        """Serialize the key in request-payload form."""


@dataclass(frozen=True)
class ClinicalAttributeKey(AttributeKey):
    attribute_id: str

    kind = "CLINICAL"

    @property
    def unique_key(self) -> str:
        return self.attribute_id

    def to_payload(self) -> dict[str, str]:
        return {"attributeId": self.attribute_id}


@dataclass(frozen=True)
class GenomicProfileKey(AttributeKey):
    hugo_gene_symbol: str
    profile_type: str

    kind = "GENOMIC"

    @property
    def unique_key(self) -> str:
        return f"{self.hugo_gene_symbol}{self.profile_type}"

    def to_payload(self) -> dict[str, str]:
        return {"hugoGeneSymbol": self.hugo_gene_symbol, "profileType": self.profile_type}


@dataclass(frozen=True)
class GenericAssayKey(AttributeKey):
    stable_id: str
    profile_type: str

    kind = "GENERIC_ASSAY"

    @property
    def unique_key(self) -> str:
        return f"{self.stable_id}{self.profile_type}"

    def to_payload(self) -> dict[str, str]:
        return {"stableId": self.stable_id, "profileType": self.profile_type}


# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DataFilterValue:
    """Either a numeric range ``[start, end)`` or an exact value."""

    start: float | None = None
    end: float | None = None
    value: str | None = None

    @property
    def is_range(self) -> bool:
        return self.value is None and (self.start is not None or self.end is not None)

    def matches_number(self, number: float) -> bool:
        if not self.is_range:
            return False
        if self.start is not None and number < self.start:
            return False
        if self.end is not None and number >= self.end:
            return False
        return True

    def matches_text(self, text: str) -> bool:
        if self.value is None:
            return False
        return self.value.strip().upper() == text.strip().upper()

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        if self.start is not None:
            payload["start"] = self.start
        if self.end is not None:
            payload["end"] = self.end
        if self.value is not None:
            payload["value"] = self.value
        return payload


@dataclass(frozen=True)
class ClinicalDataFilter:
    attribute_id: str
    values: tuple[DataFilterValue, ...] = ()

    @property
    def key(self) -> ClinicalAttributeKey:
        return ClinicalAttributeKey(self.attribute_id)


@dataclass(frozen=True)
class GenomicDataFilter:
    hugo_gene_symbol: str
    profile_type: str
    values: tuple[DataFilterValue, ...] = ()

    @property
    def key(self) -> GenomicProfileKey:
        return GenomicProfileKey(self.hugo_gene_symbol, self.profile_type)


@dataclass(frozen=True)
class GenericAssayDataFilter:
    stable_id: str
    profile_type: str
    values: tuple[DataFilterValue, ...] = ()

    @property
    def key(self) -> GenericAssayKey:
        return GenericAssayKey(self.stable_id, self.profile_type)


@dataclass(frozen=True)
class AlterationFilter:
    """Selects which mutation / copy-number records count as alterations.

    ``None`` for an event-type set means "all types".
    """

    mutation_event_types: frozenset[str] | None = None
    copy_number_events: frozenset[int] | None = None
    include_driver: bool = True
    include_vus: bool = True
    include_germline: bool = True
    include_somatic: bool = True

    def to_payload(self) -> dict[str, Any]:
        return {
            "mutationEventTypes": sorted(self.mutation_event_types)
            if self.mutation_event_types is not None
            else None,
            "copyNumberAlterationEventTypes": sorted(self.copy_number_events)
            if self.copy_number_events is not None
            else None,
            "includeDriver": self.include_driver,
            "includeVUS": self.include_vus,
            "includeGermline": self.include_germline,
            "includeSomatic": self.include_somatic,
        }


@dataclass(frozen=True)
class GeneFilter:
    """Gene alteration predicate: OR inside each query group, AND across groups."""

    profile_types: tuple[str, ...]
    gene_queries: tuple[tuple[str, ...], ...]


@dataclass(frozen=True)
class ClinicalEventFilter:
    event_type: str
    attributes: tuple[tuple[str, str], ...] = ()


@dataclass(frozen=True)
class CustomDataRecord:
    study_id: str
    sample_id: str
    value: str


@dataclass(frozen=True)
class CustomDataFilter:
    """Categorical filter over user-supplied per-sample values."""

    attribute_id: str
    values: tuple[DataFilterValue, ...]
    records: tuple[CustomDataRecord, ...] = ()


@dataclass(frozen=True)
class StudyViewFilter:
    """Composite, request-scoped filter description."""

    study_ids: tuple[str, ...] = ()
    sample_identifiers: tuple[SampleIdentifier, ...] = ()
    clinical_data_filters: tuple[ClinicalDataFilter, ...] = ()
    genomic_data_filters: tuple[GenomicDataFilter, ...] = ()
    generic_assay_data_filters: tuple[GenericAssayDataFilter, ...] = ()
    gene_filters: tuple[GeneFilter, ...] = ()
    alteration_filter: AlterationFilter | None = None
    clinical_event_filters: tuple[ClinicalEventFilter, ...] = ()
    custom_data_filters: tuple[CustomDataFilter, ...] = ()
    case_list_ids: tuple[tuple[str, ...], ...] = ()

    def effective_study_ids(self) -> tuple[str, ...]:
        """Study ids to scan: explicit ids, else those referenced by sample identifiers."""

        if self.study_ids:
            return self.study_ids
        seen: dict[str, None] = {}
        for identifier in self.sample_identifiers:
            seen.setdefault(identifier.study_id, None)
        return tuple(seen)

    def with_changes(self, **changes: Any) -> StudyViewFilter:
        return replace(self, **changes)


# ---------------------------------------------------------------------------
# Binning requests
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DataBinFilter:
    """How to bin one attribute."""

    key: AttributeKey
    bin_method: BinMethod = BinMethod.AUTO
    custom_bins: tuple[float, ...] | None = None
    bin_size: float | None = None
    anchor_value: float | None = None
    start: float | None = None
    end: float | None = None
    disable_log_scale: bool = False


@dataclass(frozen=True)
class DataBinBundle:
    """Tagged request variant; subclasses fix the attribute kind."""

    study_view_filter: StudyViewFilter
    attributes: tuple[DataBinFilter, ...]

    attribute_kind = AttributeKey

    def __post_init__(self) -> None:
        for attribute in self.attributes:
            if not isinstance(attribute.key, self.attribute_kind):
                raise ValueError(
                    f"{type(self).__name__} cannot bin {type(attribute.key).__name__} attributes"
                )


@dataclass(frozen=True)
class ClinicalDataBinBundle(DataBinBundle):
    attribute_kind = ClinicalAttributeKey


@dataclass(frozen=True)
class GenomicDataBinBundle(DataBinBundle):
    attribute_kind = GenomicProfileKey


@dataclass(frozen=True)
class GenericAssayDataBinBundle(DataBinBundle):
    attribute_kind = GenericAssayKey


# ---------------------------------------------------------------------------
# Catalog records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ClinicalAttribute:
    attr_id: str
    study_id: str
    display_name: str = ""
    datatype: str = "STRING"
    patient_attribute: bool = False


@dataclass(frozen=True)
class MolecularProfile:
    stable_id: str
    study_id: str
    name: str = ""
    molecular_alteration_type: str = ""
    datatype: str = ""
    patient_level: bool = False

    @property
    def suffix(self) -> str:
        """Profile type: the stable id with the ``<study>_`` prefix removed."""

        prefix = f"{self.study_id}_"
        if self.stable_id.startswith(prefix):
            return self.stable_id[len(prefix):]
        return self.stable_id


@dataclass(frozen=True)
class Gene:
    entrez_gene_id: int
    hugo_gene_symbol: str


# ---------------------------------------------------------------------------
# Populations and values
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PopulationSample:
    study_id: str
    sample_id: str
    patient_id: str


@dataclass(frozen=True)
class Population:
    """Immutable snapshot of the samples satisfying a filter."""

    samples: tuple[PopulationSample, ...] = ()
    sample_keys: frozenset[EntityKey] = field(init=False, repr=False, compare=False)
    patient_keys: frozenset[EntityKey] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "sample_keys",
            frozenset(EntityKey(item.study_id, item.sample_id) for item in self.samples),
        )
        object.__setattr__(
            self,
            "patient_keys",
            frozenset(EntityKey(item.study_id, item.patient_id) for item in self.samples),
        )

    def __len__(self) -> int:
        return len(self.samples)

    @property
    def study_ids(self) -> tuple[str, ...]:
        return tuple(sorted({item.study_id for item in self.samples}))

    def sample_identifiers(self) -> tuple[SampleIdentifier, ...]:
        return tuple(SampleIdentifier(item.study_id, item.sample_id) for item in self.samples)


@dataclass(frozen=True)
class Binnable:
    """One raw value of one attribute for one entity."""

    entity_key: EntityKey
    attribute_id: str
    value: str


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DataBin:
    """A numeric range ``[start, end)`` or a special-value bucket, with a count."""

    attribute_key: AttributeKey
    count: int
    start: float | None = None
    end: float | None = None
    special_value: str | None = None

    def contains(self, number: float) -> bool:
        if self.start is not None and self.end is not None and self.start == self.end:
            return number == self.start
        if self.start is not None and number < self.start:
            return False
        if self.end is not None and number >= self.end:
            return False
        return True

    def boundary(self) -> tuple[float | None, float | None, str | None]:
        return (self.start, self.end, self.special_value)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = dict(self.attribute_key.to_payload())
        payload["count"] = self.count
        if self.start is not None and math.isfinite(self.start):
            payload["start"] = self.start
        if self.end is not None and math.isfinite(self.end):
            payload["end"] = self.end
        if self.special_value is not None:
            payload["specialValue"] = self.special_value
        return payload


@dataclass(frozen=True)
class ClinicalDataCount:
    value: str
    count: int


@dataclass(frozen=True)
class ClinicalDataCountItem:
    attribute_id: str
    counts: tuple[ClinicalDataCount, ...]

    def to_payload(self) -> dict[str, Any]:
        return {
            "attributeId": self.attribute_id,
            "counts": [{"value": item.value, "count": item.count} for item in self.counts],
        }


@dataclass(frozen=True)
class GenomicDataCount:
    """Count keyed by ``value`` with a display ``label``."""

    label: str
    value: str
    count: int

    def to_payload(self) -> dict[str, Any]:
        return {"label": self.label, "value": self.value, "count": self.count}


@dataclass(frozen=True)
class GenericAssayDataCount:
    stable_id: str
    value: str
    count: int

    def to_payload(self) -> dict[str, Any]:
        return {"stableId": self.stable_id, "value": self.value, "count": self.count}


@dataclass(frozen=True)
class AlterationCountByGene:
    entrez_gene_id: int
    hugo_gene_symbol: str
    number_of_altered_cases: int
    total_count: int
    number_of_profiled_cases: int

    def to_payload(self) -> dict[str, Any]:
        return {
            "entrezGeneId": self.entrez_gene_id,
            "hugoGeneSymbol": self.hugo_gene_symbol,
            "numberOfAlteredCases": self.number_of_altered_cases,
            "totalCount": self.total_count,
            "numberOfProfiledCases": self.number_of_profiled_cases,
        }


@dataclass(frozen=True)
class ClinicalEventTypeCount:
    event_type: str
    count: int

    def to_payload(self) -> dict[str, Any]:
        return {"eventType": self.event_type, "count": self.count}
