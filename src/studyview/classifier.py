"""Classify attributes and filters as sample/patient-level and categorical/numerical."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

from studyview.catalog import GENERIC_ASSAY_ALTERATION_TYPE, AttributeCatalog
from studyview.config import BinningConfig, ClinicalDataType, ValueKind
from studyview.models import (
    AttributeKey,
    ClinicalAttributeKey,
    ClinicalDataFilter,
    GenericAssayDataFilter,
    GenericAssayKey,
    GenomicDataFilter,
    GenomicProfileKey,
    StudyViewFilter,
)

logger = logging.getLogger("studyview.classifier")


@dataclass(frozen=True)
class AttributeCategory:
    level: ClinicalDataType
    kind: ValueKind


def _merge_kinds(kinds: Iterable[ValueKind | None]) -> ValueKind | None:
    known = {kind for kind in kinds if kind is not None}
    if not known:
        return None
    if ValueKind.CATEGORICAL in known:
        return ValueKind.CATEGORICAL
    return ValueKind.NUMERICAL


@dataclass(frozen=True)
class AttributeClassification:
    """Result of classifying one catalog snapshot.

    Clinical attributes are enumerated in the four key sets. Genomic and
    generic-assay keys are classified through their profile type, since the
    set of genes and assay entities is open-ended.
    """

    patient_categorical: frozenset[AttributeKey] = frozenset()
    patient_numerical: frozenset[AttributeKey] = frozenset()
    sample_categorical: frozenset[AttributeKey] = frozenset()
    sample_numerical: frozenset[AttributeKey] = frozenset()
    genomic_profile_types: Mapping[str, AttributeCategory] = field(default_factory=dict)
    generic_assay_profile_types: Mapping[str, AttributeCategory] = field(default_factory=dict)

    def category_for(self, key: AttributeKey) -> AttributeCategory | None:
        """Return the category of ``key`` or ``None`` when it cannot be filtered or binned."""

        if isinstance(key, ClinicalAttributeKey):
            if key in self.patient_categorical:
                return AttributeCategory(ClinicalDataType.PATIENT, ValueKind.CATEGORICAL)
            if key in self.patient_numerical:
                return AttributeCategory(ClinicalDataType.PATIENT, ValueKind.NUMERICAL)
            if key in self.sample_categorical:
                return AttributeCategory(ClinicalDataType.SAMPLE, ValueKind.CATEGORICAL)
            if key in self.sample_numerical:
                return AttributeCategory(ClinicalDataType.SAMPLE, ValueKind.NUMERICAL)
            return None
        if isinstance(key, GenomicProfileKey):
            return self.genomic_profile_types.get(key.profile_type)
        if isinstance(key, GenericAssayKey):
            return self.generic_assay_profile_types.get(key.profile_type)
        raise TypeError(f"Unsupported attribute key: {type(key).__name__}")


def classify(catalog: AttributeCatalog, config: BinningConfig | None = None) -> AttributeClassification:
    """Classify every attribute and profile type in ``catalog``.

    An attribute declared patient-level by any study is patient-level. Where
    studies disagree on the datatype, categorical wins. Attributes whose
    datatype is neither categorical nor numerical are left out entirely.
    """

    config = config or BinningConfig()
    policy = config.datatype_policy

    buckets: dict[tuple[ClinicalDataType, ValueKind], set[AttributeKey]] = {
        (level, kind): set() for level in ClinicalDataType for kind in ValueKind
    }
    for attr_id in catalog.clinical_attribute_ids():
        declarations = catalog.clinical_attribute(attr_id)
        kind = _merge_kinds(policy.kind_for(item.datatype) for item in declarations)
        if kind is None:
            logger.debug("Clinical attribute %s has no binnable datatype", attr_id)
            continue
        level = (
            ClinicalDataType.PATIENT
            if any(item.patient_attribute for item in declarations)
            else ClinicalDataType.SAMPLE
        )
        buckets[(level, kind)].add(ClinicalAttributeKey(attr_id))

    genomic: dict[str, AttributeCategory] = {}
    generic_assay: dict[str, AttributeCategory] = {}
    categorical_types = {item.lower() for item in config.categorical_profile_types}

    for suffix in catalog.profile_suffixes():
        profiles = catalog.profiles_with_suffix(suffix)
        assay_profiles = [
            profile
            for profile in profiles
            if profile.molecular_alteration_type.upper() == GENERIC_ASSAY_ALTERATION_TYPE
        ]
        if assay_profiles:
            kind = _merge_kinds(policy.kind_for(profile.datatype) for profile in assay_profiles)
            if kind is None:
                continue
            level = (
                ClinicalDataType.PATIENT
                if any(profile.patient_level for profile in assay_profiles)
                else ClinicalDataType.SAMPLE
            )
            generic_assay[suffix] = AttributeCategory(level, kind)
            continue

        kind = ValueKind.CATEGORICAL if suffix.lower() in categorical_types else ValueKind.NUMERICAL
        genomic[suffix] = AttributeCategory(ClinicalDataType.SAMPLE, kind)

    return AttributeClassification(
        patient_categorical=frozenset(buckets[(ClinicalDataType.PATIENT, ValueKind.CATEGORICAL)]),
        patient_numerical=frozenset(buckets[(ClinicalDataType.PATIENT, ValueKind.NUMERICAL)]),
        sample_categorical=frozenset(buckets[(ClinicalDataType.SAMPLE, ValueKind.CATEGORICAL)]),
        sample_numerical=frozenset(buckets[(ClinicalDataType.SAMPLE, ValueKind.NUMERICAL)]),
        genomic_profile_types=MappingProxyType(genomic),
        generic_assay_profile_types=MappingProxyType(generic_assay),
    )


@dataclass(frozen=True)
class CategorizedFilters:
    """Filters of a StudyViewFilter sorted into their application buckets."""

    patient_categorical_clinical: tuple[ClinicalDataFilter, ...] = ()
    patient_numerical_clinical: tuple[ClinicalDataFilter, ...] = ()
    sample_categorical_clinical: tuple[ClinicalDataFilter, ...] = ()
    sample_numerical_clinical: tuple[ClinicalDataFilter, ...] = ()
    sample_categorical_genomic: tuple[GenomicDataFilter, ...] = ()
    sample_numerical_genomic: tuple[GenomicDataFilter, ...] = ()
    patient_categorical_generic_assay: tuple[GenericAssayDataFilter, ...] = ()
    patient_numerical_generic_assay: tuple[GenericAssayDataFilter, ...] = ()
    sample_categorical_generic_assay: tuple[GenericAssayDataFilter, ...] = ()
    sample_numerical_generic_assay: tuple[GenericAssayDataFilter, ...] = ()
    dropped: tuple[AttributeKey, ...] = ()

    @property
    def has_patient_filters(self) -> bool:
        return bool(
            self.patient_categorical_clinical
            or self.patient_numerical_clinical
            or self.patient_categorical_generic_assay
            or self.patient_numerical_generic_assay
        )


class FilterClassifier:
    """Builds filter-application plans against one catalog snapshot."""

    def __init__(self, catalog: AttributeCatalog, config: BinningConfig | None = None) -> None:
        self.catalog = catalog
        self.config = config or BinningConfig()
        self.classification = classify(catalog, self.config)

    def category_for(self, key: AttributeKey) -> AttributeCategory | None:
        return self.classification.category_for(key)

    def categorize(self, study_view_filter: StudyViewFilter) -> CategorizedFilters:
        """Sort the data filters of ``study_view_filter``; unresolvable ones are dropped."""

        buckets: dict[str, list] = {name: [] for name in CategorizedFilters.__dataclass_fields__}
        dropped: list[AttributeKey] = []

        def place(
            item: ClinicalDataFilter | GenomicDataFilter | GenericAssayDataFilter,
            suffix: str,
        ) -> None:
            category = self.category_for(item.key)
            if category is None:
                dropped.append(item.key)
                return
            bucket = f"{category.level.value.lower()}_{category.kind.value.lower()}_{suffix}"
            if bucket not in buckets:
                dropped.append(item.key)
                return
            buckets[bucket].append(item)

        for clinical_filter in study_view_filter.clinical_data_filters:
            place(clinical_filter, "clinical")
        for genomic_filter in study_view_filter.genomic_data_filters:
            place(genomic_filter, "genomic")
        for assay_filter in study_view_filter.generic_assay_data_filters:
            place(assay_filter, "generic_assay")

        if dropped:
            logger.warning(
                "Dropping %d unresolvable filter clause(s): %s",
                len(dropped),
                ", ".join(key.unique_key for key in dropped),
            )

        buckets["dropped"] = dropped
        return CategorizedFilters(**{name: tuple(values) for name, values in buckets.items()})

    @staticmethod
    def should_apply_patient_filters(
        study_view_filter: StudyViewFilter,
        categorized: CategorizedFilters,
    ) -> bool:
        """Patient-level expansion is needed for clinical-event or patient-level data filters."""

        return bool(study_view_filter.clinical_event_filters) or categorized.has_patient_filters
