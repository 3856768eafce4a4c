"""Structural transforms over StudyViewFilter values."""

from __future__ import annotations

from studyview.models import (
    AttributeKey,
    ClinicalAttributeKey,
    GenericAssayKey,
    GenomicProfileKey,
    StudyViewFilter,
)


def baseline_filter(study_view_filter: StudyViewFilter) -> StudyViewFilter:
    """Keep only the study and sample selection.

    Static bin boundaries are computed from this population so they do not
    move as data filters are layered on.
    """

    return StudyViewFilter(
        study_ids=study_view_filter.study_ids,
        sample_identifiers=study_view_filter.sample_identifiers,
    )


def remove_self_from_filter(study_view_filter: StudyViewFilter, key: AttributeKey) -> StudyViewFilter:
    """Return a copy of the filter without any data filter on ``key``.

    Matching uses the identifying fields only: attribute id for clinical
    attributes, gene symbol + profile type for genomic data, stable id +
    profile type for generic assays.
    """

    if isinstance(key, ClinicalAttributeKey):
        return study_view_filter.with_changes(
            clinical_data_filters=tuple(
                item
                for item in study_view_filter.clinical_data_filters
                if item.attribute_id != key.attribute_id
            )
        )
    if isinstance(key, GenomicProfileKey):
        return study_view_filter.with_changes(
            genomic_data_filters=tuple(
                item
                for item in study_view_filter.genomic_data_filters
                if not (
                    item.hugo_gene_symbol == key.hugo_gene_symbol
                    and item.profile_type == key.profile_type
                )
            )
        )
    if isinstance(key, GenericAssayKey):
        return study_view_filter.with_changes(
            generic_assay_data_filters=tuple(
                item
                for item in study_view_filter.generic_assay_data_filters
                if not (item.stable_id == key.stable_id and item.profile_type == key.profile_type)
            )
        )
    raise TypeError(f"Unsupported attribute key: {type(key).__name__}")


def has_data_filters(study_view_filter: StudyViewFilter) -> bool:
    """True when anything beyond the study/sample selection constrains the population."""

    return bool(
        study_view_filter.clinical_data_filters
        or study_view_filter.genomic_data_filters
        or study_view_filter.generic_assay_data_filters
        or study_view_filter.gene_filters
        or study_view_filter.clinical_event_filters
        or study_view_filter.custom_data_filters
        or study_view_filter.case_list_ids
    )
