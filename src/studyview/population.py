"""Compute the sample population selected by a StudyViewFilter.

Predicates combine with AND across filters and OR across the alternative
values inside one filter. Patient-level predicates select patients and then
admit every sample of a selected patient.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable, Sequence

import pandas as pd

from studyview.catalog import AttributeCatalog
from studyview.classifier import CategorizedFilters, FilterClassifier
from studyview.config import BinningConfig, ValueKind
from studyview.identifiers import IdentifierResolver, case_unique_key
from studyview.models import (
    AlterationFilter,
    ClinicalDataFilter,
    ClinicalEventFilter,
    CustomDataFilter,
    DataFilterValue,
    EntityKey,
    GeneFilter,
    GenericAssayDataFilter,
    GenomicDataFilter,
    Population,
    PopulationSample,
    StudyViewFilter,
)
from studyview.storage.base import StudyViewRepository
from studyview.values import value_matches, wants_missing

logger = logging.getLogger("studyview.population")

MUTATION_ALTERATION_TYPE = "MUTATION_EXTENDED"
COPY_NUMBER_ALTERATION_TYPE = "COPY_NUMBER_ALTERATION"


def apply_alteration_filter(
    frame: pd.DataFrame,
    alteration_filter: AlterationFilter | None,
    *,
    copy_number: bool = False,
) -> pd.DataFrame:
    """Keep mutation (or CNA event) rows selected by ``alteration_filter``."""

    if alteration_filter is None or frame.empty:
        return frame

    keep = pd.Series(True, index=frame.index)
    if copy_number:
        if alteration_filter.copy_number_events is not None:
            alteration = pd.to_numeric(frame["alteration"], errors="coerce")
            keep &= alteration.isin(alteration_filter.copy_number_events)
    else:
        if alteration_filter.mutation_event_types is not None:
            wanted = {item.upper() for item in alteration_filter.mutation_event_types}
            keep &= frame["mutation_type"].astype(str).str.upper().isin(wanted)
        germline = frame["is_germline"].astype(bool)
        if not alteration_filter.include_germline:
            keep &= ~germline
        if not alteration_filter.include_somatic:
            keep &= germline

    driver = frame["is_driver"].astype(bool)
    if not alteration_filter.include_driver:
        keep &= ~driver
    if not alteration_filter.include_vus:
        keep &= driver
    return frame[keep]


def _first_values(frame: pd.DataFrame, study_column: str, case_column: str, value_column: str) -> dict[EntityKey, str]:
    values: dict[EntityKey, str] = {}
    for study_id, case_id, value in zip(frame[study_column], frame[case_column], frame[value_column]):
        if value is None or (isinstance(value, float) and pd.isna(value)):
            continue
        values.setdefault(case_unique_key(str(study_id), str(case_id)), str(value))
    return values


def _match(
    universe: Iterable[EntityKey],
    recorded: dict[EntityKey, str],
    values: Sequence[DataFilterValue],
    kind: ValueKind,
    *,
    missing_matches_na: bool,
) -> set[EntityKey]:
    include_missing = missing_matches_na and wants_missing(values)
    matched: set[EntityKey] = set()
    for key in universe:
        raw = recorded.get(key)
        if raw is None:
            if include_missing:
                matched.add(key)
            continue
        if value_matches(raw, values, kind):
            matched.add(key)
    return matched


class PopulationFilter:
    """Applies every predicate of a StudyViewFilter to the study samples."""

    def __init__(
        self,
        repository: StudyViewRepository,
        catalog: AttributeCatalog,
        config: BinningConfig | None = None,
    ) -> None:
        self.repository = repository
        self.catalog = catalog
        self.config = config or BinningConfig()
        self.classifier = FilterClassifier(catalog, self.config)
        self.resolver = IdentifierResolver(catalog, repository)

    def apply(self, study_view_filter: StudyViewFilter) -> Population:
        study_ids = list(study_view_filter.effective_study_ids())
        samples = self._selected_samples(study_view_filter, study_ids)
        if samples.empty:
            return Population()

        rows = [
            PopulationSample(str(study_id), str(sample_id), str(patient_id))
            for study_id, sample_id, patient_id in zip(
                samples["study_id"], samples["sample_id"], samples["patient_id"]
            )
        ]
        selected: set[EntityKey] = {EntityKey(row.study_id, row.sample_id) for row in rows}
        categorized = self.classifier.categorize(study_view_filter)

        for case_list_group in study_view_filter.case_list_ids:
            selected &= self._case_list_samples(case_list_group)

        for clinical_filter in categorized.sample_categorical_clinical:
            selected &= self._sample_clinical(study_ids, selected, clinical_filter, ValueKind.CATEGORICAL)
        for clinical_filter in categorized.sample_numerical_clinical:
            selected &= self._sample_clinical(study_ids, selected, clinical_filter, ValueKind.NUMERICAL)

        for genomic_filter in categorized.sample_categorical_genomic:
            selected &= self._genomic(rows, selected, genomic_filter, ValueKind.CATEGORICAL)
        for genomic_filter in categorized.sample_numerical_genomic:
            selected &= self._genomic(rows, selected, genomic_filter, ValueKind.NUMERICAL)

        for assay_filter in categorized.sample_categorical_generic_assay:
            selected &= self._generic_assay(rows, selected, assay_filter, ValueKind.CATEGORICAL)
        for assay_filter in categorized.sample_numerical_generic_assay:
            selected &= self._generic_assay(rows, selected, assay_filter, ValueKind.NUMERICAL)

        for gene_filter in study_view_filter.gene_filters:
            selected &= self._gene_filter(rows, selected, gene_filter, study_view_filter.alteration_filter)

        for custom_filter in study_view_filter.custom_data_filters:
            selected &= self._custom_data(selected, custom_filter)

        if self.classifier.should_apply_patient_filters(study_view_filter, categorized):
            selected = self._apply_patient_filters(
                study_ids, rows, selected, study_view_filter, categorized
            )

        population = Population(
            tuple(row for row in rows if EntityKey(row.study_id, row.sample_id) in selected)
        )
        logger.debug(
            "Filtered population: studies=%s samples=%d of %d",
            ",".join(study_ids),
            len(population),
            len(rows),
        )
        return population

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def _selected_samples(self, study_view_filter: StudyViewFilter, study_ids: list[str]) -> pd.DataFrame:
        samples = self.repository.get_samples(study_ids)
        if samples.empty or not study_view_filter.sample_identifiers:
            return samples

        allowed_studies = set(study_ids)
        wanted = {
            (identifier.study_id, identifier.sample_id)
            for identifier in study_view_filter.sample_identifiers
            if identifier.study_id in allowed_studies
        }
        dropped = len(study_view_filter.sample_identifiers) - len(wanted)
        if dropped > 0:
            logger.debug("Ignoring %d sample identifier(s) outside the requested studies", dropped)

        mask = [
            (str(study_id), str(sample_id)) in wanted
            for study_id, sample_id in zip(samples["study_id"], samples["sample_id"])
        ]
        return samples[mask]

    def _case_list_samples(self, list_ids: Sequence[str]) -> set[EntityKey]:
        members = self.repository.get_sample_list_members(list(list_ids))
        return {
            case_unique_key(str(study_id), str(sample_id))
            for study_id, sample_id in zip(members["study_id"], members["sample_id"])
        }

    # ------------------------------------------------------------------
    # Sample-level predicates
    # ------------------------------------------------------------------

    def _sample_clinical(
        self,
        study_ids: list[str],
        selected: set[EntityKey],
        clinical_filter: ClinicalDataFilter,
        kind: ValueKind,
    ) -> set[EntityKey]:
        frame = self.repository.get_sample_clinical_data(study_ids, [clinical_filter.attribute_id])
        recorded = _first_values(frame, "study_id", "sample_id", "attr_value")
        return _match(selected, recorded, clinical_filter.values, kind, missing_matches_na=True)

    def _genomic(
        self,
        rows: list[PopulationSample],
        selected: set[EntityKey],
        genomic_filter: GenomicDataFilter,
        kind: ValueKind,
    ) -> set[EntityKey]:
        gene_ids = self.resolver.resolve_gene_symbols([genomic_filter.hugo_gene_symbol])
        entrez_gene_id = gene_ids.get(genomic_filter.hugo_gene_symbol)
        if entrez_gene_id is None:
            logger.warning(
                "Dropping genomic filter on unknown gene %s", genomic_filter.hugo_gene_symbol
            )
            return set(selected)

        candidates = Population(
            tuple(row for row in rows if EntityKey(row.study_id, row.sample_id) in selected)
        )
        study_to_profile = self.resolver.resolve_profiles(candidates.study_ids, genomic_filter.profile_type)
        pairs = self.resolver.map_samples_to_profiles(candidates, study_to_profile)
        if not pairs:
            return set()

        frame = self.repository.get_molecular_data(pairs.profile_ids, pairs.sample_ids, [entrez_gene_id])
        recorded = _first_values(frame, "study_id", "sample_id", "value")
        universe = {
            EntityKey(row.study_id, row.sample_id)
            for row in candidates.samples
            if row.study_id in study_to_profile
        }
        return _match(universe, recorded, genomic_filter.values, kind, missing_matches_na=False)

    def _generic_assay_values(
        self,
        rows: list[PopulationSample],
        selected: set[EntityKey],
        assay_filter: GenericAssayDataFilter,
    ) -> tuple[set[EntityKey], dict[EntityKey, str]]:
        candidates = Population(
            tuple(row for row in rows if EntityKey(row.study_id, row.sample_id) in selected)
        )
        study_to_profile = self.resolver.resolve_profiles(candidates.study_ids, assay_filter.profile_type)
        pairs = self.resolver.map_samples_to_profiles(candidates, study_to_profile)
        if not pairs:
            return set(), {}
        frame = self.repository.get_generic_assay_data(
            pairs.profile_ids, pairs.sample_ids, [assay_filter.stable_id]
        )
        universe = {
            EntityKey(row.study_id, row.sample_id)
            for row in candidates.samples
            if row.study_id in study_to_profile
        }
        return universe, _first_values(frame, "study_id", "sample_id", "value")

    def _generic_assay(
        self,
        rows: list[PopulationSample],
        selected: set[EntityKey],
        assay_filter: GenericAssayDataFilter,
        kind: ValueKind,
    ) -> set[EntityKey]:
        universe, recorded = self._generic_assay_values(rows, selected, assay_filter)
        return _match(universe, recorded, assay_filter.values, kind, missing_matches_na=False)

    def _gene_filter(
        self,
        rows: list[PopulationSample],
        selected: set[EntityKey],
        gene_filter: GeneFilter,
        alteration_filter: AlterationFilter | None,
    ) -> set[EntityKey]:
        symbols = [symbol for group in gene_filter.gene_queries for symbol in group]
        gene_ids = self.resolver.resolve_gene_symbols(symbols)
        study_ids = sorted({row.study_id for row in rows})

        mutation_profiles: list[str] = []
        cna_profiles: list[str] = []
        for profile_type in gene_filter.profile_types:
            for profile_id in self.resolver.resolve_profiles(study_ids, profile_type).values():
                profile = self.catalog.profile(profile_id)
                if profile is None:
                    continue
                alteration_type = profile.molecular_alteration_type.upper()
                if alteration_type == MUTATION_ALTERATION_TYPE:
                    mutation_profiles.append(profile_id)
                elif alteration_type == COPY_NUMBER_ALTERATION_TYPE:
                    cna_profiles.append(profile_id)

        entrez_ids = sorted(set(gene_ids.values()))
        altered_by_gene: dict[int, set[EntityKey]] = defaultdict(set)
        if entrez_ids:
            mutations = apply_alteration_filter(
                self.repository.get_mutations(mutation_profiles, entrez_ids), alteration_filter
            )
            cna_events = apply_alteration_filter(
                self.repository.get_cna_events(cna_profiles, entrez_ids),
                alteration_filter,
                copy_number=True,
            )
            for frame in (mutations, cna_events):
                for study_id, sample_id, entrez_gene_id in zip(
                    frame["study_id"], frame["sample_id"], frame["entrez_gene_id"]
                ):
                    altered_by_gene[int(entrez_gene_id)].add(
                        case_unique_key(str(study_id), str(sample_id))
                    )

        matched = set(selected)
        for group in gene_filter.gene_queries:
            resolved = [gene_ids[symbol] for symbol in group if symbol in gene_ids]
            if not resolved:
                logger.warning("Dropping gene query with no known genes: %s", ", ".join(group))
                continue
            group_samples: set[EntityKey] = set()
            for entrez_gene_id in resolved:
                group_samples |= altered_by_gene.get(entrez_gene_id, set())
            matched &= group_samples
        return matched

    def _custom_data(self, selected: set[EntityKey], custom_filter: CustomDataFilter) -> set[EntityKey]:
        recorded: dict[EntityKey, str] = {}
        for record in custom_filter.records:
            recorded.setdefault(case_unique_key(record.study_id, record.sample_id), record.value)
        return _match(
            selected, recorded, custom_filter.values, ValueKind.CATEGORICAL, missing_matches_na=True
        )

    # ------------------------------------------------------------------
    # Patient-level predicates
    # ------------------------------------------------------------------

    def _apply_patient_filters(
        self,
        study_ids: list[str],
        rows: list[PopulationSample],
        selected: set[EntityKey],
        study_view_filter: StudyViewFilter,
        categorized: CategorizedFilters,
    ) -> set[EntityKey]:
        all_patients = {EntityKey(row.study_id, row.patient_id) for row in rows}
        patients = set(all_patients)

        for clinical_filter in categorized.patient_categorical_clinical:
            patients &= self._patient_clinical(study_ids, all_patients, clinical_filter, ValueKind.CATEGORICAL)
        for clinical_filter in categorized.patient_numerical_clinical:
            patients &= self._patient_clinical(study_ids, all_patients, clinical_filter, ValueKind.NUMERICAL)

        for assay_filter in categorized.patient_categorical_generic_assay:
            patients &= self._patient_generic_assay(rows, assay_filter, ValueKind.CATEGORICAL)
        for assay_filter in categorized.patient_numerical_generic_assay:
            patients &= self._patient_generic_assay(rows, assay_filter, ValueKind.NUMERICAL)

        for event_filter in study_view_filter.clinical_event_filters:
            patients &= self._clinical_event_patients(study_ids, event_filter)

        return {
            EntityKey(row.study_id, row.sample_id)
            for row in rows
            if EntityKey(row.study_id, row.sample_id) in selected
            and EntityKey(row.study_id, row.patient_id) in patients
        }

    def _patient_clinical(
        self,
        study_ids: list[str],
        patients: set[EntityKey],
        clinical_filter: ClinicalDataFilter,
        kind: ValueKind,
    ) -> set[EntityKey]:
        frame = self.repository.get_patient_clinical_data(study_ids, [clinical_filter.attribute_id])
        recorded = _first_values(frame, "study_id", "patient_id", "attr_value")
        return _match(patients, recorded, clinical_filter.values, kind, missing_matches_na=True)

    def _patient_generic_assay(
        self,
        rows: list[PopulationSample],
        assay_filter: GenericAssayDataFilter,
        kind: ValueKind,
    ) -> set[EntityKey]:
        every_sample = {EntityKey(row.study_id, row.sample_id) for row in rows}
        universe, recorded = self._generic_assay_values(rows, every_sample, assay_filter)
        matched_samples = _match(universe, recorded, assay_filter.values, kind, missing_matches_na=False)
        return {
            EntityKey(row.study_id, row.patient_id)
            for row in rows
            if EntityKey(row.study_id, row.sample_id) in matched_samples
        }

    def _clinical_event_patients(
        self, study_ids: list[str], event_filter: ClinicalEventFilter
    ) -> set[EntityKey]:
        events = self.repository.get_clinical_events(study_ids)
        if events.empty:
            return set()
        events = events[events["event_type"].astype(str).str.upper() == event_filter.event_type.upper()]

        if event_filter.attributes and not events.empty:
            data = self.repository.get_clinical_event_data(events["event_id"].astype(int).tolist())
            attributes_by_event: dict[int, dict[str, str]] = defaultdict(dict)
            for event_id, key, value in zip(data["event_id"], data["key"], data["value"]):
                attributes_by_event[int(event_id)][str(key).upper()] = str(value).upper()
            required = {key.upper(): value.upper() for key, value in event_filter.attributes}
            keep = [
                all(attributes_by_event.get(int(event_id), {}).get(key) == value for key, value in required.items())
                for event_id in events["event_id"]
            ]
            events = events[keep]

        return {
            case_unique_key(str(study_id), str(patient_id))
            for study_id, patient_id in zip(events["study_id"], events["patient_id"])
        }
