"""Request orchestration: filter, fetch, bin and count."""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from typing import Any

from studyview.binning import BinningEngine
from studyview.cache import ResultCache, cache_key
from studyview.catalog import AttributeCatalog, CatalogProvider
from studyview.classifier import FilterClassifier
from studyview.config import BinningConfig, BinningMethod, ClinicalDataType
from studyview.counts import merge_sample_counts, tally_labels
from studyview.fetcher import DataFetcher
from studyview.filters import baseline_filter, remove_self_from_filter
from studyview.identifiers import IdentifierResolver, case_unique_key
from studyview.models import (
    AlterationCountByGene,
    Binnable,
    ClinicalAttributeKey,
    ClinicalDataBinBundle,
    ClinicalDataCountItem,
    ClinicalEventTypeCount,
    DataBin,
    DataBinBundle,
    DataBinFilter,
    EntityKey,
    GenericAssayDataBinBundle,
    GenericAssayDataCount,
    GenericAssayKey,
    GenomicDataBinBundle,
    GenomicDataCount,
    Population,
    StudyViewFilter,
)
from studyview.payloads import bin_filter_to_payload, filter_to_payload
from studyview.population import MUTATION_ALTERATION_TYPE, PopulationFilter, apply_alteration_filter
from studyview.storage.base import StudyViewRepository

logger = logging.getLogger("studyview.service")


class _RequestScope:
    """Per-request state: one catalog snapshot and memoized populations.

    Worker threads may compute the same population twice; both results are
    equal and the last one stored wins.
    """

    def __init__(self, repository: StudyViewRepository, catalog: AttributeCatalog, config: BinningConfig) -> None:
        self.catalog = catalog
        self.classifier = FilterClassifier(catalog, config)
        self.population_filter = PopulationFilter(repository, catalog, config)
        self.fetcher = DataFetcher(repository, catalog, config)
        self.resolver = IdentifierResolver(catalog, repository)
        self._populations: dict[StudyViewFilter, Population] = {}

    def population(self, study_view_filter: StudyViewFilter) -> Population:
        population = self._populations.get(study_view_filter)
        if population is None:
            population = self.population_filter.apply(study_view_filter)
            self._populations[study_view_filter] = population
        return population


class StudyViewService:
    """Entry point for data-bin and count requests."""

    def __init__(
        self,
        repository: StudyViewRepository,
        catalog_provider: CatalogProvider | None = None,
        config: BinningConfig | None = None,
        cache: ResultCache | None = None,
    ) -> None:
        self.repository = repository
        self.catalog_provider = catalog_provider or CatalogProvider(repository)
        self.config = config or BinningConfig()
        self.cache = cache
        self.engine = BinningEngine(self.config)

    def _scope(self) -> _RequestScope:
        return _RequestScope(self.repository, self.catalog_provider.current(), self.config)

    def _cached(self, operation: str, payload: Any, compute) -> tuple[Any, ...]:
        if self.cache is None:
            return tuple(compute())
        self.catalog_provider.current()
        # Keyed by snapshot version so a refresh drops stale results.
        key = cache_key(operation, {"catalog": self.catalog_provider.version, "request": payload})
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("Cache hit for %s", operation)
            return cached
        result = tuple(compute())
        self.cache.put(key, result)
        return result

    # ------------------------------------------------------------------
    # Populations
    # ------------------------------------------------------------------

    def get_filtered_samples(self, study_view_filter: StudyViewFilter) -> Population:
        return self._scope().population(study_view_filter)

    def get_filtered_samples_count(self, study_view_filter: StudyViewFilter) -> int:
        return len(self.get_filtered_samples(study_view_filter))

    # ------------------------------------------------------------------
    # Data bins
    # ------------------------------------------------------------------

    def get_data_bins(
        self,
        method: BinningMethod,
        bundle: DataBinBundle,
        remove_self: bool = True,
    ) -> list[DataBin]:
        """Bin every attribute of ``bundle``; output follows the requested attribute order."""

        if not isinstance(bundle, (ClinicalDataBinBundle, GenomicDataBinBundle, GenericAssayDataBinBundle)):
            raise TypeError(f"Unsupported data bin bundle: {type(bundle).__name__}")

        payload = {
            "bundle": type(bundle).__name__,
            "method": method.value,
            "filter": filter_to_payload(bundle.study_view_filter),
            "attributes": [bin_filter_to_payload(item) for item in bundle.attributes],
            "removeSelf": remove_self,
        }
        return list(
            self._cached("data_bins", payload, lambda: self._compute_data_bins(method, bundle, remove_self))
        )

    def _compute_data_bins(
        self,
        method: BinningMethod,
        bundle: DataBinBundle,
        remove_self: bool,
    ) -> list[DataBin]:
        scope = self._scope()
        study_view_filter = bundle.study_view_filter

        unique: dict[str, DataBinFilter] = {}
        for bin_filter in bundle.attributes:
            unique.setdefault(bin_filter.key.unique_key, bin_filter)

        baseline: Population | None = None
        if method is BinningMethod.STATIC:
            baseline = scope.population(baseline_filter(study_view_filter))

        def bin_one(bin_filter: DataBinFilter) -> list[DataBin]:
            category = scope.classifier.category_for(bin_filter.key)
            if category is None:
                logger.debug("No classification for %s; no bins", bin_filter.key.unique_key)
                return []
            filtered_filter = (
                remove_self_from_filter(study_view_filter, bin_filter.key) if remove_self else study_view_filter
            )
            filtered_values = scope.fetcher.fetch(scope.population(filtered_filter), [bin_filter.key])
            baseline_values: list[Binnable] | None = None
            if baseline is not None:
                baseline_values = scope.fetcher.fetch(baseline, [bin_filter.key])
            return self.engine.bin(bin_filter, filtered_values, baseline_values, method, category.kind)

        filters = list(unique.values())
        with ThreadPoolExecutor(max_workers=min(self.config.max_workers, max(len(filters), 1))) as executor:
            results = dict(zip(unique, executor.map(bin_one, filters)))

        bins: list[DataBin] = []
        for unique_key in unique:
            bins.extend(results[unique_key])
        logger.info(
            "Computed %d bin(s) for %d attribute(s) method=%s remove_self=%s",
            len(bins),
            len(filters),
            method.value,
            remove_self,
        )
        return bins

    # ------------------------------------------------------------------
    # Counts
    # ------------------------------------------------------------------

    def get_clinical_data_counts(
        self,
        study_view_filter: StudyViewFilter,
        attribute_ids: Sequence[str],
        remove_self: bool = True,
    ) -> list[ClinicalDataCountItem]:
        """Value counts per clinical attribute; population entities without a value count as NA."""

        payload = {
            "filter": filter_to_payload(study_view_filter),
            "attributeIds": list(attribute_ids),
            "removeSelf": remove_self,
        }

        def compute() -> list[ClinicalDataCountItem]:
            scope = self._scope()
            items: list[ClinicalDataCountItem] = []
            for attribute_id in dict.fromkeys(attribute_ids):
                key = ClinicalAttributeKey(attribute_id)
                category = scope.classifier.category_for(key)
                if category is None:
                    logger.debug("Skipping unclassified clinical attribute %s", attribute_id)
                    continue
                filtered_filter = (
                    remove_self_from_filter(study_view_filter, key) if remove_self else study_view_filter
                )
                population = scope.population(filtered_filter)
                values = {row.entity_key: row.value for row in scope.fetcher.fetch(population, [key])}
                universe = (
                    population.patient_keys
                    if category.level is ClinicalDataType.PATIENT
                    else population.sample_keys
                )
                items.append(ClinicalDataCountItem(attribute_id, tuple(tally_labels(values, universe))))
            return items

        return list(self._cached("clinical_data_counts", payload, compute))

    def get_molecular_profile_sample_counts(self, study_view_filter: StudyViewFilter) -> list[GenomicDataCount]:
        """Filtered samples profiled per profile type, merged across studies."""

        scope = self._scope()
        population = scope.population(study_view_filter)
        study_ids = set(population.study_ids)
        profiles = [profile for profile in scope.catalog.molecular_profiles if profile.study_id in study_ids]
        if not profiles:
            return []

        profiled = self.repository.get_profiled_samples([profile.stable_id for profile in profiles])
        per_profile: dict[str, set[EntityKey]] = defaultdict(set)
        for profile_id, study_id, sample_id in zip(
            profiled["profile_id"], profiled["study_id"], profiled["sample_id"]
        ):
            entity_key = case_unique_key(str(study_id), str(sample_id))
            if entity_key in population.sample_keys:
                per_profile[str(profile_id)].add(entity_key)

        counts = [
            GenomicDataCount(
                label=profile.name or profile.suffix,
                value=profile.suffix,
                count=len(per_profile.get(profile.stable_id, ())),
            )
            for profile in profiles
        ]
        return merge_sample_counts(counts)

    def get_generic_assay_data_counts(
        self,
        study_view_filter: StudyViewFilter,
        stable_ids: Sequence[str],
        profile_type: str,
    ) -> list[GenericAssayDataCount]:
        """Categorical value counts per assay entity; profiled samples without a value count as NA."""

        scope = self._scope()
        population = scope.population(study_view_filter)
        study_to_profile = scope.resolver.resolve_profiles(population.study_ids, profile_type)
        profiled_keys = {
            EntityKey(sample.study_id, sample.sample_id)
            for sample in population.samples
            if sample.study_id in study_to_profile
        }
        patient_of = {
            EntityKey(sample.study_id, sample.sample_id): EntityKey(sample.study_id, sample.patient_id)
            for sample in population.samples
        }

        results: list[GenericAssayDataCount] = []
        for stable_id in dict.fromkeys(stable_ids):
            key = GenericAssayKey(stable_id, profile_type)
            category = scope.classifier.category_for(key)
            if category is None:
                logger.debug("Skipping unclassified generic assay %s", key.unique_key)
                continue
            values = {row.entity_key: row.value for row in scope.fetcher.fetch(population, [key])}
            universe: set[EntityKey] = set(profiled_keys)
            if category.level is ClinicalDataType.PATIENT:
                universe = {patient_of[item] for item in profiled_keys}
            for count in tally_labels(values, universe):
                results.append(GenericAssayDataCount(stable_id, count.value, count.count))
        return results

    def get_mutated_genes(self, study_view_filter: StudyViewFilter) -> list[AlterationCountByGene]:
        """Mutated-gene table for the filtered samples, honouring the alteration filter."""

        scope = self._scope()
        population = scope.population(study_view_filter)
        profiles_by_study = scope.resolver.resolve_profiles_by_alteration_type(
            population.study_ids, MUTATION_ALTERATION_TYPE
        )
        profile_ids = [profile_id for ids in profiles_by_study.values() for profile_id in ids]
        if not profile_ids:
            return []

        mutations = apply_alteration_filter(
            self.repository.get_mutations(profile_ids), study_view_filter.alteration_filter
        )
        altered: dict[int, set[EntityKey]] = defaultdict(set)
        events: dict[int, int] = defaultdict(int)
        for study_id, sample_id, entrez_gene_id in zip(
            mutations["study_id"], mutations["sample_id"], mutations["entrez_gene_id"]
        ):
            entity_key = case_unique_key(str(study_id), str(sample_id))
            if entity_key not in population.sample_keys:
                continue
            altered[int(entrez_gene_id)].add(entity_key)
            events[int(entrez_gene_id)] += 1
        if not altered:
            return []

        profiled = self.repository.get_profiled_samples(profile_ids)
        profiled_keys = {
            case_unique_key(str(study_id), str(sample_id))
            for study_id, sample_id in zip(profiled["study_id"], profiled["sample_id"])
        } & population.sample_keys
        studies_with_membership = {str(study_id) for study_id in profiled["study_id"]}
        for sample in population.samples:
            if sample.study_id in profiles_by_study and sample.study_id not in studies_with_membership:
                profiled_keys.add(EntityKey(sample.study_id, sample.sample_id))

        symbols = {gene.entrez_gene_id: gene.hugo_gene_symbol for gene in self.repository.get_genes(sorted(altered))}
        rows = [
            AlterationCountByGene(
                entrez_gene_id=entrez_gene_id,
                hugo_gene_symbol=symbols.get(entrez_gene_id, str(entrez_gene_id)),
                number_of_altered_cases=len(samples),
                total_count=events[entrez_gene_id],
                number_of_profiled_cases=len(profiled_keys),
            )
            for entrez_gene_id, samples in altered.items()
        ]
        return sorted(rows, key=lambda row: (-row.number_of_altered_cases, row.hugo_gene_symbol))

    def get_clinical_event_type_counts(self, study_view_filter: StudyViewFilter) -> list[ClinicalEventTypeCount]:
        """Distinct filtered patients per clinical event type."""

        population = self.get_filtered_samples(study_view_filter)
        events = self.repository.get_clinical_events(list(population.study_ids))
        patients: dict[str, set[EntityKey]] = defaultdict(set)
        for study_id, patient_id, event_type in zip(events["study_id"], events["patient_id"], events["event_type"]):
            entity_key = case_unique_key(str(study_id), str(patient_id))
            if entity_key in population.patient_keys:
                patients[str(event_type)].add(entity_key)
        counts = [ClinicalEventTypeCount(event_type, len(keys)) for event_type, keys in patients.items()]
        return sorted(counts, key=lambda item: (-item.count, item.event_type))

    def get_case_list_data_counts(self, study_view_filter: StudyViewFilter) -> list[GenomicDataCount]:
        """Filtered samples per case list, merged across studies by list suffix."""

        population = self.get_filtered_samples(study_view_filter)
        lists = self.repository.get_sample_lists(list(population.study_ids))
        if lists.empty:
            return []

        members = self.repository.get_sample_list_members([str(item) for item in lists["list_id"]])
        per_list: dict[str, set[EntityKey]] = defaultdict(set)
        for list_id, study_id, sample_id in zip(members["list_id"], members["study_id"], members["sample_id"]):
            entity_key = case_unique_key(str(study_id), str(sample_id))
            if entity_key in population.sample_keys:
                per_list[str(list_id)].add(entity_key)

        counts = []
        for list_id, study_id, name in zip(lists["list_id"], lists["study_id"], lists["name"]):
            list_id, study_id = str(list_id), str(study_id)
            prefix = f"{study_id}_"
            suffix = list_id[len(prefix):] if list_id.startswith(prefix) else list_id
            counts.append(
                GenomicDataCount(label=str(name) or suffix, value=suffix, count=len(per_list.get(list_id, ())))
            )
        return merge_sample_counts(counts)

    # ------------------------------------------------------------------
    # Single-profile reads
    # ------------------------------------------------------------------

    def fetch_generic_assay_data(
        self,
        molecular_profile_id: str,
        sample_ids: Sequence[str] | None,
        stable_ids: Sequence[str],
    ) -> list[Binnable]:
        """Values of one generic-assay profile; raises MolecularProfileNotFoundError if it is unknown."""

        return self._scope().fetcher.fetch_generic_assay_data(molecular_profile_id, sample_ids, stable_ids)
