"""Value sources that turn a population and attribute keys into Binnable rows."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from collections.abc import Callable, Iterable, Sequence
from typing import Any

import pandas as pd

from studyview.catalog import GENERIC_ASSAY_ALTERATION_TYPE, AttributeCatalog
from studyview.classifier import AttributeClassification, classify
from studyview.config import BinningConfig, ClinicalDataType
from studyview.exceptions import MolecularProfileNotFoundError
from studyview.identifiers import IdentifierResolver, case_unique_key
from studyview.models import (
    AttributeKey,
    Binnable,
    ClinicalAttributeKey,
    EntityKey,
    GenericAssayKey,
    GenomicProfileKey,
    Population,
)
from studyview.storage.base import StudyViewRepository

logger = logging.getLogger("studyview.fetcher")


def _is_missing(value: Any) -> bool:
    return value is None or (isinstance(value, float) and pd.isna(value))


class _BinnableCollector:
    """Keeps the first value seen per (entity, attribute)."""

    def __init__(self) -> None:
        self._rows: dict[tuple[EntityKey, str], Binnable] = {}

    def add(self, entity_key: EntityKey, attribute_id: str, value: Any) -> None:
        if _is_missing(value):
            return
        self._rows.setdefault(
            (entity_key, attribute_id), Binnable(entity_key, attribute_id, str(value))
        )

    def rows(self) -> list[Binnable]:
        return list(self._rows.values())


class ValueSource(ABC):
    """Fetches raw values of one attribute kind for a population."""

    kind = "ABSTRACT"

    def __init__(
        self,
        repository: StudyViewRepository,
        catalog: AttributeCatalog,
        config: BinningConfig | None = None,
        classification: AttributeClassification | None = None,
    ) -> None:
        self.repository = repository
        self.catalog = catalog
        self.config = config or BinningConfig()
        self.classification = classification or classify(catalog, self.config)
        self.resolver = IdentifierResolver(catalog, repository)

    @abstractmethod
    def fetch(self, population: Population, keys: Sequence[AttributeKey]) -> list[Binnable]:
        """Return one Binnable per entity that has a recorded value for each key.

        Entities without a record are absent; ``Binnable.attribute_id`` is
        the key's ``unique_key``.
        """

    def _level(self, key: AttributeKey) -> ClinicalDataType:
        category = self.classification.category_for(key)
        if category is None:
            return ClinicalDataType.SAMPLE
        return category.level


class ClinicalValueSource(ValueSource):
    kind = ClinicalAttributeKey.kind

    def fetch(self, population: Population, keys: Sequence[AttributeKey]) -> list[Binnable]:
        if not population or not keys:
            return []

        sample_keys: dict[str, ClinicalAttributeKey] = {}
        patient_keys: dict[str, ClinicalAttributeKey] = {}
        for key in keys:
            if not isinstance(key, ClinicalAttributeKey):
                raise TypeError(f"{type(self).__name__} cannot fetch {type(key).__name__}")
            if self._level(key) is ClinicalDataType.PATIENT:
                patient_keys[key.attribute_id] = key
            else:
                sample_keys[key.attribute_id] = key

        collector = _BinnableCollector()
        study_ids = list(population.study_ids)

        if sample_keys:
            frame = self.repository.get_sample_clinical_data(study_ids, list(sample_keys))
            for study_id, sample_id, attr_id, value in zip(
                frame["study_id"], frame["sample_id"], frame["attr_id"], frame["attr_value"]
            ):
                entity_key = case_unique_key(str(study_id), str(sample_id))
                if entity_key in population.sample_keys:
                    collector.add(entity_key, sample_keys[str(attr_id)].unique_key, value)

        if patient_keys:
            frame = self.repository.get_patient_clinical_data(study_ids, list(patient_keys))
            for study_id, patient_id, attr_id, value in zip(
                frame["study_id"], frame["patient_id"], frame["attr_id"], frame["attr_value"]
            ):
                entity_key = case_unique_key(str(study_id), str(patient_id))
                if entity_key in population.patient_keys:
                    collector.add(entity_key, patient_keys[str(attr_id)].unique_key, value)

        return collector.rows()


class MolecularValueSource(ValueSource):
    kind = GenomicProfileKey.kind

    def fetch(self, population: Population, keys: Sequence[AttributeKey]) -> list[Binnable]:
        if not population or not keys:
            return []

        by_profile_type: dict[str, list[GenomicProfileKey]] = defaultdict(list)
        for key in keys:
            if not isinstance(key, GenomicProfileKey):
                raise TypeError(f"{type(self).__name__} cannot fetch {type(key).__name__}")
            by_profile_type[key.profile_type].append(key)

        collector = _BinnableCollector()
        for profile_type, type_keys in by_profile_type.items():
            gene_ids = self.resolver.resolve_gene_symbols(key.hugo_gene_symbol for key in type_keys)
            keys_by_gene: dict[int, list[GenomicProfileKey]] = defaultdict(list)
            for key in type_keys:
                entrez_gene_id = gene_ids.get(key.hugo_gene_symbol)
                if entrez_gene_id is not None:
                    keys_by_gene[entrez_gene_id].append(key)
            if not keys_by_gene:
                continue

            study_to_profile = self.resolver.resolve_profiles(population.study_ids, profile_type)
            pairs = self.resolver.map_samples_to_profiles(population, study_to_profile)
            if not pairs:
                continue

            frame = self.repository.get_molecular_data(
                pairs.profile_ids, pairs.sample_ids, sorted(keys_by_gene)
            )
            for study_id, sample_id, entrez_gene_id, value in zip(
                frame["study_id"], frame["sample_id"], frame["entrez_gene_id"], frame["value"]
            ):
                entity_key = case_unique_key(str(study_id), str(sample_id))
                for key in keys_by_gene.get(int(entrez_gene_id), ()):
                    collector.add(entity_key, key.unique_key, value)

        return collector.rows()


class GenericAssayValueSource(ValueSource):
    kind = GenericAssayKey.kind

    def fetch(self, population: Population, keys: Sequence[AttributeKey]) -> list[Binnable]:
        if not population or not keys:
            return []

        by_profile_type: dict[str, list[GenericAssayKey]] = defaultdict(list)
        for key in keys:
            if not isinstance(key, GenericAssayKey):
                raise TypeError(f"{type(self).__name__} cannot fetch {type(key).__name__}")
            by_profile_type[key.profile_type].append(key)

        patient_of = {
            EntityKey(sample.study_id, sample.sample_id): EntityKey(sample.study_id, sample.patient_id)
            for sample in population.samples
        }
        collector = _BinnableCollector()
        for profile_type, type_keys in by_profile_type.items():
            study_to_profile = self.resolver.resolve_profiles(population.study_ids, profile_type)
            pairs = self.resolver.map_samples_to_profiles(population, study_to_profile)
            if not pairs:
                continue

            keys_by_stable_id = {key.stable_id: key for key in type_keys}
            frame = self.repository.get_generic_assay_data(
                pairs.profile_ids, pairs.sample_ids, list(keys_by_stable_id)
            )
            for study_id, sample_id, stable_id, value in zip(
                frame["study_id"], frame["sample_id"], frame["stable_id"], frame["value"]
            ):
                key = keys_by_stable_id[str(stable_id)]
                entity_key = case_unique_key(str(study_id), str(sample_id))
                if self._level(key) is ClinicalDataType.PATIENT:
                    entity_key = patient_of.get(entity_key, entity_key)
                collector.add(entity_key, key.unique_key, value)

        return collector.rows()

    def fetch_profile(
        self,
        molecular_profile_id: str,
        sample_ids: Sequence[str] | None,
        stable_ids: Sequence[str],
    ) -> list[Binnable]:
        """Values of one explicitly named generic-assay profile.

        Raises ``MolecularProfileNotFoundError`` when the profile is unknown or
        is not a generic-assay profile. ``sample_ids=None`` reads every sample
        profiled in it.
        """

        profile = self.catalog.profile(molecular_profile_id)
        if profile is None or profile.molecular_alteration_type.upper() != GENERIC_ASSAY_ALTERATION_TYPE:
            raise MolecularProfileNotFoundError(molecular_profile_id)

        if sample_ids is None:
            profiled = self.repository.get_profiled_samples([molecular_profile_id])
            sample_ids = [str(item) for item in profiled["sample_id"]]

        frame = self.repository.get_generic_assay_data(
            [molecular_profile_id] * len(sample_ids), list(sample_ids), list(stable_ids)
        )
        collector = _BinnableCollector()
        for study_id, sample_id, stable_id, value in zip(
            frame["study_id"], frame["sample_id"], frame["stable_id"], frame["value"]
        ):
            collector.add(case_unique_key(str(study_id), str(sample_id)), str(stable_id), value)
        return collector.rows()


ValueSourceFactory = Callable[..., ValueSource]


class ValueSourceRegistry:
    """Maps attribute-key kinds to the value source that serves them."""

    def __init__(self) -> None:
        self._factories: dict[str, ValueSourceFactory] = {}

    def register(self, kind: str, factory: ValueSourceFactory) -> None:
        key = kind.strip().upper()
        if not key:
            raise ValueError("Value source kind cannot be empty")
        if key in self._factories:
            raise ValueError(f"Value source already registered: {kind}")
        self._factories[key] = factory

    def create(self, kind: str, **kwargs: Any) -> ValueSource:
        key = kind.strip().upper()
        if key not in self._factories:
            raise KeyError(
                f"Unknown value source '{kind}'. Available: {', '.join(self.available())}"
            )
        return self._factories[key](**kwargs)

    def available(self) -> list[str]:
        return sorted(self._factories.keys())


def build_default_value_source_registry() -> ValueSourceRegistry:
    registry = ValueSourceRegistry()
    registry.register(ClinicalValueSource.kind, ClinicalValueSource)
    registry.register(MolecularValueSource.kind, MolecularValueSource)
    registry.register(GenericAssayValueSource.kind, GenericAssayValueSource)
    return registry


class DataFetcher:
    """Dispatches attribute keys to value sources by key kind."""

    def __init__(
        self,
        repository: StudyViewRepository,
        catalog: AttributeCatalog,
        config: BinningConfig | None = None,
        registry: ValueSourceRegistry | None = None,
    ) -> None:
        self.repository = repository
        self.catalog = catalog
        self.config = config or BinningConfig()
        self.registry = registry or build_default_value_source_registry()
        self.classification = classify(catalog, self.config)
        self._sources: dict[str, ValueSource] = {}

    def source_for(self, kind: str) -> ValueSource:
        source = self._sources.get(kind)
        if source is None:
            source = self.registry.create(
                kind,
                repository=self.repository,
                catalog=self.catalog,
                config=self.config,
                classification=self.classification,
            )
            self._sources[kind] = source
        return source

    def fetch(self, population: Population, keys: Iterable[AttributeKey]) -> list[Binnable]:
        grouped: dict[str, list[AttributeKey]] = defaultdict(list)
        for key in keys:
            grouped[key.kind].append(key)

        rows: list[Binnable] = []
        for kind, kind_keys in grouped.items():
            fetched = self.source_for(kind).fetch(population, kind_keys)
            logger.debug(
                "Fetched %d %s value(s) for %d key(s) over %d sample(s)",
                len(fetched),
                kind.lower(),
                len(kind_keys),
                len(population),
            )
            rows.extend(fetched)
        return rows

    def fetch_generic_assay_data(
        self,
        molecular_profile_id: str,
        sample_ids: Sequence[str] | None,
        stable_ids: Sequence[str],
    ) -> list[Binnable]:
        source = self.source_for(GenericAssayKey.kind)
        if not isinstance(source, GenericAssayValueSource):
            raise TypeError(f"Registered {GenericAssayKey.kind} source cannot fetch single profiles")
        return source.fetch_profile(molecular_profile_id, sample_ids, stable_ids)
