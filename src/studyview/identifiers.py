"""Translate between stable identifiers and per-study profile / gene ids."""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from studyview.catalog import AttributeCatalog
from studyview.models import EntityKey, Population
from studyview.storage.base import StudyViewRepository

logger = logging.getLogger("studyview.identifiers")


def case_unique_key(study_id: str, case_id: str) -> EntityKey:
    """Canonical key shared by sample- and patient-level data from every source."""

    return EntityKey(study_id, case_id)


@dataclass(frozen=True)
class ProfileSamplePairs:
    """Positional ``(profile_id, sample_id)`` lists for a cross-study fetch."""

    profile_ids: tuple[str, ...] = ()
    sample_ids: tuple[str, ...] = ()

    def __len__(self) -> int:
        return len(self.sample_ids)


class IdentifierResolver:
    """Resolves profile types and gene symbols against one catalog snapshot."""

    def __init__(self, catalog: AttributeCatalog, repository: StudyViewRepository) -> None:
        self.catalog = catalog
        self.repository = repository

    def resolve_profiles(self, study_ids: Sequence[str], profile_type: str) -> dict[str, str]:
        """Map each study that has a ``profile_type`` profile to that profile's stable id.

        Studies without a matching profile are absent from the result.
        """

        wanted = set(study_ids)
        mapping: dict[str, str] = {}
        for profile in self.catalog.profiles_with_suffix(profile_type):
            if profile.study_id in wanted:
                mapping.setdefault(profile.study_id, profile.stable_id)

        missing = wanted.difference(mapping)
        if missing:
            logger.debug(
                "No '%s' profile for studies: %s", profile_type, ", ".join(sorted(missing))
            )
        return mapping

    def resolve_profiles_by_alteration_type(
        self, study_ids: Sequence[str], alteration_type: str
    ) -> dict[str, list[str]]:
        """Map each study to its profiles of one molecular alteration type."""

        wanted = set(study_ids)
        mapping: dict[str, list[str]] = defaultdict(list)
        for profile in self.catalog.molecular_profiles:
            if profile.study_id in wanted and profile.molecular_alteration_type.upper() == alteration_type.upper():
                mapping[profile.study_id].append(profile.stable_id)
        return dict(mapping)

    def resolve_gene_symbols(self, hugo_gene_symbols: Iterable[str]) -> dict[str, int]:
        """Map requested symbols to Entrez ids, omitting symbols that do not resolve."""

        requested = list(dict.fromkeys(hugo_gene_symbols))
        if not requested:
            return {}

        by_upper: dict[str, int] = {}
        for gene in self.repository.get_genes_by_symbols(requested):
            by_upper.setdefault(gene.hugo_gene_symbol.upper(), gene.entrez_gene_id)

        resolved: dict[str, int] = {}
        for symbol in requested:
            entrez_gene_id = by_upper.get(symbol.upper())
            if entrez_gene_id is None:
                logger.debug("Unresolved gene symbol: %s", symbol)
                continue
            resolved[symbol] = entrez_gene_id
        return resolved

    @staticmethod
    def map_samples_to_profiles(
        population: Population,
        study_to_profile: dict[str, str],
    ) -> ProfileSamplePairs:
        """Pair each sample with its own study's profile, dropping samples whose study has none."""

        profile_ids: list[str] = []
        sample_ids: list[str] = []
        for sample in population.samples:
            profile_id = study_to_profile.get(sample.study_id)
            if profile_id is None:
                continue
            profile_ids.append(profile_id)
            sample_ids.append(sample.sample_id)
        return ProfileSamplePairs(tuple(profile_ids), tuple(sample_ids))
