"""Persistence boundary for the study-view engine.

Row-returning methods hand back ``pandas.DataFrame`` objects with the columns
named in each docstring. An empty id list always yields an empty frame with
those columns rather than a query.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence

import pandas as pd

from studyview.models import ClinicalAttribute, Gene, MolecularProfile


class StudyViewRepository(ABC):
    """Read-only access to study, clinical and molecular data."""

    @abstractmethod
    def get_clinical_attributes(self) -> list[ClinicalAttribute]:
        """Return clinical attribute metadata for every study."""

    @abstractmethod
    def get_molecular_profiles(self, study_ids: Sequence[str] | None = None) -> list[MolecularProfile]:
        """Return molecular profiles, optionally restricted to some studies."""

    @abstractmethod
    def get_genes_by_symbols(self, hugo_gene_symbols: Sequence[str]) -> list[Gene]:
        """Return genes matching the given HUGO symbols (case-insensitive)."""

    @abstractmethod
    def get_genes(self, entrez_gene_ids: Sequence[int]) -> list[Gene]:
        """Return genes by Entrez id."""

    @abstractmethod
    def get_samples(self, study_ids: Sequence[str]) -> pd.DataFrame:
        """Columns: ``study_id, sample_id, patient_id``."""

    @abstractmethod
    def get_sample_clinical_data(
        self, study_ids: Sequence[str], attribute_ids: Sequence[str]
    ) -> pd.DataFrame:
        """Columns: ``study_id, sample_id, attr_id, attr_value``."""

    @abstractmethod
    def get_patient_clinical_data(
        self, study_ids: Sequence[str], attribute_ids: Sequence[str]
    ) -> pd.DataFrame:
        """Columns: ``study_id, patient_id, attr_id, attr_value``."""

    @abstractmethod
    def get_molecular_data(
        self,
        profile_ids: Sequence[str],
        sample_ids: Sequence[str],
        entrez_gene_ids: Sequence[int],
    ) -> pd.DataFrame:
        """Values for positional ``(profile_id, sample_id)`` pairs.

        Columns: ``profile_id, study_id, sample_id, entrez_gene_id, value``.
        """

    @abstractmethod
    def get_generic_assay_data(
        self,
        profile_ids: Sequence[str],
        sample_ids: Sequence[str],
        stable_ids: Sequence[str],
    ) -> pd.DataFrame:
        """Values for positional ``(profile_id, sample_id)`` pairs.

        Columns: ``profile_id, study_id, sample_id, stable_id, value``.
        """

    @abstractmethod
    def get_profiled_samples(self, profile_ids: Sequence[str]) -> pd.DataFrame:
        """Columns: ``profile_id, study_id, sample_id``."""

    @abstractmethod
    def get_mutations(
        self, profile_ids: Sequence[str], entrez_gene_ids: Sequence[int] | None = None
    ) -> pd.DataFrame:
        """Columns: ``profile_id, study_id, sample_id, entrez_gene_id, mutation_type, is_driver, is_germline``."""

    @abstractmethod
    def get_cna_events(
        self, profile_ids: Sequence[str], entrez_gene_ids: Sequence[int] | None = None
    ) -> pd.DataFrame:
        """Columns: ``profile_id, study_id, sample_id, entrez_gene_id, alteration, is_driver``."""

    @abstractmethod
    def get_clinical_events(self, study_ids: Sequence[str]) -> pd.DataFrame:
        """Columns: ``study_id, patient_id, event_id, event_type``."""

    @abstractmethod
    def get_clinical_event_data(self, event_ids: Sequence[int]) -> pd.DataFrame:
        """Columns: ``event_id, key, value``."""

    @abstractmethod
    def get_sample_lists(self, study_ids: Sequence[str]) -> pd.DataFrame:
        """Columns: ``list_id, study_id, name``."""

    @abstractmethod
    def get_sample_list_members(self, list_ids: Sequence[str]) -> pd.DataFrame:
        """Columns: ``list_id, study_id, sample_id``."""
