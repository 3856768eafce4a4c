"""Immutable attribute catalog and its explicit loading lifecycle."""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

from studyview.models import ClinicalAttribute, MolecularProfile
from studyview.storage.base import StudyViewRepository

logger = logging.getLogger("studyview.catalog")

GENERIC_ASSAY_ALTERATION_TYPE = "GENERIC_ASSAY"


@dataclass(frozen=True)
class AttributeCatalog:
    """Snapshot of clinical attribute metadata and molecular profiles."""

    clinical_attributes: tuple[ClinicalAttribute, ...] = ()
    molecular_profiles: tuple[MolecularProfile, ...] = ()
    _attributes_by_id: Mapping[str, tuple[ClinicalAttribute, ...]] = field(
        init=False, repr=False, compare=False
    )
    _profiles_by_id: Mapping[str, MolecularProfile] = field(init=False, repr=False, compare=False)
    _profiles_by_suffix: Mapping[str, tuple[MolecularProfile, ...]] = field(
        init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        by_attr: dict[str, list[ClinicalAttribute]] = defaultdict(list)
        for attribute in self.clinical_attributes:
            by_attr[attribute.attr_id].append(attribute)

        by_suffix: dict[str, list[MolecularProfile]] = defaultdict(list)
        for profile in self.molecular_profiles:
            by_suffix[profile.suffix].append(profile)

        object.__setattr__(
            self,
            "_attributes_by_id",
            MappingProxyType({key: tuple(value) for key, value in by_attr.items()}),
        )
        object.__setattr__(
            self,
            "_profiles_by_id",
            MappingProxyType({profile.stable_id: profile for profile in self.molecular_profiles}),
        )
        object.__setattr__(
            self,
            "_profiles_by_suffix",
            MappingProxyType({key: tuple(value) for key, value in by_suffix.items()}),
        )

    @property
    def is_empty(self) -> bool:
        return not self.clinical_attributes and not self.molecular_profiles

    def clinical_attribute(self, attr_id: str) -> tuple[ClinicalAttribute, ...]:
        """Every per-study declaration of ``attr_id``."""

        return self._attributes_by_id.get(attr_id, ())

    def clinical_attribute_ids(self) -> list[str]:
        return sorted(self._attributes_by_id)

    def profile(self, stable_id: str) -> MolecularProfile | None:
        return self._profiles_by_id.get(stable_id)

    def profiles_with_suffix(self, suffix: str) -> tuple[MolecularProfile, ...]:
        return self._profiles_by_suffix.get(suffix, ())

    def profile_suffixes(self) -> list[str]:
        return sorted(self._profiles_by_suffix)

    def generic_assay_profiles(self) -> tuple[MolecularProfile, ...]:
        return tuple(
            profile
            for profile in self.molecular_profiles
            if profile.molecular_alteration_type.upper() == GENERIC_ASSAY_ALTERATION_TYPE
        )


class CatalogProvider:
    """Loads the catalog once and hands out the same snapshot until refreshed."""

    def __init__(self, repository: StudyViewRepository) -> None:
        self.repository = repository
        self._snapshot: AttributeCatalog | None = None
        self.version = 0

    def load(self) -> AttributeCatalog:
        """Read the catalog from the repository and make it current."""

        snapshot = AttributeCatalog(
            clinical_attributes=tuple(self.repository.get_clinical_attributes()),
            molecular_profiles=tuple(self.repository.get_molecular_profiles()),
        )
        self._snapshot = snapshot
        self.version += 1
        logger.info(
            "Catalog loaded: version=%d clinical_attributes=%d molecular_profiles=%d",
            self.version,
            len(snapshot.clinical_attributes),
            len(snapshot.molecular_profiles),
        )
        return snapshot

    def refresh(self) -> AttributeCatalog:
        """Replace the current snapshot; requests already running keep the old one."""

        return self.load()

    def current(self) -> AttributeCatalog:
        """Return the loaded snapshot, loading it on first use if ``load`` was never called."""

        snapshot = self._snapshot
        if snapshot is None:
            snapshot = self.load()
        return snapshot
