"""Tab-delimited profile data export for the legacy web API."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from studyview.catalog import AttributeCatalog
from studyview.models import Gene, MolecularProfile
from studyview.storage.base import StudyViewRepository

logger = logging.getLogger("studyview.export")

PROTEIN_LEVEL_ALTERATION_TYPE = "PROTEIN_ARRAY_PROTEIN_LEVEL"
MISSING_VALUE = "NaN"
TAB = "\t"
NEW_LINE = "\n"


class ProfileDataExporter:
    """Renders genetic profile data as a tab-delimited matrix.

    Request problems (unknown profile, profiles from different studies) are
    reported as a message in place of the matrix; they never raise.
    """

    def __init__(self, repository: StudyViewRepository, catalog: AttributeCatalog) -> None:
        self.repository = repository
        self.catalog = catalog

    def render(
        self,
        profile_ids: Sequence[str],
        genes: Sequence[str],
        sample_ids: Sequence[str],
        suppress_header: bool = False,
    ) -> str:
        lines: list[str] = []

        profiles: list[MolecularProfile] = []
        for profile_id in profile_ids:
            profile = self.catalog.profile(profile_id)
            if profile is None:
                return f"No genetic profile available for genetic_profile_id:  {profile_id}.{NEW_LINE}"
            profiles.append(profile)
        if not profiles:
            return ""
        if len({profile.study_id for profile in profiles}) > 1:
            return f"Genetic profiles must come from same cancer study.{NEW_LINE}"

        gene_list = self._resolve_genes(genes, lines)

        if len(profiles) == 1:
            profile = profiles[0]
            if not suppress_header:
                lines.append(f"# DATA_TYPE{TAB} {profile.name}{NEW_LINE}")
                lines.append(f"# COLOR_GRADIENT_SETTINGS{TAB} {profile.molecular_alteration_type}{NEW_LINE}")
            lines.append(self._row(["GENE_ID", "COMMON", *sample_ids]))
            values = self._values(profile, gene_list, sample_ids)
            for gene in gene_list:
                lines.append(self._gene_row(gene, values.get(gene.entrez_gene_id, {}), sample_ids))
            return "".join(lines)

        lines.append(self._row(["GENETIC_PROFILE_ID", "ALTERATION_TYPE", "GENE_ID", "COMMON", *sample_ids]))
        if not gene_list:
            return "".join(lines)
        gene = gene_list[0]

        protein_level = [
            profile
            for profile in profiles
            if profile.molecular_alteration_type.upper() == PROTEIN_LEVEL_ALTERATION_TYPE
        ]
        if protein_level and len(profiles) == 2:
            # Only the profile paired with the protein-level data is reported.
            profiles = [profile for profile in profiles if profile is not protein_level[0]]

        for profile in profiles:
            values = self._values(profile, [gene], sample_ids)
            row = self._gene_row(gene, values.get(gene.entrez_gene_id, {}), sample_ids)
            lines.append(f"{profile.stable_id}{TAB}{profile.molecular_alteration_type}{TAB}{row}")
        return "".join(lines)

    def _resolve_genes(self, genes: Sequence[str], lines: list[str]) -> list[Gene]:
        symbols = [gene for gene in genes if not gene.strip().isdigit()]
        ids = [int(gene) for gene in genes if gene.strip().isdigit()]
        by_symbol = {gene.hugo_gene_symbol.upper(): gene for gene in self.repository.get_genes_by_symbols(symbols)}
        by_id = {gene.entrez_gene_id: gene for gene in self.repository.get_genes(ids)}

        resolved: list[Gene] = []
        for raw in genes:
            text = raw.strip()
            gene = by_id.get(int(text)) if text.isdigit() else by_symbol.get(text.upper())
            if gene is None:
                logger.warning("Unknown gene in profile export: %s", raw)
                lines.append(f"# Warning:  Unknown gene:  {raw}{NEW_LINE}")
                continue
            resolved.append(gene)
        return resolved

    def _values(
        self,
        profile: MolecularProfile,
        genes: Sequence[Gene],
        sample_ids: Sequence[str],
    ) -> dict[int, dict[str, str]]:
        if not genes or not sample_ids:
            return {}
        frame = self.repository.get_molecular_data(
            [profile.stable_id] * len(sample_ids),
            list(sample_ids),
            [gene.entrez_gene_id for gene in genes],
        )
        values: dict[int, dict[str, str]] = {}
        for entrez_gene_id, sample_id, value in zip(frame["entrez_gene_id"], frame["sample_id"], frame["value"]):
            if value is None:
                continue
            values.setdefault(int(entrez_gene_id), {}).setdefault(str(sample_id), str(value))
        return values

    @staticmethod
    def _row(cells: Sequence[str]) -> str:
        return TAB.join(str(cell) for cell in cells) + NEW_LINE

    def _gene_row(self, gene: Gene, values: dict[str, str], sample_ids: Sequence[str]) -> str:
        cells = [str(gene.entrez_gene_id), gene.hugo_gene_symbol.upper()]
        cells.extend(values.get(sample_id, MISSING_VALUE) for sample_id in sample_ids)
        return self._row(cells)
