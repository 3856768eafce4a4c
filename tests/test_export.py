import sys
from pathlib import Path

import pandas as pd

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT / "src"))

from studyview import CatalogProvider, ProfileDataExporter  # noqa: E402


def test_single_profile_matrix_with_header(repository, catalog) -> None:
    text = ProfileDataExporter(repository, catalog).render(["study_a_mrna"], ["TP53", "kras", "FOO"], ["A1", "A2"])

    assert text.splitlines() == [
        "# Warning:  Unknown gene:  FOO",
        "# DATA_TYPE\t mRNA expression",
        "# COLOR_GRADIENT_SETTINGS\t MRNA_EXPRESSION",
        "GENE_ID\tCOMMON\tA1\tA2",
        "7157\tTP53\t1.5\t-0.5",
        "3845\tKRAS\t0.1\tNaN",
    ]


def test_header_can_be_suppressed_and_genes_given_by_id(repository, catalog) -> None:
    text = ProfileDataExporter(repository, catalog).render(["study_a_gistic"], ["7157"], ["A3"], suppress_header=True)

    assert text == "GENE_ID\tCOMMON\tA3\n7157\tTP53\t2\n"


def test_several_profiles_report_the_first_gene(repository, catalog) -> None:
    text = ProfileDataExporter(repository, catalog).render(
        ["study_a_mrna", "study_a_gistic"], ["TP53", "KRAS"], ["A1", "A3"]
    )

    assert text.splitlines() == [
        "GENETIC_PROFILE_ID\tALTERATION_TYPE\tGENE_ID\tCOMMON\tA1\tA3",
        "study_a_mrna\tMRNA_EXPRESSION\t7157\tTP53\t1.5\t2.0",
        "study_a_gistic\tCOPY_NUMBER_ALTERATION\t7157\tTP53\t-2\t2",
    ]


def test_protein_level_profile_is_paired_with_the_other(repository) -> None:
    repository.load_frames(
        {
            "molecular_profile": pd.DataFrame(
                {
                    "stable_id": ["study_a_rppa"],
                    "study_id": ["study_a"],
                    "name": ["Protein level"],
                    "molecular_alteration_type": ["PROTEIN_ARRAY_PROTEIN_LEVEL"],
                    "datatype": ["CONTINUOUS"],
                    "patient_level": [False],
                }
            )
        }
    )
    catalog = CatalogProvider(repository).load()

    text = ProfileDataExporter(repository, catalog).render(["study_a_rppa", "study_a_mrna"], ["TP53"], ["A1"])

    assert text.splitlines() == [
        "GENETIC_PROFILE_ID\tALTERATION_TYPE\tGENE_ID\tCOMMON\tA1",
        "study_a_mrna\tMRNA_EXPRESSION\t7157\tTP53\t1.5",
    ]


def test_request_problems_are_reported_as_messages(repository, catalog) -> None:
    exporter = ProfileDataExporter(repository, catalog)

    assert (
        exporter.render(["nope"], ["TP53"], ["A1"])
        == "No genetic profile available for genetic_profile_id:  nope.\n"
    )
    assert (
        exporter.render(["study_a_mrna", "study_b_gistic"], ["TP53"], ["A1"])
        == "Genetic profiles must come from same cancer study.\n"
    )
