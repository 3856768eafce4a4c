import sys
from pathlib import Path

import pandas as pd
import pytest

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT / "src"))

from studyview import CatalogProvider, StudyViewService  # noqa: E402
from studyview.storage import DuckDBStudyViewRepository  # noqa: E402


def _frame(columns: list[str], rows: list[tuple]) -> pd.DataFrame:
    return pd.DataFrame(rows, columns=columns)


def build_study_frames() -> dict[str, pd.DataFrame]:
    """Two small studies: ``study_a`` (5 samples, PA4 has two) and ``study_b`` (3 samples)."""

    samples = _frame(
        ["study_id", "sample_id", "patient_id"],
        [
            ("study_a", "A1", "PA1"),
            ("study_a", "A2", "PA2"),
            ("study_a", "A3", "PA3"),
            ("study_a", "A4", "PA4"),
            ("study_a", "A5", "PA4"),
            ("study_b", "B1", "PB1"),
            ("study_b", "B2", "PB2"),
            ("study_b", "B3", "PB3"),
        ],
    )

    attribute_meta = _frame(
        ["attr_id", "study_id", "display_name", "datatype", "patient_attribute"],
        [
            ("TMB", "study_a", "Mutation burden", "NUMBER", False),
            ("TMB", "study_b", "Mutation burden", "NUMBER", False),
            ("SAMPLE_TYPE", "study_a", "Sample type", "STRING", False),
            ("SAMPLE_TYPE", "study_b", "Sample type", "STRING", False),
            ("SEX", "study_a", "Sex", "STRING", True),
            ("SEX", "study_b", "Sex", "STRING", True),
            ("AGE", "study_a", "Age", "NUMBER", True),
            ("AGE", "study_b", "Age", "NUMBER", True),
            ("OS_DATE", "study_a", "Overall survival date", "DATE", True),
        ],
    )

    sample_clinical = _frame(
        ["study_id", "sample_id", "attr_id", "attr_value"],
        [
            ("study_a", "A1", "TMB", "1"),
            ("study_a", "A2", "TMB", "2"),
            ("study_a", "A3", "TMB", "3"),
            ("study_a", "A4", "TMB", "4"),
            ("study_a", "A5", "TMB", "100"),
            ("study_b", "B1", "TMB", "5"),
            ("study_b", "B2", "TMB", "NA"),
            ("study_a", "A1", "SAMPLE_TYPE", "Primary"),
            ("study_a", "A2", "SAMPLE_TYPE", "Primary"),
            ("study_a", "A3", "SAMPLE_TYPE", "Metastasis"),
            ("study_a", "A4", "SAMPLE_TYPE", "Primary"),
            ("study_a", "A5", "SAMPLE_TYPE", "Metastasis"),
            ("study_b", "B1", "SAMPLE_TYPE", "Primary"),
            ("study_b", "B2", "SAMPLE_TYPE", "Metastasis"),
            ("study_b", "B3", "SAMPLE_TYPE", "Primary"),
        ],
    )

    patient_clinical = _frame(
        ["study_id", "patient_id", "attr_id", "attr_value"],
        [
            ("study_a", "PA1", "SEX", "Male"),
            ("study_a", "PA2", "SEX", "Female"),
            ("study_a", "PA3", "SEX", "Female"),
            ("study_a", "PA4", "SEX", "Male"),
            ("study_b", "PB1", "SEX", "Female"),
            ("study_b", "PB2", "SEX", "Male"),
            ("study_a", "PA1", "AGE", "30"),
            ("study_a", "PA2", "AGE", "45"),
            ("study_a", "PA3", "AGE", "60"),
            ("study_a", "PA4", "AGE", "72"),
            ("study_b", "PB1", "AGE", "55"),
            ("study_b", "PB2", "AGE", ">89"),
            ("study_b", "PB3", "AGE", "40"),
            ("study_a", "PA1", "OS_DATE", "2020-01-01"),
        ],
    )

    profiles = _frame(
        ["stable_id", "study_id", "name", "molecular_alteration_type", "datatype", "patient_level"],
        [
            ("study_a_mutations", "study_a", "Mutations", "MUTATION_EXTENDED", "MAF", False),
            ("study_b_mutations", "study_b", "Mutations (WES)", "MUTATION_EXTENDED", "MAF", False),
            ("study_a_mrna", "study_a", "mRNA expression", "MRNA_EXPRESSION", "CONTINUOUS", False),
            ("study_a_gistic", "study_a", "Putative copy-number alterations", "COPY_NUMBER_ALTERATION", "DISCRETE", False),
            ("study_b_gistic", "study_b", "Putative copy-number alterations", "COPY_NUMBER_ALTERATION", "DISCRETE", False),
            ("study_a_treatment_ic50", "study_a", "IC50", "GENERIC_ASSAY", "LIMIT-VALUE", False),
            ("study_b_treatment_ic50", "study_b", "IC50", "GENERIC_ASSAY", "LIMIT-VALUE", False),
            ("study_a_armlevel_cna", "study_a", "Arm-level CNA", "GENERIC_ASSAY", "CATEGORICAL", False),
        ],
    )

    genes = _frame(
        ["entrez_gene_id", "hugo_gene_symbol"],
        [(7157, "TP53"), (3845, "KRAS"), (1956, "EGFR")],
    )

    genetic_alteration = _frame(
        ["profile_id", "entrez_gene_id", "sample_id", "value"],
        [
            ("study_a_mrna", 7157, "A1", "1.5"),
            ("study_a_mrna", 7157, "A2", "-0.5"),
            ("study_a_mrna", 7157, "A3", "2.0"),
            ("study_a_mrna", 7157, "A4", "NA"),
            ("study_a_mrna", 3845, "A1", "0.1"),
            ("study_a_gistic", 7157, "A1", "-2"),
            ("study_a_gistic", 7157, "A2", "0"),
            ("study_a_gistic", 7157, "A3", "2"),
            ("study_b_gistic", 7157, "B1", "0"),
            ("study_b_gistic", 7157, "B2", "-1"),
        ],
    )

    generic_assay = _frame(
        ["profile_id", "stable_id", "sample_id", "value"],
        [
            ("study_a_treatment_ic50", "DRUG_X", "A1", "0.5"),
            ("study_a_treatment_ic50", "DRUG_X", "A2", ">8"),
            ("study_a_treatment_ic50", "DRUG_X", "A3", "1.2"),
            ("study_b_treatment_ic50", "DRUG_X", "B1", "2.5"),
            ("study_a_armlevel_cna", "1p", "A1", "Loss"),
            ("study_a_armlevel_cna", "1p", "A2", "Gain"),
            ("study_a_armlevel_cna", "1p", "A3", "Loss"),
            ("study_a_armlevel_cna", "1p", "A4", "Unchanged"),
        ],
    )

    sample_profile = _frame(
        ["profile_id", "sample_id"],
        [
            *(("study_a_mutations", sample) for sample in ("A1", "A2", "A3", "A4", "A5")),
            *(("study_b_mutations", sample) for sample in ("B1", "B2")),
            *(("study_a_mrna", sample) for sample in ("A1", "A2", "A3", "A4")),
            *(("study_a_gistic", sample) for sample in ("A1", "A2", "A3")),
            *(("study_b_gistic", sample) for sample in ("B1", "B2")),
            *(("study_a_treatment_ic50", sample) for sample in ("A1", "A2", "A3")),
            ("study_b_treatment_ic50", "B1"),
        ],
    )

    mutations = _frame(
        ["profile_id", "sample_id", "entrez_gene_id", "mutation_type", "is_driver", "is_germline"],
        [
            ("study_a_mutations", "A1", 7157, "Missense_Mutation", True, False),
            ("study_a_mutations", "A2", 7157, "Nonsense_Mutation", False, False),
            ("study_a_mutations", "A2", 3845, "Missense_Mutation", True, False),
            ("study_a_mutations", "A3", 3845, "Missense_Mutation", False, True),
            ("study_b_mutations", "B1", 7157, "Missense_Mutation", True, False),
        ],
    )

    cna_events = _frame(
        ["profile_id", "sample_id", "entrez_gene_id", "alteration", "is_driver"],
        [
            ("study_a_gistic", "A1", 7157, -2, True),
            ("study_a_gistic", "A3", 7157, 2, False),
        ],
    )

    clinical_events = _frame(
        ["study_id", "patient_id", "event_id", "event_type"],
        [
            ("study_a", "PA1", 1, "TREATMENT"),
            ("study_a", "PA2", 2, "SURGERY"),
            ("study_a", "PA4", 3, "TREATMENT"),
            ("study_b", "PB1", 4, "TREATMENT"),
        ],
    )

    clinical_event_data = _frame(
        ["event_id", "key", "value"],
        [
            (1, "AGENT", "Cisplatin"),
            (3, "AGENT", "Tamoxifen"),
            (4, "AGENT", "Cisplatin"),
        ],
    )

    sample_lists = _frame(
        ["list_id", "study_id", "name"],
        [
            ("study_a_all", "study_a", "All samples"),
            ("study_a_sequenced", "study_a", "Sequenced samples"),
            ("study_b_all", "study_b", "All samples"),
            ("study_b_sequenced", "study_b", "Sequenced Samples"),
        ],
    )

    sample_list_members = _frame(
        ["list_id", "sample_id"],
        [
            *(("study_a_all", sample) for sample in ("A1", "A2", "A3", "A4", "A5")),
            *(("study_a_sequenced", sample) for sample in ("A1", "A2", "A3")),
            *(("study_b_all", sample) for sample in ("B1", "B2", "B3")),
            *(("study_b_sequenced", sample) for sample in ("B1", "B2")),
        ],
    )

    return {
        "sample": samples,
        "clinical_attribute_meta": attribute_meta,
        "clinical_data_sample": sample_clinical,
        "clinical_data_patient": patient_clinical,
        "molecular_profile": profiles,
        "gene": genes,
        "genetic_alteration": genetic_alteration,
        "generic_assay_data": generic_assay,
        "sample_profile": sample_profile,
        "mutation": mutations,
        "cna_event": cna_events,
        "clinical_event": clinical_events,
        "clinical_event_data": clinical_event_data,
        "sample_list": sample_lists,
        "sample_list_member": sample_list_members,
    }


@pytest.fixture()
def repository():
    repo = DuckDBStudyViewRepository()
    repo.load_frames(build_study_frames())
    yield repo
    repo.close()


@pytest.fixture()
def catalog(repository):
    return CatalogProvider(repository).load()


@pytest.fixture()
def service(repository):
    provider = CatalogProvider(repository)
    provider.load()
    return StudyViewService(repository, catalog_provider=provider)
