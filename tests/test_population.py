import sys
from pathlib import Path

import pandas as pd

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT / "src"))

from studyview import (  # noqa: E402
    AlterationFilter,
    ClinicalDataFilter,
    ClinicalEventFilter,
    CustomDataFilter,
    CustomDataRecord,
    DataFilterValue,
    GeneFilter,
    GenericAssayDataFilter,
    GenomicDataFilter,
    PopulationFilter,
    SampleIdentifier,
    StudyViewFilter,
)
from studyview.population import apply_alteration_filter  # noqa: E402

BOTH = ("study_a", "study_b")


def _samples(repository, catalog, study_view_filter: StudyViewFilter) -> list[str]:
    population = PopulationFilter(repository, catalog).apply(study_view_filter)
    return sorted(sample.sample_id for sample in population.samples)


def _value(text: str) -> tuple[DataFilterValue, ...]:
    return (DataFilterValue(value=text),)


def test_study_selection_without_filters(repository, catalog) -> None:
    assert _samples(repository, catalog, StudyViewFilter(study_ids=BOTH)) == [
        "A1", "A2", "A3", "A4", "A5", "B1", "B2", "B3",
    ]
    assert _samples(repository, catalog, StudyViewFilter(study_ids=("unknown",))) == []


def test_categorical_clinical_filter_matches_case_insensitively(repository, catalog) -> None:
    svf = StudyViewFilter(
        study_ids=BOTH, clinical_data_filters=(ClinicalDataFilter("SAMPLE_TYPE", _value("primary")),)
    )

    assert _samples(repository, catalog, svf) == ["A1", "A2", "A4", "B1", "B3"]


def test_numeric_range_is_half_open(repository, catalog) -> None:
    svf = StudyViewFilter(
        study_ids=BOTH,
        clinical_data_filters=(ClinicalDataFilter("TMB", (DataFilterValue(start=2, end=5),)),),
    )

    assert _samples(repository, catalog, svf) == ["A2", "A3", "A4"]


def test_values_inside_one_filter_are_alternatives(repository, catalog) -> None:
    svf = StudyViewFilter(
        study_ids=BOTH,
        clinical_data_filters=(
            ClinicalDataFilter(
                "TMB", (DataFilterValue(start=0, end=2), DataFilterValue(start=100, end=200))
            ),
        ),
    )

    assert _samples(repository, catalog, svf) == ["A1", "A5"]


def test_na_filter_matches_missing_and_sentinel_values(repository, catalog) -> None:
    svf = StudyViewFilter(study_ids=BOTH, clinical_data_filters=(ClinicalDataFilter("TMB", _value("NA")),))

    assert _samples(repository, catalog, svf) == ["B2", "B3"]


def test_filters_combine_with_and(repository, catalog) -> None:
    svf = StudyViewFilter(
        study_ids=BOTH,
        clinical_data_filters=(
            ClinicalDataFilter("SAMPLE_TYPE", _value("Primary")),
            ClinicalDataFilter("TMB", (DataFilterValue(start=2, end=5),)),
        ),
    )

    assert _samples(repository, catalog, svf) == ["A2", "A4"]


def test_patient_filter_admits_every_sample_of_the_patient(repository, catalog) -> None:
    svf = StudyViewFilter(study_ids=BOTH, clinical_data_filters=(ClinicalDataFilter("SEX", _value("Male")),))

    assert _samples(repository, catalog, svf) == ["A1", "A4", "A5", "B2"]


def test_patient_filter_keeps_sample_level_restrictions(repository, catalog) -> None:
    svf = StudyViewFilter(
        study_ids=BOTH,
        clinical_data_filters=(
            ClinicalDataFilter("SEX", _value("Male")),
            ClinicalDataFilter("SAMPLE_TYPE", _value("Metastasis")),
        ),
    )

    assert _samples(repository, catalog, svf) == ["A5", "B2"]


def test_operator_prefixed_values_match_exactly(repository, catalog) -> None:
    svf = StudyViewFilter(study_ids=BOTH, clinical_data_filters=(ClinicalDataFilter("AGE", _value(">89")),))

    assert _samples(repository, catalog, svf) == ["B2"]


def test_clinical_event_filter_with_attributes(repository, catalog) -> None:
    svf = StudyViewFilter(
        study_ids=BOTH,
        clinical_event_filters=(ClinicalEventFilter("treatment", (("agent", "cisplatin"),)),),
    )

    assert _samples(repository, catalog, svf) == ["A1", "B1"]


def test_clinical_event_filter_by_type_only(repository, catalog) -> None:
    svf = StudyViewFilter(study_ids=BOTH, clinical_event_filters=(ClinicalEventFilter("TREATMENT"),))

    assert _samples(repository, catalog, svf) == ["A1", "A4", "A5", "B1"]


def test_gene_filter_selects_altered_samples(repository, catalog) -> None:
    svf = StudyViewFilter(study_ids=BOTH, gene_filters=(GeneFilter(("mutations",), (("TP53",),)),))

    assert _samples(repository, catalog, svf) == ["A1", "A2", "B1"]


def test_gene_filter_groups_are_anded(repository, catalog) -> None:
    svf = StudyViewFilter(
        study_ids=BOTH, gene_filters=(GeneFilter(("mutations",), (("TP53",), ("KRAS",))),)
    )

    assert _samples(repository, catalog, svf) == ["A2"]


def test_gene_filter_honours_alteration_filter(repository, catalog) -> None:
    svf = StudyViewFilter(
        study_ids=BOTH,
        gene_filters=(GeneFilter(("mutations",), (("TP53",),)),),
        alteration_filter=AlterationFilter(include_vus=False),
    )

    assert _samples(repository, catalog, svf) == ["A1", "B1"]


def test_gene_filter_reads_copy_number_events(repository, catalog) -> None:
    svf = StudyViewFilter(
        study_ids=BOTH,
        gene_filters=(GeneFilter(("gistic",), (("TP53",),)),),
        alteration_filter=AlterationFilter(copy_number_events=frozenset({-2})),
    )

    assert _samples(repository, catalog, svf) == ["A1"]


def test_case_lists_are_unioned_within_a_group(repository, catalog) -> None:
    svf = StudyViewFilter(
        study_ids=BOTH, case_list_ids=(("study_a_sequenced", "study_b_sequenced"),)
    )

    assert _samples(repository, catalog, svf) == ["A1", "A2", "A3", "B1", "B2"]


def test_genomic_filter_only_selects_profiled_studies(repository, catalog) -> None:
    svf = StudyViewFilter(
        study_ids=BOTH,
        genomic_data_filters=(GenomicDataFilter("TP53", "mrna", (DataFilterValue(start=1, end=3),)),),
    )

    assert _samples(repository, catalog, svf) == ["A1", "A3"]


def test_categorical_genomic_filter(repository, catalog) -> None:
    svf = StudyViewFilter(
        study_ids=BOTH, genomic_data_filters=(GenomicDataFilter("TP53", "gistic", _value("0")),)
    )

    assert _samples(repository, catalog, svf) == ["A2", "B1"]


def test_unknown_gene_drops_the_clause(repository, catalog) -> None:
    svf = StudyViewFilter(
        study_ids=BOTH,
        genomic_data_filters=(GenomicDataFilter("NOT_A_GENE", "mrna", _value("1")),),
    )

    assert len(_samples(repository, catalog, svf)) == 8


def test_gene_query_with_only_unknown_genes_is_dropped(repository, catalog) -> None:
    unknown_only = StudyViewFilter(
        study_ids=BOTH, gene_filters=(GeneFilter(("mutations",), (("NOT_A_GENE",),)),)
    )
    mixed = StudyViewFilter(
        study_ids=BOTH,
        gene_filters=(GeneFilter(("mutations",), (("NOT_A_GENE", "TP53"), ("ALSO_UNKNOWN",))),),
    )

    assert len(_samples(repository, catalog, unknown_only)) == 8
    assert _samples(repository, catalog, mixed) == ["A1", "A2", "B1"]


def test_unclassified_attribute_filters_are_ignored(repository, catalog) -> None:
    svf = StudyViewFilter(
        study_ids=BOTH, clinical_data_filters=(ClinicalDataFilter("OS_DATE", _value("2020-01-01")),)
    )

    assert len(_samples(repository, catalog, svf)) == 8


def test_generic_assay_filters(repository, catalog) -> None:
    ranged = StudyViewFilter(
        study_ids=BOTH,
        generic_assay_data_filters=(
            GenericAssayDataFilter("DRUG_X", "treatment_ic50", (DataFilterValue(start=0, end=1),)),
        ),
    )
    labelled = StudyViewFilter(
        study_ids=BOTH,
        generic_assay_data_filters=(GenericAssayDataFilter("DRUG_X", "treatment_ic50", _value(">8")),),
    )
    categorical = StudyViewFilter(
        study_ids=BOTH,
        generic_assay_data_filters=(GenericAssayDataFilter("1p", "armlevel_cna", _value("Loss")),),
    )

    assert _samples(repository, catalog, ranged) == ["A1"]
    assert _samples(repository, catalog, labelled) == ["A2"]
    assert _samples(repository, catalog, categorical) == ["A1", "A3"]


def test_custom_data_filter(repository, catalog) -> None:
    svf = StudyViewFilter(
        study_ids=BOTH,
        custom_data_filters=(
            CustomDataFilter(
                "GROUP",
                _value("x"),
                (
                    CustomDataRecord("study_a", "A1", "x"),
                    CustomDataRecord("study_a", "A2", "y"),
                    CustomDataRecord("study_b", "B3", "X"),
                ),
            ),
        ),
    )

    assert _samples(repository, catalog, svf) == ["A1", "B3"]


def test_sample_identifiers_outside_the_studies_are_ignored(repository, catalog) -> None:
    svf = StudyViewFilter(
        study_ids=("study_a",),
        sample_identifiers=(SampleIdentifier("study_a", "A1"), SampleIdentifier("study_b", "B1")),
    )

    assert _samples(repository, catalog, svf) == ["A1"]


def test_sample_identifiers_imply_their_studies(repository, catalog) -> None:
    svf = StudyViewFilter(
        sample_identifiers=(SampleIdentifier("study_a", "A2"), SampleIdentifier("study_b", "B3"))
    )

    assert _samples(repository, catalog, svf) == ["A2", "B3"]


def test_apply_alteration_filter_on_mutation_frame(repository) -> None:
    frame = repository.get_mutations(["study_a_mutations"])

    somatic = apply_alteration_filter(frame, AlterationFilter(include_germline=False))
    missense = apply_alteration_filter(
        frame, AlterationFilter(mutation_event_types=frozenset({"missense_mutation"}))
    )

    assert sorted(somatic["sample_id"]) == ["A1", "A2", "A2"]
    assert sorted(missense["sample_id"]) == ["A1", "A2", "A3"]
    assert apply_alteration_filter(frame, None) is frame


def test_apply_alteration_filter_skips_cna_rows_without_alteration() -> None:
    frame = pd.DataFrame(
        {
            "study_id": ["study_a", "study_a", "study_a"],
            "sample_id": ["A1", "A2", "A3"],
            "entrez_gene_id": [7157, 7157, 7157],
            "alteration": [-2, None, 2],
            "is_driver": [True, False, False],
        }
    )

    amplified = apply_alteration_filter(
        frame, AlterationFilter(copy_number_events=frozenset({2})), copy_number=True
    )

    assert amplified["sample_id"].tolist() == ["A3"]
