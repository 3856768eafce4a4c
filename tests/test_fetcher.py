import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT / "src"))

from studyview import (  # noqa: E402
    ClinicalAttributeKey,
    DataFetcher,
    GenericAssayKey,
    GenomicProfileKey,
    MolecularProfileNotFoundError,
    PopulationFilter,
    StudyViewFilter,
    ValueSource,
    ValueSourceRegistry,
    build_default_value_source_registry,
)
from studyview.models import EntityKey  # noqa: E402


@pytest.fixture()
def population(repository, catalog):
    return PopulationFilter(repository, catalog).apply(StudyViewFilter(study_ids=("study_a", "study_b")))


def _values(rows) -> dict[tuple[str, str], str]:
    return {(row.entity_key.case_id, row.attribute_id): row.value for row in rows}


def test_default_registry_lists_sources() -> None:
    registry = build_default_value_source_registry()

    assert registry.available() == ["CLINICAL", "GENERIC_ASSAY", "GENOMIC"]
    with pytest.raises(ValueError, match="already registered"):
        registry.register("clinical", ValueSource)


def test_unknown_source_lists_available() -> None:
    registry = ValueSourceRegistry()

    with pytest.raises(KeyError, match="Available: "):
        registry.create("clinical")


def test_clinical_values_are_keyed_by_level(repository, catalog, population) -> None:
    rows = DataFetcher(repository, catalog).fetch(
        population, [ClinicalAttributeKey("TMB"), ClinicalAttributeKey("SEX")]
    )
    values = _values(rows)

    assert values[("A5", "TMB")] == "100"
    assert values[("PA4", "SEX")] == "Male"
    assert ("B3", "TMB") not in values
    assert ("PB3", "SEX") not in values
    assert len([row for row in rows if row.attribute_id == "SEX"]) == 6


def test_clinical_values_are_limited_to_the_population(repository, catalog) -> None:
    population = PopulationFilter(repository, catalog).apply(StudyViewFilter(study_ids=("study_b",)))

    rows = DataFetcher(repository, catalog).fetch(population, [ClinicalAttributeKey("AGE")])

    assert sorted(row.entity_key for row in rows) == [
        EntityKey("study_b", "PB1"),
        EntityKey("study_b", "PB2"),
        EntityKey("study_b", "PB3"),
    ]


def test_molecular_values_skip_unprofiled_studies(repository, catalog, population) -> None:
    rows = DataFetcher(repository, catalog).fetch(population, [GenomicProfileKey("TP53", "mrna")])

    assert {row.entity_key.study_id for row in rows} == {"study_a"}
    assert _values(rows) == {
        ("A1", "TP53mrna"): "1.5",
        ("A2", "TP53mrna"): "-0.5",
        ("A3", "TP53mrna"): "2.0",
        ("A4", "TP53mrna"): "NA",
    }


def test_molecular_values_for_unknown_genes_are_absent(repository, catalog, population) -> None:
    rows = DataFetcher(repository, catalog).fetch(population, [GenomicProfileKey("NOPE", "mrna")])

    assert rows == []


def test_generic_assay_values_across_studies(repository, catalog, population) -> None:
    rows = DataFetcher(repository, catalog).fetch(
        population, [GenericAssayKey("DRUG_X", "treatment_ic50")]
    )

    assert _values(rows) == {
        ("A1", "DRUG_Xtreatment_ic50"): "0.5",
        ("A2", "DRUG_Xtreatment_ic50"): ">8",
        ("A3", "DRUG_Xtreatment_ic50"): "1.2",
        ("B1", "DRUG_Xtreatment_ic50"): "2.5",
    }


def test_fetch_rejects_keys_of_the_wrong_kind(repository, catalog, population) -> None:
    source = DataFetcher(repository, catalog).source_for("CLINICAL")

    with pytest.raises(TypeError):
        source.fetch(population, [GenomicProfileKey("TP53", "mrna")])


def test_single_profile_generic_assay_reads(repository, catalog) -> None:
    fetcher = DataFetcher(repository, catalog)

    rows = fetcher.fetch_generic_assay_data("study_a_treatment_ic50", None, ["DRUG_X"])
    some = fetcher.fetch_generic_assay_data("study_a_treatment_ic50", ["A3"], ["DRUG_X"])

    assert sorted(row.entity_key.case_id for row in rows) == ["A1", "A2", "A3"]
    assert [row.value for row in some] == ["1.2"]


def test_single_profile_read_requires_a_generic_assay_profile(repository, catalog) -> None:
    fetcher = DataFetcher(repository, catalog)

    with pytest.raises(MolecularProfileNotFoundError):
        fetcher.fetch_generic_assay_data("study_a_mrna", None, ["DRUG_X"])
    with pytest.raises(MolecularProfileNotFoundError, match="missing_profile"):
        fetcher.fetch_generic_assay_data("missing_profile", ["A1"], ["DRUG_X"])
