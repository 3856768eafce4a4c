import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT / "src"))

from studyview import (  # noqa: E402
    ClinicalAttributeKey,
    ClinicalDataFilter,
    DataFilterValue,
    GenericAssayDataFilter,
    GenericAssayKey,
    GeneFilter,
    GenomicDataFilter,
    GenomicProfileKey,
    SampleIdentifier,
    StudyViewFilter,
)
from studyview.filters import baseline_filter, has_data_filters, remove_self_from_filter  # noqa: E402
from studyview.models import AttributeKey  # noqa: E402

VALUES = (DataFilterValue(value="x"),)


def _filter() -> StudyViewFilter:
    return StudyViewFilter(
        study_ids=("study_a",),
        sample_identifiers=(SampleIdentifier("study_a", "A1"),),
        clinical_data_filters=(ClinicalDataFilter("SEX", VALUES), ClinicalDataFilter("TMB", VALUES)),
        genomic_data_filters=(
            GenomicDataFilter("TP53", "mrna", VALUES),
            GenomicDataFilter("TP53", "gistic", VALUES),
        ),
        generic_assay_data_filters=(GenericAssayDataFilter("DRUG_X", "treatment_ic50", VALUES),),
        gene_filters=(GeneFilter(("mutations",), (("TP53",),)),),
    )


def test_remove_self_matches_identifying_fields_only() -> None:
    original = _filter()

    without_sex = remove_self_from_filter(original, ClinicalAttributeKey("SEX"))
    assert [item.attribute_id for item in without_sex.clinical_data_filters] == ["TMB"]
    assert without_sex.genomic_data_filters == original.genomic_data_filters

    without_mrna = remove_self_from_filter(original, GenomicProfileKey("TP53", "mrna"))
    assert [item.profile_type for item in without_mrna.genomic_data_filters] == ["gistic"]

    without_drug = remove_self_from_filter(original, GenericAssayKey("DRUG_X", "treatment_ic50"))
    assert without_drug.generic_assay_data_filters == ()
    assert without_drug.gene_filters == original.gene_filters


def test_remove_self_leaves_the_input_untouched() -> None:
    original = _filter()

    remove_self_from_filter(original, ClinicalAttributeKey("SEX"))

    assert len(original.clinical_data_filters) == 2


def test_remove_self_rejects_unknown_key_types() -> None:
    with pytest.raises(TypeError):
        remove_self_from_filter(_filter(), object())


def test_attribute_keys_must_implement_identity() -> None:
    with pytest.raises(TypeError):
        AttributeKey()

    assert ClinicalAttributeKey("TMB").unique_key == "TMB"
    assert GenomicProfileKey("TP53", "mrna").unique_key == "TP53mrna"
    assert GenericAssayKey("DRUG_X", "treatment_ic50").to_payload() == {
        "stableId": "DRUG_X",
        "profileType": "treatment_ic50",
    }


def test_baseline_keeps_only_selection() -> None:
    baseline = baseline_filter(_filter())

    assert baseline == StudyViewFilter(
        study_ids=("study_a",), sample_identifiers=(SampleIdentifier("study_a", "A1"),)
    )
    assert not has_data_filters(baseline)
    assert has_data_filters(_filter())
