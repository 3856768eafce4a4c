import sys
from pathlib import Path

import duckdb
import pandas as pd
import pytest

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT / "src"))

from studyview.storage import TABLE_SCHEMAS, DuckDBStudyViewRepository  # noqa: E402


def test_load_frames_rejects_unknown_tables() -> None:
    repository = DuckDBStudyViewRepository()
    try:
        with pytest.raises(KeyError, match="Available: "):
            repository.load_frames({"not_a_table": pd.DataFrame({"a": [1]})})
    finally:
        repository.close()


def test_load_frames_reports_inserted_rows(repository) -> None:
    inserted = repository.load_frames(
        {
            "sample": pd.DataFrame(
                {"study_id": ["study_c"], "sample_id": ["C1"], "patient_id": ["PC1"]}
            ),
            "gene": pd.DataFrame(columns=["entrez_gene_id", "hugo_gene_symbol"]),
        }
    )

    assert inserted == {"sample": 1, "gene": 0}
    assert repository.get_samples(["study_c"])["sample_id"].tolist() == ["C1"]


def test_sample_reads_are_scoped_to_studies(repository) -> None:
    frame = repository.get_samples(["study_b"])

    assert frame["sample_id"].tolist() == ["B1", "B2", "B3"]
    assert repository.get_samples([]).empty
    assert list(repository.get_samples([]).columns) == ["study_id", "sample_id", "patient_id"]


def test_gene_lookup_is_case_insensitive(repository) -> None:
    genes = repository.get_genes_by_symbols(["tp53", "Kras", "UNKNOWN"])

    assert sorted(gene.hugo_gene_symbol for gene in genes) == ["KRAS", "TP53"]
    assert [gene.hugo_gene_symbol for gene in repository.get_genes([1956])] == ["EGFR"]


def test_molecular_data_reads_only_requested_pairs(repository) -> None:
    frame = repository.get_molecular_data(
        ["study_a_mrna", "study_a_mrna"], ["A1", "A3"], [7157]
    )

    assert frame["sample_id"].tolist() == ["A1", "A3"]
    assert frame["study_id"].unique().tolist() == ["study_a"]
    assert frame["value"].tolist() == ["1.5", "2.0"]


def test_paired_reads_require_matching_lengths(repository) -> None:
    with pytest.raises(ValueError, match="same length"):
        repository.get_generic_assay_data(["study_a_treatment_ic50"], ["A1", "A2"], ["DRUG_X"])


def test_sample_list_members_carry_their_study(repository) -> None:
    frame = repository.get_sample_list_members(["study_b_sequenced"])

    assert frame["study_id"].unique().tolist() == ["study_b"]
    assert frame["sample_id"].tolist() == ["B1", "B2"]


def test_export_parquet_writes_one_file_per_table(repository, tmp_path: Path) -> None:
    written = repository.export_parquet(tmp_path / "snapshot")

    assert sorted(path.stem for path in written) == sorted(TABLE_SCHEMAS)
    assert all(path.exists() for path in written)

    parquet = (tmp_path / "snapshot" / "sample.parquet").as_posix()
    count = duckdb.sql(f"SELECT COUNT(*) FROM read_parquet('{parquet}')").fetchone()[0]
    assert count == 8


def test_read_only_database_reopens_persisted_tables(tmp_path: Path) -> None:
    db_path = tmp_path / "study.duckdb"
    writer = DuckDBStudyViewRepository(db_path=db_path)
    writer.load_frames(
        {"sample": pd.DataFrame({"study_id": ["s"], "sample_id": ["x"], "patient_id": ["p"]})}
    )
    writer.close()

    reader = DuckDBStudyViewRepository(db_path=db_path, read_only=True)
    try:
        assert reader.get_samples(["s"])["sample_id"].tolist() == ["x"]
    finally:
        reader.close()
