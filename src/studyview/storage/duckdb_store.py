"""DuckDB-backed study-view repository with Parquet snapshot export."""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

import duckdb
import pandas as pd

from studyview.exceptions import StudyViewDataError
from studyview.models import ClinicalAttribute, Gene, MolecularProfile
from studyview.storage.base import StudyViewRepository

logger = logging.getLogger("studyview.storage")

_TABLE_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

TABLE_SCHEMAS: dict[str, tuple[tuple[str, str], ...]] = {
    "sample": (
        ("study_id", "VARCHAR"),
        ("sample_id", "VARCHAR"),
        ("patient_id", "VARCHAR"),
    ),
    "clinical_attribute_meta": (
        ("attr_id", "VARCHAR"),
        ("study_id", "VARCHAR"),
        ("display_name", "VARCHAR"),
        ("datatype", "VARCHAR"),
        ("patient_attribute", "BOOLEAN"),
    ),
    "clinical_data_sample": (
        ("study_id", "VARCHAR"),
        ("sample_id", "VARCHAR"),
        ("attr_id", "VARCHAR"),
        ("attr_value", "VARCHAR"),
    ),
    "clinical_data_patient": (
        ("study_id", "VARCHAR"),
        ("patient_id", "VARCHAR"),
        ("attr_id", "VARCHAR"),
        ("attr_value", "VARCHAR"),
    ),
    "molecular_profile": (
        ("stable_id", "VARCHAR"),
        ("study_id", "VARCHAR"),
        ("name", "VARCHAR"),
        ("molecular_alteration_type", "VARCHAR"),
        ("datatype", "VARCHAR"),
        ("patient_level", "BOOLEAN"),
    ),
    "gene": (
        ("entrez_gene_id", "BIGINT"),
        ("hugo_gene_symbol", "VARCHAR"),
    ),
    "genetic_alteration": (
        ("profile_id", "VARCHAR"),
        ("entrez_gene_id", "BIGINT"),
        ("sample_id", "VARCHAR"),
        ("value", "VARCHAR"),
    ),
    "generic_assay_data": (
        ("profile_id", "VARCHAR"),
        ("stable_id", "VARCHAR"),
        ("sample_id", "VARCHAR"),
        ("value", "VARCHAR"),
    ),
    "sample_profile": (
        ("profile_id", "VARCHAR"),
        ("sample_id", "VARCHAR"),
    ),
    "mutation": (
        ("profile_id", "VARCHAR"),
        ("sample_id", "VARCHAR"),
        ("entrez_gene_id", "BIGINT"),
        ("mutation_type", "VARCHAR"),
        ("is_driver", "BOOLEAN"),
        ("is_germline", "BOOLEAN"),
    ),
    "cna_event": (
        ("profile_id", "VARCHAR"),
        ("sample_id", "VARCHAR"),
        ("entrez_gene_id", "BIGINT"),
        ("alteration", "INTEGER"),
        ("is_driver", "BOOLEAN"),
    ),
    "clinical_event": (
        ("study_id", "VARCHAR"),
        ("patient_id", "VARCHAR"),
        ("event_id", "BIGINT"),
        ("event_type", "VARCHAR"),
    ),
    "clinical_event_data": (
        ("event_id", "BIGINT"),
        ("key", "VARCHAR"),
        ("value", "VARCHAR"),
    ),
    "sample_list": (
        ("list_id", "VARCHAR"),
        ("study_id", "VARCHAR"),
        ("name", "VARCHAR"),
    ),
    "sample_list_member": (
        ("list_id", "VARCHAR"),
        ("sample_id", "VARCHAR"),
    ),
}


def _safe_table_name(table_name: str) -> str:
    if not _TABLE_RE.match(table_name):
        raise ValueError(f"Unsafe table name: {table_name}")
    return table_name


def _placeholders(values: Sequence[Any]) -> str:
    return ",".join("?" for _ in values)


def _empty(columns: Sequence[str]) -> pd.DataFrame:
    return pd.DataFrame({column: pd.Series(dtype="object") for column in columns})


class DuckDBStudyViewRepository(StudyViewRepository):
    """Serve study-view reads from a DuckDB database.

    Each query runs on its own cursor so one repository can be shared by the
    worker threads of a request.
    """

    def __init__(self, *, db_path: str | Path = ":memory:", read_only: bool = False) -> None:
        self.db_path = str(db_path)
        self._connection = duckdb.connect(self.db_path, read_only=read_only)
        if not read_only:
            self.ensure_schema()

    def close(self) -> None:
        self._connection.close()

    def ensure_schema(self) -> None:
        """Create any missing study-view tables."""

        for table_name, columns in TABLE_SCHEMAS.items():
            column_sql = ", ".join(f"{name} {sql_type}" for name, sql_type in columns)
            self._execute(f"CREATE TABLE IF NOT EXISTS {_safe_table_name(table_name)} ({column_sql})")

    def load_frames(self, frames: Mapping[str, pd.DataFrame]) -> dict[str, int]:
        """Append rows from ``frames`` (keyed by table name) and return rows per table."""

        inserted: dict[str, int] = {}
        for table_name, frame in frames.items():
            if table_name not in TABLE_SCHEMAS:
                raise KeyError(
                    f"Unknown table '{table_name}'. Available: {', '.join(sorted(TABLE_SCHEMAS))}"
                )
            if frame.empty:
                inserted[table_name] = 0
                continue

            known = [name for name, _ in TABLE_SCHEMAS[table_name]]
            columns = [name for name in known if name in frame.columns]
            if not columns:
                raise ValueError(f"Frame for '{table_name}' shares no columns with the table")

            column_sql = ", ".join(columns)
            cursor = self._connection.cursor()
            try:
                cursor.register("__incoming_frame", frame[columns])
                cursor.execute(
                    f"INSERT INTO {_safe_table_name(table_name)} ({column_sql}) "
                    f"SELECT {column_sql} FROM __incoming_frame"
                )
                cursor.unregister("__incoming_frame")
            except duckdb.Error as exc:
                raise StudyViewDataError(f"Failed to load table {table_name}: {exc}") from exc
            finally:
                cursor.close()
            inserted[table_name] = len(frame)
            logger.info("Loaded %d rows into %s", len(frame), table_name)
        return inserted

    def export_parquet(self, output_dir: str | Path) -> list[Path]:
        """Copy every study-view table into ``<output_dir>/<table>.parquet``."""

        target_dir = Path(output_dir)
        target_dir.mkdir(parents=True, exist_ok=True)
        written: list[Path] = []
        for table_name in TABLE_SCHEMAS:
            target = target_dir / f"{table_name}.parquet"
            if target.exists():
                target.unlink()
            parquet_target = target.as_posix().replace("'", "''")
            self._execute(f"COPY {_safe_table_name(table_name)} TO '{parquet_target}' (FORMAT PARQUET)")
            written.append(target)
        return written

    # ------------------------------------------------------------------
    # Catalog reads
    # ------------------------------------------------------------------

    def get_clinical_attributes(self) -> list[ClinicalAttribute]:
        frame = self._frame(
            """
SELECT attr_id, study_id, coalesce(display_name, '') AS display_name,
       coalesce(datatype, 'STRING') AS datatype,
       coalesce(patient_attribute, false) AS patient_attribute
FROM clinical_attribute_meta
ORDER BY study_id, attr_id
"""
        )
        return [
            ClinicalAttribute(
                attr_id=str(row.attr_id),
                study_id=str(row.study_id),
                display_name=str(row.display_name),
                datatype=str(row.datatype),
                patient_attribute=bool(row.patient_attribute),
            )
            for row in frame.itertuples(index=False)
        ]

    def get_molecular_profiles(self, study_ids: Sequence[str] | None = None) -> list[MolecularProfile]:
        params: list[Any] = []
        where_sql = ""
        if study_ids is not None:
            if not study_ids:
                return []
            where_sql = f"WHERE study_id IN ({_placeholders(study_ids)})"
            params.extend(study_ids)

        frame = self._frame(
            f"""
SELECT stable_id, study_id, coalesce(name, '') AS name,
       coalesce(molecular_alteration_type, '') AS molecular_alteration_type,
       coalesce(datatype, '') AS datatype,
       coalesce(patient_level, false) AS patient_level
FROM molecular_profile
{where_sql}
ORDER BY study_id, stable_id
""",
            params,
        )
        return [
            MolecularProfile(
                stable_id=str(row.stable_id),
                study_id=str(row.study_id),
                name=str(row.name),
                molecular_alteration_type=str(row.molecular_alteration_type),
                datatype=str(row.datatype),
                patient_level=bool(row.patient_level),
            )
            for row in frame.itertuples(index=False)
        ]

    def get_genes_by_symbols(self, hugo_gene_symbols: Sequence[str]) -> list[Gene]:
        if not hugo_gene_symbols:
            return []
        upper = [symbol.upper() for symbol in hugo_gene_symbols]
        frame = self._frame(
            f"""
SELECT entrez_gene_id, hugo_gene_symbol
FROM gene
WHERE upper(hugo_gene_symbol) IN ({_placeholders(upper)})
ORDER BY entrez_gene_id
""",
            upper,
        )
        return [
            Gene(entrez_gene_id=int(row.entrez_gene_id), hugo_gene_symbol=str(row.hugo_gene_symbol))
            for row in frame.itertuples(index=False)
        ]

    def get_genes(self, entrez_gene_ids: Sequence[int]) -> list[Gene]:
        if not entrez_gene_ids:
            return []
        ids = [int(item) for item in entrez_gene_ids]
        frame = self._frame(
            f"""
SELECT entrez_gene_id, hugo_gene_symbol
FROM gene
WHERE entrez_gene_id IN ({_placeholders(ids)})
ORDER BY entrez_gene_id
""",
            ids,
        )
        return [
            Gene(entrez_gene_id=int(row.entrez_gene_id), hugo_gene_symbol=str(row.hugo_gene_symbol))
            for row in frame.itertuples(index=False)
        ]

    # ------------------------------------------------------------------
    # Row reads
    # ------------------------------------------------------------------

    def get_samples(self, study_ids: Sequence[str]) -> pd.DataFrame:
        columns = ("study_id", "sample_id", "patient_id")
        if not study_ids:
            return _empty(columns)
        return self._frame(
            f"""
SELECT study_id, sample_id, patient_id
FROM sample
WHERE study_id IN ({_placeholders(study_ids)})
ORDER BY study_id, sample_id
""",
            list(study_ids),
        )

    def get_sample_clinical_data(
        self, study_ids: Sequence[str], attribute_ids: Sequence[str]
    ) -> pd.DataFrame:
        columns = ("study_id", "sample_id", "attr_id", "attr_value")
        if not study_ids or not attribute_ids:
            return _empty(columns)
        return self._frame(
            f"""
SELECT study_id, sample_id, attr_id, attr_value
FROM clinical_data_sample
WHERE study_id IN ({_placeholders(study_ids)})
  AND attr_id IN ({_placeholders(attribute_ids)})
ORDER BY study_id, sample_id, attr_id
""",
            [*study_ids, *attribute_ids],
        )

    def get_patient_clinical_data(
        self, study_ids: Sequence[str], attribute_ids: Sequence[str]
    ) -> pd.DataFrame:
        columns = ("study_id", "patient_id", "attr_id", "attr_value")
        if not study_ids or not attribute_ids:
            return _empty(columns)
        return self._frame(
            f"""
SELECT study_id, patient_id, attr_id, attr_value
FROM clinical_data_patient
WHERE study_id IN ({_placeholders(study_ids)})
  AND attr_id IN ({_placeholders(attribute_ids)})
ORDER BY study_id, patient_id, attr_id
""",
            [*study_ids, *attribute_ids],
        )

    def get_molecular_data(
        self,
        profile_ids: Sequence[str],
        sample_ids: Sequence[str],
        entrez_gene_ids: Sequence[int],
    ) -> pd.DataFrame:
        columns = ("profile_id", "study_id", "sample_id", "entrez_gene_id", "value")
        if not profile_ids or not entrez_gene_ids:
            return _empty(columns)
        return self._paired_frame(
            profile_ids,
            sample_ids,
            f"""
SELECT ga.profile_id, mp.study_id, ga.sample_id, ga.entrez_gene_id, ga.value
FROM genetic_alteration ga
JOIN __requested_pairs rp
  ON ga.profile_id = rp.profile_id AND ga.sample_id = rp.sample_id
JOIN molecular_profile mp ON mp.stable_id = ga.profile_id
WHERE ga.entrez_gene_id IN ({_placeholders(entrez_gene_ids)})
ORDER BY mp.study_id, ga.sample_id, ga.entrez_gene_id
""",
            [int(item) for item in entrez_gene_ids],
        )

    def get_generic_assay_data(
        self,
        profile_ids: Sequence[str],
        sample_ids: Sequence[str],
        stable_ids: Sequence[str],
    ) -> pd.DataFrame:
        columns = ("profile_id", "study_id", "sample_id", "stable_id", "value")
        if not profile_ids or not stable_ids:
            return _empty(columns)
        return self._paired_frame(
            profile_ids,
            sample_ids,
            f"""
SELECT gad.profile_id, mp.study_id, gad.sample_id, gad.stable_id, gad.value
FROM generic_assay_data gad
JOIN __requested_pairs rp
  ON gad.profile_id = rp.profile_id AND gad.sample_id = rp.sample_id
JOIN molecular_profile mp ON mp.stable_id = gad.profile_id
WHERE gad.stable_id IN ({_placeholders(stable_ids)})
ORDER BY mp.study_id, gad.sample_id, gad.stable_id
""",
            list(stable_ids),
        )

    def get_profiled_samples(self, profile_ids: Sequence[str]) -> pd.DataFrame:
        columns = ("profile_id", "study_id", "sample_id")
        if not profile_ids:
            return _empty(columns)
        return self._frame(
            f"""
SELECT sp.profile_id, mp.study_id, sp.sample_id
FROM sample_profile sp
JOIN molecular_profile mp ON mp.stable_id = sp.profile_id
WHERE sp.profile_id IN ({_placeholders(profile_ids)})
ORDER BY mp.study_id, sp.sample_id
""",
            list(profile_ids),
        )

    def get_mutations(
        self, profile_ids: Sequence[str], entrez_gene_ids: Sequence[int] | None = None
    ) -> pd.DataFrame:
        columns = (
            "profile_id",
            "study_id",
            "sample_id",
            "entrez_gene_id",
            "mutation_type",
            "is_driver",
            "is_germline",
        )
        if not profile_ids or (entrez_gene_ids is not None and not entrez_gene_ids):
            return _empty(columns)
        params: list[Any] = list(profile_ids)
        gene_sql = ""
        if entrez_gene_ids is not None:
            gene_sql = f"AND m.entrez_gene_id IN ({_placeholders(entrez_gene_ids)})"
            params.extend(int(item) for item in entrez_gene_ids)
        return self._frame(
            f"""
SELECT m.profile_id, mp.study_id, m.sample_id, m.entrez_gene_id,
       coalesce(m.mutation_type, '') AS mutation_type,
       coalesce(m.is_driver, false) AS is_driver,
       coalesce(m.is_germline, false) AS is_germline
FROM mutation m
JOIN molecular_profile mp ON mp.stable_id = m.profile_id
WHERE m.profile_id IN ({_placeholders(profile_ids)})
{gene_sql}
ORDER BY mp.study_id, m.sample_id, m.entrez_gene_id
""",
            params,
        )

    def get_cna_events(
        self, profile_ids: Sequence[str], entrez_gene_ids: Sequence[int] | None = None
    ) -> pd.DataFrame:
        columns = ("profile_id", "study_id", "sample_id", "entrez_gene_id", "alteration", "is_driver")
        if not profile_ids or (entrez_gene_ids is not None and not entrez_gene_ids):
            return _empty(columns)
        params: list[Any] = list(profile_ids)
        gene_sql = ""
        if entrez_gene_ids is not None:
            gene_sql = f"AND c.entrez_gene_id IN ({_placeholders(entrez_gene_ids)})"
            params.extend(int(item) for item in entrez_gene_ids)
        return self._frame(
            f"""
SELECT c.profile_id, mp.study_id, c.sample_id, c.entrez_gene_id, c.alteration,
       coalesce(c.is_driver, false) AS is_driver
FROM cna_event c
JOIN molecular_profile mp ON mp.stable_id = c.profile_id
WHERE c.profile_id IN ({_placeholders(profile_ids)})
{gene_sql}
ORDER BY mp.study_id, c.sample_id, c.entrez_gene_id
""",
            params,
        )

    def get_clinical_events(self, study_ids: Sequence[str]) -> pd.DataFrame:
        columns = ("study_id", "patient_id", "event_id", "event_type")
        if not study_ids:
            return _empty(columns)
        return self._frame(
            f"""
SELECT study_id, patient_id, event_id, event_type
FROM clinical_event
WHERE study_id IN ({_placeholders(study_ids)})
ORDER BY study_id, patient_id, event_id
""",
            list(study_ids),
        )

    def get_clinical_event_data(self, event_ids: Sequence[int]) -> pd.DataFrame:
        columns = ("event_id", "key", "value")
        if not event_ids:
            return _empty(columns)
        return self._frame(
            f"""
SELECT event_id, key, value
FROM clinical_event_data
WHERE event_id IN ({_placeholders(event_ids)})
ORDER BY event_id, key
""",
            [int(item) for item in event_ids],
        )

    def get_sample_lists(self, study_ids: Sequence[str]) -> pd.DataFrame:
        columns = ("list_id", "study_id", "name")
        if not study_ids:
            return _empty(columns)
        return self._frame(
            f"""
SELECT list_id, study_id, coalesce(name, '') AS name
FROM sample_list
WHERE study_id IN ({_placeholders(study_ids)})
ORDER BY study_id, list_id
""",
            list(study_ids),
        )

    def get_sample_list_members(self, list_ids: Sequence[str]) -> pd.DataFrame:
        columns = ("list_id", "study_id", "sample_id")
        if not list_ids:
            return _empty(columns)
        return self._frame(
            f"""
SELECT m.list_id, l.study_id, m.sample_id
FROM sample_list_member m
JOIN sample_list l ON l.list_id = m.list_id
WHERE m.list_id IN ({_placeholders(list_ids)})
ORDER BY l.study_id, m.sample_id
""",
            list(list_ids),
        )

    # ------------------------------------------------------------------
    # Query helpers
    # ------------------------------------------------------------------

    def _execute(self, sql: str, params: Sequence[Any] | None = None) -> None:
        cursor = self._connection.cursor()
        try:
            cursor.execute(sql, list(params or []))
        except duckdb.Error as exc:
            raise StudyViewDataError(f"Study view query failed: {exc}") from exc
        finally:
            cursor.close()

    def _frame(self, sql: str, params: Sequence[Any] | None = None) -> pd.DataFrame:
        cursor = self._connection.cursor()
        try:
            return cursor.execute(sql, list(params or [])).df()
        except duckdb.Error as exc:
            raise StudyViewDataError(f"Study view query failed: {exc}") from exc
        finally:
            cursor.close()

    def _paired_frame(
        self,
        profile_ids: Sequence[str],
        sample_ids: Sequence[str],
        sql: str,
        params: Sequence[Any],
    ) -> pd.DataFrame:
        if len(profile_ids) != len(sample_ids):
            raise ValueError("profile_ids and sample_ids must be the same length")

        pairs = pd.DataFrame(
            {"profile_id": list(profile_ids), "sample_id": list(sample_ids)}
        ).drop_duplicates()

        cursor = self._connection.cursor()
        try:
            cursor.register("__requested_pairs", pairs)
            return cursor.execute(sql, list(params)).df()
        except duckdb.Error as exc:
            raise StudyViewDataError(f"Study view query failed: {exc}") from exc
        finally:
            cursor.close()
