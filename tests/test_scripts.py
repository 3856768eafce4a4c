import json
import subprocess
import sys
from pathlib import Path

from conftest import build_study_frames

REPO_ROOT = Path(__file__).resolve().parents[1]


def _run(*args: str) -> subprocess.CompletedProcess:
    return subprocess.run(
        [sys.executable, *args],
        cwd=REPO_ROOT,
        text=True,
        capture_output=True,
        check=False,
    )


def _build_database(tmp_path: Path) -> Path:
    input_dir = tmp_path / "tables"
    input_dir.mkdir()
    for table_name, frame in build_study_frames().items():
        frame.to_csv(input_dir / f"{table_name}.tsv", sep="\t", index=False)
    (input_dir / "notes.tsv").write_text("a\tb\n1\t2\n")

    db_path = tmp_path / "study.duckdb"
    result = _run(
        "scripts/build_study_db.py",
        "--input-dir",
        str(input_dir),
        "--db-path",
        str(db_path),
        "--parquet-dir",
        str(tmp_path / "parquet"),
    )
    assert result.returncode == 0, result.stderr

    summary = json.loads(result.stdout)
    assert summary["tables"]["sample"] == 8
    assert "notes" not in summary["tables"]
    assert len(summary["parquet_files"]) == 15
    return db_path


def test_build_and_query_study_database(tmp_path: Path) -> None:
    db_path = _build_database(tmp_path)

    request_path = tmp_path / "bins.json"
    request_path.write_text(
        json.dumps({"studyViewFilter": {"studyIds": ["study_a", "study_b"]}, "attributes": [{"attributeId": "TMB"}]})
    )
    result = _run(
        "scripts/run_study_view.py",
        "--db-path",
        str(db_path),
        "--request",
        str(request_path),
        "--settings",
        "default",
    )
    assert result.returncode == 0, result.stderr

    bins = json.loads(result.stdout)
    assert bins[0] == {"attributeId": "TMB", "count": 5, "start": 0.0, "end": 20.0}
    assert bins[-1] == {"attributeId": "TMB", "count": 1, "specialValue": "NA"}
    assert sum(item["count"] for item in bins) == 7


def test_count_operations_from_the_command_line(tmp_path: Path) -> None:
    db_path = _build_database(tmp_path)

    request_path = tmp_path / "counts.json"
    request_path.write_text(
        json.dumps({"studyViewFilter": {"studyIds": ["study_a", "study_b"]}, "attributeIds": ["SEX"]})
    )
    counts = _run(
        "scripts/run_study_view.py",
        "--db-path",
        str(db_path),
        "--request",
        str(request_path),
        "--operation",
        "clinical-data-counts",
    )
    events = _run(
        "scripts/run_study_view.py",
        "--db-path",
        str(db_path),
        "--request",
        str(request_path),
        "--operation",
        "clinical-event-type-counts",
    )

    assert counts.returncode == 0, counts.stderr
    assert json.loads(counts.stdout) == [
        {
            "attributeId": "SEX",
            "counts": [
                {"value": "Male", "count": 3},
                {"value": "Female", "count": 3},
                {"value": "NA", "count": 1},
            ],
        }
    ]
    assert events.returncode == 0, events.stderr
    assert json.loads(events.stdout)[0] == {"eventType": "TREATMENT", "count": 3}


def test_unknown_settings_fail(tmp_path: Path) -> None:
    request_path = tmp_path / "request.json"
    request_path.write_text("{}")

    result = _run(
        "scripts/run_study_view.py",
        "--db-path",
        str(tmp_path / "missing.duckdb"),
        "--request",
        str(request_path),
        "--settings",
        "does-not-exist",
    )

    assert result.returncode != 0
    assert "Settings not found" in result.stderr
