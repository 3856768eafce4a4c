#!/usr/bin/env python3
"""Run a study-view request from a JSON file against a DuckDB database."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

REPO_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(REPO_ROOT / "src"))

from studyview import (  # noqa: E402
    BinningMethod,
    CatalogProvider,
    StudyViewService,
    StudyViewSettingsLoader,
    parse_data_bin_request,
    parse_study_view_filter,
)
from studyview.storage import DuckDBStudyViewRepository  # noqa: E402

OPERATIONS = (
    "data-bins",
    "filtered-samples",
    "clinical-data-counts",
    "molecular-profile-sample-counts",
    "generic-assay-data-counts",
    "mutated-genes",
    "clinical-event-type-counts",
    "case-list-counts",
)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run a study-view request and print JSON results")
    parser.add_argument("--db-path", required=True, help="DuckDB database path.")
    parser.add_argument("--request", required=True, help="Path to the request JSON.")
    parser.add_argument("--operation", default="data-bins", choices=OPERATIONS, help="Request type.")
    parser.add_argument(
        "--settings",
        default=None,
        help="Settings name (from config/settings) or path overriding the binning defaults.",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level.",
    )
    return parser.parse_args()


def load_json(path: str | Path) -> dict[str, Any]:
    return json.loads(Path(path).read_text())


def run(service: StudyViewService, operation: str, request: dict[str, Any], default_method: BinningMethod) -> Any:
    if operation == "data-bins":
        request = dict(request)
        request.setdefault("binningMethod", default_method.value)
        bin_request = parse_data_bin_request(request)
        bins = service.get_data_bins(bin_request.method, bin_request.bundle, bin_request.remove_self)
        return [item.to_payload() for item in bins]

    study_view_filter = parse_study_view_filter(request.get("studyViewFilter", {}))
    if operation == "filtered-samples":
        return [item.to_payload() for item in service.get_filtered_samples(study_view_filter).sample_identifiers()]
    if operation == "clinical-data-counts":
        items = service.get_clinical_data_counts(
            study_view_filter,
            request.get("attributeIds", []),
            remove_self=not request.get("disableSelfFilter", False),
        )
        return [item.to_payload() for item in items]
    if operation == "molecular-profile-sample-counts":
        return [item.to_payload() for item in service.get_molecular_profile_sample_counts(study_view_filter)]
    if operation == "generic-assay-data-counts":
        counts = service.get_generic_assay_data_counts(
            study_view_filter, request.get("stableIds", []), str(request.get("profileType", ""))
        )
        return [item.to_payload() for item in counts]
    if operation == "mutated-genes":
        return [item.to_payload() for item in service.get_mutated_genes(study_view_filter)]
    if operation == "clinical-event-type-counts":
        return [item.to_payload() for item in service.get_clinical_event_type_counts(study_view_filter)]
    if operation == "case-list-counts":
        return [item.to_payload() for item in service.get_case_list_data_counts(study_view_filter)]
    raise ValueError(f"Unknown operation: {operation}")


def main() -> int:
    args = parse_args()
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    logger = logging.getLogger("studyview.run")

    settings = StudyViewSettingsLoader().load(args.settings) if args.settings else None
    repository = DuckDBStudyViewRepository(db_path=args.db_path, read_only=True)
    try:
        catalog_provider = CatalogProvider(repository)
        catalog_provider.load()
        service = StudyViewService(
            repository,
            catalog_provider=catalog_provider,
            config=settings.binning if settings else None,
        )
        default_method = settings.default_method if settings else BinningMethod.STATIC
        result = run(service, args.operation, load_json(args.request), default_method)
    finally:
        repository.close()

    logger.info("Operation %s returned %d item(s)", args.operation, len(result))
    print(json.dumps(result, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
