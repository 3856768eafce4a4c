"""Parse inbound JSON payloads into request models and back.

Payloads use the camelCase field names of the study-view REST API. The JSON
schema only checks structure; a clause that is missing its identifying
fields is dropped with a warning rather than failing the request.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from jsonschema import FormatChecker
from jsonschema.validators import validator_for

from studyview.config import BinMethod, BinningMethod
from studyview.exceptions import InvalidRequestError
from studyview.models import (
    AlterationFilter,
    ClinicalAttributeKey,
    ClinicalDataBinBundle,
    ClinicalDataFilter,
    ClinicalEventFilter,
    CustomDataFilter,
    CustomDataRecord,
    DataBinBundle,
    DataBinFilter,
    DataFilterValue,
    GeneFilter,
    GenericAssayDataBinBundle,
    GenericAssayDataFilter,
    GenericAssayKey,
    GenomicDataBinBundle,
    GenomicDataFilter,
    GenomicProfileKey,
    SampleIdentifier,
    StudyViewFilter,
)

logger = logging.getLogger("studyview.payloads")

_OBJECT_ARRAY = {"type": "array", "items": {"type": "object"}}
_STRING_ARRAY = {"type": "array", "items": {"type": "string"}}

STUDY_VIEW_FILTER_SCHEMA: dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "properties": {
        "studyIds": _STRING_ARRAY,
        "sampleIdentifiers": _OBJECT_ARRAY,
        "clinicalDataFilters": _OBJECT_ARRAY,
        "genomicDataFilters": _OBJECT_ARRAY,
        "genericAssayDataFilters": _OBJECT_ARRAY,
        "geneFilters": _OBJECT_ARRAY,
        "alterationFilter": {"type": ["object", "null"]},
        "clinicalEventFilters": _OBJECT_ARRAY,
        "customDataFilters": _OBJECT_ARRAY,
        "caseLists": {"type": "array", "items": _STRING_ARRAY},
    },
}

DATA_BIN_REQUEST_SCHEMA: dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "required": ["studyViewFilter"],
    "properties": {
        "studyViewFilter": {"type": "object"},
        "attributes": _OBJECT_ARRAY,
        "genomicDataBinFilters": _OBJECT_ARRAY,
        "genericAssayDataBinFilters": _OBJECT_ARRAY,
        "binningMethod": {"type": "string", "enum": [item.value for item in BinningMethod]},
        "disableSelfFilter": {"type": "boolean"},
    },
}

_BUNDLE_FIELDS = ("attributes", "genomicDataBinFilters", "genericAssayDataBinFilters")


@dataclass(frozen=True)
class DataBinRequest:
    method: BinningMethod
    bundle: DataBinBundle
    remove_self: bool = True


def validate_payload(payload: Any, schema: dict[str, Any]) -> None:
    """Raise ``InvalidRequestError`` listing every structural schema violation."""

    validator_cls = validator_for(schema)
    validator_cls.check_schema(schema)
    validator = validator_cls(schema, format_checker=FormatChecker())
    errors = sorted(validator.iter_errors(payload), key=lambda err: list(err.path))
    if errors:
        raise InvalidRequestError(
            [f"/{'/'.join(str(part) for part in err.path)}: {err.message}" for err in errors]
        )


def _number(raw: Any) -> float | None:
    if raw is None or isinstance(raw, bool):
        return None
    try:
        return float(raw)
    except (TypeError, ValueError):
        return None


def _parse_values(raw_values: Any) -> tuple[DataFilterValue, ...]:
    values: list[DataFilterValue] = []
    for raw in raw_values or ():
        if not isinstance(raw, dict):
            continue
        value = raw.get("value")
        item = DataFilterValue(
            start=_number(raw.get("start")),
            end=_number(raw.get("end")),
            value=None if value is None else str(value),
        )
        if item.value is None and not item.is_range:
            continue
        values.append(item)
    return tuple(values)


def _require(raw: dict[str, Any], *fields: str) -> tuple[str, ...] | None:
    found = []
    for name in fields:
        value = raw.get(name)
        if not isinstance(value, str) or not value.strip():
            return None
        found.append(value.strip())
    return tuple(found)


def _drop(clause: str, raw: Any) -> None:
    logger.warning("Dropping malformed %s clause: %s", clause, raw)


def _parse_gene_filter(raw: dict[str, Any]) -> GeneFilter | None:
    profile_types = tuple(str(item) for item in raw.get("profileTypes") or () if item)
    groups: list[tuple[str, ...]] = []
    for raw_group in raw.get("geneQueries") or ():
        if not isinstance(raw_group, list):
            return None
        symbols = []
        for entry in raw_group:
            symbol = entry.get("hugoGeneSymbol") if isinstance(entry, dict) else entry
            if isinstance(symbol, str) and symbol.strip():
                symbols.append(symbol.strip())
        if symbols:
            groups.append(tuple(symbols))
    if not profile_types or not groups:
        return None
    return GeneFilter(profile_types=profile_types, gene_queries=tuple(groups))


def _parse_alteration_filter(raw: dict[str, Any] | None) -> AlterationFilter | None:
    if raw is None:
        return None

    mutation_types = raw.get("mutationEventTypes")
    copy_number = raw.get("copyNumberAlterationEventTypes")
    return AlterationFilter(
        mutation_event_types=None
        if mutation_types is None
        else frozenset(str(item) for item in mutation_types),
        copy_number_events=None
        if copy_number is None
        else frozenset(int(number) for number in map(_number, copy_number) if number is not None),
        include_driver=bool(raw.get("includeDriver", True)),
        include_vus=bool(raw.get("includeVUS", True)),
        include_germline=bool(raw.get("includeGermline", True)),
        include_somatic=bool(raw.get("includeSomatic", True)),
    )


def parse_study_view_filter(payload: dict[str, Any]) -> StudyViewFilter:
    """Build a StudyViewFilter from its JSON payload."""

    validate_payload(payload, STUDY_VIEW_FILTER_SCHEMA)

    sample_identifiers = []
    for raw in payload.get("sampleIdentifiers", ()):
        ids = _require(raw, "studyId", "sampleId")
        if ids is None:
            _drop("sample identifier", raw)
            continue
        sample_identifiers.append(SampleIdentifier(*ids))

    clinical = []
    for raw in payload.get("clinicalDataFilters", ()):
        ids = _require(raw, "attributeId")
        if ids is None:
            _drop("clinical data filter", raw)
            continue
        clinical.append(ClinicalDataFilter(ids[0], _parse_values(raw.get("values"))))

    genomic = []
    for raw in payload.get("genomicDataFilters", ()):
        ids = _require(raw, "hugoGeneSymbol", "profileType")
        if ids is None:
            _drop("genomic data filter", raw)
            continue
        genomic.append(GenomicDataFilter(ids[0], ids[1], _parse_values(raw.get("values"))))

    generic_assay = []
    for raw in payload.get("genericAssayDataFilters", ()):
        ids = _require(raw, "stableId", "profileType")
        if ids is None:
            _drop("generic assay data filter", raw)
            continue
        generic_assay.append(GenericAssayDataFilter(ids[0], ids[1], _parse_values(raw.get("values"))))

    gene_filters = []
    for raw in payload.get("geneFilters", ()):
        gene_filter = _parse_gene_filter(raw)
        if gene_filter is None:
            _drop("gene filter", raw)
            continue
        gene_filters.append(gene_filter)

    event_filters = []
    for raw in payload.get("clinicalEventFilters", ()):
        ids = _require(raw, "eventType")
        if ids is None:
            _drop("clinical event filter", raw)
            continue
        attributes = tuple(
            (str(item["key"]), str(item["value"]))
            for item in raw.get("attributes") or ()
            if isinstance(item, dict) and "key" in item and "value" in item
        )
        event_filters.append(ClinicalEventFilter(ids[0], attributes))

    custom = []
    for raw in payload.get("customDataFilters", ()):
        ids = _require(raw, "attributeId")
        if ids is None:
            _drop("custom data filter", raw)
            continue
        records = tuple(
            CustomDataRecord(str(item["studyId"]), str(item["sampleId"]), str(item.get("value", "")))
            for item in raw.get("records") or ()
            if isinstance(item, dict) and "studyId" in item and "sampleId" in item
        )
        custom.append(CustomDataFilter(ids[0], _parse_values(raw.get("values")), records))

    return StudyViewFilter(
        study_ids=tuple(dict.fromkeys(payload.get("studyIds", ()))),
        sample_identifiers=tuple(sample_identifiers),
        clinical_data_filters=tuple(clinical),
        genomic_data_filters=tuple(genomic),
        generic_assay_data_filters=tuple(generic_assay),
        gene_filters=tuple(gene_filters),
        alteration_filter=_parse_alteration_filter(payload.get("alterationFilter")),
        clinical_event_filters=tuple(event_filters),
        custom_data_filters=tuple(custom),
        case_list_ids=tuple(tuple(group) for group in payload.get("caseLists", ()) if group),
    )


def _parse_bin_filter(raw: dict[str, Any], field_name: str) -> DataBinFilter | None:
    if field_name == "attributes":
        ids = _require(raw, "attributeId")
        key = None if ids is None else ClinicalAttributeKey(ids[0])
    elif field_name == "genomicDataBinFilters":
        ids = _require(raw, "hugoGeneSymbol", "profileType")
        key = None if ids is None else GenomicProfileKey(*ids)
    else:
        ids = _require(raw, "stableId", "profileType")
        key = None if ids is None else GenericAssayKey(*ids)
    if key is None:
        return None

    custom_bins = raw.get("customBins")
    generator = raw.get("binsGeneratorConfig") or {}
    try:
        bin_method = BinMethod(str(raw.get("binMethod", BinMethod.AUTO.value)).upper())
    except ValueError:
        logger.warning("Unknown bin method %r; using %s", raw.get("binMethod"), BinMethod.AUTO.value)
        bin_method = BinMethod.AUTO

    return DataBinFilter(
        key=key,
        bin_method=bin_method,
        custom_bins=tuple(number for number in map(_number, custom_bins) if number is not None)
        if isinstance(custom_bins, list)
        else None,
        bin_size=_number(generator.get("binSize")),
        anchor_value=_number(generator.get("anchorValue")),
        start=_number(raw.get("start")),
        end=_number(raw.get("end")),
        disable_log_scale=bool(raw.get("disableLogScale", False)),
    )


def parse_data_bin_request(payload: dict[str, Any]) -> DataBinRequest:
    """Build a data-bin request; exactly one attribute list field must be present."""

    validate_payload(payload, DATA_BIN_REQUEST_SCHEMA)

    present = [name for name in _BUNDLE_FIELDS if name in payload]
    if len(present) != 1:
        raise InvalidRequestError(
            [f"expected exactly one of {', '.join(_BUNDLE_FIELDS)}; found {len(present)}"]
        )
    field_name = present[0]

    attributes = []
    for raw in payload[field_name]:
        bin_filter = _parse_bin_filter(raw, field_name)
        if bin_filter is None:
            _drop("data bin filter", raw)
            continue
        attributes.append(bin_filter)

    bundle_cls = {
        "attributes": ClinicalDataBinBundle,
        "genomicDataBinFilters": GenomicDataBinBundle,
        "genericAssayDataBinFilters": GenericAssayDataBinBundle,
    }[field_name]
    bundle = bundle_cls(
        study_view_filter=parse_study_view_filter(payload["studyViewFilter"]),
        attributes=tuple(attributes),
    )
    return DataBinRequest(
        method=BinningMethod(payload.get("binningMethod", BinningMethod.STATIC.value)),
        bundle=bundle,
        remove_self=not payload.get("disableSelfFilter", False),
    )


def _values_payload(values: tuple[DataFilterValue, ...]) -> list[dict[str, Any]]:
    return [item.to_payload() for item in values]


def filter_to_payload(study_view_filter: StudyViewFilter) -> dict[str, Any]:
    """Inverse of ``parse_study_view_filter``; used for cache keys and logging."""

    svf = study_view_filter
    return {
        "studyIds": list(svf.study_ids),
        "sampleIdentifiers": [item.to_payload() for item in svf.sample_identifiers],
        "clinicalDataFilters": [
            {"attributeId": item.attribute_id, "values": _values_payload(item.values)}
            for item in svf.clinical_data_filters
        ],
        "genomicDataFilters": [
            {**item.key.to_payload(), "values": _values_payload(item.values)}
            for item in svf.genomic_data_filters
        ],
        "genericAssayDataFilters": [
            {**item.key.to_payload(), "values": _values_payload(item.values)}
            for item in svf.generic_assay_data_filters
        ],
        "geneFilters": [
            {"profileTypes": list(item.profile_types), "geneQueries": [list(group) for group in item.gene_queries]}
            for item in svf.gene_filters
        ],
        "alterationFilter": svf.alteration_filter.to_payload() if svf.alteration_filter else None,
        "clinicalEventFilters": [
            {
                "eventType": item.event_type,
                "attributes": [{"key": key, "value": value} for key, value in item.attributes],
            }
            for item in svf.clinical_event_filters
        ],
        "customDataFilters": [
            {
                "attributeId": item.attribute_id,
                "values": _values_payload(item.values),
                "records": [
                    {"studyId": record.study_id, "sampleId": record.sample_id, "value": record.value}
                    for record in item.records
                ],
            }
            for item in svf.custom_data_filters
        ],
        "caseLists": [list(group) for group in svf.case_list_ids],
    }


def bin_filter_to_payload(bin_filter: DataBinFilter) -> dict[str, Any]:
    payload: dict[str, Any] = dict(bin_filter.key.to_payload())
    payload["binMethod"] = bin_filter.bin_method.value
    if bin_filter.custom_bins is not None:
        payload["customBins"] = list(bin_filter.custom_bins)
    if bin_filter.bin_size is not None or bin_filter.anchor_value is not None:
        payload["binsGeneratorConfig"] = {
            "binSize": bin_filter.bin_size,
            "anchorValue": bin_filter.anchor_value,
        }
    if bin_filter.start is not None:
        payload["start"] = bin_filter.start
    if bin_filter.end is not None:
        payload["end"] = bin_filter.end
    payload["disableLogScale"] = bin_filter.disable_log_scale
    return payload
