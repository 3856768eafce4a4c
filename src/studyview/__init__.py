"""Study-view filtering and data-binning engine.

This package provides the building blocks for filtering cohorts across
studies, fetching clinical, genomic and generic-assay values, binning them
into histograms and counting categorical data for the study view.
"""

from .binning import BinningEngine
from .cache import ResultCache, cache_key
from .catalog import AttributeCatalog, CatalogProvider
from .classifier import AttributeCategory, FilterClassifier, classify
from .config import (
    NA_VALUE,
    NOT_PROFILED_VALUE,
    BinMethod,
    BinningConfig,
    BinningMethod,
    ClinicalDataType,
    DatatypePolicy,
    ValueKind,
)
from .exceptions import InvalidRequestError, MolecularProfileNotFoundError, StudyViewDataError
from .export import ProfileDataExporter
from .fetcher import DataFetcher, ValueSource, ValueSourceRegistry, build_default_value_source_registry
from .filters import baseline_filter, remove_self_from_filter
from .identifiers import IdentifierResolver
from .models import (
    AlterationFilter,
    ClinicalAttributeKey,
    ClinicalDataBinBundle,
    ClinicalDataFilter,
    ClinicalEventFilter,
    CustomDataFilter,
    CustomDataRecord,
    DataBin,
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
    Population,
    SampleIdentifier,
    StudyViewFilter,
)
from .payloads import DataBinRequest, filter_to_payload, parse_data_bin_request, parse_study_view_filter
from .population import PopulationFilter
from .service import StudyViewService
from .settings import StudyViewSettings, StudyViewSettingsLoader

__all__ = [
    "NA_VALUE",
    "NOT_PROFILED_VALUE",
    "AlterationFilter",
    "AttributeCatalog",
    "AttributeCategory",
    "BinMethod",
    "BinningConfig",
    "BinningEngine",
    "BinningMethod",
    "CatalogProvider",
    "ClinicalAttributeKey",
    "ClinicalDataBinBundle",
    "ClinicalDataFilter",
    "ClinicalDataType",
    "ClinicalEventFilter",
    "CustomDataFilter",
    "CustomDataRecord",
    "DataBin",
    "DataBinBundle",
    "DataBinFilter",
    "DataBinRequest",
    "DataFetcher",
    "DataFilterValue",
    "DatatypePolicy",
    "FilterClassifier",
    "GeneFilter",
    "GenericAssayDataBinBundle",
    "GenericAssayDataFilter",
    "GenericAssayKey",
    "GenomicDataBinBundle",
    "GenomicDataFilter",
    "GenomicProfileKey",
    "IdentifierResolver",
    "InvalidRequestError",
    "MolecularProfileNotFoundError",
    "Population",
    "PopulationFilter",
    "ProfileDataExporter",
    "ResultCache",
    "SampleIdentifier",
    "StudyViewDataError",
    "StudyViewFilter",
    "StudyViewService",
    "StudyViewSettings",
    "StudyViewSettingsLoader",
    "ValueKind",
    "ValueSource",
    "ValueSourceRegistry",
    "baseline_filter",
    "build_default_value_source_registry",
    "cache_key",
    "classify",
    "filter_to_payload",
    "parse_data_bin_request",
    "parse_study_view_filter",
    "remove_self_from_filter",
]
