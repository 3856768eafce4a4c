"""Persistence backends for the study-view engine."""

from .base import StudyViewRepository
from .duckdb_store import TABLE_SCHEMAS, DuckDBStudyViewRepository

__all__ = ["StudyViewRepository", "DuckDBStudyViewRepository", "TABLE_SCHEMAS"]
