"""Exceptions raised by the study-view engine."""

from __future__ import annotations


class MolecularProfileNotFoundError(LookupError):
    """A single explicitly requested molecular profile does not exist or has the wrong type."""

    def __init__(self, molecular_profile_id: str) -> None:
        super().__init__(f"Molecular profile not found: {molecular_profile_id}")
        self.molecular_profile_id = molecular_profile_id


class StudyViewDataError(RuntimeError):
    """Unexpected failure raised by the persistence layer while serving a request."""


class InvalidRequestError(ValueError):
    """Inbound payload is structurally malformed."""

    def __init__(self, errors: list[str]) -> None:
        super().__init__("Invalid study view request: " + "; ".join(errors))
        self.errors = errors
