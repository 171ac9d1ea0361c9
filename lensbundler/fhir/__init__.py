"""FHIR server integration."""

from .client import FhirClient, FhirResponse, FhirUploadError, UploadOutcome

__all__ = ["FhirClient", "FhirResponse", "FhirUploadError", "UploadOutcome"]
