"""Shared identifiers for the Gravitate Health lens profile."""

from __future__ import annotations

RESOURCE_TYPE = "Library"
SCRIPT_MEDIA_TYPE = "application/javascript"
FHIR_MEDIA_TYPE = "application/fhir+json"

LEE_VERSION_URL = "http://hl7.eu/fhir/ig/gravitate-health/StructureDefinition/lee-version"
IDENTIFIER_SYSTEM = "http://gravitate-health.lst.tfo.upm.es"
DEFAULT_LIBRARY_URL = "http://hl7.eu/fhir/ig/gravitate-health/Library/mock-lib"
LIBRARY_TYPE_CODE = "logical-library"

TEMPLATE_URL = "https://raw.githubusercontent.com/Gravitate-Health/lens-template/refs/heads/main/my-lens.js"
TEMPLATE_REPOSITORY = "Gravitate-Health/lens-template"
TEMPLATE_CLONE_URL = "https://github.com/Gravitate-Health/lens-template.git"
TEMPLATE_LENS_STEM = "my-lens"

UNKNOWN_VERSION = "unknown"
