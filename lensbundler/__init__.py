"""Bundle, validate and synchronise FHIR lens descriptors with their scripts."""

__version__ = "0.3.0"
