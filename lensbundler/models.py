"""Data models for lens ``Library`` resources and their metadata."""

from __future__ import annotations

import dataclasses
import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Dict, List, Mapping, Optional

from .constants import (
    DEFAULT_LIBRARY_URL,
    IDENTIFIER_SYSTEM,
    LEE_VERSION_URL,
    LIBRARY_TYPE_CODE,
    RESOURCE_TYPE,
    SCRIPT_MEDIA_TYPE,
)

DEFAULT_PUBLISHER = "Gravitate Health Project - UPM Team"
DEFAULT_COPYRIGHT = "© 2024 Gravitate Health"
DEFAULT_VERSION = "0.0.1"


def iso_timestamp(now: Optional[datetime] = None) -> str:
    """Return ``now`` (default: current UTC time) as ``YYYY-MM-DDTHH:MM:SS.mmmZ``."""
    moment = now or datetime.now(UTC)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def library_id(name: str) -> str:
    return re.sub(r"\s+", "-", name.lower())


@dataclass
class Coding:
    code: str
    system: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"code": self.code}
        if self.system is not None:
            payload["system"] = self.system
        return payload


@dataclass
class Telecom:
    system: str
    value: str

    @classmethod
    def default(cls) -> "Telecom":
        return cls("url", "https://www.gravitatehealth.eu/")

    def to_dict(self) -> Dict[str, Any]:
        return {"system": self.system, "value": self.value}


@dataclass
class Contact:
    name: str
    telecom: List[Telecom] = field(default_factory=list)

    @classmethod
    def default(cls) -> "Contact":
        return cls("Gravitate Health", [Telecom.default()])

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "telecom": [item.to_dict() for item in self.telecom]}


@dataclass
class LensMetadata:
    """Caller-supplied fields for a newly created lens ``Library``."""

    name: str
    version: str = DEFAULT_VERSION
    title: Optional[str] = None
    status: str = "draft"
    experimental: bool = True
    url: str = DEFAULT_LIBRARY_URL
    publisher: str = DEFAULT_PUBLISHER
    contact: List[Contact] = field(default_factory=lambda: [Contact.default()])
    description: str = "Description to be specified"
    purpose: str = "Purpose to be specified"
    usage: str = "Usage to be specified"
    copyright: str = DEFAULT_COPYRIGHT
    lee_version: str = "dev"

    @classmethod
    def from_package_json(cls, package_json: Mapping[str, Any]) -> "LensMetadata":
        """Map ``package.json`` fields onto lens metadata.

        ``author`` may be a string or an ``{name, email, url}`` object; the
        object form becomes a contact with one telecom entry per channel.
        """
        name = _text(package_json.get("name")) or "unnamed-lens"
        license_name = _text(package_json.get("license")) or "UNLICENSED"
        author = package_json.get("author") or "Unknown"

        publisher = "Unknown"
        contact = [Contact.default()]
        if isinstance(author, Mapping) and _text(author.get("name")):
            publisher = _text(author.get("name")) or publisher
            telecom = []
            if _text(author.get("email")):
                telecom.append(Telecom("email", str(author["email"])))
            if _text(author.get("url")):
                telecom.append(Telecom("url", str(author["url"])))
            if telecom:
                contact = [Contact(publisher, telecom)]
        elif isinstance(author, str):
            publisher = author
            contact = [Contact(author, [])]

        return cls(
            name=name,
            version=_text(package_json.get("version")) or DEFAULT_VERSION,
            publisher=publisher,
            contact=contact,
            description=_text(package_json.get("description")) or "No description provided",
            purpose=_text(package_json.get("purpose")) or "Purpose to be specified",
            usage=_text(package_json.get("usage")) or "Usage to be specified",
            copyright=_text(package_json.get("copyright")) or f"Licensed under {license_name}",
        )

    def with_overrides(self, **fields: Any) -> "LensMetadata":
        """Return a copy with every non-``None`` keyword applied."""
        changes = {key: value for key, value in fields.items() if value is not None}
        return dataclasses.replace(self, **changes)


@dataclass
class LensFhirResource:
    """A complete lens ``Library`` resource ready for serialisation."""

    metadata: LensMetadata
    data: str
    date: str = field(default_factory=iso_timestamp)

    def to_dict(self) -> Dict[str, Any]:
        meta = self.metadata
        return {
            "resourceType": RESOURCE_TYPE,
            "id": library_id(meta.name),
            "date": self.date,
            "meta": {},
            "extension": [{"url": LEE_VERSION_URL, "valueString": meta.lee_version}],
            "url": meta.url,
            "identifier": [{"system": IDENTIFIER_SYSTEM, "value": meta.name}],
            "version": meta.version,
            "name": meta.name,
            "title": meta.title or meta.name,
            "status": meta.status,
            "experimental": meta.experimental,
            "type": {"coding": [Coding(LIBRARY_TYPE_CODE).to_dict()]},
            "publisher": meta.publisher,
            "contact": [contact.to_dict() for contact in meta.contact],
            "description": meta.description,
            "jurisdiction": [{"coding": [Coding("US", "urn:iso:std:iso:3166").to_dict()]}],
            "purpose": meta.purpose,
            "usage": meta.usage,
            "copyright": meta.copyright,
            "parameter": [
                {"use": "in", "documentation": "parameter if it exists", "type": "CodeableConcept"}
            ],
            "content": [{"contentType": SCRIPT_MEDIA_TYPE, "data": self.data}],
        }


def _text(value: Any) -> Optional[str]:
    if isinstance(value, str) and value:
        return value
    return None


__all__ = [
    "Coding",
    "Contact",
    "LensFhirResource",
    "LensMetadata",
    "Telecom",
    "iso_timestamp",
    "library_id",
]
