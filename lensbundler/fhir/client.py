"""Minimal FHIR REST client for publishing lens ``Library`` resources."""

from __future__ import annotations

import copy
import json
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional
from urllib.error import HTTPError, URLError
from urllib.parse import quote
from urllib.request import Request, urlopen

from ..constants import FHIR_MEDIA_TYPE, RESOURCE_TYPE
from ..logging import get_logger

logger = get_logger("fhir")

DEFAULT_TIMEOUT = 30.0


@dataclass
class FhirRequest:
    """A single HTTP exchange with the FHIR server."""

    method: str
    url: str
    body: Optional[Dict[str, Any]]
    timeout: float


@dataclass
class FhirResponse:
    status: int
    body: bytes = b""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def json(self) -> Any:
        if not self.body:
            return None
        return json.loads(self.body.decode("utf-8"))


@dataclass
class UploadOutcome:
    """What the server did with an uploaded lens."""

    name: str
    action: str
    status: int
    resource_id: Optional[str] = None


class FhirUploadError(RuntimeError):
    """Raised when the server rejects a create or update."""

    def __init__(self, status: int, details: List[str], body: str = "") -> None:
        summary = "; ".join(details) if details else (body.strip() or "no details")
        super().__init__(f"Upload failed with status {status}: {summary}")
        self.status = status
        self.details = list(details)
        self.body = body


Transport = Callable[[FhirRequest], FhirResponse]


class FhirClient:
    """Creates or updates ``Library`` resources on a FHIR server, matched by name."""

    def __init__(
        self,
        domain: str,
        *,
        timeout: Optional[float] = DEFAULT_TIMEOUT,
        transport: Transport | None = None,
    ) -> None:
        if not domain:
            raise ValueError("A FHIR server domain is required")
        self.domain = domain.rstrip("/")
        self.timeout = timeout or DEFAULT_TIMEOUT
        self._transport = transport or self._http_transport

    def upload(self, record: Mapping[str, Any]) -> UploadOutcome:
        """Update the ``Library`` sharing ``record``'s name, or create one."""
        name = str(record.get("name", ""))
        existing_id = self.find_library_id(name)
        payload = copy.deepcopy(dict(record))

        if existing_id is not None:
            payload["id"] = existing_id
            url = f"{self.domain}/{RESOURCE_TYPE}/{quote(existing_id, safe='')}"
            response = self._send("PUT", url, payload)
            action = "updated"
        else:
            payload.pop("id", None)
            response = self._send("POST", f"{self.domain}/{RESOURCE_TYPE}", payload)
            action = "created"

        if not response.ok:
            text = response.body.decode("utf-8", errors="replace")
            raise FhirUploadError(response.status, parse_operation_outcome(text), text)

        resource_id = existing_id
        if resource_id is None:
            resource_id = _created_id(response)
        logger.info("Lens %s %s (status %d)", name, action, response.status)
        return UploadOutcome(name=name, action=action, status=response.status, resource_id=resource_id)

    def find_library_id(self, name: str) -> Optional[str]:
        """Return the id of the first ``Library`` named ``name``, if the server has one."""
        url = f"{self.domain}/{RESOURCE_TYPE}?name={quote(name, safe='')}"
        try:
            response = self._send("GET", url, None)
        except FhirUploadError as exc:
            logger.warning("Search for %s failed: %s", name, exc)
            return None
        if response.status != 200:
            logger.warning("Search for %s returned status %d", name, response.status)
            return None
        try:
            bundle = response.json()
        except (UnicodeDecodeError, json.JSONDecodeError):
            logger.warning("Search for %s returned an unreadable bundle", name)
            return None
        return _first_entry_id(bundle)

    def _send(self, method: str, url: str, body: Optional[Dict[str, Any]]) -> FhirResponse:
        request = FhirRequest(method=method, url=url, body=body, timeout=self.timeout)
        logger.debug("%s %s", method, url)
        return self._transport(request)

    @staticmethod
    def _http_transport(request: FhirRequest) -> FhirResponse:
        data = None
        headers = {"Accept": FHIR_MEDIA_TYPE}
        if request.body is not None:
            data = json.dumps(request.body).encode("utf-8")
            headers["Content-Type"] = FHIR_MEDIA_TYPE

        http_request = Request(request.url, data=data, headers=headers, method=request.method)
        try:
            with urlopen(http_request, timeout=request.timeout) as response:  # type: ignore[arg-type]
                return FhirResponse(status=response.status, body=response.read())
        except HTTPError as exc:
            body = exc.read() if hasattr(exc, "read") else b""
            return FhirResponse(status=exc.code, body=body or b"")
        except URLError as exc:
            raise FhirUploadError(0, [f"connection failed: {exc.reason}"]) from exc


def parse_operation_outcome(text: str) -> List[str]:
    """Flatten an OperationOutcome body into ``severity: message`` lines."""
    try:
        payload = json.loads(text)
    except (TypeError, json.JSONDecodeError):
        return []
    if not isinstance(payload, dict):
        return []
    issues = payload.get("issue")
    if not isinstance(issues, list):
        return []
    details: List[str] = []
    for issue in issues:
        if not isinstance(issue, dict):
            continue
        severity = issue.get("severity") or "error"
        message = issue.get("diagnostics")
        if not message:
            nested = issue.get("details")
            message = nested.get("text") if isinstance(nested, dict) else None
        details.append(f"{severity}: {message or 'No details'}")
    return details


def _first_entry_id(bundle: Any) -> Optional[str]:
    if not isinstance(bundle, dict):
        return None
    total = bundle.get("total")
    entries = bundle.get("entry")
    if not isinstance(total, int) or total <= 0 or not isinstance(entries, list) or not entries:
        return None
    first = entries[0]
    resource = first.get("resource") if isinstance(first, dict) else None
    resource_id = resource.get("id") if isinstance(resource, dict) else None
    return str(resource_id) if resource_id else None


def _created_id(response: FhirResponse) -> Optional[str]:
    try:
        payload = response.json()
    except (UnicodeDecodeError, json.JSONDecodeError):
        return None
    if isinstance(payload, dict) and payload.get("id"):
        return str(payload["id"])
    return None


__all__ = [
    "FhirClient",
    "FhirRequest",
    "FhirResponse",
    "FhirUploadError",
    "UploadOutcome",
    "parse_operation_outcome",
]
