"""Upload client: send a CaptureResult to the analysis proxy and normalise whatever shape comes back."""

from __future__ import annotations

import logging
from typing import Any, Mapping

import requests

from snapsight.ai.schema import TEXT_MODALITY, AnalysisResponse
from snapsight.camera.capture import CaptureResult
from snapsight.core.config import UploadSettings
from snapsight.core.errors import AnalysisTimeoutError, UploadError

_log = logging.getLogger(__name__)

NO_ANALYSIS_TEXT = "No analysis text returned."
MULTIPART_FIELD = "image"
JSON_FIELD = "imageData"
CAPTURE_FILENAME = "capture.jpg"


def _non_empty_str(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value
    return None


def extract_analysis_text(payload: Any) -> str:
    """
    Best available text, in order: modalities[primary].content, text, result, then the
    NO_ANALYSIS_TEXT sentinel. Never raises on an unexpected shape.
    """
    if not isinstance(payload, Mapping):
        return NO_ANALYSIS_TEXT
    modalities = payload.get("modalities")
    if isinstance(modalities, Mapping):
        primary = payload.get("primary") or TEXT_MODALITY
        entry = modalities.get(primary) if isinstance(primary, str) else None
        if isinstance(entry, Mapping):
            content = _non_empty_str(entry.get("content"))
            if content is not None:
                return content
    for key in ("text", "result"):
        content = _non_empty_str(payload.get(key))
        if content is not None:
            return content
    return NO_ANALYSIS_TEXT


def normalize_analysis_payload(payload: Any) -> AnalysisResponse:
    """Accept the versioned envelope or the legacy {text}/{result} shapes."""
    return AnalysisResponse.from_text(extract_analysis_text(payload))


def _error_details(resp: requests.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return resp.text


def _error_message(resp: requests.Response, details: Any) -> str:
    if isinstance(details, Mapping) and isinstance(details.get("error"), str):
        return f"Server returned {resp.status_code}: {details['error']}"
    return f"Server returned {resp.status_code}: {resp.reason or ''}".rstrip()


class UploadClient:
    """
    Posts captures to the proxy endpoint.

    The transport (multipart or base64 JSON) is fixed by settings for the lifetime of the
    client. Timeouts (client-side or a proxy 504) raise AnalysisTimeoutError; everything
    else raises UploadError with the server status and body attached.
    """

    def __init__(self, settings: UploadSettings, session: requests.Session | None = None) -> None:
        self._settings = settings
        self._session = session or requests.Session()

    @property
    def transport(self) -> str:
        return self._settings.transport

    def _send(self, capture: CaptureResult) -> requests.Response:
        kwargs: dict[str, Any] = {"timeout": self._settings.timeout_seconds}
        if self._settings.transport == "multipart":
            kwargs["files"] = {
                MULTIPART_FIELD: (CAPTURE_FILENAME, capture.encoded_bytes, capture.content_type)
            }
        else:
            kwargs["json"] = {JSON_FIELD: capture.to_data_url()}
        return self._session.post(self._settings.endpoint, **kwargs)

    def analyze(self, capture: CaptureResult) -> AnalysisResponse:
        _log.info(
            "Uploading %dx%d capture (%d bytes) via %s",
            capture.width,
            capture.height,
            len(capture.encoded_bytes),
            self._settings.transport,
        )
        try:
            resp = self._send(capture)
        except requests.Timeout as e:
            raise AnalysisTimeoutError(
                f"Analysis timed out after {self._settings.timeout_seconds:g}s"
            ) from e
        except requests.RequestException as e:
            raise UploadError(f"Network error: {e}") from e

        if resp.status_code == 504:
            details = _error_details(resp)
            raise AnalysisTimeoutError(_error_message(resp, details))
        if not resp.ok:
            details = _error_details(resp)
            raise UploadError(_error_message(resp, details), status_code=resp.status_code, details=details)
        try:
            payload = resp.json()
        except ValueError as e:
            raise UploadError(
                "Server returned malformed JSON", status_code=resp.status_code, details=resp.text
            ) from e
        return normalize_analysis_payload(payload)
