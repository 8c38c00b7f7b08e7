"""Tests for UploadClient transport selection, error mapping and response normalisation."""

import json
from unittest.mock import MagicMock

import pytest
import requests

from snapsight.camera.acquisition import FacingMode
from snapsight.camera.capture import CaptureResult
from snapsight.client.upload import (
    NO_ANALYSIS_TEXT,
    UploadClient,
    extract_analysis_text,
    normalize_analysis_payload,
)
from snapsight.core.config import UploadSettings
from snapsight.core.errors import AnalysisTimeoutError, UploadError

pytestmark = [pytest.mark.fast]

ENDPOINT = "http://proxy.test/api/vision"


def _response(status: int, body=None, text: str | None = None) -> requests.Response:
    resp = requests.Response()
    resp.status_code = status
    resp.reason = "OK" if status < 400 else "Error"
    if text is None:
        text = json.dumps(body)
    resp._content = text.encode("utf-8")
    resp.encoding = "utf-8"
    resp.headers["Content-Type"] = "application/json"
    return resp


@pytest.fixture
def capture_result() -> CaptureResult:
    return CaptureResult(
        encoded_bytes=b"\xff\xd8\xff\xe0jpeg-bytes\xff\xd9",
        width=480,
        height=480,
        source_facing_mode=FacingMode.rear,
    )


def _client(transport: str = "multipart", **post_kwargs) -> tuple[UploadClient, MagicMock]:
    session = MagicMock(spec=requests.Session)
    session.post.configure_mock(**post_kwargs)
    settings = UploadSettings(endpoint=ENDPOINT, transport=transport, timeout_seconds=30)
    return UploadClient(settings, session=session), session


def test_multipart_transport_sends_raw_bytes(capture_result):
    client, session = _client(return_value=_response(200, {"text": "A cat."}))
    response = client.analyze(capture_result)

    assert response.text == "A cat."
    args, kwargs = session.post.call_args
    assert args == (ENDPOINT,)
    assert kwargs["timeout"] == 30
    assert kwargs["files"] == {"image": ("capture.jpg", capture_result.encoded_bytes, "image/jpeg")}
    assert "json" not in kwargs


def test_json_transport_sends_data_url(capture_result):
    client, session = _client("json", return_value=_response(200, {"result": "A dog."}))
    response = client.analyze(capture_result)

    assert response.primary_content == "A dog."
    kwargs = session.post.call_args.kwargs
    assert kwargs["json"] == {"imageData": capture_result.to_data_url()}
    assert "files" not in kwargs


@pytest.mark.parametrize(
    "payload, expected",
    [
        ({"text": "X"}, "X"),
        ({"result": "R"}, "R"),
        ({"modalities": {"text": {"content": "Y"}}, "primary": "text"}, "Y"),
        ({"modalities": {"text": {"content": "Y", "format": "plain_text"}}}, "Y"),
        (
            {"version": "1.0", "modalities": {"text": {"content": "Y"}}, "primary": "text", "text": "old"},
            "Y",
        ),
        ({"modalities": {"text": {"content": ""}}, "primary": "text", "text": "T"}, "T"),
        ({"modalities": {"image": {"content": "Z"}}, "primary": "text", "result": "R"}, "R"),
        ({"text": "", "result": "R"}, "R"),
        ({"provider": "openai"}, NO_ANALYSIS_TEXT),
        ({"modalities": "garbage", "primary": 5}, NO_ANALYSIS_TEXT),
        ({}, NO_ANALYSIS_TEXT),
        ([], NO_ANALYSIS_TEXT),
        (None, NO_ANALYSIS_TEXT),
        ("just a string", NO_ANALYSIS_TEXT),
    ],
)
def test_extract_analysis_text_never_raises(payload, expected):
    assert extract_analysis_text(payload) == expected


def test_normalized_response_keeps_legacy_fields_in_sync():
    response = normalize_analysis_payload({"text": "X"})
    assert response.version == "1.0"
    assert response.primary == "text"
    assert response.modalities["text"].content == response.text == response.result == "X"
    assert response.modalities["text"].format == "plain_text"


def test_client_timeout_raises_analysis_timeout(capture_result):
    client, _ = _client(side_effect=requests.ReadTimeout("read timed out"))
    with pytest.raises(AnalysisTimeoutError) as exc_info:
        client.analyze(capture_result)
    assert not isinstance(exc_info.value, UploadError)
    assert isinstance(exc_info.value, TimeoutError)


def test_proxy_gateway_timeout_raises_analysis_timeout(capture_result):
    body = {"error": "Failed to analyze image: Vision API did not respond within 30s"}
    client, _ = _client(return_value=_response(504, body))
    with pytest.raises(AnalysisTimeoutError, match="did not respond"):
        client.analyze(capture_result)


def test_connection_error_raises_upload_error(capture_result):
    client, _ = _client(side_effect=requests.ConnectionError("refused"))
    with pytest.raises(UploadError, match="Network error"):
        client.analyze(capture_result)


def test_server_error_is_surfaced_verbatim(capture_result):
    body = {"error": "Failed to analyze image: Vision API returned 429", "details": {"error": {"code": "rate_limit"}}}
    client, _ = _client(return_value=_response(500, body))
    with pytest.raises(UploadError) as exc_info:
        client.analyze(capture_result)
    err = exc_info.value
    assert err.status_code == 500
    assert err.details == body
    assert "Vision API returned 429" in str(err)


def test_bad_request_with_text_body(capture_result):
    client, _ = _client(return_value=_response(400, text="Bad Request"))
    with pytest.raises(UploadError) as exc_info:
        client.analyze(capture_result)
    assert exc_info.value.status_code == 400
    assert exc_info.value.details == "Bad Request"


def test_malformed_json_raises_upload_error(capture_result):
    client, _ = _client(return_value=_response(200, text="<html>not json</html>"))
    with pytest.raises(UploadError, match="malformed JSON"):
        client.analyze(capture_result)
