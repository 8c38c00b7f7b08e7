"""Vision proxy API: the only component holding the vision API credential."""

import base64
import binascii
import json
import logging
from functools import lru_cache
from typing import Any

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException

from snapsight.ai.factory import get_vision_model
from snapsight.ai.schema import AnalysisResponse, ModelCard
from snapsight.ai.vision_base import BaseVisionModel
from snapsight.core.config import ProxySettings, get_config, load_api_key
from snapsight.core.errors import ProxyInputError, RemoteModelError, RemoteModelTimeoutError
from snapsight.core.logging import REDACTED, get_flight_logger

_log = logging.getLogger(__name__)

DEFAULT_IMAGE_MIME = "image/jpeg"
MULTIPART_FIELD = "image"
JSON_FIELD = "imageData"
UNSUPPORTED_CONTENT_TYPE = (
    "Unsupported content type. Send multipart/form-data with an 'image' file field, "
    "or application/json with an 'imageData' base64 or data URL string."
)


@lru_cache(maxsize=1)
def _get_proxy_settings() -> ProxySettings:
    return get_config().proxy


@lru_cache(maxsize=1)
def _get_api_key() -> str | None:
    """Read once at first use; process-wide and never mutated."""
    return load_api_key()


@lru_cache(maxsize=1)
def _get_vision_model() -> BaseVisionModel:
    settings = _get_proxy_settings()
    return get_vision_model(settings.vision_model, settings, _get_api_key())


app = FastAPI(title="SnapSight Vision Proxy")

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_config().proxy.cors_origins,
    allow_methods=["POST", "GET", "OPTIONS"],
    allow_headers=["*"],
)


def redact(value: Any, secret: str | None) -> Any:
    """Replace secret anywhere inside a JSON-like value."""
    if not secret:
        return value
    if isinstance(value, str):
        return value.replace(secret, REDACTED)
    if isinstance(value, dict):
        return {k: redact(v, secret) for k, v in value.items()}
    if isinstance(value, list):
        return [redact(v, secret) for v in value]
    return value


def _error_body(message: str, details: Any = None) -> dict[str, Any]:
    body: dict[str, Any] = {"error": message}
    if details is not None:
        body["details"] = details
    return body


@app.exception_handler(ProxyInputError)
async def _proxy_input_error_handler(request: Request, exc: ProxyInputError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=_error_body(exc.message))


@app.exception_handler(StarletteHTTPException)
async def _http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    _log.exception("Unhandled error in %s %s", request.method, request.url.path)
    flight = get_flight_logger()
    if flight is not None:
        path = flight.dump("proxy")
        _log.error("Flight log dumped to %s", path)
    return JSONResponse(status_code=500, content=_error_body("Internal server error"))


def normalize_image_data(value: str) -> str:
    """
    Return a data URL for the image. Data URLs pass through; bare base64 gets an
    image/jpeg prefix. Raises ProxyInputError for empty or non-base64 payloads.
    """
    value = value.strip()
    if not value:
        raise ProxyInputError("No image data provided")
    if value.startswith("data:"):
        header, sep, payload = value.partition(",")
        if not sep or not header.startswith("data:image") or ";base64" not in header:
            raise ProxyInputError("imageData data URL must be a base64 image (data:image/...;base64,...)")
        _log.debug("Image format: data URL (%s)", header.split(";")[0])
        prefix = header
    else:
        payload = value
        prefix = f"data:{DEFAULT_IMAGE_MIME};base64"
        _log.debug("Image format: raw base64, adding %s data URL prefix", DEFAULT_IMAGE_MIME)
    payload = "".join(payload.split())
    try:
        decoded = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError):
        raise ProxyInputError("imageData is not valid base64")
    if not decoded:
        raise ProxyInputError("No image data provided")
    return f"{prefix},{payload}"


def bytes_to_data_url(data: bytes, content_type: str | None) -> str:
    mime = content_type if content_type and content_type.startswith("image/") else DEFAULT_IMAGE_MIME
    return f"data:{mime};base64,{base64.b64encode(data).decode('ascii')}"


def _check_declared_size(request: Request, limit: int) -> None:
    declared = request.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > limit:
        raise ProxyInputError(f"Image payload exceeds {limit} bytes")


async def _image_url_from_multipart(request: Request, limit: int) -> str:
    """Parse the multipart body; the form (and any spooled temp file) is closed on every path."""
    form = await request.form()
    try:
        image = form.get(MULTIPART_FIELD)
        if not isinstance(image, UploadFile):
            raise ProxyInputError(f"Multipart body must contain an '{MULTIPART_FIELD}' file field")
        data = await image.read()
        if not data:
            raise ProxyInputError("Uploaded image is empty")
        if len(data) > limit:
            raise ProxyInputError(f"Image payload exceeds {limit} bytes")
        _log.info("Received multipart image (%d bytes, %s)", len(data), image.content_type)
        return bytes_to_data_url(data, image.content_type)
    finally:
        await form.close()


async def _read_body(request: Request, limit: int) -> bytes:
    """Read the body with a running byte count; chunked bodies carry no Content-Length."""
    received = bytearray()
    async for chunk in request.stream():
        received.extend(chunk)
        if len(received) > limit:
            raise ProxyInputError(f"Image payload exceeds {limit} bytes")
    return bytes(received)


async def _image_url_from_json(request: Request, limit: int) -> str:
    raw = await _read_body(request, limit)
    try:
        body = json.loads(raw)
    except ValueError:
        raise ProxyInputError("Request body is not valid JSON")
    image_data = body.get(JSON_FIELD) if isinstance(body, dict) else None
    if not isinstance(image_data, str) or not image_data.strip():
        raise ProxyInputError("No image data provided")
    _log.info("Received JSON image (%d characters)", len(image_data))
    return normalize_image_data(image_data)


@app.post("/api/vision")
@app.post("/api/vision/analyze")
async def api_vision(
    request: Request,
    settings: ProxySettings = Depends(_get_proxy_settings),
    model: BaseVisionModel = Depends(_get_vision_model),
    api_key: str | None = Depends(_get_api_key),
) -> JSONResponse:
    """Analyze one image (multipart 'image' or JSON 'imageData') and return the analysis envelope."""
    media_type = request.headers.get("content-type", "").split(";")[0].strip().lower()
    _check_declared_size(request, settings.max_upload_bytes)
    if media_type == "multipart/form-data":
        image_url = await _image_url_from_multipart(request, settings.max_upload_bytes)
    elif media_type == "application/json":
        image_url = await _image_url_from_json(request, settings.max_upload_bytes)
    else:
        raise ProxyInputError(UNSUPPORTED_CONTENT_TYPE)

    try:
        text = await run_in_threadpool(model.describe, image_url)
    except RemoteModelError as e:
        status = 504 if isinstance(e, RemoteModelTimeoutError) else 500
        _log.error("Vision analysis failed (%d): %s", status, redact(e.message, api_key))
        return JSONResponse(
            status_code=status,
            content=_error_body(
                redact(f"Failed to analyze image: {e.message}", api_key),
                redact(e.details, api_key),
            ),
        )

    response = AnalysisResponse.from_text(text)
    return JSONResponse(content=response.model_dump(mode="json"))


@app.get("/api/health")
def api_health(model: BaseVisionModel = Depends(_get_vision_model)) -> dict[str, Any]:
    card: ModelCard = model.get_model_card()
    return {"status": "ok", "model": card.model_dump()}
