"""Typer CLI: run the vision proxy, analyze stills, snap from a local camera, verify the API key."""

import json
from pathlib import Path

import typer
from PIL import Image
from rich.console import Console
from rich.table import Table

from snapsight.camera.acquisition import CameraController, FacingMode
from snapsight.camera.capture import CaptureResult, capture, render_capture
from snapsight.camera.media import VideoSink
from snapsight.client.surface import AnalysisSurface
from snapsight.client.upload import UploadClient
from snapsight.core.config import Settings, get_config, load_api_key
from snapsight.core.errors import (
    AcquisitionError,
    AnalysisTimeoutError,
    EncodingError,
    NotReadyError,
    RemoteModelError,
    UploadError,
)
from snapsight.core.logging import setup_logging

app = typer.Typer(no_args_is_help=True)

FRAME_WAIT_ATTEMPTS = 30


def _load(config_path: Path | None) -> Settings:
    settings = get_config(config_path) if config_path is not None else get_config()
    setup_logging(settings, secrets=[k for k in (load_api_key(),) if k])
    return settings


def _upload_and_print(settings: Settings, result: CaptureResult) -> None:
    surface = AnalysisSurface(UploadClient(settings.upload), policy=settings.upload.concurrency)
    try:
        response = surface.analyze(result)
    except AnalysisTimeoutError:
        typer.secho(surface.message, fg=typer.colors.YELLOW)
        raise typer.Exit(2)
    except UploadError as e:
        typer.secho(surface.message, fg=typer.colors.RED)
        if e.details is not None:
            typer.echo(json.dumps(e.details, indent=2) if not isinstance(e.details, str) else e.details)
        raise typer.Exit(1)
    if response is not None:
        typer.echo(response.primary_content)


@app.command("serve")
def serve(
    host: str = typer.Option("0.0.0.0", help="Bind address"),
    port: int = typer.Option(8000, help="Bind port"),
    config_path: Path | None = typer.Option(None, "--config", help="Path to snapsight.yml"),
) -> None:
    """Run the vision proxy (POST /api/vision)."""
    import uvicorn

    settings = _load(config_path)
    if settings.proxy.vision_model == "openai" and not load_api_key():
        typer.secho("OPENAI_API_KEY is not set; analysis requests will fail.", fg=typer.colors.YELLOW)
    uvicorn.run("snapsight.api.main:app", host=host, port=port, log_config=None)


@app.command("analyze")
def analyze(
    path: Path = typer.Argument(..., help="Still image to crop, encode and upload"),
    mirror: bool = typer.Option(False, "--mirror", help="Flip horizontally, as a front-camera preview would"),
    config_path: Path | None = typer.Option(None, "--config", help="Path to snapsight.yml"),
) -> None:
    """Run a still image through the capture pipeline and print the analysis."""
    settings = _load(config_path)
    try:
        with Image.open(path) as img:
            img.load()
            result = render_capture(img, settings.capture, mirrored=mirror)
    except (OSError, EncodingError, NotReadyError) as e:
        typer.secho(f"Could not prepare image: {e}", fg=typer.colors.RED)
        raise typer.Exit(1)
    typer.echo(f"Captured {result.width}x{result.height} ({len(result.encoded_bytes)} bytes)")
    _upload_and_print(settings, result)


@app.command("snap")
def snap(
    front: bool = typer.Option(False, "--front", help="Use the front (user-facing) camera"),
    save: Path | None = typer.Option(None, "--save", help="Also write the captured JPEG here"),
    no_upload: bool = typer.Option(False, "--no-upload", help="Capture only; skip analysis"),
    config_path: Path | None = typer.Option(None, "--config", help="Path to snapsight.yml"),
) -> None:
    """Acquire a local camera, capture one frame and analyze it."""
    from snapsight.camera.opencv_devices import OpenCVMediaDevices

    settings = _load(config_path)
    controller = CameraController(
        OpenCVMediaDevices(settings.camera.device_indices),
        VideoSink(),
        settings.camera,
    )
    facing = FacingMode.front if front else FacingMode(settings.camera.default_facing_mode)
    try:
        session = controller.acquire(facing)
    except AcquisitionError as e:
        typer.secho(f"Camera error ({e.reason}): {e.message}", fg=typer.colors.RED)
        raise typer.Exit(1)
    try:
        result = None
        for _ in range(FRAME_WAIT_ATTEMPTS):
            try:
                result = capture(session, settings.capture)
                break
            except NotReadyError:
                continue
        if result is None:
            typer.secho("Camera produced no frame.", fg=typer.colors.RED)
            raise typer.Exit(1)
    finally:
        controller.release()

    typer.echo(f"Captured {result.width}x{result.height} from {facing.value} camera")
    if save is not None:
        save.write_bytes(result.encoded_bytes)
        typer.echo(f"Saved {save}")
    if not no_upload:
        _upload_and_print(settings, result)


@app.command("check-key")
def check_key(
    config_path: Path | None = typer.Option(None, "--config", help="Path to snapsight.yml"),
) -> None:
    """Verify OPENAI_API_KEY with a minimal completion request."""
    from snapsight.ai.vision_openai import OpenAIVisionModel

    settings = _load(config_path)
    api_key = load_api_key()
    if not api_key:
        typer.secho("OPENAI_API_KEY is not set.", fg=typer.colors.RED)
        raise typer.Exit(1)
    model = OpenAIVisionModel(settings.proxy, api_key)
    try:
        reply = model.check_credential()
    except RemoteModelError as e:
        typer.secho(f"API key check failed: {e.message}", fg=typer.colors.RED)
        raise typer.Exit(1)
    typer.secho("API key is working.", fg=typer.colors.GREEN)
    typer.echo(reply)


@app.command("config")
def show_config(
    config_path: Path | None = typer.Option(None, "--config", help="Path to snapsight.yml"),
) -> None:
    """Print the effective settings (the API key is never shown)."""
    settings = get_config(config_path) if config_path is not None else get_config()
    table = Table(title=None)
    table.add_column("Setting")
    table.add_column("Value")
    for section, values in settings.model_dump(mode="json").items():
        if isinstance(values, dict):
            for key, value in values.items():
                table.add_row(f"{section}.{key}", str(value))
        else:
            table.add_row(section, str(values))
    table.add_row("api_key", "set" if load_api_key() else "not set")
    Console().print(table)


if __name__ == "__main__":
    app()
