"""Logging setup: console handler, FlightLogger circular buffer for forensics, credential redaction."""

import logging
import sys
from collections import deque
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable

from snapsight.core.config import Settings

FLIGHT_LOG_CAPACITY = 50_000
# Relative to cwd when no config is provided.
DEFAULT_FORENSICS_DIR = Path.cwd() / "logs" / "forensics"
REDACTED = "***"

_flight_logger: "FlightLogger | None" = None


class RedactingFilter(logging.Filter):
    """
    Replace every configured secret in a record's rendered message with ***.

    The message is rendered once (msg % args) and args are cleared, so handlers
    downstream never see the raw value.
    """

    def __init__(self, secrets: Iterable[str]) -> None:
        super().__init__()
        self._secrets = [s for s in secrets if s]

    def filter(self, record: logging.LogRecord) -> bool:
        if not self._secrets:
            return True
        message = record.getMessage()
        redacted = message
        for secret in self._secrets:
            redacted = redacted.replace(secret, REDACTED)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


class FlightLogger(logging.Handler):
    """
    Circular buffer handler: keeps the last 50,000 log records (all levels) in memory.
    dump(label) writes the buffer to {forensics_dir}/{label}_{timestamp}.log.
    """

    def __init__(
        self,
        capacity: int = FLIGHT_LOG_CAPACITY,
        forensics_dir: str | Path | None = None,
    ) -> None:
        super().__init__(level=logging.DEBUG)
        self._buffer: deque[logging.LogRecord] = deque(maxlen=capacity)
        self._forensics_dir = Path(forensics_dir if forensics_dir is not None else DEFAULT_FORENSICS_DIR)

    def emit(self, record: logging.LogRecord) -> None:
        self._buffer.append(record)

    def dump(self, label: str) -> str:
        """Write buffer to forensics dir; return path to the written file."""
        self._forensics_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
        filepath = self._forensics_dir / f"{label}_{timestamp}.log"
        formatter = self.formatter or logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        with open(filepath, "w") as f:
            for record in self._buffer:
                f.write(formatter.format(record) + "\n")
        return str(filepath)

    def __len__(self) -> int:
        return len(self._buffer)


def get_flight_logger() -> FlightLogger | None:
    """Return the FlightLogger handler created by setup_logging(), if any."""
    return _flight_logger


def setup_logging(settings: Settings, secrets: Iterable[str] = ()) -> None:
    """
    Configure application logging.

    Invariants:
    - The root logger is set to DEBUG so that all records reach handlers.
    - Console handler logs at settings.log_level.
    - A FlightLogger handler captures all levels into an in-memory circular buffer.
    - Every handler carries a RedactingFilter for the given secrets (the vision API key).
    """
    global _flight_logger

    fmt = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"
    formatter = logging.Formatter(fmt, datefmt=datefmt)
    redactor = RedactingFilter(secrets)

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    # Remove existing handlers so we don't duplicate when called again
    for h in root.handlers[:]:
        root.removeHandler(h)

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(getattr(logging, settings.log_level, logging.INFO))
    console.setFormatter(formatter)
    console.addFilter(redactor)
    root.addHandler(console)

    flight = FlightLogger(
        capacity=FLIGHT_LOG_CAPACITY,
        forensics_dir=settings.forensics_dir,
    )
    flight.setLevel(logging.DEBUG)
    flight.setFormatter(formatter)
    flight.addFilter(redactor)
    root.addHandler(flight)
    _flight_logger = flight
