"""
Telemetry: Sample parsing and the pure transforms from raw readings to display values.

Calibration is applied in device units (Fahrenheit) before any unit
conversion, because offsets are defined against the raw sensor. Threshold
re-expression on a unit switch never involves calibration.

Nothing in here holds state except LatestSampleSlot, the single-slot
mailbox the push stream writes into.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from mission_control.models import Settings, TelemetrySignal, TemperatureUnit

logger = logging.getLogger(__name__)


class ReadingLevel(str, Enum):
    NORMAL = "normal"
    LOW = "low"
    HIGH = "high"


@dataclass(frozen=True)
class TelemetrySample:
    """One reading in raw device units."""

    time: str
    temp: float = 0.0
    pressure: float = 0.0
    voltage: float = 0.0
    status: str = ""

    def value(self, signal: TelemetrySignal) -> float:
        return getattr(self, signal.value)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TelemetrySample":
        """Build a sample from a pull-source row or a push-stream message.

        Raises ValueError when the payload is not an object.
        """
        if not isinstance(data, dict):
            raise ValueError(f"telemetry sample must be an object, got {type(data).__name__}")
        return cls(
            time=str(data.get("time") or ""),
            temp=_as_float(data.get("temp")),
            pressure=_as_float(data.get("pressure")),
            voltage=_as_float(data.get("voltage")),
            status=str(data.get("status") or ""),
        )


def _as_float(value: Any) -> float:
    if isinstance(value, bool):
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def parse_samples(rows: Iterable[Any]) -> List[TelemetrySample]:
    """Parse a pull-source response, skipping rows that are not objects."""
    samples = []
    for row in rows:
        try:
            samples.append(TelemetrySample.from_dict(row))
        except ValueError as e:
            logger.warning("Skipping malformed telemetry row: %s", e)
    return samples


# ============================================================
# Unit conversion
# ============================================================

def fahrenheit_to_celsius(value: float) -> float:
    return (value - 32) * 5 / 9


def celsius_to_fahrenheit(value: float) -> float:
    return value * 9 / 5 + 32


def to_display_temperature(raw: float, settings: Settings) -> float:
    """Calibrate a raw (Fahrenheit) reading, then express it in the display unit."""
    adjusted = raw + settings.calibration_offset
    if settings.unit == TemperatureUnit.CELSIUS:
        return fahrenheit_to_celsius(adjusted)
    return adjusted


def convert_threshold_on_unit_switch(
    old_threshold: float, from_unit: TemperatureUnit, to_unit: TemperatureUnit
) -> float:
    """Re-express a display-unit threshold in another unit, preserving its physical value."""
    if from_unit == to_unit:
        return old_threshold
    if to_unit == TemperatureUnit.CELSIUS:
        return fahrenheit_to_celsius(old_threshold)
    return celsius_to_fahrenheit(old_threshold)


def to_display_value(signal: TelemetrySignal, raw: float, settings: Settings) -> float:
    # Pressure and voltage are shown as reported
    if signal == TelemetrySignal.TEMPERATURE:
        return to_display_temperature(raw, settings)
    return raw


def classify_temperature(display_value: float, settings: Settings) -> ReadingLevel:
    """Compare a display-unit reading against the display-unit thresholds."""
    if display_value > settings.temp_threshold_high:
        return ReadingLevel.HIGH
    if display_value < settings.temp_threshold_low:
        return ReadingLevel.LOW
    return ReadingLevel.NORMAL


# ============================================================
# Time handling
# ============================================================

def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 / RFC3339 timestamp. Naive values are taken as UTC.

    Returns None when the value is missing or unparseable.
    """
    if not value:
        return None
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def is_stale(last_sample_time_iso: Optional[str], stale_timeout_seconds: float, now: datetime) -> bool:
    """True if there is no usable timestamp or the sample is older than the timeout."""
    sample_time = parse_timestamp(last_sample_time_iso)
    if sample_time is None:
        return True
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    elapsed = (now - sample_time).total_seconds()
    return elapsed > stale_timeout_seconds


def format_timestamp(value: str) -> str:
    """Chart axis label: MM/DD/YYYY HH:MM:SS in local time. Unparseable input is returned as-is."""
    parsed = parse_timestamp(value)
    if parsed is None:
        return value
    return parsed.astimezone().strftime("%m/%d/%Y %H:%M:%S")


# ============================================================
# Chart series
# ============================================================

def build_chart_series(
    samples: Iterable[TelemetrySample], settings: Settings, now: datetime
) -> List[Dict[str, Any]]:
    """Shape pulled samples into chart rows.

    Keeps samples inside the configured time range, converts temperature to
    the display unit and emits only the selected signals, oldest first.
    """
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    cutoff = now - timedelta(minutes=settings.time_range_minutes)
    signals = [s for s in TelemetrySignal if s in settings.selected_signals]

    timed = []
    for sample in samples:
        sample_time = parse_timestamp(sample.time)
        if sample_time is None or sample_time < cutoff:
            continue
        timed.append((sample_time, sample))
    timed.sort(key=lambda pair: pair[0])

    rows = []
    for _, sample in timed:
        row: Dict[str, Any] = {"time": sample.time}
        for signal in signals:
            row[signal.value] = to_display_value(signal, sample.value(signal), settings)
        rows.append(row)
    return rows


# ============================================================
# Push-stream mailbox
# ============================================================

class LatestSampleSlot:
    """Single-slot mailbox: each put overwrites, readers only see the current value."""

    def __init__(self):
        self._sample: Optional[TelemetrySample] = None

    def put(self, sample: TelemetrySample) -> None:
        self._sample = sample

    def peek(self) -> Optional[TelemetrySample]:
        return self._sample

    def clear(self) -> None:
        self._sample = None
