from datetime import datetime, timedelta, timezone

import pytest

from mission_control.models import Settings, TelemetrySignal, TemperatureUnit
from mission_control.telemetry import (
    LatestSampleSlot,
    ReadingLevel,
    TelemetrySample,
    build_chart_series,
    classify_temperature,
    convert_threshold_on_unit_switch,
    format_timestamp,
    is_stale,
    parse_samples,
    parse_timestamp,
    to_display_temperature,
    to_display_value,
)

NOW = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)
F = TemperatureUnit.FAHRENHEIT
C = TemperatureUnit.CELSIUS


def _iso(dt):
    return dt.isoformat().replace("+00:00", "Z")


def test_calibrated_reading_in_fahrenheit() -> None:
    settings = Settings(unit=F, calibration_offset=2)
    assert to_display_temperature(70, settings) == 72


def test_calibration_applies_before_celsius_conversion() -> None:
    settings = Settings(unit=C, calibration_offset=2)
    assert to_display_temperature(70, settings) == pytest.approx((72 - 32) * 5 / 9)


def test_transform_is_pure() -> None:
    settings = Settings(unit=C, calibration_offset=-1.5)
    assert to_display_temperature(98.6, settings) == to_display_temperature(98.6, settings)


@pytest.mark.parametrize("offset", [-10.0, -0.5, 0.0, 2.0, 17.25])
@pytest.mark.parametrize("raw", [-40.0, 0.0, 70.0, 212.0])
def test_unit_switch_round_trip(raw, offset) -> None:
    shown = to_display_temperature(raw, Settings(unit=F, calibration_offset=offset))
    there = convert_threshold_on_unit_switch(shown, F, C)
    assert there == pytest.approx(to_display_temperature(raw, Settings(unit=C, calibration_offset=offset)))
    assert convert_threshold_on_unit_switch(there, C, F) == pytest.approx(shown)


def test_threshold_conversion_has_no_calibration_term() -> None:
    assert convert_threshold_on_unit_switch(212, F, C) == pytest.approx(100)
    assert convert_threshold_on_unit_switch(-40, C, F) == pytest.approx(-40)
    assert convert_threshold_on_unit_switch(55.5, C, C) == 55.5


def test_pressure_and_voltage_are_not_converted() -> None:
    settings = Settings(unit=C, calibration_offset=3)
    assert to_display_value(TelemetrySignal.PRESSURE, 101.3, settings) == 101.3
    assert to_display_value(TelemetrySignal.VOLTAGE, 3.3, settings) == 3.3


def test_classify_temperature() -> None:
    settings = Settings(temp_threshold_low=32, temp_threshold_high=75)
    assert classify_temperature(75, settings) == ReadingLevel.NORMAL
    assert classify_temperature(75.01, settings) == ReadingLevel.HIGH
    assert classify_temperature(31.9, settings) == ReadingLevel.LOW
    assert classify_temperature(32, settings) == ReadingLevel.NORMAL


def test_is_stale() -> None:
    assert is_stale(None, 5, NOW)
    assert is_stale("", 5, NOW)
    assert is_stale("not a time", 5, NOW)
    assert not is_stale(_iso(NOW - timedelta(seconds=4)), 5, NOW)
    assert not is_stale(_iso(NOW - timedelta(seconds=5)), 5, NOW)
    assert is_stale(_iso(NOW - timedelta(seconds=6)), 5, NOW)


def test_naive_timestamps_are_utc() -> None:
    assert parse_timestamp("2024-05-01T12:00:00") == NOW
    assert parse_timestamp("2024-05-01T12:00:00Z") == NOW
    assert parse_timestamp("2024-05-01T14:00:00+02:00") == NOW


def test_format_timestamp_local_time() -> None:
    expected = NOW.astimezone().strftime("%m/%d/%Y %H:%M:%S")
    assert format_timestamp("2024-05-01T12:00:00Z") == expected
    assert format_timestamp("garbage") == "garbage"


def test_sample_from_dict_defaults() -> None:
    sample = TelemetrySample.from_dict({"time": "2024-05-01T12:00:00Z", "temp": "70.5"})
    assert sample.temp == 70.5
    assert sample.pressure == 0.0
    assert sample.voltage == 0.0
    assert sample.status == ""
    with pytest.raises(ValueError):
        TelemetrySample.from_dict(["not", "an", "object"])


def test_parse_samples_skips_bad_rows() -> None:
    rows = [{"time": "t1", "temp": 1}, "junk", None, {"time": "t2", "voltage": 3.3}]
    samples = parse_samples(rows)
    assert [s.time for s in samples] == ["t1", "t2"]


def test_chart_series_filters_orders_and_converts() -> None:
    settings = Settings(
        unit=C,
        calibration_offset=2,
        time_range_minutes=10,
        selected_signals=frozenset({TelemetrySignal.TEMPERATURE, TelemetrySignal.VOLTAGE}),
    )
    samples = [
        TelemetrySample(_iso(NOW - timedelta(minutes=1)), temp=70, pressure=101, voltage=3.3),
        TelemetrySample(_iso(NOW - timedelta(minutes=30)), temp=80, pressure=99, voltage=3.1),
        TelemetrySample(_iso(NOW - timedelta(minutes=5)), temp=50, pressure=100, voltage=3.2),
        TelemetrySample("bad time", temp=1),
    ]
    rows = build_chart_series(samples, settings, NOW)
    assert [row["voltage"] for row in rows] == [3.2, 3.3]
    assert rows[0]["temp"] == pytest.approx((52 - 32) * 5 / 9)
    assert all(set(row) == {"time", "temp", "voltage"} for row in rows)


def test_latest_sample_slot_last_write_wins() -> None:
    slot = LatestSampleSlot()
    assert slot.peek() is None
    newer = TelemetrySample("2024-05-01T12:00:05Z", temp=71)
    older = TelemetrySample("2024-05-01T12:00:00Z", temp=70)
    slot.put(newer)
    slot.put(older)
    # No reordering: a late message still overwrites
    assert slot.peek() is older
    slot.clear()
    assert slot.peek() is None
