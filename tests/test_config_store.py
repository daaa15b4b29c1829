import math
import random

import pytest

from mission_control import config_store as config_store_module
from mission_control.config_store import ConfigStore, get_config_store
from mission_control.errors import ShapeError, ValidationError
from mission_control.models import (
    DEFAULT_SETTINGS,
    ChartProps,
    CommandParameter,
    ConfigSnapshot,
    LayoutEntry,
    ReadoutProps,
    TelemetrySignal,
    TemperatureUnit,
    WidgetInstance,
    WidgetType,
)


def _geometry(entry):
    return (entry.x, entry.y, entry.width, entry.height)


def test_fresh_store_has_default_screen(store) -> None:
    snap = store.snapshot()
    assert snap.settings == DEFAULT_SETTINGS
    assert [(w.id, w.type) for w in snap.widgets] == [
        ("telemetry-1", WidgetType.READOUT),
        ("command-1", WidgetType.COMMAND_ISSUER),
        ("chart-1", WidgetType.CHART),
    ]
    assert [_geometry(e) for e in snap.layout] == [(0, 0, 8, 16), (10, 0, 17, 40), (0, 20, 14, 24)]


def test_added_ids_are_distinct(store) -> None:
    rng = random.Random(7)
    ids = [store.add_widget(rng.choice(list(WidgetType))) for _ in range(40)]
    all_ids = [w.id for w in store.widgets]
    assert len(set(ids)) == len(ids)
    assert len(set(all_ids)) == len(all_ids)
    assert sorted(e.widget_id for e in store.layout) == sorted(all_ids)


def test_default_placements_never_coincide(store) -> None:
    for _ in range(6):
        store.add_widget(WidgetType.READOUT)
    store.remove_widget(store.widgets[4].id)
    store.add_widget(WidgetType.READOUT)
    geometries = [_geometry(e) for e in store.layout]
    assert len(set(geometries)) == len(geometries)


def test_remove_cascades_only_its_entry(store) -> None:
    rng = random.Random(3)
    for _ in range(8):
        store.add_widget(rng.choice(list(WidgetType)))
    order = [w.id for w in store.widgets]
    rng.shuffle(order)
    for widget_id in order:
        before = {e.widget_id: e for e in store.layout}
        assert store.remove_widget(widget_id) is True
        after = {e.widget_id: e for e in store.layout}
        assert widget_id not in after
        del before[widget_id]
        assert after == before
    assert store.widgets == ()
    assert store.layout == ()


def test_remove_unknown_widget(store) -> None:
    seen = []
    store.subscribe(seen.append)
    assert store.remove_widget("nope") is False
    assert seen == []


def test_subscriber_sees_post_mutation_state(store) -> None:
    observed = []

    def check(snapshot):
        observed.append(snapshot)
        assert "chart-1" not in snapshot.widget_ids()
        assert snapshot.layout_for("chart-1") is None

    store.subscribe(check)
    store.remove_widget("chart-1")
    assert len(observed) == 1
    assert observed[0] == store.snapshot()


def test_unsubscribe(store) -> None:
    seen = []
    unsubscribe = store.subscribe(seen.append)
    store.add_widget(WidgetType.CHART)
    unsubscribe()
    store.add_widget(WidgetType.CHART)
    assert len(seen) == 1


def test_failing_subscriber_does_not_block_others(store) -> None:
    seen = []

    def broken(snapshot):
        raise RuntimeError("boom")

    store.subscribe(broken)
    store.subscribe(seen.append)
    store.add_widget(WidgetType.READOUT)
    assert len(seen) == 1


def test_unit_switch_converts_thresholds_not_calibration(store) -> None:
    store.update_settings({"calibration_offset": 2.0})
    store.update_settings({"unit": TemperatureUnit.CELSIUS})
    settings = store.settings
    assert settings.unit == TemperatureUnit.CELSIUS
    assert settings.temp_threshold_low == pytest.approx(0.0)
    assert settings.temp_threshold_high == pytest.approx((75 - 32) * 5 / 9)
    assert settings.calibration_offset == 2.0

    store.update_settings({"unit": "F"})
    assert store.settings.temp_threshold_low == pytest.approx(32.0)
    assert store.settings.temp_threshold_high == pytest.approx(75.0)


def test_unit_switch_keeps_explicit_thresholds(store) -> None:
    store.update_settings({"unit": "C", "temp_threshold_high": 40})
    assert store.settings.temp_threshold_high == 40.0
    assert store.settings.temp_threshold_low == pytest.approx(0.0)


def test_same_unit_update_leaves_thresholds(store) -> None:
    store.update_settings({"unit": "F"})
    assert store.settings == DEFAULT_SETTINGS


@pytest.mark.parametrize(
    "partial",
    [
        {"bogus": 1},
        {"stale_timeout_seconds": "5"},
        {"stale_timeout_seconds": 0},
        {"time_range_minutes": -1},
        {"temp_threshold_high": True},
        {"temp_threshold_low": math.nan},
        {"calibration_offset": math.inf},
        {"unit": "K"},
        {"selected_signals": ["temp", "humidity"]},
        {"selected_signals": "temp"},
        {"unit": "C", "stale_timeout_seconds": -5},
    ],
)
def test_invalid_settings_leave_store_unchanged(store, partial) -> None:
    before = store.snapshot()
    seen = []
    store.subscribe(seen.append)
    with pytest.raises(ValidationError):
        store.update_settings(partial)
    assert store.snapshot() == before
    assert seen == []


def test_toggle_signal(store) -> None:
    store.toggle_signal(TelemetrySignal.PRESSURE)
    assert store.settings.selected_signals == {TelemetrySignal.TEMPERATURE, TelemetrySignal.PRESSURE}
    store.toggle_signal("temp")
    assert store.settings.selected_signals == {TelemetrySignal.PRESSURE}


def test_reset_restores_defaults_with_fresh_ids(store) -> None:
    old_ids = set(store.snapshot().widget_ids())
    store.update_settings({"unit": "C", "calibration_offset": 4})
    store.add_widget(WidgetType.CHART)
    store.remove_widget("telemetry-1")

    store.reset_settings()
    snap = store.snapshot()
    assert snap.settings == DEFAULT_SETTINGS
    assert [w.type for w in snap.widgets] == [
        WidgetType.READOUT,
        WidgetType.COMMAND_ISSUER,
        WidgetType.CHART,
    ]
    assert not old_ids & set(snap.widget_ids())
    assert [_geometry(e) for e in snap.layout] == [(0, 0, 8, 16), (10, 0, 17, 40), (0, 20, 14, 24)]


def test_update_widget_props(store) -> None:
    store.update_widget_props("command-1", command="ARM", parameters=[CommandParameter("a", "1")])
    props = store.get_widget("command-1").props
    assert props.command == "ARM"
    assert props.parameters == (CommandParameter("a", "1"),)

    with pytest.raises(ValidationError):
        store.update_widget_props("telemetry-1", command="ARM")
    with pytest.raises(KeyError):
        store.update_widget_props("missing", title="x")


def test_apply_layout_change_moves_and_reconciles(store) -> None:
    store.apply_layout_change([
        LayoutEntry("chart-1", 20, 50, 10, 10),
        LayoutEntry("ghost", 0, 0, 5, 5),
    ])
    assert _geometry(store.snapshot().layout_for("chart-1")) == (20, 50, 10, 10)
    assert store.snapshot().layout_for("ghost") is None
    assert [e.widget_id for e in store.layout] == ["telemetry-1", "command-1", "chart-1"]


def test_locked_entries_ignore_moves(store) -> None:
    assert store.set_widget_locked("telemetry-1", True) is True
    store.apply_layout_change([LayoutEntry("telemetry-1", 30, 30, 4, 4)])
    entry = store.snapshot().layout_for("telemetry-1")
    assert _geometry(entry) == (0, 0, 8, 16)
    assert entry.locked is True
    assert store.set_widget_locked("ghost", True) is False


def test_replace_all_requires_both_sequences(store) -> None:
    before = store.snapshot()
    with pytest.raises(ShapeError):
        store.replace_all(ConfigSnapshot(None, None, ()))
    with pytest.raises(ShapeError):
        store.replace_all(ConfigSnapshot(None, (), None))
    with pytest.raises(ShapeError):
        store.replace_all({"layout": [], "components": []})
    assert store.snapshot() == before


def test_replace_all_rejects_duplicate_ids(store) -> None:
    before = store.snapshot()
    widgets = (
        WidgetInstance("a", WidgetType.READOUT, ReadoutProps()),
        WidgetInstance("a", WidgetType.CHART, ChartProps()),
    )
    with pytest.raises(ShapeError):
        store.replace_all(ConfigSnapshot(None, widgets, ()))
    assert store.snapshot() == before


def test_replace_all_keeps_settings_and_reconciles(store) -> None:
    store.update_settings({"stale_timeout_seconds": 12})
    widgets = (
        WidgetInstance("r", WidgetType.READOUT, ReadoutProps("Cabin")),
        WidgetInstance("c", WidgetType.CHART, ChartProps()),
    )
    layout = (LayoutEntry("c", 2, 2, 10, 10), LayoutEntry("orphan", 0, 0, 1, 1))
    store.replace_all(ConfigSnapshot(None, widgets, layout))

    snap = store.snapshot()
    assert snap.settings.stale_timeout_seconds == 12
    assert snap.widget_ids() == ("r", "c")
    assert [e.widget_id for e in snap.layout] == ["r", "c"]
    assert _geometry(snap.layout_for("c")) == (2, 2, 10, 10)


def test_get_config_store_is_singleton(monkeypatch) -> None:
    monkeypatch.setattr(config_store_module, "_store", None)
    first = get_config_store()
    assert isinstance(first, ConfigStore)
    assert get_config_store() is first
