"""
Config Store: Process-wide container for settings, widget registry and layout

Holds the single mutable screen configuration and provides:
- Widget add/remove with unique ids and cascading layout removal
- Field-by-field settings updates with validation
- Threshold re-expression when the display unit switches
- Whole-configuration replacement from a loaded screen file
- Synchronous subscriber notification after every committed change

All state is held in immutable values that are swapped in one step, so a
subscriber sees either the state before a mutation or the state after it.
"""

import dataclasses
import logging
import math
import uuid
from pathlib import Path
from collections.abc import Iterable
from typing import Any, Callable, Dict, List, Mapping, Optional, Set, Tuple

from mission_control import layout_engine
from mission_control.errors import ShapeError, ValidationError
from mission_control.models import (
    DEFAULT_SETTINGS,
    ConfigSnapshot,
    LayoutEntry,
    Settings,
    TelemetrySignal,
    TemperatureUnit,
    WidgetInstance,
    WidgetType,
    make_default_props,
)
from mission_control.telemetry import convert_threshold_on_unit_switch

logger = logging.getLogger(__name__)

# Default config paths
DEFAULT_CONFIG_DIR = Path.home() / ".config" / "mission-control"
DEFAULT_LAYOUT_PATH = DEFAULT_CONFIG_DIR / "layout.json"

# Widgets present on a fresh screen: (preferred id, type)
DEFAULT_WIDGETS = (
    ("telemetry-1", WidgetType.READOUT),
    ("command-1", WidgetType.COMMAND_ISSUER),
    ("chart-1", WidgetType.CHART),
)

NUMERIC_SETTINGS = (
    "stale_timeout_seconds",
    "temp_threshold_low",
    "temp_threshold_high",
    "time_range_minutes",
    "calibration_offset",
)
POSITIVE_SETTINGS = ("stale_timeout_seconds", "time_range_minutes")

Subscriber = Callable[[ConfigSnapshot], None]


def _coerce_number(key: str, value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{key} must be a number")
    value = float(value)
    if not math.isfinite(value):
        raise ValidationError(f"{key} must be a finite number")
    if key in POSITIVE_SETTINGS and value <= 0:
        raise ValidationError(f"{key} must be greater than zero")
    return value


def _coerce_unit(value: Any) -> TemperatureUnit:
    try:
        return TemperatureUnit(value)
    except ValueError:
        raise ValidationError(f"Unknown temperature unit: {value!r}")


def _coerce_signals(value: Any) -> frozenset:
    if isinstance(value, (str, bytes)) or not isinstance(value, Iterable):
        raise ValidationError("selected_signals must be a collection of signals")
    signals = set()
    for item in value:
        try:
            signals.add(TelemetrySignal(item))
        except ValueError:
            raise ValidationError(f"Unknown telemetry signal: {item!r}")
    return frozenset(signals)


class ConfigStore:
    """Sole mutation authority for the dashboard configuration."""

    def __init__(self):
        self._settings: Settings = DEFAULT_SETTINGS
        self._widgets: Tuple[WidgetInstance, ...] = ()
        self._layout: Tuple[LayoutEntry, ...] = ()
        self._issued_ids: Set[str] = set()
        self._subscribers: List[Subscriber] = []
        self._widgets, self._layout = self._build_default_screen()

    # -- Reads --

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def widgets(self) -> Tuple[WidgetInstance, ...]:
        return self._widgets

    @property
    def layout(self) -> Tuple[LayoutEntry, ...]:
        return self._layout

    def snapshot(self) -> ConfigSnapshot:
        """Immutable view of settings, widgets and layout."""
        return ConfigSnapshot(self._settings, self._widgets, self._layout)

    get_snapshot = snapshot

    def get_widget(self, widget_id: str) -> Optional[WidgetInstance]:
        for w in self._widgets:
            if w.id == widget_id:
                return w
        return None

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a change callback. Returns a function that unregisters it."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    # -- Widget registry --

    def add_widget(self, widget_type: WidgetType) -> str:
        """Create a widget with default props and default placement. Returns its id."""
        widget_type = WidgetType(widget_type)
        widget_id = self._claim_id()
        widget = WidgetInstance(widget_id, widget_type, make_default_props(widget_type))
        entry = layout_engine.place_new_entry(
            widget_id, widget_type, self._layout, self._widget_types()
        )
        self._commit(widgets=self._widgets + (widget,), layout=self._layout + (entry,))
        logger.info("Added %s widget %s at (%d, %d)", widget_type.name, widget_id, entry.x, entry.y)
        return widget_id

    def remove_widget(self, widget_id: str) -> bool:
        """Remove a widget and its layout entry together. Returns False for unknown ids."""
        if self.get_widget(widget_id) is None:
            return False
        widgets = tuple(w for w in self._widgets if w.id != widget_id)
        layout = tuple(e for e in self._layout if e.widget_id != widget_id)
        self._commit(widgets=widgets, layout=layout)
        logger.info("Removed widget %s", widget_id)
        return True

    def update_widget_props(self, widget_id: str, **changes: Any) -> None:
        """Replace fields of a widget's props variant.

        Raises KeyError for an unknown widget id and ValidationError for a
        field the widget's type does not have.
        """
        widget = self.get_widget(widget_id)
        if widget is None:
            raise KeyError(widget_id)
        if "parameters" in changes:
            changes["parameters"] = tuple(changes["parameters"])
        try:
            props = dataclasses.replace(widget.props, **changes)
        except TypeError as e:
            raise ValidationError(f"Invalid property for {widget.type.name}: {e}")
        updated = dataclasses.replace(widget, props=props)
        widgets = tuple(updated if w.id == widget_id else w for w in self._widgets)
        self._commit(widgets=widgets)

    # -- Settings --

    def update_settings(self, partial: Mapping[str, Any]) -> None:
        """Apply a partial settings update atomically.

        Switching ``unit`` re-expresses both stored thresholds in the new unit
        unless the same update supplies them explicitly.

        Raises ValidationError (store unchanged) for unknown keys or bad values.
        """
        known = Settings.field_names()
        values: Dict[str, Any] = {}
        for key, value in partial.items():
            if key not in known:
                raise ValidationError(f"Unknown setting: {key}")
            if key in NUMERIC_SETTINGS:
                values[key] = _coerce_number(key, value)
            elif key == "unit":
                values[key] = _coerce_unit(value)
            elif key == "selected_signals":
                values[key] = _coerce_signals(value)

        current = self._settings
        new_unit = values.get("unit", current.unit)
        if new_unit != current.unit:
            for key in ("temp_threshold_low", "temp_threshold_high"):
                if key not in values:
                    values[key] = convert_threshold_on_unit_switch(
                        getattr(current, key), current.unit, new_unit
                    )
            logger.info(
                "Unit switched %s -> %s, thresholds now %.2f / %.2f",
                current.unit.value, new_unit.value,
                values["temp_threshold_low"], values["temp_threshold_high"],
            )

        if not values:
            return
        self._commit(settings=dataclasses.replace(current, **values))
        logger.debug("Settings updated: %s", ", ".join(sorted(values)))

    def toggle_signal(self, signal: TelemetrySignal) -> None:
        """Add the signal to the selection if absent, remove it if present."""
        signal = TelemetrySignal(signal)
        selected = set(self._settings.selected_signals)
        if signal in selected:
            selected.discard(signal)
        else:
            selected.add(signal)
        self.update_settings({"selected_signals": selected})

    def reset_settings(self) -> None:
        """Restore default settings and the default three-widget screen."""
        widgets, layout = self._build_default_screen()
        self._commit(settings=DEFAULT_SETTINGS, widgets=widgets, layout=layout)
        logger.info("Settings and screen reset to defaults")

    # -- Layout --

    def apply_layout_change(self, entries: Iterable[LayoutEntry]) -> None:
        """Persist geometry reported by the grid canvas.

        Reported entries override the stored ones for live widgets, except
        locked entries which keep their stored geometry. Entries for unknown
        widgets are dropped and missing ones get a default placement.
        """
        merged: Dict[str, LayoutEntry] = {e.widget_id: e for e in self._layout}
        for entry in entries:
            current = merged.get(entry.widget_id)
            if current is not None and current.locked:
                continue
            if current is not None and current.locked != entry.locked:
                entry = dataclasses.replace(entry, locked=current.locked)
            merged[entry.widget_id] = entry
        layout = layout_engine.reconcile(
            merged.values(), [w.id for w in self._widgets], self._widget_types()
        )
        if tuple(layout) != self._layout:
            self._commit(layout=tuple(layout))

    def set_widget_locked(self, widget_id: str, locked: bool) -> bool:
        """Pin or unpin a widget's layout entry. Returns False for unknown ids."""
        changed = False
        layout = []
        for entry in self._layout:
            if entry.widget_id == widget_id:
                changed = True
                entry = dataclasses.replace(entry, locked=bool(locked))
            layout.append(entry)
        if not changed:
            return False
        self._commit(layout=tuple(layout))
        return True

    # -- Whole-configuration replacement --

    def replace_all(self, snapshot: ConfigSnapshot) -> None:
        """Install a full configuration, e.g. one read from a screen file.

        Raises ShapeError (store unchanged) when the snapshot does not carry
        both a widgets sequence and a layout sequence, or holds duplicate ids.
        A snapshot without settings keeps the current settings.
        """
        if not isinstance(snapshot, ConfigSnapshot):
            raise ShapeError("Expected a configuration snapshot")
        widgets, layout = snapshot.widgets, snapshot.layout
        if not isinstance(widgets, (list, tuple)):
            raise ShapeError("Configuration is missing a widgets sequence")
        if not isinstance(layout, (list, tuple)):
            raise ShapeError("Configuration is missing a layout sequence")
        if not all(isinstance(w, WidgetInstance) for w in widgets):
            raise ShapeError("Configuration widgets must be widget instances")
        if not all(isinstance(e, LayoutEntry) for e in layout):
            raise ShapeError("Configuration layout must hold layout entries")
        ids = [w.id for w in widgets]
        if len(ids) != len(set(ids)):
            raise ShapeError("Configuration contains duplicate widget ids")
        if snapshot.settings is not None and not isinstance(snapshot.settings, Settings):
            raise ShapeError("Configuration settings are malformed")

        types = {w.id: w.type for w in widgets}
        reconciled = layout_engine.reconcile(layout, ids, types)
        self._issued_ids.update(ids)
        self._commit(
            settings=snapshot.settings or self._settings,
            widgets=tuple(widgets),
            layout=tuple(reconciled),
        )
        logger.info("Configuration replaced: %d widgets, %d layout entries", len(widgets), len(reconciled))

    # -- Internals --

    def _claim_id(self, preferred: Optional[str] = None) -> str:
        """Issue a widget id never handed out before by this store."""
        if preferred and preferred not in self._issued_ids:
            widget_id = preferred
        else:
            widget_id = str(uuid.uuid4())
            while widget_id in self._issued_ids:
                widget_id = str(uuid.uuid4())
        self._issued_ids.add(widget_id)
        return widget_id

    def _widget_types(self) -> Dict[str, WidgetType]:
        return {w.id: w.type for w in self._widgets}

    def _build_default_screen(self) -> Tuple[Tuple[WidgetInstance, ...], Tuple[LayoutEntry, ...]]:
        widgets: List[WidgetInstance] = []
        layout: List[LayoutEntry] = []
        types: Dict[str, WidgetType] = {}
        for preferred_id, widget_type in DEFAULT_WIDGETS:
            widget_id = self._claim_id(preferred_id)
            widgets.append(WidgetInstance(widget_id, widget_type, make_default_props(widget_type)))
            layout.append(layout_engine.place_new_entry(widget_id, widget_type, layout, types))
            types[widget_id] = widget_type
        return tuple(widgets), tuple(layout)

    def _commit(
        self,
        settings: Optional[Settings] = None,
        widgets: Optional[Tuple[WidgetInstance, ...]] = None,
        layout: Optional[Tuple[LayoutEntry, ...]] = None,
    ) -> None:
        """Swap in new state, then notify every subscriber with the new snapshot."""
        if settings is not None:
            self._settings = settings
        if widgets is not None:
            self._widgets = widgets
        if layout is not None:
            self._layout = layout
        snapshot = self.snapshot()
        for callback in list(self._subscribers):
            try:
                callback(snapshot)
            except Exception:
                logger.exception("Config subscriber %r failed", callback)


# Singleton instance
_store = None


def get_config_store() -> ConfigStore:
    """Get or create singleton ConfigStore instance"""
    global _store
    if _store is None:
        _store = ConfigStore()
    return _store
