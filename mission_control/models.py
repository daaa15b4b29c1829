"""
Models: Widget, layout, settings and command-form types for the dashboard.

Every type here is an immutable value. The ConfigStore swaps whole values in
and out, so a snapshot handed to a subscriber never changes underneath it.

Dict conversion uses the same keys as screen files written by the web
dashboard ("TelemetryBox" / "CommandBox" / "ChartBox" component types,
react-grid-layout style "i"/"x"/"y"/"w"/"h"/"static" layout entries).
"""

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional, Tuple, Union

from mission_control.errors import ShapeError


class WidgetType(str, Enum):
    READOUT = "TelemetryBox"
    CHART = "ChartBox"
    COMMAND_ISSUER = "CommandBox"


class TemperatureUnit(str, Enum):
    FAHRENHEIT = "F"
    CELSIUS = "C"


class TelemetrySignal(str, Enum):
    TEMPERATURE = "temp"
    PRESSURE = "pressure"
    VOLTAGE = "voltage"


# Human-readable names for palette buttons and panel titles
WIDGET_TYPE_NAMES = {
    WidgetType.READOUT: "Readout",
    WidgetType.CHART: "Chart",
    WidgetType.COMMAND_ISSUER: "Command Issuer",
}

SIGNAL_NAMES = {
    TelemetrySignal.TEMPERATURE: "Temperature",
    TelemetrySignal.PRESSURE: "Pressure",
    TelemetrySignal.VOLTAGE: "Voltage",
}

UNIT_SYMBOLS = {
    TemperatureUnit.FAHRENHEIT: "°F",
    TemperatureUnit.CELSIUS: "°C",
}


# ============================================================
# Settings
# ============================================================

@dataclass(frozen=True)
class Settings:
    """How raw telemetry is interpreted and displayed.

    Thresholds are stored in ``unit``. The calibration offset is always in
    device (raw) units and never converts.
    """

    stale_timeout_seconds: float = 5.0
    temp_threshold_low: float = 32.0
    temp_threshold_high: float = 75.0
    time_range_minutes: float = 30.0
    unit: TemperatureUnit = TemperatureUnit.FAHRENHEIT
    calibration_offset: float = 0.0
    selected_signals: FrozenSet[TelemetrySignal] = frozenset({TelemetrySignal.TEMPERATURE})

    @classmethod
    def field_names(cls) -> Tuple[str, ...]:
        return tuple(f.name for f in fields(cls))


DEFAULT_SETTINGS = Settings()


# ============================================================
# Field readers for screen files
# ============================================================

def _read_str(data: Dict[str, Any], key: str, default: str = "") -> str:
    """Read a text field; null counts as absent, any other non-string is a broken file."""
    value = data.get(key)
    if value is None:
        return default
    if not isinstance(value, str):
        raise ShapeError(f"'{key}' must be a string, got {type(value).__name__}")
    return value


def _read_bool(data: Dict[str, Any], key: str, default: bool = False) -> bool:
    value = data.get(key)
    if value is None:
        return default
    if not isinstance(value, bool):
        raise ShapeError(f"'{key}' must be true or false, got {value!r}")
    return value


# ============================================================
# Command form
# ============================================================

@dataclass(frozen=True)
class ValidationRule:
    required: bool = False
    pattern: Optional[str] = None
    error_message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "required": self.required,
            "pattern": self.pattern or "",
            "errorMessage": self.error_message or "",
        }

    @classmethod
    def from_dict(cls, data: Any) -> "ValidationRule":
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise ShapeError("validation rule must be an object")
        return cls(
            required=_read_bool(data, "required"),
            pattern=_read_str(data, "pattern") or None,
            error_message=_read_str(data, "errorMessage") or None,
        )


@dataclass(frozen=True)
class CommandParameter:
    key: str = ""
    value: str = ""
    rule: ValidationRule = field(default_factory=ValidationRule)

    def to_dict(self) -> Dict[str, Any]:
        return {"key": self.key, "value": self.value, "validation": self.rule.to_dict()}

    @classmethod
    def from_dict(cls, data: Any) -> "CommandParameter":
        if not isinstance(data, dict):
            raise ShapeError("command parameter must be an object")
        return cls(
            key=_read_str(data, "key"),
            value=_read_str(data, "value"),
            rule=ValidationRule.from_dict(data.get("validation")),
        )


# ============================================================
# Widget props -- one explicit variant per widget type
# ============================================================

@dataclass(frozen=True)
class ReadoutProps:
    title: str = "Telemetry"

    def to_dict(self) -> Dict[str, Any]:
        return {"title": self.title}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReadoutProps":
        return cls(title=_read_str(data, "title", cls.title))


@dataclass(frozen=True)
class ChartProps:
    title: str = "Historical Telemetry"

    def to_dict(self) -> Dict[str, Any]:
        return {"title": self.title}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChartProps":
        return cls(title=_read_str(data, "title", cls.title))


@dataclass(frozen=True)
class CommandIssuerProps:
    """Persisted state of a command issuer form (status text is not persisted)."""

    command: str = ""
    parameters: Tuple[CommandParameter, ...] = ()
    is_hazardous: bool = False
    confirmation_required: bool = False
    two_factor_code: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "command": self.command,
            "params": [p.to_dict() for p in self.parameters],
            "isHazardous": self.is_hazardous,
            "confirmationRequired": self.confirmation_required,
            "twoFACode": self.two_factor_code,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CommandIssuerProps":
        params = data.get("params", [])
        if not isinstance(params, list):
            raise ShapeError("command issuer 'params' must be a list")
        return cls(
            command=_read_str(data, "command"),
            parameters=tuple(CommandParameter.from_dict(p) for p in params),
            is_hazardous=_read_bool(data, "isHazardous"),
            confirmation_required=_read_bool(data, "confirmationRequired"),
            two_factor_code=_read_str(data, "twoFACode"),
        )


WidgetProps = Union[ReadoutProps, ChartProps, CommandIssuerProps]

PROPS_BY_TYPE = {
    WidgetType.READOUT: ReadoutProps,
    WidgetType.CHART: ChartProps,
    WidgetType.COMMAND_ISSUER: CommandIssuerProps,
}


def make_default_props(widget_type: WidgetType) -> WidgetProps:
    """Create the default props variant for a widget type."""
    return PROPS_BY_TYPE[widget_type]()


# ============================================================
# Widgets and layout
# ============================================================

@dataclass(frozen=True)
class WidgetInstance:
    id: str
    type: WidgetType
    props: WidgetProps

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "type": self.type.value, "props": self.props.to_dict()}

    @classmethod
    def from_dict(cls, data: Any) -> "WidgetInstance":
        if not isinstance(data, dict):
            raise ShapeError("component must be an object")
        widget_id = data.get("id")
        if not isinstance(widget_id, str) or not widget_id:
            raise ShapeError("component is missing a string 'id'")
        try:
            widget_type = WidgetType(data.get("type"))
        except ValueError:
            raise ShapeError(f"component {widget_id}: unknown type {data.get('type')!r}")
        props = data.get("props") or {}
        if not isinstance(props, dict):
            raise ShapeError(f"component {widget_id}: 'props' must be an object")
        return cls(widget_id, widget_type, PROPS_BY_TYPE[widget_type].from_dict(props))


@dataclass(frozen=True)
class LayoutEntry:
    """Position and size of one widget, in grid units."""

    widget_id: str
    x: int
    y: int
    width: int
    height: int
    locked: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "i": self.widget_id,
            "x": self.x,
            "y": self.y,
            "w": self.width,
            "h": self.height,
            "static": self.locked,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "LayoutEntry":
        if not isinstance(data, dict):
            raise ShapeError("layout entry must be an object")
        widget_id = data.get("i")
        if not isinstance(widget_id, str) or not widget_id:
            raise ShapeError("layout entry is missing a string 'i'")
        values = []
        for key in ("x", "y", "w", "h"):
            v = data.get(key)
            # bool is an int subclass; a grid coordinate of True is a broken file
            if isinstance(v, bool) or not isinstance(v, (int, float)):
                raise ShapeError(f"layout entry {widget_id}: '{key}' must be an integer")
            if isinstance(v, float) and not v.is_integer():
                raise ShapeError(f"layout entry {widget_id}: '{key}' must be an integer")
            values.append(int(v))
        x, y, w, h = values
        if x < 0 or y < 0 or w <= 0 or h <= 0:
            raise ShapeError(f"layout entry {widget_id}: geometry ({x},{y} {w}x{h}) out of range")
        return cls(widget_id, x, y, w, h, _read_bool(data, "static"))


@dataclass(frozen=True)
class ConfigSnapshot:
    """Full screen configuration at one instant.

    ``settings`` is None for snapshots read back from a screen file, which
    carries only widgets and layout; applying such a snapshot keeps the
    current settings.
    """

    settings: Optional[Settings]
    widgets: Tuple[WidgetInstance, ...]
    layout: Tuple[LayoutEntry, ...]

    def widget_ids(self) -> Tuple[str, ...]:
        return tuple(w.id for w in self.widgets)

    def get_widget(self, widget_id: str) -> Optional[WidgetInstance]:
        for w in self.widgets:
            if w.id == widget_id:
                return w
        return None

    def layout_for(self, widget_id: str) -> Optional[LayoutEntry]:
        for entry in self.layout:
            if entry.widget_id == widget_id:
                return entry
        return None
