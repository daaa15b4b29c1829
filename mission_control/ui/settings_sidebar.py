"""
Settings Sidebar: Widget palette, telemetry settings and screen file actions.
"""

import logging

from PySide6.QtWidgets import (
    QCheckBox,
    QFormLayout,
    QGroupBox,
    QLabel,
    QMessageBox,
    QPushButton,
    QScrollArea,
    QVBoxLayout,
    QWidget,
)
from PySide6.QtCore import Signal

from mission_control.errors import ValidationError
from mission_control.models import (
    SIGNAL_NAMES,
    UNIT_SYMBOLS,
    WIDGET_TYPE_NAMES,
    TelemetrySignal,
    TemperatureUnit,
    WidgetType,
)
from mission_control.ui.no_scroll_inputs import NoScrollComboBox, NoScrollDoubleSpinBox

logger = logging.getLogger(__name__)

SIDEBAR_STYLE = """
    QScrollArea { background: #0d1117; border: none; }
    QWidget#sidebar { background: #0d1117; }
    QGroupBox {
        font-size: 13px;
        font-weight: bold;
        color: #FFD700;
        border: 1px solid #30363d;
        border-radius: 6px;
        margin-top: 14px;
        padding: 12px 8px 8px 8px;
    }
    QGroupBox::title {
        subcontrol-origin: margin;
        subcontrol-position: top left;
        left: 10px;
        padding: 0 6px;
        background: #0d1117;
        color: #FFD700;
    }
    QLabel { color: #c9d1d9; font-size: 12px; }
    QCheckBox { color: #c9d1d9; font-size: 12px; }
    QDoubleSpinBox, QComboBox {
        background: #161b22; color: #c9d1d9; border: 1px solid #30363d;
        border-radius: 4px; padding: 3px 6px; font-size: 12px;
    }
    QPushButton {
        background: #21262d; color: #c9d1d9; border: 1px solid #30363d;
        border-radius: 4px; padding: 6px 10px; font-size: 12px;
    }
    QPushButton:hover { background: #30363d; }
"""


class SettingsSidebar(QScrollArea):
    """Left sidebar bound to the config store's settings."""

    save_requested = Signal()
    load_requested = Signal()
    reset_requested = Signal()

    def __init__(self, store, parent=None):
        super().__init__(parent)
        self.store = store
        self._updating = False

        self.setWidgetResizable(True)
        self.setMinimumWidth(240)
        self.setMaximumWidth(300)
        self.setStyleSheet(SIDEBAR_STYLE)

        container = QWidget()
        container.setObjectName("sidebar")
        layout = QVBoxLayout(container)
        layout.setContentsMargins(10, 8, 10, 8)
        layout.setSpacing(6)

        # 1. Palette
        add_group = QGroupBox("Add Component")
        add_layout = QVBoxLayout()
        for widget_type in WidgetType:
            btn = QPushButton(WIDGET_TYPE_NAMES[widget_type])
            btn.clicked.connect(lambda checked=False, t=widget_type: self.store.add_widget(t))
            add_layout.addWidget(btn)
        add_group.setLayout(add_layout)
        layout.addWidget(add_group)

        # 2. Telemetry settings
        settings_group = QGroupBox("Telemetry Settings")
        form = QFormLayout()

        self.stale_spin = NoScrollDoubleSpinBox(0.1, 3600.0, decimals=1, step=1.0)
        self.stale_spin.valueChanged.connect(
            lambda v: self._update({"stale_timeout_seconds": v})
        )
        form.addRow("Stale Timeout (s):", self.stale_spin)

        self.low_label = QLabel()
        self.low_spin = NoScrollDoubleSpinBox(-1000.0, 1000.0)
        self.low_spin.valueChanged.connect(lambda v: self._update({"temp_threshold_low": v}))
        form.addRow(self.low_label, self.low_spin)

        self.high_label = QLabel()
        self.high_spin = NoScrollDoubleSpinBox(-1000.0, 1000.0)
        self.high_spin.valueChanged.connect(lambda v: self._update({"temp_threshold_high": v}))
        form.addRow(self.high_label, self.high_spin)

        self.range_spin = NoScrollDoubleSpinBox(1.0, 1440.0, decimals=0, step=5.0)
        self.range_spin.valueChanged.connect(lambda v: self._update({"time_range_minutes": v}))
        form.addRow("Time Range (min):", self.range_spin)

        self.unit_combo = NoScrollComboBox()
        self.unit_combo.addItem("Fahrenheit (°F)", TemperatureUnit.FAHRENHEIT)
        self.unit_combo.addItem("Celsius (°C)", TemperatureUnit.CELSIUS)
        self.unit_combo.currentIndexChanged.connect(
            lambda i: self._update({"unit": self.unit_combo.itemData(i)})
        )
        form.addRow("Unit:", self.unit_combo)

        self.calibration_spin = NoScrollDoubleSpinBox(-500.0, 500.0, step=0.5)
        self.calibration_spin.valueChanged.connect(
            lambda v: self._update({"calibration_offset": v})
        )
        form.addRow("Calibration Offset:", self.calibration_spin)

        settings_group.setLayout(form)
        layout.addWidget(settings_group)

        # 3. Signals
        signals_group = QGroupBox("Telemetry Signals")
        signals_layout = QVBoxLayout()
        self.signal_checks = {}
        for signal in TelemetrySignal:
            check = QCheckBox(SIGNAL_NAMES[signal])
            check.clicked.connect(lambda checked=False, s=signal: self._toggle(s))
            signals_layout.addWidget(check)
            self.signal_checks[signal] = check
        signals_group.setLayout(signals_layout)
        layout.addWidget(signals_group)

        layout.addStretch()

        # 4. Screen file actions
        save_btn = QPushButton("Save Layout")
        save_btn.setStyleSheet("background: #1f6feb; color: white;")
        save_btn.clicked.connect(self.save_requested)
        layout.addWidget(save_btn)
        load_btn = QPushButton("Load Layout")
        load_btn.setStyleSheet("background: #238636; color: white;")
        load_btn.clicked.connect(self.load_requested)
        layout.addWidget(load_btn)
        reset_btn = QPushButton("Reset Settings")
        reset_btn.setStyleSheet("background: #da3633; color: white;")
        reset_btn.clicked.connect(self.reset_requested)
        layout.addWidget(reset_btn)

        self.setWidget(container)
        self.load_from_settings(self.store.settings)

    def load_from_settings(self, settings):
        """Show the given settings without writing them back."""
        self._updating = True
        try:
            symbol = UNIT_SYMBOLS[settings.unit]
            self.low_label.setText(f"Low Threshold ({symbol}):")
            self.high_label.setText(f"High Threshold ({symbol}):")
            self.stale_spin.setValue(settings.stale_timeout_seconds)
            self.low_spin.setValue(settings.temp_threshold_low)
            self.high_spin.setValue(settings.temp_threshold_high)
            self.range_spin.setValue(settings.time_range_minutes)
            self.unit_combo.setCurrentIndex(self.unit_combo.findData(settings.unit))
            self.calibration_spin.setValue(settings.calibration_offset)
            for signal, check in self.signal_checks.items():
                check.setChecked(signal in settings.selected_signals)
        finally:
            self._updating = False

    def _update(self, partial):
        if self._updating:
            return
        try:
            self.store.update_settings(partial)
        except ValidationError as e:
            QMessageBox.warning(self, "Invalid Setting", e.message)
            self.load_from_settings(self.store.settings)

    def _toggle(self, signal):
        if self._updating:
            return
        self.store.toggle_signal(signal)
