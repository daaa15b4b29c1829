"""
Widget Panels: ReadoutPanel, ChartPanel and CommandPanel shown inside canvas panels.

Panels only read from the config store and write through its operations;
every repaint is driven by a store snapshot or by fresh telemetry.
"""

import logging

from PySide6.QtWidgets import (
    QAbstractItemView,
    QCheckBox,
    QHBoxLayout,
    QHeaderView,
    QLabel,
    QLineEdit,
    QMessageBox,
    QPushButton,
    QTableWidget,
    QTableWidgetItem,
    QVBoxLayout,
    QWidget,
)
from PySide6.QtCore import Qt, QDateTime
from PySide6.QtGui import QColor, QPainter, QPen
from PySide6.QtCharts import QChart, QChartView, QDateTimeAxis, QLineSeries, QValueAxis

from mission_control.command_validator import CommandRequest, CommandState, CommandWorkflow
from mission_control.models import (
    SIGNAL_NAMES,
    UNIT_SYMBOLS,
    CommandParameter,
    TelemetrySignal,
    ValidationRule,
)
from mission_control.telemetry import (
    ReadingLevel,
    build_chart_series,
    classify_temperature,
    is_stale,
    parse_timestamp,
    to_display_temperature,
)

logger = logging.getLogger(__name__)

PANEL_STYLE = """
    QWidget { background: #161b22; color: #c9d1d9; font-size: 12px; }
    QLineEdit, QTableWidget {
        background: #0d1117; color: #c9d1d9; border: 1px solid #30363d;
        border-radius: 4px; padding: 2px 4px;
    }
    QPushButton {
        background: #21262d; color: #c9d1d9; border: 1px solid #30363d;
        border-radius: 4px; padding: 4px 10px;
    }
    QPushButton:hover { background: #30363d; }
    QPushButton:disabled { color: #555; }
"""

LEVEL_COLORS = {
    ReadingLevel.NORMAL: "#c9d1d9",
    ReadingLevel.HIGH: "#f85149",
    ReadingLevel.LOW: "#58a6ff",
}

SIGNAL_COLORS = {
    TelemetrySignal.TEMPERATURE: "#8884d8",
    TelemetrySignal.PRESSURE: "#82ca9d",
    TelemetrySignal.VOLTAGE: "#ff7300",
}


# ============================================================
# Readout -- latest pushed sample
# ============================================================

class ReadoutPanel(QWidget):
    """Latest temperature and status with a live/stale indicator."""

    def __init__(self, parent=None):
        super().__init__(parent)
        self.setStyleSheet(PANEL_STYLE)
        layout = QVBoxLayout(self)
        layout.setContentsMargins(10, 6, 10, 6)

        self.temp_label = QLabel("Temp: --")
        self.temp_label.setStyleSheet("font-size: 16px; font-weight: bold;")
        layout.addWidget(self.temp_label)
        self.status_label = QLabel("Status: --")
        layout.addWidget(self.status_label)
        self.live_label = QLabel("Stale")
        layout.addWidget(self.live_label)
        layout.addStretch()

    def refresh(self, sample, settings, now):
        """Repaint from the latest sample (or None) and the current settings."""
        if sample is None:
            self.temp_label.setText("Temp: --")
            self.temp_label.setStyleSheet("font-size: 16px; font-weight: bold;")
            self.status_label.setText("Status: --")
        else:
            display = to_display_temperature(sample.temp, settings)
            level = classify_temperature(display, settings)
            self.temp_label.setText(f"Temp: {display:.2f}{UNIT_SYMBOLS[settings.unit]}")
            self.temp_label.setStyleSheet(
                f"font-size: 16px; font-weight: bold; color: {LEVEL_COLORS[level]};"
            )
            self.status_label.setText(f"Status: {sample.status}")

        stale = is_stale(sample.time if sample else None, settings.stale_timeout_seconds, now)
        self.live_label.setText("Stale" if stale else "Live")
        self.live_label.setStyleSheet(f"color: {'#f85149' if stale else '#3fb950'}; font-weight: bold;")


# ============================================================
# Chart -- polled history
# ============================================================

class ChartPanel(QWidget):
    """Line chart of the selected signals over the configured time range."""

    def __init__(self, parent=None):
        super().__init__(parent)
        self.setStyleSheet(PANEL_STYLE)
        self._samples = []

        self.chart = QChart()
        self.chart.setTheme(QChart.ChartThemeDark)
        self.chart.setBackgroundRoundness(0)
        self.chart.legend().setAlignment(Qt.AlignBottom)

        self.x_axis = QDateTimeAxis()
        self.x_axis.setFormat("MM/dd/yyyy hh:mm:ss")
        self.x_axis.setTickCount(4)
        self.y_axis = QValueAxis()
        self.chart.addAxis(self.x_axis, Qt.AlignBottom)
        self.chart.addAxis(self.y_axis, Qt.AlignLeft)

        view = QChartView(self.chart)
        view.setRenderHint(QPainter.Antialiasing)
        layout = QVBoxLayout(self)
        layout.setContentsMargins(0, 0, 0, 0)
        layout.addWidget(view)

    def set_samples(self, samples):
        self._samples = list(samples)

    def refresh(self, settings, now):
        rows = build_chart_series(self._samples, settings, now)
        self.chart.removeAllSeries()

        xs = []
        ys = []
        for signal in TelemetrySignal:
            if signal not in settings.selected_signals:
                continue
            series = QLineSeries()
            series.setName(SIGNAL_NAMES[signal])
            series.setPen(QPen(QColor(SIGNAL_COLORS[signal]), 2))
            for row in rows:
                ms = parse_timestamp(row["time"]).timestamp() * 1000
                series.append(ms, row[signal.value])
                xs.append(ms)
                ys.append(row[signal.value])
            self._add_series(series)

        if xs:
            start, end = min(xs), max(xs)
        else:
            end = now.timestamp() * 1000
            start = end - settings.time_range_minutes * 60000
        if TelemetrySignal.TEMPERATURE in settings.selected_signals:
            # Threshold lines are in display units, same as the temperature series
            self._add_limit("High Limit", settings.temp_threshold_high, start, end, "#f85149")
            self._add_limit("Low Limit", settings.temp_threshold_low, start, end, "#58a6ff")
            ys.extend([settings.temp_threshold_high, settings.temp_threshold_low])

        self.x_axis.setRange(_datetime_from_ms(start), _datetime_from_ms(max(end, start + 1000)))
        if ys:
            low, high = min(ys), max(ys)
            pad = max(1.0, (high - low) * 0.1)
            self.y_axis.setRange(low - pad, high + pad)

    def _add_limit(self, name, value, start, end, color):
        line = QLineSeries()
        line.setName(name)
        line.setPen(QPen(QColor(color), 1, Qt.DashLine))
        line.append(start, value)
        line.append(end, value)
        self._add_series(line)

    def _add_series(self, series):
        self.chart.addSeries(series)
        series.attachAxis(self.x_axis)
        series.attachAxis(self.y_axis)


def _datetime_from_ms(ms):
    return QDateTime.fromMSecsSinceEpoch(int(ms))


# ============================================================
# Command issuer -- form bound to CommandIssuerProps
# ============================================================

PARAM_COLUMNS = ["Key", "Value", "Required", "Pattern", "Error Message"]
COL_KEY, COL_VALUE, COL_REQUIRED, COL_PATTERN, COL_ERROR = range(5)


class CommandPanel(QWidget):
    """Command form with parameter rules, hazardous 2FA gate and confirmation."""

    def __init__(self, widget_id, store, scheduler, transport=None, parent=None):
        super().__init__(parent)
        self.widget_id = widget_id
        self.store = store
        self._updating = False
        self.setStyleSheet(PANEL_STYLE)

        self.workflow = CommandWorkflow(scheduler, transport)
        self.workflow.changed_callback = self._on_workflow_changed

        layout = QVBoxLayout(self)
        layout.setContentsMargins(10, 6, 10, 6)
        layout.setSpacing(4)

        cmd_row = QHBoxLayout()
        cmd_row.addWidget(QLabel("Command:"))
        self.command_edit = QLineEdit()
        self.command_edit.setPlaceholderText("e.g. SET_HEATER")
        self.command_edit.textEdited.connect(
            lambda text: self._write_props(command=text)
        )
        cmd_row.addWidget(self.command_edit)
        layout.addLayout(cmd_row)

        layout.addWidget(QLabel("Parameters:"))
        self.param_table = QTableWidget(0, len(PARAM_COLUMNS))
        self.param_table.setHorizontalHeaderLabels(PARAM_COLUMNS)
        self.param_table.horizontalHeader().setSectionResizeMode(QHeaderView.Stretch)
        self.param_table.verticalHeader().setVisible(False)
        self.param_table.setSelectionBehavior(QAbstractItemView.SelectRows)
        self.param_table.itemChanged.connect(self._on_param_item_changed)
        layout.addWidget(self.param_table, 1)

        param_btns = QHBoxLayout()
        add_btn = QPushButton("+ Add Parameter")
        add_btn.clicked.connect(self._on_add_param)
        param_btns.addWidget(add_btn)
        remove_btn = QPushButton("Remove Selected")
        remove_btn.clicked.connect(self._on_remove_param)
        param_btns.addWidget(remove_btn)
        param_btns.addStretch()
        layout.addLayout(param_btns)

        self.hazardous_check = QCheckBox("Hazardous (requires 2FA)")
        self.hazardous_check.clicked.connect(
            lambda checked: self._write_props(is_hazardous=checked)
        )
        layout.addWidget(self.hazardous_check)

        self.two_factor_edit = QLineEdit()
        self.two_factor_edit.setPlaceholderText("6-digit 2FA code")
        self.two_factor_edit.setMaxLength(6)
        self.two_factor_edit.textEdited.connect(
            lambda text: self._write_props(two_factor_code=text)
        )
        layout.addWidget(self.two_factor_edit)

        self.confirm_check = QCheckBox("Require confirmation")
        self.confirm_check.clicked.connect(
            lambda checked: self._write_props(confirmation_required=checked)
        )
        layout.addWidget(self.confirm_check)

        self.send_btn = QPushButton("Send Command")
        self.send_btn.setStyleSheet("background: #238636; color: white; font-weight: bold;")
        self.send_btn.clicked.connect(self._on_send)
        layout.addWidget(self.send_btn)

        self.status_label = QLabel("")
        self.status_label.setWordWrap(True)
        layout.addWidget(self.status_label)

    # -- Store -> form --

    def set_props(self, props):
        """Show the widget's stored props without echoing edits back to the store."""
        self._updating = True
        try:
            if self.command_edit.text() != props.command:
                self.command_edit.setText(props.command)
            self.hazardous_check.setChecked(props.is_hazardous)
            self.two_factor_edit.setVisible(props.is_hazardous)
            if self.two_factor_edit.text() != props.two_factor_code:
                self.two_factor_edit.setText(props.two_factor_code)
            self.confirm_check.setChecked(props.confirmation_required)
            if self._collect_parameters() != tuple(props.parameters):
                self._fill_param_table(props.parameters)
        finally:
            self._updating = False

    def _fill_param_table(self, parameters):
        self.param_table.setRowCount(0)
        for param in parameters:
            self._append_param_row(param)

    def _append_param_row(self, param):
        row = self.param_table.rowCount()
        self.param_table.insertRow(row)
        self.param_table.setItem(row, COL_KEY, QTableWidgetItem(param.key))
        self.param_table.setItem(row, COL_VALUE, QTableWidgetItem(param.value))
        required = QTableWidgetItem()
        required.setFlags(Qt.ItemIsUserCheckable | Qt.ItemIsEnabled | Qt.ItemIsSelectable)
        required.setCheckState(Qt.Checked if param.rule.required else Qt.Unchecked)
        self.param_table.setItem(row, COL_REQUIRED, required)
        self.param_table.setItem(row, COL_PATTERN, QTableWidgetItem(param.rule.pattern or ""))
        self.param_table.setItem(row, COL_ERROR, QTableWidgetItem(param.rule.error_message or ""))

    # -- Form -> store --

    def _write_props(self, **changes):
        if self._updating:
            return
        self.store.update_widget_props(self.widget_id, **changes)

    def _collect_parameters(self):
        params = []
        for row in range(self.param_table.rowCount()):
            def text(col):
                item = self.param_table.item(row, col)
                return item.text() if item else ""
            required = self.param_table.item(row, COL_REQUIRED)
            rule = ValidationRule(
                required=bool(required and required.checkState() == Qt.Checked),
                pattern=text(COL_PATTERN) or None,
                error_message=text(COL_ERROR) or None,
            )
            params.append(CommandParameter(text(COL_KEY), text(COL_VALUE), rule))
        return tuple(params)

    def _on_param_item_changed(self, item):
        if self._updating:
            return
        self._write_props(parameters=self._collect_parameters())

    def _on_add_param(self):
        self._updating = True
        try:
            self._append_param_row(CommandParameter("", "", ValidationRule()))
        finally:
            self._updating = False
        self._write_props(parameters=self._collect_parameters())

    def _on_remove_param(self):
        rows = sorted({index.row() for index in self.param_table.selectedIndexes()}, reverse=True)
        if not rows:
            return
        self._updating = True
        try:
            for row in rows:
                self.param_table.removeRow(row)
        finally:
            self._updating = False
        self._write_props(parameters=self._collect_parameters())

    # -- Sending --

    def _on_send(self):
        widget = self.store.get_widget(self.widget_id)
        if widget is None:
            return
        state = self.workflow.submit(CommandRequest.from_props(widget.props))
        if state == CommandState.VALID_AWAITING_CONFIRMATION:
            reply = QMessageBox.question(
                self,
                "Confirm Command",
                f"Are you sure you want to send '{widget.props.command.strip()}'?",
                QMessageBox.Yes | QMessageBox.No,
                QMessageBox.No,
            )
            if reply == QMessageBox.Yes:
                self.workflow.confirm()
            else:
                self.workflow.cancel()

    def _on_workflow_changed(self, request):
        self.send_btn.setEnabled(request.state != CommandState.SENDING)
        message = request.status_message or ""
        if CommandState.INVALID in request.history or CommandState.FAILED in request.history:
            color = "#f85149"
        elif request.state == CommandState.SENT:
            color = "#3fb950"
        else:
            color = "#c9d1d9"
        self.status_label.setStyleSheet(f"color: {color};")
        self.status_label.setText(message)

    def teardown(self):
        self.workflow.teardown()
