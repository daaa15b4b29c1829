"""
Main Window: Settings sidebar, grid canvas and the telemetry sources feeding its panels.
"""

import logging
from dataclasses import replace
from pathlib import Path

from PySide6.QtWidgets import (
    QFileDialog,
    QHBoxLayout,
    QInputDialog,
    QMainWindow,
    QMessageBox,
    QWidget,
)
from PySide6.QtCore import QTimer
from PySide6.QtGui import QKeySequence

from mission_control.config_store import DEFAULT_LAYOUT_PATH
from mission_control.errors import ParseError, ShapeError, TransportError
from mission_control.models import WIDGET_TYPE_NAMES, WidgetType
from mission_control.persistence import (
    load_file,
    load_stored_dashboard,
    save_file,
    screen_document,
)
from mission_control.telemetry import utc_now
from mission_control.ui.canvas_scene import DashboardScene, DashboardView
from mission_control.ui.qt_scheduler import QtScheduler
from mission_control.ui.settings_sidebar import SettingsSidebar
from mission_control.ui.telemetry_sources import (
    HTTPCommandTransport,
    TelemetryPoller,
    TelemetryStream,
)
from mission_control.ui.widget_panels import ChartPanel, CommandPanel, ReadoutPanel

logger = logging.getLogger(__name__)

READOUT_REFRESH_MS = 1000


def _panel_title(widget):
    return getattr(widget.props, "title", WIDGET_TYPE_NAMES[widget.type])


# ============================================================
# Dashboard Main Window
# ============================================================

class DashboardWindow(QMainWindow):
    """Main dashboard window. Every panel is rebuilt from config store snapshots."""

    def __init__(self, store, client, stream_url, layout_path=None, parent=None):
        super().__init__(parent)
        self.store = store
        self.client = client
        self._current_file_path = str(layout_path) if layout_path else None
        self.setWindowTitle("Mission Control Dashboard")
        self.setMinimumSize(1100, 700)

        self.scheduler = QtScheduler(self)
        self.transport = HTTPCommandTransport(client, self)
        self.poller = TelemetryPoller(client, parent=self)
        self.poller.samples_received.connect(self._on_samples_received)
        self.stream = TelemetryStream(stream_url, self)
        self.stream.sample_received.connect(lambda sample: self._refresh_readouts())
        self._polling = False
        self._streaming = False
        self._latest_samples = []

        # Staleness changes with wall-clock time, not only with new samples
        self._readout_timer = QTimer(self)
        self._readout_timer.setInterval(READOUT_REFRESH_MS)
        self._readout_timer.timeout.connect(self._refresh_readouts)
        self._readout_timer.start()

        central_widget = QWidget()
        main_layout = QHBoxLayout(central_widget)
        main_layout.setContentsMargins(4, 4, 4, 4)

        self.sidebar = SettingsSidebar(self.store)
        self.sidebar.save_requested.connect(self._on_file_save)
        self.sidebar.load_requested.connect(self._on_file_open)
        self.sidebar.reset_requested.connect(self._on_reset)
        main_layout.addWidget(self.sidebar)

        self.canvas_scene = DashboardScene()
        self.canvas_view = DashboardView(self.canvas_scene)
        self.canvas_scene.panel_geometry_changed.connect(self._on_panel_geometry_changed)
        self.canvas_scene.close_requested.connect(self.store.remove_widget)
        self.canvas_scene.lock_toggled.connect(self.store.set_widget_locked)
        main_layout.addWidget(self.canvas_view, 1)

        self.setCentralWidget(central_widget)
        self._create_menu_bar()

        self._unsubscribe = self.store.subscribe(self._on_store_changed)
        self._auto_load_layout()
        self._on_store_changed(self.store.snapshot())
        self.statusBar().showMessage("Ready")

    def _create_menu_bar(self):
        menubar = self.menuBar()

        file_menu = menubar.addMenu("File")
        open_action = file_menu.addAction("Open Layout...")
        open_action.setShortcut(QKeySequence("Ctrl+O"))
        open_action.triggered.connect(self._on_file_open)
        save_action = file_menu.addAction("Save Layout")
        save_action.setShortcut(QKeySequence("Ctrl+S"))
        save_action.triggered.connect(self._on_file_save)
        save_as_action = file_menu.addAction("Save Layout As...")
        save_as_action.setShortcut(QKeySequence("Ctrl+Shift+S"))
        save_as_action.triggered.connect(self._on_file_save_as)
        file_menu.addSeparator()
        upload_action = file_menu.addAction("Store on Backend...")
        upload_action.triggered.connect(self._on_store_on_backend)
        download_action = file_menu.addAction("Open from Backend...")
        download_action.triggered.connect(self._on_open_from_backend)
        file_menu.addSeparator()
        reset_action = file_menu.addAction("Reset Settings")
        reset_action.triggered.connect(self._on_reset)
        file_menu.addSeparator()
        exit_action = file_menu.addAction("Exit")
        exit_action.triggered.connect(self.close)

        widgets_menu = menubar.addMenu("Widgets")
        for widget_type in WidgetType:
            action = widgets_menu.addAction(f"Add {WIDGET_TYPE_NAMES[widget_type]}")
            action.triggered.connect(lambda checked=False, t=widget_type: self.store.add_widget(t))

    # -- Store -> view --

    def _on_store_changed(self, snapshot):
        live = {w.id for w in snapshot.widgets}
        for widget_id in self.canvas_scene.panel_ids():
            if widget_id not in live:
                content = self.canvas_scene.remove_panel(widget_id)
                if isinstance(content, CommandPanel):
                    content.teardown()

        for widget in snapshot.widgets:
            entry = snapshot.layout_for(widget.id)
            item = self.canvas_scene.panel(widget.id)
            if item is None:
                item = self.canvas_scene.add_panel(
                    widget.id, _panel_title(widget), self._make_panel(widget), entry
                )
            else:
                self.canvas_scene.apply_entry(entry)
                if item.title != _panel_title(widget):
                    item.title = _panel_title(widget)
                    item.update()
            if isinstance(item.content, CommandPanel):
                item.content.set_props(widget.props)

        self.sidebar.load_from_settings(snapshot.settings)
        self._update_sources(snapshot)
        self._refresh_readouts()
        self._refresh_charts()

    def _make_panel(self, widget):
        if widget.type == WidgetType.READOUT:
            return ReadoutPanel()
        if widget.type == WidgetType.CHART:
            panel = ChartPanel()
            panel.set_samples(self._latest_samples)
            return panel
        return CommandPanel(widget.id, self.store, self.scheduler, self.transport)

    def _panels_of(self, panel_class):
        for widget_id in self.canvas_scene.panel_ids():
            content = self.canvas_scene.panel(widget_id).content
            if isinstance(content, panel_class):
                yield content

    def _update_sources(self, snapshot):
        """Run the poll while a chart is shown and the stream while a readout is shown."""
        types = {w.type for w in snapshot.widgets}
        want_poll = WidgetType.CHART in types
        want_stream = WidgetType.READOUT in types
        if want_poll and not self._polling:
            self.poller.start()
        elif not want_poll and self._polling:
            self.poller.stop()
        self._polling = want_poll
        if want_stream and not self._streaming:
            self.stream.open()
        elif not want_stream and self._streaming:
            self.stream.close()
        self._streaming = want_stream

    def _refresh_readouts(self):
        sample = self.stream.slot.peek()
        settings = self.store.settings
        now = utc_now()
        for panel in self._panels_of(ReadoutPanel):
            panel.refresh(sample, settings, now)

    def _refresh_charts(self):
        settings = self.store.settings
        now = utc_now()
        for panel in self._panels_of(ChartPanel):
            panel.refresh(settings, now)

    def _on_samples_received(self, samples):
        self._latest_samples = samples
        for panel in self._panels_of(ChartPanel):
            panel.set_samples(samples)
        self._refresh_charts()

    # -- View -> store --

    def _on_panel_geometry_changed(self, widget_id, x, y, w, h):
        entry = self.store.snapshot().layout_for(widget_id)
        if entry is None:
            return
        self.store.apply_layout_change([replace(entry, x=x, y=y, width=w, height=h)])

    # -- File handlers --

    def _auto_load_layout(self):
        """Load the layout given on the command line, else the user's default file."""
        path = self._current_file_path
        if path is None and DEFAULT_LAYOUT_PATH.is_file():
            path = str(DEFAULT_LAYOUT_PATH)
        if path is None:
            return
        if self._load_path(path):
            self.statusBar().showMessage(f"Loaded: {path}")

    def _load_path(self, path):
        try:
            load_file(self.store, path)
        except (ParseError, ShapeError) as e:
            QMessageBox.critical(self, "Invalid Layout File", f"Failed to load {path}:\n{e}")
            return False
        except OSError as e:
            QMessageBox.critical(self, "Error", f"Failed to load {path}:\n{e}")
            return False
        self._current_file_path = path
        return True

    def _on_file_open(self):
        start_dir = str(Path(self._current_file_path).parent) if self._current_file_path else ""
        file_path, _ = QFileDialog.getOpenFileName(
            self, "Open Layout File", start_dir, "JSON Files (*.json)"
        )
        if file_path and self._load_path(file_path):
            self.statusBar().showMessage(f"Loaded: {file_path}")

    def _save_to(self, path):
        try:
            save_file(self.store, path)
        except OSError as e:
            QMessageBox.critical(self, "Error", f"Failed to save {path}:\n{e}")
            return False
        self._current_file_path = path
        self.statusBar().showMessage(f"Saved: {path}")
        return True

    def _on_file_save(self):
        """Save to current path (or default). No dialog."""
        path = self._current_file_path or str(DEFAULT_LAYOUT_PATH)
        self._save_to(path)

    def _on_file_save_as(self):
        start_dir = str(Path(self._current_file_path).parent) if self._current_file_path else ""
        file_path, _ = QFileDialog.getSaveFileName(
            self, "Save Layout File", start_dir, "JSON Files (*.json)"
        )
        if file_path:
            self._save_to(file_path)

    def _on_store_on_backend(self):
        name, ok = QInputDialog.getText(self, "Store on Backend", "Dashboard name:")
        if not ok or not name.strip():
            return
        try:
            self.client.save_dashboard(name.strip(), screen_document(self.store.snapshot()))
        except TransportError as e:
            QMessageBox.warning(self, "Backend Error", f"Failed to store dashboard:\n{e}")
            return
        self.statusBar().showMessage(f"Stored on backend: {name.strip()}")

    def _on_open_from_backend(self):
        try:
            records = [r for r in self.client.list_dashboards() if isinstance(r, dict)]
        except TransportError as e:
            QMessageBox.warning(self, "Backend Error", f"Failed to list dashboards:\n{e}")
            return
        if not records:
            QMessageBox.information(self, "Open from Backend", "No dashboards are stored on the backend.")
            return
        labels = [f"{r.get('name', '')} (#{r.get('id', '?')})" for r in records]
        label, ok = QInputDialog.getItem(
            self, "Open from Backend", "Dashboard:", labels, len(labels) - 1, False
        )
        if not ok:
            return
        record = records[labels.index(label)]
        try:
            load_stored_dashboard(self.store, record)
        except (ParseError, ShapeError) as e:
            QMessageBox.critical(self, "Invalid Dashboard", f"Failed to load {label}:\n{e}")
            return
        self.statusBar().showMessage(f"Loaded from backend: {label}")

    def _on_reset(self):
        reply = QMessageBox.question(
            self,
            "Reset Settings",
            "Restore default settings and the default widgets?",
            QMessageBox.Yes | QMessageBox.No,
        )
        if reply == QMessageBox.Yes:
            self.store.reset_settings()
            self.statusBar().showMessage("Reset to defaults")

    def closeEvent(self, event):
        """Stop telemetry sources and pending command timers before closing."""
        self._readout_timer.stop()
        self.poller.stop()
        self.stream.close()
        self._unsubscribe()
        for panel in self._panels_of(CommandPanel):
            panel.teardown()
        super().closeEvent(event)
