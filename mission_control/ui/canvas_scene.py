"""
Canvas Scene: DashboardScene (48-column grid canvas) and DashboardView (scrolling view).

The scene reports final panel geometry in grid units once a drag or resize
ends; it never writes to the config store itself.
"""

import logging

from PySide6.QtWidgets import QGraphicsScene, QGraphicsView
from PySide6.QtCore import Qt, Signal, QRectF, QTimer
from PySide6.QtGui import QColor, QPainter, QPen

from mission_control.layout_engine import (
    GRID_COL_WIDTH_PX,
    GRID_ROW_HEIGHT_PX,
    grid_to_pixels,
    pixels_to_grid,
)
from mission_control.ui.canvas_items import CANVAS_WIDTH, PanelItem

logger = logging.getLogger(__name__)

MIN_CANVAS_ROWS = 80
SPARE_ROWS = 20


# ============================================================
# Dashboard Scene -- grid background, panel bookkeeping
# ============================================================

class DashboardScene(QGraphicsScene):
    """The grid canvas holding one PanelItem per widget."""

    panel_geometry_changed = Signal(str, int, int, int, int)  # widget_id, x, y, w, h (grid units)
    close_requested = Signal(str)
    lock_toggled = Signal(str, bool)

    def __init__(self, parent=None):
        super().__init__(parent)
        self._panels = {}
        self._update_scene_rect()

    def panel(self, widget_id):
        return self._panels.get(widget_id)

    def panel_ids(self):
        return list(self._panels)

    def add_panel(self, widget_id, title, content, entry):
        """Add a panel for a widget at a layout entry's geometry."""
        x, y, w, h = grid_to_pixels(entry)
        item = PanelItem(widget_id, title, content, x, y, w, h, entry.locked)
        self.addItem(item)
        self._panels[widget_id] = item
        self._update_scene_rect()
        return item

    def remove_panel(self, widget_id):
        item = self._panels.pop(widget_id, None)
        if item is None:
            return None
        content = item.content
        self.removeItem(item)
        self._update_scene_rect()
        return content

    def apply_entry(self, entry):
        """Move/resize/lock an existing panel to match the stored layout entry."""
        item = self._panels.get(entry.widget_id)
        if item is None:
            return
        x, y, w, h = grid_to_pixels(entry)
        if (item.pos().x(), item.pos().y(), item._w, item._h) != (x, y, w, h):
            item.set_geometry(x, y, w, h)
        if item.locked != entry.locked:
            item.set_locked(entry.locked)
        self._update_scene_rect()

    def drawBackground(self, painter, rect):
        painter.fillRect(rect, QColor("#06090f"))
        canvas = QRectF(0, 0, CANVAS_WIDTH, self.sceneRect().height())
        painter.fillRect(canvas, QColor("#0D1117"))
        # Column lines every grid column, row lines every 4 rows
        painter.setPen(QPen(QColor("#1a1f2e"), 0.5))
        height = int(canvas.height())
        for x in range(0, CANVAS_WIDTH + 1, GRID_COL_WIDTH_PX):
            painter.drawLine(x, 0, x, height)
        for y in range(0, height + 1, GRID_ROW_HEIGHT_PX * 4):
            painter.drawLine(0, y, CANVAS_WIDTH, y)
        painter.setPen(QPen(QColor("#30363d"), 2))
        painter.drawRect(canvas)

    # -- Called by PanelItem / ResizeHandle --

    def on_panel_geometry_changed(self, item):
        gx, gy, gw, gh = pixels_to_grid(item.pos().x(), item.pos().y(), item._w, item._h)
        self._update_scene_rect()
        self.panel_geometry_changed.emit(item.widget_id, gx, gy, gw, gh)

    def on_close_requested(self, item):
        # Deferred: the handler removes the item, which must not happen inside its own event
        widget_id = item.widget_id
        QTimer.singleShot(0, lambda: self.close_requested.emit(widget_id))

    def on_lock_toggled(self, item):
        self.lock_toggled.emit(item.widget_id, not item.locked)

    def _update_scene_rect(self):
        bottom = max(
            (item.pos().y() + item._h for item in self._panels.values()), default=0
        )
        rows = max(MIN_CANVAS_ROWS, int(bottom // GRID_ROW_HEIGHT_PX) + SPARE_ROWS)
        self.setSceneRect(0, 0, CANVAS_WIDTH, rows * GRID_ROW_HEIGHT_PX)


# ============================================================
# Dashboard View -- unscaled, scrolls vertically
# ============================================================

class DashboardView(QGraphicsView):
    """View of the grid canvas; panels keep their pixel size and the view scrolls."""

    def __init__(self, scene, parent=None):
        super().__init__(scene, parent)
        self.setRenderHint(QPainter.Antialiasing)
        self.setAlignment(Qt.AlignLeft | Qt.AlignTop)
        self.setMinimumSize(600, 400)
        self.setHorizontalScrollBarPolicy(Qt.ScrollBarAsNeeded)
        self.setVerticalScrollBarPolicy(Qt.ScrollBarAsNeeded)
        self.setStyleSheet("background: #0a0e14; border: 1px solid #333;")
