"""
Canvas Items: PanelItem and ResizeHandle for the dashboard grid canvas.
"""

import logging

from PySide6.QtWidgets import QGraphicsItem, QGraphicsProxyWidget, QGraphicsRectItem
from PySide6.QtCore import Qt, QPointF, QRectF
from PySide6.QtGui import QBrush, QColor, QFont, QPen

from mission_control.layout_engine import (
    GRID_COL_WIDTH_PX,
    GRID_COLS,
    GRID_MARGIN_PX,
    GRID_ROW_HEIGHT_PX,
    MIN_WIDGET_COLS,
    MIN_WIDGET_ROWS,
)

logger = logging.getLogger(__name__)

TITLE_BAR_HEIGHT = 22
PANEL_MIN_W = GRID_COL_WIDTH_PX * MIN_WIDGET_COLS - GRID_MARGIN_PX
PANEL_MIN_H = GRID_ROW_HEIGHT_PX * MIN_WIDGET_ROWS - GRID_MARGIN_PX
CANVAS_WIDTH = GRID_COLS * GRID_COL_WIDTH_PX


def _snap(value, step):
    return round(value / step) * step


def _snap_size(length, step):
    """Snap a pixel length so that length + margin is a whole number of grid steps."""
    return max(1, round((length + GRID_MARGIN_PX) / step)) * step - GRID_MARGIN_PX


# ============================================================
# Panel Item -- one widget on the grid canvas
# ============================================================

class PanelItem(QGraphicsRectItem):
    """A dashboard widget on the canvas: title bar, embedded panel, snap-to-grid moves.

    Only the title bar starts a drag; the embedded panel keeps its own
    mouse handling. Locked panels cannot be moved or resized.
    """

    def __init__(self, widget_id, title, content, x, y, w, h, locked=False):
        self._w = max(PANEL_MIN_W, int(w))
        self._h = max(PANEL_MIN_H, int(h))
        super().__init__(0, 0, self._w, self._h)

        self.widget_id = widget_id
        self.title = title
        self.locked = locked
        self._suppress_notify = True
        self._drag_moved = False

        self.setFlag(QGraphicsItem.ItemIsMovable, not locked)
        self.setFlag(QGraphicsItem.ItemIsSelectable, True)
        self.setFlag(QGraphicsItem.ItemSendsGeometryChanges, True)
        self.setBrush(QBrush(QColor("#161b22")))
        self.setPen(QPen(QColor("#30363d"), 1))

        self.proxy = QGraphicsProxyWidget(self)
        self.proxy.setWidget(content)
        self.proxy.setPos(0, TITLE_BAR_HEIGHT)

        self.handle = ResizeHandle(self)
        self.setPos(x, y)
        self._apply_size()
        self._suppress_notify = False

    @property
    def content(self):
        return self.proxy.widget()

    def close_rect(self):
        return QRectF(self._w - TITLE_BAR_HEIGHT, 0, TITLE_BAR_HEIGHT, TITLE_BAR_HEIGHT)

    def lock_rect(self):
        return QRectF(self._w - 2 * TITLE_BAR_HEIGHT, 0, TITLE_BAR_HEIGHT, TITLE_BAR_HEIGHT)

    def set_size(self, w, h):
        """Set panel size (called during resize)."""
        self._w = max(PANEL_MIN_W, int(w))
        self._h = max(PANEL_MIN_H, int(h))
        self._apply_size()

    def set_locked(self, locked):
        self.locked = locked
        self.setFlag(QGraphicsItem.ItemIsMovable, not locked)
        self.handle.setVisible(not locked)
        self.update()

    def set_geometry(self, x, y, w, h):
        """Apply geometry from the store without reporting it back."""
        self._suppress_notify = True
        self.setPos(x, y)
        self.set_size(w, h)
        self._suppress_notify = False

    def _apply_size(self):
        self.prepareGeometryChange()
        self.setRect(0, 0, self._w, self._h)
        self.proxy.resize(self._w, max(0, self._h - TITLE_BAR_HEIGHT))
        self.handle.setPos(self._w, self._h)
        self.handle.setVisible(not self.locked)

    def itemChange(self, change, value):
        if change == QGraphicsItem.ItemPositionChange and self.scene():
            # Snap to grid, keep inside the grid width
            x = _snap(value.x(), GRID_COL_WIDTH_PX)
            y = _snap(value.y(), GRID_ROW_HEIGHT_PX)
            x = max(0, min(CANVAS_WIDTH - self._w - GRID_MARGIN_PX, x))
            y = max(0, y)
            return QPointF(x, y)
        if change == QGraphicsItem.ItemPositionHasChanged and not self._suppress_notify:
            self._drag_moved = True
        return super().itemChange(change, value)

    def mousePressEvent(self, event):
        pos = event.pos()
        if event.button() == Qt.LeftButton and pos.y() <= TITLE_BAR_HEIGHT:
            scene = self.scene()
            if self.close_rect().contains(pos):
                if scene and hasattr(scene, "on_close_requested"):
                    scene.on_close_requested(self)
                event.accept()
                return
            if self.lock_rect().contains(pos):
                if scene and hasattr(scene, "on_lock_toggled"):
                    scene.on_lock_toggled(self)
                event.accept()
                return
        if pos.y() > TITLE_BAR_HEIGHT:
            # Only the title bar drags the panel
            event.ignore()
            return
        self._drag_moved = False
        super().mousePressEvent(event)

    def mouseReleaseEvent(self, event):
        super().mouseReleaseEvent(event)
        if self._drag_moved:
            self._drag_moved = False
            scene = self.scene()
            if scene and hasattr(scene, "on_panel_geometry_changed"):
                scene.on_panel_geometry_changed(self)

    def paint(self, painter, option, widget=None):
        super().paint(painter, option, widget)
        rect = self.rect()

        # Title bar
        bar = QRectF(0, 0, rect.width(), TITLE_BAR_HEIGHT)
        painter.fillRect(bar, QColor("#21262d"))
        painter.setPen(QColor("#e0e0e0"))
        font = QFont()
        font.setBold(True)
        font.setPointSize(9)
        painter.setFont(font)
        text_rect = bar.adjusted(6, 0, -2 * TITLE_BAR_HEIGHT, 0)
        painter.drawText(text_rect, Qt.AlignVCenter | Qt.AlignLeft, self.title)

        # Lock and close glyphs
        painter.setPen(QColor("#FFD700") if self.locked else QColor("#8b949e"))
        painter.drawText(self.lock_rect(), Qt.AlignCenter, "L" if self.locked else "U")
        painter.setPen(QColor("#f85149"))
        painter.drawText(self.close_rect(), Qt.AlignCenter, "×")

        if self.isSelected():
            painter.setPen(QPen(QColor("#FFD700"), 2, Qt.DashLine))
            painter.setBrush(Qt.NoBrush)
            painter.drawRect(rect.adjusted(-1, -1, 1, 1))

        # Overlap warning: red outline if colliding with another panel
        if self.scene():
            colliders = [c for c in self.collidingItems() if isinstance(c, PanelItem)]
            if colliders:
                painter.setPen(QPen(QColor("#FF4444"), 2))
                painter.setBrush(Qt.NoBrush)
                painter.drawRect(rect)


# ============================================================
# Resize Handle -- bottom-right corner of a PanelItem
# ============================================================

class ResizeHandle(QGraphicsRectItem):
    """A small square in the panel's bottom-right corner for resizing it."""

    HANDLE_SIZE = 10

    def __init__(self, tracked_item):
        s = self.HANDLE_SIZE
        super().__init__(-s, -s, s, s, tracked_item)
        self.tracked_item = tracked_item
        self.setBrush(QBrush(QColor("#8b949e")))
        self.setPen(QPen(QColor("#30363d"), 1))
        self.setZValue(1000)
        self.setCursor(Qt.SizeFDiagCursor)
        self._dragging = False
        self._drag_start = None
        self._start_size = None

    def mousePressEvent(self, event):
        if event.button() == Qt.LeftButton and not self.tracked_item.locked:
            self._dragging = True
            self._drag_start = event.scenePos()
            self._start_size = (self.tracked_item._w, self.tracked_item._h)
            event.accept()

    def mouseMoveEvent(self, event):
        if not self._dragging or self._start_size is None:
            return
        delta = event.scenePos() - self._drag_start
        item = self.tracked_item
        w = _snap_size(self._start_size[0] + delta.x(), GRID_COL_WIDTH_PX)
        h = _snap_size(self._start_size[1] + delta.y(), GRID_ROW_HEIGHT_PX)

        # Keep inside the grid width
        max_w = CANVAS_WIDTH - item.pos().x() - GRID_MARGIN_PX
        w = max(PANEL_MIN_W, min(w, max_w))
        h = max(PANEL_MIN_H, h)
        item.set_size(w, h)
        event.accept()

    def mouseReleaseEvent(self, event):
        if self._dragging:
            self._dragging = False
            scene = self.scene()
            if scene and hasattr(scene, "on_panel_geometry_changed"):
                scene.on_panel_geometry_changed(self.tracked_item)
            event.accept()
