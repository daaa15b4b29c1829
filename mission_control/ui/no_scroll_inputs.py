"""
No-Scroll Inputs: Combo and spin boxes that ignore the mouse wheel unless focused.

The settings sidebar scrolls; without this, scrolling past a field would
silently change a threshold.
"""

from PySide6.QtWidgets import QComboBox, QDoubleSpinBox
from PySide6.QtCore import Qt


class _NoScrollMixin:
    def _init_no_scroll(self):
        self.setFocusPolicy(Qt.StrongFocus)

    def wheelEvent(self, event):
        if self.hasFocus():
            super().wheelEvent(event)
        else:
            event.ignore()


class NoScrollComboBox(_NoScrollMixin, QComboBox):
    def __init__(self, parent=None):
        super().__init__(parent)
        self._init_no_scroll()


class NoScrollDoubleSpinBox(_NoScrollMixin, QDoubleSpinBox):
    def __init__(self, minimum, maximum, decimals=2, step=1.0, parent=None):
        super().__init__(parent)
        self._init_no_scroll()
        self.setRange(minimum, maximum)
        self.setDecimals(decimals)
        self.setSingleStep(step)
        self.setKeyboardTracking(False)
