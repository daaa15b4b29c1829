"""
Qt Scheduler: One-shot cancellable deferred tasks on the Qt event loop.
"""

import logging

from PySide6.QtCore import QObject, QTimer

logger = logging.getLogger(__name__)


class _TimerHandle:
    """Handle for one scheduled callback; cancel() is safe after it fired."""

    def __init__(self, timer: QTimer, callback):
        self._timer = timer
        self._callback = callback
        self._done = False
        timer.timeout.connect(self._fire)

    def _fire(self):
        if self._done:
            return
        self._done = True
        self._timer.deleteLater()
        self._callback()

    def cancel(self):
        if self._done:
            return
        self._done = True
        self._timer.stop()
        self._timer.deleteLater()


class QtScheduler(QObject):
    """Runs callbacks after a delay using single-shot QTimers parented to this object."""

    def schedule(self, delay_seconds: float, callback) -> _TimerHandle:
        timer = QTimer(self)
        timer.setSingleShot(True)
        timer.setInterval(max(0, int(delay_seconds * 1000)))
        handle = _TimerHandle(timer, callback)
        timer.start()
        return handle
