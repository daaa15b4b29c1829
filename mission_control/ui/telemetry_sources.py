"""
Telemetry Sources: The HTTP poll, the WebSocket push stream and the command send worker.

Both telemetry sources degrade quietly: failures are logged, the poll keeps
firing on its fixed interval and the stream keeps whatever sample it last
received.
"""

import json
import logging

from PySide6.QtCore import QObject, QThread, QTimer, QUrl, Signal
from PySide6.QtWebSockets import QWebSocket

from mission_control.errors import TransportError
from mission_control.http_client import HTTPClient
from mission_control.telemetry import LatestSampleSlot, TelemetrySample

logger = logging.getLogger(__name__)

POLL_INTERVAL_MS = 5000


# ============================================================
# Pull source -- periodic GET /api/telemetry
# ============================================================

class TelemetryFetchWorker(QThread):
    """Worker thread running a single telemetry fetch."""

    samples_ready = Signal(list)  # list[TelemetrySample]
    fetch_failed = Signal(str)    # error message

    def __init__(self, client: HTTPClient):
        super().__init__()
        self._client = client

    def run(self):
        try:
            samples = self._client.get_telemetry()
        except TransportError as e:
            self.fetch_failed.emit(str(e))
            return
        self.samples_ready.emit(samples)


class TelemetryPoller(QObject):
    """Fetches telemetry on a fixed interval while started.

    Every tick starts its own fetch; a slow fetch does not delay or block the
    next one.
    """

    samples_received = Signal(list)

    def __init__(self, client: HTTPClient, interval_ms: int = POLL_INTERVAL_MS, parent=None):
        super().__init__(parent)
        self._client = client
        self._workers = set()
        self._timer = QTimer(self)
        self._timer.setInterval(interval_ms)
        self._timer.timeout.connect(self._tick)

    def start(self):
        """Fetch now, then on every interval until stop()."""
        self._tick()
        self._timer.start()

    def stop(self):
        self._timer.stop()

    def _tick(self):
        worker = TelemetryFetchWorker(self._client)
        worker.samples_ready.connect(self.samples_received)
        worker.fetch_failed.connect(self._on_fetch_failed)
        worker.finished.connect(self._on_worker_finished)
        self._workers.add(worker)
        worker.start()

    def _on_fetch_failed(self, message):
        logger.warning("Telemetry poll failed: %s", message)

    def _on_worker_finished(self):
        worker = self.sender()
        self._workers.discard(worker)
        worker.deleteLater()


# ============================================================
# Push source -- WebSocket, one JSON sample per message
# ============================================================

class TelemetryStream(QObject):
    """Keeps the most recent pushed sample in a single-slot mailbox."""

    sample_received = Signal(object)  # TelemetrySample

    def __init__(self, url: str, parent=None):
        super().__init__(parent)
        self._url = url
        self.slot = LatestSampleSlot()
        self._socket = QWebSocket()
        self._socket.textMessageReceived.connect(self._on_message)
        self._socket.connected.connect(lambda: logger.info("Telemetry stream connected: %s", self._url))
        self._socket.disconnected.connect(lambda: logger.info("Telemetry stream disconnected"))
        self._socket.errorOccurred.connect(self._on_error)

    def open(self):
        self._socket.open(QUrl(self._url))

    def close(self):
        self._socket.close()

    def _on_message(self, text):
        try:
            sample = TelemetrySample.from_dict(json.loads(text))
        except ValueError as e:
            logger.warning("Dropping malformed stream message: %s", e)
            return
        self.slot.put(sample)
        self.sample_received.emit(sample)

    def _on_error(self, error):
        logger.warning("Telemetry stream error (%s): %s", error, self._socket.errorString())


# ============================================================
# Command transport -- POST /api/command off the UI thread
# ============================================================

class CommandSendWorker(QThread):
    """Worker thread posting one command to the backend.

    ``error`` holds the failure message once the thread has finished, or
    None when the backend accepted the command.
    """

    def __init__(self, client: HTTPClient, request, done):
        super().__init__()
        self._client = client
        self._request = request
        self.done = done
        self.error = None

    def run(self):
        try:
            self._client.post_command(self._request)
        except TransportError as e:
            self.error = str(e)


class HTTPCommandTransport(QObject):
    """Command transport for CommandWorkflow backed by CommandSendWorker threads.

    Completion callbacks run on this object's (the UI) thread.
    """

    def __init__(self, client: HTTPClient, parent=None):
        super().__init__(parent)
        self._client = client
        self._workers = set()

    def __call__(self, request, done):
        worker = CommandSendWorker(self._client, request, done)
        worker.finished.connect(self._on_worker_finished)
        self._workers.add(worker)
        worker.start()

    def _on_worker_finished(self):
        worker = self.sender()
        self._workers.discard(worker)
        worker.deleteLater()
        worker.done(worker.error)
