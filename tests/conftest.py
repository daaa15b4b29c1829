import pytest

from mission_control.config_store import ConfigStore


class FakeHandle:
    def __init__(self, due: float, callback) -> None:
        self.due = due
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler:
    """Deterministic stand-in for the QTimer scheduler: time only moves on advance()."""

    def __init__(self) -> None:
        self.now = 0.0
        self.handles = []

    def schedule(self, delay_seconds: float, callback) -> FakeHandle:
        handle = FakeHandle(self.now + delay_seconds, callback)
        self.handles.append(handle)
        return handle

    def pending(self):
        return [h for h in self.handles if not h.cancelled]

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            due = [h for h in self.pending() if h.due <= target + 1e-9]
            if not due:
                break
            handle = min(due, key=lambda h: h.due)
            self.handles.remove(handle)
            self.now = max(self.now, handle.due)
            handle.callback()
        self.now = target


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
def store() -> ConfigStore:
    return ConfigStore()
