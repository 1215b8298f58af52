"""Shared fixtures and fake async primitives for flow engine tests.

Nothing here touches the filesystem or the network: ``FakeFiles`` stands in
for an error-first async reader whose completions the test fires by hand, in
any order.
"""

from __future__ import annotations

import threading

import pytest

# ---------------------------------------------------------------------------
# Fake async primitives
# ---------------------------------------------------------------------------


class FakeFiles:
    """Error-first ``read(name, callback)`` whose completions are deferred.

    ``read`` only records the request.  ``complete(i)`` fires request *i*,
    ``complete_all(reverse=True)`` fires every pending request, newest first.
    Unknown names complete with ``FileNotFoundError``.
    """

    def __init__(self, contents: dict[str, str] | None = None):
        self.contents = dict(contents or {})
        self.pending: list[tuple[str, object]] = []

    def read(self, name, callback):
        self.pending.append((name, callback))

    def _fire(self, name, callback):
        if name in self.contents:
            callback(None, self.contents[name])
        else:
            callback(FileNotFoundError(name))

    def complete(self, index: int = 0):
        name, callback = self.pending.pop(index)
        self._fire(name, callback)

    def complete_all(self, reverse: bool = False):
        requests = list(reversed(self.pending)) if reverse else list(self.pending)
        self.pending.clear()
        for name, callback in requests:
            self._fire(name, callback)


class ImmediateFiles(FakeFiles):
    """Same as ``FakeFiles`` but completes synchronously inside ``read``."""

    def read(self, name, callback):
        self._fire(name, callback)


class ThreadedFiles(FakeFiles):
    """Completes each read on a short-lived worker thread."""

    def __init__(self, contents=None, delay: float = 0.01):
        super().__init__(contents)
        self.delay = delay

    def read(self, name, callback):
        timer = threading.Timer(self.delay, self._fire, args=(name, callback))
        timer.daemon = True
        timer.start()


class Recorder:
    """Collects every call it receives as ``(args, kwargs)``."""

    def __init__(self):
        self.calls: list[tuple] = []

    def __call__(self, *args, **kwargs):
        self.calls.append((args, kwargs))

    @property
    def count(self) -> int:
        return len(self.calls)


# ---------------------------------------------------------------------------
# Pytest fixtures
# ---------------------------------------------------------------------------

CONTENTS = {"file1": "FILE1", "file2": "FILE2", "LICENSE": "MIT", "README.md": "# readme"}


@pytest.fixture
def files():
    return FakeFiles(CONTENTS)


@pytest.fixture
def immediate_files():
    return ImmediateFiles(CONTENTS)


@pytest.fixture
def threaded_files():
    return ThreadedFiles(CONTENTS)


@pytest.fixture
def recorder():
    return Recorder()
