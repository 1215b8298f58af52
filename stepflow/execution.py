"""Execution: one invocation of a compiled flow and its step scheduler."""

from __future__ import annotations

import logging
import threading
from collections import deque
from typing import TYPE_CHECKING, Any, Callable, Sequence

from .context import Context, ForkState
from .protocol import FlowResult

if TYPE_CHECKING:
    from .flow import Step

logger = logging.getLogger(__name__)


class Execution:
    """Shared state and scheduler for a single flow invocation.

    Walks the compiled step list one step at a time.  Advances requested
    while a step is still running are queued and picked up once it returns
    (a trampoline), so synchronous ``next`` chains never recurse and no two
    steps of one invocation ever overlap, even when async callbacks fire on
    other threads.

    A Python exception raised by a step stops the execution, which stays
    unfinished.  It is handed to the ``on_failure`` hook when one is set
    (``Flow.run`` and ``Flow.run_async`` use this to re-raise it on the
    waiting side); otherwise it propagates to whatever drove that step.
    """

    def __init__(
        self,
        name: str,
        steps: Sequence["Step"],
        *,
        batch_size: int | None = None,
        data: Any = None,
        err: Any = None,
        listeners: Sequence[Callable[..., Any]] = (),
        on_finish: Callable[[FlowResult], Any] | None = None,
        on_failure: Callable[[Exception], Any] | None = None,
    ) -> None:
        self.name = name
        self.batch_size = batch_size
        self.data = data
        self.err = err
        self.fork_state: ForkState | None = None
        self.lock = threading.RLock()

        self._queue: deque = deque(enumerate(steps))
        self._listeners = tuple(listeners)
        self._on_finish = on_finish
        self._on_failure = on_failure

        self._ready: deque = deque()
        self._driving = False
        self._current: Context | None = None
        self.finished = False
        self.result: FlowResult | None = None
        self.failure: Exception | None = None

    # ------------------------------------------------------------------
    # Entry points used by Context
    # ------------------------------------------------------------------

    def start(self, args: tuple) -> "Execution":
        logger.debug("%s: start with %d step(s)", self.name, len(self._queue))
        self._schedule(args)
        return self

    def advance(self, args: tuple) -> None:
        self._schedule(args)

    def jump_to_end(self, args: tuple) -> None:
        """Discard every remaining step except the terminal one."""
        with self.lock:
            skipped = max(len(self._queue) - 1, 0)
            if skipped:
                terminal = self._queue[-1]
                self._queue.clear()
                self._queue.append(terminal)
        logger.debug("%s: end jump, %d step(s) skipped", self.name, skipped)
        self._schedule(args)

    @property
    def remaining(self) -> int:
        """Number of steps not yet dispatched."""
        return len(self._queue)

    # ------------------------------------------------------------------
    # Trampoline
    # ------------------------------------------------------------------

    def _schedule(self, args: tuple) -> None:
        with self.lock:
            self._ready.append(args)
            if self._driving:
                return
            self._driving = True
        try:
            self._drive()
        except BaseException as exc:
            with self.lock:
                self._driving = False
                self._ready.clear()
            if isinstance(exc, Exception) and self.fail(exc):
                return
            raise

    def fail(self, exc: Exception) -> bool:
        """Record *exc* as the reason this invocation stopped.

        Returns ``True`` when an ``on_failure`` hook took the exception, in
        which case it is not re-raised to whoever drove the failing step.
        """
        with self.lock:
            if self.failure is None:
                self.failure = exc
        logger.debug("%s: step raised %r", self.name, exc)
        if self._on_failure is None:
            return False
        self._on_failure(exc)
        return True

    def escalate(self, exc: Exception) -> None:
        """``on_failure`` hook for child invocations started by this one."""
        if not self.fail(exc):
            raise exc

    def _drive(self) -> None:
        while True:
            with self.lock:
                if not self._ready:
                    self._driving = False
                    return
                args = self._ready.popleft()
                entry = self._queue.popleft() if self._queue else None
            if entry is None:
                self._finish(args)
                continue
            index, step = entry
            ctx = Context(self, index, step.name, self.batch_size)
            self._current = ctx
            logger.debug("%s: step %d (%s)", self.name, index, step.name)
            step.run(ctx, args)
            ctx._seal()

    def _finish(self, args: tuple) -> None:
        with self.lock:
            if self.finished:
                return
            self.finished = True
            self.result = FlowResult(
                name=self.name, args=tuple(args), err=self.err, data=self.data
            )
        # Listeners see the terminal step's context (a fresh one for empty flows)
        receiver = self._current or Context(self, -1)
        logger.debug("%s: done (err=%r)", self.name, self.err)
        try:
            for listener in self._listeners:
                listener(receiver, *args)
        except Exception as exc:
            # Recorded before on_finish so waiters see it alongside the result
            with self.lock:
                if self.failure is None:
                    self.failure = exc
            raise
        finally:
            if self._on_finish is not None:
                self._on_finish(self.result)

    def __repr__(self) -> str:
        return (
            f"Execution(name={self.name!r}, remaining={len(self._queue)}, "
            f"finished={self.finished})"
        )
