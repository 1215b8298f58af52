"""Step context: the object every task function receives as ``ctx``."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from itertools import chain
from typing import TYPE_CHECKING, Any, Callable, Optional

from .errors import BatchSizeError, FlowError, ForkError
from .protocol import CompletionCallback

if TYPE_CHECKING:
    from .execution import Execution

logger = logging.getLogger(__name__)


@dataclass
class ForkState:
    """Fan-out bookkeeping for one active fork.

    ``results`` is indexed by fork declaration order, never by completion
    order.
    """

    items: tuple
    results: list = field(default_factory=list)
    outstanding: int = 0
    settled: bool = False

    @classmethod
    def open(cls, items: tuple) -> "ForkState":
        return cls(items=items, results=[None] * len(items), outstanding=len(items))


def as_(n: int) -> Callable[..., Any]:
    """Result selector for ``ctx.async_()``: keep raw callback argument *n*.

    ``fs_read(path, ctx.async_(as_(1)))`` turns ``(err, text)`` into a single
    positional ``text`` for the next step.
    """

    def select(*args: Any) -> Any:
        return args[n] if len(args) > n else None

    select.__name__ = f"as_{n}"
    return select


class Context:
    """Per-step view onto one flow invocation.

    ``data`` and ``err`` live on the shared ``Execution`` and survive across
    steps.  The "already advanced" flag and the ``async_()`` slots belong to
    this view only, so a context captured by an earlier step can never move
    the flow a second time.
    """

    def __init__(
        self,
        execution: "Execution",
        index: int,
        step_name: str = "",
        batch_size: int | None = None,
    ) -> None:
        self._execution = execution
        self._lock = execution.lock
        self.index = index
        self.step_name = step_name
        self._batch_size = batch_size

        self._advanced = False
        self._sealed = False
        self._slots: list[Optional[tuple]] = []
        self._pending = 0

    # ------------------------------------------------------------------
    # Shared state
    # ------------------------------------------------------------------

    @property
    def data(self) -> Any:
        return self._execution.data

    @data.setter
    def data(self, value: Any) -> None:
        self._execution.data = value

    @property
    def err(self) -> Any:
        return self._execution.err

    @err.setter
    def err(self, value: Any) -> None:
        self._execution.err = value

    @property
    def flow_name(self) -> str:
        return self._execution.name

    @property
    def advanced(self) -> bool:
        return self._advanced

    @property
    def fork_state(self) -> ForkState | None:
        return self._execution.fork_state

    @fork_state.setter
    def fork_state(self, state: ForkState | None) -> None:
        self._execution.fork_state = state

    # ------------------------------------------------------------------
    # Continuations
    # ------------------------------------------------------------------

    def next(self, *values: Any) -> None:
        """Deliver *values* to the next step and advance."""
        if self._claim():
            self._execution.advance(values)

    def callback(self, err: Any = None, *values: Any) -> None:
        """Error-first variant of ``next``."""
        if not self._claim():
            return
        if err is not None:
            self._execution.err = err
        self._execution.advance(values)

    def end(self, err: Any = None, *values: Any) -> None:
        """Skip the remaining steps and deliver *values* to the terminal step."""
        if not self._claim():
            return
        if err is not None:
            self._execution.err = err
        self._execution.jump_to_end(values)

    def _claim(self) -> bool:
        with self._lock:
            if self._advanced:
                logger.debug(
                    "%s: ignoring duplicate advance from step %d (%s)",
                    self.flow_name,
                    self.index,
                    self.step_name,
                )
                return False
            self._advanced = True
            return True

    # ------------------------------------------------------------------
    # Async completions
    # ------------------------------------------------------------------

    def async_(self, selector: Callable[..., Any] | None = None) -> CompletionCallback:
        """Return an error-first callback whose results feed the next step.

        Each call reserves the next positional slot.  Once the step function
        has returned and every reserved callback has fired, the step advances
        with the slots concatenated in reservation order.  Without a
        *selector* a slot receives everything after the error argument; with
        one it receives ``selector(*raw_args)`` as a single value.
        """
        with self._lock:
            if self._advanced:
                raise FlowError(
                    f"{self.step_name or 'step'} already advanced; "
                    f"async_() must be called before the step completes"
                )
            if self._batch_size is not None and len(self._slots) >= self._batch_size:
                raise BatchSizeError(self._batch_size, self.step_name or "step")
            slot = len(self._slots)
            self._slots.append(None)
            self._pending += 1

        fired = False

        def complete(*args: Any) -> None:
            nonlocal fired
            values = (selector(*args),) if selector is not None else tuple(args[1:])
            with self._lock:
                if fired or self._advanced:
                    logger.debug(
                        "%s: ignoring late async callback #%d of step %d",
                        self.flow_name,
                        slot,
                        self.index,
                    )
                    return
                fired = True
                err = args[0] if args else None
                if err is not None:
                    self._execution.err = err
                self._slots[slot] = values
                self._pending -= 1
                ready = self._sealed and self._pending == 0
            if ready:
                self._flush()

        return complete

    def _seal(self) -> None:
        """Called by the scheduler once the step function has returned."""
        with self._lock:
            self._sealed = True
            ready = not self._advanced and bool(self._slots) and self._pending == 0
        if ready:
            self._flush()

    def _flush(self) -> None:
        values = tuple(chain.from_iterable(s for s in self._slots if s is not None))
        self.next(*values)

    # ------------------------------------------------------------------
    # Sub-flows and fan-out
    # ------------------------------------------------------------------

    def exec(self, sub_flow: Any, *args: Any) -> None:
        """Run *sub_flow* with ``args[:-1]``; ``args[-1]`` is the callback.

        The callback receives ``(err, *terminal_args)`` once the sub-flow
        finishes.  The sub-flow gets its own data and error slot; the
        current step does not advance until the callback does so.
        """
        if not args or not callable(args[-1]):
            raise TypeError("exec() needs a completion callback as its last argument")
        *startup, callback = args
        if sub_flow is None:
            callback(None, *startup)
            return
        logger.debug("%s: exec %s from step %d", self.flow_name, sub_flow, self.index)
        sub_flow.spawn(
            tuple(startup),
            on_finish=lambda result: callback(result.err, *result.args),
            on_failure=self._execution.escalate,
        )

    def fork(self, *items: Any) -> None:
        """Declare the fan-out items and hand them to the dispatch step."""
        logger.debug("%s: fork of %d item(s)", self.flow_name, len(items))
        self.next(*items)

    def join(self, value: Any = None) -> None:
        raise ForkError("join() is only available inside a parallel_each worker")

    def __repr__(self) -> str:
        return (
            f"Context(flow={self.flow_name!r}, index={self.index}, "
            f"step={self.step_name!r}, advanced={self._advanced})"
        )
