"""parallel_each: dynamic fork/join with ordered results."""

from __future__ import annotations

import logging
from typing import Any, Callable

from .context import Context, ForkState
from .flow import Flow

logger = logging.getLogger(__name__)


class WorkerContext:
    """Handle given to one ``parallel_each`` worker invocation.

    Shares ``data`` and ``err`` with the flow, but cannot advance it
    directly: the worker reports through ``join`` (or ``end`` on failure)
    and the fork advances once every item is accounted for.
    """

    def __init__(self, stage: Context, state: ForkState, index: int) -> None:
        self._stage = stage
        self._state = state
        self._lock = stage._lock
        self.index = index
        self._joined = False

    @property
    def item(self) -> Any:
        return self._state.items[self.index]

    @property
    def data(self) -> Any:
        return self._stage.data

    @data.setter
    def data(self, value: Any) -> None:
        self._stage.data = value

    @property
    def err(self) -> Any:
        return self._stage.err

    @err.setter
    def err(self, value: Any) -> None:
        self._stage.err = value

    def join(self, value: Any = None) -> None:
        """Store this item's result; the last join completes the fork."""
        with self._lock:
            if self._joined or self._state.settled:
                logger.debug("ignoring join from fork worker %d", self.index)
                return
            self._joined = True
            self._state.results[self.index] = value
            self._state.outstanding -= 1
            done = self._state.outstanding == 0
            if done:
                self._state.settled = True
        if done:
            self._stage.next()

    def end(self, err: Any = None) -> None:
        """Fail the whole fork; the finishing step runs right away."""
        with self._lock:
            if self._joined or self._state.settled:
                return
            self._joined = True
            self._state.settled = True
        if err is not None:
            self._stage.err = err
        logger.debug("fork worker %d ended the fork (err=%r)", self.index, err)
        self._stage.next()

    def callback(self, err: Any = None, value: Any = None) -> None:
        """Error-first adapter: ``end(err)`` on error, ``join(value)`` otherwise."""
        if err is not None:
            self.end(err)
        else:
            self.join(value)

    def __repr__(self) -> str:
        return f"WorkerContext(index={self.index}, item={self.item!r})"


def parallel_each(
    begin: Callable[..., Any],
    worker: Callable[[WorkerContext, Any], Any],
    finish: Callable[[Context, Any, list], Any],
    *,
    name: str = "parallel_each",
) -> Flow:
    """Build a fork/join flow.

    ``begin(ctx, *args)`` calls ``ctx.fork(*items)``; ``worker(wctx, item)``
    runs once per item and calls ``wctx.join(result)``;
    ``finish(ctx, err, results)`` receives results in fork order.  The
    returned ``Flow`` can be invoked directly or used as a step.
    """

    def dispatch(ctx: Context, *items: Any) -> None:
        state = ForkState.open(items)
        ctx.fork_state = state
        logger.debug("%s: dispatching %d fork worker(s)", ctx.flow_name, len(items))
        if not items:
            state.settled = True
            ctx.next()
            return
        for index, item in enumerate(items):
            if state.settled:
                break
            worker(WorkerContext(ctx, state, index), item)

    def finishing(ctx: Context, *args: Any) -> None:
        state = ctx.fork_state
        ctx.fork_state = None
        results = list(state.results) if state is not None else []
        finish(ctx, ctx.err, results)

    dispatch.__name__ = f"{getattr(worker, '__name__', 'worker')}[fork]"
    finishing.__name__ = getattr(finish, "__name__", "finish")
    return Flow(begin, dispatch, finishing, name=name)
