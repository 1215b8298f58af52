"""Flow: compiled, re-entrant sequence of task steps."""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, Callable

from .context import Context
from .errors import FlowConfigError
from .execution import Execution
from .options import FlowOptions, build_options
from .protocol import FlowResult, TaskFunction

logger = logging.getLogger(__name__)

DONE = "done"


# ---------------------------------------------------------------------------
# Compiled steps
# ---------------------------------------------------------------------------


class TaskStep:
    """A plain task function."""

    __slots__ = ("fn", "name")

    def __init__(self, fn: Callable[..., Any]) -> None:
        self.fn = fn
        self.name = getattr(fn, "__name__", type(fn).__name__)

    def run(self, ctx: Context, args: tuple) -> None:
        self.fn(ctx, *args)


class NestedStep:
    """A whole ``Flow`` embedded as a single step of another flow.

    The nested invocation starts from the outer ``data`` and ``err``.  When
    it finishes, both are copied back and the outer step advances with the
    nested terminal arguments.
    """

    __slots__ = ("flow", "name")

    def __init__(self, flow: "Flow") -> None:
        self.flow = flow
        self.name = flow.name

    def run(self, ctx: Context, args: tuple) -> None:
        def resume(result: FlowResult) -> None:
            ctx.data = result.data
            ctx.err = result.err
            ctx.next(*result.args)

        self.flow.spawn(
            args,
            data=ctx.data,
            err=ctx.err,
            on_finish=resume,
            on_failure=ctx._execution.escalate,
        )


Step = TaskStep | NestedStep


def _compile(step: object) -> Step:
    if isinstance(step, Flow):
        return NestedStep(step)
    if isinstance(step, TaskFunction):
        return TaskStep(step)
    raise FlowConfigError(
        f"Flow steps must be callables or flows, got {type(step).__name__}"
    )


# ---------------------------------------------------------------------------
# Flow
# ---------------------------------------------------------------------------


class Flow:
    """Ordered, immutable list of steps.  Can be nested inside another flow.

    Build via ``flow()``::

        read_both = flow(
            read_files,      # def read_files(ctx, a, b): ... ctx.async_() ...
            print_result,    # def print_result(ctx, text_a, text_b): ...
        )
        read_both.on("done", lambda ctx, *args: ...)
        read_both("a.txt", "b.txt")

    Every call is an independent invocation with its own ``Execution``.
    The last step is the terminal step: ``ctx.end()`` jumps to it and its
    ``next`` fires the ``done`` listeners.
    """

    def __init__(
        self,
        *steps: object,
        name: str | None = None,
        batch_size: int | None = None,
    ) -> None:
        self.options: FlowOptions = build_options(name=name, batch_size=batch_size)
        self._steps: tuple[Step, ...] = tuple(_compile(s) for s in steps)
        self._listeners: list[Callable[..., Any]] = []

    @property
    def name(self) -> str:
        return self.options.name

    @property
    def batch_size(self) -> int | None:
        return self.options.batch_size

    @property
    def steps(self) -> tuple[Step, ...]:
        return self._steps

    def __len__(self) -> int:
        return len(self._steps)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def on(self, event: str, listener: Callable[..., Any]) -> "Flow":
        """Subscribe *listener* to ``"done"``; returns ``self`` for chaining.

        The listener is called as ``listener(ctx, *terminal_args)`` once per
        invocation, with the terminal step's context.
        """
        if event != DONE:
            raise FlowConfigError(f"Unknown flow event {event!r}; only 'done' exists")
        self._listeners.append(listener)
        return self

    def on_done(self, listener: Callable[..., Any]) -> "Flow":
        return self.on(DONE, listener)

    def off(self, event: str, listener: Callable[..., Any]) -> "Flow":
        """Unsubscribe *listener*; unknown listeners are ignored."""
        if event != DONE:
            raise FlowConfigError(f"Unknown flow event {event!r}; only 'done' exists")
        if listener in self._listeners:
            self._listeners.remove(listener)
        return self

    # ------------------------------------------------------------------
    # Invocation
    # ------------------------------------------------------------------

    def __call__(self, *args: Any) -> Execution:
        """Start one invocation; *args* reach the first step unchanged."""
        return self.spawn(args)

    def spawn(
        self,
        args: tuple = (),
        *,
        data: Any = None,
        err: Any = None,
        on_finish: Callable[[FlowResult], Any] | None = None,
        on_failure: Callable[[Exception], Any] | None = None,
    ) -> Execution:
        """Start an invocation with explicit initial state and hooks.

        *on_failure* receives any exception a step raises, on whichever
        thread drove that step, instead of it propagating there.
        """
        execution = Execution(
            self.name,
            self._steps,
            batch_size=self.batch_size,
            data=data,
            err=err,
            listeners=list(self._listeners),
            on_finish=on_finish,
            on_failure=on_failure,
        )
        return execution.start(tuple(args))

    def run(self, *args: Any, timeout: float | None = None) -> FlowResult:
        """Invoke and block until the flow finishes.

        Meant for flows whose async callbacks fire on other threads.  An
        exception raised by a step (or a ``done`` listener) is re-raised
        here, on the calling thread.  Raises ``TimeoutError`` if *timeout*
        seconds elapse first.
        """
        finished = threading.Event()
        box: list[FlowResult] = []

        def on_finish(result: FlowResult) -> None:
            box.append(result)
            finished.set()

        def on_failure(exc: Exception) -> None:
            finished.set()

        execution = self.spawn(args, on_finish=on_finish, on_failure=on_failure)
        if not finished.wait(timeout):
            raise TimeoutError(f"{self.name} did not finish within {timeout}s.")
        if execution.failure is not None:
            raise execution.failure
        return box[0]

    async def run_async(self, *args: Any) -> FlowResult:
        """Invoke and await completion on the running event loop.

        Completion may be signalled from any thread.  An exception raised by
        a step is set on the awaited future.
        """
        loop = asyncio.get_running_loop()
        future: asyncio.Future = loop.create_future()
        execution: Execution | None = None

        def settle(result: FlowResult | None) -> None:
            if future.done():
                return
            if execution.failure is not None:
                future.set_exception(execution.failure)
            else:
                future.set_result(result)

        def on_finish(result: FlowResult) -> None:
            loop.call_soon_threadsafe(settle, result)

        def on_failure(exc: Exception) -> None:
            loop.call_soon_threadsafe(settle, None)

        execution = self.spawn(args, on_finish=on_finish, on_failure=on_failure)
        return await future

    def __repr__(self) -> str:
        return (
            f"Flow(name={self.name!r}, steps={len(self._steps)}, "
            f"batch_size={self.batch_size})"
        )


# ---------------------------------------------------------------------------
# Compiler
# ---------------------------------------------------------------------------


def flow(
    *args: object,
    name: str | None = None,
    batch_size: int | None = None,
) -> Any:
    """Compile task functions and nested flows into a ``Flow``.

    Leading options may be given positionally, in the curried style::

        flow(step_a, step_b)
        flow(2)(step_a, step_b)          # batch size 2
        flow("reader")(step_a, step_b)   # named flow
        flow("reader", 2, step_a)        # both, steps inline

    A leading ``int`` (never ``bool``) is the batch size and a leading
    ``str`` the name.  When only options are given, a compiler function is
    returned instead of a ``Flow``.
    """
    rest = list(args)
    options_given = False
    while rest and isinstance(rest[0], (str, int)) and not isinstance(rest[0], bool):
        head = rest.pop(0)
        if isinstance(head, str):
            if name is not None:
                raise FlowConfigError("Flow name given twice")
            name = head
        else:
            if batch_size is not None:
                raise FlowConfigError("Batch size given twice")
            batch_size = head
        options_given = True

    if options_given and not rest:
        build_options(name=name, batch_size=batch_size)

        def compile_steps(*steps: object) -> Flow:
            return Flow(*steps, name=name, batch_size=batch_size)

        return compile_steps

    return Flow(*rest, name=name, batch_size=batch_size)


def start(target: Flow, *args: Any) -> Execution:
    """Start *target* with *args*; the functional spelling of ``target(*args)``."""
    return target(*args)
