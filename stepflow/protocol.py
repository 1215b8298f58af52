"""Structural protocol and result type for the flow engine."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Protocol, runtime_checkable

from .errors import FlowFailedError

if TYPE_CHECKING:
    from .context import Context

#: Error-first completion callback: ``callback(err, *results)``.
CompletionCallback = Callable[..., None]


@runtime_checkable
class TaskFunction(Protocol):
    """Structural protocol every plain step satisfies.

    The step receives its ``Context`` explicitly, followed by the positional
    values delivered by the previous step (or the flow's startup arguments).
    It must eventually advance the flow through ``ctx.next``,
    ``ctx.callback``, ``ctx.end`` or callbacks obtained from ``ctx.async_``.
    The return value is ignored.
    """

    def __call__(self, ctx: "Context", *args: Any) -> Any: ...


@dataclass
class FlowResult:
    """Outcome of one finished flow invocation.

    ``args`` are the values the terminal step delivered, ``err`` is the
    shared error slot as the terminal step left it, ``data`` the final
    shared data.
    """

    name: str
    args: tuple
    err: Any = None
    data: Any = None

    @property
    def ok(self) -> bool:
        return self.err is None

    def raise_for_err(self) -> None:
        """Raise the error left in the slot, if any.

        Exceptions are re-raised as they are; any other value is wrapped in
        ``FlowFailedError``.
        """
        if self.err is None:
            return
        if isinstance(self.err, BaseException):
            raise self.err
        raise FlowFailedError(self.err, self.name)
