"""Bridges from futures to the error-first completion-callback shape."""

from __future__ import annotations

from asyncio import CancelledError
from typing import Any

from .protocol import CompletionCallback


def callback_from_future(future: Any, callback: CompletionCallback) -> None:
    """Call *callback* error-first once *future* settles.

    Works with both ``concurrent.futures.Future`` and ``asyncio.Future``::

        fut = executor.submit(read_text, path)
        callback_from_future(fut, ctx.async_())

    Success calls ``callback(None, result)``, failure ``callback(exc)`` and
    cancellation ``callback(CancelledError())``.
    """

    def settle(done: Any) -> None:
        if done.cancelled():
            callback(CancelledError())
            return
        exc = done.exception()
        if exc is not None:
            callback(exc)
        else:
            callback(None, done.result())

    future.add_done_callback(settle)
