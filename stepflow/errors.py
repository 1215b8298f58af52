"""Flow engine error types."""

from __future__ import annotations

from typing import Any


class FlowError(Exception):
    """Base class for misuse of the flow engine.

    The error slot that steps pass along (``ctx.err``) is opaque and never
    wrapped in one of these.
    """


class FlowConfigError(FlowError):
    """Invalid flow wiring, detected at compile time.

    Examples:
    - A batch size that is not a positive integer.
    - A step that is neither callable nor a ``Flow``.
    - Subscribing to an event other than ``"done"``.
    """


class BatchSizeError(FlowError):
    """A step opened more ``async_()`` callbacks than its batch size allows."""

    def __init__(self, batch_size: int, step_name: str) -> None:
        self.batch_size = batch_size
        self.step_name = step_name
        super().__init__(
            f"{step_name} opened more than {batch_size} async callback(s) "
            f"in a single step"
        )


class ForkError(FlowError):
    """``join()`` used outside of a ``parallel_each`` worker."""


class FlowFailedError(FlowError):
    """A finished flow still carried a non-exception error value.

    Raised by ``FlowResult.raise_for_err()``; ``err`` holds the original
    value (``"ERROR"``, an error code, ...).
    """

    def __init__(self, err: Any, name: str = "flow") -> None:
        self.err = err
        self.name = name
        super().__init__(f"{name} finished with error {err!r}")
