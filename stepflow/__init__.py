"""Callback-style control-flow engine: sequential steps, async joins, fork/join.

Public surface::

    from stepflow import (
        flow,
        start,
        parallel_each,
        as_,
        Flow,
        Context,
        WorkerContext,
        FlowResult,
        FlowOptions,
        FlowError,
        FlowConfigError,
        BatchSizeError,
        ForkError,
        FlowFailedError,
    )
"""

from .adapters import callback_from_future
from .context import Context, ForkState, as_
from .errors import BatchSizeError, FlowConfigError, FlowError, FlowFailedError, ForkError
from .execution import Execution
from .flow import Flow, flow, start
from .fork import WorkerContext, parallel_each
from .options import FlowOptions
from .protocol import FlowResult, TaskFunction

__all__ = [
    "flow",
    "start",
    "parallel_each",
    "as_",
    "callback_from_future",
    "Flow",
    "Execution",
    "Context",
    "ForkState",
    "WorkerContext",
    "FlowResult",
    "FlowOptions",
    "TaskFunction",
    "FlowError",
    "FlowConfigError",
    "BatchSizeError",
    "ForkError",
    "FlowFailedError",
]
