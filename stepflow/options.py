"""Compile-time flow options."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr, ValidationError

from .errors import FlowConfigError

DEFAULT_FLOW_NAME = "flow"


class FlowOptions(BaseModel):
    """Validated options a ``Flow`` is compiled with."""

    model_config = ConfigDict(frozen=True)

    name: StrictStr = Field(
        default=DEFAULT_FLOW_NAME, min_length=1, description="Name used in logs"
    )
    batch_size: Optional[StrictInt] = Field(
        default=None,
        ge=1,
        description="Maximum number of async_() callbacks a single step may open",
    )


def build_options(**kwargs: Any) -> FlowOptions:
    """Build ``FlowOptions``, reporting bad values as ``FlowConfigError``.

    ``None`` values fall back to the field defaults.
    """
    given = {k: v for k, v in kwargs.items() if v is not None}
    try:
        return FlowOptions(**given)
    except ValidationError as exc:
        raise FlowConfigError(f"Invalid flow options: {exc}") from exc
