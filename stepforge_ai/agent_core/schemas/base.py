"""Common base for the engine's persisted and exchanged records."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class BaseSchema(BaseModel):
    """
    Base model for plan state, steps, tool calls, tasks and run responses.

    These records are written by the state and task repositories as JSON and
    read back on the next message or resume, so every subclass must survive a
    ``model_dump(mode="json")`` / ``model_validate`` round trip.

    - ``populate_by_name=True``: fields that declare an alias still accept
      their Python name, which is what engine code uses.
    - ``extra="forbid"``: a saved plan carrying fields this version does not
      know fails to load instead of silently losing them. Lenient parsing of
      model output happens in ``reasoning.parser`` before records are built.
    """

    model_config = ConfigDict(
        populate_by_name=True,
        extra="forbid",
    )
