"""
API Schemas.

This module contains Pydantic models used for API request bodies and response validation.
These schemas define the interface contract between the client and the server.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class MessageCreate(BaseModel):
    """
    Schema for posting a user message to a thread.

    A message on a new thread creates a plan; on an existing thread it refines
    the plan before execution continues.
    """

    query: str = Field(
        ...,
        description="The user's message or goal.",
        examples=["Find the weather in Paris and suggest what to wear."],
    )
    user_id: Optional[str] = Field(default=None, description="Identifier of the user sending the message.")

    model_config = ConfigDict(
        json_schema_extra={"example": {"query": "Summarize yesterday's error logs", "user_id": "user-42"}}
    )


class ResumeRequest(BaseModel):
    """
    Schema for resuming a suspended thread.

    Carries the human decision on the tool call that suspended the thread.
    """

    approved: bool = Field(..., description="Whether the pending tool call is approved.")
    reason: Optional[str] = Field(default=None, description="Optional free-text reason for the decision.")
    suspension_id: Optional[str] = Field(
        default=None,
        description="The suspension being answered. When given it must match the pending suspension.",
    )


class ErrorDetail(BaseModel):
    """Error body returned for rejected requests."""

    detail: str
    code: Optional[str] = None
