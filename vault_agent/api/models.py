"""Response envelope for the vault JSON API."""

from typing import Generic, TypeVar

from pydantic import BaseModel, Field

ResultT = TypeVar("ResultT", bound=BaseModel)


class ToolResponse(BaseModel, Generic[ResultT]):
    """Structured result of one tool call plus the text the agent would see.

    Attributes:
        result: The operation's structured result model
        formatted_output: Rendered text for humans and LLMs
    """

    result: ResultT
    formatted_output: str = Field(..., description="Rendered result text")
