"""Pydantic models for heading and block reference operations."""

from typing import Literal

from pydantic import BaseModel, Field

BlockOperation = Literal[
    "list_headings",
    "get_heading_content",
    "get_block_content",
    "insert_under_heading",
    "append_to_heading",
    "prepend_to_heading",
    "create_block_reference",
]
InsertPosition = Literal["start", "end", "after_heading", "before_next_heading"]

BLOCK_ID_PATTERN = r"^[A-Za-z0-9-]+$"


class Heading(BaseModel):
    """A heading line inside a note.

    Attributes:
        level: Number of leading '#' characters (1-6)
        text: Heading text without '#' and without a block marker
        line: 1-based line number
        block_id: Block id attached to the heading line, if any
    """

    level: int = Field(..., ge=1, le=6)
    text: str
    line: int = Field(..., ge=1)
    block_id: str | None = None


class BlockReferenceParams(BaseModel):
    """Parameters for the block_reference tool."""

    operation: BlockOperation
    file_path: str = Field(..., min_length=1, description="Note to read or edit")
    heading: str | None = Field(default=None, description="Heading text, matched case-insensitively")
    heading_level: int = Field(default=2, ge=1, le=6, description="Level for a created heading")
    content: str | None = Field(default=None, description="Content to insert")
    block_id: str | None = Field(default=None, pattern=BLOCK_ID_PATTERN)
    position: InsertPosition = "end"
    create_heading: bool = Field(default=False, description="Create the heading when missing")
    include_subheadings: bool = True
    line_number: int | None = Field(default=None, ge=1, description="Line to attach a block id to")
    target_text: str | None = Field(default=None, description="Text identifying the line to attach to")


class BlockReferenceResult(BaseModel):
    """Outcome of one block reference operation."""

    operation: BlockOperation
    file_path: str
    heading: str | None = None
    block_id: str | None = None
    content: str | None = None
    headings: list[Heading] = Field(default_factory=list)
    line_number: int | None = Field(default=None, description="Line read or written")
    created_heading: bool = False
    modified: bool = False
