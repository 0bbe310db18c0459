"""Pydantic models for tokenized and parsed notes."""

from typing import Any, Literal

from pydantic import BaseModel, Field

TokenKind = Literal["task", "heading", "wikilink", "markdown_link", "tag", "block_marker"]


class Token(BaseModel):
    """A located token extracted from one line of a note.

    Attributes:
        kind: Which grammar produced the token
        line: 1-based line number the token was found on
        column: 0-based column of the match within the line
        offset: 0-based character offset of the match within the note
        text: The raw matched text
        value: Primary payload (link target, tag name, heading text,
            block id, or a task's trailing text)
        level: Heading level (headings only)
        alias: Wikilink alias or markdown link label
        indent: Leading whitespace width (tasks only)
        marker: List marker such as '-', '*', '+' or '1.' (tasks only)
        status_char: Character inside the task checkbox (tasks only)

    Example:
        Token(kind="wikilink", line=3, column=4, offset=41,
              text="[[API|the API]]", value="API", alias="the API")
    """

    kind: TokenKind
    line: int = Field(..., ge=1, description="1-based line number")
    column: int = Field(default=0, ge=0, description="Column within the line")
    offset: int = Field(default=0, ge=0, description="Character offset within the note")
    text: str = Field(..., description="Raw matched text")
    value: str = Field(default="", description="Primary token payload")
    level: int | None = Field(default=None, ge=1, le=6, description="Heading level")
    alias: str | None = Field(default=None, description="Link alias or label")
    indent: int = Field(default=0, ge=0, description="Task indentation width")
    marker: str | None = Field(default=None, description="Task list marker")
    status_char: str | None = Field(default=None, description="Task checkbox character")


class ParsedNote(BaseModel):
    """Note with YAML frontmatter separated from the markdown body.

    Attributes:
        frontmatter: Raw frontmatter mapping (empty when absent)
        tags: Tags declared in frontmatter, without '#'
        body: Markdown content after the frontmatter
        raw: The original unparsed content
    """

    frontmatter: dict[str, Any] = Field(default_factory=dict)
    tags: list[str] = Field(default_factory=list)
    body: str = ""
    raw: str = ""
