"""Heading sections and block markers as pure text transformations.

A heading's section runs from the line after the heading to the line
before the next heading of the same or a higher level. Heading and block
positions come from the tokenizer, so headings inside fenced code or
frontmatter are never matched.
"""

from vault_agent.blocks.models import Heading, InsertPosition
from vault_agent.dependencies import VaultConflictError, VaultNotFoundError, VaultValidationError
from vault_agent.markdown.tokenizer import BLOCK_MARKER_PATTERN, tokenize, tokens_of_kind


def _split(text: str) -> tuple[list[str], bool]:
    """Split into lines, remembering whether the text ended with a newline."""
    if text.endswith("\n"):
        return text[:-1].split("\n"), True
    return (text.split("\n") if text else []), False


def _join(lines: list[str], trailing_newline: bool) -> str:
    return "\n".join(lines) + ("\n" if trailing_newline else "")


def list_headings(text: str) -> list[Heading]:
    """All headings in document order, with any block id on the same line."""
    tokens = tokenize(text)
    blocks = {t.line: t.value for t in tokens_of_kind(tokens, "block_marker")}
    return [
        Heading(level=t.level or 1, text=t.value, line=t.line, block_id=blocks.get(t.line))
        for t in tokens_of_kind(tokens, "heading")
    ]


def find_heading(headings: list[Heading], name: str) -> Heading | None:
    """First heading whose text matches `name`, ignoring case and leading '#'."""
    wanted = name.strip().lstrip("#").strip().lower()
    return next((h for h in headings if h.text.lower() == wanted), None)


def section_end(headings: list[Heading], heading: Heading, line_count: int, include_subheadings: bool = True) -> int:
    """1-based line number of the last line in a heading's section.

    Without subheadings, the section also stops at the first deeper heading.
    """
    for other in headings:
        if other.line <= heading.line:
            continue
        if other.level <= heading.level or not include_subheadings:
            return other.line - 1
    return line_count


def heading_content(text: str, name: str, include_subheadings: bool = True) -> tuple[Heading, str]:
    """Text under a heading, stripped of surrounding blank lines.

    Raises:
        VaultNotFoundError: If the heading does not exist
    """
    lines, _ = _split(text)
    headings = list_headings(text)
    heading = find_heading(headings, name)
    if heading is None:
        raise VaultNotFoundError(f"Heading not found: {name}")
    end = section_end(headings, heading, len(lines), include_subheadings)
    return heading, "\n".join(lines[heading.line : end]).strip()


def _insertion_index(lines: list[str], headings: list[Heading], heading: Heading, position: InsertPosition) -> int:
    """0-based index at which new lines are inserted."""
    end = section_end(headings, heading, len(lines))
    if position == "after_heading":
        return heading.line
    if position == "start":
        index = heading.line
        while index < end and not lines[index].strip():
            index += 1
        return index
    if position == "before_next_heading":
        return end
    while end > heading.line and not lines[end - 1].strip():
        end -= 1
    return end


def insert_under_heading(
    text: str,
    name: str,
    content: str,
    position: InsertPosition = "end",
    create_heading: bool = False,
    heading_level: int = 2,
) -> tuple[str, int, bool]:
    """Insert content into a heading's section.

    Args:
        text: Note text
        name: Heading text to insert under
        content: Content to insert (may span several lines)
        position: Where in the section the content goes
        create_heading: Append the heading at the end of the note when missing
        heading_level: Level used for a created heading

    Returns:
        (new text, 1-based line of the first inserted line, heading created)

    Raises:
        VaultNotFoundError: If the heading is missing and create_heading is off
    """
    lines, trailing_newline = _split(text)
    headings = list_headings(text)
    heading = find_heading(headings, name)
    created = False

    if heading is None:
        if not create_heading:
            raise VaultNotFoundError(f"Heading not found: {name}. Set create_heading to add it.")
        if lines and lines[-1].strip():
            lines.append("")
        title = name.strip().lstrip("#").strip()
        lines.append(f"{'#' * heading_level} {title}")
        heading = Heading(level=heading_level, text=title, line=len(lines))
        headings = [*headings, heading]
        trailing_newline = True
        created = True

    index = _insertion_index(lines, headings, heading, position)
    lines[index:index] = content.split("\n")
    return _join(lines, trailing_newline), index + 1, created


def find_block(text: str, block_id: str) -> tuple[int, str]:
    """Locate a block by id.

    Returns:
        (1-based line number, line content without the block marker)

    Raises:
        VaultNotFoundError: If no line carries the block id
    """
    lines, _ = _split(text)
    for token in tokens_of_kind(tokenize(text), "block_marker"):
        if token.value == block_id:
            return token.line, BLOCK_MARKER_PATTERN.sub("", lines[token.line - 1]).strip()
    raise VaultNotFoundError(f"Block not found: ^{block_id}")


def add_block_reference(
    text: str,
    block_id: str,
    line_number: int | None = None,
    target_text: str | None = None,
    content: str | None = None,
) -> tuple[str, int]:
    """Attach `^block_id` to a line, or append a new block.

    The target is, in order of preference: an explicit line number, the
    first line containing `target_text`, or a new paragraph made from
    `content` at the end of the note.

    Returns:
        (new text, 1-based line carrying the block id)

    Raises:
        VaultConflictError: If the id already exists or the line already has one
        VaultNotFoundError: If the target line cannot be found
        VaultValidationError: If no target is given or the line is blank
    """
    tokens = tokenize(text)
    markers = {t.line: t.value for t in tokens_of_kind(tokens, "block_marker")}
    if block_id in markers.values():
        raise VaultConflictError(f"Block reference already exists: ^{block_id}")

    lines, trailing_newline = _split(text)

    if line_number is not None or target_text:
        if line_number is not None:
            if line_number > len(lines):
                raise VaultNotFoundError(f"Line {line_number} not found (note has {len(lines)} lines)")
            index = line_number - 1
        else:
            index = next((i for i, line in enumerate(lines) if target_text in line), -1)
            if index == -1:
                raise VaultNotFoundError(f"Text not found: {target_text}")
        if not lines[index].strip():
            raise VaultValidationError(f"Line {index + 1} is blank")
        if index + 1 in markers:
            raise VaultConflictError(f"Line {index + 1} already has block id ^{markers[index + 1]}")
        lines[index] = f"{lines[index].rstrip()} ^{block_id}"
        return _join(lines, trailing_newline), index + 1

    if not content:
        raise VaultValidationError(
            "'line_number', 'target_text' or 'content' required for create_block_reference"
        )
    if lines and lines[-1].strip():
        lines.append("")
    lines.append(f"{content.strip()} ^{block_id}")
    return _join(lines, True), len(lines)
