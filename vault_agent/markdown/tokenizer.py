"""Token extractor for Obsidian markdown.

Turns one note's raw text into an ordered list of located tokens: task
lines, headings, wikilinks, markdown links, inline tags and block
markers. Extraction is a pure function and never fails: a line that
matches no grammar simply yields no token.

Frontmatter and fenced code blocks produce no tokens but still count
towards line numbering, so every token's `line` is the 1-based line it
occupies in the original text.
"""

import re
from urllib.parse import unquote

from vault_agent.markdown.models import Token
from vault_agent.markdown.notes import frontmatter_end_line

# =============================================================================
# Grammar
# =============================================================================

# Line-level grammars: at most one of these matches a given line.
TASK_PATTERN = re.compile(r"^(\s*)([*+-]|\d+\.)\s*\[(.)\]\s*(.+)$")
HEADING_PATTERN = re.compile(r"^(#{1,6})\s+(.+)$")

# Inline grammars, matched anywhere on a line.
WIKILINK_PATTERN = re.compile(r"\[\[([^\]]+)\]\]")
MARKDOWN_LINK_PATTERN = re.compile(r"\[([^\]]+)\]\(([^)]+)\)")
TAG_PATTERN = re.compile(r"(?<![\w/#&])#([\w/-]+)")
BLOCK_MARKER_PATTERN = re.compile(r"\s\^([A-Za-z0-9-]+)\s*$")

# Spans inside which '#' never starts a tag.
URL_PATTERN = re.compile(r"[a-zA-Z][a-zA-Z0-9+.-]*://\S+")
INLINE_CODE_PATTERN = re.compile(r"`[^`]*`")
URI_SCHEME_PATTERN = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*:")

FENCE_PATTERN = re.compile(r"^\s*(```|~~~)")


# =============================================================================
# Helper Functions
# =============================================================================


def is_internal_link_target(target: str) -> bool:
    """Decide whether a markdown link target points at a note.

    Targets with a URI scheme are external unless they end in '.md'.
    In-page anchors ('#section') are not note references.

    Examples:
        >>> is_internal_link_target("Projects/Plan.md")
        True
        >>> is_internal_link_target("https://example.com")
        False
    """
    target = target.strip()
    if not target or target.startswith("#"):
        return False
    if target.endswith(".md"):
        return True
    return not URI_SCHEME_PATTERN.match(target)


def clean_link_target(target: str) -> str:
    """Strip alias, subpath and '.md' from a link target.

    Examples:
        >>> clean_link_target("Projects/API Design.md#Endpoints")
        'Projects/API Design'
    """
    target = unquote(target.split("|", 1)[0]).strip()
    target = target.split("#", 1)[0].split("^", 1)[0].strip()
    return target.removesuffix(".md")


def _masked_spans(line: str) -> list[tuple[int, int]]:
    """Spans of a line where tags cannot start (links, URLs, inline code)."""
    spans = []
    for pattern in (WIKILINK_PATTERN, MARKDOWN_LINK_PATTERN, URL_PATTERN, INLINE_CODE_PATTERN):
        spans.extend(m.span() for m in pattern.finditer(line))
    return spans


def _inside(pos: int, spans: list[tuple[int, int]]) -> bool:
    return any(start <= pos < end for start, end in spans)


def _inline_tokens(line: str, line_no: int, line_offset: int, start_col: int) -> list[Token]:
    """Extract wikilinks, markdown links and tags from a line, ordered by column."""
    tokens: list[Token] = []

    for m in WIKILINK_PATTERN.finditer(line, start_col):
        inner = m.group(1)
        target, _, alias = inner.partition("|")
        value = clean_link_target(target)
        if not value:
            continue
        tokens.append(
            Token(
                kind="wikilink",
                line=line_no,
                column=m.start(),
                offset=line_offset + m.start(),
                text=m.group(0),
                value=value,
                alias=alias.strip() or None,
            )
        )

    for m in MARKDOWN_LINK_PATTERN.finditer(line, start_col):
        label, target = m.group(1), m.group(2)
        # Skip the tail of a wikilink such as [[a]](b)
        if label.startswith("["):
            continue
        if not is_internal_link_target(target):
            continue
        value = clean_link_target(target)
        if not value:
            continue
        tokens.append(
            Token(
                kind="markdown_link",
                line=line_no,
                column=m.start(),
                offset=line_offset + m.start(),
                text=m.group(0),
                value=value,
                alias=label.strip(),
            )
        )

    masked = _masked_spans(line)
    for m in TAG_PATTERN.finditer(line, start_col):
        if _inside(m.start(), masked):
            continue
        tokens.append(
            Token(
                kind="tag",
                line=line_no,
                column=m.start(),
                offset=line_offset + m.start(),
                text=m.group(0),
                value=m.group(1),
            )
        )

    tokens.sort(key=lambda t: t.column)
    return tokens


# =============================================================================
# Main Entry Point
# =============================================================================


def tokenize(text: str) -> list[Token]:
    """Extract located tokens from a note.

    Per line, tokens are emitted in this order: the line-level token
    (task or heading) first, then inline tokens by column, then a
    trailing block marker.

    Args:
        text: Full raw note text, frontmatter included

    Returns:
        Tokens ordered by line, then by position within the line
    """
    lines = text.split("\n")
    skip_until = frontmatter_end_line(lines)
    tokens: list[Token] = []
    in_fence = False
    offset = 0

    for index, raw_line in enumerate(lines):
        line_no = index + 1
        line_offset = offset
        offset += len(raw_line) + 1
        line = raw_line.rstrip("\r")

        if index < skip_until:
            continue
        if FENCE_PATTERN.match(line):
            in_fence = not in_fence
            continue
        if in_fence:
            continue

        inline_start = 0
        if task := TASK_PATTERN.match(line):
            trailing = task.group(4).strip()
            tokens.append(
                Token(
                    kind="task",
                    line=line_no,
                    column=0,
                    offset=line_offset,
                    text=line,
                    value=trailing,
                    indent=len(task.group(1)),
                    marker=task.group(2),
                    status_char=task.group(3),
                )
            )
            inline_start = task.start(4)
        elif heading := HEADING_PATTERN.match(line):
            heading_text = BLOCK_MARKER_PATTERN.sub("", heading.group(2)).strip()
            tokens.append(
                Token(
                    kind="heading",
                    line=line_no,
                    column=0,
                    offset=line_offset,
                    text=line,
                    value=heading_text,
                    level=len(heading.group(1)),
                )
            )
            inline_start = heading.start(2)

        tokens.extend(_inline_tokens(line, line_no, line_offset, inline_start))

        if block := BLOCK_MARKER_PATTERN.search(line):
            tokens.append(
                Token(
                    kind="block_marker",
                    line=line_no,
                    column=block.start(1) - 1,
                    offset=line_offset + block.start(1) - 1,
                    text=f"^{block.group(1)}",
                    value=block.group(1),
                )
            )

    return tokens


def tokens_of_kind(tokens: list[Token], *kinds: str) -> list[Token]:
    """Filter tokens down to the given kinds, preserving order."""
    return [t for t in tokens if t.kind in kinds]
