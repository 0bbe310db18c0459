"""Path and frontmatter helpers shared by every feature."""

import re

import frontmatter

from vault_agent.markdown.models import ParsedNote

_WHITESPACE = re.compile(r"\s+")


def normalize_path(path: str) -> str:
    """Normalize a note path for consistent handling.

    - Strips leading/trailing whitespace and slashes
    - Converts backslashes to forward slashes
    - Appends .md extension if not present

    Examples:
        >>> normalize_path("test")
        'test.md'
        >>> normalize_path("/Projects/API Design/")
        'Projects/API Design.md'
    """
    path = path.strip().replace("\\", "/").strip("/")
    if not path.endswith(".md"):
        path = f"{path}.md"
    return path


def note_name(path: str) -> str:
    """Return the bare note name: last path segment without '.md'.

    Examples:
        >>> note_name("Projects/API Design.md")
        'API Design'
    """
    return path.rsplit("/", 1)[-1].removesuffix(".md")


def strip_extension(path: str) -> str:
    """Return the path without a trailing '.md'."""
    return path.removesuffix(".md")


def get_folder_from_path(path: str) -> str:
    """Extract folder from note path.

    Examples:
        >>> get_folder_from_path("Projects/API/design.md")
        'Projects/API'
        >>> get_folder_from_path("note.md")
        '(root)'
    """
    if "/" not in path:
        return "(root)"
    return path.rsplit("/", 1)[0]


def parse_note(content: str) -> ParsedNote:
    """Parse note content into frontmatter and body.

    Uses python-frontmatter to separate YAML frontmatter from the
    markdown body. Notes with unparseable frontmatter are treated as
    plain content.
    """
    try:
        post = frontmatter.loads(content)
    except Exception:
        return ParsedNote(body=content, raw=content)

    metadata = dict(post.metadata or {})
    raw_tags = metadata.get("tags") or []
    if isinstance(raw_tags, str):
        raw_tags = [t for t in re.split(r"[,\s]+", raw_tags) if t]
    tags = [str(t).lstrip("#") for t in raw_tags if str(t).strip()]
    return ParsedNote(frontmatter=metadata, tags=tags, body=post.content, raw=content)


def frontmatter_end_line(lines: list[str]) -> int:
    """Return the number of leading lines occupied by a YAML frontmatter block.

    Returns 0 when the note has no (closed) frontmatter.
    """
    if not lines or lines[0].rstrip() != "---":
        return 0
    for i in range(1, len(lines)):
        if lines[i].rstrip() in ("---", "..."):
            return i + 1
    return 0


def extract_context(text: str, start: int, end: int, window: int = 50) -> str:
    """Return the text around [start, end) with whitespace collapsed.

    Args:
        text: Full note text
        start: Start offset of the match
        end: End offset of the match
        window: Characters kept on each side

    Returns:
        Snippet, prefixed/suffixed with '...' when truncated
    """
    lo = max(0, start - window)
    hi = min(len(text), end + window)
    snippet = _WHITESPACE.sub(" ", text[lo:hi]).strip()
    prefix = "..." if lo > 0 else ""
    suffix = "..." if hi < len(text) else ""
    return f"{prefix}{snippet}{suffix}"
