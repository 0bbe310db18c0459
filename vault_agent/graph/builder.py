"""Connection graph construction.

Link and tag tokens from every scanned note are turned into Connection
edges. `LinkGraph` then indexes them three ways: outgoing edges per note,
incoming edges per resolved target note, and a deduplicated adjacency
list used for traversal. Adjacency order follows the order notes were
listed by the storage backend, so path tie-breaks are not stable across
backends.
"""

from collections import defaultdict
from dataclasses import dataclass, field

from vault_agent.graph.models import Connection, NoteInfo
from vault_agent.markdown.models import Token
from vault_agent.markdown.notes import (
    extract_context,
    get_folder_from_path,
    note_name,
    parse_note,
    strip_extension,
)
from vault_agent.markdown.tokenizer import tokenize
from vault_agent.scan import VaultScan

CONTEXT_WINDOW = 50

_LINK_KINDS = {"wikilink": "wikilink", "markdown_link": "markdown_link"}


def extract_connections(
    path: str,
    text: str,
    include_tags: bool = True,
    tokens: list[Token] | None = None,
) -> list[Connection]:
    """Extract outgoing connections from one note.

    Args:
        path: Path of the note (becomes the connection source)
        text: Raw note text
        include_tags: Also emit one 'tag' connection per inline tag
        tokens: Pre-computed tokens for the note

    Returns:
        Connections in document order
    """
    if tokens is None:
        tokens = tokenize(text)

    connections: list[Connection] = []
    for token in tokens:
        if token.kind in _LINK_KINDS:
            target = token.value
        elif token.kind == "tag" and include_tags:
            target = f"#{token.value}"
        else:
            continue
        connections.append(
            Connection(
                source=path,
                target=target,
                type=_LINK_KINDS.get(token.kind, "tag"),
                context=extract_context(
                    text, token.offset, token.offset + len(token.text), CONTEXT_WINDOW
                ),
            )
        )
    return connections


def same_folder_siblings(path: str, paths: list[str]) -> list[str]:
    """Other notes directly inside the same (non-root) folder."""
    if "/" not in path:
        return []
    folder = get_folder_from_path(path)
    return [p for p in paths if p != path and "/" in p and get_folder_from_path(p) == folder]


@dataclass
class LinkGraph:
    """Directed multigraph over a set of scanned notes.

    Attributes:
        paths: Note paths in listing order
        outgoing: Path to connections found in that note
        incoming: Path to connections in other notes that resolve to it,
            relabelled as 'backlink'
        adjacency: Path to resolved neighbour paths, deduplicated, in
            discovery order
        tags: Path to inline plus frontmatter tags
        sizes: Path to note length
    """

    paths: list[str] = field(default_factory=list)
    outgoing: dict[str, list[Connection]] = field(default_factory=dict)
    incoming: dict[str, list[Connection]] = field(default_factory=lambda: defaultdict(list))
    adjacency: dict[str, list[str]] = field(default_factory=dict)
    tags: dict[str, list[str]] = field(default_factory=dict)
    sizes: dict[str, int] = field(default_factory=dict)
    _index: dict[str, str] = field(default_factory=dict)

    @classmethod
    def build(cls, scan: VaultScan, include_tags: bool = True) -> "LinkGraph":
        """Build the graph from a completed scan."""
        graph = cls(paths=scan.paths)
        for path in graph.paths:
            for key in (path, strip_extension(path), note_name(path)):
                graph._index.setdefault(key.lower(), path)

        for path in graph.paths:
            text = scan.notes[path]
            tokens = scan.tokens(path)
            connections = extract_connections(path, text, include_tags, tokens)
            graph.outgoing[path] = connections
            graph.sizes[path] = len(text)

            inline_tags = [t.value for t in tokens if t.kind == "tag"]
            graph.tags[path] = list(dict.fromkeys(inline_tags + parse_note(text).tags))

            neighbours: list[str] = []
            for conn in connections:
                if conn.type == "tag":
                    continue
                resolved = graph.resolve(conn.target)
                if resolved is None or resolved == path:
                    continue
                graph.incoming[resolved].append(conn.model_copy(update={"type": "backlink"}))
                if resolved not in neighbours:
                    neighbours.append(resolved)
            graph.adjacency[path] = neighbours
        return graph

    def resolve(self, target: str) -> str | None:
        """Resolve a link target to a scanned note path.

        Matches, case-insensitively: the exact path, the path without
        '.md', or a bare note name (first note in listing order wins).
        """
        key = target.strip().strip("/").lower()
        return self._index.get(key) or self._index.get(strip_extension(key))

    def outgoing_count(self, path: str) -> int:
        return len(self.outgoing.get(path, []))

    def incoming_count(self, path: str) -> int:
        return len(self.incoming.get(path, []))

    def note_info(self, path: str) -> NoteInfo:
        """Aggregate statistics for one note."""
        return NoteInfo(
            path=path,
            name=note_name(path),
            folder=get_folder_from_path(path),
            outgoing_links=self.outgoing_count(path),
            incoming_links=self.incoming_count(path),
            tags=self.tags.get(path, []),
            size=self.sizes.get(path, 0),
        )
