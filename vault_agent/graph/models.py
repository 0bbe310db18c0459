"""Pydantic models for link graph analysis."""

from typing import Literal

from pydantic import BaseModel, Field, computed_field

ConnectionType = Literal["wikilink", "markdown_link", "tag", "folder", "backlink"]
GraphOperation = Literal[
    "get_note_links",
    "get_backlinks",
    "find_orphaned_notes",
    "find_hub_notes",
    "trace_connection_path",
    "analyze_tag_relationships",
    "get_vault_stats",
]


class Connection(BaseModel):
    """One directed edge extracted from a note.

    `source` is always the note that was scanned. Backlinks are the same
    edges seen from the target's side and carry type 'backlink'.

    Attributes:
        source: Path of the note containing the reference
        target: Referenced note name/path or '#tag' (may not exist)
        type: How the reference was written
        context: Text surrounding the reference
    """

    source: str
    target: str
    type: ConnectionType
    context: str | None = None


class NoteInfo(BaseModel):
    """Per-note connection statistics.

    Attributes:
        path: Note path
        name: Note name without folder or extension
        folder: Containing folder or '(root)'
        outgoing_links: Connections found in this note
        incoming_links: Connections to this note from other notes
        tags: Inline and frontmatter tags
        size: Note length in characters
    """

    path: str
    name: str
    folder: str
    outgoing_links: int = Field(default=0, ge=0)
    incoming_links: int = Field(default=0, ge=0)
    tags: list[str] = Field(default_factory=list)
    size: int = Field(default=0, ge=0)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_connections(self) -> int:
        return self.outgoing_links + self.incoming_links


class TagRelationship(BaseModel):
    """Number of notes in which two tags appear together."""

    tag_a: str
    tag_b: str
    count: int = Field(..., ge=1)


class GraphStatistics(BaseModel):
    """Vault-wide connection statistics."""

    total_notes: int = 0
    total_connections: int = 0
    average_connections: float = 0.0
    orphaned_notes: int = 0
    most_connected_note: str | None = None
    most_connected_count: int = 0
    tag_distribution: dict[str, int] = Field(default_factory=dict)


class GraphAnalysisParams(BaseModel):
    """Parameters for the graph_analysis tool."""

    operation: GraphOperation
    note_path: str | None = Field(default=None, description="Note to analyse")
    target_path: str | None = Field(default=None, description="Destination for path tracing")
    min_connections: int = Field(default=5, ge=1, description="Hub threshold")
    include_tag_links: bool = True
    include_folder_structure: bool = False
    max_depth: int = Field(default=3, ge=1, le=10, description="Maximum hops for path tracing")
    folder: str | None = Field(default=None, description="Limit the scan to this folder")


class GraphAnalysisResult(BaseModel):
    """Outcome of one graph analysis operation.

    Only the fields relevant to the operation are populated.
    """

    operation: GraphOperation
    note_path: str | None = None
    target_path: str | None = None
    connections: list[Connection] = Field(default_factory=list)
    notes: list[NoteInfo] = Field(default_factory=list)
    path: list[str] = Field(default_factory=list)
    max_depth: int | None = None
    tag_relationships: list[TagRelationship] = Field(default_factory=list)
    tag_distribution: dict[str, int] = Field(default_factory=dict)
    statistics: GraphStatistics | None = None
    files_searched: int = 0
    truncated: bool = False
