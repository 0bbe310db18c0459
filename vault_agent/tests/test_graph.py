"""Tests for link graph construction, queries and the graph_analysis tool."""

from pathlib import Path

import pytest

from vault_agent.dependencies import ScanLimits
from vault_agent.graph.builder import LinkGraph, extract_connections, same_folder_siblings
from vault_agent.graph.queries import (
    analyze_tag_relationships,
    find_hub_notes,
    find_orphaned_notes,
    get_backlinks,
    shortest_path,
    vault_statistics,
)
from vault_agent.graph.tools import graph_analysis
from vault_agent.scan import VaultScan

NOTES = {
    "A.md": "Links to [[B]] and [[C]] #alpha #beta",
    "B.md": "Back to [[C]]",
    "C.md": "# C\n#alpha",
    "D.md": "Lonely note",
}


def _graph(notes: dict[str, str] | None = None, include_tags: bool = True) -> LinkGraph:
    return LinkGraph.build(VaultScan(notes=dict(notes or NOTES)), include_tags=include_tags)


@pytest.fixture
def sample_vault(tmp_path: Path) -> Path:
    """Write NOTES to a temporary vault."""
    for path, text in NOTES.items():
        (tmp_path / path).write_text(text)
    return tmp_path


# =============================================================================
# Builder Tests
# =============================================================================


class TestExtractConnections:
    """Tests for extract_connections()."""

    def test_links_and_tags(self) -> None:
        """Test wikilinks and tags become typed connections in order."""
        connections = extract_connections("A.md", NOTES["A.md"])

        assert [(c.target, c.type) for c in connections] == [
            ("B", "wikilink"),
            ("C", "wikilink"),
            ("#alpha", "tag"),
            ("#beta", "tag"),
        ]
        assert all(c.source == "A.md" for c in connections)

    def test_tags_excluded(self) -> None:
        """Test tag connections can be turned off."""
        connections = extract_connections("A.md", NOTES["A.md"], include_tags=False)

        assert [c.type for c in connections] == ["wikilink", "wikilink"]

    def test_markdown_link_and_context(self) -> None:
        """Test markdown links carry surrounding context."""
        connections = extract_connections("x.md", "See [the plan](Projects/Plan.md) today")

        assert connections[0].target == "Projects/Plan"
        assert connections[0].type == "markdown_link"
        assert "[the plan](Projects/Plan.md)" in connections[0].context

    def test_folder_siblings(self) -> None:
        """Test notes in the same folder are siblings; root notes have none."""
        paths = ["P/a.md", "P/b.md", "Q/c.md", "root.md"]

        assert same_folder_siblings("P/a.md", paths) == ["P/b.md"]
        assert same_folder_siblings("root.md", paths) == []


class TestLinkGraph:
    """Tests for LinkGraph.build()."""

    def test_incoming_relabelled_as_backlinks(self) -> None:
        """Test incoming edges are indexed on the resolved target."""
        graph = _graph()

        assert graph.incoming_count("C.md") == 2
        assert {c.source for c in graph.incoming["C.md"]} == {"A.md", "B.md"}
        assert all(c.type == "backlink" for c in graph.incoming["C.md"])

    def test_adjacency_deduplicated(self) -> None:
        """Test repeated links produce one adjacency entry."""
        graph = _graph({"A.md": "[[B]] [[b]] [[B.md]]", "B.md": ""})

        assert graph.adjacency["A.md"] == ["B.md"]
        assert graph.outgoing_count("A.md") == 3

    def test_resolve_case_insensitive(self) -> None:
        """Test targets resolve by path, path without extension, or name."""
        graph = _graph({"Projects/Plan.md": "", "A.md": ""})

        assert graph.resolve("projects/plan") == "Projects/Plan.md"
        assert graph.resolve("PLAN") == "Projects/Plan.md"
        assert graph.resolve("a.md") == "A.md"
        assert graph.resolve("Missing") is None

    def test_unresolved_links_still_outgoing(self) -> None:
        """Test links to missing notes count as outgoing but add no edge."""
        graph = _graph({"A.md": "[[Nowhere]]"})

        assert graph.outgoing_count("A.md") == 1
        assert graph.adjacency["A.md"] == []

    def test_frontmatter_tags_recorded(self) -> None:
        """Test note tags include frontmatter tags."""
        graph = _graph({"A.md": "---\ntags: [gamma]\n---\nbody #delta"})

        assert graph.tags["A.md"] == ["delta", "gamma"]


# =============================================================================
# Query Tests
# =============================================================================


class TestGraphQueries:
    """Tests for orphan, hub, path, tag and statistics queries."""

    def test_orphans(self) -> None:
        """Test only the unconnected note is orphaned."""
        assert [n.path for n in find_orphaned_notes(_graph())] == ["D.md"]

    def test_single_inbound_link_removes_orphan(self) -> None:
        """Test one link pointing at a note is enough."""
        notes = dict(NOTES, **{"B.md": "Back to [[C]] and [[D]]"})

        assert find_orphaned_notes(_graph(notes)) == []

    def test_folder_structure_connects_siblings(self) -> None:
        """Test notes sharing a folder are not orphans in folder mode."""
        notes = {"P/a.md": "x", "P/b.md": "y", "c.md": "z"}
        graph = _graph(notes)

        assert len(find_orphaned_notes(graph)) == 3
        assert [n.path for n in find_orphaned_notes(graph, include_folder_structure=True)] == [
            "c.md"
        ]

    def test_hubs_sorted(self) -> None:
        """Test hubs meet the threshold and are ordered busiest first."""
        hubs = find_hub_notes(_graph(), min_connections=2)

        assert [(h.path, h.total_connections) for h in hubs] == [
            ("A.md", 4),
            ("C.md", 3),
            ("B.md", 2),
        ]

    def test_hub_counts_without_tags(self) -> None:
        """Test tag links only count when tags are included."""
        hubs = find_hub_notes(_graph(include_tags=False), min_connections=2)

        assert [(h.path, h.total_connections) for h in hubs] == [
            ("A.md", 2),
            ("B.md", 2),
            ("C.md", 2),
        ]

    def test_shortest_path_prefers_direct(self) -> None:
        """Test BFS returns the fewest hops."""
        graph = _graph()

        assert shortest_path(graph.adjacency, "A.md", "C.md") == ["A.md", "C.md"]

    def test_shortest_path_depth_limit(self) -> None:
        """Test paths longer than max_depth are not returned."""
        adjacency = {"A": ["B"], "B": ["C"], "C": ["D"]}

        assert shortest_path(adjacency, "A", "D", max_depth=2) == []
        assert shortest_path(adjacency, "A", "D", max_depth=3) == ["A", "B", "C", "D"]

    def test_shortest_path_same_note_and_direction(self) -> None:
        """Test trivial paths and that links are directed."""
        graph = _graph()

        assert shortest_path(graph.adjacency, "A.md", "A.md") == ["A.md"]
        assert shortest_path(graph.adjacency, "C.md", "A.md") == []

    def test_backlinks(self) -> None:
        """Test backlinks come from every linking note."""
        backlinks = get_backlinks(_graph(), "C.md")

        assert [b.source for b in backlinks] == ["A.md", "B.md"]

    def test_tag_relationships(self) -> None:
        """Test co-occurrence pairs and per-note distribution."""
        relationships, distribution = analyze_tag_relationships(_graph())

        assert [(r.tag_a, r.tag_b, r.count) for r in relationships] == [("alpha", "beta", 1)]
        assert distribution == {"alpha": 2, "beta": 1}

    def test_vault_statistics(self) -> None:
        """Test corpus-wide statistics."""
        stats = vault_statistics(_graph())

        assert stats.total_notes == 4
        assert stats.total_connections == 6
        assert stats.average_connections == 1.5
        assert stats.orphaned_notes == 1
        assert stats.most_connected_note == "A.md"
        assert stats.most_connected_count == 4


# =============================================================================
# Tool Tests
# =============================================================================


class TestGraphAnalysisTool:
    """Tests for the graph_analysis tool."""

    @pytest.mark.asyncio
    async def test_get_note_links(self, make_ctx, sample_vault: Path) -> None:
        """Test outgoing links of one note."""
        result = await graph_analysis(make_ctx(sample_vault), operation="get_note_links", note_path="A")

        assert "**Links from A.md** (4)" in result
        assert "- [[B]] (wikilink)" in result
        assert "- #alpha (tag)" in result

    @pytest.mark.asyncio
    async def test_get_note_links_with_folder(self, make_ctx, sample_vault: Path) -> None:
        """Test folder siblings are listed in folder mode."""
        (sample_vault / "P").mkdir()
        (sample_vault / "P" / "one.md").write_text("text")
        (sample_vault / "P" / "two.md").write_text("text")

        result = await graph_analysis(
            make_ctx(sample_vault),
            operation="get_note_links",
            note_path="P/one",
            include_folder_structure=True,
        )

        assert "[[P/two]] (folder)" in result

    @pytest.mark.asyncio
    async def test_get_backlinks(self, make_ctx, sample_vault: Path) -> None:
        """Test backlinks across the vault."""
        result = await graph_analysis(make_ctx(sample_vault), operation="get_backlinks", note_path="C")

        assert "**Backlinks to C.md** (2)" in result
        assert "Files searched: 4" in result

    @pytest.mark.asyncio
    async def test_orphans(self, make_ctx, sample_vault: Path) -> None:
        """Test orphan listing."""
        result = await graph_analysis(make_ctx(sample_vault), operation="find_orphaned_notes")

        assert "**Orphaned notes** (1)" in result
        assert "(D.md)" in result

    @pytest.mark.asyncio
    async def test_trace_path(self, make_ctx, sample_vault: Path) -> None:
        """Test path tracing reports hops."""
        result = await graph_analysis(
            make_ctx(sample_vault), operation="trace_connection_path", note_path="A", target_path="C"
        )

        assert "**Path** (1 hop(s)):" in result
        assert "[[A]] → [[C]]" in result

    @pytest.mark.asyncio
    async def test_trace_no_path(self, make_ctx, sample_vault: Path) -> None:
        """Test unreachable targets."""
        result = await graph_analysis(
            make_ctx(sample_vault), operation="trace_connection_path", note_path="D", target_path="A"
        )

        assert result.startswith("No path found from D.md to A.md within 3 hop(s).")

    @pytest.mark.asyncio
    async def test_vault_stats(self, make_ctx, sample_vault: Path) -> None:
        """Test statistics rendering."""
        result = await graph_analysis(make_ctx(sample_vault), operation="get_vault_stats")

        assert "- Notes: 4" in result
        assert "- Most connected: A.md (4 connections)" in result

    @pytest.mark.asyncio
    async def test_truncation_reported(self, make_ctx, sample_vault: Path) -> None:
        """Test a file cap truncates and is reported."""
        ctx = make_ctx(sample_vault, limits=ScanLimits(max_files=2))
        result = await graph_analysis(ctx, operation="get_vault_stats")

        assert "- Notes: 2" in result
        assert "Scan limit reached" in result

    @pytest.mark.asyncio
    async def test_missing_note(self, make_ctx, sample_vault: Path) -> None:
        """Test missing notes are reported as errors."""
        result = await graph_analysis(make_ctx(sample_vault), operation="get_backlinks", note_path="Zed")

        assert result == "Error: Note not found: Zed.md"

    @pytest.mark.asyncio
    async def test_missing_note_path(self, make_ctx, sample_vault: Path) -> None:
        """Test note_path is required for note operations."""
        result = await graph_analysis(make_ctx(sample_vault), operation="get_backlinks")

        assert result == "Error: 'note_path' required for get_backlinks"

    @pytest.mark.asyncio
    async def test_invalid_depth(self, make_ctx, sample_vault: Path) -> None:
        """Test out-of-range parameters are rejected."""
        result = await graph_analysis(
            make_ctx(sample_vault),
            operation="trace_connection_path",
            note_path="A",
            target_path="C",
            max_depth=20,
        )

        assert result.startswith("Error: invalid parameters:")

    @pytest.mark.asyncio
    async def test_unknown_operation(self, make_ctx, sample_vault: Path) -> None:
        """Test unknown operations list the valid ones."""
        result = await graph_analysis(make_ctx(sample_vault), operation="explode")

        assert result.startswith("Unknown operation: explode. Valid operations:")
