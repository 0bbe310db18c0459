"""Tests for the similarity heuristics and the smart_linking tool."""

from pathlib import Path

import pytest

from vault_agent.dependencies import ChatDependencies, VaultClient
from vault_agent.linking.models import BrokenLink, SmartLinkingParams, TextPosition
from vault_agent.linking.similarity import (
    calculate_similarity,
    concept_importance,
    extract_concepts,
    extract_keywords,
    find_mentions,
    normalize_tag_name,
    relevant_context,
)
from vault_agent.linking.tools import run_smart_linking, smart_linking

NOTES = {
    "Graph Theory.md": "Graph theory studies nodes and edges in networks.",
    "Databases.md": "Graph databases store nodes and edges for fast traversal.",
    "Cooking.md": "Recipes for pasta and bread.",
    "Journal.md": "Today I read about Graph Theory and [[Databases]]. Also [[Missing Note]].",
    "Archive/Old.md": "Graph theory old notes about nodes and edges",
}


@pytest.fixture
def sample_vault(tmp_path: Path) -> Path:
    """Write NOTES to a temporary vault."""
    (tmp_path / "Archive").mkdir()
    for path, text in NOTES.items():
        (tmp_path / path).write_text(text)
    return tmp_path


@pytest.fixture
def deps(sample_vault: Path) -> ChatDependencies:
    return ChatDependencies(vault=VaultClient(vault_path=sample_vault), trace_id="test-linking")


# =============================================================================
# Heuristic Tests
# =============================================================================


class TestKeywordsAndConcepts:
    """Tests for keyword and concept extraction."""

    def test_keywords_by_frequency(self) -> None:
        """Test short words and stop words are dropped."""
        assert extract_keywords("Graph theory and graph databases") == [
            "graph",
            "theory",
            "databases",
        ]

    def test_keywords_strip_markdown(self) -> None:
        """Test markdown punctuation does not stick to words."""
        assert extract_keywords("[[Graph]] **graph** `code`") == ["graph", "code"]

    def test_keyword_limit(self) -> None:
        """Test the keyword limit."""
        assert len(extract_keywords("alpha bravo charlie delta", limit=2)) == 2

    def test_concepts(self) -> None:
        """Test capitalised phrases are counted."""
        counts = extract_concepts("Machine Learning is fun. Machine Learning again.")

        assert counts == {"Machine Learning": 2}

    def test_normalize_tag_name(self) -> None:
        """Test tag normalisation and length bounds."""
        assert normalize_tag_name("Machine Learning") == "#machine-learning"
        assert normalize_tag_name("C++ & Rust!") == "#c-rust"
        assert normalize_tag_name("AI") is None
        assert normalize_tag_name("x" * 30) is None

    def test_concept_importance(self) -> None:
        """Test frequency, connectivity and length all contribute."""
        assert concept_importance("Graph", 5, 0) == pytest.approx(20.0)
        assert concept_importance("Graph Theory", 2, 3) == pytest.approx(58.0)


class TestSimilarity:
    """Tests for calculate_similarity() and helpers."""

    def test_identical_content(self) -> None:
        """Test identical text scores 1."""
        assert calculate_similarity("a b c", "a b c", []) == 1.0

    def test_empty_content(self) -> None:
        """Test empty text scores 0."""
        assert calculate_similarity("", "", []) == 0.0

    def test_capped_at_one(self) -> None:
        """Test the keyword boost never pushes the score above 1."""
        assert calculate_similarity("graph theory", "graph theory", ["graph", "theory"]) == 1.0

    def test_asymmetric(self) -> None:
        """Test the keyword boost depends on which side supplied keywords."""
        long_text = "graph databases store nodes"
        short_text = "graph"

        forward = calculate_similarity(long_text, short_text, extract_keywords(long_text))
        reverse = calculate_similarity(short_text, long_text, extract_keywords(short_text))

        assert forward == pytest.approx(0.325)
        assert reverse == pytest.approx(0.55)

    @pytest.mark.parametrize(
        ("first", "second"),
        [
            ("graph theory nodes", "cooking recipes"),
            ("graph graph graph", "graph"),
            ("nodes and edges", "Edges AND nodes and more"),
        ],
    )
    def test_bounds(self, first: str, second: str) -> None:
        """Test scores stay within [0, 1]."""
        score = calculate_similarity(first, second, extract_keywords(first))

        assert 0.0 <= score <= 1.0

    def test_find_mentions_whole_word(self) -> None:
        """Test mentions are case-insensitive whole words."""
        text = "Read Graph Theory and graph theory notes"

        assert find_mentions(text, "Graph Theory") == [(5, 17), (22, 34)]
        assert find_mentions("Graphs galore", "Graph") == []

    def test_find_mentions_name_ending_in_punctuation(self) -> None:
        """Test names that start or end with a non-word character still match."""
        assert find_mentions("See Notes (old) for context", "Notes (old)") == [(4, 15)]
        assert find_mentions("Ask (draft) Alice", "(draft)") == [(4, 11)]
        assert find_mentions("xNotes (old)", "Notes (old)") == []

    def test_relevant_context(self) -> None:
        """Test context falls back to the start of the content."""
        assert relevant_context("nothing here", ["absent"]) == "nothing here"
        assert "needle" in relevant_context("x" * 200 + " needle " + "y" * 200, ["needle"])


# =============================================================================
# Operation Tests
# =============================================================================


class TestSmartLinkingOperations:
    """Tests for run_smart_linking() over a sample vault."""

    @pytest.mark.asyncio
    async def test_content_suggestions(self, deps: ChatDependencies) -> None:
        """Test similar notes rank first and dissimilar ones are filtered."""
        params = SmartLinkingParams(
            operation="suggest_links_for_content",
            content="Graph theory nodes edges",
            similarity_threshold=0.1,
            exclude_folders=["Archive"],
        )
        result = await run_smart_linking(deps, params)
        targets = [s.target_note for s in result.suggestions]

        assert targets[0] == "Graph Theory.md"
        assert result.suggestions[0].confidence == pytest.approx(0.8)
        assert result.suggestions[0].suggested_text == "[[Graph Theory]]"
        assert "Cooking.md" not in targets
        assert "Archive/Old.md" not in targets
        assert result.files_searched == 4

    @pytest.mark.asyncio
    async def test_link_opportunities(self, deps: ChatDependencies) -> None:
        """Test exact unlinked mentions become high-confidence suggestions."""
        params = SmartLinkingParams(operation="find_link_opportunities", note_path="Journal")
        result = await run_smart_linking(deps, params)

        assert len(result.suggestions) == 1
        suggestion = result.suggestions[0]
        assert suggestion.target_note == "Graph Theory.md"
        assert suggestion.suggestion_type == "keyword_match"
        assert suggestion.confidence == 0.9
        assert suggestion.position == TextPosition(start=19, end=31)

    @pytest.mark.asyncio
    async def test_link_opportunities_include_existing(self, deps: ChatDependencies) -> None:
        """Test already linked notes are offered when requested."""
        params = SmartLinkingParams(
            operation="find_link_opportunities", note_path="Journal", include_existing_links=True
        )
        result = await run_smart_linking(deps, params)

        assert {s.target_note for s in result.suggestions} == {"Graph Theory.md", "Databases.md"}

    @pytest.mark.asyncio
    async def test_concepts(self, deps: ChatDependencies) -> None:
        """Test concepts are ranked with related notes and tags."""
        params = SmartLinkingParams(
            operation="analyze_linkable_concepts",
            content="Graph Theory is neat. Graph Theory again. Cooking too.",
        )
        result = await run_smart_linking(deps, params)
        top = result.concepts[0]

        assert top.concept == "Graph Theory"
        assert top.frequency == 2
        assert top.related_notes == ["Archive/Old.md", "Graph Theory.md", "Journal.md"]
        assert top.suggested_tags == ["#graph-theory"]
        assert result.statistics.concepts_analyzed == 2

    @pytest.mark.asyncio
    async def test_backlinks(self, deps: ChatDependencies) -> None:
        """Test notes similar to the target are suggested as backlink sources."""
        params = SmartLinkingParams(operation="suggest_backlinks", note_path="Graph Theory")
        result = await run_smart_linking(deps, params)
        targets = [s.target_note for s in result.suggestions]

        assert targets[0] == "Archive/Old.md"
        assert "Databases.md" in targets
        assert "Cooking.md" not in targets
        assert all(s.suggested_text == "[[Graph Theory]]" for s in result.suggestions)

    @pytest.mark.asyncio
    async def test_backlinks_skip_linking_notes(self, deps: ChatDependencies, sample_vault: Path) -> None:
        """Test notes that already link to the target are skipped."""
        (sample_vault / "Databases.md").write_text(NOTES["Databases.md"] + " See [[Graph Theory]].")
        params = SmartLinkingParams(operation="suggest_backlinks", note_path="Graph Theory")
        result = await run_smart_linking(deps, params)

        assert "Databases.md" not in [s.target_note for s in result.suggestions]

    @pytest.mark.asyncio
    async def test_recommend_tags(self, deps: ChatDependencies) -> None:
        """Test existing tags are not recommended again."""
        params = SmartLinkingParams(
            operation="recommend_tags",
            content="Machine Learning models #models\n\nMachine Learning is great",
        )
        result = await run_smart_linking(deps, params)

        assert result.tags == ["#machine", "#learning", "#great", "#machine-learning"]

    @pytest.mark.asyncio
    async def test_broken_links_vault_wide(self, deps: ChatDependencies) -> None:
        """Test only unresolvable wikilinks are reported."""
        params = SmartLinkingParams(operation="find_broken_links")
        result = await run_smart_linking(deps, params)

        assert result.broken_links == [BrokenLink(source="Journal.md", target="Missing Note", line=1)]
        assert result.files_searched == 5

    @pytest.mark.asyncio
    async def test_broken_links_resolve_bare_names(self, deps: ChatDependencies) -> None:
        """Test links by bare note name resolve into folders."""
        params = SmartLinkingParams(operation="find_broken_links", content="See [[Old]]\nand [[Nope]]")
        result = await run_smart_linking(deps, params)

        assert result.broken_links == [BrokenLink(source="(content)", target="Nope", line=2)]

    @pytest.mark.asyncio
    async def test_get_link_suggestions_one_per_note(self, deps: ChatDependencies) -> None:
        """Test a note found both ways appears once with the best confidence."""
        params = SmartLinkingParams(
            operation="get_link_suggestions", note_path="Journal", similarity_threshold=0.1
        )
        result = await run_smart_linking(deps, params)
        graph_theory = [s for s in result.suggestions if s.target_note == "Graph Theory.md"]

        assert len(graph_theory) == 1
        assert graph_theory[0].suggestion_type == "keyword_match"
        assert result.suggestions[0].target_note == "Graph Theory.md"
        assert "Databases.md" not in [s.target_note for s in result.suggestions]


# =============================================================================
# Tool Tests
# =============================================================================


class TestSmartLinkingTool:
    """Tests for the smart_linking tool output."""

    @pytest.mark.asyncio
    async def test_broken_links_output(self, make_ctx, sample_vault: Path) -> None:
        """Test broken links are listed with source and line."""
        result = await smart_linking(make_ctx(sample_vault), operation="find_broken_links")

        assert "**Broken Links** (1)" in result
        assert "- Journal.md:1 → [[Missing Note]]" in result

    @pytest.mark.asyncio
    async def test_opportunities_output(self, make_ctx, sample_vault: Path) -> None:
        """Test suggestion formatting."""
        result = await smart_linking(
            make_ctx(sample_vault), operation="find_link_opportunities", note_path="Journal"
        )

        assert "**Link Suggestions for Journal.md** (1)" in result
        assert "1. **Graph Theory** (keyword_match, 90%)" in result
        assert "1 candidate(s), 1 high confidence" in result

    @pytest.mark.asyncio
    async def test_missing_source(self, make_ctx, sample_vault: Path) -> None:
        """Test operations without a note or content."""
        result = await smart_linking(make_ctx(sample_vault), operation="recommend_tags")

        assert result == "Error: 'note_path' or 'content' required for recommend_tags"

    @pytest.mark.asyncio
    async def test_missing_note(self, make_ctx, sample_vault: Path) -> None:
        """Test a missing note is reported."""
        result = await smart_linking(
            make_ctx(sample_vault), operation="recommend_tags", note_path="Nope"
        )

        assert result == "Error: File not found: Nope.md"

    @pytest.mark.asyncio
    async def test_invalid_threshold(self, make_ctx, sample_vault: Path) -> None:
        """Test out-of-range thresholds are rejected."""
        result = await smart_linking(
            make_ctx(sample_vault), operation="suggest_links_for_content", content="x", similarity_threshold=2
        )

        assert result.startswith("Error: invalid parameters:")

    @pytest.mark.asyncio
    async def test_unknown_operation(self, make_ctx, sample_vault: Path) -> None:
        """Test unknown operations list the valid ones."""
        result = await smart_linking(make_ctx(sample_vault), operation="link_everything")

        assert result.startswith("Unknown operation: link_everything. Valid operations:")
