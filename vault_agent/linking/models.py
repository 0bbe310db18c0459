"""Pydantic models for link and tag suggestions."""

from typing import Literal

from pydantic import BaseModel, Field

SuggestionType = Literal[
    "content_similarity", "keyword_match", "backlink_opportunity", "tag_similarity"
]
LinkingOperation = Literal[
    "suggest_links_for_content",
    "find_link_opportunities",
    "analyze_linkable_concepts",
    "suggest_backlinks",
    "recommend_tags",
    "find_broken_links",
    "get_link_suggestions",
]


class TextPosition(BaseModel):
    """Character span of a mention within the analysed text."""

    start: int = Field(..., ge=0)
    end: int = Field(..., ge=0)


class LinkSuggestion(BaseModel):
    """A ranked link recommendation.

    Confidence is only comparable between suggestions of the same type;
    it is not a calibrated probability.

    Attributes:
        target_note: Note the suggestion points at
        suggestion_type: Strategy that produced it
        confidence: Score in [0, 1]
        reason: Human-readable explanation
        context: Snippet supporting the suggestion
        suggested_text: Replacement text such as '[[Note]]'
        position: Where in the source text the mention was found
    """

    target_note: str
    suggestion_type: SuggestionType
    confidence: float = Field(..., ge=0.0, le=1.0)
    reason: str
    context: str | None = None
    suggested_text: str | None = None
    position: TextPosition | None = None


class ConceptAnalysis(BaseModel):
    """A capitalised phrase worth linking or tagging.

    Attributes:
        concept: The phrase as written
        frequency: Occurrences in the analysed text
        importance: Weighted frequency/connectivity score, 0-100 range
        related_notes: Up to five notes mentioning the concept
        suggested_tags: Tag names derived from the concept
    """

    concept: str
    frequency: int = Field(..., ge=1)
    importance: float = Field(default=0.0, ge=0.0)
    related_notes: list[str] = Field(default_factory=list)
    suggested_tags: list[str] = Field(default_factory=list)


class BrokenLink(BaseModel):
    """A wikilink that does not resolve to any note."""

    source: str
    target: str
    line: int = Field(..., ge=1)


class LinkingStatistics(BaseModel):
    """Counts reported alongside suggestions."""

    total_suggestions: int = 0
    high_confidence_suggestions: int = 0
    concepts_analyzed: int = 0
    existing_links: int = 0


class SmartLinkingParams(BaseModel):
    """Parameters for the smart_linking tool."""

    operation: LinkingOperation
    note_path: str | None = Field(default=None, description="Note to analyse")
    content: str | None = Field(default=None, description="Raw text to analyse instead of a note")
    max_suggestions: int = Field(default=10, ge=1, le=50)
    similarity_threshold: float = Field(default=0.3, ge=0.0, le=1.0)
    include_existing_links: bool = False
    context_window: int = Field(default=150, ge=20, le=1000)
    exclude_folders: list[str] = Field(default_factory=list)
    include_tag_suggestions: bool = True


class SmartLinkingResult(BaseModel):
    """Outcome of one smart linking operation."""

    operation: LinkingOperation
    note_path: str | None = None
    suggestions: list[LinkSuggestion] = Field(default_factory=list)
    concepts: list[ConceptAnalysis] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    broken_links: list[BrokenLink] = Field(default_factory=list)
    statistics: LinkingStatistics = Field(default_factory=LinkingStatistics)
    similarity_threshold: float | None = None
    files_searched: int = 0
    truncated: bool = False
