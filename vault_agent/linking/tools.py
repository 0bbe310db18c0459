"""Smart linking tool for the chat agent.

This module implements the smart_linking tool, which recommends links,
backlinks and tags by comparing a note (or a piece of raw text) against
the rest of the vault, and reports wikilinks that point at nothing.

Every vault-wide comparison goes through a bounded scan, so on large
vaults suggestions are drawn from the first notes listed and the result
says so.

Example usage by the agent:
    smart_linking(operation="find_link_opportunities", note_path="Daily/2024-06-01")
    smart_linking(operation="suggest_links_for_content", content="Notes on GraphQL caching")
    smart_linking(operation="find_broken_links")
"""

import math

from pydantic import ValidationError
from pydantic_ai import RunContext

from vault_agent.dependencies import (
    ChatDependencies,
    VaultError,
    VaultValidationError,
    logger,
)
from vault_agent.linking.models import (
    BrokenLink,
    ConceptAnalysis,
    LinkingStatistics,
    LinkSuggestion,
    SmartLinkingParams,
    SmartLinkingResult,
    TextPosition,
)
from vault_agent.linking.similarity import (
    calculate_similarity,
    concept_importance,
    context_around,
    extract_concepts,
    extract_keywords,
    find_mentions,
    normalize_tag_name,
    relevant_context,
)
from vault_agent.markdown.notes import normalize_path, note_name, parse_note, strip_extension
from vault_agent.markdown.tokenizer import tokenize
from vault_agent.scan import VaultScan, is_excluded, scan_vault

VALID_OPERATIONS = (
    "suggest_links_for_content, find_link_opportunities, analyze_linkable_concepts, "
    "suggest_backlinks, recommend_tags, find_broken_links, get_link_suggestions"
)

HIGH_CONFIDENCE = 0.7
MENTION_CONFIDENCE = 0.9
MAX_RELATED_NOTES = 5

# =============================================================================
# Helper Functions
# =============================================================================


async def _load_source(deps: ChatDependencies, params: SmartLinkingParams) -> tuple[str | None, str]:
    """Return (note path or None, text) for the note or content being analysed.

    Raises:
        VaultValidationError: If neither note_path nor content is given
        VaultNotFoundError: If note_path does not exist
    """
    if params.note_path:
        path = normalize_path(params.note_path)
        return path, await deps.vault.read_file(path)
    if params.content:
        return None, params.content
    raise VaultValidationError(f"'note_path' or 'content' required for {params.operation}")


def _linked_targets(text: str) -> set[str]:
    """Lower-cased targets of every wikilink and internal markdown link."""
    return {
        t.value.lower() for t in tokenize(text) if t.kind in ("wikilink", "markdown_link")
    }


def _is_linked(path: str, linked: set[str]) -> bool:
    return strip_extension(path).lower() in linked or note_name(path).lower() in linked


async def _scan(
    deps: ChatDependencies,
    params: SmartLinkingParams,
    source_path: str | None,
    max_files: int | None = None,
) -> VaultScan:
    return await scan_vault(
        deps.vault,
        max_files=max_files or deps.limits.max_files,
        timeout_seconds=deps.limits.timeout_seconds,
        trace_id=deps.trace_id,
        exclude_folders=params.exclude_folders,
        skip={source_path} if source_path else None,
        cache=deps.cache,
    )


def _ranked(suggestions: list[LinkSuggestion], limit: int) -> list[LinkSuggestion]:
    return sorted(suggestions, key=lambda s: s.confidence, reverse=True)[:limit]


def _statistics(
    suggestions: list[LinkSuggestion], total: int | None = None, concepts: int = 0, existing: int = 0
) -> LinkingStatistics:
    return LinkingStatistics(
        total_suggestions=len(suggestions) if total is None else total,
        high_confidence_suggestions=sum(1 for s in suggestions if s.confidence > HIGH_CONFIDENCE),
        concepts_analyzed=concepts,
        existing_links=existing,
    )


def _content_suggestions(
    source: str, scan: VaultScan, params: SmartLinkingParams, linked: set[str]
) -> list[LinkSuggestion]:
    """Score every scanned note against the source text."""
    keywords = extract_keywords(source)
    suggestions = []
    for path, text in scan.notes.items():
        if not params.include_existing_links and _is_linked(path, linked):
            continue
        score = calculate_similarity(source, text, keywords)
        if score < params.similarity_threshold:
            continue
        suggestions.append(
            LinkSuggestion(
                target_note=path,
                suggestion_type="content_similarity",
                confidence=score,
                reason=f"Content similarity score: {round(score * 100)}%",
                context=relevant_context(text, keywords),
                suggested_text=f"[[{note_name(path)}]]",
            )
        )
    return suggestions


async def _mention_suggestions(
    deps: ChatDependencies,
    source_path: str | None,
    source: str,
    params: SmartLinkingParams,
    linked: set[str],
) -> list[LinkSuggestion]:
    """Unlinked notes whose name appears verbatim in the source text.

    Only note names are compared, so the whole listing is used without
    reading any note bodies.
    """
    suggestions = []
    for path in await deps.vault.list_files():
        if path == source_path or is_excluded(path, params.exclude_folders):
            continue
        if not params.include_existing_links and _is_linked(path, linked):
            continue
        name = note_name(path)
        for start, end in find_mentions(source, name):
            suggestions.append(
                LinkSuggestion(
                    target_note=path,
                    suggestion_type="keyword_match",
                    confidence=MENTION_CONFIDENCE,
                    reason=f'Exact mention of note name "{name}"',
                    context=context_around(source, start, params.context_window),
                    suggested_text=f"[[{name}]]",
                    position=TextPosition(start=start, end=end),
                )
            )
    return suggestions


# =============================================================================
# Operation Handlers
# =============================================================================


async def _suggest_links_for_content(
    deps: ChatDependencies, params: SmartLinkingParams
) -> SmartLinkingResult:
    path, source = await _load_source(deps, params)
    linked = _linked_targets(source)
    scan = await _scan(deps, params, path)
    suggestions = _content_suggestions(source, scan, params, linked)
    ranked = _ranked(suggestions, params.max_suggestions)
    return SmartLinkingResult(
        operation=params.operation,
        note_path=path,
        suggestions=ranked,
        statistics=_statistics(ranked, total=len(suggestions), existing=len(linked)),
        similarity_threshold=params.similarity_threshold,
        files_searched=scan.files_searched,
        truncated=scan.truncated,
    )


async def _find_link_opportunities(
    deps: ChatDependencies, params: SmartLinkingParams
) -> SmartLinkingResult:
    path, source = await _load_source(deps, params)
    linked = _linked_targets(source)
    suggestions = await _mention_suggestions(deps, path, source, params, linked)
    limited = suggestions[: params.max_suggestions]
    return SmartLinkingResult(
        operation=params.operation,
        note_path=path,
        suggestions=limited,
        statistics=_statistics(limited, total=len(suggestions), existing=len(linked)),
    )


async def _analyze_linkable_concepts(
    deps: ChatDependencies, params: SmartLinkingParams
) -> SmartLinkingResult:
    path, source = await _load_source(deps, params)
    counts = extract_concepts(source)
    scan = await _scan(deps, params, path, max_files=deps.limits.concept_max_files)
    lowered = {p: text.lower() for p, text in scan.notes.items()}

    concepts = []
    for concept, frequency in counts.items():
        needle = concept.lower()
        related = [p for p, text in lowered.items() if needle in text][:MAX_RELATED_NOTES]
        tags = []
        if params.include_tag_suggestions:
            tag = normalize_tag_name(concept)
            tags = [tag] if tag else []
        concepts.append(
            ConceptAnalysis(
                concept=concept,
                frequency=frequency,
                importance=concept_importance(concept, frequency, len(related)),
                related_notes=related,
                suggested_tags=tags,
            )
        )
    concepts.sort(key=lambda c: c.importance, reverse=True)

    return SmartLinkingResult(
        operation=params.operation,
        note_path=path,
        concepts=concepts[: params.max_suggestions],
        statistics=LinkingStatistics(concepts_analyzed=len(concepts)),
        files_searched=scan.files_searched,
        truncated=scan.truncated,
    )


async def _suggest_backlinks(deps: ChatDependencies, params: SmartLinkingParams) -> SmartLinkingResult:
    if not params.note_path:
        raise VaultValidationError("'note_path' required for suggest_backlinks")
    path, target = await _load_source(deps, params)
    keywords = extract_keywords(target)
    scan = await _scan(deps, params, path)
    name = note_name(path)

    suggestions = []
    for source_path, text in scan.notes.items():
        if _is_linked(path, _linked_targets(text)):
            continue
        score = calculate_similarity(target, text, keywords)
        if score < params.similarity_threshold:
            continue
        suggestions.append(
            LinkSuggestion(
                target_note=source_path,
                suggestion_type="backlink_opportunity",
                confidence=score,
                reason=f"Could benefit from linking to {name} (similarity: {round(score * 100)}%)",
                context=relevant_context(text, keywords),
                suggested_text=f"[[{name}]]",
            )
        )

    ranked = _ranked(suggestions, params.max_suggestions)
    return SmartLinkingResult(
        operation=params.operation,
        note_path=path,
        suggestions=ranked,
        statistics=_statistics(ranked, total=len(suggestions)),
        similarity_threshold=params.similarity_threshold,
        files_searched=scan.files_searched,
        truncated=scan.truncated,
    )


async def _recommend_tags(deps: ChatDependencies, params: SmartLinkingParams) -> SmartLinkingResult:
    path, source = await _load_source(deps, params)
    existing = {f"#{t.value}".lower() for t in tokenize(source) if t.kind == "tag"}
    existing |= {f"#{t}".lower() for t in parse_note(source).tags}

    candidates = extract_keywords(source)[:20] + list(extract_concepts(source))[:10]
    tags: list[str] = []
    for text in candidates:
        tag = normalize_tag_name(text)
        if tag and tag not in existing and tag not in tags:
            tags.append(tag)

    return SmartLinkingResult(
        operation=params.operation,
        note_path=path,
        tags=tags[: params.max_suggestions],
        files_searched=1 if path else 0,
    )


async def _find_broken_links(deps: ChatDependencies, params: SmartLinkingParams) -> SmartLinkingResult:
    listed = await deps.vault.list_files()
    known = {strip_extension(p).lower() for p in listed} | {note_name(p).lower() for p in listed}

    if params.note_path or params.content:
        path, text = await _load_source(deps, params)
        sources = {path or "(content)": text}
        files_searched, truncated = 1, False
    else:
        scan = await _scan(deps, params, None)
        sources = scan.notes
        files_searched, truncated = scan.files_searched, scan.truncated

    broken = [
        BrokenLink(source=source, target=token.value, line=token.line)
        for source, text in sources.items()
        for token in tokenize(text)
        if token.kind == "wikilink" and strip_extension(token.value).lower() not in known
    ]
    return SmartLinkingResult(
        operation=params.operation,
        note_path=params.note_path and normalize_path(params.note_path),
        broken_links=broken,
        files_searched=files_searched,
        truncated=truncated,
    )


async def _get_link_suggestions(
    deps: ChatDependencies, params: SmartLinkingParams
) -> SmartLinkingResult:
    """Blend content similarity with exact mentions, one suggestion per note."""
    path, source = await _load_source(deps, params)
    linked = _linked_targets(source)
    scan = await _scan(deps, params, path)

    content = _ranked(
        _content_suggestions(source, scan, params, linked),
        math.ceil(params.max_suggestions * 0.6),
    )
    mentions = (await _mention_suggestions(deps, path, source, params, linked))[
        : math.ceil(params.max_suggestions * 0.4)
    ]

    best: dict[str, LinkSuggestion] = {}
    for suggestion in content + mentions:
        current = best.get(suggestion.target_note)
        if current is None or suggestion.confidence > current.confidence:
            best[suggestion.target_note] = suggestion

    ranked = _ranked(list(best.values()), params.max_suggestions)
    return SmartLinkingResult(
        operation=params.operation,
        note_path=path,
        suggestions=ranked,
        statistics=_statistics(ranked, total=len(content) + len(mentions), existing=len(linked)),
        similarity_threshold=params.similarity_threshold,
        files_searched=scan.files_searched,
        truncated=scan.truncated,
    )


_HANDLERS = {
    "suggest_links_for_content": _suggest_links_for_content,
    "find_link_opportunities": _find_link_opportunities,
    "analyze_linkable_concepts": _analyze_linkable_concepts,
    "suggest_backlinks": _suggest_backlinks,
    "recommend_tags": _recommend_tags,
    "find_broken_links": _find_broken_links,
    "get_link_suggestions": _get_link_suggestions,
}


async def run_smart_linking(deps: ChatDependencies, params: SmartLinkingParams) -> SmartLinkingResult:
    """Dispatch one smart linking operation.

    Raises:
        VaultValidationError: If neither a note nor content is supplied
        VaultNotFoundError: If the referenced note does not exist
    """
    return await _HANDLERS[params.operation](deps, params)


# =============================================================================
# Formatting Functions
# =============================================================================


def _format_suggestion(index: int, suggestion: LinkSuggestion) -> str:
    lines = [
        f"{index}. **{strip_extension(suggestion.target_note)}** "
        f"({suggestion.suggestion_type}, {suggestion.confidence:.0%})",
        f"   {suggestion.reason}",
    ]
    if suggestion.suggested_text:
        lines.append(f"   Suggested: {suggestion.suggested_text}")
    if suggestion.context:
        lines.append(f"   Context: {suggestion.context}")
    return "\n".join(lines)


def format_linking_result(result: SmartLinkingResult) -> str:
    """Format a smart linking result for the LLM."""
    op = result.operation
    subject = result.note_path or "the provided content"
    lines: list[str] = []

    if op == "analyze_linkable_concepts":
        if not result.concepts:
            return f"No linkable concepts found in {subject}."
        lines.append(f"**Linkable Concepts in {subject}** ({result.statistics.concepts_analyzed})")
        lines.append("")
        for i, concept in enumerate(result.concepts, 1):
            lines.append(
                f"{i}. **{concept.concept}**: {concept.frequency} mention(s), "
                f"importance {concept.importance:.0f}"
            )
            if concept.related_notes:
                related = ", ".join(f"[[{note_name(p)}]]" for p in concept.related_notes)
                lines.append(f"   Related: {related}")
            if concept.suggested_tags:
                lines.append(f"   Tags: {', '.join(concept.suggested_tags)}")

    elif op == "recommend_tags":
        if not result.tags:
            return f"No new tags to recommend for {subject}."
        lines.append(f"**Recommended Tags for {subject}**")
        lines.append("")
        lines.extend(f"- {tag}" for tag in result.tags)

    elif op == "find_broken_links":
        if not result.broken_links:
            lines.append("No broken links found.")
        else:
            lines.append(f"**Broken Links** ({len(result.broken_links)})")
            lines.append("")
            lines.extend(
                f"- {link.source}:{link.line} → [[{link.target}]]" for link in result.broken_links
            )

    else:
        if not result.suggestions:
            lines.append(f"No link suggestions found for {subject}.")
        else:
            title = "Backlink Suggestions" if op == "suggest_backlinks" else "Link Suggestions"
            lines.append(f"**{title} for {subject}** ({len(result.suggestions)})")
            lines.append("")
            lines.extend(_format_suggestion(i, s) for i, s in enumerate(result.suggestions, 1))
            stats = result.statistics
            lines.append("")
            lines.append(
                f"{stats.total_suggestions} candidate(s), "
                f"{stats.high_confidence_suggestions} high confidence"
            )

    if result.files_searched:
        lines.append("")
        lines.append(f"Files searched: {result.files_searched}")
    if result.truncated:
        lines.append("(Scan limit reached: results may be incomplete)")
    return "\n".join(lines)


# =============================================================================
# Main Tool Function
# =============================================================================


async def smart_linking(
    ctx: RunContext[ChatDependencies],
    operation: str,
    note_path: str | None = None,
    content: str | None = None,
    max_suggestions: int = 10,
    similarity_threshold: float = 0.3,
    include_existing_links: bool = False,
    context_window: int = 150,
    exclude_folders: list[str] | None = None,
    include_tag_suggestions: bool = True,
) -> str:
    """Suggest links, backlinks and tags, or find broken links.

    Args:
        ctx: Context with vault access and trace_id for logging
        operation: 'suggest_links_for_content', 'find_link_opportunities',
            'analyze_linkable_concepts', 'suggest_backlinks',
            'recommend_tags', 'find_broken_links' or 'get_link_suggestions'
        note_path: Note to analyse
        content: Raw text to analyse instead of a note
        max_suggestions: Maximum suggestions to return (1-50)
        similarity_threshold: Minimum similarity score (0-1)
        include_existing_links: Also suggest notes that are already linked
        context_window: Characters of context around exact mentions
        exclude_folders: Folders to leave out of suggestions
        include_tag_suggestions: Suggest tags for analysed concepts

    Returns:
        Formatted suggestions or an error message
    """
    logger.info(
        "smart_linking_called",
        extra={
            "operation": operation,
            "note_path": note_path,
            "has_content": content is not None,
            "trace_id": ctx.deps.trace_id,
        },
    )

    try:
        params = SmartLinkingParams(
            operation=operation,
            note_path=note_path,
            content=content,
            max_suggestions=max_suggestions,
            similarity_threshold=similarity_threshold,
            include_existing_links=include_existing_links,
            context_window=context_window,
            exclude_folders=exclude_folders or [],
            include_tag_suggestions=include_tag_suggestions,
        )
    except ValidationError as e:
        if any(err["loc"] == ("operation",) for err in e.errors()):
            return f"Unknown operation: {operation}. Valid operations: {VALID_OPERATIONS}"
        return f"Error: invalid parameters: {e.errors()[0]['msg']}"

    try:
        result = await run_smart_linking(ctx.deps, params)

        logger.info(
            "smart_linking_completed",
            extra={
                "operation": operation,
                "suggestions": len(result.suggestions),
                "files_searched": result.files_searched,
                "trace_id": ctx.deps.trace_id,
            },
        )
        return format_linking_result(result)

    except VaultError as e:
        return f"Error: {e}"
    except Exception as e:
        logger.error(
            "smart_linking_failed",
            extra={"operation": operation, "error": str(e), "trace_id": ctx.deps.trace_id},
            exc_info=True,
        )
        return f"Error performing {operation}: {str(e)}"
