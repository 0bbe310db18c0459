"""Graph analysis tool for the chat agent.

This module implements the graph_analysis tool, which answers questions
about how notes connect: outgoing links, backlinks, orphans, hubs, the
shortest link path between two notes, tag co-occurrence and vault-wide
connection statistics.

The tool follows a consolidated multi-operation pattern where a single
tool handles multiple analyses via an `operation` parameter.

Example usage by the agent:
    graph_analysis(operation="get_backlinks", note_path="Projects/API")
    graph_analysis(operation="find_hub_notes", min_connections=3)
    graph_analysis(operation="trace_connection_path", note_path="Inbox",
                   target_path="Archive/2024", max_depth=4)
"""

from pydantic import ValidationError
from pydantic_ai import RunContext

from vault_agent.dependencies import (
    ChatDependencies,
    VaultError,
    VaultNotFoundError,
    VaultValidationError,
    logger,
)
from vault_agent.graph.builder import LinkGraph, extract_connections, same_folder_siblings
from vault_agent.graph.models import (
    Connection,
    GraphAnalysisParams,
    GraphAnalysisResult,
    NoteInfo,
)
from vault_agent.graph.queries import (
    analyze_tag_relationships,
    find_hub_notes,
    find_orphaned_notes,
    get_backlinks,
    shortest_path,
    vault_statistics,
)
from vault_agent.markdown.notes import normalize_path, note_name, strip_extension
from vault_agent.scan import VaultScan, scan_vault

VALID_OPERATIONS = (
    "get_note_links, get_backlinks, find_orphaned_notes, find_hub_notes, "
    "trace_connection_path, analyze_tag_relationships, get_vault_stats"
)

# =============================================================================
# Helper Functions
# =============================================================================


async def _scan(deps: ChatDependencies, params: GraphAnalysisParams) -> VaultScan:
    return await scan_vault(
        deps.vault,
        folder=(params.folder or "").strip("/"),
        max_files=deps.limits.max_files,
        timeout_seconds=deps.limits.timeout_seconds,
        trace_id=deps.trace_id,
        cache=deps.cache,
    )


async def _existing_note(deps: ChatDependencies, note_path: str) -> str:
    """Normalize a note path and make sure the note exists.

    Raises:
        VaultNotFoundError: If the note does not exist
    """
    path = normalize_path(note_path)
    if not await deps.vault.file_exists(path):
        raise VaultNotFoundError(f"Note not found: {path}")
    return path


def _graph_note(graph: LinkGraph, note_path: str) -> str:
    """Resolve a user-supplied note reference against the scanned notes.

    Raises:
        VaultNotFoundError: If no scanned note matches
    """
    path = normalize_path(note_path)
    if path in graph.outgoing:
        return path
    resolved = graph.resolve(note_path)
    if resolved is None:
        raise VaultNotFoundError(f"Note not found among scanned notes: {note_path}")
    return resolved


def _matching_backlinks(graph: LinkGraph, path: str) -> list[Connection]:
    """Backlinks for a note that was not part of the scan."""
    names = {path.lower(), strip_extension(path).lower(), note_name(path).lower()}
    return [
        conn.model_copy(update={"type": "backlink"})
        for source in graph.paths
        if source != path
        for conn in graph.outgoing[source]
        if conn.type != "tag" and conn.target.lower() in names
    ]


# =============================================================================
# Operation Handlers
# =============================================================================


async def _get_note_links(deps: ChatDependencies, params: GraphAnalysisParams) -> GraphAnalysisResult:
    path = await _existing_note(deps, params.note_path or "")
    content = await deps.vault.read_file(path)
    connections = extract_connections(path, content, params.include_tag_links)

    if params.include_folder_structure and "/" in path:
        folder = path.rsplit("/", 1)[0]
        siblings = same_folder_siblings(path, await deps.vault.list_files(folder))
        connections.extend(Connection(source=path, target=s, type="folder") for s in siblings)

    return GraphAnalysisResult(
        operation="get_note_links",
        note_path=path,
        connections=connections,
        files_searched=1,
    )


async def _get_backlinks(deps: ChatDependencies, params: GraphAnalysisParams) -> GraphAnalysisResult:
    path = await _existing_note(deps, params.note_path or "")
    scan = await _scan(deps, params)
    graph = LinkGraph.build(scan, include_tags=False)
    backlinks = get_backlinks(graph, path) if path in graph.outgoing else _matching_backlinks(graph, path)
    return GraphAnalysisResult(
        operation="get_backlinks",
        note_path=path,
        connections=backlinks,
        files_searched=scan.files_searched,
        truncated=scan.truncated,
    )


async def _trace_connection_path(
    deps: ChatDependencies, params: GraphAnalysisParams
) -> GraphAnalysisResult:
    scan = await _scan(deps, params)
    graph = LinkGraph.build(scan, include_tags=False)
    source = _graph_note(graph, params.note_path or "")
    target = _graph_note(graph, params.target_path or "")
    return GraphAnalysisResult(
        operation="trace_connection_path",
        note_path=source,
        target_path=target,
        path=shortest_path(graph.adjacency, source, target, params.max_depth),
        max_depth=params.max_depth,
        files_searched=scan.files_searched,
        truncated=scan.truncated,
    )


async def _analyze_vault(deps: ChatDependencies, params: GraphAnalysisParams) -> GraphAnalysisResult:
    """Operations that need the whole (scanned) graph and no single note."""
    scan = await _scan(deps, params)
    graph = LinkGraph.build(scan, include_tags=params.include_tag_links)
    result = GraphAnalysisResult(
        operation=params.operation,
        files_searched=scan.files_searched,
        truncated=scan.truncated,
    )

    if params.operation == "find_orphaned_notes":
        result.notes = find_orphaned_notes(graph, params.include_folder_structure)
    elif params.operation == "find_hub_notes":
        result.notes = find_hub_notes(graph, params.min_connections)
    elif params.operation == "analyze_tag_relationships":
        result.tag_relationships, result.tag_distribution = analyze_tag_relationships(graph)
    else:
        result.statistics = vault_statistics(graph)
    return result


async def run_graph_analysis(
    deps: ChatDependencies, params: GraphAnalysisParams
) -> GraphAnalysisResult:
    """Dispatch one graph analysis operation.

    Raises:
        VaultValidationError: If a parameter required by the operation is missing
        VaultNotFoundError: If a referenced note does not exist
    """
    op = params.operation
    if op in ("get_note_links", "get_backlinks", "trace_connection_path") and not params.note_path:
        raise VaultValidationError(f"'note_path' required for {op}")

    if op == "get_note_links":
        return await _get_note_links(deps, params)
    if op == "get_backlinks":
        return await _get_backlinks(deps, params)
    if op == "trace_connection_path":
        if not params.target_path:
            raise VaultValidationError("'target_path' required for trace_connection_path")
        return await _trace_connection_path(deps, params)
    return await _analyze_vault(deps, params)


# =============================================================================
# Formatting Functions
# =============================================================================


def _format_connection(conn: Connection, target_side: bool = True) -> str:
    other = conn.target if target_side else conn.source
    label = other if other.startswith("#") else f"[[{strip_extension(other)}]]"
    line = f"- {label} ({conn.type})"
    if conn.context:
        line += f"\n  {conn.context}"
    return line


def _format_note_info(index: int, info: NoteInfo) -> str:
    line = (
        f"{index}. **{info.name}** ({info.path}): {info.total_connections} connection(s) "
        f"[{info.outgoing_links} out, {info.incoming_links} in]"
    )
    if info.tags:
        line += f"\n   Tags: {', '.join(info.tags)}"
    return line


def format_graph_result(result: GraphAnalysisResult) -> str:
    """Format a graph analysis result for the LLM."""
    op = result.operation
    lines: list[str] = []

    if op == "get_note_links":
        if not result.connections:
            return f"No outgoing links found in {result.note_path}."
        lines.append(f"**Links from {result.note_path}** ({len(result.connections)})")
        lines.append("")
        lines.extend(_format_connection(c) for c in result.connections)

    elif op == "get_backlinks":
        if not result.connections:
            lines.append(f"No backlinks found for {result.note_path}.")
        else:
            lines.append(f"**Backlinks to {result.note_path}** ({len(result.connections)})")
            lines.append("")
            lines.extend(_format_connection(c, target_side=False) for c in result.connections)

    elif op == "trace_connection_path":
        if not result.path:
            lines.append(
                f"No path found from {result.note_path} to {result.target_path} "
                f"within {result.max_depth} hop(s)."
            )
        else:
            hops = len(result.path) - 1
            lines.append(f"**Path** ({hops} hop(s)):")
            lines.append(" → ".join(f"[[{strip_extension(p)}]]" for p in result.path))

    elif op in ("find_orphaned_notes", "find_hub_notes"):
        title = "Orphaned notes" if op == "find_orphaned_notes" else "Hub notes"
        if not result.notes:
            lines.append(f"No {title.lower()} found.")
        else:
            lines.append(f"**{title}** ({len(result.notes)})")
            lines.append("")
            lines.extend(_format_note_info(i, n) for i, n in enumerate(result.notes, 1))

    elif op == "analyze_tag_relationships":
        if not result.tag_distribution:
            lines.append("No tags found.")
        else:
            lines.append(f"**Tag Usage** ({len(result.tag_distribution)} tags)")
            for tag, count in list(result.tag_distribution.items())[:20]:
                lines.append(f"- #{tag}: {count} note(s)")
            if result.tag_relationships:
                lines.append("")
                lines.append("**Tags Used Together**")
                for rel in result.tag_relationships[:20]:
                    lines.append(f"- #{rel.tag_a} + #{rel.tag_b}: {rel.count} note(s)")

    elif result.statistics is not None:
        stats = result.statistics
        lines.extend(
            [
                "**Vault Graph Statistics**",
                "",
                f"- Notes: {stats.total_notes}",
                f"- Connections: {stats.total_connections}",
                f"- Average connections per note: {stats.average_connections:.2f}",
                f"- Orphaned notes: {stats.orphaned_notes}",
            ]
        )
        if stats.most_connected_note:
            lines.append(
                f"- Most connected: {stats.most_connected_note} "
                f"({stats.most_connected_count} connections)"
            )
        if stats.tag_distribution:
            top = ", ".join(f"#{t} ({c})" for t, c in list(stats.tag_distribution.items())[:10])
            lines.append(f"- Top tags: {top}")

    if op != "get_note_links":
        lines.append("")
        lines.append(f"Files searched: {result.files_searched}")
    if result.truncated:
        lines.append("(Scan limit reached: results may be incomplete)")
    return "\n".join(lines)


# =============================================================================
# Main Tool Function
# =============================================================================


async def graph_analysis(
    ctx: RunContext[ChatDependencies],
    operation: str,
    note_path: str | None = None,
    target_path: str | None = None,
    min_connections: int = 5,
    include_tag_links: bool = True,
    include_folder_structure: bool = False,
    max_depth: int = 3,
    folder: str | None = None,
) -> str:
    """Analyse how notes in the vault link to each other.

    Args:
        ctx: Context with vault access and trace_id for logging
        operation: 'get_note_links', 'get_backlinks', 'find_orphaned_notes',
            'find_hub_notes', 'trace_connection_path',
            'analyze_tag_relationships' or 'get_vault_stats'
        note_path: Note to analyse (links, backlinks, path start)
        target_path: Path destination (trace_connection_path)
        min_connections: Hub threshold (find_hub_notes)
        include_tag_links: Count inline tags as connections
        include_folder_structure: Treat notes sharing a folder as connected
        max_depth: Maximum hops for trace_connection_path (1-10)
        folder: Limit vault-wide operations to this folder

    Returns:
        Formatted analysis or an error message
    """
    logger.info(
        "graph_analysis_called",
        extra={
            "operation": operation,
            "note_path": note_path,
            "target_path": target_path,
            "trace_id": ctx.deps.trace_id,
        },
    )

    try:
        params = GraphAnalysisParams(
            operation=operation,
            note_path=note_path,
            target_path=target_path,
            min_connections=min_connections,
            include_tag_links=include_tag_links,
            include_folder_structure=include_folder_structure,
            max_depth=max_depth,
            folder=folder,
        )
    except ValidationError as e:
        if any(err["loc"] == ("operation",) for err in e.errors()):
            return f"Unknown operation: {operation}. Valid operations: {VALID_OPERATIONS}"
        return f"Error: invalid parameters: {e.errors()[0]['msg']}"

    try:
        result = await run_graph_analysis(ctx.deps, params)

        logger.info(
            "graph_analysis_completed",
            extra={
                "operation": operation,
                "files_searched": result.files_searched,
                "truncated": result.truncated,
                "trace_id": ctx.deps.trace_id,
            },
        )
        return format_graph_result(result)

    except VaultError as e:
        return f"Error: {e}"
    except Exception as e:
        logger.error(
            "graph_analysis_failed",
            extra={"operation": operation, "error": str(e), "trace_id": ctx.deps.trace_id},
            exc_info=True,
        )
        return f"Error performing {operation}: {str(e)}"
